"""
Box Segmentation Module

BoxSegmenter is the single entry point for turning a box over a raster
into a mask. It tries the model when one is loaded and always falls back
to the color-threshold rule, so a call never raises.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .inference import ModelInferenceStrategy
from .session import ModelSession
from .threshold import ThresholdClassifier
from ..utils.image_utils import BoundingBox, crop_box

logger = logging.getLogger(__name__)


@dataclass
class SegmentationResult:
    """Mask for one box, with the dimensions and strategy that produced it"""

    mask: np.ndarray
    width: int
    height: int
    source: str
    box: BoundingBox

    @property
    def foreground_pixels(self) -> int:
        return int(np.count_nonzero(self.mask))


class BoxSegmenter:
    """
    Model-first, threshold-fallback segmentation of a boxed region.
    """

    def __init__(
        self,
        session: Optional[ModelSession] = None,
        input_size: int = 1024,
        mask_threshold: float = 0.5,
        classifier: Optional[ThresholdClassifier] = None,
        serialize_inference: bool = True
    ):
        """
        Initialize the segmenter.

        Args:
            session: Model session; None runs in fallback mode only
            input_size: Square model input resolution
            mask_threshold: Threshold applied to model output
            classifier: Fallback classifier (default blue dominance rule)
            serialize_inference: Allow only one model call in flight
        """
        self.session = session if session is not None else ModelSession()
        self.strategy = ModelInferenceStrategy(
            self.session,
            input_size=input_size,
            mask_threshold=mask_threshold
        )
        self.classifier = classifier or ThresholdClassifier()
        self._inference_lock = threading.Lock() if serialize_inference else None

    @property
    def model_ready(self) -> bool:
        return self.session.is_ready

    def load_model(self) -> bool:
        """Load the session once; returns whether the model is usable"""
        return self.session.load()

    async def aload_model(self) -> bool:
        return await self.session.aload()

    def _infer(self, crop: np.ndarray) -> Optional[np.ndarray]:
        if self._inference_lock is None:
            return self.strategy.predict(crop)
        with self._inference_lock:
            return self.strategy.predict(crop)

    def _fallback(self, crop: np.ndarray, box: BoundingBox) -> SegmentationResult:
        mask = self.classifier.predict(crop)
        return SegmentationResult(mask, int(box.w), int(box.h), "threshold", box)

    def segment(self, image: np.ndarray, box: BoundingBox) -> SegmentationResult:
        """
        Produce a 0/255 mask for the box region

        Args:
            image: Source raster (H, W, 4)
            box: Region to segment; clamped, never rejected

        Returns:
            SegmentationResult whose width/height equal the clamped box size
        """
        box = box.clamped()
        crop = crop_box(image, box)

        if self.session.is_ready:
            try:
                mask = self._infer(crop)
            except Exception as e:
                logger.error(f"Model strategy raised, falling back to color threshold: {e}")
                mask = None
            if mask is not None:
                return SegmentationResult(mask, int(box.w), int(box.h), "model", box)

        return self._fallback(crop, box)

    async def asegment(
        self,
        image: np.ndarray,
        box: BoundingBox,
        timeout: Optional[float] = None
    ) -> SegmentationResult:
        """
        Awaitable segment(); inference runs in a worker thread

        Args:
            image: Source raster (H, W, 4)
            box: Region to segment
            timeout: Seconds to wait for the model before falling back;
                None or 0 waits indefinitely

        Returns:
            SegmentationResult
        """
        box = box.clamped()
        crop = crop_box(image, box)

        if self.session.is_ready:
            try:
                mask = await asyncio.wait_for(
                    asyncio.to_thread(self._infer, crop),
                    timeout=timeout or None
                )
            except asyncio.TimeoutError:
                logger.warning(f"Model inference exceeded {timeout}s, falling back to color threshold")
                mask = None
            except Exception as e:
                logger.error(f"Model strategy raised, falling back to color threshold: {e}")
                mask = None
            if mask is not None:
                return SegmentationResult(mask, int(box.w), int(box.h), "model", box)

        return self._fallback(crop, box)
