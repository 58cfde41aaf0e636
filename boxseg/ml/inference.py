"""
Model Inference Strategy

Turns a crop into a mask with a loaded ModelSession:
stretch to the model's square input, run under the first accepted input
name, threshold the first output and resample it back to the crop size.
"""

import numpy as np
from typing import Dict, Optional
import logging

from .errors import InferenceRuntimeFailure, InferenceShapeMismatch, SegmentationError
from .session import ModelSession
from ..utils.image_utils import ensure_rgba, resize_image
from ..utils.mask_utils import binarize, resample_mask

logger = logging.getLogger(__name__)


class ModelInferenceStrategy:
    """Mask prediction through an external inference runtime"""

    def __init__(
        self,
        session: ModelSession,
        input_size: int = 1024,
        mask_threshold: float = 0.5
    ):
        """
        Args:
            session: Session to run; must be READY when predict() is called
            input_size: Square model input resolution S
            mask_threshold: Output values above this become foreground
        """
        self.session = session
        self.input_size = input_size
        self.mask_threshold = mask_threshold

    def preprocess_image(self, image: np.ndarray) -> np.ndarray:
        """
        Preprocess a crop for inference

        Args:
            image: RGBA crop (H, W, 4)

        Returns:
            float32 tensor [1, 3, S, S] in [0, 1]
        """
        image = ensure_rgba(image)
        size = self.input_size

        # Direct stretch, aspect ratio is not preserved
        if image.shape[:2] != (size, size):
            image = resize_image(image, size, keep_aspect_ratio=False)

        rgb = image[:, :, :3].astype(np.float32) / 255.0
        return np.ascontiguousarray(rgb.transpose(2, 0, 1)[None])

    def output_to_mask(self, outputs: Dict[str, np.ndarray]) -> np.ndarray:
        """
        Read the first output as a [..., H, W] grid and binarize it

        Raises:
            InferenceShapeMismatch: If there is no output or it is not 2-D
        """
        if not outputs:
            raise InferenceShapeMismatch("Model returned no outputs")

        output = np.asarray(next(iter(outputs.values())))
        if output.ndim < 2:
            raise InferenceShapeMismatch(f"Output shape {output.shape} is not a 2-D grid")

        out_h, out_w = output.shape[-2], output.shape[-1]
        if out_h < 1 or out_w < 1:
            raise InferenceShapeMismatch(f"Output shape {output.shape} has an empty grid")
        if output.size < out_h * out_w:
            raise InferenceShapeMismatch(f"Output shape {output.shape} holds no complete grid")

        grid = output.reshape(-1)[:out_h * out_w].reshape(out_h, out_w)
        return binarize(grid, self.mask_threshold)

    def run(self, image: np.ndarray) -> np.ndarray:
        """
        Predict a mask for a crop

        Args:
            image: RGBA crop (H, W, 4)

        Returns:
            uint8 mask (H, W) with values 0 or 255

        Raises:
            ModelUnavailable: If the session is not ready
            InferenceShapeMismatch: If no input name was accepted or none
                produced a usable grid
            InferenceRuntimeFailure: If preprocessing raised
        """
        height, width = image.shape[:2]
        candidates = self.session.input_name_candidates()

        try:
            tensor = self.preprocess_image(image)
        except Exception as e:
            raise InferenceRuntimeFailure(f"Preprocessing failed: {e}") from e

        last_error = None

        for name in candidates:
            try:
                outputs = self.session.run(name, tensor)
            except Exception as e:
                logger.debug(f"Input name '{name}' rejected: {e}")
                last_error = e
                continue

            try:
                mask = self.output_to_mask(outputs)
            except InferenceShapeMismatch as e:
                logger.debug(f"Input name '{name}' gave unusable output: {e}")
                last_error = e
                continue

            out_h, out_w = mask.shape
            logger.debug(f"Model output {out_w}x{out_h} via input '{name}', resampling to {width}x{height}")
            return resample_mask(mask, out_w, out_h, width, height)

        raise InferenceShapeMismatch(
            f"No input name in {candidates} produced a 2-D mask (last error: {last_error})"
        ) from last_error

    def predict(self, image: np.ndarray) -> Optional[np.ndarray]:
        """
        Predict a mask, reporting failure as None instead of raising

        Args:
            image: RGBA crop (H, W, 4)

        Returns:
            Mask, or None if the model could not produce one
        """
        try:
            return self.run(image)
        except InferenceShapeMismatch as e:
            logger.warning(f"Model output unusable, falling back to color threshold: {e}")
        except InferenceRuntimeFailure as e:
            logger.error(f"Model inference failed, falling back to color threshold: {e}")
        except SegmentationError as e:
            logger.info(f"Model unavailable, using color threshold: {e}")
        except Exception as e:
            logger.error(f"Unexpected inference error, falling back to color threshold: {e}")
        return None
