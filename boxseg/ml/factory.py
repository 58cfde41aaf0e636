"""
Segmenter Factory

Factory functions for creating box segmenters.
"""

from typing import Optional, Sequence, Any
import logging

from .segmenter import BoxSegmenter
from .session import ModelSession
from .threshold import ThresholdClassifier

logger = logging.getLogger(__name__)


def get_segmenter(
    model_path: Optional[str] = None,
    device: str = "cpu",
    input_size: int = 1024,
    mask_threshold: float = 0.5,
    input_names: Optional[Sequence[str]] = None,
    classifier: Optional[ThresholdClassifier] = None,
    load: bool = True
) -> BoxSegmenter:
    """
    Factory function to create a box segmenter.

    Args:
        model_path: ONNX model path; None/empty gives a fallback-only segmenter
        device: Device to use (cuda/mps/cpu)
        input_size: Square model input resolution
        mask_threshold: Threshold applied to model output
        input_names: Fallback input names tried when the model declares none
        classifier: Threshold classifier used as fallback
        load: Load the model session immediately

    Returns:
        BoxSegmenter instance
    """
    logger.info(f"Creating box segmenter with model={model_path or 'none'}, device={device}")

    session = ModelSession(model_path=model_path or None, device=device, input_names=input_names)
    segmenter = BoxSegmenter(
        session=session,
        input_size=input_size,
        mask_threshold=mask_threshold,
        classifier=classifier
    )

    if load:
        segmenter.load_model()

    return segmenter


def get_segmenter_from_config(config: Any, load: bool = True) -> BoxSegmenter:
    """
    Create segmenter from configuration object.

    Args:
        config: Configuration object with attributes:
            - MODEL_PATH
            - DEVICE
            - MODEL_INPUT_SIZE
            - MASK_THRESHOLD
            - INPUT_NAME_CANDIDATES
            - BLUE_MIN, BLUE_OVER_RED, BLUE_OVER_GREEN
        load: Load the model session immediately

    Returns:
        BoxSegmenter instance
    """
    classifier = ThresholdClassifier(
        blue_min=getattr(config, 'BLUE_MIN', 100),
        blue_over_red=getattr(config, 'BLUE_OVER_RED', 30),
        blue_over_green=getattr(config, 'BLUE_OVER_GREEN', 20)
    )

    return get_segmenter(
        model_path=getattr(config, 'MODEL_PATH', None),
        device=getattr(config, 'DEVICE', 'cpu'),
        input_size=getattr(config, 'MODEL_INPUT_SIZE', 1024),
        mask_threshold=getattr(config, 'MASK_THRESHOLD', 0.5),
        input_names=getattr(config, 'INPUT_NAME_CANDIDATES', None),
        classifier=classifier,
        load=load
    )
