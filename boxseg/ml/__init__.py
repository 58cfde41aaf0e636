"""ML package for box-prompted segmentation"""

from .errors import (
    SegmentationError,
    ModelUnavailable,
    InferenceShapeMismatch,
    InferenceRuntimeFailure
)
from .session import ModelSession, SessionStatus, InferenceBackend, OnnxBackend
from .threshold import ThresholdClassifier, threshold_mask
from .inference import ModelInferenceStrategy
from .segmenter import BoxSegmenter, SegmentationResult
from .factory import get_segmenter, get_segmenter_from_config

__all__ = [
    "SegmentationError",
    "ModelUnavailable",
    "InferenceShapeMismatch",
    "InferenceRuntimeFailure",
    "ModelSession",
    "SessionStatus",
    "InferenceBackend",
    "OnnxBackend",
    "ThresholdClassifier",
    "threshold_mask",
    "ModelInferenceStrategy",
    "BoxSegmenter",
    "SegmentationResult",
    "get_segmenter",
    "get_segmenter_from_config"
]
