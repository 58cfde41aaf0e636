"""
Segmentation error taxonomy.

None of these escape BoxSegmenter.segment(); they route a call to the
threshold fallback and decide how loudly it is logged.
"""


class SegmentationError(Exception):
    """Base class for model-side segmentation failures"""


class ModelUnavailable(SegmentationError):
    """No model configured, or the session failed to load"""


class InferenceShapeMismatch(SegmentationError):
    """Model output is not a 2-D grid, or no input name was accepted"""


class InferenceRuntimeFailure(SegmentationError):
    """Preprocessing raised before any input name was tried"""
