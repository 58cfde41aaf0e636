"""
Color-threshold segmentation

Deterministic fallback used whenever a model is missing or fails. The
default rule picks blue-toned pixels.
"""

import numpy as np
import logging

from ..utils.image_utils import ensure_rgba

logger = logging.getLogger(__name__)


class ThresholdClassifier:
    """
    Per-pixel blue dominance rule.

    A pixel is foreground iff B > blue_min and B > R + blue_over_red and
    B > G + blue_over_green.
    """

    def __init__(
        self,
        blue_min: int = 100,
        blue_over_red: int = 30,
        blue_over_green: int = 20
    ):
        self.blue_min = blue_min
        self.blue_over_red = blue_over_red
        self.blue_over_green = blue_over_green

    def predict(self, image: np.ndarray) -> np.ndarray:
        """
        Classify every pixel of an RGBA crop

        Args:
            image: RGBA (or RGB/grayscale) crop (H, W, C)

        Returns:
            uint8 mask (H, W) with values 0 or 255
        """
        rgba = ensure_rgba(image).astype(np.int16)
        r, g, b = rgba[:, :, 0], rgba[:, :, 1], rgba[:, :, 2]

        is_blue = (
            (b > self.blue_min)
            & (b > r + self.blue_over_red)
            & (b > g + self.blue_over_green)
        )

        return np.where(is_blue, 255, 0).astype(np.uint8)


def threshold_mask(image: np.ndarray) -> np.ndarray:
    """Apply the default ThresholdClassifier rule to ``image``"""
    return ThresholdClassifier().predict(image)
