"""
Image processing utilities for raster sources and box crops
"""

import math
import numpy as np
from dataclasses import dataclass
from typing import Optional, Tuple
import cv2
from PIL import Image
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoundingBox:
    """
    Box in source raster pixel coordinates.

    Values may be fractional or out of range; use clamped() before
    indexing.
    """

    x: float
    y: float
    w: float
    h: float

    @classmethod
    def from_corners(cls, x0: float, y0: float, x1: float, y1: float) -> "BoundingBox":
        """Build a box from two drag corners given in any order"""
        return cls(min(x0, x1), min(y0, y1), abs(x1 - x0), abs(y1 - y0))

    @classmethod
    def parse(cls, text: str) -> "BoundingBox":
        """
        Parse "x,y,w,h"

        Raises:
            ValueError: If the text is not four finite comma-separated numbers
        """
        parts = [p.strip() for p in text.split(",")]
        if len(parts) != 4:
            raise ValueError(f"Box must be x,y,w,h, got: {text!r}")
        values = [float(p) for p in parts]
        if not all(math.isfinite(v) for v in values):
            raise ValueError(f"Box values must be finite, got: {text!r}")
        return cls(*values)

    def clamped(self) -> "BoundingBox":
        """Integer box with x, y >= 0 and w, h >= 1"""
        return BoundingBox(
            max(0, math.floor(self.x)),
            max(0, math.floor(self.y)),
            max(1, math.floor(self.w)),
            max(1, math.floor(self.h))
        )

    @property
    def size(self) -> Tuple[int, int]:
        """Clamped (width, height)"""
        box = self.clamped()
        return int(box.w), int(box.h)


def ensure_rgba(image: np.ndarray) -> np.ndarray:
    """
    Ensure image is RGBA format (H, W, 4) with uint8 dtype.

    Handles various input formats:
    - Grayscale (H, W) or (H, W, 1): replicate to 3 channels, opaque alpha
    - RGB (H, W, 3): add opaque alpha
    - RGBA (H, W, 4): pass through

    Args:
        image: Input image array

    Returns:
        RGBA image (H, W, 4) with uint8 dtype
    """
    if image.dtype != np.uint8:
        if image.size and image.max() <= 1.0:
            image = (image * 255).astype(np.uint8)
        else:
            image = np.clip(image, 0, 255).astype(np.uint8)

    if image.ndim == 2:
        image = image[:, :, None]

    if image.ndim != 3:
        raise ValueError(f"Unsupported image shape: {image.shape}")

    channels = image.shape[2]
    if channels == 4:
        return image
    if channels == 1:
        image = np.repeat(image, 3, axis=2)
    elif channels != 3:
        raise ValueError(f"Unsupported channel count: {channels}")

    alpha = np.full(image.shape[:2] + (1,), 255, dtype=np.uint8)
    return np.concatenate([image, alpha], axis=2)


def load_image(image_path: str, max_size: Optional[int] = None) -> np.ndarray:
    """
    Load image from file in RGBA format

    Args:
        image_path: Path to image file
        max_size: Optional maximum dimension size

    Returns:
        RGBA image as numpy array (H, W, 4) in [0, 255] range
    """
    try:
        image = Image.open(image_path)
        image = np.array(image.convert('RGBA'))

        if max_size and max(image.shape[:2]) > max_size:
            image = resize_image(image, max_size)

        logger.info(f"Loaded image from {image_path}: shape={image.shape}, dtype={image.dtype}")
        return image
    except Exception as e:
        logger.error(f"Error loading image {image_path}: {e}")
        raise


def resize_image(
    image: np.ndarray,
    max_dimension: int,
    keep_aspect_ratio: bool = True
) -> np.ndarray:
    """
    Resize image while optionally maintaining aspect ratio

    Args:
        image: Input image
        max_dimension: Maximum size for longest dimension
        keep_aspect_ratio: Whether to maintain aspect ratio; if False the
            image is stretched to a max_dimension square

    Returns:
        Resized image
    """
    h, w = image.shape[:2]

    if keep_aspect_ratio:
        scale = max_dimension / max(h, w)
        new_h, new_w = max(1, int(h * scale)), max(1, int(w * scale))
    else:
        new_h = new_w = max_dimension

    resized = cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_LINEAR)
    return resized


def crop_box(image: np.ndarray, box: BoundingBox) -> np.ndarray:
    """
    Copy the region named by ``box`` into a new RGBA buffer.

    The output always has the clamped box size. Parts of the box that fall
    outside the source stay transparent black; nothing is raised.

    Args:
        image: Source raster (H, W, 4)
        box: Requested region

    Returns:
        New RGBA array of shape (box.h, box.w, 4)
    """
    image = ensure_rgba(image)
    box = box.clamped()
    x, y, w, h = int(box.x), int(box.y), int(box.w), int(box.h)
    src_h, src_w = image.shape[:2]

    crop = np.zeros((h, w, 4), dtype=np.uint8)

    x_end = min(x + w, src_w)
    y_end = min(y + h, src_h)
    if x < x_end and y < y_end:
        crop[:y_end - y, :x_end - x] = image[y:y_end, x:x_end]

    return crop
