"""
Mask utilities: binarization, nearest-neighbor resampling and PNG export
"""

import io
import numpy as np
from pathlib import Path
from typing import Optional, Tuple, Union
from PIL import Image
import logging

logger = logging.getLogger(__name__)

DEFAULT_OVERLAY_COLOR = (0, 120, 255)
DEFAULT_OVERLAY_ALPHA = 150
DEFAULT_MASK_FILENAME = "mask.png"


def _as_grid(mask: np.ndarray, width: int, height: int) -> np.ndarray:
    """View a flat or 2-D mask as (height, width)"""
    mask = np.asarray(mask)
    if mask.size != width * height:
        raise ValueError(
            f"Mask has {mask.size} values, expected {width}x{height}={width * height}"
        )
    return mask.reshape(height, width)


def binarize(values: np.ndarray, threshold: float = 0.5) -> np.ndarray:
    """
    Threshold a probability/logit grid into a 0/255 mask

    Args:
        values: Numeric grid
        threshold: Values strictly greater become foreground

    Returns:
        uint8 mask with values 0 or 255
    """
    return np.where(np.asarray(values) > threshold, 255, 0).astype(np.uint8)


def resample_mask(
    mask: np.ndarray,
    width: int,
    height: int,
    target_width: int,
    target_height: int
) -> np.ndarray:
    """
    Nearest-neighbor remap of a mask to a new resolution

    Target pixel (xx, yy) takes source pixel
    (floor(xx * width / target_width), floor(yy * height / target_height)).

    Args:
        mask: Source mask, flat or (height, width)
        width: Source width
        height: Source height
        target_width: Output width
        target_height: Output height

    Returns:
        New mask of shape (target_height, target_width)
    """
    grid = _as_grid(mask, width, height)

    if (width, height) == (target_width, target_height):
        return grid.copy()

    xs = (np.arange(target_width) * width) // target_width
    ys = (np.arange(target_height) * height) // target_height

    return grid[ys[:, None], xs[None, :]]


def mask_to_rgba(
    mask: np.ndarray,
    width: int,
    height: int,
    color: Tuple[int, int, int] = DEFAULT_OVERLAY_COLOR,
    alpha: int = DEFAULT_OVERLAY_ALPHA
) -> np.ndarray:
    """
    Tint a mask for overlay or export

    Every pixel carries the overlay color; alpha is ``alpha`` where the
    mask is set and 0 elsewhere.

    Args:
        mask: Binary mask, flat or (height, width)
        width: Mask width
        height: Mask height
        color: RGB overlay color
        alpha: Foreground alpha

    Returns:
        RGBA image (height, width, 4)
    """
    grid = _as_grid(mask, width, height)

    rgba = np.empty((height, width, 4), dtype=np.uint8)
    rgba[:, :, :3] = color
    rgba[:, :, 3] = np.where(grid > 0, alpha, 0)

    return rgba


def encode_mask_png(
    mask: np.ndarray,
    width: int,
    height: int,
    color: Tuple[int, int, int] = DEFAULT_OVERLAY_COLOR,
    alpha: int = DEFAULT_OVERLAY_ALPHA
) -> bytes:
    """
    Encode a mask as a tinted RGBA PNG

    Returns:
        PNG file contents
    """
    rgba = mask_to_rgba(mask, width, height, color=color, alpha=alpha)

    buffer = io.BytesIO()
    Image.fromarray(rgba).save(buffer, format="PNG")
    return buffer.getvalue()


def decode_mask_png(data: Union[bytes, str, Path]) -> np.ndarray:
    """
    Recover a 0/255 mask from the alpha channel of a PNG

    Args:
        data: PNG bytes or a path to a PNG file

    Returns:
        uint8 mask (H, W)
    """
    source = io.BytesIO(data) if isinstance(data, (bytes, bytearray)) else data
    with Image.open(source) as img:
        alpha = np.array(img.convert("RGBA"))[:, :, 3]
    return np.where(alpha > 0, 255, 0).astype(np.uint8)


def save_mask_png(
    mask: np.ndarray,
    width: int,
    height: int,
    filename: Optional[str] = None,
    output_dir: Optional[Union[str, Path]] = None,
    color: Tuple[int, int, int] = DEFAULT_OVERLAY_COLOR,
    alpha: int = DEFAULT_OVERLAY_ALPHA
) -> Path:
    """
    Save a mask as a tinted RGBA PNG

    Args:
        mask: Binary mask
        width: Mask width
        height: Mask height
        filename: Output file name (default: mask.png)
        output_dir: Directory to write into (default: current directory)
        color: RGB overlay color
        alpha: Foreground alpha

    Returns:
        Path of the written file
    """
    path = Path(filename or DEFAULT_MASK_FILENAME)
    if output_dir is not None:
        path = Path(output_dir) / path
    path.parent.mkdir(parents=True, exist_ok=True)

    path.write_bytes(encode_mask_png(mask, width, height, color=color, alpha=alpha))

    logger.info(f"Saved mask ({width}x{height}) to {path}")
    return path
