"""
Configuration Management for BoxSeg

Centralized configuration with environment variable support.
"""

import os
import torch
from dotenv import load_dotenv
from pathlib import Path
from typing import List, Tuple
import logging

# Load environment variables from .env file
load_dotenv()


def resolve_log_level(value: str) -> str:
    """
    Normalize a logging level name.

    Returns:
        str: The upper-cased level if logging knows it, else "INFO"
    """
    level = (value or "INFO").strip().upper()
    return level if isinstance(logging.getLevelName(level), int) else "INFO"


# Setup logging
_RAW_LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
logging.basicConfig(
    level=resolve_log_level(_RAW_LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

if resolve_log_level(_RAW_LOG_LEVEL) != _RAW_LOG_LEVEL.strip().upper():
    logger.error(f"LOG_LEVEL {_RAW_LOG_LEVEL!r} is not a logging level, using default: INFO")


def is_mps_available() -> bool:
    """
    Check if MPS (Metal Performance Shaders) is available.

    Returns:
        bool: True if MPS is available, False otherwise
    """
    return hasattr(torch.backends, 'mps') and torch.backends.mps.is_available()


def _parse_int_list(value: str) -> List[int]:
    return [int(part) for part in value.split(",")]


class Config:
    """
    Centralized configuration management for BoxSeg.

    Loads settings from environment variables and provides defaults.
    Invalid numeric values are logged and replaced by their defaults.
    """

    # Segmentation model (empty path = threshold fallback only)
    MODEL_PATH = os.getenv("BOXSEG_MODEL_PATH", "")

    try:
        MODEL_INPUT_SIZE = int(os.getenv("MODEL_INPUT_SIZE", "1024"))
    except ValueError:
        logger.error("MODEL_INPUT_SIZE must be a number, using default: 1024")
        MODEL_INPUT_SIZE = 1024

    try:
        MASK_THRESHOLD = float(os.getenv("MASK_THRESHOLD", "0.5"))
    except ValueError:
        logger.error("MASK_THRESHOLD must be a number, using default: 0.5")
        MASK_THRESHOLD = 0.5

    INPUT_NAME_CANDIDATES = [
        name.strip()
        for name in os.getenv("INPUT_NAME_CANDIDATES", "input,images,image,input_image").split(",")
        if name.strip()
    ]

    try:
        INFERENCE_TIMEOUT = float(os.getenv("INFERENCE_TIMEOUT", "0"))
    except ValueError:
        logger.error("INFERENCE_TIMEOUT must be a number, using default: 0 (no timeout)")
        INFERENCE_TIMEOUT = 0.0

    # Threshold fallback (blue dominance rule)
    try:
        BLUE_MIN = int(os.getenv("BLUE_MIN", "100"))
        BLUE_OVER_RED = int(os.getenv("BLUE_OVER_RED", "30"))
        BLUE_OVER_GREEN = int(os.getenv("BLUE_OVER_GREEN", "20"))
    except ValueError:
        logger.error("BLUE_MIN/BLUE_OVER_RED/BLUE_OVER_GREEN must be integers, using defaults: 100/30/20")
        BLUE_MIN, BLUE_OVER_RED, BLUE_OVER_GREEN = 100, 30, 20

    # Mask overlay / export
    try:
        OVERLAY_COLOR: Tuple[int, int, int] = tuple(_parse_int_list(os.getenv("OVERLAY_COLOR", "0,120,255")))
        if len(OVERLAY_COLOR) != 3:
            raise ValueError("OVERLAY_COLOR must have exactly 3 values")
    except (ValueError, TypeError):
        logger.error("OVERLAY_COLOR must be three comma-separated integers, using default: 0,120,255")
        OVERLAY_COLOR = (0, 120, 255)

    try:
        OVERLAY_ALPHA = int(os.getenv("OVERLAY_ALPHA", "150"))
    except ValueError:
        logger.error("OVERLAY_ALPHA must be a number, using default: 150")
        OVERLAY_ALPHA = 150

    # PDF raster source
    try:
        PDF_SCALE = float(os.getenv("PDF_SCALE", "2.0"))
    except ValueError:
        logger.error("PDF_SCALE must be a number, using default: 2.0")
        PDF_SCALE = 2.0

    DEFAULT_MASK_FILENAME = os.getenv("DEFAULT_MASK_FILENAME", "mask.png")
    OUTPUT_DIR = os.getenv("OUTPUT_DIR", "./output")

    # Boundary tracing
    try:
        MIN_RING_LENGTH = int(os.getenv("MIN_RING_LENGTH", "20"))
    except ValueError:
        logger.error("MIN_RING_LENGTH must be a number, using default: 20")
        MIN_RING_LENGTH = 20

    LOG_LEVEL = resolve_log_level(_RAW_LOG_LEVEL)

    # Device Configuration (automatically detect CUDA/MPS)
    # Priority: CUDA > MPS > CPU
    if torch.cuda.is_available():
        DEVICE = "cuda"
    elif is_mps_available():
        DEVICE = "mps"
    else:
        DEVICE = "cpu"

    @classmethod
    def validate(cls):
        """
        Validate configuration settings.

        Raises:
            ValueError: If settings are invalid
        """
        errors = []

        if cls.MODEL_PATH and not Path(cls.MODEL_PATH).is_file():
            errors.append(f"BOXSEG_MODEL_PATH does not exist: {cls.MODEL_PATH}")
        if cls.MODEL_INPUT_SIZE <= 0:
            errors.append("MODEL_INPUT_SIZE must be positive")
        if not 0 <= cls.OVERLAY_ALPHA <= 255:
            errors.append("OVERLAY_ALPHA must be between 0 and 255")
        if any(not 0 <= c <= 255 for c in cls.OVERLAY_COLOR):
            errors.append("OVERLAY_COLOR values must be between 0 and 255")
        if cls.MIN_RING_LENGTH < 0:
            errors.append("MIN_RING_LENGTH must not be negative")
        if cls.PDF_SCALE <= 0:
            errors.append("PDF_SCALE must be positive")
        if cls.INFERENCE_TIMEOUT < 0:
            errors.append("INFERENCE_TIMEOUT must not be negative")
        if not cls.INPUT_NAME_CANDIDATES:
            errors.append("INPUT_NAME_CANDIDATES must name at least one input")

        if errors:
            raise ValueError("Configuration errors: " + "; ".join(errors))

        Path(cls.OUTPUT_DIR).mkdir(parents=True, exist_ok=True)

        logger.info("Configuration validated successfully")
        logger.info(f"Using device: {cls.DEVICE}")

    @classmethod
    def get_output_path(cls, filename: str) -> Path:
        """Generate path for an output file"""
        return Path(cls.OUTPUT_DIR) / filename

    @classmethod
    def log_config(cls):
        """Log current configuration"""
        logger.info("=== Configuration ===")
        logger.info(f"Model: {cls.MODEL_PATH or '(none, threshold fallback)'}")
        logger.info(f"Model input size: {cls.MODEL_INPUT_SIZE}")
        logger.info(f"Mask threshold: {cls.MASK_THRESHOLD}")
        logger.info(f"Input names: {cls.INPUT_NAME_CANDIDATES}")
        logger.info(f"Device: {cls.DEVICE}")
        logger.info(f"Output Directory: {cls.OUTPUT_DIR}")
        logger.info(f"Min ring length: {cls.MIN_RING_LENGTH}")
        logger.info(f"PDF scale: {cls.PDF_SCALE}")
        logger.info("====================")
