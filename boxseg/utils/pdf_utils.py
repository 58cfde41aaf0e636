"""
PDF page rendering

Turns one page of a PDF document into an RGBA raster that the box
segmentation pipeline can crop from.
"""

import numpy as np
from pathlib import Path
from typing import Optional, Union
from PIL import Image
import pypdfium2 as pdfium
import logging

from .image_utils import load_image

logger = logging.getLogger(__name__)

DEFAULT_PDF_SCALE = 2.0


def is_pdf(path: Union[str, Path]) -> bool:
    """Check whether a path names a PDF document"""
    return Path(path).suffix.lower() == ".pdf"


def render_pdf_page(
    pdf_path: Union[str, Path],
    page: int = 1,
    scale: float = DEFAULT_PDF_SCALE
) -> np.ndarray:
    """
    Render a single PDF page to an RGBA raster

    Args:
        pdf_path: Path to the PDF file
        page: 1-based page number
        scale: Pixels per PDF point; 2.0 renders a US Letter page at 1224x1584

    Returns:
        RGBA image as numpy array (H, W, 4)

    Raises:
        ValueError: If the page number is out of range or scale is not positive
    """
    if scale <= 0:
        raise ValueError(f"Scale must be positive, got {scale}")

    pdf = pdfium.PdfDocument(str(pdf_path))
    try:
        page_count = len(pdf)
        if not 1 <= page <= page_count:
            raise ValueError(f"Page {page} out of range: {pdf_path} has {page_count} page(s)")

        pdf_page = pdf[page - 1]
        try:
            bitmap = pdf_page.render(scale=scale)
            image = np.array(bitmap.to_pil().convert("RGBA"))
        finally:
            pdf_page.close()
    finally:
        pdf.close()

    logger.info(f"Rendered page {page} of {pdf_path} at scale {scale}: {image.shape[1]}x{image.shape[0]}")
    return image


def load_raster(
    path: Union[str, Path],
    page: int = 1,
    scale: float = DEFAULT_PDF_SCALE
) -> np.ndarray:
    """
    Load a raster source: a rendered page for PDFs, the image itself otherwise

    Args:
        path: Image or PDF path
        page: 1-based page number, PDFs only
        scale: Render scale, PDFs only

    Returns:
        RGBA image as numpy array (H, W, 4)
    """
    if is_pdf(path):
        return render_pdf_page(path, page=page, scale=scale)
    return load_image(str(path))


def render_pdf_to_png(
    pdf_path: Union[str, Path],
    output_path: Optional[Union[str, Path]] = None,
    page: int = 1,
    scale: float = DEFAULT_PDF_SCALE
) -> Path:
    """
    Render a PDF page and save it as PNG

    Args:
        pdf_path: Path to the PDF file
        output_path: Destination; defaults to the PDF path with a .png suffix
        page: 1-based page number
        scale: Pixels per PDF point

    Returns:
        Path of the written PNG
    """
    image = render_pdf_page(pdf_path, page=page, scale=scale)

    output_path = Path(output_path) if output_path else Path(pdf_path).with_suffix(".png")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(image).save(output_path, format="PNG")

    logger.info(f"Saved page {page} to {output_path}")
    return output_path
