"""Utility modules for image processing and format conversion"""

from .image_utils import (
    BoundingBox,
    ensure_rgba,
    load_image,
    resize_image,
    crop_box
)

from .mask_utils import (
    binarize,
    resample_mask,
    mask_to_rgba,
    encode_mask_png,
    decode_mask_png,
    save_mask_png
)

from .geojson_utils import (
    trace_boundary,
    mask_to_geojson,
    geojson_to_mask,
    save_geojson,
    load_geojson
)

from .pdf_utils import (
    is_pdf,
    render_pdf_page,
    load_raster,
    render_pdf_to_png
)

__all__ = [
    "BoundingBox",
    "ensure_rgba",
    "load_image",
    "resize_image",
    "crop_box",
    "binarize",
    "resample_mask",
    "mask_to_rgba",
    "encode_mask_png",
    "decode_mask_png",
    "save_mask_png",
    "trace_boundary",
    "mask_to_geojson",
    "geojson_to_mask",
    "save_geojson",
    "load_geojson",
    "is_pdf",
    "render_pdf_page",
    "load_raster",
    "render_pdf_to_png"
]
