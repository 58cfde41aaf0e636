"""
GeoJSON utilities for converting segmentation masks to/from polygon outlines

Masks are traced with Moore-neighbor boundary following into a single
outer ring in image pixel coordinates.
"""

import numpy as np
import cv2
from typing import List, Dict, Any, Tuple, Optional
import geojson
import json
from shapely.geometry import shape, Polygon, MultiPolygon
import logging

logger = logging.getLogger(__name__)

# Clockwise 8-neighborhood in image coordinates (y grows downward)
NEIGHBOR_DIRECTIONS = [
    (-1, 0), (-1, -1), (0, -1), (1, -1),
    (1, 0), (1, 1), (0, 1), (-1, 1)
]

DEFAULT_MIN_RING_LENGTH = 20


def _mask_grid(mask: np.ndarray, width: Optional[int], height: Optional[int]) -> np.ndarray:
    """Return mask as a boolean (height, width) grid"""
    mask = np.asarray(mask)
    if width is None or height is None:
        if mask.ndim != 2:
            raise ValueError("width and height are required for flat masks")
        height, width = mask.shape
    if mask.size != width * height:
        raise ValueError(f"Mask has {mask.size} values, expected {width}x{height}")
    return mask.reshape(height, width) > 0


def trace_boundary(
    mask: np.ndarray,
    width: Optional[int] = None,
    height: Optional[int] = None,
    offset_x: int = 0,
    offset_y: int = 0,
    min_ring_length: int = DEFAULT_MIN_RING_LENGTH,
    max_iterations: Optional[int] = None
) -> List[Tuple[int, int]]:
    """
    Trace the outer boundary of the first foreground region

    The walk starts at the first foreground pixel in row-major order and
    stops when no foreground neighbor exists, when it is back at the start
    after collecting more than ``min_ring_length`` points, or after
    ``max_iterations`` steps. Small contours are therefore walked more
    than once before the ring closes.

    Args:
        mask: Binary mask, flat or (height, width)
        width: Mask width (inferred from a 2-D mask)
        height: Mask height (inferred from a 2-D mask)
        offset_x: Added to every x coordinate
        offset_y: Added to every y coordinate
        min_ring_length: Points required before returning to the start
            closes the ring
        max_iterations: Step ceiling (default 4*width*height plus slack)

    Returns:
        List of (x, y) points; empty for an all-background mask. A single
        isolated pixel yields a one-point ring.
    """
    grid = _mask_grid(mask, width, height)
    height, width = grid.shape

    foreground = np.flatnonzero(grid)
    if foreground.size == 0:
        return []

    start = divmod(int(foreground[0]), width)[::-1]
    if max_iterations is None:
        max_iterations = 4 * width * height + min_ring_length + 8

    coords = []
    cx, cy = start
    prev_dir = 0

    for _ in range(max_iterations):
        coords.append((cx + offset_x, cy + offset_y))

        found = False
        for d in range(8):
            di = (prev_dir + 7 + d) % 8
            dx, dy = NEIGHBOR_DIRECTIONS[di]
            nx, ny = cx + dx, cy + dy
            if 0 <= nx < width and 0 <= ny < height and grid[ny, nx]:
                cx, cy = nx, ny
                prev_dir = di
                found = True
                break

        if not found:
            break
        if (cx, cy) == start and len(coords) > min_ring_length:
            break
    else:
        logger.warning(f"Boundary trace hit iteration ceiling ({max_iterations}), ring may be open")

    return coords


def mask_to_geojson(
    mask: np.ndarray,
    width: Optional[int] = None,
    height: Optional[int] = None,
    offset_x: int = 0,
    offset_y: int = 0,
    properties: Optional[Dict[str, Any]] = None,
    min_ring_length: int = DEFAULT_MIN_RING_LENGTH
) -> Dict[str, Any]:
    """
    Convert segmentation mask to a single-polygon GeoJSON FeatureCollection

    Args:
        mask: Binary segmentation mask, flat or (H, W)
        width: Mask width (inferred from a 2-D mask)
        height: Mask height (inferred from a 2-D mask)
        offset_x: Translation applied to x, e.g. the crop's left edge
        offset_y: Translation applied to y, e.g. the crop's top edge
        properties: Optional properties for the feature
        min_ring_length: See trace_boundary()

    Returns:
        GeoJSON FeatureCollection with zero or one Polygon feature
    """
    ring = trace_boundary(
        mask, width, height,
        offset_x=offset_x,
        offset_y=offset_y,
        min_ring_length=min_ring_length
    )

    if not ring:
        return geojson.FeatureCollection([])

    feature = geojson.Feature(
        geometry=geojson.Polygon([[[int(x), int(y)] for x, y in ring]]),
        properties=dict(properties) if properties else {}
    )

    logger.debug(f"Traced ring with {len(ring)} points")
    return geojson.FeatureCollection([feature])


def geojson_to_mask(
    geojson_data: Dict[str, Any],
    mask_shape: Tuple[int, int],
    offset_x: int = 0,
    offset_y: int = 0
) -> np.ndarray:
    """
    Convert GeoJSON polygons to a 0/255 mask

    Rings with fewer than 3 points are drawn as their pixels.

    Args:
        geojson_data: GeoJSON FeatureCollection dictionary
        mask_shape: Shape of output mask (H, W)
        offset_x: Subtracted from x, undoing a mask_to_geojson offset
        offset_y: Subtracted from y

    Returns:
        uint8 mask with values 0 or 255
    """
    mask = np.zeros(mask_shape, dtype=np.uint8)

    if "features" not in geojson_data:
        logger.warning("No features found in GeoJSON")
        return mask

    shift = np.array([offset_x, offset_y])

    for feature in geojson_data["features"]:
        geometry = feature.get("geometry") or {}
        rings = geometry.get("coordinates") or []

        if geometry.get("type") == "Polygon" and rings and len(rings[0]) < 3:
            for x, y in np.asarray(rings[0]).reshape(-1, 2) - shift:
                if 0 <= y < mask_shape[0] and 0 <= x < mask_shape[1]:
                    mask[int(y), int(x)] = 255
            continue

        try:
            geom = shape(geometry)
        except Exception as e:
            logger.warning(f"Error processing feature: {e}")
            continue

        if isinstance(geom, Polygon):
            polygons = [geom]
        elif isinstance(geom, MultiPolygon):
            polygons = list(geom.geoms)
        else:
            continue

        for polygon in polygons:
            coords = np.array(polygon.exterior.coords, dtype=np.int32) - shift.astype(np.int32)
            cv2.fillPoly(mask, [coords], 255)

    return mask


def save_geojson(geojson_data: Dict[str, Any], output_path: str):
    """
    Save GeoJSON data to file

    Args:
        geojson_data: GeoJSON dictionary
        output_path: Output file path
    """
    with open(output_path, 'w') as f:
        json.dump(geojson_data, f, indent=2)

    logger.info(f"Saved GeoJSON to {output_path}")


def load_geojson(input_path: str) -> Dict[str, Any]:
    """
    Load GeoJSON data from file

    Args:
        input_path: Input file path

    Returns:
        GeoJSON dictionary
    """
    with open(input_path, 'r') as f:
        geojson_data = json.load(f)

    logger.info(f"Loaded GeoJSON from {input_path}")
    return geojson_data
