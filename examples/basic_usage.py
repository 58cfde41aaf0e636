"""
Example: Basic usage of the BoxSeg API
"""

import asyncio
import numpy as np
from boxseg.ml import get_segmenter
from boxseg.utils import BoundingBox, mask_to_geojson, save_mask_png


async def main():
    """Demonstrate box segmentation with polygon and PNG export"""

    # Create a synthetic page with a blue region
    print("Creating sample image...")
    width, height = 640, 480
    image = np.full((height, width, 4), 255, dtype=np.uint8)
    y_grid, x_grid = np.ogrid[:height, :width]
    disc = (x_grid - 300) ** 2 + (y_grid - 220) ** 2 <= 80 ** 2
    image[disc, :3] = (30, 60, 210)

    # No model path: the segmenter runs on the color-threshold fallback
    print("\nInitializing segmenter...")
    segmenter = get_segmenter(model_path=None)
    print(f"Model ready: {segmenter.model_ready}")

    # Box drawn from the lower right to the upper left
    box = BoundingBox.from_corners(400, 320, 200, 120)
    print(f"\nSegmenting box {box}...")
    result = await segmenter.asegment(image, box, timeout=5.0)
    print(f"Mask {result.width}x{result.height} from {result.source}, "
          f"{result.foreground_pixels} foreground pixels")

    # Polygon in full-image coordinates
    geojson_data = mask_to_geojson(
        result.mask,
        offset_x=int(result.box.x),
        offset_y=int(result.box.y),
        properties={"source": result.source}
    )
    if geojson_data["features"]:
        ring = geojson_data["features"][0]["geometry"]["coordinates"][0]
        print(f"Outline has {len(ring)} points, starting at {ring[0]}")

    path = save_mask_png(result.mask, result.width, result.height, filename="example_mask.png")
    print(f"\nSaved mask to {path}")


if __name__ == "__main__":
    asyncio.run(main())
