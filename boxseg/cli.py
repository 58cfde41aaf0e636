"""
Command-line interface for BoxSeg
"""

import argparse
import asyncio
import sys

from boxseg import __version__


def main(argv=None):
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        description="BoxSeg - box-prompted mask segmentation"
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Segment command
    segment_parser = subparsers.add_parser('segment', help='Segment a box of an image')
    segment_parser.add_argument(
        'input',
        type=str,
        help='Input image or PDF path'
    )
    segment_parser.add_argument(
        '--box',
        type=str,
        required=True,
        help='Bounding box as x,y,w,h in image pixels'
    )
    segment_parser.add_argument(
        '--model',
        type=str,
        default=None,
        help='ONNX model path (default: BOXSEG_MODEL_PATH, else threshold fallback)'
    )
    segment_parser.add_argument(
        '--output',
        type=str,
        nargs='?',
        const='',
        help='Output path for the mask PNG (no value: DEFAULT_MASK_FILENAME in OUTPUT_DIR)'
    )
    segment_parser.add_argument(
        '--geojson',
        type=str,
        help='Output path for GeoJSON export'
    )
    segment_parser.add_argument(
        '--crop-coords',
        action='store_true',
        help='Write polygon coordinates relative to the box instead of the image'
    )
    add_page_arguments(segment_parser)

    # Render command
    render_parser = subparsers.add_parser('render', help='Render a PDF page to PNG')
    render_parser.add_argument(
        'input',
        type=str,
        help='Input PDF path'
    )
    render_parser.add_argument(
        '--output',
        type=str,
        help='Output PNG path (default: input path with a .png suffix)'
    )
    add_page_arguments(render_parser)

    # Info command
    subparsers.add_parser('info', help='Show active configuration')

    args = parser.parse_args(argv)

    if args.command == 'segment':
        sys.exit(segment_image(args))
    elif args.command == 'render':
        sys.exit(render_page(args))
    elif args.command == 'info':
        show_info()
    else:
        parser.print_help()
        sys.exit(1)


def add_page_arguments(parser):
    """Add the PDF page selection options to a subcommand"""
    parser.add_argument(
        '--page',
        type=int,
        default=1,
        help='1-based PDF page to render (default: 1)'
    )
    parser.add_argument(
        '--scale',
        type=float,
        default=None,
        help='PDF render scale in pixels per point (default: PDF_SCALE)'
    )


def show_info():
    """Print the active configuration"""
    from boxseg.config import Config

    print(f"BoxSeg {__version__}")
    print(f"Model: {Config.MODEL_PATH or '(none, threshold fallback)'}")
    print(f"Model input size: {Config.MODEL_INPUT_SIZE}")
    print(f"Device: {Config.DEVICE}")
    print(f"PDF scale: {Config.PDF_SCALE}")
    print(f"Output directory: {Config.OUTPUT_DIR}")


def render_page(args) -> int:
    """Render a PDF page to PNG from the command line; returns the exit code"""
    from boxseg.config import Config
    from boxseg.utils import render_pdf_to_png

    scale = args.scale if args.scale is not None else Config.PDF_SCALE

    try:
        path = render_pdf_to_png(args.input, args.output, page=args.page, scale=scale)
    except Exception:
        print(f"Error processing PDF: could not render {args.input}. Please try another file.", file=sys.stderr)
        return 1

    print(f"Saved PNG to: {path}")
    return 0


def segment_image(args) -> int:
    """Segment a box from the command line; returns the exit code"""
    from boxseg.config import Config
    from boxseg.ml import get_segmenter_from_config
    from boxseg.utils import BoundingBox, load_raster, mask_to_geojson, save_geojson, save_mask_png

    try:
        box = BoundingBox.parse(args.box)
    except ValueError as e:
        print(f"Invalid --box: {e}", file=sys.stderr)
        return 2

    try:
        scale = args.scale if args.scale is not None else Config.PDF_SCALE
        image = load_raster(args.input, page=args.page, scale=scale)
    except Exception:
        print(f"Processing failed: could not read {args.input}. Please try another file.", file=sys.stderr)
        return 1

    print(f"Processing image: {args.input} ({image.shape[1]}x{image.shape[0]})")

    segmenter = get_segmenter_from_config(Config, load=False)
    if args.model is not None:
        segmenter.session.model_path = args.model
    segmenter.load_model()

    if Config.INFERENCE_TIMEOUT > 0:
        result = asyncio.run(segmenter.asegment(image, box, timeout=Config.INFERENCE_TIMEOUT))
    else:
        result = segmenter.segment(image, box)

    print(f"Mask {result.width}x{result.height} from {result.source}, "
          f"{result.foreground_pixels} foreground pixels")

    if args.output is not None:
        path = save_mask_png(
            result.mask, result.width, result.height,
            filename=args.output or str(Config.get_output_path(Config.DEFAULT_MASK_FILENAME)),
            color=Config.OVERLAY_COLOR,
            alpha=Config.OVERLAY_ALPHA
        )
        print(f"Saved mask to: {path}")

    if args.geojson:
        offset_x, offset_y = (0, 0) if args.crop_coords else (int(result.box.x), int(result.box.y))
        geojson_data = mask_to_geojson(
            result.mask,
            offset_x=offset_x,
            offset_y=offset_y,
            properties={"source": result.source},
            min_ring_length=Config.MIN_RING_LENGTH
        )
        save_geojson(geojson_data, args.geojson)
        print(f"Saved GeoJSON to: {args.geojson}")

    print("Processing complete!")
    return 0


if __name__ == '__main__':
    main()
