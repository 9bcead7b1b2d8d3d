#!/usr/bin/env python3
"""
normalize-photo: Compute upload-time tone normalization for portrait photos.

Prints the CSS filter that brings each photo to the standard brightness and,
with --preview, writes the photo rendered through that filter.

Usage:
    python normalize_photo.py portrait.jpg [more.jpg ...] [--preview] [--output destination_folder]
"""

import argparse
import logging
import sys
import traceback
from pathlib import Path

from diagnostics import log_opencv_diagnostics, setup_error_logging
from editor_session import LoadError, decode_raster, encode_jpeg
from tone_normalize import apply_filter_triple, derive_filter_triple, measure_brightness


def normalize_photo(input_path, output_dir=None):
    """
    Analyze one photo and print its CSS filter string.

    Args:
        input_path: Path to the photo
        output_dir: Where to write the filtered preview, or None to skip it

    Returns:
        True if the photo was analyzed (and written, when requested)
    """
    logger = logging.getLogger(__name__)
    input_path = Path(input_path)
    logger.info(f"Processing: {input_path}")

    if not input_path.is_file():
        logger.error(f"Input file not found: {input_path}")
        print(f"Error: Input file '{input_path}' not found.", file=sys.stderr)
        return False

    try:
        raster = decode_raster(input_path.read_bytes())
    except (OSError, LoadError) as e:
        logger.error(f"Could not read image '{input_path}': {e}")
        print(f"Error: Could not read image '{input_path}': {e}", file=sys.stderr)
        return False

    logger.info(f"Image loaded successfully: {raster.width}x{raster.height}")

    metric = measure_brightness(raster)
    triple = derive_filter_triple(metric.value)
    logger.info(f"Brightness {metric.value} over {metric.sampled_pixels} pixels -> {triple.css()}")
    print(f"{input_path.name}: brightness={metric.value} filter=\"{triple.css()}\"")

    if output_dir is None:
        return True

    output_dir = Path(output_dir)
    output_path = output_dir / f"{input_path.stem}_normalized.jpg"
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(encode_jpeg(apply_filter_triple(raster, triple)))
    except OSError as e:
        logger.error(f"Could not write preview '{output_path}': {e}")
        logger.error(traceback.format_exc())
        print(f"  Error saving preview: {e}", file=sys.stderr)
        return False

    logger.info(f"Saved: {output_path}")
    print(f"  Saved: {output_path}")
    return True


def main():
    # Setup logging first
    logger = setup_error_logging("normalize-photo")

    parser = argparse.ArgumentParser(
        description="Compute brightness/contrast normalization for portrait photos.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python normalize_photo.py portrait.jpg
  python normalize_photo.py *.jpg --preview --output ./normalized
        """
    )

    parser.add_argument(
        "inputs",
        nargs="+",
        help="Photo file(s) to analyze"
    )

    parser.add_argument(
        "--preview",
        action="store_true",
        help="Write each photo rendered with its normalization filter"
    )

    parser.add_argument(
        "--output",
        default="./output",
        help="Output directory for previews (default: ./output)"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging with imaging diagnostics"
    )

    args = parser.parse_args()

    try:
        if args.debug:
            logging.getLogger().setLevel(logging.DEBUG)
            log_opencv_diagnostics(logger)

        output_dir = args.output if args.preview else None
        failures = 0
        for input_path in args.inputs:
            if not normalize_photo(input_path, output_dir):
                failures += 1

        if failures:
            logger.warning(f"{failures} of {len(args.inputs)} photo(s) failed")
        else:
            logger.info("Processing completed successfully")

        sys.exit(1 if failures else 0)

    except Exception as e:
        # Log any uncaught exceptions with full diagnostics
        logger.error("=" * 60)
        logger.error("FATAL ERROR OCCURRED")
        logger.error("=" * 60)
        logger.error(f"Error: {str(e)}")
        logger.error(f"Error Type: {type(e).__name__}")
        logger.error("Stack Trace:")
        logger.error(traceback.format_exc())

        logger.error("Logging diagnostics due to fatal error:")
        try:
            log_opencv_diagnostics(logger)
        except Exception as diag_error:
            logger.error(f"Could not log diagnostics: {diag_error}")

        print(f"\nFATAL ERROR: {str(e)}", file=sys.stderr)
        print("Error details have been logged. Please check the log file.", file=sys.stderr)

        sys.exit(1)


if __name__ == "__main__":
    main()
