"""
imgprep CLI - Run a preprocessing pipeline over image files.

Inputs may be image files or directories (every image inside is used).
All results must share one shape; add a resize stage to mix image sizes.

Usage:
    imgprep --config pipeline.yaml image.jpg --output out.npz
    imgprep --config pipeline.yaml data/images/ --output out.npz
    imgprep --config pipeline.yaml image.jpg --shape-only

--shape-only predicts each output shape from the image header alone, so
no pixels are decoded and save stages write nothing.

The .npz file holds three arrays:
    tensors: float32 [N, elements]
    ids: image ids (file stems)
    shape: [width, height, channels]

Author: Matthew Hong
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

import numpy as np

from imgprep.config import get_settings
from imgprep.data.folder import ImageFolder
from imgprep.errors import PreprocessingError
from imgprep.logger import setup_logging
from imgprep.processing.image import ImageShape
from imgprep.processing.loader import read_image_shape
from imgprep.processing.pipeline import Preprocessing

logger = logging.getLogger(__name__)


# =============================================================================
# CLI Functions
# =============================================================================

def collect_inputs(inputs: Sequence[Path]) -> list[Path]:
    """Expand directories into their image files, keeping argument order."""
    paths: list[Path] = []
    for path in inputs:
        if path.is_dir():
            paths.extend(ImageFolder(path).paths())
        else:
            paths.append(path)
    return paths


def print_summary(pipeline: Preprocessing, count: int, shape: ImageShape) -> None:
    """Print run summary."""
    print()
    print("=" * 60)
    print("imgprep - Preprocessing")
    print("=" * 60)
    print(f"  Color order: {pipeline.color_order.value}")
    print(f"  Image stages: {[stage.kind for stage in pipeline.config.image_transforms]}")
    print(f"  Tensor stages: {[stage.kind for stage in pipeline.config.tensor_transforms]}")
    print(f"  Images: {count}")
    print(f"  Shape: {shape.width}x{shape.height}x{shape.channels}")
    print()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="imgprep",
        description="Run a declarative preprocessing pipeline over images",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  imgprep --config pipeline.yaml image.jpg --output out.npz
  imgprep --config pipeline.yaml data/images/ --output out.npz
  imgprep --config pipeline.yaml image.jpg --shape-only
        """,
    )

    parser.add_argument(
        "inputs",
        nargs="+",
        type=Path,
        help="Image files or directories of images",
    )
    parser.add_argument(
        "--config",
        type=Path,
        required=True,
        help="Pipeline YAML file",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Destination .npz file (required unless --shape-only)",
    )
    parser.add_argument(
        "--shape-only",
        action="store_true",
        help="Print the output shape of each input from its image header; "
        "no stage runs and nothing is saved",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: LOG_LEVEL setting)",
    )

    return parser


# =============================================================================
# Main
# =============================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.shape_only and args.output is None:
        parser.error("--output is required unless --shape-only is given")

    settings = get_settings()
    setup_logging(args.log_level or settings.LOG_LEVEL, json_format=settings.LOG_JSON)

    try:
        pipeline = Preprocessing.from_yaml(args.config)
        paths = collect_inputs(args.inputs)

        if not paths:
            logger.error("No input images found")
            return 1

        if args.shape_only:
            for path in paths:
                shape = pipeline.final_shape(read_image_shape(path))
                print(f"{path}: {shape.width}x{shape.height}x{shape.channels}")
            return 0

        ids = [path.stem for path in paths]
        tensors, shape = pipeline.preprocess_batch(paths, ids)
    except (PreprocessingError, FileNotFoundError) as e:
        logger.error(f"Preprocessing failed: {e}")
        return 1

    args.output.parent.mkdir(parents=True, exist_ok=True)
    np.savez(
        args.output,
        tensors=tensors,
        ids=np.array(ids),
        shape=np.array([shape.width, shape.height, shape.channels]),
    )

    print_summary(pipeline, len(ids), shape)
    print(f"  Saved to: {args.output}")
    print()

    return 0


if __name__ == "__main__":
    sys.exit(main())
