"""
imgprep - Declarative Image Preprocessing

Turns images into flat float32 tensors through a fixed, ordered pipeline
of image stages (resize, crop, rotate, save) and tensor stages (rescale,
normalize), configured in code or in YAML.

- processing: the pipeline, its stages and low-level transforms
- data: preprocessing whole image folders
- service: HTTP API around a configured pipeline
- config / logger: defaults table, runtime settings, JSON logging
"""

from imgprep.errors import DecodeError, InvalidArgument, PreprocessingError
from imgprep.processing import (
    ColorOrder,
    ImageShape,
    Interpolation,
    PipelineBuilder,
    PixelBuffer,
    PreprocessResult,
    Preprocessing,
    PreprocessingConfig,
)

__all__ = [
    "ColorOrder",
    "ImageShape",
    "Interpolation",
    "PixelBuffer",
    "PipelineBuilder",
    "Preprocessing",
    "PreprocessingConfig",
    "PreprocessResult",
    "PreprocessingError",
    "DecodeError",
    "InvalidArgument",
]

__version__ = "0.1.0"
