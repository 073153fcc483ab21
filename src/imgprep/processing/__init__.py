"""
Processing Module - Declarative Image Preprocessing

This module provides the preprocessing pipeline and its building blocks:
- image: ColorOrder, ImageShape and PixelBuffer value types
- loader: decode files/bytes/arrays into a PixelBuffer
- transforms: resize, crop, rotate, rescale, normalize
- stages: immutable, validated pipeline stages
- pipeline: Preprocessing and PipelineBuilder

A pipeline loads an image in a declared channel order, applies its image
stages, then its tensor stages, and returns a flat float32 tensor plus an
ImageShape.
"""

from imgprep.processing.image import ColorOrder, ImageShape, PixelBuffer

from imgprep.processing.loader import (
    load_image,
    load_image_from_bytes,
    read_image_shape,
    save_image,
    to_pixel_buffer,
)

from imgprep.processing.transforms import (
    Interpolation,
    crop,
    normalize,
    rescale,
    resize,
    rotate,
    tensor_to_image,
)

from imgprep.processing.stages import (
    Crop,
    Load,
    Normalize,
    Rescale,
    Resize,
    Rotate,
    Save,
)

from imgprep.processing.pipeline import (
    PipelineBuilder,
    PreprocessResult,
    Preprocessing,
    PreprocessingConfig,
)

__all__ = [
    # Value types
    "ColorOrder",
    "ImageShape",
    "PixelBuffer",
    "Interpolation",
    # Loading
    "load_image",
    "load_image_from_bytes",
    "read_image_shape",
    "save_image",
    "to_pixel_buffer",
    # Low-level transforms
    "resize",
    "crop",
    "rotate",
    "rescale",
    "normalize",
    "tensor_to_image",
    # Stages
    "Load",
    "Resize",
    "Crop",
    "Rotate",
    "Save",
    "Rescale",
    "Normalize",
    # Pipeline
    "Preprocessing",
    "PreprocessingConfig",
    "PreprocessResult",
    "PipelineBuilder",
]
