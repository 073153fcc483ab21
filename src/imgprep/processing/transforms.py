"""
Low-Level Image Transforms

This module contains atomic transformation functions used by the
pipeline stages. Geometric transforms work on uint8 [H, W, 3] arrays and
always return a new array; intensity transforms work on float32 arrays.

Functions:
    resize: Resize to an exact output size
    crop: Remove margins from each edge
    rotate: Rotate clockwise by an angle in degrees
    rescale: Divide every sample by a scaling factor
    normalize: Per-channel mean/std normalization
    tensor_to_image: Undo rescale and rebuild a PixelBuffer from a flat tensor

Author: Matthew Hong
"""

from enum import Enum
from typing import Sequence

import cv2
import numpy as np

from imgprep.errors import InvalidArgument
from imgprep.processing.image import ColorOrder, ImageShape, PixelBuffer


# =============================================================================
# Interpolation
# =============================================================================

class Interpolation(str, Enum):
    """Sampling policy used by resize and rotate."""

    NEAREST = "NEAREST"
    BILINEAR = "BILINEAR"
    BICUBIC = "BICUBIC"
    AREA = "AREA"

    @classmethod
    def parse(cls, value: "Interpolation | str") -> "Interpolation":
        """Parse an interpolation mode from its name (case-insensitive)."""
        if isinstance(value, Interpolation):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise InvalidArgument(
                f"Unknown interpolation: {value!r}. "
                f"Available modes: {[mode.value for mode in cls]}"
            ) from None

    @property
    def cv2_flag(self) -> int:
        return _CV2_FLAGS[self]


_CV2_FLAGS = {
    Interpolation.NEAREST: cv2.INTER_NEAREST,
    Interpolation.BILINEAR: cv2.INTER_LINEAR,
    Interpolation.BICUBIC: cv2.INTER_CUBIC,
    Interpolation.AREA: cv2.INTER_AREA,
}


# =============================================================================
# Geometric Transforms
# =============================================================================

def resize(
    pixels: np.ndarray,
    output_width: int,
    output_height: int,
    interpolation: Interpolation = Interpolation.BILINEAR,
) -> np.ndarray:
    """
    Resize an image to exactly output_width x output_height.

    NEAREST uses index lookup src = floor(dst * src_size / out_size) on
    each axis, so integer upscales replicate every source pixel into an
    exact block. Other modes delegate to cv2.resize.

    Args:
        pixels: uint8 array with shape [H, W, 3]
        output_width: Target width (> 0)
        output_height: Target height (> 0)
        interpolation: Sampling policy

    Returns:
        Resized uint8 array [output_height, output_width, 3]

    Raises:
        InvalidArgument: If a target dimension is not positive

    Example:
        >>> image = np.zeros((2, 2, 3), dtype=np.uint8)
        >>> resize(image, 4, 4, Interpolation.NEAREST).shape
        (4, 4, 3)
    """
    if output_width <= 0 or output_height <= 0:
        raise InvalidArgument(
            f"Resize target must be positive, got {output_width}x{output_height}"
        )

    interpolation = Interpolation.parse(interpolation)
    src_height, src_width = pixels.shape[:2]

    if interpolation == Interpolation.NEAREST:
        xs = (np.arange(output_width) * src_width) // output_width
        ys = (np.arange(output_height) * src_height) // output_height
        return pixels[ys[:, np.newaxis], xs[np.newaxis, :]]

    return cv2.resize(
        pixels,
        (output_width, output_height),
        interpolation=interpolation.cv2_flag,
    )


def crop(
    pixels: np.ndarray,
    left: int = 0,
    right: int = 0,
    top: int = 0,
    bottom: int = 0,
) -> np.ndarray:
    """
    Remove the given number of pixels from each edge.

    Args:
        pixels: uint8 array with shape [H, W, 3]
        left, right, top, bottom: Margins to remove (>= 0)

    Returns:
        Cropped copy with shape [H - top - bottom, W - left - right, 3]

    Raises:
        InvalidArgument: If a margin is negative or the result is empty

    Example:
        >>> image = np.zeros((2, 2, 3), dtype=np.uint8)
        >>> crop(image, left=1, bottom=1).shape
        (1, 1, 3)
    """
    margins = {"left": left, "right": right, "top": top, "bottom": bottom}
    negative = {name: value for name, value in margins.items() if value < 0}
    if negative:
        raise InvalidArgument(f"Crop margins must be >= 0, got {negative}")

    height, width = pixels.shape[:2]
    new_width = width - left - right
    new_height = height - top - bottom

    if new_width <= 0 or new_height <= 0:
        raise InvalidArgument(
            f"Crop of {width}x{height} by (left={left}, right={right}, "
            f"top={top}, bottom={bottom}) leaves {new_width}x{new_height}"
        )

    return pixels[top : top + new_height, left : left + new_width].copy()


def rotate(
    pixels: np.ndarray,
    degrees: float,
    interpolation: Interpolation = Interpolation.BILINEAR,
) -> np.ndarray:
    """
    Rotate an image clockwise (as displayed) by degrees.

    Multiples of 90 degrees are exact pixel permutations; 90 and 270 swap
    width and height. Any other angle rotates around the pixel-grid centre
    ((w - 1) / 2, (h - 1) / 2) on a canvas of the original size, sampling
    with the given interpolation and filling uncovered pixels with black.

    Args:
        pixels: uint8 array with shape [H, W, 3]
        degrees: Clockwise rotation angle
        interpolation: Sampling policy for non-right angles

    Returns:
        Rotated uint8 array

    Example:
        >>> image = np.zeros((2, 3, 3), dtype=np.uint8)
        >>> rotate(image, 90).shape
        (3, 2, 3)
    """
    degrees = float(degrees) % 360.0
    quarter_turns, remainder = divmod(degrees, 90.0)

    if np.isclose(remainder, 0.0) or np.isclose(remainder, 90.0):
        if np.isclose(remainder, 90.0):
            quarter_turns += 1
        # np.rot90 turns counter-clockwise for positive k
        k = int(quarter_turns) % 4
        return np.ascontiguousarray(np.rot90(pixels, k=-k))

    interpolation = Interpolation.parse(interpolation)
    height, width = pixels.shape[:2]
    center = ((width - 1) / 2.0, (height - 1) / 2.0)

    # cv2 angles are counter-clockwise
    matrix = cv2.getRotationMatrix2D(center, -degrees, 1.0)

    return cv2.warpAffine(
        pixels,
        matrix,
        (width, height),
        flags=interpolation.cv2_flag,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=(0, 0, 0),
    )


# =============================================================================
# Intensity Transforms
# =============================================================================

def rescale(array: np.ndarray, scaling_factor: float) -> np.ndarray:
    """
    Divide every sample by scaling_factor.

    Formula: rescaled = value / scaling_factor

    Args:
        array: uint8 or float array
        scaling_factor: Non-zero divisor (255.0 maps [0, 255] to [0, 1])

    Returns:
        float32 array with the same shape

    Raises:
        InvalidArgument: If scaling_factor is zero
    """
    if scaling_factor == 0:
        raise InvalidArgument("Rescale scaling_factor must be non-zero")

    return array.astype(np.float32) / np.float32(scaling_factor)


def normalize(
    array: np.ndarray,
    mean: Sequence[float],
    std: Sequence[float],
) -> np.ndarray:
    """
    Apply per-channel normalization.

    Formula: normalized = (value - mean) / std

    Mean and std are indexed by the array's last axis, so they must be
    given in the same channel order as the array.

    Args:
        array: float array with shape [H, W, C]
        mean: C channel means
        std: C channel standard deviations (non-zero)

    Returns:
        Normalized float32 array [H, W, C]

    Raises:
        InvalidArgument: If mean/std do not match the channel count or std has zeros
    """
    mean = np.asarray(mean, dtype=np.float32)
    std = np.asarray(std, dtype=np.float32)
    channels = array.shape[-1]

    if mean.shape != (channels,) or std.shape != (channels,):
        raise InvalidArgument(
            f"Normalize expects {channels} means and stds, "
            f"got {mean.shape[0] if mean.ndim else 0} and {std.shape[0] if std.ndim else 0}"
        )

    if np.any(std == 0):
        raise InvalidArgument(f"Normalize std must be non-zero, got {std.tolist()}")

    return (array.astype(np.float32) - mean) / std


def tensor_to_image(
    tensor: np.ndarray,
    shape: ImageShape,
    color_order: ColorOrder,
    scaling_factor: float = 255.0,
) -> PixelBuffer:
    """
    Rebuild a PixelBuffer from a flat rescaled tensor.

    Inverse of flattening plus rescale: reshapes to [H, W, C], multiplies
    by scaling_factor, rounds and clips to uint8.

    Args:
        tensor: Flat float array laid out as (height, width, channels)
        shape: Shape descriptor returned with the tensor
        color_order: Channel order the tensor was produced in
        scaling_factor: Factor that was used by rescale

    Returns:
        PixelBuffer in color_order

    Raises:
        InvalidArgument: If the tensor size does not match shape
    """
    if tensor.size != shape.number_of_elements:
        raise InvalidArgument(
            f"Tensor has {tensor.size} elements, shape {shape} needs "
            f"{shape.number_of_elements}"
        )

    restored = np.asarray(tensor, dtype=np.float32).reshape(shape.as_hwc())
    restored = np.rint(restored * np.float32(scaling_factor))
    pixels = np.clip(restored, 0, 255).astype(np.uint8)

    return PixelBuffer(pixels, ColorOrder.parse(color_order))
