"""
Image Containers

Value types shared by every stage of the preprocessing pipeline.

Classes:
    ColorOrder: Channel ordering of a pixel buffer (RGB or BGR)
    ImageShape: (width, height, channels) descriptor of a flat tensor
    PixelBuffer: [H, W, 3] uint8 pixel grid tagged with its channel order

Author: Matthew Hong
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import cv2
import numpy as np

from imgprep.errors import DecodeError, InvalidArgument


# =============================================================================
# Constants
# =============================================================================

COLOR_CHANNELS: int = 3
"""Channel count of every color pixel buffer."""


# =============================================================================
# Channel Order
# =============================================================================

class ColorOrder(str, Enum):
    """Ordering of color components in memory."""

    RGB = "RGB"
    BGR = "BGR"

    @classmethod
    def parse(cls, value: "ColorOrder | str") -> "ColorOrder":
        """Parse a channel order from its name (case-insensitive)."""
        if isinstance(value, ColorOrder):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise InvalidArgument(
                f"Unknown color mode: {value!r}. "
                f"Available modes: {[order.value for order in cls]}"
            ) from None


# =============================================================================
# Image Shape
# =============================================================================

@dataclass(frozen=True)
class ImageShape:
    """
    Shape descriptor paired with a flattened image tensor.

    Width and height stay None until the pipeline can resolve them
    (e.g. the shape of an unseen input before a resize fixes it).

    Attributes:
        width: Image width in pixels, or None if unresolved
        height: Image height in pixels, or None if unresolved
        channels: Number of channels per pixel

    Example:
        >>> ImageShape(4, 4, 3).number_of_elements
        48
    """

    width: Optional[int] = None
    height: Optional[int] = None
    channels: int = COLOR_CHANNELS

    def __post_init__(self) -> None:
        for name in ("width", "height"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise InvalidArgument(f"ImageShape.{name} must be >= 0, got {value}")
        if self.channels < 0:
            raise InvalidArgument(f"ImageShape.channels must be >= 0, got {self.channels}")

    @property
    def is_resolved(self) -> bool:
        """True once both width and height are known."""
        return self.width is not None and self.height is not None

    @property
    def number_of_elements(self) -> int:
        """width * height * channels.

        Raises:
            InvalidArgument: If width or height is still unresolved
        """
        if not self.is_resolved:
            raise InvalidArgument(f"Cannot count elements of unresolved shape {self}")
        return self.width * self.height * self.channels

    def as_hwc(self) -> tuple[int, int, int]:
        """Return (height, width, channels) for numpy reshaping."""
        if not self.is_resolved:
            raise InvalidArgument(f"Cannot reshape to unresolved shape {self}")
        return (self.height, self.width, self.channels)


# =============================================================================
# Pixel Buffer
# =============================================================================

@dataclass(frozen=True)
class PixelBuffer:
    """
    Decoded image held in memory.

    Attributes:
        pixels: uint8 array with shape [H, W, 3]
        color_order: Ordering of the last axis
    """

    pixels: np.ndarray
    color_order: ColorOrder = ColorOrder.RGB

    def __post_init__(self) -> None:
        pixels = self.pixels

        if not isinstance(pixels, np.ndarray):
            raise DecodeError(f"Expected numpy array, got {type(pixels)}")

        if pixels.ndim != 3:
            raise DecodeError(f"Expected 3D array [H, W, C], got {pixels.ndim}D")

        if pixels.shape[2] != COLOR_CHANNELS:
            raise DecodeError(f"Expected 3 channels, got {pixels.shape[2]}")

        if pixels.dtype != np.uint8:
            raise DecodeError(f"Expected uint8 dtype, got {pixels.dtype}")

        if pixels.shape[0] < 1 or pixels.shape[1] < 1:
            raise DecodeError(f"Invalid image dimensions: {pixels.shape[:2]}")

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    @property
    def shape(self) -> ImageShape:
        return ImageShape(self.width, self.height, COLOR_CHANNELS)

    def to_order(self, color_order: ColorOrder) -> "PixelBuffer":
        """
        Return this image in another channel order.

        The result never aliases the source array.

        Args:
            color_order: Desired channel order

        Returns:
            New PixelBuffer in the requested order
        """
        color_order = ColorOrder.parse(color_order)
        if color_order == self.color_order:
            return PixelBuffer(self.pixels.copy(), color_order)
        # BGR2RGB and RGB2BGR are the same channel swap
        swapped = cv2.cvtColor(np.ascontiguousarray(self.pixels), cv2.COLOR_BGR2RGB)
        return PixelBuffer(swapped, color_order)

    def pixel(self, x: int, y: int) -> tuple[int, int, int]:
        """Return the channel triple at column x, row y."""
        return tuple(int(v) for v in self.pixels[y, x])
