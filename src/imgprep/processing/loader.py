"""
Image Loading

Decodes encoded images (files, bytes) and adapts already-decoded images
(numpy arrays, PIL images) into a PixelBuffer with a declared channel order.

Functions:
    load_image: Load image file as a PixelBuffer
    load_image_from_bytes: Decode image bytes as a PixelBuffer
    read_image_shape: Read an image file's shape from its header
    to_pixel_buffer: Adapt any supported image input to a PixelBuffer
    save_image: Encode a PixelBuffer to an image file

Bare numpy arrays are taken to be RGB, matching what load_image returns
for color_order=RGB.

Author: Matthew Hong
"""

from pathlib import Path
from typing import Any, Union

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from imgprep.errors import DecodeError
from imgprep.processing.image import COLOR_CHANNELS, ColorOrder, ImageShape, PixelBuffer


ImageInput = Union[PixelBuffer, np.ndarray, Image.Image, bytes, str, Path]


def _from_bgr(bgr: np.ndarray, color_order: ColorOrder) -> PixelBuffer:
    return PixelBuffer(bgr, ColorOrder.BGR).to_order(color_order)


def load_image(
    image_path: Union[str, Path],
    color_order: ColorOrder = ColorOrder.RGB,
) -> PixelBuffer:
    """
    Load an image file as a PixelBuffer.

    Uses OpenCV for decoding, which yields BGR natively; the buffer is
    converted to the requested order.

    Args:
        image_path: Path to image file (JPEG, PNG, etc.)
        color_order: Channel order of the returned buffer

    Returns:
        PixelBuffer with uint8 pixels [H, W, 3]

    Raises:
        DecodeError: If image cannot be loaded (file not found or corrupted)

    Example:
        >>> buffer = load_image("path/to/image.jpg", ColorOrder.BGR)
        >>> buffer.pixels.shape
        (1080, 1920, 3)
    """
    bgr = cv2.imread(str(image_path), cv2.IMREAD_COLOR)

    if bgr is None:
        raise DecodeError(f"Failed to load image: {image_path}")

    return _from_bgr(bgr, ColorOrder.parse(color_order))


def load_image_from_bytes(
    image_bytes: bytes,
    color_order: ColorOrder = ColorOrder.RGB,
) -> PixelBuffer:
    """
    Decode image bytes as a PixelBuffer.

    Args:
        image_bytes: Raw image bytes (JPEG, PNG, etc.)
        color_order: Channel order of the returned buffer

    Returns:
        PixelBuffer with uint8 pixels [H, W, 3]

    Raises:
        DecodeError: If image cannot be decoded
    """
    if not image_bytes:
        raise DecodeError("Failed to decode image from bytes: empty input")

    nparr = np.frombuffer(image_bytes, np.uint8)
    bgr = cv2.imdecode(nparr, cv2.IMREAD_COLOR)

    if bgr is None:
        raise DecodeError("Failed to decode image from bytes")

    return _from_bgr(bgr, ColorOrder.parse(color_order))


# EXIF orientations that turn the image by 90 or 270 degrees on decode
_TRANSPOSING_ORIENTATIONS = (5, 6, 7, 8)
_EXIF_ORIENTATION = 0x0112


def read_image_shape(image_path: Union[str, Path]) -> ImageShape:
    """
    Read an image file's shape from its header without decoding pixels.

    Follows the EXIF orientation tag the way load_image does, so the
    result matches the shape of the decoded buffer.

    Args:
        image_path: Path to image file (JPEG, PNG, etc.)

    Returns:
        Resolved ImageShape (width, height, 3)

    Raises:
        DecodeError: If the file is missing or not a readable image
    """
    try:
        with Image.open(image_path) as image:
            width, height = image.size
            orientation = image.getexif().get(_EXIF_ORIENTATION)
    except (OSError, UnidentifiedImageError) as e:
        raise DecodeError(f"Failed to load image: {image_path}") from e

    if orientation in _TRANSPOSING_ORIENTATIONS:
        width, height = height, width

    return ImageShape(width, height, COLOR_CHANNELS)


def _from_pil(image: Image.Image, color_order: ColorOrder) -> PixelBuffer:
    try:
        rgb = np.asarray(image.convert("RGB"), dtype=np.uint8)
    except (OSError, UnidentifiedImageError) as e:
        raise DecodeError(f"Failed to decode PIL image: {e}") from e
    return PixelBuffer(rgb.copy(), ColorOrder.RGB).to_order(color_order)


def _from_array(array: np.ndarray, color_order: ColorOrder) -> PixelBuffer:
    if array.ndim == 2:
        array = np.repeat(array[:, :, np.newaxis], 3, axis=2)
    return PixelBuffer(array, ColorOrder.RGB).to_order(color_order)


def to_pixel_buffer(
    image: Any,
    color_order: ColorOrder = ColorOrder.RGB,
) -> PixelBuffer:
    """
    Adapt any supported image input to a PixelBuffer in color_order.

    Supported inputs:
        - PixelBuffer (reordered if needed)
        - numpy array, RGB [H, W, 3] or grayscale [H, W], uint8
        - PIL.Image.Image (any mode PIL can convert to RGB)
        - bytes / bytearray with an encoded image
        - str / Path pointing to an image file

    Args:
        image: Image input
        color_order: Channel order of the returned buffer

    Returns:
        PixelBuffer that does not alias the input

    Raises:
        DecodeError: If the input cannot be interpreted as a color image
    """
    color_order = ColorOrder.parse(color_order)

    if isinstance(image, PixelBuffer):
        return image.to_order(color_order)

    if isinstance(image, np.ndarray):
        return _from_array(image, color_order)

    if isinstance(image, Image.Image):
        return _from_pil(image, color_order)

    if isinstance(image, (bytes, bytearray)):
        return load_image_from_bytes(bytes(image), color_order)

    if isinstance(image, (str, Path)):
        return load_image(image, color_order)

    raise DecodeError(f"Unsupported image input type: {type(image)}")


def save_image(buffer: PixelBuffer, image_path: Union[str, Path]) -> Path:
    """
    Encode a PixelBuffer to disk.

    The format follows the file extension; parent directories are created.

    Args:
        buffer: Image to write
        image_path: Destination path (e.g. "out/sample.png")

    Returns:
        Path that was written

    Raises:
        OSError: If OpenCV fails to encode or write the file
    """
    image_path = Path(image_path)
    image_path.parent.mkdir(parents=True, exist_ok=True)

    bgr = buffer.to_order(ColorOrder.BGR).pixels
    if not cv2.imwrite(str(image_path), bgr):
        raise OSError(f"Failed to write image: {image_path}")

    return image_path
