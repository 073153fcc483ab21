"""
Pytest Fixtures - Shared Test Fixtures for imgprep

This module provides reusable fixtures for all test modules.

Fixtures:
    sample_image: Random RGB image (120x160) for testing
    sample_image_portrait: Random RGB image (160x120) for testing
    blue_red_image: 2x2 RGB image, blue at (0,0), red at (1,1), black elsewhere
    four_color_image: 2x2 RGB image, blue/green/red/green corners
    png_bytes: sample_image encoded as PNG
    image_dir: Directory holding three PNG files of one size

Coordinates in fixture descriptions are (x, y); arrays are indexed [y, x].

Author: Matthew Hong
"""

import io
from pathlib import Path

import numpy as np
import pytest
from PIL import Image


# =============================================================================
# Colors (RGB)
# =============================================================================

BLACK = (0, 0, 0)
BLUE = (0, 0, 255)
GREEN = (0, 255, 0)
RED = (255, 0, 0)


# =============================================================================
# Image Fixtures
# =============================================================================

@pytest.fixture
def sample_image() -> np.ndarray:
    """
    Sample RGB image for testing.

    Returns:
        RGB uint8 array with shape [120, 160, 3]
    """
    rng = np.random.default_rng(42)
    return rng.integers(0, 256, (120, 160, 3), dtype=np.uint8)


@pytest.fixture
def sample_image_portrait() -> np.ndarray:
    """
    Sample portrait RGB image for testing.

    Returns:
        RGB uint8 array with shape [160, 120, 3]
    """
    rng = np.random.default_rng(43)
    return rng.integers(0, 256, (160, 120, 3), dtype=np.uint8)


@pytest.fixture
def blue_red_image() -> np.ndarray:
    """
    2x2 RGB image: pixel (0,0) blue, pixel (1,1) red, others black.

    Returns:
        RGB uint8 array with shape [2, 2, 3]
    """
    image = np.zeros((2, 2, 3), dtype=np.uint8)
    image[0, 0] = BLUE
    image[1, 1] = RED
    return image


@pytest.fixture
def four_color_image() -> np.ndarray:
    """
    2x2 RGB image: (0,0) blue, (1,0) green, (1,1) red, (0,1) green.

    Returns:
        RGB uint8 array with shape [2, 2, 3]
    """
    image = np.zeros((2, 2, 3), dtype=np.uint8)
    image[0, 0] = BLUE
    image[0, 1] = GREEN
    image[1, 1] = RED
    image[1, 0] = GREEN
    return image


# =============================================================================
# Encoded Image Fixtures
# =============================================================================

@pytest.fixture
def png_bytes(sample_image: np.ndarray) -> bytes:
    """sample_image encoded as PNG bytes."""
    buffer = io.BytesIO()
    Image.fromarray(sample_image).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def image_dir(tmp_path: Path) -> Path:
    """
    Directory with three 8x6 PNG images (b.png, a.png, c.PNG) and a text file.

    Image i is filled with the gray level 10 * (i + 1).
    """
    directory = tmp_path / "images"
    directory.mkdir()
    for index, name in enumerate(["b.png", "a.png", "c.PNG"]):
        pixels = np.full((6, 8, 3), 10 * (index + 1), dtype=np.uint8)
        Image.fromarray(pixels).save(directory / name)
    (directory / "notes.txt").write_text("not an image")
    return directory
