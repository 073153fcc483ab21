"""Data Module - Preprocessing Image Folders.

This module provides:
- folder: list the images of a directory and run a pipeline over all of them
"""

from imgprep.data.folder import DEFAULT_EXTENSIONS, ImageFolder, PreprocessedFolder

__all__ = [
    "ImageFolder",
    "PreprocessedFolder",
    "DEFAULT_EXTENSIONS",
]
