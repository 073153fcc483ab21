"""Image Folder Utilities.

This module turns a directory of image files into one preprocessed array,
one row per image, in filename order.

Classes:
    ImageFolder: Sorted listing of the image files in a directory
    PreprocessedFolder: Stacked tensors plus the ids and shared shape

Author: Matthew Hong
"""

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import numpy as np

from imgprep.config import get_default
from imgprep.processing.image import ImageShape
from imgprep.processing.pipeline import Preprocessing

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_EXTENSIONS: tuple[str, ...] = tuple(get_default("dataset", "extensions"))
"""File extensions treated as images (compared case-insensitively)."""


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class PreprocessedFolder:
    """Result of preprocessing every image in a folder.

    Attributes:
        tensors: float32 array [N, elements], row i belongs to ids[i]
        ids: Image ids (file stems), sorted by filename
        shape: Shape shared by every row
    """

    tensors: np.ndarray
    ids: list[str]
    shape: ImageShape

    def __len__(self) -> int:
        return len(self.ids)


# =============================================================================
# Image Folder
# =============================================================================

class ImageFolder:
    """Sorted listing of the image files in one directory.

    Attributes:
        directory: Directory to scan (not recursive)
        extensions: Lower-case file extensions to include

    Example:
        >>> folder = ImageFolder(Path("data/images"))
        >>> result = folder.preprocess(pipeline)
        >>> result.tensors.shape
        (12, 150528)
    """

    def __init__(
        self,
        directory: Path,
        extensions: Iterable[str] = DEFAULT_EXTENSIONS,
    ) -> None:
        self.directory = Path(directory)
        self.extensions = tuple(ext.lower() for ext in extensions)

        if not self.directory.is_dir():
            raise FileNotFoundError(f"Image directory not found: {self.directory}")

    def paths(self) -> list[Path]:
        """Get sorted list of image paths.

        Returns:
            List of Path objects, sorted by filename
        """
        return sorted(
            path
            for path in self.directory.iterdir()
            if path.is_file() and path.suffix.lower() in self.extensions
        )

    def __len__(self) -> int:
        return len(self.paths())

    def __iter__(self) -> Iterator[Path]:
        return iter(self.paths())

    def preprocess(self, pipeline: Preprocessing) -> PreprocessedFolder:
        """Run a pipeline over every image in the folder.

        Args:
            pipeline: Pipeline to apply; it must produce one shape for
                all images (typically by including a resize stage)

        Returns:
            PreprocessedFolder with one row per image

        Raises:
            InvalidArgument: If the folder is empty or shapes differ
            DecodeError: If an image file cannot be decoded
        """
        paths = self.paths()
        ids = [path.stem for path in paths]

        logger.info(f"Preprocessing {len(paths)} images from {self.directory}")

        tensors, shape = pipeline.preprocess_batch(paths, ids)

        return PreprocessedFolder(tensors=tensors, ids=ids, shape=shape)
