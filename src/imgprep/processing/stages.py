"""
Pipeline Stages

Immutable, validated descriptions of each configurable pipeline step.
Every stage is a frozen dataclass tagged with a ``kind`` name; the kind
is the key used in declarative pipeline configs.

Image stages (operate on PixelBuffer):
    Resize, Crop, Rotate, Save

Tensor stages (operate on float32 [H, W, C] arrays):
    Rescale, Normalize

Load is the mandatory first stage and only fixes the channel order.

Author: Matthew Hong
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple, Type

import numpy as np

from imgprep.config import get_default
from imgprep.errors import InvalidArgument
from imgprep.processing import transforms
from imgprep.processing.image import COLOR_CHANNELS, ColorOrder, ImageShape, PixelBuffer
from imgprep.processing.loader import save_image
from imgprep.processing.transforms import Interpolation

logger = logging.getLogger(__name__)


# =============================================================================
# Constants (Loaded from defaults.yaml)
# =============================================================================

DEFAULT_COLOR_MODE: ColorOrder = ColorOrder.parse(get_default("load", "color_mode"))
"""Channel order used when a pipeline does not declare one."""

DEFAULT_RESIZE_INTERPOLATION: Interpolation = Interpolation.parse(
    get_default("resize", "interpolation")
)

DEFAULT_ROTATE_INTERPOLATION: Interpolation = Interpolation.parse(
    get_default("rotate", "interpolation")
)

DEFAULT_SAVE_EXTENSION: str = get_default("save", "extension")

DEFAULT_SCALING_FACTOR: float = float(get_default("rescale", "scaling_factor"))
"""Divisor mapping [0, 255] samples to [0, 1]."""

DEFAULT_MEAN: Tuple[float, ...] = tuple(get_default("normalize", "mean"))
DEFAULT_STD: Tuple[float, ...] = tuple(get_default("normalize", "std"))


# =============================================================================
# Base Classes
# =============================================================================

class Stage(ABC):
    """Common behaviour of every stage: a kind tag and dict construction."""

    kind: ClassVar[str]

    @classmethod
    def from_dict(cls, params: Optional[Mapping[str, Any]]) -> "Stage":
        """
        Build a stage from its declarative parameters.

        Args:
            params: Parameter mapping (None or empty for all defaults)

        Returns:
            Validated stage instance

        Raises:
            InvalidArgument: If a parameter name is unknown
        """
        params = dict(params or {})
        allowed = {f.name for f in fields(cls)}
        unknown = sorted(set(params) - allowed)
        if unknown:
            raise InvalidArgument(
                f"Unknown {cls.kind} parameters: {unknown}. "
                f"Available parameters: {sorted(allowed)}"
            )
        try:
            return cls(**params)
        except TypeError as e:
            raise InvalidArgument(f"Invalid {cls.kind} parameters: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        """Return the declarative form {kind: params}."""
        params = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, (ColorOrder, Interpolation)):
                value = value.value
            elif isinstance(value, tuple):
                value = list(value)
            params[f.name] = value
        return {self.kind: params}


class ImageTransform(Stage):
    """Stage that maps a PixelBuffer to a new PixelBuffer."""

    @abstractmethod
    def apply(self, buffer: PixelBuffer, image_id: str) -> PixelBuffer:
        ...

    @abstractmethod
    def output_shape(self, shape: ImageShape) -> ImageShape:
        """Shape this stage produces for an input of the given shape."""


class TensorTransform(Stage):
    """Stage that maps a float32 [H, W, C] array to a new array of the same shape."""

    @abstractmethod
    def apply(self, array: np.ndarray) -> np.ndarray:
        ...


def _require_int(kind: str, name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise InvalidArgument(f"{kind}.{name} must be an integer, got {value!r}")
    return int(value)


def _require_number(kind: str, name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, np.integer, np.floating)):
        raise InvalidArgument(f"{kind}.{name} must be a number, got {value!r}")
    return float(value)


def _require_channel_values(kind: str, name: str, values: Any) -> Tuple[float, ...]:
    if isinstance(values, (str, bytes)) or not isinstance(values, (list, tuple, np.ndarray)):
        raise InvalidArgument(f"{kind}.{name} must be a list of numbers, got {values!r}")
    values = tuple(_require_number(kind, name, v) for v in values)
    if len(values) != COLOR_CHANNELS:
        raise InvalidArgument(
            f"{kind}.{name} needs one value per channel ({COLOR_CHANNELS}), got {len(values)}"
        )
    return values


# =============================================================================
# Load
# =============================================================================

@dataclass(frozen=True)
class Load(Stage):
    """
    Fixes the channel order images are loaded into.

    Attributes:
        color_mode: RGB or BGR
    """

    kind: ClassVar[str] = "load"

    color_mode: ColorOrder = DEFAULT_COLOR_MODE

    def __post_init__(self) -> None:
        object.__setattr__(self, "color_mode", ColorOrder.parse(self.color_mode))


# =============================================================================
# Image Stages
# =============================================================================

@dataclass(frozen=True)
class Resize(ImageTransform):
    """
    Resize to an exact output size.

    Attributes:
        output_width: Target width (> 0)
        output_height: Target height (> 0)
        interpolation: Sampling policy
    """

    kind: ClassVar[str] = "resize"

    output_width: int
    output_height: int
    interpolation: Interpolation = DEFAULT_RESIZE_INTERPOLATION

    def __post_init__(self) -> None:
        width = _require_int(self.kind, "output_width", self.output_width)
        height = _require_int(self.kind, "output_height", self.output_height)
        if width <= 0 or height <= 0:
            raise InvalidArgument(
                f"Resize target must be positive, got {width}x{height}"
            )
        object.__setattr__(self, "output_width", width)
        object.__setattr__(self, "output_height", height)
        object.__setattr__(self, "interpolation", Interpolation.parse(self.interpolation))

    def apply(self, buffer: PixelBuffer, image_id: str) -> PixelBuffer:
        pixels = transforms.resize(
            buffer.pixels, self.output_width, self.output_height, self.interpolation
        )
        return PixelBuffer(pixels, buffer.color_order)

    def output_shape(self, shape: ImageShape) -> ImageShape:
        return ImageShape(self.output_width, self.output_height, shape.channels)


@dataclass(frozen=True)
class Crop(ImageTransform):
    """
    Remove margins from each edge.

    Attributes:
        left, right, top, bottom: Pixels to remove (>= 0)
    """

    kind: ClassVar[str] = "crop"

    left: int = 0
    right: int = 0
    top: int = 0
    bottom: int = 0

    def __post_init__(self) -> None:
        for name in ("left", "right", "top", "bottom"):
            value = _require_int(self.kind, name, getattr(self, name))
            if value < 0:
                raise InvalidArgument(f"Crop {name} must be >= 0, got {value}")
            object.__setattr__(self, name, value)

    def apply(self, buffer: PixelBuffer, image_id: str) -> PixelBuffer:
        pixels = transforms.crop(
            buffer.pixels, self.left, self.right, self.top, self.bottom
        )
        return PixelBuffer(pixels, buffer.color_order)

    def output_shape(self, shape: ImageShape) -> ImageShape:
        width = shape.width
        height = shape.height
        if width is not None:
            width -= self.left + self.right
        if height is not None:
            height -= self.top + self.bottom
        if (width is not None and width <= 0) or (height is not None and height <= 0):
            raise InvalidArgument(
                f"Crop of {shape.width}x{shape.height} by (left={self.left}, "
                f"right={self.right}, top={self.top}, bottom={self.bottom}) "
                f"leaves {width}x{height}"
            )
        return ImageShape(width, height, shape.channels)


@dataclass(frozen=True)
class Rotate(ImageTransform):
    """
    Rotate clockwise by degrees.

    Attributes:
        degrees: Clockwise angle
        interpolation: Sampling policy for angles that are not multiples of 90
    """

    kind: ClassVar[str] = "rotate"

    degrees: float = 0.0
    interpolation: Interpolation = DEFAULT_ROTATE_INTERPOLATION

    def __post_init__(self) -> None:
        object.__setattr__(self, "degrees", _require_number(self.kind, "degrees", self.degrees))
        object.__setattr__(self, "interpolation", Interpolation.parse(self.interpolation))

    @property
    def swaps_axes(self) -> bool:
        """True for rotations of 90 or 270 degrees."""
        quarter_turns = round((self.degrees % 360.0) / 90.0)
        right_angle = np.isclose(self.degrees % 90.0, 0.0) or np.isclose(
            self.degrees % 90.0, 90.0
        )
        return bool(right_angle and quarter_turns % 2 == 1)

    def apply(self, buffer: PixelBuffer, image_id: str) -> PixelBuffer:
        pixels = transforms.rotate(buffer.pixels, self.degrees, self.interpolation)
        return PixelBuffer(pixels, buffer.color_order)

    def output_shape(self, shape: ImageShape) -> ImageShape:
        if self.swaps_axes:
            return ImageShape(shape.height, shape.width, shape.channels)
        return shape


@dataclass(frozen=True)
class Save(ImageTransform):
    """
    Write the current image to <dir_location>/<image_id><extension>.

    The buffer passes through unchanged.

    Attributes:
        dir_location: Output directory, created on demand
        extension: File extension selecting the encoder
    """

    kind: ClassVar[str] = "save"

    dir_location: str
    extension: str = DEFAULT_SAVE_EXTENSION

    def __post_init__(self) -> None:
        if not isinstance(self.dir_location, (str, Path)) or not str(self.dir_location):
            raise InvalidArgument(
                f"save.dir_location must be a non-empty path, got {self.dir_location!r}"
            )
        object.__setattr__(self, "dir_location", str(self.dir_location))
        if not isinstance(self.extension, str) or self.extension.strip(".") == "":
            raise InvalidArgument(
                f"save.extension must be a non-empty string, got {self.extension!r}"
            )
        if not self.extension.startswith("."):
            object.__setattr__(self, "extension", f".{self.extension}")

    def target_path(self, image_id: str) -> Path:
        """
        Path the image with this id is written to.

        Raises:
            InvalidArgument: If the id is empty, contains a path separator
                or would place the file outside dir_location
        """
        if image_id in ("", ".", "..") or "/" in image_id or "\\" in image_id:
            raise InvalidArgument(
                f"Cannot save image with id {image_id!r}: not a plain file name"
            )

        directory = Path(self.dir_location).resolve()
        path = (directory / f"{image_id}{self.extension}").resolve()
        if path.parent != directory:
            raise InvalidArgument(f"Cannot save image with id {image_id!r} outside {directory}")
        return path

    def apply(self, buffer: PixelBuffer, image_id: str) -> PixelBuffer:
        path = self.target_path(image_id)
        save_image(buffer, path)
        logger.debug(f"Saved intermediate image to {path}", extra={"stage": self.kind})
        return buffer

    def output_shape(self, shape: ImageShape) -> ImageShape:
        return shape


# =============================================================================
# Tensor Stages
# =============================================================================

@dataclass(frozen=True)
class Rescale(TensorTransform):
    """
    Divide every sample by scaling_factor.

    Attributes:
        scaling_factor: Non-zero divisor (default: 255.0)
    """

    kind: ClassVar[str] = "rescale"

    scaling_factor: float = DEFAULT_SCALING_FACTOR

    def __post_init__(self) -> None:
        scaling_factor = _require_number(self.kind, "scaling_factor", self.scaling_factor)
        if scaling_factor == 0:
            raise InvalidArgument("Rescale scaling_factor must be non-zero")
        object.__setattr__(self, "scaling_factor", scaling_factor)

    def apply(self, array: np.ndarray) -> np.ndarray:
        return transforms.rescale(array, self.scaling_factor)


@dataclass(frozen=True)
class Normalize(TensorTransform):
    """
    Per-channel (value - mean) / std.

    Mean and std hold one value per channel, given in the pipeline's
    channel order.

    Attributes:
        mean: Channel means (default: ImageNet, RGB order)
        std: Channel standard deviations (default: ImageNet, RGB order)
    """

    kind: ClassVar[str] = "normalize"

    mean: Tuple[float, ...] = field(default=DEFAULT_MEAN)
    std: Tuple[float, ...] = field(default=DEFAULT_STD)

    def __post_init__(self) -> None:
        mean = _require_channel_values(self.kind, "mean", self.mean)
        std = _require_channel_values(self.kind, "std", self.std)
        if any(v == 0 for v in std):
            raise InvalidArgument(f"Normalize std must be non-zero, got {list(std)}")
        object.__setattr__(self, "mean", mean)
        object.__setattr__(self, "std", std)

    def apply(self, array: np.ndarray) -> np.ndarray:
        return transforms.normalize(array, self.mean, self.std)


# =============================================================================
# Registry
# =============================================================================

IMAGE_STAGES: Dict[str, Type[ImageTransform]] = {
    stage.kind: stage for stage in (Resize, Crop, Rotate, Save)
}

TENSOR_STAGES: Dict[str, Type[TensorTransform]] = {
    stage.kind: stage for stage in (Rescale, Normalize)
}


def parse_stage(entry: Any, registry: Mapping[str, Type[Stage]]) -> Stage:
    """
    Parse one declarative stage entry of the form {kind: params}.

    Args:
        entry: Single-key mapping, or a bare kind name for all defaults
        registry: Kind -> stage class mapping to resolve against

    Returns:
        Validated stage instance

    Raises:
        InvalidArgument: If the entry is malformed or its kind unknown

    Example:
        >>> parse_stage({"crop": {"left": 1}}, IMAGE_STAGES)
        Crop(left=1, right=0, top=0, bottom=0)
    """
    if isinstance(entry, str):
        entry = {entry: None}

    if not isinstance(entry, Mapping) or len(entry) != 1:
        raise InvalidArgument(
            f"Stage entry must be a single-key mapping {{kind: params}}, got {entry!r}"
        )

    kind, params = next(iter(entry.items()))

    if kind not in registry:
        raise InvalidArgument(
            f"Unknown stage '{kind}'. Available stages: {list(registry.keys())}"
        )

    if params is not None and not isinstance(params, Mapping):
        raise InvalidArgument(f"Parameters of '{kind}' must be a mapping, got {params!r}")

    return registry[kind].from_dict(params)
