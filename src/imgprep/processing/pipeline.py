"""
Preprocessing Pipeline

This module provides the Preprocessing class, which runs a fixed,
ordered sequence of stages over one image at a time, and the
PipelineBuilder used to assemble it.

Pipeline:
    1. Load the image into a PixelBuffer in the declared channel order
    2. Fold the image stages left to right (resize, crop, rotate, save)
    3. Convert to float32 [H, W, C]
    4. Fold the tensor stages left to right (rescale, normalize)
    5. Flatten row-major over (height, width, channels)

Element (y, x, c) of the result lives at offset
y * width * channels + x * channels + c.

Author: Matthew Hong
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, NamedTuple, Optional, Sequence, Tuple, Union

import numpy as np

from imgprep.config import PIPELINE_SECTIONS, load_pipeline_config, parse_pipeline_config
from imgprep.errors import InvalidArgument
from imgprep.logger import image_id_var, log_stage
from imgprep.processing.image import ColorOrder, ImageShape
from imgprep.processing.loader import to_pixel_buffer
from imgprep.processing.stages import (
    DEFAULT_COLOR_MODE,
    IMAGE_STAGES,
    TENSOR_STAGES,
    Crop,
    ImageTransform,
    Load,
    Normalize,
    Rescale,
    Resize,
    Rotate,
    Save,
    TensorTransform,
    parse_stage,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Data Classes
# =============================================================================

class PreprocessResult(NamedTuple):
    """
    Result of handling one image.

    Attributes:
        tensor: Flat float32 array, row-major over (height, width, channels)
        shape: Shape descriptor of the tensor
    """

    tensor: np.ndarray
    shape: ImageShape


@dataclass(frozen=True)
class PreprocessingConfig:
    """
    Immutable description of a pipeline.

    Attributes:
        load: Load stage (channel order)
        image_transforms: Image stages in execution order
        tensor_transforms: Tensor stages in execution order
    """

    load: Load = field(default_factory=Load)
    image_transforms: Tuple[ImageTransform, ...] = ()
    tensor_transforms: Tuple[TensorTransform, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "image_transforms", tuple(self.image_transforms))
        object.__setattr__(self, "tensor_transforms", tuple(self.tensor_transforms))

        for stage in self.image_transforms:
            if not isinstance(stage, ImageTransform):
                raise InvalidArgument(f"Not an image stage: {stage!r}")
        for stage in self.tensor_transforms:
            if not isinstance(stage, TensorTransform):
                raise InvalidArgument(f"Not a tensor stage: {stage!r}")

    @classmethod
    def from_dict(cls, config: Mapping[str, Any]) -> "PreprocessingConfig":
        """
        Build a config from its declarative form.

        Args:
            config: Mapping with optional "load", "transform_image" and
                "transform_tensor" sections

        Returns:
            Validated PreprocessingConfig

        Raises:
            InvalidArgument: If any section or stage is malformed

        Example:
            >>> config = PreprocessingConfig.from_dict({
            ...     "load": {"color_mode": "BGR"},
            ...     "transform_image": [{"crop": {"left": 1, "bottom": 1}}],
            ...     "transform_tensor": ["rescale"],
            ... })
            >>> config.load.color_mode
            <ColorOrder.BGR: 'BGR'>
        """
        if not isinstance(config, Mapping):
            raise InvalidArgument(
                f"Pipeline config must be a mapping, got {type(config).__name__}"
            )

        unknown = [key for key in config if key not in PIPELINE_SECTIONS]
        if unknown:
            raise InvalidArgument(
                f"Unknown pipeline sections: {unknown}. "
                f"Available sections: {list(PIPELINE_SECTIONS)}"
            )

        load_params = config.get("load")
        if load_params is not None and not isinstance(load_params, Mapping):
            raise InvalidArgument(f"'load' must be a mapping, got {load_params!r}")

        return cls(
            load=Load.from_dict(load_params),
            image_transforms=tuple(
                parse_stage(entry, IMAGE_STAGES)
                for entry in _section_list(config, "transform_image")
            ),
            tensor_transforms=tuple(
                parse_stage(entry, TENSOR_STAGES)
                for entry in _section_list(config, "transform_tensor")
            ),
        )

    def to_dict(self) -> dict:
        """Return the declarative form accepted by from_dict."""
        return {
            "load": self.load.to_dict()["load"],
            "transform_image": [stage.to_dict() for stage in self.image_transforms],
            "transform_tensor": [stage.to_dict() for stage in self.tensor_transforms],
        }


def _section_list(config: Mapping[str, Any], section: str) -> list:
    entries = config.get(section) or []
    if not isinstance(entries, (list, tuple)):
        raise InvalidArgument(f"'{section}' must be a list of stages, got {entries!r}")
    return list(entries)


# =============================================================================
# Pipeline
# =============================================================================

class Preprocessing:
    """
    Image preprocessing pipeline.

    Stateless across calls: each handle_image allocates its own buffers and
    the stage sequence cannot change after construction, so one instance
    can be shared between threads.

    Attributes:
        config: Immutable pipeline description

    Example:
        >>> pipeline = (
        ...     PipelineBuilder()
        ...     .load(color_mode="BGR")
        ...     .resize(output_width=4, output_height=4, interpolation="NEAREST")
        ...     .rescale()
        ...     .build()
        ... )
        >>> tensor, shape = pipeline.handle_image(np.zeros((2, 2, 3), np.uint8), "test")
        >>> shape
        ImageShape(width=4, height=4, channels=3)
        >>> tensor.shape
        (48,)
    """

    def __init__(self, config: Optional[PreprocessingConfig] = None) -> None:
        self._config = config if config is not None else PreprocessingConfig()
        logger.info(
            f"Built preprocessing pipeline: load({self.color_order.value}) -> "
            f"{[stage.kind for stage in self._config.image_transforms]} -> "
            f"{[stage.kind for stage in self._config.tensor_transforms]}"
        )

    @property
    def config(self) -> PreprocessingConfig:
        return self._config

    @property
    def color_order(self) -> ColorOrder:
        return self._config.load.color_mode

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "Preprocessing":
        """Build a pipeline from its declarative form (see PreprocessingConfig.from_dict)."""
        return cls(PreprocessingConfig.from_dict(config))

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "Preprocessing":
        """Build a pipeline from a YAML file."""
        return cls.from_config(load_pipeline_config(path))

    @classmethod
    def from_yaml_string(cls, text: str) -> "Preprocessing":
        """Build a pipeline from YAML text."""
        return cls.from_config(parse_pipeline_config(text))

    def __call__(self, image: Any, image_id: str = "image") -> PreprocessResult:
        return self.handle_image(image, image_id)

    def handle_image(self, image: Any, image_id: str = "image") -> PreprocessResult:
        """
        Run the full pipeline over one image.

        Args:
            image: Any input accepted by to_pixel_buffer (array, PIL image,
                bytes, path, PixelBuffer)
            image_id: Label used for logging and by the save stage

        Returns:
            PreprocessResult(tensor, shape)

        Raises:
            DecodeError: If the image cannot be loaded
            InvalidArgument: If a stage produces non-positive dimensions
        """
        token = image_id_var.set(image_id)
        try:
            t_start = time.perf_counter()

            with log_stage(logger, "load") as fields:
                buffer = to_pixel_buffer(image, self.color_order)
                fields["shape"] = _shape_list(buffer.shape)
                fields["color_order"] = buffer.color_order.value

            for stage in self._config.image_transforms:
                with log_stage(logger, stage.kind) as fields:
                    buffer = stage.apply(buffer, image_id)
                    fields["shape"] = _shape_list(buffer.shape)

            shape = buffer.shape
            array = buffer.pixels.astype(np.float32)

            for stage in self._config.tensor_transforms:
                with log_stage(logger, stage.kind):
                    array = stage.apply(array)

            tensor = np.ascontiguousarray(array, dtype=np.float32).reshape(-1)

            latency_ms = (time.perf_counter() - t_start) * 1000
            logger.debug(
                "Preprocessed image",
                extra={"shape": _shape_list(shape), "latency_ms": round(latency_ms, 3)},
            )

            return PreprocessResult(tensor=tensor, shape=shape)
        finally:
            image_id_var.reset(token)

    def handle_file(self, path: Union[str, Path]) -> PreprocessResult:
        """Run the pipeline over an image file, labelled with its file stem."""
        path = Path(path)
        return self.handle_image(path, path.stem)

    def final_shape(self, input_shape: Optional[ImageShape] = None) -> ImageShape:
        """
        Compute the output shape without touching any pixels.

        Unknown width/height (None) propagate until a resize fixes them.

        Args:
            input_shape: Shape of the image that will be fed in (default:
                fully unresolved)

        Returns:
            Shape of the tensor handle_image would return

        Raises:
            InvalidArgument: If a crop would empty a known dimension
        """
        shape = input_shape if input_shape is not None else ImageShape()
        for stage in self._config.image_transforms:
            shape = stage.output_shape(shape)
        return shape

    def preprocess_batch(
        self,
        images: Sequence[Any],
        image_ids: Optional[Iterable[str]] = None,
    ) -> Tuple[np.ndarray, ImageShape]:
        """
        Preprocess several images into one [N, elements] array.

        Args:
            images: Image inputs
            image_ids: Labels, one per image (default: "image-<index>")

        Returns:
            Tuple of (stacked tensors, shared shape)

        Raises:
            InvalidArgument: If images is empty or results differ in shape
        """
        if image_ids is None:
            image_ids = [f"image-{index}" for index in range(len(images))]
        image_ids = list(image_ids)

        if len(image_ids) != len(images):
            raise InvalidArgument(
                f"Got {len(images)} images but {len(image_ids)} ids"
            )

        if not images:
            raise InvalidArgument("Cannot preprocess an empty batch")

        results = [
            self.handle_image(image, image_id)
            for image, image_id in zip(images, image_ids)
        ]

        shape = results[0].shape
        for image_id, result in zip(image_ids, results):
            if result.shape != shape:
                raise InvalidArgument(
                    f"Image '{image_id}' has shape {result.shape}, expected {shape}; "
                    f"add a resize stage to batch images of different sizes"
                )

        return np.stack([result.tensor for result in results]), shape


def _shape_list(shape: ImageShape) -> list:
    return [shape.width, shape.height, shape.channels]


# =============================================================================
# Builder
# =============================================================================

class PipelineBuilder:
    """
    Fluent builder for Preprocessing.

    Image and tensor stages keep the order in which they are added. The
    builder validates every stage as it is added and produces an immutable
    pipeline on build().

    Example:
        >>> pipeline = (
        ...     PipelineBuilder()
        ...     .load(color_mode="BGR")
        ...     .crop(left=1, bottom=1)
        ...     .rescale()
        ...     .build()
        ... )
    """

    def __init__(self) -> None:
        self._load = Load()
        self._image_transforms: list[ImageTransform] = []
        self._tensor_transforms: list[TensorTransform] = []

    def load(self, color_mode: Union[ColorOrder, str] = DEFAULT_COLOR_MODE) -> "PipelineBuilder":
        self._load = Load(color_mode=color_mode)
        return self

    def add_image_transform(self, stage: ImageTransform) -> "PipelineBuilder":
        if not isinstance(stage, ImageTransform):
            raise InvalidArgument(f"Not an image stage: {stage!r}")
        self._image_transforms.append(stage)
        return self

    def add_tensor_transform(self, stage: TensorTransform) -> "PipelineBuilder":
        if not isinstance(stage, TensorTransform):
            raise InvalidArgument(f"Not a tensor stage: {stage!r}")
        self._tensor_transforms.append(stage)
        return self

    def resize(self, output_width: int, output_height: int, **kwargs: Any) -> "PipelineBuilder":
        return self.add_image_transform(Resize(output_width, output_height, **kwargs))

    def crop(self, left: int = 0, right: int = 0, top: int = 0, bottom: int = 0) -> "PipelineBuilder":
        return self.add_image_transform(Crop(left, right, top, bottom))

    def rotate(self, degrees: float, **kwargs: Any) -> "PipelineBuilder":
        return self.add_image_transform(Rotate(degrees, **kwargs))

    def save(self, dir_location: Union[str, Path], **kwargs: Any) -> "PipelineBuilder":
        return self.add_image_transform(Save(str(dir_location), **kwargs))

    def rescale(self, **kwargs: Any) -> "PipelineBuilder":
        return self.add_tensor_transform(Rescale(**kwargs))

    def normalize(self, **kwargs: Any) -> "PipelineBuilder":
        return self.add_tensor_transform(Normalize(**kwargs))

    def build(self) -> Preprocessing:
        config = PreprocessingConfig(
            load=self._load,
            image_transforms=tuple(self._image_transforms),
            tensor_transforms=tuple(self._tensor_transforms),
        )
        return Preprocessing(config)
