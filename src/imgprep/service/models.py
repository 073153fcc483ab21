"""Pydantic models for API request/response schemas.

This module defines the data models for the preprocessing service API.

Author: Matthew Hong
"""

from typing import Any

from pydantic import BaseModel, Field


class ShapeModel(BaseModel):
    """Shape of a preprocessed tensor.

    Attributes:
        width: Image width in pixels
        height: Image height in pixels
        channels: Channels per pixel
    """

    width: int
    height: int
    channels: int


class PreprocessResponse(BaseModel):
    """Response model for /preprocess endpoint.

    Attributes:
        image_id: Identifier the image was processed under
        color_order: Channel order of the tensor (RGB or BGR)
        shape: Tensor shape descriptor
        tensor: Flat tensor, row-major over (height, width, channels)
        timing: Performance timing (total_ms)
    """

    image_id: str
    color_order: str
    shape: ShapeModel
    tensor: list[float]
    timing: dict[str, float] = Field(
        description="Performance timing breakdown in milliseconds"
    )


class PipelineResponse(BaseModel):
    """Response model for /pipeline endpoint.

    Attributes:
        config: Declarative form of the loaded pipeline
    """

    config: dict[str, Any]


class HealthResponse(BaseModel):
    """Response model for /health endpoint.

    Attributes:
        status: Service health status
        pipeline_loaded: Whether the pipeline is built and ready
    """

    status: str = "healthy"
    pipeline_loaded: bool
