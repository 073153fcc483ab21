"""FastAPI application for the preprocessing service.

This module provides the HTTP API around one configured pipeline:
- POST /preprocess: Preprocess an uploaded image
- GET /pipeline: Declarative form of the loaded pipeline
- GET /health: Service health check

The pipeline is built on startup from the YAML file named by the
PIPELINE_CONFIG setting, or is a rescale-only pipeline when unset.

Author: Matthew Hong
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, File, Form, HTTPException, UploadFile

from imgprep.config import get_settings
from imgprep.errors import DecodeError, InvalidArgument
from imgprep.logger import image_id_var, setup_logging
from imgprep.processing.pipeline import PipelineBuilder, Preprocessing
from imgprep.service.models import (
    HealthResponse,
    PipelineResponse,
    PreprocessResponse,
    ShapeModel,
)

# Global pipeline (initialized during lifespan)
pipeline: Preprocessing | None = None
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Handles startup and shutdown:
    - Startup: Setup logging, build the pipeline from PIPELINE_CONFIG
    - Shutdown: Drop the pipeline

    Args:
        app: FastAPI application instance
    """
    global pipeline
    settings = get_settings()

    setup_logging(settings.LOG_LEVEL, settings.LOG_JSON)
    logger.info("Starting preprocessing service", extra={"port": settings.PORT})

    if settings.PIPELINE_CONFIG:
        logger.info(f"Loading pipeline from {settings.PIPELINE_CONFIG}")
        pipeline = Preprocessing.from_yaml(settings.PIPELINE_CONFIG)
    else:
        logger.info("PIPELINE_CONFIG not set, using rescale-only pipeline")
        pipeline = PipelineBuilder().rescale().build()

    logger.info("Service ready for requests")

    yield

    logger.info("Shutting down preprocessing service")
    pipeline = None


app = FastAPI(
    title="Image Preprocessing Service",
    description="Declarative image preprocessing into flat float32 tensors",
    version="0.1.0",
    lifespan=lifespan,
)


@app.post("/preprocess", response_model=PreprocessResponse)
async def preprocess(
    file: UploadFile = File(...),
    image_id: str | None = Form(None),
):
    """Preprocess an uploaded image.

    Args:
        file: Uploaded image file (JPEG, PNG, etc.)
        image_id: Optional label; a UUID is generated when omitted

    Returns:
        PreprocessResponse with shape, tensor and timing

    Raises:
        HTTPException: 503 if not ready, 400 for undecodable images,
            422 for stage parameters the image cannot satisfy
    """
    image_id = image_id or str(uuid.uuid4())
    image_id_var.set(image_id)

    logger.info("Received preprocess request", extra={"endpoint": "/preprocess"})

    if pipeline is None:
        logger.error("Pipeline not initialized", extra={"endpoint": "/preprocess"})
        raise HTTPException(status_code=503, detail="Service not ready")

    image_bytes = await file.read()

    t_start = time.perf_counter()
    try:
        tensor, shape = pipeline.handle_image(image_bytes, image_id)
    except DecodeError as e:
        logger.warning(
            f"Preprocess rejected: {e}",
            extra={"endpoint": "/preprocess", "status_code": 400},
        )
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidArgument as e:
        logger.warning(
            f"Preprocess rejected: {e}",
            extra={"endpoint": "/preprocess", "status_code": 422},
        )
        raise HTTPException(status_code=422, detail=str(e))
    total_ms = (time.perf_counter() - t_start) * 1000

    logger.info(
        "Preprocess complete",
        extra={
            "endpoint": "/preprocess",
            "latency_ms": round(total_ms, 3),
            "status_code": 200,
        },
    )

    return PreprocessResponse(
        image_id=image_id,
        color_order=pipeline.color_order.value,
        shape=ShapeModel(width=shape.width, height=shape.height, channels=shape.channels),
        tensor=tensor.tolist(),
        timing={"total_ms": total_ms},
    )


@app.get("/pipeline", response_model=PipelineResponse)
async def pipeline_config():
    """Return the declarative form of the loaded pipeline."""
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Service not ready")

    return PipelineResponse(config=pipeline.config.to_dict())


@app.get("/health", response_model=HealthResponse)
async def health():
    """Health check endpoint.

    Returns:
        HealthResponse indicating service health and pipeline status
    """
    return HealthResponse(
        status="healthy",
        pipeline_loaded=pipeline is not None,
    )


def run() -> None:
    """Serve the app with uvicorn on the configured port."""
    settings = get_settings()
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
