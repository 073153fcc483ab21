"""Structured JSON logging module.

This module provides JSON-formatted logging with image context tracking.
While a pipeline handles an image, its identifier is kept in a context
variable so every log line emitted by a stage carries it. log_stage times
one stage and reports its name, output shape and latency.

Author: Matthew Hong
"""

import json
import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

# Context variable for thread-safe image ID tracking
image_id_var: ContextVar[str | None] = ContextVar("image_id", default=None)

# Extra fields copied from log records into the JSON payload
EXTRA_FIELDS = (
    "stage",
    "shape",
    "color_order",
    "latency_ms",
    "status_code",
    "port",
    "endpoint",
)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Formats log records as JSON objects with standardized fields:
    - timestamp: ISO format timestamp
    - level: Log level (INFO, WARNING, ERROR, etc.)
    - logger: Logger name
    - message: Log message
    - image_id: Identifier of the image being processed, if any
    - stage, shape, color_order, latency_ms: Pipeline stage context
    - status_code, port, endpoint: Service request context
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON string representation
        """
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        image_id = image_id_var.get()
        if image_id:
            log_data["image_id"] = image_id

        for key in EXTRA_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = "INFO", json_format: bool = True) -> None:
    """Setup logging for the application.

    Configures the root logger with:
    - JSON formatter (or a plain one-line format)
    - StreamHandler to stdout
    - Specified log level

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_format: Emit JSON lines when True, plain text otherwise
    """
    handler = logging.StreamHandler(sys.stdout)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))
    root_logger.handlers.clear()
    root_logger.addHandler(handler)


@contextmanager
def log_stage(log: logging.Logger, stage: str) -> Iterator[dict[str, Any]]:
    """Time one pipeline stage and log it at DEBUG when it succeeds.

    Fields the caller adds to the yielded dict (typically the output
    shape) are logged alongside stage and latency_ms. Nothing is logged
    when the stage raises; the exception propagates unchanged.

    Args:
        log: Logger to emit the record on
        stage: Stage kind (e.g., "resize", "rescale")

    Yields:
        Mutable dict of extra fields for the log record

    Example:
        >>> with log_stage(logger, "crop") as fields:
        ...     buffer = stage.apply(buffer, image_id)
        ...     fields["shape"] = [buffer.width, buffer.height, 3]
    """
    fields: dict[str, Any] = {"stage": stage}
    t_start = time.perf_counter()

    yield fields

    fields["latency_ms"] = round((time.perf_counter() - t_start) * 1000, 3)
    log.debug(f"Applied {stage}", extra=fields)
