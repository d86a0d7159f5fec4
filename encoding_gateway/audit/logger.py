"""Structured logging for gateway operations."""

import logging
import time
from contextlib import asynccontextmanager
from enum import Enum
from typing import AsyncGenerator

import structlog

# Configure structured logger
logger = structlog.get_logger("audit")


class OperationStatus(str, Enum):
    """Outcome of a gateway operation."""

    success = "success"
    error = "error"


def configure_logging(level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog for the service.

    Args:
        level: Minimum level name to emit.
        json_output: Render JSON lines; otherwise use the console renderer.
    """
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        cache_logger_on_first_use=False,
    )


class OperationContext:
    """Tracks timing and outcome of one encode/decode/size operation.

    Attributes:
        request_id: Correlation ID for tracing.
        format_name: Backend serving the request.
        operation: Which operation is running.
        type_name: Resolved schema type, once known.
        size_bytes: Size of the encoded payload, once known.
        status: Final status of the operation.
        error_code: Error kind if failed.
    """

    def __init__(self, request_id: str, format_name: str, operation: str) -> None:
        self.request_id = request_id
        self.format_name = format_name
        self.operation = operation
        self.type_name: str | None = None
        self.size_bytes: int | None = None
        self.start_time = time.perf_counter()
        self.status = OperationStatus.success
        self.error_code: str | None = None

    def mark_error(self, error_code: str) -> None:
        """Mark the operation as failed with an error kind."""
        self.status = OperationStatus.error
        self.error_code = error_code

    @property
    def duration_ms(self) -> int:
        """Calculate duration in milliseconds."""
        elapsed = time.perf_counter() - self.start_time
        return int(elapsed * 1000)


def log_operation(context: OperationContext) -> None:
    """Emit the ``encoding_operation`` event for a finished operation."""
    log = logger.info if context.status is OperationStatus.success else logger.warning
    log(
        "encoding_operation",
        request_id=context.request_id,
        format=context.format_name,
        operation=context.operation,
        type_name=context.type_name,
        status=context.status.value,
        duration_ms=context.duration_ms,
        size_bytes=context.size_bytes,
        error_code=context.error_code,
    )


@asynccontextmanager
async def audit_operation(
    request_id: str,
    format_name: str,
    operation: str,
) -> AsyncGenerator[OperationContext, None]:
    """Context manager that logs an operation when it exits.

    Example:
        async with audit_operation(req_id, "avro", "encode") as ctx:
            try:
                payload = await encode()
            except EncodingGatewayError as e:
                ctx.mark_error(e.code)
                raise
    """
    context = OperationContext(request_id, format_name, operation)
    try:
        yield context
    finally:
        log_operation(context)
