from contextlib import asynccontextmanager
from pathlib import Path

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse

from .audit import configure_logging
from .backends.registry import BackendRegistry
from .config import get_settings
from .gateway.exceptions import EncodingGatewayError, InvalidRequestError
from .gateway.router import create_router
from .middleware import MaxBodySizeMiddleware

STATIC_DIR = Path(__file__).parent / "static"

logger = structlog.get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, json_output=not settings.DEBUG)
    logger.info(
        "startup",
        app=settings.APP_NAME,
        port=settings.PORT,
        default_format=settings.DEFAULT_FORMAT,
        formats=app.state.backends.names(),
    )

    yield

    logger.info("shutdown", app=settings.APP_NAME)


def error_response(exc: EncodingGatewayError) -> JSONResponse:
    """Render an error as ``{"error", "kind"}``.

    Errors are reported with status 200 unless ``STRICT_HTTP_STATUS`` is set.
    """
    settings = get_settings()
    return JSONResponse(
        status_code=exc.status_code if settings.STRICT_HTTP_STATUS else 200,
        content=exc.to_dict(),
    )


def describe_validation_errors(errors: list[dict]) -> str:
    parts = []
    for error in errors:
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts) or "Invalid request body"


def create_app() -> FastAPI:
    """Create the FastAPI application with one router per enabled format."""
    settings = get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Compare Protocol Buffers, Thrift and Avro encodings of the same data",
        lifespan=lifespan,
        debug=settings.DEBUG,
    )
    app.state.backends = BackendRegistry.from_settings(settings)
    app.add_middleware(MaxBodySizeMiddleware, max_body_size=settings.MAX_BODY_BYTES)

    @app.exception_handler(EncodingGatewayError)
    async def gateway_exception_handler(request: Request, exc: EncodingGatewayError):
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return error_response(InvalidRequestError(describe_validation_errors(exc.errors())))

    @app.get("/health")
    async def health_check():
        return {
            "status": "ok",
            "app": settings.APP_NAME,
            "formats": app.state.backends.names(),
        }

    @app.get("/", include_in_schema=False)
    async def index():
        return FileResponse(STATIC_DIR / "index.html")

    # Include routers
    app.include_router(create_router())
    for format_name in app.state.backends.names():
        app.include_router(create_router(format_name))

    return app


app = create_app()
