"""FastAPI routers for the encode, decode and size endpoints."""

from typing import Annotated, Callable

from fastapi import APIRouter, Depends

from encoding_gateway.backends.base import Backend
from encoding_gateway.backends.registry import BackendRegistry
from encoding_gateway.config import get_settings
from encoding_gateway.dependencies import get_backend_registry, get_request_id

from .schemas import (
    DataRequest,
    DecodeRequest,
    DecodeResponse,
    EncodeResponse,
    SizeResponse,
)
from .service import compute_size, decode_data, encode_data


def backend_dependency(format_name: str | None = None) -> Callable:
    """Build a dependency resolving the backend for a route.

    Args:
        format_name: Fixed format for the route; ``DEFAULT_FORMAT`` when None.
    """

    async def get_backend(
        registry: Annotated[BackendRegistry, Depends(get_backend_registry)],
    ) -> Backend:
        return registry.get(format_name or get_settings().DEFAULT_FORMAT)

    return get_backend


def create_router(format_name: str | None = None) -> APIRouter:
    """Create the three gateway endpoints for one format.

    Args:
        format_name: Format served under ``/<format_name>``; when None the
            routes are mounted at the root and use ``DEFAULT_FORMAT``.
    """
    router = APIRouter(
        prefix=f"/{format_name}" if format_name else "",
        tags=[format_name or "default"],
    )
    get_backend = backend_dependency(format_name)

    @router.post("/calculate-size", response_model=SizeResponse)
    async def calculate_size_endpoint(
        request: DataRequest,
        backend: Annotated[Backend, Depends(get_backend)],
        request_id: Annotated[str, Depends(get_request_id)],
    ) -> SizeResponse:
        """Return the encoded size of ``data`` in bytes."""
        return await compute_size(backend, request, request_id=request_id)

    @router.post("/encode", response_model=EncodeResponse)
    async def encode_endpoint(
        request: DataRequest,
        backend: Annotated[Backend, Depends(get_backend)],
        request_id: Annotated[str, Depends(get_request_id)],
    ) -> EncodeResponse:
        """Encode ``data`` and return the bytes as base64."""
        return await encode_data(backend, request, request_id=request_id)

    @router.post("/decode", response_model=DecodeResponse)
    async def decode_endpoint(
        request: DecodeRequest,
        backend: Annotated[Backend, Depends(get_backend)],
        request_id: Annotated[str, Depends(get_request_id)],
    ) -> DecodeResponse:
        """Decode base64 ``encodedData`` back into structured data."""
        return await decode_data(backend, request, request_id=request_id)

    return router
