"""Global dependencies for the application."""

from typing import Annotated

from fastapi import Header, Request

from encoding_gateway.backends.registry import BackendRegistry
from encoding_gateway.gateway.service import generate_request_id


async def get_backend_registry(request: Request) -> BackendRegistry:
    """Dependency to get the backend registry built in ``create_app``.

    Args:
        request: The FastAPI request object.

    Returns:
        The application's BackendRegistry.
    """
    return request.app.state.backends


async def get_request_id(x_request_id: Annotated[str | None, Header()] = None) -> str:
    """Use the caller's ``X-Request-ID`` or generate one."""
    return x_request_id or generate_request_id()
