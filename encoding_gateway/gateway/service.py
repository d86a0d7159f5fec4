"""Service layer for the Encoding Gateway.

Each operation runs the same three stages: resolve the type from the schema,
validate/transform the payload, run the codec. Nothing is shared between
requests; file-based backends get a scratch workspace that is removed when
the operation finishes, whatever the outcome.
"""

import base64
import binascii
import uuid
from contextlib import asynccontextmanager, nullcontext
from typing import Any, AsyncGenerator

from anyio import fail_after
from anyio.to_thread import run_sync

from encoding_gateway.audit import audit_operation
from encoding_gateway.backends.base import Backend, TypeDescriptor
from encoding_gateway.backends.workspace import scratch_workspace
from encoding_gateway.config import get_settings

from .exceptions import DecodeError, EncodingGatewayError, MissingFieldError, SchemaParseError
from .schemas import DataRequest, DecodeRequest, DecodeResponse, EncodeResponse, SizeResponse

TYPE_KEY = "__type__"


def generate_request_id() -> str:
    """Generate a unique request ID for tracing."""
    return str(uuid.uuid4())


def _require_schema(request: DataRequest | DecodeRequest) -> str:
    if request.schema_text is None or not request.schema_text.strip():
        raise MissingFieldError("schema")
    return request.schema_text


def split_payload(request: DataRequest) -> tuple[dict[str, Any], str | None]:
    """Separate the payload from the type selector.

    The ``__type__`` key is stripped from the data; it selects the type only
    when ``typeName`` is not given.

    Raises:
        MissingFieldError: If ``data`` is absent.
    """
    if request.data is None:
        raise MissingFieldError("data")
    data = dict(request.data)
    embedded_type = data.pop(TYPE_KEY, None)
    type_name = request.type_name or (embedded_type if isinstance(embedded_type, str) else None)
    return data, type_name


@asynccontextmanager
async def resolve_type(
    backend: Backend,
    schema_text: str,
    type_name: str | None,
    timeout: float | None = None,
    scratch_dir: str | None = None,
) -> AsyncGenerator[TypeDescriptor, None]:
    """Parse the schema and yield the resolved type descriptor.

    The scratch workspace, when the backend needs one, lives until the
    caller leaves the context.

    Raises:
        SchemaParseError: If parsing fails or exceeds ``timeout``.
        BackendUnavailableError: If the backend's tooling cannot run.
    """
    settings = get_settings()
    if timeout is None:
        timeout = settings.SCHEMA_COMPILE_TIMEOUT_SECONDS
    if scratch_dir is None:
        scratch_dir = settings.SCRATCH_DIR

    workspace_cm = scratch_workspace(scratch_dir) if backend.needs_workspace else nullcontext()
    with workspace_cm as workspace:
        try:
            with fail_after(timeout):
                descriptor = await backend.parse_schema(schema_text, type_name, workspace)
        except TimeoutError:
            raise SchemaParseError(
                backend.name, f"Schema compilation timed out after {timeout}s"
            )
        yield descriptor


def _encode(backend: Backend, descriptor: TypeDescriptor, data: dict[str, Any]) -> bytes:
    value = backend.validate(descriptor, data)
    return backend.encode(descriptor, value)


def _size(backend: Backend, descriptor: TypeDescriptor, data: dict[str, Any]) -> int:
    value = backend.validate(descriptor, data)
    return backend.size_of(descriptor, value)


def decode_base64(encoded_data: str, format_name: str) -> bytes:
    """Decode the caller's base64 text.

    Raises:
        DecodeError: If the text is not valid base64.
    """
    try:
        return base64.b64decode(encoded_data, validate=True)
    except (binascii.Error, ValueError):
        raise DecodeError(format_name, "encodedData is not valid base64")


async def compute_size(
    backend: Backend,
    request: DataRequest,
    request_id: str | None = None,
) -> SizeResponse:
    """Encoded size of ``request.data`` under ``request.schema``.

    Raises:
        MissingFieldError: If ``schema`` or ``data`` is absent.
        SchemaParseError: If the schema is invalid.
        ValidationError: If the data does not conform.
        EncodeError: If the codec rejects validated data.
    """
    async with audit_operation(request_id or generate_request_id(), backend.name, "size") as ctx:
        try:
            schema_text = _require_schema(request)
            data, type_name = split_payload(request)
            async with resolve_type(backend, schema_text, type_name) as descriptor:
                ctx.type_name = descriptor.type_name
                size = await run_sync(_size, backend, descriptor, data)
            ctx.size_bytes = size
            return SizeResponse(size=size)
        except EncodingGatewayError as e:
            ctx.mark_error(e.code)
            raise


async def encode_data(
    backend: Backend,
    request: DataRequest,
    request_id: str | None = None,
) -> EncodeResponse:
    """Encode ``request.data`` and return it as base64 text.

    Raises:
        MissingFieldError: If ``schema`` or ``data`` is absent.
        SchemaParseError: If the schema is invalid.
        ValidationError: If the data does not conform.
        EncodeError: If the codec rejects validated data.
    """
    async with audit_operation(request_id or generate_request_id(), backend.name, "encode") as ctx:
        try:
            schema_text = _require_schema(request)
            data, type_name = split_payload(request)
            async with resolve_type(backend, schema_text, type_name) as descriptor:
                ctx.type_name = descriptor.type_name
                payload = await run_sync(_encode, backend, descriptor, data)
            ctx.size_bytes = len(payload)
            return EncodeResponse(encoded_data=base64.b64encode(payload).decode("ascii"))
        except EncodingGatewayError as e:
            ctx.mark_error(e.code)
            raise


async def decode_data(
    backend: Backend,
    request: DecodeRequest,
    request_id: str | None = None,
) -> DecodeResponse:
    """Decode base64 ``request.encoded_data`` into a normalized value.

    Raises:
        MissingFieldError: If ``schema`` or ``encodedData`` is absent.
        SchemaParseError: If the schema is invalid.
        DecodeError: If the bytes do not match the schema.
    """
    async with audit_operation(request_id or generate_request_id(), backend.name, "decode") as ctx:
        try:
            schema_text = _require_schema(request)
            if request.encoded_data is None:
                raise MissingFieldError("encodedData")
            payload = decode_base64(request.encoded_data, backend.name)
            ctx.size_bytes = len(payload)
            async with resolve_type(backend, schema_text, request.type_name) as descriptor:
                ctx.type_name = descriptor.type_name
                data = await run_sync(backend.decode, descriptor, payload)
            return DecodeResponse(data=data)
        except EncodingGatewayError as e:
            ctx.mark_error(e.code)
            raise
