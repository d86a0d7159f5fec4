"""Unit tests for the gateway service, schemas and exceptions."""

import asyncio
import base64
from pathlib import Path
from typing import Any

import pytest

from encoding_gateway.backends.base import Backend, TypeDescriptor
from encoding_gateway.gateway.exceptions import (
    BackendUnavailableError,
    DecodeError,
    EncodeError,
    MissingFieldError,
    SchemaParseError,
    UnknownFormatError,
    ValidationError,
)
from encoding_gateway.gateway.schemas import DataRequest, DecodeRequest, EncodeResponse
from encoding_gateway.gateway.service import (
    compute_size,
    decode_base64,
    decode_data,
    encode_data,
    resolve_type,
    split_payload,
)


class FakeBackend(Backend):
    """Encodes ``{"value": str}`` as UTF-8 and records what it saw."""

    name = "fake"

    def __init__(self, needs_workspace: bool = False, parse_delay: float = 0.0):
        self.needs_workspace = needs_workspace
        self.parse_delay = parse_delay
        self.workspaces: list[Path | None] = []
        self.type_names: list[str | None] = []

    async def parse_schema(self, schema_text, type_name=None, workspace=None):
        self.workspaces.append(workspace)
        self.type_names.append(type_name)
        if workspace is not None:
            (workspace / "schema.txt").write_text(schema_text)
        if self.parse_delay:
            await asyncio.sleep(self.parse_delay)
        if schema_text == "broken":
            raise SchemaParseError(self.name, "cannot parse")
        return TypeDescriptor(self.name, type_name or "Value", schema_text)

    def validate(self, descriptor: TypeDescriptor, data: dict[str, Any]) -> str:
        if not isinstance(data.get("value"), str):
            raise ValidationError(self.name, "value: string expected")
        return data["value"]

    def encode(self, descriptor: TypeDescriptor, value: str) -> bytes:
        if value == "unencodable":
            raise EncodeError(self.name, "codec refused")
        return value.encode("utf-8")

    def decode(self, descriptor: TypeDescriptor, payload: bytes) -> dict[str, Any]:
        try:
            return {"value": payload.decode("utf-8")}
        except UnicodeDecodeError as e:
            raise DecodeError(self.name, str(e))


class TestGatewaySchemas:
    """Tests for request/response models."""

    def test_data_request_uses_wire_aliases(self):
        """Test that ``schema`` and ``typeName`` map onto model fields."""
        request = DataRequest.model_validate(
            {"schema": "s", "typeName": "User", "data": {"a": 1}}
        )

        assert request.schema_text == "s"
        assert request.type_name == "User"
        assert request.data == {"a": 1}

    def test_missing_fields_default_to_none(self):
        """Test that absent fields validate so the service can report them."""
        request = DecodeRequest.model_validate({})

        assert request.schema_text is None
        assert request.encoded_data is None

    def test_encode_response_serializes_alias(self):
        """Test that the response uses ``encodedData`` on the wire."""
        response = EncodeResponse(encoded_data="AQI=")

        assert response.model_dump(by_alias=True) == {"encodedData": "AQI="}


class TestGatewayExceptions:
    """Tests for gateway exception classes."""

    def test_kind_defaults_to_class_name(self):
        """Test that the error code is the exception's class name."""
        exc = DecodeError("avro", "truncated")

        assert exc.code == "DecodeError"
        assert exc.message == "truncated"
        assert exc.format_name == "avro"

    def test_missing_field_error(self):
        """Test MissingFieldError attributes."""
        exc = MissingFieldError("schema")

        assert exc.field_name == "schema"
        assert "schema" in exc.message
        assert exc.code == "MissingFieldError"

    def test_backend_unavailable_error(self):
        """Test BackendUnavailableError attributes."""
        exc = BackendUnavailableError("protobuf", reason="protoc not found")

        assert exc.reason == "protoc not found"
        assert "unavailable" in exc.message
        assert exc.status_code == 503

    def test_unknown_format_is_backend_unavailable(self):
        """Test that an unknown format is reported as an unavailable backend."""
        exc = UnknownFormatError("xml")

        assert isinstance(exc, BackendUnavailableError)
        assert exc.code == "UnknownFormatError"
        assert exc.status_code == 404


class TestPayloadHelpers:
    """Tests for request shaping helpers."""

    def test_split_payload_strips_type_key(self):
        """Test that ``__type__`` selects the type and is removed from data."""
        request = DataRequest.model_validate(
            {"schema": "s", "data": {"__type__": "User", "name": "a"}}
        )

        data, type_name = split_payload(request)

        assert data == {"name": "a"}
        assert type_name == "User"
        assert "__type__" in request.data

    def test_type_name_wins_over_embedded_type(self):
        """Test that an explicit typeName takes precedence."""
        request = DataRequest.model_validate(
            {"schema": "s", "typeName": "Other", "data": {"__type__": "User"}}
        )

        _, type_name = split_payload(request)

        assert type_name == "Other"

    def test_split_payload_requires_data(self):
        """Test that a missing data field is rejected."""
        with pytest.raises(MissingFieldError) as exc_info:
            split_payload(DataRequest.model_validate({"schema": "s"}))

        assert exc_info.value.field_name == "data"

    def test_decode_base64_rejects_garbage(self):
        """Test that non-base64 text is a DecodeError."""
        with pytest.raises(DecodeError):
            decode_base64("not base64!!", "fake")

    def test_decode_base64_accepts_empty(self):
        """Test that an empty message decodes to no bytes."""
        assert decode_base64("", "fake") == b""


class TestResolveType:
    """Tests for schema resolution and scratch workspace handling."""

    @pytest.mark.asyncio
    async def test_workspace_removed_after_success(self, tmp_path):
        """Test that the scratch directory is gone once the context exits."""
        backend = FakeBackend(needs_workspace=True)

        async with resolve_type(backend, "schema", None, scratch_dir=str(tmp_path)) as descriptor:
            workspace = backend.workspaces[0]
            assert workspace.parent == tmp_path
            assert (workspace / "schema.txt").exists()
            assert descriptor.type_name == "Value"

        assert not workspace.exists()
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_workspace_removed_after_parse_failure(self, tmp_path):
        """Test cleanup when the schema does not parse."""
        backend = FakeBackend(needs_workspace=True)

        with pytest.raises(SchemaParseError):
            async with resolve_type(backend, "broken", None, scratch_dir=str(tmp_path)):
                pass

        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_workspace_removed_after_body_failure(self, tmp_path):
        """Test cleanup when the codec stage fails inside the context."""
        backend = FakeBackend(needs_workspace=True)

        with pytest.raises(ValidationError):
            async with resolve_type(backend, "schema", None, scratch_dir=str(tmp_path)) as descriptor:
                backend.validate(descriptor, {"value": 1})

        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_timeout_is_schema_parse_error(self, tmp_path):
        """Test that slow schema compilation is bounded and cleaned up."""
        backend = FakeBackend(needs_workspace=True, parse_delay=5.0)

        with pytest.raises(SchemaParseError) as exc_info:
            async with resolve_type(
                backend, "schema", None, timeout=0.1, scratch_dir=str(tmp_path)
            ):
                pass

        assert "timed out" in exc_info.value.message
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_no_workspace_for_in_memory_backends(self):
        """Test that backends without file I/O get no scratch directory."""
        backend = FakeBackend(needs_workspace=False)

        async with resolve_type(backend, "schema", "Named") as descriptor:
            assert descriptor.type_name == "Named"

        assert backend.workspaces == [None]


class TestGatewayService:
    """Tests for compute_size, encode_data and decode_data."""

    @pytest.mark.asyncio
    async def test_encode_and_size_agree(self):
        """Test that the reported size matches the encoded bytes."""
        backend = FakeBackend()
        request = DataRequest.model_validate({"schema": "s", "data": {"value": "héllo"}})

        size = await compute_size(backend, request)
        encoded = await encode_data(backend, request)

        assert size.size == len(base64.b64decode(encoded.encoded_data)) == 6

    @pytest.mark.asyncio
    async def test_round_trip(self):
        """Test decode(encode(data)) returns the original data."""
        backend = FakeBackend()
        encoded = await encode_data(
            backend, DataRequest.model_validate({"schema": "s", "data": {"value": "abc"}})
        )

        decoded = await decode_data(
            backend,
            DecodeRequest.model_validate({"schema": "s", "encodedData": encoded.encoded_data}),
        )

        assert decoded.data == {"value": "abc"}

    @pytest.mark.asyncio
    async def test_missing_schema_never_reaches_backend(self):
        """Test that MissingFieldError is raised before parsing."""
        backend = FakeBackend()

        with pytest.raises(MissingFieldError) as exc_info:
            await encode_data(backend, DataRequest.model_validate({"data": {"value": "a"}}))

        assert exc_info.value.field_name == "schema"
        assert backend.type_names == []

    @pytest.mark.asyncio
    async def test_blank_schema_is_missing(self):
        """Test that a whitespace-only schema counts as missing."""
        with pytest.raises(MissingFieldError):
            await compute_size(
                FakeBackend(), DataRequest.model_validate({"schema": "  ", "data": {}})
            )

    @pytest.mark.asyncio
    async def test_missing_encoded_data(self):
        """Test that decode requires encodedData."""
        with pytest.raises(MissingFieldError) as exc_info:
            await decode_data(FakeBackend(), DecodeRequest.model_validate({"schema": "s"}))

        assert exc_info.value.field_name == "encodedData"

    @pytest.mark.asyncio
    async def test_validation_error_propagates(self):
        """Test that invalid data is rejected before encoding."""
        with pytest.raises(ValidationError):
            await encode_data(
                FakeBackend(), DataRequest.model_validate({"schema": "s", "data": {"value": 3}})
            )

    @pytest.mark.asyncio
    async def test_encode_error_propagates(self):
        """Test that codec failures after validation surface as EncodeError."""
        with pytest.raises(EncodeError):
            await encode_data(
                FakeBackend(),
                DataRequest.model_validate({"schema": "s", "data": {"value": "unencodable"}}),
            )

    @pytest.mark.asyncio
    async def test_decode_error_propagates(self):
        """Test that undecodable bytes surface as DecodeError."""
        encoded = base64.b64encode(b"\xff\xfe").decode("ascii")

        with pytest.raises(DecodeError):
            await decode_data(
                FakeBackend(), DecodeRequest.model_validate({"schema": "s", "encodedData": encoded})
            )

    @pytest.mark.asyncio
    async def test_type_name_forwarded_to_backend(self):
        """Test that the embedded type selector reaches parse_schema."""
        backend = FakeBackend()
        request = DataRequest.model_validate(
            {"schema": "s", "data": {"__type__": "Thing", "value": "x"}}
        )

        await encode_data(backend, request)

        assert backend.type_names == ["Thing"]
