"""Protocol Buffers backend.

Schemas are compiled with ``protoc`` in a subprocess (``grpcio-tools`` ships
one as ``python -m grpc_tools.protoc``). The resulting ``FileDescriptorSet``
is loaded into a descriptor pool private to the request, so two requests
declaring the same message name never see each other's definitions.
"""

import importlib.util
import sys
from pathlib import Path
from typing import Any, Sequence

import anyio
import structlog
from google.protobuf import descriptor_pb2, descriptor_pool, json_format, message_factory
from google.protobuf.descriptor import Descriptor, FieldDescriptor
from google.protobuf.message import DecodeError as ProtobufDecodeError
from google.protobuf.message import EncodeError as ProtobufEncodeError
from google.protobuf.message import Message

from encoding_gateway.gateway.exceptions import (
    BackendUnavailableError,
    DecodeError,
    EncodeError,
    SchemaParseError,
    ValidationError,
)

from .base import Backend, TypeDescriptor

logger = structlog.get_logger("backends.protobuf")

SCHEMA_FILENAME = "schema.proto"
DESCRIPTOR_FILENAME = "schema.pb"
WELL_KNOWN_PREFIX = "google.protobuf."

# Text is only accepted where decode produces it: 64-bit integers, enums, bytes.
TEXT_REJECTED = {
    FieldDescriptor.CPPTYPE_INT32: "integer expected",
    FieldDescriptor.CPPTYPE_UINT32: "integer expected",
    FieldDescriptor.CPPTYPE_FLOAT: "number expected",
    FieldDescriptor.CPPTYPE_DOUBLE: "number expected",
    FieldDescriptor.CPPTYPE_BOOL: "boolean expected",
}


def _check_value(field: FieldDescriptor, value: Any, path: str) -> None:
    if field.cpp_type == FieldDescriptor.CPPTYPE_MESSAGE:
        _reject_text_scalars(field.message_type, value, path)
    elif isinstance(value, str) and field.cpp_type in TEXT_REJECTED:
        raise ValidationError("protobuf", f"{path}: {TEXT_REJECTED[field.cpp_type]}")


def _reject_text_scalars(message_descriptor: Descriptor, data: Any, path: str = "") -> None:
    """Reject quoted numbers and booleans that ``json_format`` would coerce.

    Well-known types keep their own JSON mappings and are left to the parser.
    """
    if not isinstance(data, dict) or message_descriptor.full_name.startswith(WELL_KNOWN_PREFIX):
        return
    fields = {}
    for field in message_descriptor.fields:
        fields[field.name] = field
        fields[field.json_name] = field

    for key, value in data.items():
        field = fields.get(key)
        if field is None or value is None:
            continue
        field_path = f"{path}.{key}" if path else key
        if field.message_type is not None and field.message_type.GetOptions().map_entry:
            if isinstance(value, dict):
                value_field = field.message_type.fields_by_name["value"]
                for map_key, item in value.items():
                    _check_value(value_field, item, f"{field_path}.{map_key}")
        elif field.is_repeated and isinstance(value, list):
            for i, item in enumerate(value):
                _check_value(field, item, f"{field_path}[{i}]")
        else:
            _check_value(field, value, field_path)


class ProtobufBackend(Backend):
    """Backend for ``.proto`` schemas and the protobuf binary wire format."""

    name = "protobuf"
    needs_workspace = True

    def __init__(self, protoc_command: Sequence[str] | None = None):
        """Initialize the backend.

        Args:
            protoc_command: Command used to run protoc. Defaults to the
                ``grpc_tools.protoc`` module under the current interpreter.
        """
        self.protoc_command = list(protoc_command or [])

    def _compiler(self) -> list[str]:
        if self.protoc_command:
            return list(self.protoc_command)
        if importlib.util.find_spec("grpc_tools") is None:
            raise BackendUnavailableError(
                self.name,
                reason="grpcio-tools is not installed and PROTOC_COMMAND is not set",
            )
        return [sys.executable, "-m", "grpc_tools.protoc"]

    async def parse_schema(
        self,
        schema_text: str,
        type_name: str | None = None,
        workspace: Path | None = None,
    ) -> TypeDescriptor:
        if workspace is None:
            raise BackendUnavailableError(self.name, reason="no scratch workspace provided")

        schema_path = workspace / SCHEMA_FILENAME
        descriptor_path = workspace / DESCRIPTOR_FILENAME
        schema_path.write_text(schema_text, encoding="utf-8")

        command = [
            *self._compiler(),
            f"--proto_path={workspace}",
            f"--descriptor_set_out={descriptor_path}",
            "--include_imports",
            str(schema_path),
        ]
        try:
            result = await anyio.run_process(command, check=False)
        except OSError as e:
            raise BackendUnavailableError(self.name, reason=f"cannot run protoc: {e}")

        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace")
            detail = stderr.replace(f"{workspace}/", "").strip()
            logger.info("protoc_failed", returncode=result.returncode)
            raise SchemaParseError(self.name, detail or f"protoc exited with status {result.returncode}")

        file_set = descriptor_pb2.FileDescriptorSet.FromString(descriptor_path.read_bytes())
        return self._resolve(file_set, type_name)

    def _resolve(
        self,
        file_set: descriptor_pb2.FileDescriptorSet,
        type_name: str | None,
    ) -> TypeDescriptor:
        pool = descriptor_pool.DescriptorPool()
        schema_file = None
        for file_proto in file_set.file:
            pool.AddSerializedFile(file_proto.SerializeToString())
            if file_proto.name == SCHEMA_FILENAME:
                schema_file = file_proto
        if schema_file is None:
            raise SchemaParseError(self.name, "protoc produced no descriptor for the schema")

        package = schema_file.package
        if type_name:
            candidates = [type_name]
            if package and not type_name.startswith(f"{package}."):
                candidates.insert(0, f"{package}.{type_name}")
        elif schema_file.message_type:
            first = schema_file.message_type[0].name
            candidates = [f"{package}.{first}" if package else first]
        else:
            raise SchemaParseError(self.name, "No message types found in the schema")

        for full_name in candidates:
            try:
                message_descriptor = pool.FindMessageTypeByName(full_name)
            except KeyError:
                continue
            message_class = message_factory.GetMessageClass(message_descriptor)
            return TypeDescriptor(self.name, message_descriptor.full_name, message_class)

        raise SchemaParseError(self.name, f"no such type: {type_name}")

    def validate(self, descriptor: TypeDescriptor, data: dict[str, Any]) -> Message:
        _reject_text_scalars(descriptor.handle.DESCRIPTOR, data)
        message = descriptor.handle()
        try:
            json_format.ParseDict(data, message)
        except (json_format.ParseError, TypeError, ValueError) as e:
            raise ValidationError(self.name, str(e))

        missing = message.FindInitializationErrors()
        if missing:
            raise ValidationError(self.name, f"missing required fields: {', '.join(missing)}")
        return message

    def encode(self, descriptor: TypeDescriptor, value: Message) -> bytes:
        try:
            return value.SerializeToString()
        except ProtobufEncodeError as e:
            raise EncodeError(self.name, str(e))

    def size_of(self, descriptor: TypeDescriptor, value: Message) -> int:
        return value.ByteSize()

    def decode(self, descriptor: TypeDescriptor, payload: bytes) -> dict[str, Any]:
        try:
            message = descriptor.handle.FromString(payload)
        except ProtobufDecodeError as e:
            raise DecodeError(self.name, str(e))

        missing = message.FindInitializationErrors()
        if missing:
            raise DecodeError(self.name, f"missing required fields: {', '.join(missing)}")

        # int64 as text, enums by name, bytes as base64
        return json_format.MessageToDict(message, preserving_proto_field_name=True)
