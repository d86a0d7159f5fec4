"""Avro backend built on fastavro.

Schemas are JSON documents. Data is written without a container header
(``schemaless_writer``), which is what the size comparison with the other
formats needs.
"""

import base64
import binascii
import datetime
import io
import json
import re
import uuid
from decimal import Decimal
from pathlib import Path
from typing import Any

import fastavro
from anyio.to_thread import run_sync
from fastavro.schema import SchemaParseException
from fastavro.validation import ValidationError as AvroValidationError
from fastavro.validation import validate

from encoding_gateway.gateway.exceptions import (
    DecodeError,
    EncodeError,
    SchemaParseError,
    ValidationError,
)

from .base import Backend, TypeDescriptor

INTEGER_TEXT = re.compile(r"^[+-]?\d+$")
PRIMITIVE_TYPES = {"null", "boolean", "int", "long", "float", "double", "bytes", "string"}


class AvroSchema:
    """A parsed writer schema plus the named types it declares."""

    def __init__(self, parsed: Any, named: dict[str, Any]):
        self.parsed = parsed
        self.named = named

    def resolve(self, schema: Any) -> Any:
        """Follow a by-name reference to its definition."""
        if isinstance(schema, str) and schema in self.named:
            return self.named[schema]
        return schema


def _kind(schema: Any) -> str:
    if isinstance(schema, list):
        return "union"
    if isinstance(schema, str):
        return schema
    return schema["type"] if isinstance(schema["type"], str) else _kind(schema["type"])


def _accepts(avro: AvroSchema, schema: Any, value: Any) -> bool:
    """Whether ``value`` plausibly belongs to the union branch ``schema``.

    Works on both JSON input and fastavro output, so it is used to pick the
    branch when converting in either direction.
    """
    schema = avro.resolve(schema)
    kind = _kind(schema)
    logical = schema.get("logicalType") if isinstance(schema, dict) else None
    if kind == "null":
        return value is None
    if kind == "boolean":
        return isinstance(value, bool)
    if logical and isinstance(value, (datetime.date, datetime.time, Decimal, uuid.UUID)):
        return True
    if kind in ("int", "long"):
        if isinstance(value, bool):
            return False
        return isinstance(value, int) or (
            kind == "long" and isinstance(value, str) and bool(INTEGER_TEXT.match(value))
        )
    if kind in ("float", "double"):
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if kind == "string":
        return isinstance(value, str)
    if kind in ("bytes", "fixed"):
        return isinstance(value, (bytes, str))
    if kind == "enum":
        return isinstance(value, str) and value in schema["symbols"]
    if kind == "array":
        return isinstance(value, (list, tuple))
    if kind == "map":
        return isinstance(value, dict)
    if kind in ("record", "error"):
        return isinstance(value, dict) and set(value) <= {f["name"] for f in schema["fields"]}
    return False


def _to_avro(avro: AvroSchema, schema: Any, value: Any, path: str) -> Any:
    """Convert JSON input into the values fastavro expects.

    Accepts the normalized forms produced by decode: 64-bit integers as
    text and bytes/fixed as base64. Anything that does not fit is passed
    through unchanged so fastavro's validator reports it.
    """
    schema = avro.resolve(schema)
    if isinstance(schema, list):
        branch = next((b for b in schema if _accepts(avro, b, value)), None)
        return value if branch is None else _to_avro(avro, branch, value, path)

    kind = _kind(schema)
    if kind in ("record", "error") and isinstance(value, dict):
        fields = {field["name"]: field for field in schema["fields"]}
        unknown = sorted(set(value) - set(fields))
        if unknown:
            raise ValidationError("avro", f"{path or schema['name']}: unknown fields: {', '.join(unknown)}")
        return {
            name: _to_avro(avro, fields[name]["type"], item, f"{path}.{name}" if path else name)
            for name, item in value.items()
        }
    if kind == "array" and isinstance(value, list):
        return [_to_avro(avro, schema["items"], item, f"{path}[{i}]") for i, item in enumerate(value)]
    if kind == "map" and isinstance(value, dict):
        return {key: _to_avro(avro, schema["values"], item, f"{path}.{key}") for key, item in value.items()}
    if kind == "long" and isinstance(value, str) and INTEGER_TEXT.match(value):
        return int(value)
    if kind in ("bytes", "fixed") and isinstance(value, str):
        try:
            return base64.b64decode(value, validate=True)
        except binascii.Error:
            raise ValidationError("avro", f"{path}: invalid base64")
    return value


def _from_avro(avro: AvroSchema, schema: Any, value: Any) -> Any:
    """Convert fastavro output into its normalized JSON form."""
    if value is None:
        return None
    schema = avro.resolve(schema)
    if isinstance(schema, list):
        branch = next((b for b in schema if _accepts(avro, b, value)), None)
        return value if branch is None else _from_avro(avro, branch, value)

    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, (Decimal, uuid.UUID)):
        return str(value)
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")

    kind = _kind(schema)
    if kind in ("record", "error"):
        return {
            field["name"]: _from_avro(avro, field["type"], value.get(field["name"]))
            for field in schema["fields"]
        }
    if kind == "array":
        return [_from_avro(avro, schema["items"], item) for item in value]
    if kind == "map":
        return {key: _from_avro(avro, schema["values"], item) for key, item in value.items()}
    if kind == "long":
        return str(value)
    return value


def _declared_name(schema: Any) -> str | None:
    if isinstance(schema, dict) and "name" in schema:
        namespace = schema.get("namespace")
        name = schema["name"]
        return f"{namespace}.{name}" if namespace and "." not in name else name
    if isinstance(schema, str) and schema in PRIMITIVE_TYPES:
        return schema
    if isinstance(schema, dict) and schema.get("type") in PRIMITIVE_TYPES:
        return schema["type"]
    return None


def _matches(candidate: str, type_name: str) -> bool:
    return candidate == type_name or candidate.rsplit(".", 1)[-1] == type_name


class AvroBackend(Backend):
    """Backend for Avro JSON schemas and the Avro binary encoding."""

    name = "avro"

    async def parse_schema(
        self,
        schema_text: str,
        type_name: str | None = None,
        workspace: Path | None = None,
    ) -> TypeDescriptor:
        return await run_sync(self._parse, schema_text, type_name, abandon_on_cancel=True)

    def _parse(self, schema_text: str, type_name: str | None) -> TypeDescriptor:
        try:
            document = json.loads(schema_text)
        except json.JSONDecodeError as e:
            raise SchemaParseError(self.name, f"Schema is not valid JSON: {e}")

        # A top-level union declares several candidate types; each member is
        # parsed on its own so it can serve as a standalone writer schema.
        members = document if isinstance(document, list) else [document]
        named: dict[str, Any] = {}
        candidates = []
        for member in members:
            try:
                parsed = fastavro.parse_schema(member, named_schemas=named)
            except (SchemaParseException, ValueError, TypeError, KeyError, AttributeError) as e:
                raise SchemaParseError(self.name, str(e))
            name = _declared_name(member)
            if name is not None:
                candidates.append((name, parsed))

        if not candidates:
            raise SchemaParseError(self.name, "No types found in the schema")
        if type_name is None:
            resolved_name, parsed = candidates[0]
        else:
            match = next(((n, p) for n, p in candidates if _matches(n, type_name)), None)
            if match is None:
                raise SchemaParseError(self.name, f"no such type: {type_name}")
            resolved_name, parsed = match
        return TypeDescriptor(self.name, resolved_name, AvroSchema(parsed, named))

    def validate(self, descriptor: TypeDescriptor, data: Any) -> Any:
        avro: AvroSchema = descriptor.handle
        datum = _to_avro(avro, avro.parsed, data, "")
        try:
            validate(datum, avro.parsed, raise_errors=True)
        except AvroValidationError as e:
            raise ValidationError(self.name, "; ".join(str(error) for error in e.errors))
        return datum

    def encode(self, descriptor: TypeDescriptor, value: Any) -> bytes:
        buffer = io.BytesIO()
        try:
            fastavro.schemaless_writer(buffer, descriptor.handle.parsed, value)
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            raise EncodeError(self.name, f"{type(e).__name__}: {e}")
        return buffer.getvalue()

    def decode(self, descriptor: TypeDescriptor, payload: bytes) -> Any:
        avro: AvroSchema = descriptor.handle
        buffer = io.BytesIO(payload)
        try:
            datum = fastavro.schemaless_reader(buffer, avro.parsed, None)
        except Exception as e:
            raise DecodeError(self.name, f"{type(e).__name__}: {e}")

        trailing = len(payload) - buffer.tell()
        if trailing:
            raise DecodeError(self.name, f"{trailing} trailing bytes after {descriptor.type_name}")
        return _from_avro(avro, avro.parsed, datum)
