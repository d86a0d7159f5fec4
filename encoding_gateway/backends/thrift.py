"""Thrift backend built on thriftpy2.

The IDL is written to the request's scratch workspace and parsed there with
the module cache disabled, so concurrent requests never share generated
struct classes. Payloads are checked against ``thrift_spec`` before they are
turned into struct instances, since the binary protocol itself neither
enforces required fields nor reports type mismatches usefully.
"""

import base64
import binascii
import struct
from pathlib import Path
from typing import Any

import structlog
from anyio.to_thread import run_sync
from thriftpy2.parser import parse
from thriftpy2.parser.exc import ThriftParserError
from thriftpy2.protocol import TBinaryProtocolFactory
from thriftpy2.protocol.binary import TBinaryProtocol
from thriftpy2.thrift import TException, TType
from thriftpy2.transport.memory import TMemoryBuffer
from thriftpy2.utils import serialize

from encoding_gateway.gateway.exceptions import (
    BackendUnavailableError,
    DecodeError,
    EncodeError,
    SchemaParseError,
    ValidationError,
)

from .base import Backend, TypeDescriptor

logger = structlog.get_logger("backends.thrift")

SCHEMA_FILENAME = "schema.thrift"
MODULE_NAME = "schema_thrift"

INT_RANGES = {
    TType.BYTE: (-(2**7), 2**7 - 1),
    TType.I16: (-(2**15), 2**15 - 1),
    TType.I32: (-(2**31), 2**31 - 1),
    TType.I64: (-(2**63), 2**63 - 1),
}


def _split(type_spec: Any) -> tuple[int, Any]:
    """Split a thriftpy2 type spec into its TType and the nested spec."""
    if isinstance(type_spec, int):
        return type_spec, None
    return type_spec[0], type_spec[1]


def _field_specs(struct_cls: type) -> list[tuple[int, str, Any, bool]]:
    """Return ``(ttype, name, nested_spec, required)`` for each struct field."""
    fields = []
    for field_id in sorted(struct_cls.thrift_spec):
        spec = struct_cls.thrift_spec[field_id]
        if len(spec) == 3:
            ttype, name, required = spec
            nested = None
        else:
            ttype, name, nested, required = spec
        fields.append((ttype, name, nested, required))
    return fields


def _is_enum(nested: Any) -> bool:
    return hasattr(nested, "_NAMES_TO_VALUES")


class _PayloadError(Exception):
    def __init__(self, path: str, problem: str):
        super().__init__(f"{path}: {problem}")


def _to_thrift(ttype: int, nested: Any, value: Any, path: str) -> Any:
    """Convert a JSON value into what thriftpy2 writes for ``ttype``."""
    if ttype == TType.BOOL:
        if not isinstance(value, bool):
            raise _PayloadError(path, "boolean expected")
        return value

    if ttype in INT_RANGES:
        if ttype == TType.I32 and _is_enum(nested):
            if isinstance(value, str) and value in nested._NAMES_TO_VALUES:
                return nested._NAMES_TO_VALUES[value]
            if isinstance(value, int) and not isinstance(value, bool) and value in nested._VALUES_TO_NAMES:
                return value
            raise _PayloadError(path, f"invalid value {value!r} for enum {nested.__name__}")
        if ttype == TType.I64 and isinstance(value, str):
            try:
                value = int(value)
            except ValueError:
                raise _PayloadError(path, "integer expected")
        if not isinstance(value, int) or isinstance(value, bool):
            raise _PayloadError(path, "integer expected")
        low, high = INT_RANGES[ttype]
        if not low <= value <= high:
            raise _PayloadError(path, f"integer {value} out of range")
        return value

    if ttype == TType.DOUBLE:
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            raise _PayloadError(path, "number expected")
        return float(value)

    if ttype == TType.STRING:
        if not isinstance(value, str):
            raise _PayloadError(path, "string expected")
        return value

    if ttype == TType.BINARY:
        if not isinstance(value, str):
            raise _PayloadError(path, "base64 string expected")
        try:
            return base64.b64decode(value, validate=True)
        except binascii.Error:
            raise _PayloadError(path, "invalid base64")

    if ttype == TType.STRUCT:
        if not isinstance(value, dict):
            raise _PayloadError(path, "object expected")
        return _build_struct(nested, value, path)

    if ttype in (TType.LIST, TType.SET):
        if not isinstance(value, list):
            raise _PayloadError(path, "array expected")
        item_type, item_nested = _split(nested)
        return [_to_thrift(item_type, item_nested, item, f"{path}[{i}]") for i, item in enumerate(value)]

    if ttype == TType.MAP:
        if not isinstance(value, dict):
            raise _PayloadError(path, "object expected")
        key_type, key_nested = _split(nested[0])
        value_type, value_nested = _split(nested[1])
        result = {}
        for key, item in value.items():
            if key_type in INT_RANGES and not _is_enum(key_nested):
                try:
                    key = int(key)
                except ValueError:
                    raise _PayloadError(f"{path}.{key}", "integer key expected")
            result[_to_thrift(key_type, key_nested, key, f"{path}.{key}")] = _to_thrift(
                value_type, value_nested, item, f"{path}.{key}"
            )
        return result

    raise _PayloadError(path, f"unsupported thrift type {ttype}")


def _build_struct(struct_cls: type, data: dict[str, Any], path: str = "") -> Any:
    fields = _field_specs(struct_cls)
    known = {name for _, name, _, _ in fields}
    unknown = sorted(set(data) - known)
    if unknown:
        raise _PayloadError(path or struct_cls.__name__, f"unknown fields: {', '.join(unknown)}")

    defaults = dict(getattr(struct_cls, "default_spec", []))
    kwargs = {}
    for ttype, name, nested, required in fields:
        field_path = f"{path}.{name}" if path else name
        value = data.get(name)
        if value is None:
            if required and defaults.get(name) is None:
                raise _PayloadError(field_path, "required field is missing")
            continue
        kwargs[name] = _to_thrift(ttype, nested, value, field_path)
    return struct_cls(**kwargs)


def _from_thrift(ttype: int, nested: Any, value: Any) -> Any:
    """Convert a decoded thriftpy2 value into its normalized JSON form."""
    if value is None:
        return None
    if ttype == TType.I64:
        return str(value)
    if ttype == TType.I32 and _is_enum(nested):
        return nested._VALUES_TO_NAMES.get(value, str(value))
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    if ttype == TType.STRUCT:
        return _struct_to_dict(value)
    if ttype in (TType.LIST, TType.SET):
        item_type, item_nested = _split(nested)
        return [_from_thrift(item_type, item_nested, item) for item in value]
    if ttype == TType.MAP:
        key_type, key_nested = _split(nested[0])
        value_type, value_nested = _split(nested[1])
        return {
            str(_from_thrift(key_type, key_nested, key)): _from_thrift(value_type, value_nested, item)
            for key, item in value.items()
        }
    return value


def _struct_to_dict(obj: Any) -> dict[str, Any]:
    result = {}
    for ttype, name, nested, _ in _field_specs(type(obj)):
        value = getattr(obj, name, None)
        if value is not None:
            result[name] = _from_thrift(ttype, nested, value)
    return result


def _missing_required(obj: Any, path: str = "") -> list[str]:
    missing = []
    for ttype, name, nested, required in _field_specs(type(obj)):
        field_path = f"{path}.{name}" if path else name
        value = getattr(obj, name, None)
        if value is None:
            if required:
                missing.append(field_path)
        elif ttype == TType.STRUCT:
            missing.extend(_missing_required(value, field_path))
    return missing


class ThriftBackend(Backend):
    """Backend for ``.thrift`` IDL and the Thrift binary protocol."""

    name = "thrift"
    needs_workspace = True

    def __init__(self):
        self.protocol_factory = TBinaryProtocolFactory()

    async def parse_schema(
        self,
        schema_text: str,
        type_name: str | None = None,
        workspace: Path | None = None,
    ) -> TypeDescriptor:
        if workspace is None:
            raise BackendUnavailableError(self.name, reason="no scratch workspace provided")

        schema_path = workspace / SCHEMA_FILENAME
        schema_path.write_text(schema_text, encoding="utf-8")
        module = await run_sync(self._load, schema_path, abandon_on_cancel=True)
        return self._resolve(module, type_name)

    def _load(self, schema_path: Path) -> Any:
        try:
            return parse(
                str(schema_path),
                module_name=MODULE_NAME,
                include_dirs=[str(schema_path.parent)],
                enable_cache=False,
            )
        except ThriftParserError as e:
            raise SchemaParseError(self.name, str(e).replace(f"{schema_path.parent}/", ""))

    def _resolve(self, module: Any, type_name: str | None) -> TypeDescriptor:
        meta = getattr(module, "__thrift_meta__", {})
        declared = [*meta.get("structs", []), *meta.get("unions", []), *meta.get("exceptions", [])]
        if not declared:
            raise SchemaParseError(self.name, "No types found in the schema")

        if type_name is None:
            struct_cls = declared[0]
        else:
            struct_cls = next((cls for cls in declared if cls.__name__ == type_name), None)
            if struct_cls is None:
                raise SchemaParseError(self.name, f"no such type: {type_name}")
        return TypeDescriptor(self.name, struct_cls.__name__, struct_cls)

    def validate(self, descriptor: TypeDescriptor, data: dict[str, Any]) -> Any:
        try:
            return _build_struct(descriptor.handle, data)
        except _PayloadError as e:
            raise ValidationError(self.name, str(e))

    def encode(self, descriptor: TypeDescriptor, value: Any) -> bytes:
        try:
            return serialize(value, self.protocol_factory)
        except Exception as e:
            raise EncodeError(self.name, f"{type(e).__name__}: {e}")

    def decode(self, descriptor: TypeDescriptor, payload: bytes) -> dict[str, Any]:
        # The pure-Python buffer returns short reads instead of zero-filling,
        # so truncated input fails in struct.unpack.
        transport = TMemoryBuffer(payload)
        obj = descriptor.handle()
        try:
            obj.read(TBinaryProtocol(transport, strict_decode=True))
        except (struct.error, TException, RecursionError, UnicodeDecodeError, ValueError, TypeError) as e:
            raise DecodeError(self.name, f"{type(e).__name__}: {e}")

        if transport.read(1):
            raise DecodeError(self.name, f"trailing bytes after {descriptor.type_name}")

        missing = _missing_required(obj)
        if missing:
            raise DecodeError(self.name, f"missing required fields: {', '.join(missing)}")
        return _struct_to_dict(obj)
