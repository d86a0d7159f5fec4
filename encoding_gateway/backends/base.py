"""Backend interface shared by the protobuf, thrift and avro adapters."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class TypeDescriptor:
    """Handle to one message/struct/record type parsed from a schema.

    Attributes:
        format_name: Backend that produced the descriptor.
        type_name: Resolved name of the type.
        handle: Backend-native type object.
    """

    format_name: str
    type_name: str
    handle: Any


class Backend(ABC):
    """Capability set the gateway needs from a serialization format.

    Descriptors are built per request and never shared, so implementations
    must not keep per-schema state on the instance.
    """

    name: str = ""
    needs_workspace: bool = False

    @abstractmethod
    async def parse_schema(
        self,
        schema_text: str,
        type_name: str | None = None,
        workspace: Path | None = None,
    ) -> TypeDescriptor:
        """Resolve a type from schema text.

        Args:
            schema_text: Schema in the backend's IDL.
            type_name: Type to select; the first declared type when omitted.
            workspace: Scratch directory for backends with ``needs_workspace``.

        Raises:
            SchemaParseError: If the schema is invalid or the type is absent.
            BackendUnavailableError: If a required tool cannot be run.
        """

    @abstractmethod
    def validate(self, descriptor: TypeDescriptor, data: dict[str, Any]) -> Any:
        """Check ``data`` against the type and build the backend-native value.

        Raises:
            ValidationError: If the data does not conform.
        """

    @abstractmethod
    def encode(self, descriptor: TypeDescriptor, value: Any) -> bytes:
        """Encode a value returned by ``validate``.

        Raises:
            EncodeError: If the codec rejects the value.
        """

    @abstractmethod
    def decode(self, descriptor: TypeDescriptor, payload: bytes) -> dict[str, Any]:
        """Decode bytes into a normalized, JSON-ready value.

        Raises:
            DecodeError: If the bytes are not a valid encoding of the type.
        """

    def size_of(self, descriptor: TypeDescriptor, value: Any) -> int:
        """Encoded size of a validated value in bytes."""
        return len(self.encode(descriptor, value))
