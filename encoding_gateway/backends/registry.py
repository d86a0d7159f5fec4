"""Lookup of format backends by name."""

from typing import Iterable

from encoding_gateway.config import Settings
from encoding_gateway.gateway.exceptions import UnknownFormatError

from .avro import AvroBackend
from .base import Backend
from .protobuf import ProtobufBackend
from .thrift import ThriftBackend


class BackendRegistry:
    """Maps format names to backend instances."""

    def __init__(self, backends: Iterable[Backend]):
        self._backends = {backend.name: backend for backend in backends}

    @classmethod
    def from_settings(cls, settings: Settings) -> "BackendRegistry":
        """Build the registry for the formats enabled in settings.

        Raises:
            UnknownFormatError: If settings name a format with no backend.
        """
        factories = {
            "protobuf": lambda: ProtobufBackend(protoc_command=settings.protoc_command),
            "thrift": ThriftBackend,
            "avro": AvroBackend,
        }
        backends = []
        for name in settings.enabled_formats:
            if name not in factories:
                raise UnknownFormatError(name)
            backends.append(factories[name]())
        return cls(backends)

    def get(self, name: str) -> Backend:
        """Return the backend for ``name``.

        Raises:
            UnknownFormatError: If the format is not registered.
        """
        backend = self._backends.get(name.lower())
        if backend is None:
            raise UnknownFormatError(name)
        return backend

    def names(self) -> list[str]:
        return list(self._backends)

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._backends
