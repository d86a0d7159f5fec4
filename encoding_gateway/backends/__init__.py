"""Format backends - schema parsing and binary codecs."""

from .base import Backend, TypeDescriptor
from .avro import AvroBackend
from .protobuf import ProtobufBackend
from .thrift import ThriftBackend
from .registry import BackendRegistry
from .workspace import scratch_workspace


__all__ = [
    "Backend",
    "TypeDescriptor",
    "AvroBackend",
    "ProtobufBackend",
    "ThriftBackend",
    "BackendRegistry",
    "scratch_workspace",
]
