"""Gateway module - request handling for encode, decode and size operations."""

from .schemas import (
    DataRequest,
    DecodeRequest,
    DecodeResponse,
    EncodeResponse,
    ErrorResponse,
    SizeResponse,
)
from .exceptions import (
    EncodingGatewayError,
    InvalidRequestError,
    MissingFieldError,
    PayloadTooLargeError,
    SchemaParseError,
    ValidationError,
    EncodeError,
    DecodeError,
    BackendUnavailableError,
    UnknownFormatError,
)


__all__ = [
    # Schemas
    "DataRequest",
    "DecodeRequest",
    "DecodeResponse",
    "EncodeResponse",
    "ErrorResponse",
    "SizeResponse",
    # Exceptions
    "EncodingGatewayError",
    "InvalidRequestError",
    "MissingFieldError",
    "PayloadTooLargeError",
    "SchemaParseError",
    "ValidationError",
    "EncodeError",
    "DecodeError",
    "BackendUnavailableError",
    "UnknownFormatError",
]
