"""Pydantic schemas for the encode/decode/size endpoints.

Request fields are optional at the model level so that a missing field is
reported as ``MissingFieldError`` in the usual error shape instead of a
framework validation error.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SchemaRequest(BaseModel):
    """Fields shared by every gateway request.

    Attributes:
        schema_text: Schema in the selected format's IDL.
        type_name: Type to use when the schema declares several.
    """

    model_config = ConfigDict(populate_by_name=True)

    schema_text: str | None = Field(default=None, alias="schema", description="Schema text")
    type_name: str | None = Field(default=None, alias="typeName", description="Type to encode/decode")


class DataRequest(SchemaRequest):
    """Request body for ``/calculate-size`` and ``/encode``."""

    data: dict[str, Any] | None = Field(default=None, description="Structured value to encode")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "schema": 'syntax = "proto3";\nmessage User { int32 age = 1; }',
                "data": {"age": 30},
            }
        },
    )


class DecodeRequest(SchemaRequest):
    """Request body for ``/decode``."""

    encoded_data: str | None = Field(default=None, alias="encodedData", description="Base64 bytes")


class SizeResponse(BaseModel):
    size: int = Field(..., ge=0, description="Encoded size in bytes")


class EncodeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    encoded_data: str = Field(..., alias="encodedData", description="Base64 of the encoded bytes")


class DecodeResponse(BaseModel):
    data: Any = Field(..., description="Decoded value with 64-bit ints, enums and bytes as text")


class ErrorResponse(BaseModel):
    """Error shape returned by every endpoint.

    Attributes:
        error: The backend's diagnostic message.
        kind: Error kind, e.g. ``DecodeError``.
    """

    error: str
    kind: str
