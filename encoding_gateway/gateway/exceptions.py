"""Custom exceptions for the Encoding Gateway.

Every error raised while serving a request ends up as one of these, and is
rendered by the handlers in ``main.py`` as ``{"error": message, "kind": code}``.
"""


class EncodingGatewayError(Exception):
    """Base exception for all Encoding Gateway errors.

    Attributes:
        message: Human-readable diagnostic, usually the backend's own.
        code: Error kind reported to the caller (defaults to the class name).
        status_code: HTTP status used when strict status mapping is enabled.
    """

    status_code = 400

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        self.code = code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        """Response body for this error."""
        return {"error": self.message, "kind": self.code}


class InvalidRequestError(EncodingGatewayError):
    """Raised when the request body is malformed."""
    pass


class PayloadTooLargeError(InvalidRequestError):
    """Raised when the request body exceeds the configured limit."""

    status_code = 413

    def __init__(self, max_body_size: int):
        super().__init__(message=f"Request body exceeds limit of {max_body_size} bytes")
        self.max_body_size = max_body_size


class MissingFieldError(InvalidRequestError):
    """Raised when a required request field is absent.

    Attributes:
        field_name: Name of the missing field as it appears on the wire.
    """

    def __init__(self, field_name: str):
        super().__init__(message=f"Missing required field '{field_name}'")
        self.field_name = field_name


class FormatError(EncodingGatewayError):
    """Base for errors raised while running a format backend.

    Attributes:
        format_name: Backend that produced the error.
        detail: The backend's native diagnostic.
    """

    def __init__(self, format_name: str, detail: str):
        super().__init__(message=detail)
        self.format_name = format_name
        self.detail = detail


class SchemaParseError(FormatError):
    """Raised when the schema does not parse or the requested type is absent."""
    pass


class ValidationError(FormatError):
    """Raised when data does not conform to the resolved type."""
    pass


class EncodeError(FormatError):
    """Raised when encoding fails after validation passed."""

    status_code = 422


class DecodeError(FormatError):
    """Raised when bytes are not a valid encoding of the resolved type."""
    pass


class BackendUnavailableError(EncodingGatewayError):
    """Raised when a tool the backend depends on cannot be used.

    Attributes:
        format_name: Backend that is unavailable.
        reason: Description of the failure.
    """

    status_code = 503

    def __init__(self, format_name: str, reason: str = "Backend failed"):
        super().__init__(message=f"{format_name} backend is unavailable: {reason}")
        self.format_name = format_name
        self.reason = reason


class UnknownFormatError(BackendUnavailableError):
    """Raised when a route asks for a format that is not enabled."""

    status_code = 404

    def __init__(self, format_name: str):
        super().__init__(format_name, reason="format is not enabled")
