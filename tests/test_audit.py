"""Tests for the audit logging module."""

import pytest
from structlog.testing import capture_logs

from encoding_gateway.audit import OperationContext, OperationStatus, audit_operation, log_operation
from encoding_gateway.gateway.exceptions import ValidationError


class TestOperationStatus:
    """Tests for OperationStatus enum."""

    def test_status_values(self):
        """All expected status values exist."""
        assert OperationStatus.success == "success"
        assert OperationStatus.error == "error"


class TestOperationContext:
    """Tests for OperationContext."""

    def test_initial_state(self):
        """Context starts as success with no type or size."""
        ctx = OperationContext("req-123", "avro", "encode")

        assert ctx.request_id == "req-123"
        assert ctx.format_name == "avro"
        assert ctx.operation == "encode"
        assert ctx.type_name is None
        assert ctx.size_bytes is None
        assert ctx.status == OperationStatus.success
        assert ctx.error_code is None

    def test_mark_error(self):
        """Marking error sets status and code."""
        ctx = OperationContext("req-123", "thrift", "decode")

        ctx.mark_error("DecodeError")

        assert ctx.status == OperationStatus.error
        assert ctx.error_code == "DecodeError"

    def test_duration_calculation(self):
        """Duration is a non-negative number of milliseconds."""
        ctx = OperationContext("req-123", "avro", "size")

        assert isinstance(ctx.duration_ms, int)
        assert ctx.duration_ms >= 0


class TestLogOperation:
    """Tests for the encoding_operation event."""

    def test_success_logged_at_info(self):
        ctx = OperationContext("req-1", "avro", "size")
        ctx.type_name = "User"
        ctx.size_bytes = 1

        with capture_logs() as logs:
            log_operation(ctx)

        entry = logs[0]
        assert entry["event"] == "encoding_operation"
        assert entry["log_level"] == "info"
        assert entry["request_id"] == "req-1"
        assert entry["format"] == "avro"
        assert entry["operation"] == "size"
        assert entry["type_name"] == "User"
        assert entry["status"] == "success"
        assert entry["size_bytes"] == 1
        assert entry["error_code"] is None
        assert entry["duration_ms"] >= 0

    def test_failure_logged_at_warning(self):
        ctx = OperationContext("req-2", "protobuf", "encode")
        ctx.mark_error("SchemaParseError")

        with capture_logs() as logs:
            log_operation(ctx)

        assert logs[0]["log_level"] == "warning"
        assert logs[0]["error_code"] == "SchemaParseError"


class TestAuditOperation:
    """Tests for the audit_operation context manager."""

    @pytest.mark.asyncio
    async def test_logs_on_success(self):
        with capture_logs() as logs:
            async with audit_operation("req-3", "thrift", "encode") as ctx:
                ctx.size_bytes = 20

        assert len(logs) == 1
        assert logs[0]["status"] == "success"
        assert logs[0]["size_bytes"] == 20

    @pytest.mark.asyncio
    async def test_logs_and_propagates_on_failure(self):
        with capture_logs() as logs:
            with pytest.raises(ValidationError):
                async with audit_operation("req-4", "avro", "encode") as ctx:
                    error = ValidationError("avro", "age: integer expected")
                    ctx.mark_error(error.code)
                    raise error

        assert len(logs) == 1
        assert logs[0]["status"] == "error"
        assert logs[0]["error_code"] == "ValidationError"
