"""Audit module - structured operation logging."""

from .logger import (
    OperationContext,
    OperationStatus,
    audit_operation,
    configure_logging,
    log_operation,
)

__all__ = [
    "OperationContext",
    "OperationStatus",
    "audit_operation",
    "configure_logging",
    "log_operation",
]
