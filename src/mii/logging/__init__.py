"""Diagnostics and structured operation logging."""

from .audit import AuditEvent, JsonlAuditLogger, summarize_arguments, utc_timestamp
from .console import configure_logging

__all__ = [
    "AuditEvent",
    "JsonlAuditLogger",
    "configure_logging",
    "summarize_arguments",
    "utc_timestamp",
]
