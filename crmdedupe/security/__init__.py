"""Audit trail for merge-triggered mutations."""

from .audit import AuditLogger, sanitize_value

__all__ = ["AuditLogger", "sanitize_value"]
