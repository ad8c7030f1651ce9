"""Audit logging for merge and dismissal decisions."""

import hashlib
import structlog
from datetime import datetime, timezone
from typing import Any, Dict, Optional, List, Sequence
import threading
from contextlib import contextmanager


SENSITIVE_KEYS = [
    "password",
    "api_key",
    "token",
    "secret",
    "credential",
    "private_key",
    "email",
    "phone",
]


def sanitize_value(key: str, value: Any) -> Any:
    """Mask secrets and contact PII, recursing into containers."""
    key_lower = key.lower()

    if any(term in key_lower for term in SENSITIVE_KEYS):
        # Show partial value for debugging
        if isinstance(value, str) and len(value) > 8:
            return f"{value[:3]}...{value[-3:]}"
        return "***REDACTED***"

    if isinstance(value, dict):
        return {k: sanitize_value(k, v) for k, v in value.items()}
    elif isinstance(value, (list, tuple)):
        return [sanitize_value(f"item_{i}", v) for i, v in enumerate(value)]

    return value


class AuditLogger:
    """Structured audit trail for every merge-triggered mutation."""

    def __init__(self, logger_name: str = "crmdedupe.audit"):
        """Initialize audit logger.

        Args:
            logger_name: Name of the underlying stdlib logger
        """
        self._configure_logger()
        self.logger = structlog.get_logger(logger_name)

        # Thread-local storage for context
        self._context = threading.local()

    def _configure_logger(self):
        """Configure structured logger with proper processors."""
        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                self._add_audit_context,
                self._sanitize_sensitive_data,
                structlog.processors.JSONRenderer(),
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    def _add_audit_context(self, logger, method_name, event_dict):
        """Add audit context to log entries."""
        event_dict["audit_timestamp"] = datetime.now(timezone.utc).isoformat()
        event_dict["audit_version"] = "1.0"

        for key in ("user_id", "session_id", "request_id"):
            if hasattr(self._context, key):
                event_dict[key] = getattr(self._context, key)

        return event_dict

    def _sanitize_sensitive_data(self, logger, method_name, event_dict):
        """Remove or mask sensitive data from logs."""
        for key, value in list(event_dict.items()):
            event_dict[key] = sanitize_value(key, value)
        return event_dict

    @contextmanager
    def audit_context(self, **kwargs):
        """Context manager to set audit context.

        Usage:
            with audit_logger.audit_context(user_id="operator-1"):
                audit_logger.log_duplicate_dismissed(...)
        """
        previous_context = {}
        for key, value in kwargs.items():
            if hasattr(self._context, key):
                previous_context[key] = getattr(self._context, key)
            setattr(self._context, key, value)

        try:
            yield
        finally:
            for key in kwargs:
                if key in previous_context:
                    setattr(self._context, key, previous_context[key])
                else:
                    delattr(self._context, key)

    def log_merge_started(self, primary_id: str, duplicate_ids: Sequence[str]) -> None:
        """Log the start of a merge."""
        self.logger.info(
            "merge_started",
            event_type="merge",
            primary_id=primary_id,
            duplicate_ids=list(duplicate_ids),
        )

    def log_merge_completed(
        self,
        primary_id: str,
        merged_ids: Sequence[str],
        failed_ids: Sequence[str],
        fields_changed: Sequence[str],
        success: bool,
    ) -> None:
        """Log the outcome of a merge.

        Args:
            primary_id: Surviving contact
            merged_ids: Duplicates absorbed and deleted
            failed_ids: Duplicates left in place for retry
            fields_changed: Names of the primary's fields that were patched
            success: Overall result reported to the caller
        """
        log_data = {
            "event_type": "merge",
            "primary_id": primary_id,
            "merged_ids": list(merged_ids),
            "failed_ids": list(failed_ids),
            "fields_changed": list(fields_changed),
            "success": success,
        }
        if success and not failed_ids:
            self.logger.info("merge_completed", **log_data)
        else:
            self.logger.warning("merge_completed", **log_data)

    def log_store_write(
        self,
        operation: str,
        collection: str,
        record_id: str,
        affected: Optional[int] = None,
        error: Optional[str] = None,
    ) -> None:
        """Log a single mutation sent to the record store."""
        log_data = {
            "event_type": "store_write",
            "operation": operation,
            "collection": collection,
            "record_id": record_id,
            "success": error is None,
        }
        if affected is not None:
            log_data["affected"] = affected
        if error:
            log_data["error"] = error

        # Integrity hash for the write, as for data access records
        write_string = f"{operation}:{collection}:{record_id}"
        log_data["write_hash"] = hashlib.sha256(write_string.encode()).hexdigest()[:16]

        if error:
            self.logger.error("store_write", **log_data)
        else:
            self.logger.info("store_write", **log_data)

    def log_duplicate_dismissed(self, key: str, match_type: str, member_ids: List[str]) -> None:
        """Log an operator's "not a duplicate" decision."""
        self.logger.info(
            "duplicate_dismissed",
            event_type="dismissal",
            key=key,
            match_type=match_type,
            member_ids=member_ids,
        )

    def log_dismissals_cleared(self, count: int) -> None:
        """Log that every dismissal was removed."""
        self.logger.info("dismissals_cleared", event_type="dismissal", count=count)

    def log_error(
        self,
        error_type: str,
        error_message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log errors for the audit trail."""
        log_data = {
            "event_type": "error",
            "error_type": error_type,
            "error_message": error_message,
        }
        if context:
            log_data["context"] = context

        self.logger.error("error_occurred", **log_data)
