"""Error handlers with context preservation for merge and ledger operations."""

import traceback
from typing import Any, Dict, Optional, List, Sequence
from datetime import datetime, timezone
from contextlib import contextmanager
import threading
from dataclasses import dataclass, field
from enum import Enum
import logging

from ..logging_config import current_context


class ErrorSeverity(Enum):
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for classification."""
    INPUT = "input"
    STORE = "store"
    CONFIGURATION = "configuration"
    CONCURRENCY = "concurrency"
    LEDGER = "ledger"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Context information for an error."""
    operation: str
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    request_data: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    correlation_id: Optional[str] = None
    user_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary."""
        return {
            "operation": self.operation,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "request_data": self.request_data,
            "metadata": self.metadata,
            "timestamp": self.timestamp.isoformat(),
            "correlation_id": self.correlation_id,
            "user_id": self.user_id,
        }


class BaseDedupeError(Exception):
    """Base exception for all deduplication and merge errors."""

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.context = context
        self.cause = cause
        self.severity = severity
        self.category = category
        self.retryable = retryable
        self.timestamp = datetime.now(timezone.utc)

        # Capture stack trace
        self.stack_trace = traceback.format_exc()

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "error_message": self.message,
            "context": self.context.to_dict() if self.context else None,
            "cause": str(self.cause) if self.cause else None,
            "severity": self.severity.value,
            "category": self.category.value,
            "retryable": self.retryable,
            "timestamp": self.timestamp.isoformat(),
        }


class MergeInputError(BaseDedupeError):
    """Primary or duplicate ids are missing from the snapshot."""

    def __init__(
        self,
        message: str,
        missing_ids: Sequence[str] = (),
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.INPUT,
            retryable=False,
        )
        self.missing_ids = list(missing_ids)


class StoreWriteError(BaseDedupeError):
    """A single record store call failed."""

    def __init__(
        self,
        message: str,
        operation: str,
        collection: str,
        record_id: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            context=context,
            cause=cause,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.STORE,
            retryable=True,
        )
        self.operation = operation
        self.collection = collection
        self.record_id = record_id


class StoreNotConfiguredError(BaseDedupeError):
    """The record store connection is unavailable."""

    def __init__(self, message: str = "Record store is not configured", context: Optional[ErrorContext] = None):
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.CRITICAL,
            category=ErrorCategory.CONFIGURATION,
            retryable=False,
        )


class MergeInProgressError(BaseDedupeError):
    """A merge targeting the same primary is already running."""

    def __init__(self, primary_id: str, context: Optional[ErrorContext] = None):
        super().__init__(
            f"A merge into contact {primary_id} is already in progress",
            context=context,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.CONCURRENCY,
            retryable=True,
        )
        self.primary_id = primary_id


class LedgerStorageError(BaseDedupeError):
    """The dismissal ledger could not be persisted."""

    def __init__(self, message: str, context: Optional[ErrorContext] = None, cause: Optional[Exception] = None):
        super().__init__(
            message,
            context=context,
            cause=cause,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.LEDGER,
            retryable=True,
        )


class ErrorHandler:
    """Centralized error handler with context preservation."""

    def __init__(self, audit_logger=None):
        """Initialize error handler.

        Args:
            audit_logger: Optional audit logger instance
        """
        self.audit_logger = audit_logger
        self._context_stack = threading.local()
        self.logger = logging.getLogger(__name__)

        # Error statistics
        self._error_counts: Dict[str, int] = {}
        self._error_history: List[BaseDedupeError] = []
        self._max_history_size = 1000
        self._stats_lock = threading.Lock()

    @contextmanager
    def error_context(self, **kwargs):
        """Context manager for error context.

        Usage:
            with error_handler.error_context(operation="reassign", resource_id="123"):
                # Operations that might raise errors
                pass
        """
        if not hasattr(self._context_stack, 'contexts'):
            self._context_stack.contexts = []

        context = ErrorContext(**kwargs)
        self._context_stack.contexts.append(context)

        try:
            yield context
        finally:
            if self._context_stack.contexts:
                self._context_stack.contexts.pop()

    def get_current_context(self) -> Optional[ErrorContext]:
        """Get current error context."""
        if hasattr(self._context_stack, 'contexts') and self._context_stack.contexts:
            return self._context_stack.contexts[-1]
        return None

    def handle_error(
        self,
        error: Exception,
        operation: Optional[str] = None,
        reraise: bool = True,
    ) -> Optional[BaseDedupeError]:
        """Handle an error with context preservation.

        Args:
            error: The error to handle
            operation: Operation being performed
            reraise: Whether to re-raise the error

        Returns:
            Wrapped error if applicable
        """
        context = self.get_current_context()
        if operation and context:
            context.operation = operation

        if isinstance(error, BaseDedupeError):
            wrapped_error = error
            if not wrapped_error.context and context:
                wrapped_error.context = context
        else:
            wrapped_error = self._wrap_error(error, context)

        bound = current_context()
        if bound:
            if wrapped_error.context is None:
                wrapped_error.context = ErrorContext(operation=operation or "unknown")
            wrapped_error.context.metadata.update(bound)

        self._log_error(wrapped_error)
        self._update_error_stats(wrapped_error)

        if reraise:
            if wrapped_error is error:
                raise wrapped_error
            raise wrapped_error from error

        return wrapped_error

    def _wrap_error(self, error: Exception, context: Optional[ErrorContext]) -> BaseDedupeError:
        """Wrap a foreign exception in the matching error type."""
        error_str = str(error) or type(error).__name__

        if context and context.resource_type:
            # Store calls run under a context naming the collection
            return StoreWriteError(
                error_str,
                operation=context.operation,
                collection=context.resource_type,
                record_id=context.resource_id,
                context=context,
                cause=error,
            )
        return BaseDedupeError(error_str, context=context, cause=error)

    def _log_error(self, error: BaseDedupeError) -> None:
        """Log error with appropriate severity."""
        error_dict = error.to_dict()

        if self.audit_logger is not None:
            self.audit_logger.log_error(
                error_type=error.__class__.__name__,
                error_message=error.message,
                context=error_dict,
            )

        if error.severity == ErrorSeverity.CRITICAL:
            self.logger.critical(f"Critical error: {error.message}", extra={"error": error_dict})
        elif error.severity == ErrorSeverity.HIGH:
            self.logger.error(f"Error: {error.message}", extra={"error": error_dict})
        elif error.severity == ErrorSeverity.MEDIUM:
            self.logger.warning(f"Warning: {error.message}", extra={"error": error_dict})
        else:
            self.logger.info(f"Info: {error.message}", extra={"error": error_dict})

    def _update_error_stats(self, error: BaseDedupeError) -> None:
        """Update error statistics."""
        error_type = error.__class__.__name__

        with self._stats_lock:
            self._error_counts[error_type] = self._error_counts.get(error_type, 0) + 1
            self._error_history.append(error)
            if len(self._error_history) > self._max_history_size:
                self._error_history = self._error_history[-self._max_history_size:]

    def get_error_stats(self) -> Dict[str, Any]:
        """Get error statistics."""
        with self._stats_lock:
            recent_errors = list(self._error_history[-100:])
            counts = self._error_counts.copy()

        severity_dist = {severity.value: 0 for severity in ErrorSeverity}
        for error in recent_errors:
            severity_dist[error.severity.value] += 1

        return {
            "total_errors": sum(counts.values()),
            "error_counts": counts,
            "severity_distribution": severity_dist,
            "retryable_errors": sum(1 for e in recent_errors if e.retryable),
            "non_retryable_errors": sum(1 for e in recent_errors if not e.retryable),
        }

    def create_user_friendly_message(self, error: BaseDedupeError) -> str:
        """Create user-facing message for the merge UI."""
        if isinstance(error, MergeInputError):
            return "Some of the selected contacts no longer exist. Refresh and try again."
        elif isinstance(error, StoreNotConfiguredError):
            return "The contact database is not connected, so contacts cannot be merged."
        elif isinstance(error, MergeInProgressError):
            return "This contact is already being merged. Wait for it to finish."
        elif isinstance(error, StoreWriteError):
            return f"Could not update {error.collection}. Retry the merge for the remaining contacts."
        elif isinstance(error, LedgerStorageError):
            return "Could not save the dismissal. Please try again."
        return f"Unexpected error: {error.message}"
