"""Error handling module for deduplication and merge operations."""

from .handlers import (
    ErrorHandler,
    ErrorContext,
    ErrorSeverity,
    ErrorCategory,
    BaseDedupeError,
    MergeInputError,
    StoreWriteError,
    StoreNotConfiguredError,
    MergeInProgressError,
    LedgerStorageError,
)

__all__ = [
    "ErrorHandler",
    "ErrorContext",
    "ErrorSeverity",
    "ErrorCategory",
    "BaseDedupeError",
    "MergeInputError",
    "StoreWriteError",
    "StoreNotConfiguredError",
    "MergeInProgressError",
    "LedgerStorageError",
]
