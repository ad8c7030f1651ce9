"""Repository pattern implementation for record store access."""

from .base import RecordStore, RepositoryError, SnapshotProvider
from .memory import InMemoryRecordStore
from .cache import ContactCache

__all__ = [
    "RecordStore",
    "RepositoryError",
    "SnapshotProvider",
    "InMemoryRecordStore",
    "ContactCache",
]
