"""Contact record deduplication and safe-merge engine."""

__version__ = "0.1.0"
