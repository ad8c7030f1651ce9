"""Data models for the contact deduplication engine."""

from .contact import Contact, LeadScoreLabel, LifecycleStatus, FILLABLE_FIELDS

__all__ = [
    "Contact",
    "LeadScoreLabel",
    "LifecycleStatus",
    "FILLABLE_FIELDS",
]
