"""
Contact Deduplication and Safe Merge

Detects contact records that plausibly describe the same person and merges
them into an operator-chosen survivor without orphaning dependent records.

Components:
- Normalization: Canonical email, phone and name forms
- Similarity Scoring: Rolling-row Levenshtein distance
- Core Engine: Three-pass matcher (email, phone, fuzzy name)
- Merge Proposals: Field resolution and ordered merge execution
- Dismissal Ledger: Persisted "not a duplicate" decisions
- Review Interface: Session driving scans, merges and dismissals

Usage:
    from crmdedupe.deduplication import find_duplicate_contacts

    groups = find_duplicate_contacts(contacts)
"""

from .normalization import normalize_email, normalize_name, normalize_phone
from .similarity_scoring import levenshtein_distance, is_fuzzy_name_match
from .core_engine import (
    DuplicateGroup,
    DuplicateMatcher,
    MatchConfidence,
    MatchType,
    find_duplicate_contacts,
    make_dismiss_key,
)
from .merge_proposals import (
    DuplicateOutcome,
    MergeExecutor,
    MergeResult,
    compute_merged_fields,
)
from .dismissal_ledger import (
    DismissalLedger,
    DismissedEntry,
    InMemoryLedgerStorage,
    JsonFileLedgerStorage,
    LedgerStorage,
)
from .review_interface import DuplicateReviewSession, default_primary

__all__ = [
    # Normalization
    "normalize_email",
    "normalize_name",
    "normalize_phone",
    # Similarity scoring
    "levenshtein_distance",
    "is_fuzzy_name_match",
    # Core engine
    "DuplicateGroup",
    "DuplicateMatcher",
    "MatchConfidence",
    "MatchType",
    "find_duplicate_contacts",
    "make_dismiss_key",
    # Merge execution
    "DuplicateOutcome",
    "MergeExecutor",
    "MergeResult",
    "compute_merged_fields",
    # Dismissals
    "DismissalLedger",
    "DismissedEntry",
    "InMemoryLedgerStorage",
    "JsonFileLedgerStorage",
    "LedgerStorage",
    # Review
    "DuplicateReviewSession",
    "default_primary",
]
