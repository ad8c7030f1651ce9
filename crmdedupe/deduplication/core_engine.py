"""
Core Duplicate Matcher

Runs the three detection passes over a contact snapshot and emits duplicate
groups ranked by confidence:

1. Email (high): identical normalized email.
2. Phone (medium): identical normalized phone of at least seven digits.
3. Name (low): greedy clustering of full names within a small edit distance.

Passes run in that order and a contact claimed by one pass is invisible to
the later ones, so every contact lands in at most one group.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Set, Tuple

from ..config import MatchingConfig
from ..logging_config import Timer, log_performance
from ..models.contact import Contact
from .normalization import normalize_email, normalize_name, normalize_phone
from .similarity_scoring import is_fuzzy_name_match

logger = logging.getLogger(__name__)


class MatchType(str, Enum):
    """Signal that tied a group together."""
    EMAIL = "email"
    PHONE = "phone"
    NAME = "name"


class MatchConfidence(str, Enum):
    """Qualitative strength of a match signal."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


def make_dismiss_key(contact_ids: Sequence[str]) -> str:
    """Order-independent key for a set of contact ids."""
    return "|".join(sorted(contact_ids))


@dataclass(frozen=True)
class DuplicateGroup:
    """Contacts believed to represent the same person."""
    contacts: Tuple[Contact, ...]
    match_type: MatchType
    confidence: MatchConfidence

    def __post_init__(self):
        object.__setattr__(self, "contacts", tuple(self.contacts))
        if len(self.contacts) < 2:
            raise ValueError("A duplicate group needs at least two contacts")

    @property
    def contact_ids(self) -> List[str]:
        return [c.id for c in self.contacts]

    @property
    def dismiss_key(self) -> str:
        return make_dismiss_key(self.contact_ids)

    def to_dict(self) -> Dict[str, object]:
        return {
            "contact_ids": self.contact_ids,
            "match_type": self.match_type.value,
            "confidence": self.confidence.value,
        }


class DuplicateMatcher:
    """
    Three-pass duplicate detector.

    Pure and deterministic: the same snapshot in the same order always yields
    the same groups in the same order. Safe to run concurrently with merges
    because it only reads the snapshot it is given.
    """

    def __init__(self, config: Optional[MatchingConfig] = None):
        """Initialize the matcher."""
        self.config = config or MatchingConfig()

    def find_duplicates(self, contacts: Sequence[Contact]) -> List[DuplicateGroup]:
        """
        Detect duplicate groups in ``contacts``.

        Args:
            contacts: Snapshot of contacts, in a stable order

        Returns:
            Email groups, then phone groups, then name groups
        """
        with Timer() as timer:
            claimed: Set[str] = set()
            groups = self._email_pass(contacts, claimed)
            groups += self._phone_pass(contacts, claimed)
            groups += self._name_pass(contacts, claimed)

        log_performance(
            __name__,
            "duplicate_scan",
            timer.duration_ms,
            contact_count=len(contacts),
            group_count=len(groups),
        )
        logger.info(f"🔍 Found {len(groups)} duplicate groups in {len(contacts)} contacts")
        return groups

    def _email_pass(self, contacts: Sequence[Contact], claimed: Set[str]) -> List[DuplicateGroup]:
        by_email: "OrderedDict[str, List[Contact]]" = OrderedDict()
        for contact in contacts:
            email = normalize_email(contact.email)
            if not email:
                continue
            by_email.setdefault(email, []).append(contact)

        return self._emit(by_email.values(), MatchType.EMAIL, MatchConfidence.HIGH, claimed)

    def _phone_pass(self, contacts: Sequence[Contact], claimed: Set[str]) -> List[DuplicateGroup]:
        by_phone: "OrderedDict[str, List[Contact]]" = OrderedDict()
        for contact in contacts:
            if contact.id in claimed:
                continue
            phone = normalize_phone(contact.phone)
            # Short or partial numbers collide too often
            if len(phone) < self.config.min_phone_digits:
                continue
            by_phone.setdefault(phone, []).append(contact)

        return self._emit(by_phone.values(), MatchType.PHONE, MatchConfidence.MEDIUM, claimed)

    def _name_pass(self, contacts: Sequence[Contact], claimed: Set[str]) -> List[DuplicateGroup]:
        remaining = [
            (contact, normalize_name(contact.first_name, contact.last_name))
            for contact in contacts
            if contact.id not in claimed
        ]

        clusters: List[List[Contact]] = []
        name_claimed: Set[str] = set()

        # Greedy: each contact only collects later ones that match it directly
        for i, (contact, name) in enumerate(remaining):
            if contact.id in name_claimed:
                continue
            cluster = [contact]
            for other, other_name in remaining[i + 1:]:
                if other.id in name_claimed:
                    continue
                if is_fuzzy_name_match(
                    name,
                    other_name,
                    max_distance=self.config.max_name_distance,
                    min_length=self.config.min_name_length,
                ):
                    cluster.append(other)
                    name_claimed.add(other.id)
            if len(cluster) >= 2:
                name_claimed.add(contact.id)
                clusters.append(cluster)

        return self._emit(clusters, MatchType.NAME, MatchConfidence.LOW, claimed)

    def _emit(self, buckets, match_type: MatchType, confidence: MatchConfidence,
              claimed: Set[str]) -> List[DuplicateGroup]:
        groups = []
        for members in buckets:
            if len(members) < 2:
                continue
            groups.append(DuplicateGroup(contacts=tuple(members), match_type=match_type, confidence=confidence))
            claimed.update(c.id for c in members)
        return groups


def find_duplicate_contacts(contacts: Sequence[Contact],
                            config: Optional[MatchingConfig] = None) -> List[DuplicateGroup]:
    """Run the three-pass matcher with default or supplied thresholds."""
    return DuplicateMatcher(config).find_duplicates(contacts)
