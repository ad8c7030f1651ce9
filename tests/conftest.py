"""Test configuration and fixtures for deduplication and merge tests."""

import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import pytest
from unittest.mock import Mock

from crmdedupe.models.contact import Contact
from crmdedupe.repositories import ContactCache, InMemoryRecordStore
from crmdedupe.deduplication.merge_proposals import MergeExecutor


# Names far enough apart that the fuzzy name pass never pairs them
_DISTINCT_NAMES = [
    ("Alice", "Anderson"),
    ("Bruno", "Kowalski"),
    ("Chidi", "Okafor"),
    ("Dana", "Whitfield"),
    ("Eero", "Virtanen"),
    ("Farah", "Haddad"),
    ("Goran", "Petrovic"),
    ("Hana", "Suzuki"),
    ("Ines", "Moreau"),
    ("Jamal", "Greene"),
    ("Kirsi", "Lindqvist"),
    ("Lorenzo", "Bianchi"),
]

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def make_contact():
    """Factory for contacts with unique, non-matching names by default."""
    names = itertools.cycle(_DISTINCT_NAMES)

    def _make(contact_id: str, **fields: Any) -> Contact:
        first, last = next(names)
        data = {"id": contact_id, "first_name": first, "last_name": last}
        data.update(fields)
        return Contact(**data)

    return _make


@pytest.fixture
def merge_contacts(make_contact) -> List[Contact]:
    """A primary with three duplicates carrying complementary data."""
    return [
        make_contact(
            "p",
            email="dana@example.com",
            tags=["vip"],
            custom_fields={"region": "emea"},
            lead_score=20,
            updated_at=BASE_TIME,
        ),
        make_contact(
            "d1",
            email="dana@example.com",
            phone="+44 20 7946 0958",
            tags=["enterprise"],
            custom_fields={"region": "apac", "tier": "gold"},
            lead_score=65,
            lead_score_label="warm",
            updated_at=BASE_TIME + timedelta(days=1),
        ),
        make_contact(
            "d2",
            email="dana@example.com",
            job_title="CTO",
            tags=["vip", "newsletter"],
            updated_at=BASE_TIME + timedelta(days=2),
        ),
        make_contact(
            "d3",
            email="dana@example.com",
            notes="Met at the trade show",
            lead_score=40,
            updated_at=BASE_TIME + timedelta(days=3),
        ),
    ]


@pytest.fixture
def dependent_records() -> Dict[str, List[Dict[str, Any]]]:
    """Records in every dependent collection referencing the duplicates."""
    return {
        "deals": [
            {"id": "deal-1", "contact_id": "d1", "title": "Renewal"},
            {"id": "deal-2", "contact_id": "d3", "title": "Upsell"},
            {"id": "deal-3", "contact_id": "p", "title": "Pilot"},
        ],
        "crm_interactions": [
            {"id": "int-1", "contact_id": "d1", "kind": "call"},
            {"id": "int-2", "contact_id": "d2", "kind": "meeting"},
        ],
        "emails": [
            {"id": "em-1", "contact_id": "d2", "subject": "Intro"},
        ],
        "calendar_events": [
            {"id": "ev-1", "contact_id": "d3", "title": "Demo"},
        ],
    }


@pytest.fixture
def record_store(merge_contacts, dependent_records) -> InMemoryRecordStore:
    collections = {"contacts": [c.to_record() for c in merge_contacts]}
    collections.update(dependent_records)
    return InMemoryRecordStore(collections)


@pytest.fixture
def contact_cache(merge_contacts, dependent_records) -> ContactCache:
    return ContactCache(merge_contacts, dependent_records)


@pytest.fixture
def mock_audit_logger():
    return Mock()


@pytest.fixture
def executor(record_store, contact_cache, mock_audit_logger) -> MergeExecutor:
    return MergeExecutor(record_store, contact_cache, audit_logger=mock_audit_logger)
