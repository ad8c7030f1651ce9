"""Unit tests for merge field resolution."""

import itertools
from datetime import datetime, timezone

import pytest

from crmdedupe.deduplication.merge_proposals import compute_merged_fields, to_store_patch
from crmdedupe.models.contact import FILLABLE_FIELDS, LeadScoreLabel


class TestFillableFields:
    """Test fill-missing behaviour."""

    def test_fills_from_first_non_empty_duplicate(self, make_contact):
        primary = make_contact("p")
        duplicates = [
            make_contact("d1", email="", job_title=None),
            make_contact("d2", email="second@x.com", job_title="CFO"),
            make_contact("d3", email="third@x.com"),
        ]

        patch = compute_merged_fields(primary, duplicates)

        assert patch["email"] == "second@x.com"
        assert patch["job_title"] == "CFO"

    def test_never_overwrites_primary_values(self, make_contact):
        contacted = datetime(2024, 3, 1, tzinfo=timezone.utc)
        values = {
            "email": "keep@x.com",
            "phone": "5551234567",
            "avatar_url": "https://img/p.png",
            "company_id": "co-1",
            "job_title": "CEO",
            "lead_source": "referral",
            "owner_agent_id": "agent-1",
            "notes": "primary notes",
            "last_contacted_at": contacted,
        }
        primary = make_contact("p", **values)
        duplicate = make_contact(
            "d",
            **{name: "other" for name in FILLABLE_FIELDS if name != "last_contacted_at"},
            last_contacted_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
        )

        patch = compute_merged_fields(primary, [duplicate])

        assert not set(FILLABLE_FIELDS) & set(patch)

    def test_empty_duplicates_leave_patch_empty(self, make_contact):
        assert compute_merged_fields(make_contact("p"), [make_contact("d")]) == {}


class TestTagUnion:
    """Test tag union semantics."""

    def test_union_of_disjoint_tags(self, make_contact):
        primary = make_contact("p", tags=["vip"])
        duplicate = make_contact("d", tags=["enterprise"])

        patch = compute_merged_fields(primary, [duplicate])

        assert sorted(patch["tags"]) == ["enterprise", "vip"]
        assert len(patch["tags"]) == 2

    def test_no_write_when_nothing_new(self, make_contact):
        primary = make_contact("p", tags=["a", "b"])
        duplicate = make_contact("d", tags=["b"])

        assert "tags" not in compute_merged_fields(primary, [duplicate])

    def test_commutative_over_duplicates(self, make_contact):
        primary = make_contact("p", tags=["a"])
        duplicates = [
            make_contact("d1", tags=["b", "c"]),
            make_contact("d2", tags=["c", "d"]),
            make_contact("d3", tags=["e"]),
        ]

        results = {
            frozenset(compute_merged_fields(primary, list(order))["tags"])
            for order in itertools.permutations(duplicates)
        }

        assert results == {frozenset("abcde")}

    def test_idempotent(self, make_contact):
        primary = make_contact("p", tags=["a"])
        duplicate = make_contact("d", tags=["b"])

        once = compute_merged_fields(primary, [duplicate])
        twice = compute_merged_fields(primary, [duplicate, duplicate])
        merged = primary.with_patch(once)

        assert set(once["tags"]) == set(twice["tags"])
        assert "tags" not in compute_merged_fields(merged, [duplicate])


class TestCustomFields:
    """Test custom attribute union."""

    def test_primary_wins_collisions(self, make_contact):
        primary = make_contact("p", custom_fields={"region": "emea"})
        duplicate = make_contact("d", custom_fields={"region": "apac", "tier": "gold"})

        patch = compute_merged_fields(primary, [duplicate])

        assert patch["custom_fields"] == {"region": "emea", "tier": "gold"}

    def test_no_write_without_new_keys(self, make_contact):
        primary = make_contact("p", custom_fields={"region": "emea"})
        duplicate = make_contact("d", custom_fields={"region": "apac"})

        assert "custom_fields" not in compute_merged_fields(primary, [duplicate])


class TestLeadScore:
    """Test lead score and label adoption."""

    def test_adopts_highest_score_with_label(self, make_contact):
        primary = make_contact("p", lead_score=10)
        duplicates = [
            make_contact("d1", lead_score=50, lead_score_label="warm"),
            make_contact("d2", lead_score=80, lead_score_label="hot"),
        ]

        patch = compute_merged_fields(primary, duplicates)

        assert patch["lead_score"] == 80
        assert patch["lead_score_label"] == LeadScoreLabel.HOT

    @pytest.mark.parametrize("duplicate_score", [90, 40])
    def test_keeps_primary_score_when_not_exceeded(self, make_contact, duplicate_score):
        primary = make_contact("p", lead_score=90, lead_score_label="hot")
        duplicate = make_contact("d", lead_score=duplicate_score, lead_score_label="warm")

        patch = compute_merged_fields(primary, [duplicate])

        assert "lead_score" not in patch
        assert "lead_score_label" not in patch

    def test_first_duplicate_wins_score_tie(self, make_contact):
        primary = make_contact("p", lead_score=0)
        duplicates = [
            make_contact("d1", lead_score=70, lead_score_label="warm"),
            make_contact("d2", lead_score=70, lead_score_label="hot"),
        ]

        patch = compute_merged_fields(primary, duplicates)

        assert patch["lead_score_label"] == LeadScoreLabel.WARM


class TestResolverProperties:
    """Test purity and serialization."""

    def test_deterministic(self, merge_contacts):
        primary, duplicates = merge_contacts[0], merge_contacts[1:]

        assert compute_merged_fields(primary, duplicates) == compute_merged_fields(primary, duplicates)

    def test_inputs_untouched(self, merge_contacts):
        primary, duplicates = merge_contacts[0], merge_contacts[1:]
        before = primary.model_dump()

        compute_merged_fields(primary, duplicates)

        assert primary.model_dump() == before

    def test_store_patch_plain_values(self):
        stamp = datetime(2024, 1, 1, tzinfo=timezone.utc)

        patch = to_store_patch({"lead_score_label": LeadScoreLabel.HOT, "updated_at": stamp, "tags": ["a"]})

        assert patch == {"lead_score_label": "hot", "updated_at": stamp.isoformat(), "tags": ["a"]}
