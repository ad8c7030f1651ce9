"""Unit tests for record stores and the contact cache."""

import pytest
from unittest.mock import Mock

from crmdedupe.repositories import ContactCache, InMemoryRecordStore, RecordStore, RepositoryError


class QueryUpdateStore(RecordStore):
    """Store without a bulk reassign, exercising the default implementation."""

    def __init__(self, inner):
        super().__init__()
        self.inner = inner

    def update(self, collection, id, patch):
        return self.inner.update(collection, id, patch)

    def delete(self, collection, id):
        return self.inner.delete(collection, id)

    def query(self, collection, filter=None):
        return self.inner.query(collection, filter)


@pytest.fixture
def store():
    return InMemoryRecordStore({
        "contacts": [{"id": "c1", "first_name": "Ada"}, {"id": "c2", "first_name": "Bo"}],
        "deals": [
            {"id": "deal-1", "contact_id": "c1"},
            {"id": "deal-2", "contact_id": "c1"},
            {"id": "deal-3", "contact_id": "c2"},
        ],
    })


class TestInMemoryRecordStore:
    """Test the dict-backed store."""

    def test_update(self, store):
        updated = store.update("contacts", "c1", {"job_title": "CEO"})

        assert updated["job_title"] == "CEO"
        assert store.get("contacts", "c1")["job_title"] == "CEO"

    def test_update_missing_record(self, store):
        with pytest.raises(RepositoryError) as exc_info:
            store.update("contacts", "ghost", {})

        assert exc_info.value.record_id == "ghost"

    def test_delete(self, store):
        assert store.delete("contacts", "c2") is True
        assert store.get("contacts", "c2") is None

        with pytest.raises(RepositoryError):
            store.delete("contacts", "c2")

    def test_query_filter(self, store):
        assert [r["id"] for r in store.query("deals", {"contact_id": "c1"})] == ["deal-1", "deal-2"]
        assert len(store.query("deals")) == 3

    def test_returned_records_are_copies(self, store):
        store.get("contacts", "c1")["first_name"] = "Changed"

        assert store.get("contacts", "c1")["first_name"] == "Ada"

    def test_reassign_with_extra(self, store):
        count = store.reassign("deals", "contact_id", "c1", "c2", extra={"updated_at": "now"})

        assert count == 2
        assert all(r["contact_id"] == "c2" for r in store.records("deals"))
        assert store.get("deals", "deal-1")["updated_at"] == "now"
        assert "updated_at" not in store.get("deals", "deal-3")

    def test_failure_injection(self, store):
        store.fail_on("delete", "contacts", "c1")

        with pytest.raises(RepositoryError):
            store.delete("contacts", "c1")
        assert store.delete("contacts", "c2") is True

        store.clear_failures()
        assert store.delete("contacts", "c1") is True

    def test_calls_recorded(self, store):
        store.update("contacts", "c1", {})
        store.reassign("deals", "contact_id", "c1", "c2")

        assert store.calls == [("update", "contacts", "c1"), ("reassign", "deals", "c1")]

    def test_not_configured(self):
        assert InMemoryRecordStore(configured=False).is_configured is False


class TestDefaultReassign:
    """Test query-then-update reassignment."""

    def test_reassigns_each_match(self, store):
        wrapper = QueryUpdateStore(store)

        assert wrapper.is_configured is True
        assert wrapper.reassign("deals", "contact_id", "c1", "c2", extra={"updated_at": "now"}) == 2
        assert {r["contact_id"] for r in store.records("deals")} == {"c2"}
        assert ("update", "deals", "deal-1") in store.calls

    def test_propagates_store_errors(self, store):
        store.fail_on("update", "deals", "deal-2")

        with pytest.raises(RepositoryError):
            QueryUpdateStore(store).reassign("deals", "contact_id", "c1", "c2")


class TestContactCache:
    """Test the in-memory snapshot provider."""

    @pytest.fixture
    def cache(self, make_contact):
        return ContactCache(
            [make_contact("c1", tags=["a"]), make_contact("c2")],
            {"deals": [{"id": "deal-1", "contact_id": "c2"}]},
        )

    def test_snapshot_is_stable(self, cache):
        snapshot = cache.get_contacts()

        cache.apply_patch("c1", {"tags": ["a", "b"]})
        cache.remove("c2")

        assert isinstance(snapshot, tuple)
        assert [c.id for c in snapshot] == ["c1", "c2"]
        assert snapshot[0].tags == ["a"]
        assert cache.get_contact("c1").tags == ["a", "b"]

    def test_apply_patch_unknown_contact(self, cache):
        assert cache.apply_patch("ghost", {"notes": "x"}) is None

    def test_notifications(self, cache, make_contact):
        listener = Mock()
        unsubscribe = cache.subscribe(listener)

        cache.upsert(make_contact("c3"))
        cache.apply_patch("c1", {"notes": "x"})
        cache.remove("c2")
        cache.remove("ghost")
        assert listener.call_count == 3

        unsubscribe()
        cache.replace_all([])
        assert listener.call_count == 3
        assert cache.get_contacts() == ()

    def test_upsert_replaces_existing(self, cache, make_contact):
        cache.upsert(make_contact("c1", notes="replaced"))

        assert len(cache.get_contacts()) == 2
        assert cache.get_contact("c1").notes == "replaced"

    def test_reassign_dependents(self, cache):
        assert cache.reassign_dependents("deals", "contact_id", "c2", "c1") == 1
        assert cache.dependents("deals")[0]["contact_id"] == "c1"
        assert cache.dependents("emails") == []
