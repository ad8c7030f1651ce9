"""In-memory record store."""

import copy
import threading
from typing import Any, Dict, List, Optional, Set, Tuple

from .base import RecordStore, RepositoryError


class InMemoryRecordStore(RecordStore):
    """Dict-of-collections store for tests and embedding applications.

    Failures can be injected per (operation, collection, record_id) to
    exercise partial-merge behaviour.
    """

    def __init__(
        self,
        collections: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        configured: bool = True,
    ):
        super().__init__()
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._configured = configured
        self._failures: Set[Tuple[str, str, Optional[str]]] = set()
        self._lock = threading.RLock()
        self.calls: List[Tuple[str, str, Any]] = []

        for name, records in (collections or {}).items():
            self._collections[name] = {r["id"]: copy.deepcopy(r) for r in records}

    @property
    def is_configured(self) -> bool:
        return self._configured

    def fail_on(self, operation: str, collection: str, record_id: Optional[str] = None) -> None:
        """Make matching calls raise ``RepositoryError``.

        ``record_id=None`` fails every call of that operation on the collection.
        """
        self._failures.add((operation, collection, record_id))

    def clear_failures(self) -> None:
        self._failures.clear()

    def _check_failure(self, operation: str, collection: str, record_id: Optional[str]) -> None:
        if (operation, collection, record_id) in self._failures or (operation, collection, None) in self._failures:
            raise RepositoryError(
                f"Simulated {operation} failure on {collection}/{record_id}",
                collection=collection,
                record_id=record_id,
            )

    def records(self, collection: str) -> List[Dict[str, Any]]:
        """Copies of every record in ``collection``."""
        with self._lock:
            return [copy.deepcopy(r) for r in self._collections.get(collection, {}).values()]

    def get(self, collection: str, id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._collections.get(collection, {}).get(id)
            return copy.deepcopy(record) if record is not None else None

    def insert(self, collection: str, record: Dict[str, Any]) -> None:
        with self._lock:
            self._collections.setdefault(collection, {})[record["id"]] = copy.deepcopy(record)

    def update(self, collection: str, id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            self.calls.append(("update", collection, id))
            self._check_failure("update", collection, id)

            record = self._collections.get(collection, {}).get(id)
            if record is None:
                raise RepositoryError(f"{collection}/{id} not found", collection=collection, record_id=id)
            record.update(copy.deepcopy(patch))
            return copy.deepcopy(record)

    def delete(self, collection: str, id: str) -> bool:
        with self._lock:
            self.calls.append(("delete", collection, id))
            self._check_failure("delete", collection, id)

            records = self._collections.get(collection, {})
            if id not in records:
                raise RepositoryError(f"{collection}/{id} not found", collection=collection, record_id=id)
            del records[id]
            return True

    def query(self, collection: str, filter: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        with self._lock:
            self.calls.append(("query", collection, filter))
            self._check_failure("query", collection, None)

            filter = filter or {}
            return [
                copy.deepcopy(record)
                for record in self._collections.get(collection, {}).values()
                if all(record.get(k) == v for k, v in filter.items())
            ]

    def reassign(
        self,
        collection: str,
        foreign_key: str,
        from_id: str,
        to_id: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> int:
        with self._lock:
            self.calls.append(("reassign", collection, from_id))
            self._check_failure("reassign", collection, from_id)

            count = 0
            for record in self._collections.get(collection, {}).values():
                if record.get(foreign_key) == from_id:
                    record[foreign_key] = to_id
                    if extra:
                        record.update(copy.deepcopy(extra))
                    count += 1
            return count
