"""In-memory contact cache acting as the matcher's snapshot provider."""

import copy
import threading
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..models.contact import Contact
from .base import SnapshotProvider


class ContactCache(SnapshotProvider):
    """Local copy of contacts and the records that reference them.

    Readers always receive a tuple snapshot; mutations replace contacts
    rather than editing them, so a snapshot handed to the matcher never
    changes underneath it.
    """

    def __init__(
        self,
        contacts: Iterable[Contact] = (),
        dependents: Optional[Dict[str, List[Dict[str, Any]]]] = None,
    ):
        super().__init__()
        self._lock = threading.RLock()
        self._contacts: List[Contact] = list(contacts)
        self._dependents: Dict[str, List[Dict[str, Any]]] = copy.deepcopy(dependents or {})

    def get_contacts(self) -> Tuple[Contact, ...]:
        with self._lock:
            return tuple(self._contacts)

    def get_contact(self, contact_id: str) -> Optional[Contact]:
        with self._lock:
            for contact in self._contacts:
                if contact.id == contact_id:
                    return contact
        return None

    def dependents(self, collection: str) -> List[Dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._dependents.get(collection, []))

    def replace_all(self, contacts: Iterable[Contact]) -> None:
        """Swap in a freshly fetched contact list."""
        with self._lock:
            self._contacts = list(contacts)
        self.notify_changed()

    def upsert(self, contact: Contact) -> None:
        with self._lock:
            for i, existing in enumerate(self._contacts):
                if existing.id == contact.id:
                    self._contacts[i] = contact
                    break
            else:
                self._contacts.append(contact)
        self.notify_changed()

    def apply_patch(self, contact_id: str, patch: Dict[str, Any]) -> Optional[Contact]:
        """Replace the cached contact with a patched copy."""
        with self._lock:
            for i, existing in enumerate(self._contacts):
                if existing.id == contact_id:
                    updated = existing.with_patch(patch)
                    self._contacts[i] = updated
                    break
            else:
                return None
        self.notify_changed()
        return updated

    def remove(self, contact_id: str) -> bool:
        with self._lock:
            before = len(self._contacts)
            self._contacts = [c for c in self._contacts if c.id != contact_id]
            removed = len(self._contacts) != before
        if removed:
            self.notify_changed()
        return removed

    def reassign_dependents(
        self,
        collection: str,
        foreign_key: str,
        from_id: str,
        to_id: str,
    ) -> int:
        """Re-point cached dependent records, mirroring a store reassignment."""
        count = 0
        with self._lock:
            for record in self._dependents.get(collection, []):
                if record.get(foreign_key) == from_id:
                    record[foreign_key] = to_id
                    count += 1
        return count
