"""Base interfaces for the record store and the contact snapshot."""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

from ..models.contact import Contact


class RepositoryError(Exception):
    """Repository-specific error."""

    def __init__(self, message: str, collection: Optional[str] = None, record_id: Optional[str] = None):
        super().__init__(message)
        self.collection = collection
        self.record_id = record_id


class RecordStore(ABC):
    """Abstract record store the merge executor writes through.

    Every call either succeeds or raises ``RepositoryError``. There is no
    cross-call transaction.
    """

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def is_configured(self) -> bool:
        """Whether the underlying connection is usable."""
        return True

    @abstractmethod
    def update(self, collection: str, id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        """Apply ``patch`` to one record.

        Args:
            collection: Collection (table) name
            id: Record ID
            patch: Fields to overwrite

        Returns:
            Updated record

        Raises:
            RepositoryError: If the record is missing or the write fails
        """
        pass

    @abstractmethod
    def delete(self, collection: str, id: str) -> bool:
        """Delete one record.

        Raises:
            RepositoryError: If deletion fails
        """
        pass

    @abstractmethod
    def query(self, collection: str, filter: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Return records whose fields equal every value in ``filter``.

        Raises:
            RepositoryError: If the query fails
        """
        pass

    def reassign(
        self,
        collection: str,
        foreign_key: str,
        from_id: str,
        to_id: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Re-point every record referencing ``from_id`` to ``to_id``.

        Stores with a bulk update should override this.

        Returns:
            Number of records changed
        """
        patch = {foreign_key: to_id}
        if extra:
            patch.update(extra)

        count = 0
        for record in self.query(collection, {foreign_key: from_id}):
            self.update(collection, record["id"], patch)
            count += 1
        return count


Listener = Callable[[], None]


class SnapshotProvider(ABC):
    """Supplies the current contact list to the matcher."""

    def __init__(self):
        self._listeners: List[Listener] = []

    @abstractmethod
    def get_contacts(self) -> Tuple[Contact, ...]:
        """Return an immutable snapshot of every contact."""
        pass

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for change notifications.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify_changed(self) -> None:
        """Tell subscribers the snapshot changed."""
        for listener in list(self._listeners):
            listener()
