"""
Dismissal Ledger

Durable record of groups an operator reviewed and judged not to be
duplicates. Keys are the sorted, pipe-joined member ids, so a dismissal
applies to that exact membership regardless of enumeration order. A group
that later gains a member has a new key and surfaces again.
"""

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from ..errors.handlers import LedgerStorageError
from ..logging_config import log_error
from .core_engine import DuplicateGroup, MatchType, make_dismiss_key

logger = logging.getLogger(__name__)


@dataclass
class DismissedEntry:
    """A reviewed-and-rejected duplicate group."""
    key: str
    match_type: MatchType
    dismissed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "match_type": self.match_type.value,
            "dismissed_at": self.dismissed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DismissedEntry":
        return cls(
            key=data["key"],
            match_type=MatchType(data["match_type"]),
            dismissed_at=datetime.fromisoformat(data["dismissed_at"]),
        )


class LedgerStorage(ABC):
    """Small durable store holding the serialized ledger."""

    @abstractmethod
    def load(self) -> List[Dict[str, Any]]:
        """Return every stored entry, oldest first."""
        pass

    @abstractmethod
    def save(self, entries: List[Dict[str, Any]]) -> None:
        """Replace the stored entries.

        Raises:
            LedgerStorageError: If the entries could not be written
        """
        pass


class InMemoryLedgerStorage(LedgerStorage):
    def __init__(self, entries: Optional[List[Dict[str, Any]]] = None):
        self._entries = list(entries or [])

    def load(self) -> List[Dict[str, Any]]:
        return [dict(e) for e in self._entries]

    def save(self, entries: List[Dict[str, Any]]) -> None:
        self._entries = [dict(e) for e in entries]


class JsonFileLedgerStorage(LedgerStorage):
    """Ledger persisted as a JSON list in a single file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []

        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            # Unreadable ledger: surface everything again rather than fail the scan
            log_error(__name__, "ledger_load_failed", e, path=str(self.path))
            return []

        if not isinstance(data, list):
            logger.warning(f"Ledger file {self.path} does not hold a list, ignoring it")
            return []
        return [entry for entry in data if isinstance(entry, dict)]

    def save(self, entries: List[Dict[str, Any]]) -> None:
        """Write the full ledger; readers see the old or the new file, never a torn one."""
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w") as f:
                json.dump(entries, f, indent=2)
            os.replace(temp_path, self.path)
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise LedgerStorageError(f"Failed to write dismissal ledger {self.path}: {e}", cause=e) from e


class DismissalLedger:
    """User-scoped list of dismissed duplicate groups."""

    def __init__(self, storage: Optional[LedgerStorage] = None, audit_logger=None):
        self.storage = storage or InMemoryLedgerStorage()
        self.audit_logger = audit_logger
        self._lock = threading.RLock()
        self._listeners: List[Callable[[], None]] = []
        self._entries: List[DismissedEntry] = self._load()

    def _load(self) -> List[DismissedEntry]:
        entries = []
        for raw in self.storage.load():
            try:
                entries.append(DismissedEntry.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed ledger entry {raw!r}: {e}")
        return entries

    @property
    def entries(self) -> List[DismissedEntry]:
        with self._lock:
            return list(self._entries)

    @property
    def keys(self) -> set:
        with self._lock:
            return {entry.key for entry in self._entries}

    def dismiss(self, group: DuplicateGroup) -> DismissedEntry:
        """Record ``group`` as not-a-duplicate and persist the ledger.

        Dismissing an already-dismissed membership returns the existing entry.
        """
        key = group.dismiss_key
        with self._lock:
            for entry in self._entries:
                if entry.key == key:
                    return entry

            entry = DismissedEntry(key=key, match_type=group.match_type)
            updated = self._entries + [entry]
            self.storage.save([e.to_dict() for e in updated])
            self._entries = updated

        logger.info(f"🙈 Dismissed {group.match_type.value} group {key}")
        if self.audit_logger:
            self.audit_logger.log_duplicate_dismissed(key, group.match_type.value, group.contact_ids)
        self._notify()
        return entry

    def is_dismissed(self, group: Union[DuplicateGroup, Sequence[str]]) -> bool:
        """Whether this exact membership was dismissed; accepts a group or its ids."""
        if isinstance(group, DuplicateGroup):
            key = group.dismiss_key
        else:
            key = make_dismiss_key(group)
        return key in self.keys

    def clear_all(self) -> int:
        """Forget every dismissal. Returns the number removed."""
        with self._lock:
            count = len(self._entries)
            self.storage.save([])
            self._entries = []

        logger.info(f"🧹 Cleared {count} dismissed groups")
        if self.audit_logger:
            self.audit_logger.log_dismissals_cleared(count)
        self._notify()
        return count

    def filter_active(self, groups: Sequence[DuplicateGroup]) -> List[DuplicateGroup]:
        """Groups whose membership has not been dismissed, order preserved."""
        dismissed = self.keys
        return [g for g in groups if g.dismiss_key not in dismissed]

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Call ``listener`` whenever the ledger changes."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()
