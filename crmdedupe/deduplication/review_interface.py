"""
Duplicate Review Session

The controller an operator-facing UI drives: scan for duplicates, hide
dismissed groups, merge a group into a chosen (or default) primary and keep
the listing in step with what actually happened in the store.

Change propagation is explicit. Listeners registered with ``subscribe`` are
called with the active groups whenever the scan result or the ledger
changes, and with ``auto_rescan`` the session re-runs matching when its
snapshot provider reports a change.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence

from ..config import ConfigManager, DedupeConfig
from ..errors.handlers import MergeInputError
from ..logging_config import log_event, setup_logging
from ..models.contact import Contact
from ..repositories.base import RecordStore, SnapshotProvider
from ..repositories.cache import ContactCache
from .core_engine import DuplicateGroup, DuplicateMatcher
from .dismissal_ledger import DismissalLedger, DismissedEntry, JsonFileLedgerStorage
from .merge_proposals import MergeExecutor, MergeResult

logger = logging.getLogger(__name__)

GroupListener = Callable[[List[DuplicateGroup]], None]


def _updated_ts(contact: Contact) -> float:
    if contact.updated_at is None:
        return float("-inf")
    if contact.updated_at.tzinfo is None:
        return contact.updated_at.replace(tzinfo=timezone.utc).timestamp()
    return contact.updated_at.timestamp()


def default_primary(contacts: Sequence[Contact]) -> Contact:
    """The most recently updated contact; the earliest listed wins ties."""
    best = contacts[0]
    for contact in contacts[1:]:
        if _updated_ts(contact) > _updated_ts(best):
            best = contact
    return best


class DuplicateReviewSession:
    """
    Stateful review workflow over one snapshot provider.

    Matching only reads an immutable snapshot, so it may run while a merge
    is in flight. Snapshot notifications raised during a merge made through
    this session are coalesced into a single rescan once the last merge
    finishes.
    """

    def __init__(
        self,
        snapshot_provider: SnapshotProvider,
        executor: MergeExecutor,
        ledger: Optional[DismissalLedger] = None,
        matcher: Optional[DuplicateMatcher] = None,
        auto_rescan: bool = False,
    ):
        """Initialize the review session."""
        self.snapshot_provider = snapshot_provider
        self.executor = executor
        self.ledger = ledger or DismissalLedger()
        self.matcher = matcher or DuplicateMatcher()
        self.auto_rescan = auto_rescan

        self.last_merge_result: Optional[MergeResult] = None

        self._groups: List[DuplicateGroup] = []
        self._scanning = False
        self._merges_in_flight = 0
        self._rescan_pending = False
        self._lock = threading.RLock()
        self._listeners: List[GroupListener] = []

        self._unsubscribers = [self.ledger.subscribe(self._notify)]
        if auto_rescan:
            self._unsubscribers.append(snapshot_provider.subscribe(self._on_snapshot_changed))

    @classmethod
    def from_config(
        cls,
        store: RecordStore,
        cache: ContactCache,
        config: Optional[DedupeConfig] = None,
        config_path: Optional[str] = None,
        user_id: Optional[str] = None,
        audit_logger=None,
        auto_rescan: bool = False,
        configure_logging: bool = False,
    ) -> "DuplicateReviewSession":
        """Build a session with every component taken from configuration.

        Args:
            store: Record store merges write through
            cache: Local contact cache, also the snapshot provider
            config: Config object (takes precedence)
            config_path: Path to config file
            user_id: Scopes the dismissal ledger file to one operator
            audit_logger: Optional audit logger shared by executor and ledger
            auto_rescan: Re-run matching when the cache changes
            configure_logging: Apply the logging section to the root logger
        """
        if config is None:
            config = ConfigManager(config_path).load()

        if configure_logging:
            setup_logging(config.logging.format, config.logging.level, config.logging.file)

        ledger = DismissalLedger(
            JsonFileLedgerStorage(config.ledger.path_for(user_id)),
            audit_logger=audit_logger,
        )
        executor = MergeExecutor(store, cache, config.merge, audit_logger=audit_logger)
        return cls(
            cache,
            executor,
            ledger,
            matcher=DuplicateMatcher(config.matching),
            auto_rescan=auto_rescan,
        )

    # Scan state

    @property
    def all_groups(self) -> List[DuplicateGroup]:
        with self._lock:
            return list(self._groups)

    @property
    def active_groups(self) -> List[DuplicateGroup]:
        """Scan result minus dismissed groups, recomputed on every read."""
        return self.ledger.filter_active(self.all_groups)

    @property
    def is_scanning(self) -> bool:
        return self._scanning

    @property
    def merging(self) -> FrozenSet[str]:
        return self.executor.merging

    def find_duplicates(self) -> List[DuplicateGroup]:
        """Re-run matching over the current snapshot and return the active groups."""
        self._scanning = True
        try:
            contacts = self.snapshot_provider.get_contacts()
            groups = self.matcher.find_duplicates(contacts)
        finally:
            self._scanning = False

        with self._lock:
            self._groups = groups

        self._notify()
        return self.active_groups

    def _on_snapshot_changed(self) -> None:
        with self._lock:
            if self._merges_in_flight:
                self._rescan_pending = True
                return
        self.find_duplicates()

    # Merging

    def merge_contacts(self, primary_id: str, duplicate_ids: Sequence[str]) -> bool:
        """
        Merge ``duplicate_ids`` into ``primary_id``.

        Returns True when the primary was patched and at least one duplicate
        was absorbed. The full per-duplicate accounting is kept in
        ``last_merge_result``.
        """
        with self._lock:
            self._merges_in_flight += 1

        try:
            result = self.executor.merge_contacts(primary_id, duplicate_ids)
        finally:
            with self._lock:
                self._merges_in_flight -= 1
                rescan = self._rescan_pending and not self._merges_in_flight
                if rescan:
                    self._rescan_pending = False

        self.last_merge_result = result
        log_event(
            __name__,
            "merge_finished",
            primary_id=primary_id,
            merged_count=len(result.merged_ids),
            failed_count=len(result.failed_ids),
            success=result.success,
        )
        if result.merged_ids:
            self._prune_groups(primary_id, duplicate_ids, result.merged_ids)

        if rescan:
            self.find_duplicates()
        return result.success

    def _prune_groups(self, primary_id: str, duplicate_ids: Sequence[str], merged_ids: Sequence[str]) -> None:
        """Drop the resolved group, keeping any members left behind for retry."""
        touched = {primary_id, *duplicate_ids}
        merged = set(merged_ids)
        current = {c.id: c for c in self.snapshot_provider.get_contacts()}

        with self._lock:
            pruned = []
            for group in self._groups:
                if not touched.intersection(group.contact_ids):
                    pruned.append(group)
                    continue
                remaining = [current.get(c.id, c) for c in group.contacts if c.id not in merged]
                if len(remaining) >= 2:
                    pruned.append(DuplicateGroup(
                        contacts=tuple(remaining),
                        match_type=group.match_type,
                        confidence=group.confidence,
                    ))
                    logger.info(f"🔁 Kept {len(remaining)} contacts of group {group.dismiss_key} for retry")
            self._groups = pruned

        self._notify()

    def merge_group(self, index: int, primary_id: Optional[str] = None) -> bool:
        """Merge the active group at ``index`` into ``primary_id`` or its default primary."""
        group = self.active_groups[index]
        return self._merge_into(group, primary_id)

    def merge_all(self, primaries: Optional[Dict[str, str]] = None) -> List[bool]:
        """
        Merge every active group in listing order.

        Args:
            primaries: Optional operator choices keyed by group dismiss key

        Returns:
            One result per group
        """
        primaries = primaries or {}
        results = []
        for group in self.active_groups:
            results.append(self._merge_into(group, primaries.get(group.dismiss_key)))

        logger.info(f"📊 Merge all: {sum(results)}/{len(results)} groups merged")
        return results

    def _merge_into(self, group: DuplicateGroup, primary_id: Optional[str]) -> bool:
        if primary_id is None:
            primary_id = default_primary(group.contacts).id
        elif primary_id not in group.contact_ids:
            error = MergeInputError(
                f"Contact {primary_id} is not a member of group {group.dismiss_key}",
                missing_ids=[primary_id],
            )
            self.executor.error_handler.handle_error(error, operation="merge_group", reraise=False)
            self.last_merge_result = MergeResult(success=False, primary_id=primary_id, errors=[error.message])
            return False

        duplicate_ids = [cid for cid in group.contact_ids if cid != primary_id]
        return self.merge_contacts(primary_id, duplicate_ids)

    # Dismissals

    def dismiss_group(self, index: int) -> DismissedEntry:
        """Mark the active group at ``index`` as not-a-duplicate."""
        return self.ledger.dismiss(self.active_groups[index])

    def clear_dismissals(self) -> int:
        return self.ledger.clear_all()

    # Listeners

    def subscribe(self, listener: GroupListener) -> Callable[[], None]:
        """Call ``listener`` with the active groups after every change."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        active = self.active_groups
        for listener in list(self._listeners):
            listener(active)

    def close(self) -> None:
        """Detach from the snapshot provider and the ledger."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def summary(self) -> Dict[str, object]:
        """Counts for a status line."""
        groups = self.all_groups
        active = self.ledger.filter_active(groups)
        return {
            "total_groups": len(groups),
            "active_groups": len(active),
            "dismissed_groups": len(groups) - len(active),
            "merging": sorted(self.merging),
            "generated_at": datetime.now(timezone.utc).isoformat(),
        }
