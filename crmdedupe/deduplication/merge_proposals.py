"""
Merge Resolution and Execution

Computes the field updates a surviving contact receives from its duplicates
and applies a merge against the record store: patch the primary, re-point
every dependent record, then delete each duplicate.
"""

import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Set
from dataclasses import dataclass, field

from ..config import MergeConfig
from ..errors.handlers import (
    BaseDedupeError,
    ErrorHandler,
    MergeInProgressError,
    MergeInputError,
    StoreNotConfiguredError,
)
from ..models.contact import FILLABLE_FIELDS, Contact
from ..logging_config import log_context
from ..repositories.base import RecordStore
from ..repositories.cache import ContactCache

logger = logging.getLogger(__name__)


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def compute_merged_fields(primary: Contact, duplicates: Sequence[Contact]) -> Dict[str, Any]:
    """
    Compute the patch the primary receives when absorbing ``duplicates``.

    - Empty fillable fields take the first non-empty duplicate value.
    - Tags become the union, written only when it adds something.
    - Custom fields gain keys the primary lacks; the primary wins collisions.
    - The highest lead score and its label are adopted together.

    Pure: the primary's non-empty values are never overwritten and nothing
    is mutated.
    """
    patch: Dict[str, Any] = {}

    for field_name in FILLABLE_FIELDS:
        if not _is_empty(getattr(primary, field_name)):
            continue
        for duplicate in duplicates:
            value = getattr(duplicate, field_name)
            if not _is_empty(value):
                patch[field_name] = value
                break

    merged_tags = list(primary.tags)
    for duplicate in duplicates:
        for tag in duplicate.tags:
            if tag not in merged_tags:
                merged_tags.append(tag)
    if len(merged_tags) > len(set(primary.tags)):
        patch["tags"] = merged_tags

    merged_custom = dict(primary.custom_fields)
    for duplicate in duplicates:
        for key, value in duplicate.custom_fields.items():
            if key not in merged_custom:
                merged_custom[key] = value
    if len(merged_custom) > len(primary.custom_fields):
        patch["custom_fields"] = merged_custom

    best = primary
    for duplicate in duplicates:
        if duplicate.lead_score > best.lead_score:
            best = duplicate
    if best is not primary:
        # Score and label travel together
        patch["lead_score"] = best.lead_score
        patch["lead_score_label"] = best.lead_score_label

    return patch


def _to_store_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def to_store_patch(patch: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a contact patch into plain values for the record store."""
    return {key: _to_store_value(value) for key, value in patch.items()}


@dataclass
class DuplicateOutcome:
    """What happened to one duplicate during a merge."""
    contact_id: str
    reassigned: Dict[str, int] = field(default_factory=dict)
    deleted: bool = False
    error: Optional[str] = None

    @property
    def merged(self) -> bool:
        return self.deleted and self.error is None


@dataclass
class MergeResult:
    """Result of a merge operation."""
    success: bool
    primary_id: str
    patch: Dict[str, Any] = field(default_factory=dict)
    merged_ids: List[str] = field(default_factory=list)
    failed_ids: List[str] = field(default_factory=list)
    outcomes: List[DuplicateOutcome] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        """Primary merged but some duplicates were left for retry."""
        return self.success and bool(self.failed_ids)


class MergeExecutor:
    """
    Applies merges to the record store and keeps the local cache in step.

    Ordering contract:
    1. The primary's patch must be written before any duplicate is touched;
       if it fails the merge stops with nothing else mutated.
    2. For each duplicate, every dependent collection is re-pointed before
       the duplicate is deleted. A failure leaves that duplicate in place
       and processing continues with the next one.

    Only one merge per primary id may run at a time.
    """

    def __init__(
        self,
        store: RecordStore,
        snapshot: ContactCache,
        config: Optional[MergeConfig] = None,
        audit_logger=None,
        error_handler: Optional[ErrorHandler] = None,
    ):
        """Initialize the merge executor."""
        self.store = store
        self.snapshot = snapshot
        self.config = config or MergeConfig()
        self.audit_logger = audit_logger
        self.error_handler = error_handler or ErrorHandler(audit_logger=audit_logger)

        self._in_flight: Set[str] = set()
        self._lock = threading.Lock()
        self._stats_lock = threading.Lock()

        # Merge statistics
        self.stats = {
            "total_merges": 0,
            "successful_merges": 0,
            "failed_merges": 0,
            "duplicates_absorbed": 0,
            "duplicates_failed": 0,
        }

    @property
    def merging(self) -> FrozenSet[str]:
        """Primary ids with a merge currently in flight."""
        with self._lock:
            return frozenset(self._in_flight)

    def is_merging(self, primary_id: str) -> bool:
        with self._lock:
            return primary_id in self._in_flight

    def merge_contacts(self, primary_id: str, duplicate_ids: Sequence[str]) -> MergeResult:
        """
        Merge ``duplicate_ids`` into ``primary_id``.

        Never raises for missing records, an unconfigured store, a merge
        already running on the same primary or failed store writes; those
        are reported through the returned ``MergeResult``. Every record
        logged during the merge carries ``primary_id``.
        """
        with log_context(primary_id=primary_id):
            return self._merge(primary_id, duplicate_ids)

    def _merge(self, primary_id: str, duplicate_ids: Sequence[str]) -> MergeResult:
        result = MergeResult(success=False, primary_id=primary_id)
        duplicate_ids = [d for d in dict.fromkeys(duplicate_ids) if d != primary_id]

        self._count(total_merges=1)

        if not self.store.is_configured:
            return self._refuse(result, StoreNotConfiguredError())

        with self._lock:
            if primary_id in self._in_flight:
                busy = True
            else:
                busy = False
                self._in_flight.add(primary_id)
        if busy:
            return self._refuse(result, MergeInProgressError(primary_id))

        try:
            return self._execute(primary_id, duplicate_ids, result)
        finally:
            with self._lock:
                self._in_flight.discard(primary_id)

    def _execute(self, primary_id: str, duplicate_ids: List[str], result: MergeResult) -> MergeResult:
        contacts = {c.id: c for c in self.snapshot.get_contacts()}
        primary = contacts.get(primary_id)
        duplicates = [contacts[d] for d in duplicate_ids if d in contacts]

        if primary is None or not duplicates:
            missing = [i for i in [primary_id] + duplicate_ids if i not in contacts]
            return self._refuse(result, MergeInputError(
                f"Cannot merge into {primary_id}: primary or duplicates not found",
                missing_ids=missing,
            ))

        missing = [d for d in duplicate_ids if d not in contacts]
        if missing:
            logger.warning(f"⚠️  Ignoring {len(missing)} duplicate ids not in the snapshot: {missing}")

        if self.audit_logger:
            self.audit_logger.log_merge_started(primary_id, [d.id for d in duplicates])

        logger.info(f"🔄 Merging {len(duplicates)} duplicates into contact {primary_id}")

        result.patch = compute_merged_fields(primary, duplicates)
        now = datetime.now(timezone.utc)

        if not self._update_primary(primary_id, dict(result.patch, updated_at=now), result):
            self._count(failed_merges=1)
            self._log_completed(result)
            return result

        for duplicate in duplicates:
            outcome = self._absorb_duplicate(duplicate.id, primary_id, now)
            result.outcomes.append(outcome)
            if outcome.merged:
                result.merged_ids.append(duplicate.id)
            else:
                result.failed_ids.append(duplicate.id)
                result.errors.append(outcome.error)

        result.success = bool(result.merged_ids)

        self._count(
            duplicates_absorbed=len(result.merged_ids),
            duplicates_failed=len(result.failed_ids),
            successful_merges=int(result.success),
            failed_merges=int(not result.success),
        )

        if result.failed_ids:
            logger.warning(
                f"⚠️  Merge into {primary_id} left {len(result.failed_ids)} duplicates for retry: {result.failed_ids}"
            )
        else:
            logger.info(f"✅ Merged {len(result.merged_ids)} duplicates into contact {primary_id}")

        self._log_completed(result)
        return result

    def _update_primary(self, primary_id: str, patch: Dict[str, Any], result: MergeResult) -> bool:
        collection = self.config.contacts_collection
        with self.error_handler.error_context(
            operation="update_primary", resource_type=collection, resource_id=primary_id
        ):
            try:
                self.store.update(collection, primary_id, to_store_patch(patch))
            except Exception as e:
                error = self.error_handler.handle_error(e, reraise=False)
                result.errors.append(error.message)
                self._audit_write("update", collection, primary_id, error=error.message)
                logger.error(f"❌ Primary update failed for {primary_id}, no duplicates touched")
                return False

        self._audit_write("update", collection, primary_id, affected=1)
        self.snapshot.apply_patch(primary_id, patch)
        return True

    def _absorb_duplicate(self, duplicate_id: str, primary_id: str, now: datetime) -> DuplicateOutcome:
        """Re-point one duplicate's dependents, then delete it."""
        outcome = DuplicateOutcome(contact_id=duplicate_id)

        for dependent in self.config.dependent_collections:
            extra = {"updated_at": now.isoformat()} if dependent.touch_updated_at else None
            with self.error_handler.error_context(
                operation="reassign", resource_type=dependent.name, resource_id=duplicate_id
            ):
                try:
                    count = self.store.reassign(
                        dependent.name, dependent.foreign_key, duplicate_id, primary_id, extra=extra
                    )
                except Exception as e:
                    error = self.error_handler.handle_error(e, reraise=False)
                    outcome.error = f"reassign {dependent.name}: {error.message}"
                    self._audit_write("reassign", dependent.name, duplicate_id, error=error.message)
                    # Dependents may still point here; deleting would orphan them
                    return outcome

            outcome.reassigned[dependent.name] = count
            self._audit_write("reassign", dependent.name, duplicate_id, affected=count)
            self.snapshot.reassign_dependents(dependent.name, dependent.foreign_key, duplicate_id, primary_id)

        collection = self.config.contacts_collection
        with self.error_handler.error_context(
            operation="delete", resource_type=collection, resource_id=duplicate_id
        ):
            try:
                self.store.delete(collection, duplicate_id)
            except Exception as e:
                error = self.error_handler.handle_error(e, reraise=False)
                outcome.error = f"delete: {error.message}"
                self._audit_write("delete", collection, duplicate_id, error=error.message)
                return outcome

        outcome.deleted = True
        self._audit_write("delete", collection, duplicate_id, affected=1)
        self.snapshot.remove(duplicate_id)
        return outcome

    def _refuse(self, result: MergeResult, error: BaseDedupeError) -> MergeResult:
        self.error_handler.handle_error(error, operation="merge_contacts", reraise=False)
        result.errors.append(error.message)
        self._count(failed_merges=1)
        return result

    def _count(self, **increments: int) -> None:
        with self._stats_lock:
            for key, amount in increments.items():
                self.stats[key] += amount

    def _audit_write(self, operation: str, collection: str, record_id: str,
                     affected: Optional[int] = None, error: Optional[str] = None) -> None:
        if self.audit_logger:
            self.audit_logger.log_store_write(operation, collection, record_id, affected=affected, error=error)

    def _log_completed(self, result: MergeResult) -> None:
        if self.audit_logger:
            self.audit_logger.log_merge_completed(
                result.primary_id,
                result.merged_ids,
                result.failed_ids,
                fields_changed=sorted(result.patch),
                success=result.success,
            )

    def get_statistics(self) -> Dict[str, Any]:
        """Get merge statistics."""
        with self._stats_lock:
            return dict(self.stats)
