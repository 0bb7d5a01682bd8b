"""
Restore planning (dry run).

plan_restore() classifies every uploaded record against the target prefix
without writing anything:

- create:        no object exists at the record's key
- conflict:      an object already exists at the key
- invalid:       the record cannot be restored (bad id, bad dates,
                 unsupported schemaVersion, superseded duplicate)
- check_failed:  the existence check itself failed for a transient reason

The executor consumes this plan as-is, so a preview and a real restore of
the same upload always classify records the same way.
"""

from __future__ import annotations

from collections import Counter
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog
from pydantic import ValidationError

from booking_backup.backup.ingest import ParsedLine, ParseError, ParseResult
from booking_backup.backup.keys import TargetPrefix, is_valid_id
from booking_backup.config import EXPORT_CONCURRENCY
from booking_backup.errors import MalformedRecordError, StorageAuthError, StorageError
from booking_backup.normalizers.reservations import decode_record
from booking_backup.schemas.records import RecordIdentity, describe_validation_error
from booking_backup.storage.client import ObjectStore

logger = structlog.get_logger(__name__)


class PlanAction(str, Enum):
    CREATE = "create"
    CONFLICT = "conflict"
    INVALID = "invalid"
    CHECK_FAILED = "check_failed"


@dataclass
class PlanEntry:
    """
    Classification of one uploaded record.

    Attributes:
        line: 1-based line of the upload
        record_id: Record id, None when missing or unusable
        key: Full target key, None for records without a usable id
        action: Classification
        reason: Why the record is invalid or its check failed
        data: The uploaded object, untouched
    """

    line: int
    record_id: str | None
    key: str | None
    action: PlanAction
    data: dict[str, Any] = field(repr=False)
    reason: str | None = None

    def address(self) -> tuple[str, str]:
        """
        Record id and target key of a record that passed validation.

        Raises:
            ValueError: If the entry was classified without a usable id
        """
        if self.record_id is None or self.key is None:
            raise ValueError(f"line {self.line} has no target key ({self.action.value})")
        return self.record_id, self.key


@dataclass
class RestorePlan:
    target: TargetPrefix
    entries: list[PlanEntry] = field(default_factory=list)
    parse_errors: list[ParseError] = field(default_factory=list)
    total_lines: int = 0
    duplicate_ids: list[str] = field(default_factory=list)

    def entries_with(self, action: PlanAction) -> list[PlanEntry]:
        return [entry for entry in self.entries if entry.action is action]

    @property
    def counts(self) -> dict[str, int]:
        tally = Counter(entry.action for entry in self.entries)
        return {action.value: tally.get(action, 0) for action in PlanAction}


def id_problem(value: Any) -> str | None:
    """Return why a record id is unusable, or None if it is fine."""
    if value is None or value == "":
        return "missing id"
    if not isinstance(value, str):
        return "id must be string"
    if not is_valid_id(value):
        return "unsafe id (only letters, digits, '_' and '-' allowed)"
    return None


def validate_record(data: dict[str, Any]) -> str | None:
    """
    Check that a record is structurally restorable.

    Returns:
        str | None: Reason the record is invalid, None if valid
    """
    problem = id_problem(data.get("id"))
    if problem:
        return problem

    try:
        decode_record(data)
    except MalformedRecordError as e:
        return str(e)

    try:
        RecordIdentity.model_validate(data)
    except ValidationError as e:
        return describe_validation_error(e)
    return None


def _classify(parsed: ParseResult, target: TargetPrefix) -> tuple[list[PlanEntry], list[str]]:
    entries: list[PlanEntry] = []
    for item in parsed.records:
        reason = validate_record(item.data)
        record_id = item.data.get("id")
        if reason:
            entries.append(
                PlanEntry(
                    line=item.line,
                    record_id=record_id if isinstance(record_id, str) and is_valid_id(record_id) else None,
                    key=None,
                    action=PlanAction.INVALID,
                    reason=reason,
                    data=item.data,
                )
            )
            continue
        entries.append(
            PlanEntry(
                line=item.line,
                record_id=record_id,
                key=target.key_for(record_id),
                action=PlanAction.CREATE,
                data=item.data,
            )
        )

    # Last occurrence of an id wins; earlier ones are superseded
    last_line: dict[str, int] = {}
    for entry in entries:
        if entry.action is PlanAction.CREATE and entry.record_id:
            last_line[entry.record_id] = entry.line

    duplicates: list[str] = []
    for entry in entries:
        if entry.action is not PlanAction.CREATE or not entry.record_id:
            continue
        winner = last_line[entry.record_id]
        if entry.line != winner:
            entry.action = PlanAction.INVALID
            entry.reason = f"duplicate id (superseded by line {winner})"
            entry.key = None
            if entry.record_id not in duplicates:
                duplicates.append(entry.record_id)

    return entries, duplicates


def plan_restore(
    store: ObjectStore,
    parsed: ParseResult,
    target: TargetPrefix,
    concurrency: int = EXPORT_CONCURRENCY,
) -> RestorePlan:
    """
    Classify every parsed record against the target prefix. Performs reads only.

    Args:
        store: Object store used for existence checks
        parsed: Output of parse_ndjson()
        target: Resolved target prefix
        concurrency: Maximum number of concurrent existence checks

    Returns:
        RestorePlan

    Raises:
        StorageAuthError: If any existence check is refused by the backend
    """
    entries, duplicates = _classify(parsed, target)
    plan = RestorePlan(
        target=target,
        entries=entries,
        parse_errors=list(parsed.errors),
        total_lines=parsed.total_lines,
        duplicate_ids=duplicates,
    )

    to_check = [entry for entry in entries if entry.action is PlanAction.CREATE]
    if to_check:
        with ThreadPoolExecutor(max_workers=max(1, concurrency)) as pool:
            futures: dict[Future[bool], PlanEntry] = {
                pool.submit(store.key_exists, entry.key): entry for entry in to_check
            }
            for future in as_completed(futures):
                entry = futures[future]
                try:
                    if future.result():
                        entry.action = PlanAction.CONFLICT
                except StorageAuthError:
                    for pending in futures:
                        pending.cancel()
                    logger.error(
                        "restore_plan_aborted", prefix=target.prefix, key=entry.key, reason="auth_error"
                    )
                    raise
                except StorageError as e:
                    logger.warning("restore_existence_check_failed", key=entry.key, error=str(e))
                    entry.action = PlanAction.CHECK_FAILED
                    entry.reason = f"existence check failed: {e}"

    logger.info("restore_planned", prefix=target.prefix, total_lines=plan.total_lines, **plan.counts)
    return plan


def plan_records(
    store: ObjectStore,
    records: list[dict[str, Any]],
    target: TargetPrefix,
    concurrency: int = EXPORT_CONCURRENCY,
) -> RestorePlan:
    """Plan an in-memory list of raw records, numbering them from 1 as if they were lines."""
    parsed = ParseResult(
        records=[ParsedLine(line=i, data=data) for i, data in enumerate(records, start=1)],
        total_lines=len(records),
    )
    return plan_restore(store, parsed, target, concurrency=concurrency)
