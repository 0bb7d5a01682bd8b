"""
Restore execution.

A restore runs in three steps:

1. prepare_restore() validates the request (mode, target prefix, sandbox id,
   raw-write permission, overwrite confirmation) before anything is read.
2. plan_restore() classifies every record against the target prefix.
3. execute_restore() dispatches on the mode:

   | mode        | writes | conflict entries |
   |-------------|--------|------------------|
   | dry-run     | no     | reported         |
   | create-only | yes    | skipped          |
   | overwrite   | yes    | replaced         |

Per-record write failures are collected and the restore moves on. A
permission failure stops the restore; records already written stay written.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable

import structlog

from booking_backup.backup.keys import TargetPrefix, resolve_target_prefix
from booking_backup.backup.planner import PlanAction, PlanEntry, RestorePlan
from booking_backup.config import CONDITIONAL_WRITES, EXPORT_CONCURRENCY
from booking_backup.errors import (
    BadRequestError,
    MalformedRecordError,
    PreconditionFailedError,
    StorageAuthError,
    StorageError,
)
from booking_backup.metrics import restore_records
from booking_backup.normalizers.reservations import normalize_record
from booking_backup.storage.client import ObjectStore
from booking_backup.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

OVERWRITE_CONFIRM_TEXT = "OVERWRITE"


class RestoreMode(str, Enum):
    DRY_RUN = "dry-run"
    CREATE_ONLY = "create-only"
    OVERWRITE = "overwrite"


class WriteOutcome(str, Enum):
    CREATED = "created"
    OVERWRITTEN = "overwritten"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class RestoreRequest:
    """A restore request that passed every pre-flight check."""

    mode: RestoreMode
    target: TargetPrefix
    normalize: bool = True


@dataclass(frozen=True)
class RecordFailure:
    record_id: str
    error: str


@dataclass
class RestoreResult:
    """
    Outcome of a restore.

    For dry-run every id list is empty and the plan carries the preview.
    """

    mode: RestoreMode
    plan: RestorePlan
    normalized: bool
    created: list[str] = field(default_factory=list)
    overwritten: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    invalid: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    errors: list[RecordFailure] = field(default_factory=list)

    @property
    def counts(self) -> dict[str, int]:
        return {
            "created": len(self.created),
            "overwritten": len(self.overwritten),
            "skipped": len(self.skipped),
            "invalid": len(self.invalid),
            "failed": len(self.failed),
        }


def parse_mode(value: str | None) -> RestoreMode:
    """Parse the restore mode; a missing value means dry-run."""
    try:
        return RestoreMode(value or RestoreMode.DRY_RUN.value)
    except ValueError:
        raise BadRequestError(
            "Invalid mode. Must be: dry-run, create-only, or overwrite"
        ) from None


def validate_overwrite_confirmation(confirm_overwrite: Any, confirm_text: Any) -> None:
    """
    Require both halves of the overwrite confirmation.

    confirm_overwrite must be True (or the form value "true"); confirm_text
    must be exactly "OVERWRITE", case included.

    Raises:
        BadRequestError: If either half is missing or wrong
    """
    if confirm_overwrite is not True and confirm_overwrite != "true":
        raise BadRequestError("confirmOverwrite must be true for overwrite mode")
    if confirm_text != OVERWRITE_CONFIRM_TEXT:
        raise BadRequestError(f'confirmText must be exactly "{OVERWRITE_CONFIRM_TEXT}"')


def prepare_restore(
    tenant_key: str,
    mode: str | None,
    target_prefix_mode: str | None = None,
    sandbox_id: str | None = None,
    confirm_overwrite: Any = None,
    confirm_text: Any = None,
    normalize: bool = True,
) -> RestoreRequest:
    """
    Validate a restore request before any storage access.

    Args:
        tenant_key: Authenticated tenant key
        mode: dry-run, create-only or overwrite (default dry-run)
        target_prefix_mode: default or restore-sandbox (default "default")
        sandbox_id: Optional sandbox id, sandbox mode only
        confirm_overwrite: First half of the overwrite confirmation
        confirm_text: Second half of the overwrite confirmation
        normalize: False writes records exactly as uploaded (sandbox only)

    Returns:
        RestoreRequest

    Raises:
        BadRequestError: On any invalid or unconfirmed input
    """
    restore_mode = parse_mode(mode)
    target = resolve_target_prefix(tenant_key, target_prefix_mode or "default", sandbox_id)

    # Unnormalized writes would put the legacy shape back into live data
    if not normalize and not target.is_sandbox:
        raise BadRequestError("normalize=false is only allowed in restore-sandbox mode")

    if restore_mode is RestoreMode.OVERWRITE:
        validate_overwrite_confirmation(confirm_overwrite, confirm_text)

    return RestoreRequest(mode=restore_mode, target=target, normalize=normalize)


def _payload(entry: PlanEntry, normalize: bool, now: datetime) -> dict[str, Any]:
    if not normalize:
        return entry.data
    return normalize_record(entry.data, now=now).record


def _write_entry(
    store: ObjectStore,
    entry: PlanEntry,
    normalize: bool,
    now: datetime,
    replace: bool,
) -> WriteOutcome:
    _, key = entry.address()
    if entry.action is PlanAction.CONFLICT and not replace:
        return WriteOutcome.SKIPPED

    data = _payload(entry, normalize, now)
    if entry.action is PlanAction.CONFLICT:
        store.put_json(key, data)
        return WriteOutcome.OVERWRITTEN

    try:
        store.put_json(key, data, if_none_match=CONDITIONAL_WRITES and not replace)
    except PreconditionFailedError:
        # Created by someone else after planning
        return WriteOutcome.SKIPPED
    return WriteOutcome.CREATED


def _apply_plan(
    store: ObjectStore,
    request: RestoreRequest,
    plan: RestorePlan,
    replace: bool,
    concurrency: int,
) -> RestoreResult:
    result = RestoreResult(mode=request.mode, plan=plan, normalized=request.normalize)
    now = utc_now()

    for entry in plan.entries:
        if entry.action is PlanAction.INVALID:
            result.invalid.append(entry.record_id or f"line:{entry.line}")
        elif entry.action is PlanAction.CHECK_FAILED:
            record_id, _ = entry.address()
            result.failed.append(record_id)
            result.errors.append(RecordFailure(record_id, entry.reason or "existence check failed"))

    writable = [
        entry
        for entry in plan.entries
        if entry.action in (PlanAction.CREATE, PlanAction.CONFLICT)
    ]
    buckets = {
        WriteOutcome.CREATED: result.created,
        WriteOutcome.OVERWRITTEN: result.overwritten,
        WriteOutcome.SKIPPED: result.skipped,
    }

    if writable:
        with ThreadPoolExecutor(max_workers=max(1, concurrency)) as pool:
            futures: dict[Future[WriteOutcome], PlanEntry] = {
                pool.submit(_write_entry, store, entry, request.normalize, now, replace): entry
                for entry in writable
            }
            for future in as_completed(futures):
                entry = futures[future]
                record_id, _ = entry.address()
                try:
                    outcome = future.result()
                except StorageAuthError:
                    for pending in futures:
                        pending.cancel()
                    logger.error(
                        "restore_aborted",
                        prefix=request.target.prefix,
                        key=entry.key,
                        reason="auth_error",
                        written=len(result.created) + len(result.overwritten),
                    )
                    raise
                except (StorageError, MalformedRecordError) as e:
                    logger.warning("restore_record_failed", key=entry.key, error=str(e))
                    result.failed.append(record_id)
                    result.errors.append(RecordFailure(record_id, str(e)))
                    continue
                buckets[outcome].append(record_id)

    for ids in (result.created, result.overwritten, result.skipped, result.failed):
        ids.sort()
    result.errors.sort(key=lambda failure: failure.record_id)
    return result


def _preview(
    store: ObjectStore, request: RestoreRequest, plan: RestorePlan, concurrency: int
) -> RestoreResult:
    return RestoreResult(mode=request.mode, plan=plan, normalized=request.normalize)


def _create_only(
    store: ObjectStore, request: RestoreRequest, plan: RestorePlan, concurrency: int
) -> RestoreResult:
    return _apply_plan(store, request, plan, replace=False, concurrency=concurrency)


def _overwrite(
    store: ObjectStore, request: RestoreRequest, plan: RestorePlan, concurrency: int
) -> RestoreResult:
    return _apply_plan(store, request, plan, replace=True, concurrency=concurrency)


MODE_HANDLERS: dict[
    RestoreMode, Callable[[ObjectStore, RestoreRequest, RestorePlan, int], RestoreResult]
] = {
    RestoreMode.DRY_RUN: _preview,
    RestoreMode.CREATE_ONLY: _create_only,
    RestoreMode.OVERWRITE: _overwrite,
}


def _record_metrics(result: RestoreResult) -> None:
    if result.mode is RestoreMode.DRY_RUN:
        counts = result.plan.counts
        restore_records.labels(outcome="would_create").inc(counts[PlanAction.CREATE.value])
        restore_records.labels(outcome="would_overwrite").inc(counts[PlanAction.CONFLICT.value])
        restore_records.labels(outcome="invalid").inc(counts[PlanAction.INVALID.value])
        return
    for outcome, count in result.counts.items():
        restore_records.labels(outcome=outcome).inc(count)


def execute_restore(
    store: ObjectStore,
    request: RestoreRequest,
    plan: RestorePlan,
    concurrency: int = EXPORT_CONCURRENCY,
) -> RestoreResult:
    """
    Apply a restore plan according to the request's mode.

    Args:
        store: Object store to write to
        request: Validated request from prepare_restore()
        plan: Plan for the same target prefix from plan_restore()
        concurrency: Maximum number of concurrent writes

    Returns:
        RestoreResult

    Raises:
        StorageAuthError: If the backend refuses a write
    """
    if plan.target != request.target:
        raise ValueError("restore plan was computed for a different target prefix")

    result = MODE_HANDLERS[request.mode](store, request, plan, concurrency)
    _record_metrics(result)

    logger.info(
        "restore_completed",
        mode=request.mode.value,
        prefix=request.target.prefix,
        normalized=request.normalize,
        **result.counts,
    )
    return result
