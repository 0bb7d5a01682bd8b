"""
Bulk reader and serializers for tenant exports.

export_all() lists every record key under a prefix (sequential pagination),
fetches the objects with bounded concurrency, and reports keys it could not
read instead of failing the export. A permission failure is the exception:
it aborts the whole export.

The serializers never write anything back to storage.
"""

from __future__ import annotations

import csv
import io
import json
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Iterator

import structlog

from booking_backup.backup.keys import is_record_key
from booking_backup.config import EXPORT_CONCURRENCY
from booking_backup.errors import MalformedRecordError, StorageAuthError, StorageError
from booking_backup.normalizers.reservations import normalize_record
from booking_backup.storage.client import ObjectStore
from booking_backup.utils.datetime import compact_timestamp

logger = structlog.get_logger(__name__)

CSV_BOM = "\ufeff"

CSV_COLUMNS: tuple[str, ...] = (
    "id",
    "schemaVersion",
    "status",
    "guestName",
    "phone",
    "email",
    "partySize",
    "rooms",
    "checkIn",
    "checkOut",
    "breakfastIncluded",
    "nightlyRate",
    "breakfastPerPersonPerNight",
    "manualLodgingEnabled",
    "manualLodgingTotal",
    "birthDate",
    "extraSpend",
    "totalNights",
    "totalPrice",
    "depositDue",
    "depositPaid",
    "paymentsTotal",
    "notesInternal",
    "notesGuest",
    "stayReviewState",
    "createdAt",
    "updatedAt",
)


class NdjsonVariant(str, Enum):
    RAW = "raw"
    NORMALIZED = "normalized"


@dataclass
class ExportResult:
    """
    Records read from one tenant prefix.

    Attributes:
        records: Stored objects exactly as read, sorted by checkIn then id
        key_count: Number of record keys listed under the prefix
        failed_keys: Keys that could not be fetched or decoded
    """

    records: list[dict[str, Any]] = field(default_factory=list)
    key_count: int = 0
    failed_keys: list[str] = field(default_factory=list)

    @property
    def exported_count(self) -> int:
        return len(self.records)


def fetch_record(store: ObjectStore, key: str) -> dict[str, Any]:
    """
    Fetch one stored record.

    Raises:
        StorageError: On any storage failure (auth failures included)
        MalformedRecordError: If the object is not valid JSON or not a JSON object
    """
    try:
        data = store.get_json(key)
    except ValueError as e:
        raise MalformedRecordError(f"invalid JSON in {key}: {e}") from e
    if not isinstance(data, dict):
        raise MalformedRecordError(f"{key} does not hold a JSON object")
    return data


def _sort_key(record: dict[str, Any]) -> tuple[int, str, int, str]:
    check_in = record.get("checkIn")
    record_id = record.get("id")
    return (
        0 if isinstance(check_in, str) else 1,
        check_in if isinstance(check_in, str) else "",
        0 if isinstance(record_id, str) else 1,
        record_id if isinstance(record_id, str) else "",
    )


def export_all(
    store: ObjectStore,
    prefix: str,
    concurrency: int = EXPORT_CONCURRENCY,
) -> ExportResult:
    """
    Read every record stored under a prefix.

    Args:
        store: Object store to read from
        prefix: Tenant reservations prefix (ending in "/")
        concurrency: Maximum number of concurrent object fetches

    Returns:
        ExportResult: Every readable record plus the keys that failed

    Raises:
        StorageAuthError: If listing or any fetch is refused by the backend
    """
    keys = [key for key in store.list_keys(prefix) if is_record_key(prefix, key)]
    result = ExportResult(key_count=len(keys))

    logger.info("export_started", prefix=prefix, key_count=len(keys))

    if keys:
        with ThreadPoolExecutor(max_workers=max(1, concurrency)) as pool:
            futures: dict[Future[dict[str, Any]], str] = {
                pool.submit(fetch_record, store, key): key for key in keys
            }
            for future in as_completed(futures):
                key = futures[future]
                try:
                    result.records.append(future.result())
                except StorageAuthError:
                    for pending in futures:
                        pending.cancel()
                    logger.error("export_aborted", prefix=prefix, key=key, reason="auth_error")
                    raise
                except (StorageError, MalformedRecordError) as e:
                    logger.warning("export_key_failed", key=key, error=str(e))
                    result.failed_keys.append(key)

    result.records.sort(key=_sort_key)
    result.failed_keys.sort()

    logger.info(
        "export_completed",
        prefix=prefix,
        key_count=result.key_count,
        exported_count=result.exported_count,
        failed_count=len(result.failed_keys),
    )
    return result


def _normalized_view(record: dict[str, Any], now: datetime | None = None) -> dict[str, Any]:
    try:
        return normalize_record(record, now=now).record
    except MalformedRecordError as e:
        logger.warning("export_normalize_failed", record_id=record.get("id"), error=str(e))
        return record


def iter_ndjson_lines(
    records: Iterable[dict[str, Any]],
    variant: NdjsonVariant = NdjsonVariant.RAW,
    now: datetime | None = None,
) -> Iterator[str]:
    """
    Yield one newline-terminated JSON document per record.

    The raw variant emits stored objects untouched; the normalized variant
    emits the canonical view. A record that cannot be normalized is emitted
    raw rather than dropped.
    """
    for record in records:
        data = _normalized_view(record, now) if variant is NdjsonVariant.NORMALIZED else record
        yield json.dumps(data, ensure_ascii=False, separators=(",", ":")) + "\n"


def to_ndjson(
    records: Iterable[dict[str, Any]],
    variant: NdjsonVariant = NdjsonVariant.RAW,
    now: datetime | None = None,
) -> str:
    return "".join(iter_ndjson_lines(records, variant=variant, now=now))


def _csv_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return value


def _payments_total(payment: Any) -> float | None:
    events = payment.get("events") if isinstance(payment, dict) else None
    if not isinstance(events, list):
        return None
    amounts = [
        e["amount"]
        for e in events
        if isinstance(e, dict)
        and isinstance(e.get("amount"), (int, float))
        and not isinstance(e.get("amount"), bool)
    ]
    return round(sum(amounts), 2) if amounts else None


def project_csv_row(record: dict[str, Any]) -> dict[str, Any]:
    """
    Flatten a canonical record into the fixed CSV column set.

    Nested values are pulled up (payment.deposit.*, stayReview.state);
    passthrough fields are not part of the projection.
    """
    payment = record.get("payment") if isinstance(record.get("payment"), dict) else {}
    deposit = payment.get("deposit") if isinstance(payment.get("deposit"), dict) else {}
    review = record.get("stayReview") if isinstance(record.get("stayReview"), dict) else {}

    row = {column: record.get(column) for column in CSV_COLUMNS}
    row["depositDue"] = deposit.get("due")
    row["depositPaid"] = deposit.get("paid")
    row["paymentsTotal"] = _payments_total(payment)
    row["stayReviewState"] = review.get("state")
    return {column: _csv_value(value) for column, value in row.items()}


def to_csv(records: Iterable[dict[str, Any]], now: datetime | None = None) -> str:
    """
    Render records as CSV for spreadsheet use.

    Output starts with a UTF-8 BOM so Excel detects the encoding, has one
    header row, and uses "\\n" line endings. The projection is lossy.
    """
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(CSV_COLUMNS), lineterminator="\n")
    writer.writeheader()
    for record in records:
        writer.writerow(project_csv_row(_normalized_view(record, now)))
    return CSV_BOM + buffer.getvalue()


def export_filename(tenant_key: str, extension: str, now: datetime | None = None) -> str:
    """Attachment name, e.g. reservations_backup_<tenant>_20250115_103000.ndjson."""
    return f"reservations_backup_{tenant_key}_{compact_timestamp(now)}.{extension}"
