"""Tenant-level export and restore orchestration shared by the HTTP routes and the CLI scripts."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import structlog

from booking_backup.backup.executor import RestoreRequest, RestoreResult, execute_restore
from booking_backup.backup.exporter import (
    ExportResult,
    NdjsonVariant,
    export_all,
    export_filename,
    to_csv,
    to_ndjson,
)
from booking_backup.backup.ingest import parse_ndjson
from booking_backup.backup.keys import reservations_prefix
from booking_backup.backup.planner import plan_restore
from booking_backup.errors import ExportFailedError, RestoreFailedError, StorageAuthError, StorageError
from booking_backup.metrics import export_duration, export_failed_keys, exports_total, restores_total
from booking_backup.storage.client import ObjectStore

logger = structlog.get_logger(__name__)


class ExportFormat(str, Enum):
    CSV = "csv"
    NDJSON = "ndjson"


MEDIA_TYPES = {
    ExportFormat.CSV: "text/csv; charset=utf-8",
    ExportFormat.NDJSON: "application/x-ndjson; charset=utf-8",
}


@dataclass
class ExportPayload:
    content: str
    filename: str
    media_type: str
    result: ExportResult


def export_tenant(
    store: ObjectStore,
    tenant_key: str,
    export_format: ExportFormat,
    variant: NdjsonVariant = NdjsonVariant.RAW,
) -> ExportPayload:
    """
    Export all live reservations of a tenant.

    Args:
        store: Object store to read from
        tenant_key: Authenticated tenant key
        export_format: csv or ndjson
        variant: NDJSON variant (ignored for CSV)

    Returns:
        ExportPayload: Serialized content plus the export counts

    Raises:
        StorageAuthError: If the backend refuses access
        ExportFailedError: If the key listing itself fails
    """
    prefix = reservations_prefix(tenant_key)

    with export_duration.labels(format=export_format.value).time():
        try:
            result = export_all(store, prefix)
        except StorageAuthError:
            exports_total.labels(format=export_format.value, status="failure").inc()
            raise
        except StorageError as e:
            exports_total.labels(format=export_format.value, status="failure").inc()
            raise ExportFailedError(f"could not list {prefix}: {e}") from e

        if export_format is ExportFormat.CSV:
            content = to_csv(result.records)
        else:
            content = to_ndjson(result.records, variant=variant)

    exports_total.labels(format=export_format.value, status="success").inc()
    export_failed_keys.inc(len(result.failed_keys))

    return ExportPayload(
        content=content,
        filename=export_filename(tenant_key, export_format.value),
        media_type=MEDIA_TYPES[export_format],
        result=result,
    )


def restore_tenant(store: ObjectStore, content: str, request: RestoreRequest) -> RestoreResult:
    """
    Parse an NDJSON upload, plan it against the request's target and apply it.

    The plan is always computed, dry-run or not; the executor consumes it.

    Raises:
        StorageAuthError: If the backend refuses a read or write
        RestoreFailedError: On any other unexpected storage failure
    """
    mode = request.mode.value
    parsed = parse_ndjson(content)

    try:
        plan = plan_restore(store, parsed, request.target)
        result = execute_restore(store, request, plan)
    except StorageAuthError:
        restores_total.labels(mode=mode, status="failure").inc()
        raise
    except StorageError as e:
        restores_total.labels(mode=mode, status="failure").inc()
        raise RestoreFailedError(str(e)) from e

    restores_total.labels(mode=mode, status="success").inc()
    return result
