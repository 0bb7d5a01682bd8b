"""
Prometheus metrics for exports, restores and object-storage calls.

Metrics are exposed via the /metrics endpoint for scraping by Prometheus.
Tenant keys are never used as labels.

Example:
    >>> from booking_backup.metrics import export_duration, exports_total
    >>> with export_duration.labels(format="ndjson").time():
    ...     result = export_all(store, prefix)
    >>> exports_total.labels(format="ndjson", status="success").inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# =============================================================================
# Export Metrics
# =============================================================================

exports_total = Counter(
    "backup_exports_total",
    "Total number of export operations (success and failure)",
    ["format", "status"],
)
"""
Counter for export operations.

Labels:
    format: csv or ndjson
    status: success or failure
"""

export_duration = Histogram(
    "backup_export_duration_seconds",
    "Duration of export operations in seconds",
    ["format"],
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, float("inf")),
)

export_failed_keys = Counter(
    "backup_export_failed_keys_total",
    "Total number of keys skipped during export because they could not be read",
)

# =============================================================================
# Restore Metrics
# =============================================================================

restores_total = Counter(
    "backup_restores_total",
    "Total number of restore operations (success and failure)",
    ["mode", "status"],
)
"""
Counter for restore operations.

Labels:
    mode: dry-run, create-only or overwrite
    status: success or failure
"""

restore_records = Counter(
    "backup_restore_records_total",
    "Records processed by restore operations, by outcome",
    ["outcome"],
)
"""
Counter for restored records.

Labels:
    outcome: created, overwritten, skipped, invalid, failed,
             would_create, would_overwrite
"""

# =============================================================================
# Storage Metrics
# =============================================================================

storage_operations = Counter(
    "storage_operations_total",
    "Total object-storage operations performed",
    ["operation", "status"],
)
"""
Counter for storage calls.

Labels:
    operation: list, get, head, put, head_bucket
    status: ok, not_found, auth_error, precondition_failed, error
"""

storage_latency = Histogram(
    "storage_latency_seconds",
    "Object-storage request latency in seconds",
    ["operation"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, float("inf")),
)
