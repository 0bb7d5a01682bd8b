import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse
import logging

from booking_backup.backup.exporter import NdjsonVariant
from booking_backup.backup.keys import tenant_key_from_email
from booking_backup.logging_config import setup_logging
from booking_backup.services.backup import ExportFormat, export_tenant
from booking_backup.storage.backend import get_store

setup_logging()
logger = logging.getLogger(__name__)


def main() -> None:
    """
    Export one tenant's reservations to a local file.

    The output path defaults to the same filename the HTTP export offers.
    """
    parser = argparse.ArgumentParser(description="Export a tenant's reservations from object storage.")
    parser.add_argument("--email", required=True, help="Tenant email the storage key is derived from")
    parser.add_argument(
        "--format", choices=[f.value for f in ExportFormat], default=ExportFormat.NDJSON.value
    )
    parser.add_argument(
        "--variant",
        choices=[v.value for v in NdjsonVariant],
        default=NdjsonVariant.RAW.value,
        help="NDJSON only: raw (lossless backup) or normalized",
    )
    parser.add_argument("--out", help="Output path (default: generated backup filename)")
    args = parser.parse_args()

    tenant_key = tenant_key_from_email(args.email)
    logger.info("Starting %s export for tenant=%s", args.format, tenant_key)

    try:
        payload = export_tenant(
            get_store(),
            tenant_key,
            ExportFormat(args.format),
            variant=NdjsonVariant(args.variant),
        )
    except Exception:
        logger.exception("Export failed for tenant=%s", tenant_key)
        raise

    out_path = Path(args.out or payload.filename)
    out_path.write_text(payload.content, encoding="utf-8")

    result = payload.result
    logger.info(
        "Exported %s of %s records to %s (%s failed)",
        result.exported_count,
        result.key_count,
        out_path,
        len(result.failed_keys),
    )
    for key in result.failed_keys:
        logger.warning("Skipped unreadable object %s", key)


if __name__ == "__main__":
    main()
