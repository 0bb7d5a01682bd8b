import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse
import logging

from booking_backup.backup.executor import RestoreMode, prepare_restore
from booking_backup.backup.ingest import decode_upload
from booking_backup.backup.keys import TargetPrefixMode, tenant_key_from_email
from booking_backup.config import MAX_UPLOAD_BYTES
from booking_backup.errors import BadRequestError
from booking_backup.logging_config import setup_logging
from booking_backup.schemas.backup import DryRunResponse, RestoreResponse
from booking_backup.services.backup import restore_tenant
from booking_backup.storage.backend import get_store

setup_logging()
logger = logging.getLogger(__name__)


def main() -> None:
    """
    Restore an NDJSON backup file into a tenant's storage and print the report as JSON.

    Defaults to dry-run. Overwrite requires --confirm-overwrite and --confirm-text OVERWRITE.
    """
    parser = argparse.ArgumentParser(description="Restore a tenant's reservations from an NDJSON backup.")
    parser.add_argument("file", help="NDJSON backup file")
    parser.add_argument("--email", required=True, help="Tenant email the storage key is derived from")
    parser.add_argument(
        "--mode", choices=[m.value for m in RestoreMode], default=RestoreMode.DRY_RUN.value
    )
    parser.add_argument("--sandbox", action="store_true", help="Restore into an isolated sandbox prefix")
    parser.add_argument("--sandbox-id", help="Sandbox id (default: generated from the current time)")
    parser.add_argument("--confirm-overwrite", action="store_true")
    parser.add_argument("--confirm-text")
    parser.add_argument("--raw", action="store_true", help="Write records as uploaded (sandbox only)")
    args = parser.parse_args()

    tenant_key = tenant_key_from_email(args.email)
    target_mode = TargetPrefixMode.RESTORE_SANDBOX if args.sandbox else TargetPrefixMode.DEFAULT

    try:
        request = prepare_restore(
            tenant_key,
            mode=args.mode,
            target_prefix_mode=target_mode.value,
            sandbox_id=args.sandbox_id,
            confirm_overwrite=args.confirm_overwrite,
            confirm_text=args.confirm_text,
            normalize=not args.raw,
        )
        content = decode_upload(Path(args.file).read_bytes(), MAX_UPLOAD_BYTES)
    except BadRequestError as e:
        parser.error(str(e))

    logger.info("Starting %s restore into %s", request.mode.value, request.target.prefix)

    try:
        result = restore_tenant(get_store(), content, request)
    except Exception:
        logger.exception("Restore failed for tenant=%s", tenant_key)
        raise

    if request.mode is RestoreMode.DRY_RUN:
        report = DryRunResponse.from_plan(result.plan, normalize=request.normalize)
    else:
        report = RestoreResponse.from_result(result)
    print(report.model_dump_json(indent=2))


if __name__ == "__main__":
    main()
