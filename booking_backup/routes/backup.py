"""
Backup endpoints: CSV/NDJSON export and NDJSON restore.

Every handler is scoped to the authenticated tenant through get_tenant_key;
no endpoint accepts a tenant, user or key prefix from the client.
"""

from __future__ import annotations

from typing import Optional, Union

import structlog
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import Response

from booking_backup.backup.executor import RestoreMode, prepare_restore
from booking_backup.backup.exporter import NdjsonVariant
from booking_backup.backup.ingest import decode_upload
from booking_backup.config import MAX_UPLOAD_BYTES
from booking_backup.dependencies import get_object_store, get_tenant_key
from booking_backup.errors import BadRequestError, StorageAuthError
from booking_backup.schemas.backup import DryRunResponse, RestoreResponse
from booking_backup.services.backup import ExportFormat, ExportPayload, export_tenant, restore_tenant
from booking_backup.storage.client import ObjectStore

logger = structlog.get_logger(__name__)
router = APIRouter()


def _attachment(payload: ExportPayload) -> Response:
    result = payload.result
    return Response(
        content=payload.content.encode("utf-8"),
        media_type=payload.media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{payload.filename}"',
            "X-Export-Count": str(result.exported_count),
            "X-Export-Keys-Total": str(result.key_count),
            "X-Export-Failed-Count": str(len(result.failed_keys)),
        },
    )


def _export(
    store: ObjectStore,
    tenant_key: str,
    export_format: ExportFormat,
    variant: NdjsonVariant = NdjsonVariant.RAW,
) -> Response:
    try:
        payload = export_tenant(store, tenant_key, export_format, variant=variant)
    except StorageAuthError as e:
        logger.error("export_storage_denied", tenant=tenant_key, code=e.code)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail="Storage backend refused access"
        )
    except Exception as e:
        logger.exception("export_failed", tenant=tenant_key, format=export_format.value, error=str(e))
        raise HTTPException(status_code=500, detail="Export failed")

    logger.info(
        "export_served",
        tenant=tenant_key,
        format=export_format.value,
        exported=payload.result.exported_count,
        failed=len(payload.result.failed_keys),
    )
    return _attachment(payload)


@router.get("/reservations.csv", response_class=Response)
def export_reservations_csv(
    tenant_key: str = Depends(get_tenant_key),
    store: ObjectStore = Depends(get_object_store),
) -> Response:
    """
    Export all reservations of the authenticated tenant as CSV.

    Read-only. The CSV is a flattened, lossy projection for spreadsheets;
    use the NDJSON export for backups.

    Returns:
        Response: text/csv attachment with X-Export-* count headers
    """
    return _export(store, tenant_key, ExportFormat.CSV)


@router.get("/reservations.ndjson", response_class=Response)
def export_reservations_ndjson(
    variant: NdjsonVariant = Query(
        NdjsonVariant.RAW,
        description="raw: stored objects verbatim (lossless). normalized: canonical v2 view",
    ),
    tenant_key: str = Depends(get_tenant_key),
    store: ObjectStore = Depends(get_object_store),
) -> Response:
    """
    Export all reservations of the authenticated tenant as NDJSON.

    Read-only. One JSON object per line.

    Returns:
        Response: application/x-ndjson attachment with X-Export-* count headers
    """
    return _export(store, tenant_key, ExportFormat.NDJSON, variant=variant)


@router.post("/restore", response_model=Union[DryRunResponse, RestoreResponse])
def restore_reservations(
    file: Optional[UploadFile] = File(None, description="NDJSON backup, at most 10 MiB"),
    mode: Optional[str] = Form(None, description="dry-run (default), create-only or overwrite"),
    targetPrefixMode: Optional[str] = Form(None, description="default or restore-sandbox"),
    sandboxId: Optional[str] = Form(None, description="Sandbox id (restore-sandbox only)"),
    confirmOverwrite: Optional[str] = Form(None, description="Must be true for overwrite"),
    confirmText: Optional[str] = Form(None, description='Must be "OVERWRITE" for overwrite'),
    normalize: Optional[str] = Form(None, description="false writes records as uploaded (sandbox only)"),
    tenant_key: str = Depends(get_tenant_key),
    store: ObjectStore = Depends(get_object_store),
) -> Union[DryRunResponse, RestoreResponse]:
    """
    Restore reservations from an NDJSON backup.

    Modes:
        - dry-run: classify every record, write nothing
        - create-only: write records whose key is free, skip the rest
        - overwrite: write every valid record; requires confirmOverwrite=true
          and confirmText=OVERWRITE

    All request validation happens before the first storage call.

    Returns:
        DryRunResponse or RestoreResponse
    """
    try:
        request = prepare_restore(
            tenant_key,
            mode=mode,
            target_prefix_mode=targetPrefixMode,
            sandbox_id=sandboxId,
            confirm_overwrite=confirmOverwrite,
            confirm_text=confirmText,
            normalize=(normalize or "").strip().lower() != "false",
        )
        if file is None:
            raise BadRequestError("No file provided")
        content = decode_upload(file.file.read(MAX_UPLOAD_BYTES + 1), MAX_UPLOAD_BYTES)
    except BadRequestError as e:
        logger.warning("restore_rejected", tenant=tenant_key, mode=mode, reason=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.info(
        "restore_started",
        tenant=tenant_key,
        mode=request.mode.value,
        prefix=request.target.prefix,
        normalize=request.normalize,
    )

    try:
        result = restore_tenant(store, content, request)
    except StorageAuthError as e:
        logger.error("restore_storage_denied", tenant=tenant_key, code=e.code)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail="Storage backend refused access"
        )
    except Exception as e:
        logger.exception("restore_failed", tenant=tenant_key, mode=request.mode.value, error=str(e))
        raise HTTPException(status_code=500, detail="Restore operation failed")

    if request.mode is RestoreMode.DRY_RUN:
        return DryRunResponse.from_plan(result.plan, normalize=request.normalize)
    return RestoreResponse.from_result(result)
