"""
Liveness and readiness probes.

/health never touches storage. /ready issues a HeadBucket against the
configured bucket and reports which backend it talked to.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from booking_backup.config import CONDITIONAL_WRITES, STORAGE_PROVIDER
from booking_backup.dependencies import get_object_store
from booking_backup.storage.client import ObjectStore

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
def health_check() -> JSONResponse:
    """Process is up and serving."""
    return JSONResponse(content={"status": "ok"})


@router.get("/ready")
def readiness_check(store: ObjectStore = Depends(get_object_store)) -> JSONResponse:
    """
    Bucket reachability probe.

    Example:
        >>> GET /ready
        {"status": "ready", "checks": {"storage": "ok"},
         "storage": {"provider": "S3", "conditionalWrites": true}}
    """
    backend: dict[str, Any] = {"provider": STORAGE_PROVIDER, "conditionalWrites": CONDITIONAL_WRITES}

    if not store.check_health():
        logger.error("readiness_check_failed", provider=STORAGE_PROVIDER, bucket=store.bucket)
        return JSONResponse(
            status_code=503,
            content={"status": "not ready", "checks": {"storage": "failed"}, "storage": backend},
        )

    return JSONResponse(content={"status": "ready", "checks": {"storage": "ok"}, "storage": backend})
