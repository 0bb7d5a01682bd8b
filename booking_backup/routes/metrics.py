"""
Scrape endpoint for the export, restore and storage counters.

Example:
    GET /metrics

    Response:
        # HELP backup_exports_total Total number of export requests
        # TYPE backup_exports_total counter
        backup_exports_total{format="ndjson",status="success"} 3.0
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

router = APIRouter()


@router.get("/metrics", response_class=Response, include_in_schema=False)
async def metrics() -> Response:
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)
