# booking_backup/main.py

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from booking_backup.config import ALLOWED_ORIGINS, BUCKET_NAME, STORAGE_PROVIDER
from booking_backup.logging_config import setup_logging
from booking_backup.middleware import RequestIDMiddleware
from booking_backup.routes.backup import router as backup_router
from booking_backup.routes.health import router as health_router
from booking_backup.routes.metrics import router as metrics_router

# Initialize structured logging
setup_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(
    title="Booking Backup API",
    description="Export, restore and schema normalization for per-tenant reservation storage",
    version="1.0.0",
)

# Configure CORS; export counts travel in custom headers the browser must be allowed to read
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS if "*" not in ALLOWED_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[
        "Content-Disposition",
        "X-Export-Count",
        "X-Export-Keys-Total",
        "X-Export-Failed-Count",
        "X-Request-ID",
    ],
)
app.add_middleware(RequestIDMiddleware)

# Register routers
app.include_router(health_router, tags=["Health"])
app.include_router(metrics_router, tags=["Metrics"])
app.include_router(backup_router, prefix="/backup", tags=["Backup"])


@app.on_event("startup")
def startup_event() -> None:
    """Log the storage target on startup."""
    logger.info(
        "FastAPI application starting up...",
        storage_provider=STORAGE_PROVIDER,
        bucket=BUCKET_NAME,
    )
