"""
Process-wide object store built from configuration.

The store is created lazily on first use so the application (and its tests)
import cleanly without cloud credentials. Two providers are supported:
plain AWS S3 and Cloudflare R2 through its S3-compatible endpoint.
"""

from __future__ import annotations

import threading
from typing import Any

import boto3
from botocore.config import Config as BotoConfig

from booking_backup import config
from booking_backup.storage.client import ObjectStore

_store: ObjectStore | None = None
_lock = threading.Lock()


def make_s3_client() -> Any:
    """
    Build a boto3 S3 client for the configured provider.

    Returns:
        botocore client for the "s3" service

    Raises:
        ValueError: If the provider is unknown or R2 settings are incomplete
    """
    boto_config = BotoConfig(
        connect_timeout=config.STORAGE_TIMEOUT_SECONDS,
        read_timeout=config.STORAGE_TIMEOUT_SECONDS,
        retries={"max_attempts": config.STORAGE_MAX_ATTEMPTS, "mode": "standard"},
    )

    if config.STORAGE_PROVIDER == "R2":
        if not config.CF_R2_ACCOUNT_ID:
            raise ValueError("CF_R2_ACCOUNT_ID must be set when STORAGE_PROVIDER=R2")
        return boto3.session.Session().client(
            "s3",
            region_name="auto",
            endpoint_url=f"https://{config.CF_R2_ACCOUNT_ID}.r2.cloudflarestorage.com",
            aws_access_key_id=config.CF_R2_ACCESS_KEY_ID,
            aws_secret_access_key=config.CF_R2_SECRET_ACCESS_KEY,
            config=boto_config.merge(BotoConfig(s3={"addressing_style": "path"})),
        )

    if config.STORAGE_PROVIDER == "S3":
        credentials: dict[str, str] = {}
        if config.AWS_ACCESS_KEY_ID and config.AWS_SECRET_ACCESS_KEY:
            credentials = {
                "aws_access_key_id": config.AWS_ACCESS_KEY_ID,
                "aws_secret_access_key": config.AWS_SECRET_ACCESS_KEY,
            }
        return boto3.session.Session().client(
            "s3",
            region_name=config.AWS_REGION,
            config=boto_config,
            **credentials,
        )

    raise ValueError(f"Unsupported STORAGE_PROVIDER: {config.STORAGE_PROVIDER}")


def get_store() -> ObjectStore:
    """
    Return the shared ObjectStore, creating it on first call.

    Raises:
        ValueError: If BUCKET_NAME (or AWS_S3_BUCKET) is not configured
    """
    global _store
    if _store is None:
        with _lock:
            if _store is None:
                if not config.BUCKET_NAME:
                    raise ValueError("BUCKET_NAME must be set in the environment")
                _store = ObjectStore(make_s3_client(), config.BUCKET_NAME)
    return _store
