"""
Tenant key derivation and target-prefix resolution.

Every key the engine touches is built here from the authenticated tenant key.
Nothing in this module accepts a prefix from the caller.

Layout:
    users/<tenant>/reservations/<id>.json
    users/<tenant>/restore-sandbox/<sandboxId>/reservations/<id>.json
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from booking_backup.errors import BadRequestError
from booking_backup.utils.datetime import compact_timestamp

SAFE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
SANDBOX_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

RESERVATIONS_DIR = "reservations"
SANDBOX_DIR = "restore-sandbox"
RECORD_SUFFIX = ".json"


class TargetPrefixMode(str, Enum):
    DEFAULT = "default"
    RESTORE_SANDBOX = "restore-sandbox"


@dataclass(frozen=True)
class TargetPrefix:
    """
    Resolved write destination for a restore.

    Attributes:
        prefix: Key prefix ending in "/", records live at prefix + "<id>.json"
        mode: Which namespace the prefix points into
        sandbox_id: Sandbox identifier, None for the live namespace
    """

    prefix: str
    mode: TargetPrefixMode
    sandbox_id: str | None = None

    @property
    def is_sandbox(self) -> bool:
        return self.mode is TargetPrefixMode.RESTORE_SANDBOX

    def key_for(self, record_id: str) -> str:
        return record_key(self.prefix, record_id)


def tenant_key_from_email(email: str) -> str:
    """
    Derive the storage tenant key from a verified email address.

    Args:
        email: Email from the authenticated session

    Returns:
        str: First 16 hex characters of SHA-256 over the normalized email
    """
    return hashlib.sha256(email.strip().lower().encode("utf-8")).hexdigest()[:16]


def tenant_root(tenant_key: str) -> str:
    return f"users/{tenant_key}"


def reservations_prefix(tenant_key: str) -> str:
    """Live reservations prefix for a tenant."""
    return f"{tenant_root(tenant_key)}/{RESERVATIONS_DIR}/"


def sandbox_prefix(tenant_key: str, sandbox_id: str) -> str:
    return f"{tenant_root(tenant_key)}/{SANDBOX_DIR}/{sandbox_id}/{RESERVATIONS_DIR}/"


def is_valid_id(value: Any) -> bool:
    """
    Check that a record id is safe to embed in an object key.

    Accepts non-empty strings of letters, digits, "_" and "-" (UUIDs included).
    Rejects anything containing "/" or "..", whitespace, or non-strings.
    """
    if not isinstance(value, str) or not value:
        return False
    if "/" in value or ".." in value:
        return False
    return SAFE_ID_PATTERN.match(value) is not None


def record_key(prefix: str, record_id: str) -> str:
    return f"{prefix}{record_id}{RECORD_SUFFIX}"


def is_record_key(prefix: str, key: str) -> bool:
    """
    Check that a listed key is a record directly under prefix.

    Keys in nested namespaces (e.g. sandbox copies) and non-JSON objects are excluded.
    """
    if not key.startswith(prefix) or not key.endswith(RECORD_SUFFIX):
        return False
    return "/" not in key[len(prefix) :]


def generate_sandbox_id(now: datetime | None = None) -> str:
    """Generate a sandbox id from the current UTC time (YYYYMMDD_HHMMSS)."""
    return compact_timestamp(now)


def resolve_target_prefix(
    tenant_key: str,
    mode: str | TargetPrefixMode,
    sandbox_id: str | None = None,
) -> TargetPrefix:
    """
    Compute where a restore writes.

    Args:
        tenant_key: Authenticated tenant key
        mode: "default" or "restore-sandbox"
        sandbox_id: Optional caller-chosen sandbox id (sandbox mode only)

    Returns:
        TargetPrefix

    Raises:
        BadRequestError: On an unknown mode, a malformed sandbox id, or a
                         sandbox id supplied outside sandbox mode
    """
    sandbox_id = sandbox_id or None
    try:
        prefix_mode = TargetPrefixMode(mode)
    except ValueError:
        raise BadRequestError(
            "Invalid targetPrefixMode. Must be: default or restore-sandbox"
        ) from None

    if prefix_mode is TargetPrefixMode.DEFAULT:
        if sandbox_id:
            raise BadRequestError("sandboxId is only allowed in restore-sandbox mode")
        return TargetPrefix(prefix=reservations_prefix(tenant_key), mode=prefix_mode)

    if sandbox_id is not None and not SANDBOX_ID_PATTERN.match(sandbox_id):
        raise BadRequestError("Invalid sandboxId. Use 1-64 letters, digits, '_' or '-'")

    actual_id = sandbox_id or generate_sandbox_id()
    return TargetPrefix(
        prefix=sandbox_prefix(tenant_key, actual_id),
        mode=prefix_mode,
        sandbox_id=actual_id,
    )
