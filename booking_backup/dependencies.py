"""
FastAPI dependency injection providers.

Tenant scoping comes only from here: the tenant key is derived from the email
the authenticating proxy verified, never from request payload fields.

Dependencies can be overridden in tests using app.dependency_overrides:

    >>> app.dependency_overrides[get_object_store] = lambda: fake_store
    >>> app.dependency_overrides[get_authenticated_email] = lambda: "ana@example.com"
"""

from __future__ import annotations

from typing import Generator

from fastapi import Depends, HTTPException, Request, status

from booking_backup.backup.keys import tenant_key_from_email
from booking_backup.config import AUTH_EMAIL_HEADER
from booking_backup.storage.backend import get_store
from booking_backup.storage.client import ObjectStore


def get_object_store() -> Generator[ObjectStore, None, None]:
    """
    Provide the object store for dependency injection.

    Yields:
        ObjectStore: Process-wide store built from configuration
    """
    yield get_store()


def get_authenticated_email(request: Request) -> str:
    """
    Read the verified email set by the authenticating reverse proxy.

    Raises:
        HTTPException: 401 if the header is missing or blank
    """
    email = request.headers.get(AUTH_EMAIL_HEADER, "").strip()
    if not email:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return email


def get_tenant_key(email: str = Depends(get_authenticated_email)) -> str:
    """Derive the storage tenant key for the authenticated user."""
    return tenant_key_from_email(email)
