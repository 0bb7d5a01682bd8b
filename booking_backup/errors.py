"""
Exception hierarchy for the backup, restore and normalization engine.

Errors fall into two groups:

- Recoverable per item: MalformedRecordError, StorageTransientError and
  ObjectNotFoundError are caught around a single record or key and reported
  in the operation summary.
- Fatal for the whole operation: BadRequestError, StorageAuthError,
  ExportFailedError and RestoreFailedError propagate to the route handler.
"""

from __future__ import annotations


class BackupError(Exception):
    """Base class for every error raised by the engine."""


class BadRequestError(BackupError):
    """Caller input rejected at the boundary, before any read or write."""


class MalformedRecordError(BackupError):
    """A record is not a JSON object or carries an unsupported schemaVersion."""


class StorageError(BackupError):
    """
    Base class for object-storage failures.

    Attributes:
        key: Object key involved, if any
        code: Backend error code (e.g. "AccessDenied"), if any
    """

    def __init__(self, message: str, key: str | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.key = key
        self.code = code


class ObjectNotFoundError(StorageError):
    """The requested key does not exist."""


class PreconditionFailedError(StorageError):
    """A conditional write lost (the key was created by someone else)."""


class StorageAuthError(StorageError):
    """Permission or credential failure. Never downgraded to "not found"."""


class StorageTransientError(StorageError):
    """Any other storage failure for a single key (timeout, 5xx, throttling)."""


class ExportFailedError(BackupError):
    """Unexpected top-level failure while exporting."""


class RestoreFailedError(BackupError):
    """Unexpected top-level failure while restoring."""
