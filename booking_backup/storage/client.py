"""
Object-storage client for reservation records.

Wraps an S3-compatible boto3 client with the handful of primitives the
backup engine needs (paginated listing, get, head, put) and maps
backend failures onto the engine's error taxonomy:

- missing key                 -> ObjectNotFoundError
- permission / credentials    -> StorageAuthError
- lost conditional write      -> PreconditionFailedError
- anything else               -> StorageTransientError

Retries and timeouts belong to the botocore client configuration. Nothing in
this module loops on failure.
"""

from __future__ import annotations

import json
import time
from typing import Any, Callable, Iterator, TypeVar

import structlog
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    NoCredentialsError,
    PartialCredentialsError,
)

from booking_backup.errors import (
    ObjectNotFoundError,
    PreconditionFailedError,
    StorageAuthError,
    StorageError,
    StorageTransientError,
)
from booking_backup.metrics import storage_latency, storage_operations

logger = structlog.get_logger(__name__)

T = TypeVar("T")

LIST_PAGE_SIZE = 1000

NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})
AUTH_CODES = frozenset(
    {
        "401",
        "403",
        "AccessDenied",
        "AllAccessDisabled",
        "AccountProblem",
        "ExpiredToken",
        "InvalidAccessKeyId",
        "InvalidToken",
        "SignatureDoesNotMatch",
        "Unauthorized",
    }
)
PRECONDITION_CODES = frozenset({"412", "PreconditionFailed", "ConditionalRequestConflict"})


def classify_error(err: Exception, key: str | None = None) -> StorageError:
    """
    Translate a botocore exception into a StorageError subclass.

    Args:
        err: Exception raised by the boto3 client
        key: Object key involved in the call, if any

    Returns:
        StorageError: The matching engine error (not raised)
    """
    if isinstance(err, (NoCredentialsError, PartialCredentialsError)):
        return StorageAuthError(str(err), key=key, code="NoCredentials")

    if isinstance(err, ClientError):
        error = err.response.get("Error", {})
        code = str(error.get("Code", ""))
        status = err.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        message = error.get("Message") or str(err)

        if code in NOT_FOUND_CODES or status == 404:
            return ObjectNotFoundError(message, key=key, code=code)
        if code in AUTH_CODES or status in (401, 403):
            return StorageAuthError(message, key=key, code=code)
        if code in PRECONDITION_CODES or status == 412:
            return PreconditionFailedError(message, key=key, code=code)
        return StorageTransientError(message, key=key, code=code)

    return StorageTransientError(str(err), key=key, code=type(err).__name__)


def _status_label(err: StorageError) -> str:
    if isinstance(err, ObjectNotFoundError):
        return "not_found"
    if isinstance(err, StorageAuthError):
        return "auth_error"
    if isinstance(err, PreconditionFailedError):
        return "precondition_failed"
    return "error"


class ObjectStore:
    """
    JSON object store over a single bucket.

    Attributes:
        bucket: Bucket name every call is scoped to

    Example:
        >>> store = ObjectStore(boto3.client("s3"), "bookings")
        >>> store.put_json("users/abc/reservations/r1.json", {"id": "r1"})
        >>> store.key_exists("users/abc/reservations/r1.json")
        True
    """

    def __init__(self, client: Any, bucket: str) -> None:
        self._client = client
        self.bucket = bucket

    def _call(self, operation: str, key: str | None, fn: Callable[..., T], **kwargs: Any) -> T:
        start_time = time.time()
        try:
            result = fn(Bucket=self.bucket, **kwargs)
        except (ClientError, BotoCoreError) as e:
            storage_latency.labels(operation=operation).observe(time.time() - start_time)
            err = classify_error(e, key=key)
            storage_operations.labels(operation=operation, status=_status_label(err)).inc()
            if isinstance(err, StorageAuthError):
                logger.error("storage_auth_error", operation=operation, key=key, code=err.code)
            raise err from e

        storage_latency.labels(operation=operation).observe(time.time() - start_time)
        storage_operations.labels(operation=operation, status="ok").inc()
        return result

    def iter_key_pages(self, prefix: str, page_size: int = LIST_PAGE_SIZE) -> Iterator[list[str]]:
        """
        Yield object keys under a prefix, one listing page at a time.

        Pages are requested strictly in sequence: each request carries the
        continuation token returned by the previous one.

        Args:
            prefix: Key prefix to list
            page_size: MaxKeys per request (backends cap this at 1000)

        Yields:
            list[str]: Keys of one page
        """
        token: str | None = None
        page_number = 0

        while True:
            params: dict[str, Any] = {"Prefix": prefix, "MaxKeys": page_size}
            if token:
                params["ContinuationToken"] = token

            response = self._call("list", prefix, self._client.list_objects_v2, **params)
            keys = [obj["Key"] for obj in response.get("Contents", []) if obj.get("Key")]
            page_number += 1
            logger.debug("listed_page", prefix=prefix, page=page_number, keys=len(keys))
            yield keys

            token = response.get("NextContinuationToken") if response.get("IsTruncated") else None
            if not token:
                break

    def list_keys(self, prefix: str, page_size: int = LIST_PAGE_SIZE) -> list[str]:
        """Return every key under a prefix, following continuation tokens to the end."""
        keys: list[str] = []
        for page in self.iter_key_pages(prefix, page_size=page_size):
            keys.extend(page)
        return keys

    def get_bytes(self, key: str) -> bytes:
        """
        Fetch the raw body of an object.

        Raises:
            ObjectNotFoundError: If the key does not exist
            StorageAuthError: On permission failures
            StorageTransientError: On any other failure
        """
        response = self._call("get", key, self._client.get_object, Key=key)
        try:
            return bytes(response["Body"].read())
        except (BotoCoreError, OSError) as e:
            raise StorageTransientError(f"failed reading body: {e}", key=key) from e

    def get_json(self, key: str) -> Any:
        """Fetch and decode a JSON object. Decoding errors propagate as ValueError."""
        return json.loads(self.get_bytes(key).decode("utf-8"))

    def key_exists(self, key: str) -> bool:
        """
        Check whether a key exists.

        Only a genuine "not found" answers False. Permission failures raise
        StorageAuthError so callers never mistake "cannot see" for "absent".
        """
        try:
            self._call("head", key, self._client.head_object, Key=key)
        except ObjectNotFoundError:
            return False
        return True

    def put_json(self, key: str, data: Any, if_none_match: bool = False) -> None:
        """
        Serialize and store a JSON object.

        Args:
            key: Destination key
            data: JSON-serializable value
            if_none_match: Only create the object if the key does not exist yet.
                           A lost race raises PreconditionFailedError.
        """
        body = json.dumps(data, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
        params: dict[str, Any] = {
            "Key": key,
            "Body": body,
            "ContentType": "application/json",
        }
        if if_none_match:
            params["IfNoneMatch"] = "*"
        self._call("put", key, self._client.put_object, **params)

    def check_health(self) -> bool:
        """
        Check that the bucket is reachable with the configured credentials.

        Returns:
            bool: True if head_bucket succeeds, False otherwise
        """
        try:
            self._call("head_bucket", None, self._client.head_bucket)
            return True
        except StorageError:
            return False
