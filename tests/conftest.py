"""
Shared fixtures for the test suite.

Storage is faked at the boto3 client level: FakeS3Client answers the handful
of S3 calls ObjectStore makes, so the real ObjectStore (pagination, error
classification, conditional writes) runs in every test.
"""

from __future__ import annotations

import io
import json
import threading
from typing import Any, Callable, Generator, Optional

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient

from booking_backup.backup.keys import reservations_prefix, tenant_key_from_email
from booking_backup.storage.client import ObjectStore

TEST_EMAIL = "ana@example.com"
TEST_BUCKET = "test-bucket"

ERROR_STATUS = {
    "NoSuchKey": 404,
    "404": 404,
    "AccessDenied": 403,
    "InvalidAccessKeyId": 403,
    "PreconditionFailed": 412,
    "InternalError": 500,
    "SlowDown": 503,
}


class FakeS3Client:
    """
    In-memory stand-in for a boto3 S3 client.

    Attributes:
        objects: Stored bodies by key
        failures: (operation, key) -> error code; key "*" matches every key
        calls: (operation, key) for every call, in order
        list_requests: Keyword arguments of every list_objects_v2 call
    """

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.failures: dict[tuple[str, str], str] = {}
        self.calls: list[tuple[str, Optional[str]]] = []
        self.list_requests: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def seed(self, key: str, data: Any) -> None:
        self.objects[key] = json.dumps(data).encode("utf-8")

    def seed_raw(self, key: str, body: bytes) -> None:
        self.objects[key] = body

    def fail(self, operation: str, key: str = "*", code: str = "InternalError") -> None:
        self.failures[(operation, key)] = code

    def writes(self) -> list[str]:
        return [key for op, key in self.calls if op == "put_object" and key]

    def _enter(self, operation: str, key: Optional[str]) -> None:
        with self._lock:
            self.calls.append((operation, key))
        code = self.failures.get((operation, key or "")) or self.failures.get((operation, "*"))
        if code:
            raise ClientError(
                {
                    "Error": {"Code": code, "Message": f"simulated {code}"},
                    "ResponseMetadata": {"HTTPStatusCode": ERROR_STATUS.get(code, 500)},
                },
                operation,
            )

    def _missing(self, operation: str) -> ClientError:
        return ClientError(
            {
                "Error": {"Code": "NoSuchKey", "Message": "The specified key does not exist."},
                "ResponseMetadata": {"HTTPStatusCode": 404},
            },
            operation,
        )

    def list_objects_v2(
        self, Bucket: str, Prefix: str, MaxKeys: int = 1000, ContinuationToken: Optional[str] = None
    ) -> dict[str, Any]:
        self.list_requests.append(
            {"Prefix": Prefix, "MaxKeys": MaxKeys, "ContinuationToken": ContinuationToken}
        )
        self._enter("list_objects_v2", Prefix)

        keys = sorted(k for k in self.objects if k.startswith(Prefix))
        start = int(ContinuationToken) if ContinuationToken else 0
        page = keys[start : start + MaxKeys]
        truncated = start + MaxKeys < len(keys)

        response: dict[str, Any] = {
            "Contents": [{"Key": k, "Size": len(self.objects[k])} for k in page],
            "KeyCount": len(page),
            "IsTruncated": truncated,
        }
        if truncated:
            response["NextContinuationToken"] = str(start + MaxKeys)
        return response

    def get_object(self, Bucket: str, Key: str) -> dict[str, Any]:
        self._enter("get_object", Key)
        if Key not in self.objects:
            raise self._missing("GetObject")
        return {"Body": io.BytesIO(self.objects[Key])}

    def head_object(self, Bucket: str, Key: str) -> dict[str, Any]:
        self._enter("head_object", Key)
        if Key not in self.objects:
            raise self._missing("HeadObject")
        return {"ContentLength": len(self.objects[Key])}

    def put_object(
        self,
        Bucket: str,
        Key: str,
        Body: bytes,
        ContentType: str = "",
        IfNoneMatch: Optional[str] = None,
    ) -> dict[str, Any]:
        self._enter("put_object", Key)
        with self._lock:
            if IfNoneMatch == "*" and Key in self.objects:
                raise ClientError(
                    {
                        "Error": {"Code": "PreconditionFailed", "Message": "At least one of the pre-conditions you specified did not hold"},
                        "ResponseMetadata": {"HTTPStatusCode": 412},
                    },
                    "PutObject",
                )
            self.objects[Key] = Body
        return {"ETag": '"fake"'}

    def head_bucket(self, Bucket: str) -> dict[str, Any]:
        self._enter("head_bucket", None)
        return {}


def stored_json(s3_client: FakeS3Client, key: str) -> Any:
    return json.loads(s3_client.objects[key].decode("utf-8"))


@pytest.fixture
def s3_client() -> FakeS3Client:
    """Empty in-memory bucket."""
    return FakeS3Client()


@pytest.fixture
def store(s3_client: FakeS3Client) -> ObjectStore:
    """Real ObjectStore over the in-memory bucket."""
    return ObjectStore(s3_client, TEST_BUCKET)


@pytest.fixture
def tenant_key() -> str:
    return tenant_key_from_email(TEST_EMAIL)


@pytest.fixture
def live_prefix(tenant_key: str) -> str:
    return reservations_prefix(tenant_key)


@pytest.fixture
def load_json() -> Callable[[FakeS3Client, str], Any]:
    """Decode a stored object back into Python."""
    return stored_json


@pytest.fixture
def legacy_record() -> dict[str, Any]:
    """A v1 record as the old app stored it, with one field nobody knows about."""
    return {
        "id": "res_001",
        "guestName": "Ana Lopez",
        "phone": "+34 600 000 000",
        "email": "ana.guest@example.com",
        "partySize": 2,
        "rooms": 1,
        "checkIn": "2024-05-01",
        "checkOut": "2024-05-03",
        "breakfastIncluded": True,
        "nightlyRate": 80,
        "totalNights": 2,
        "totalPrice": 160,
        "depositDue": 50,
        "depositPaid": False,
        "notes": "late arrival",
        "createdAt": "2024-04-01T09:00:00.000Z",
        "updatedAt": "2024-04-02T09:00:00.000Z",
        "foo": 42,
    }


@pytest.fixture
def canonical_record() -> dict[str, Any]:
    """A v2 record in the current layout."""
    return {
        "schemaVersion": 2,
        "id": "res_002",
        "guestName": "Bruno Diaz",
        "partySize": 3,
        "checkIn": "2024-06-10",
        "checkOut": "2024-06-12",
        "status": "waiting",
        "nightlyRate": 95.5,
        "totalNights": 2,
        "totalPrice": 191,
        "payment": {
            "deposit": {"due": 60, "paid": True, "paidAt": "2024-06-01"},
            "events": [
                {"id": "pay_1", "type": "deposit", "amount": 60, "method": "card", "date": "2024-06-01"},
                {"id": "pay_2", "type": "payment", "amount": 131, "method": "cash", "date": "2024-06-12"},
            ],
        },
        "notesInternal": "VIP",
        "notesGuest": "Welcome back",
        "stayReview": {"state": "ok", "reviewedAt": "2024-06-13"},
        "createdAt": "2024-05-20T12:00:00.000Z",
        "updatedAt": "2024-06-13T08:00:00.000Z",
    }


@pytest.fixture
def api_client(store: ObjectStore) -> Generator[TestClient, None, None]:
    """
    TestClient for the full app, wired to the in-memory store.

    Requests still need the authentication header; see auth_headers.
    """
    from booking_backup.dependencies import get_object_store
    from booking_backup.main import app

    app.dependency_overrides[get_object_store] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict[str, str]:
    from booking_backup.config import AUTH_EMAIL_HEADER

    return {AUTH_EMAIL_HEADER: TEST_EMAIL}
