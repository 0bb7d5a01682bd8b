"""
Unit tests for ObjectStore against a real boto3 client with botocore's Stubber.
"""

from __future__ import annotations

import io
import json
from typing import Any, Generator

import boto3
import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, NoCredentialsError
from botocore.response import StreamingBody
from botocore.stub import Stubber

from booking_backup.errors import (
    ObjectNotFoundError,
    PreconditionFailedError,
    StorageAuthError,
    StorageTransientError,
)
from booking_backup.storage.client import ObjectStore, classify_error

BUCKET = "bookings"
PREFIX = "users/0123456789abcdef/reservations/"


@pytest.fixture
def stubbed() -> Generator[tuple[ObjectStore, Stubber], None, None]:
    client = boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )
    with Stubber(client) as stubber:
        yield ObjectStore(client, BUCKET), stubber
        stubber.assert_no_pending_responses()


def _client_error(code: str, status: int) -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        "Op",
    )


def _body(payload: bytes) -> StreamingBody:
    return StreamingBody(io.BytesIO(payload), len(payload))


@pytest.mark.unit
@pytest.mark.parametrize(
    "code, status, expected",
    [
        ("NoSuchKey", 404, ObjectNotFoundError),
        ("404", 404, ObjectNotFoundError),
        ("AccessDenied", 403, StorageAuthError),
        ("InvalidAccessKeyId", 403, StorageAuthError),
        ("SomethingNew", 401, StorageAuthError),
        ("PreconditionFailed", 412, PreconditionFailedError),
        ("InternalError", 500, StorageTransientError),
        ("SlowDown", 503, StorageTransientError),
    ],
)
def test_classify_client_errors(code: str, status: int, expected: type) -> None:
    err = classify_error(_client_error(code, status), key="k")
    assert isinstance(err, expected)
    assert err.key == "k"
    assert err.code == code


@pytest.mark.unit
def test_classify_missing_credentials_as_auth_error() -> None:
    assert isinstance(classify_error(NoCredentialsError()), StorageAuthError)


@pytest.mark.unit
def test_classify_connection_errors_as_transient() -> None:
    err = classify_error(EndpointConnectionError(endpoint_url="https://s3.example"))
    assert isinstance(err, StorageTransientError)


@pytest.mark.unit
def test_list_keys_follows_continuation_tokens(stubbed: tuple[ObjectStore, Stubber]) -> None:
    """Test that pages of 1000, 500 and 200 keys are concatenated in listing order."""
    store, stubber = stubbed
    pages = [
        [f"{PREFIX}a{i:04d}.json" for i in range(1000)],
        [f"{PREFIX}b{i:04d}.json" for i in range(500)],
        [f"{PREFIX}c{i:04d}.json" for i in range(200)],
    ]
    tokens = [None, "t1", "t2"]

    for index, keys in enumerate(pages):
        response = {"Contents": [{"Key": k} for k in keys], "IsTruncated": index < 2, "KeyCount": len(keys)}
        if index < 2:
            response["NextContinuationToken"] = tokens[index + 1]
        stubber.add_response("list_objects_v2", response)

    keys = store.list_keys(PREFIX)

    assert len(keys) == 1700
    assert keys == pages[0] + pages[1] + pages[2]


@pytest.mark.unit
def test_list_keys_empty_prefix(stubbed: tuple[ObjectStore, Stubber]) -> None:
    store, stubber = stubbed
    stubber.add_response("list_objects_v2", {"IsTruncated": False, "KeyCount": 0})

    assert store.list_keys(PREFIX) == []


@pytest.mark.unit
def test_get_json_decodes_body(stubbed: tuple[ObjectStore, Stubber]) -> None:
    store, stubber = stubbed
    payload = json.dumps({"id": "r1", "guestName": "Zoë"}).encode("utf-8")
    stubber.add_response("get_object", {"Body": _body(payload)})

    assert store.get_json(f"{PREFIX}r1.json") == {"id": "r1", "guestName": "Zoë"}


@pytest.mark.unit
def test_get_json_missing_key(stubbed: tuple[ObjectStore, Stubber]) -> None:
    store, stubber = stubbed
    stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)

    with pytest.raises(ObjectNotFoundError):
        store.get_json(f"{PREFIX}gone.json")


@pytest.mark.unit
def test_key_exists(stubbed: tuple[ObjectStore, Stubber]) -> None:
    store, stubber = stubbed
    stubber.add_response("head_object", {"ContentLength": 10})
    stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)

    assert store.key_exists(f"{PREFIX}a.json") is True
    assert store.key_exists(f"{PREFIX}b.json") is False


@pytest.mark.unit
def test_key_exists_raises_on_forbidden(stubbed: tuple[ObjectStore, Stubber]) -> None:
    """Test that a 403 on HEAD is an auth failure, not a missing key."""
    store, stubber = stubbed
    stubber.add_client_error("head_object", service_error_code="403", http_status_code=403)

    with pytest.raises(StorageAuthError):
        store.key_exists(f"{PREFIX}a.json")


@pytest.mark.unit
def test_put_json_conditional(stubbed: tuple[ObjectStore, Stubber]) -> None:
    store, stubber = stubbed
    stubber.add_response("put_object", {"ETag": '"abc"'})

    store.put_json(f"{PREFIX}r1.json", {"id": "r1"}, if_none_match=True)


@pytest.mark.unit
def test_put_json_lost_race(stubbed: tuple[ObjectStore, Stubber]) -> None:
    store, stubber = stubbed
    stubber.add_client_error("put_object", service_error_code="PreconditionFailed", http_status_code=412)

    with pytest.raises(PreconditionFailedError):
        store.put_json(f"{PREFIX}r1.json", {"id": "r1"}, if_none_match=True)


@pytest.mark.unit
def test_check_health(stubbed: tuple[ObjectStore, Stubber]) -> None:
    store, stubber = stubbed
    stubber.add_response("head_bucket", {})
    stubber.add_client_error("head_bucket", service_error_code="403", http_status_code=403)

    assert store.check_health() is True
    assert store.check_health() is False


@pytest.mark.unit
def test_put_json_writes_compact_utf8(s3_client: Any, store: ObjectStore) -> None:
    store.put_json("k.json", {"guestName": "Zoë", "n": 1})
    assert s3_client.objects["k.json"] == '{"guestName":"Zoë","n":1}'.encode("utf-8")


@pytest.mark.unit
def test_iter_key_pages_passes_tokens_in_sequence(s3_client: Any, store: ObjectStore) -> None:
    for i in range(7):
        s3_client.seed(f"{PREFIX}r{i}.json", {"id": f"r{i}"})

    pages = list(store.iter_key_pages(PREFIX, page_size=3))

    assert [len(page) for page in pages] == [3, 3, 1]
    assert [r["ContinuationToken"] for r in s3_client.list_requests] == [None, "3", "6"]
    assert all(r["MaxKeys"] == 3 for r in s3_client.list_requests)


@pytest.mark.unit
def test_conditional_put_refuses_existing_key(s3_client: Any, store: ObjectStore) -> None:
    s3_client.seed("k.json", {"id": "old"})

    with pytest.raises(PreconditionFailedError):
        store.put_json("k.json", {"id": "new"}, if_none_match=True)

    store.put_json("k.json", {"id": "new"})
    assert json.loads(s3_client.objects["k.json"]) == {"id": "new"}
