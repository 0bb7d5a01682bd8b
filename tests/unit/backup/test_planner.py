"""
Unit tests for restore planning.
"""

from __future__ import annotations

import json
from typing import Any

import pytest

from booking_backup.backup.ingest import parse_ndjson
from booking_backup.backup.keys import TargetPrefix, resolve_target_prefix
from booking_backup.backup.planner import (
    PlanAction,
    PlanEntry,
    id_problem,
    plan_records,
    plan_restore,
    validate_record,
)
from booking_backup.errors import StorageAuthError
from booking_backup.storage.client import ObjectStore


@pytest.fixture
def target(tenant_key: str) -> TargetPrefix:
    return resolve_target_prefix(tenant_key, "default")


def _record(record_id: Any, **fields: Any) -> dict[str, Any]:
    return {"id": record_id, "checkIn": "2024-05-01", "checkOut": "2024-05-03", **fields}


@pytest.mark.unit
@pytest.mark.parametrize(
    "value, problem",
    [
        (None, "missing id"),
        ("", "missing id"),
        (42, "id must be string"),
        ("../x", "unsafe id (only letters, digits, '_' and '-' allowed)"),
        ("ok_id", None),
    ],
)
def test_id_problem(value: Any, problem: str | None) -> None:
    assert id_problem(value) == problem


@pytest.mark.unit
def test_validate_record_accepts_datetime_strings() -> None:
    assert validate_record(_record("r1", checkIn="2024-05-01T14:00:00Z")) is None


@pytest.mark.unit
@pytest.mark.parametrize(
    "record, fragment",
    [
        (_record("r1", checkIn="2024-13-40"), "checkIn"),
        (_record("r1", checkIn=20240501), "must be an ISO date string"),
        ({"id": "r1"}, "checkIn"),
        (_record("r1", checkIn="2024-05-05", checkOut="2024-05-01"), "checkOut is before checkIn"),
        (_record("r1", schemaVersion=5), "unsupported schemaVersion"),
    ],
)
def test_validate_record_rejects(record: dict[str, Any], fragment: str) -> None:
    problem = validate_record(record)
    assert problem is not None
    assert fragment in problem


@pytest.mark.unit
def test_plan_classifies_create_and_conflict(
    store: ObjectStore, s3_client: Any, target: TargetPrefix
) -> None:
    s3_client.seed(target.key_for("existing"), _record("existing"))

    plan = plan_records(store, [_record("new"), _record("existing")], target)

    assert plan.counts == {"create": 1, "conflict": 1, "invalid": 0, "check_failed": 0}
    conflict = plan.entries_with(PlanAction.CONFLICT)[0]
    assert conflict.record_id == "existing"
    assert conflict.key == target.key_for("existing")


@pytest.mark.unit
def test_plan_performs_no_writes(store: ObjectStore, s3_client: Any, target: TargetPrefix) -> None:
    plan_records(store, [_record("a"), _record("b"), {"id": "../bad"}], target)
    assert s3_client.writes() == []


@pytest.mark.unit
def test_plan_marks_invalid_records_with_reasons(store: ObjectStore, target: TargetPrefix) -> None:
    plan = plan_records(
        store,
        [_record("ok"), _record(None), _record("a/b"), _record("late", checkOut="2024-04-01")],
        target,
    )

    invalid = plan.entries_with(PlanAction.INVALID)
    assert [(e.line, e.record_id) for e in invalid] == [(2, None), (3, None), (4, "late")]
    assert invalid[0].reason == "missing id"
    assert invalid[1].reason.startswith("unsafe id")
    assert "checkOut is before checkIn" in invalid[2].reason
    assert all(e.key is None for e in invalid)


@pytest.mark.unit
def test_plan_last_duplicate_wins(store: ObjectStore, target: TargetPrefix) -> None:
    """Test that a repeated id keeps its last occurrence and reports the earlier ones."""
    plan = plan_records(
        store,
        [_record("dup", guestName="first"), _record("solo"), _record("dup", guestName="last")],
        target,
    )

    assert plan.duplicate_ids == ["dup"]
    creates = plan.entries_with(PlanAction.CREATE)
    assert sorted(e.record_id for e in creates) == ["dup", "solo"]
    winner = next(e for e in creates if e.record_id == "dup")
    assert winner.line == 3
    assert winner.data["guestName"] == "last"

    superseded = plan.entries_with(PlanAction.INVALID)[0]
    assert superseded.line == 1
    assert superseded.reason == "duplicate id (superseded by line 3)"


@pytest.mark.unit
def test_plan_carries_parse_errors(store: ObjectStore, target: TargetPrefix) -> None:
    content = "\n".join([json.dumps(_record("a")), "oops", json.dumps(_record("b"))])

    plan = plan_restore(store, parse_ndjson(content), target)

    assert plan.total_lines == 3
    assert [e.line for e in plan.parse_errors] == [2]
    assert plan.counts["create"] == 2


@pytest.mark.unit
def test_plan_marks_transient_check_failures(
    store: ObjectStore, s3_client: Any, target: TargetPrefix
) -> None:
    s3_client.fail("head_object", target.key_for("flaky"), "SlowDown")

    plan = plan_records(store, [_record("flaky"), _record("fine")], target)

    failed = plan.entries_with(PlanAction.CHECK_FAILED)
    assert [e.record_id for e in failed] == ["flaky"]
    assert failed[0].reason.startswith("existence check failed")
    assert plan.counts["create"] == 1


@pytest.mark.unit
def test_plan_aborts_on_auth_error(store: ObjectStore, s3_client: Any, target: TargetPrefix) -> None:
    """Test that a refused existence check is never mistaken for an absent key."""
    s3_client.fail("head_object", code="AccessDenied")

    with pytest.raises(StorageAuthError):
        plan_records(store, [_record("a"), _record("b")], target)


@pytest.mark.unit
def test_plan_checks_sandbox_keys_only(
    store: ObjectStore, s3_client: Any, tenant_key: str
) -> None:
    live = resolve_target_prefix(tenant_key, "default")
    sandbox = resolve_target_prefix(tenant_key, "restore-sandbox", "s1")
    s3_client.seed(live.key_for("a"), _record("a"))

    plan = plan_records(store, [_record("a")], sandbox)

    assert plan.counts["create"] == 1
    assert [key for op, key in s3_client.calls if op == "head_object"] == [sandbox.key_for("a")]


@pytest.mark.unit
def test_plan_entry_address_of_valid_record(target: TargetPrefix) -> None:
    entry = PlanEntry(
        line=1, record_id="r1", key=target.key_for("r1"), action=PlanAction.CREATE, data=_record("r1")
    )
    assert entry.address() == ("r1", target.key_for("r1"))


@pytest.mark.unit
def test_plan_entry_address_rejects_entry_without_key() -> None:
    entry = PlanEntry(
        line=3, record_id=None, key=None, action=PlanAction.INVALID, data={}, reason="missing id"
    )
    with pytest.raises(ValueError, match="line 3 has no target key"):
        entry.address()
