"""
Unit tests for structural record validation.
"""

from __future__ import annotations

from datetime import date

import pytest
from pydantic import ValidationError

from booking_backup.schemas.records import RecordIdentity, describe_validation_error


@pytest.mark.unit
def test_record_identity_parses_dates_and_ignores_other_fields() -> None:
    identity = RecordIdentity.model_validate(
        {"id": "r1", "checkIn": "2024-05-01", "checkOut": "2024-05-03T11:00:00Z", "foo": 1}
    )

    assert identity.check_in == date(2024, 5, 1)
    assert identity.check_out == date(2024, 5, 3)


@pytest.mark.unit
def test_record_identity_allows_missing_check_out() -> None:
    assert RecordIdentity.model_validate({"checkIn": "2024-05-01"}).check_out is None


@pytest.mark.unit
def test_record_identity_allows_same_day_stay() -> None:
    identity = RecordIdentity.model_validate({"checkIn": "2024-05-01", "checkOut": "2024-05-01"})
    assert identity.check_in == identity.check_out


@pytest.mark.unit
def test_describe_validation_error_is_one_line() -> None:
    with pytest.raises(ValidationError) as exc_info:
        RecordIdentity.model_validate({"checkIn": "not a date", "checkOut": 5})

    message = describe_validation_error(exc_info.value)
    assert "\n" not in message
    assert "checkIn: unparseable date 'not a date'" in message
    assert "checkOut: must be an ISO date string" in message
