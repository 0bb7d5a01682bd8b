"""
Structural validation applied to every record before it is planned for restore.

Only the fields needed to place a record in storage and on the calendar are
checked here. Everything else is carried through untouched.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Optional

from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator


class RecordIdentity(BaseModel):
    """
    Identity and stay dates of a reservation record.

    Dates are accepted as ISO-8601 strings (date or date-time) and compared as dates.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    check_in: date = Field(..., alias="checkIn")
    check_out: Optional[date] = Field(None, alias="checkOut")

    @field_validator("check_in", "check_out", mode="before")
    @classmethod
    def parse_iso_date(cls, value: Any) -> Any:
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValueError("must be an ISO date string")
        try:
            return date_parser.isoparse(value.strip()).date()
        except (ValueError, OverflowError):
            raise ValueError(f"unparseable date {value!r}") from None

    @model_validator(mode="after")
    def check_out_not_before_check_in(self) -> "RecordIdentity":
        if self.check_out is not None and self.check_out < self.check_in:
            raise ValueError("checkOut is before checkIn")
        return self


def describe_validation_error(err: ValidationError) -> str:
    """Render a pydantic ValidationError as one short human-readable line."""
    parts = []
    for item in err.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        message = str(item.get("msg", "invalid")).removeprefix("Value error, ")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)
