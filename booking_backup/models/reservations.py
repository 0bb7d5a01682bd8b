"""
Reservation record shapes as stored in object storage.

Records are open: the TypedDicts below describe the known fields, and any
other field rides along in a passthrough side-map (see merge_extras) that is
written back out verbatim.
"""

from __future__ import annotations

from typing import Any, Literal, TypedDict

CURRENT_SCHEMA_VERSION = 2
LEGACY_SCHEMA_VERSION = 1

BookingStatus = Literal["confirmed", "waiting", "rejected"]
StayReviewState = Literal["pending", "ok", "issue"]

DEFAULT_STATUS: BookingStatus = "confirmed"


class PaymentDeposit(TypedDict, total=False):
    due: float
    paid: bool


class PaymentEvent(TypedDict, total=False):
    id: str
    amount: float
    date: str  # ISO 8601
    method: str
    note: str


class Payment(TypedDict, total=False):
    deposit: PaymentDeposit
    terms: str
    events: list[PaymentEvent]


class StayReview(TypedDict, total=False):
    state: StayReviewState
    reviewedAt: str
    note: str


class ImportMeta(TypedDict, total=False):
    normalizedFrom: int
    normalizedAt: str
    unknownKeys: list[str]


class ReservationV2(TypedDict, total=False):
    schemaVersion: int
    id: str
    guestName: str
    phone: str
    email: str
    partySize: int
    rooms: int
    checkIn: str  # YYYY-MM-DD
    checkOut: str  # YYYY-MM-DD
    status: BookingStatus
    breakfastIncluded: bool
    nightlyRate: float
    breakfastPerPersonPerNight: float
    manualLodgingEnabled: bool
    manualLodgingTotal: float
    birthDate: str
    extraSpend: float
    totalNights: int
    totalPrice: float
    payment: Payment
    notesInternal: str
    notesGuest: str
    stayReview: StayReview
    createdAt: str
    updatedAt: str
    _importMeta: ImportMeta


# Fields of the flat legacy layout. "rooms" predates the version tag on some
# records, so it is recognised here as well.
V1_KNOWN_FIELDS: frozenset[str] = frozenset(
    {
        "schemaVersion",
        "id",
        "guestName",
        "phone",
        "email",
        "partySize",
        "rooms",
        "checkIn",
        "checkOut",
        "breakfastIncluded",
        "nightlyRate",
        "breakfastPerPersonPerNight",
        "manualLodgingEnabled",
        "manualLodgingTotal",
        "birthDate",
        "extraSpend",
        "totalNights",
        "totalPrice",
        "depositDue",
        "depositPaid",
        "notes",
        "createdAt",
        "updatedAt",
    }
)

# Legacy fields copied onto the canonical record under the same name.
V1_COPIED_FIELDS: tuple[str, ...] = (
    "id",
    "guestName",
    "phone",
    "email",
    "partySize",
    "rooms",
    "checkIn",
    "checkOut",
    "breakfastIncluded",
    "nightlyRate",
    "breakfastPerPersonPerNight",
    "manualLodgingEnabled",
    "manualLodgingTotal",
    "birthDate",
    "extraSpend",
    "totalNights",
    "totalPrice",
    "createdAt",
    "updatedAt",
)

def merge_extras(known: dict[str, Any], extras: dict[str, Any]) -> dict[str, Any]:
    """
    Join canonical fields and the passthrough side-map into one stored record.

    Args:
        known: Canonical fields produced by normalization
        extras: Passthrough fields, written back out verbatim

    Returns:
        dict: New record holding both

    Raises:
        ValueError: If a name appears on both sides
    """
    overlap = known.keys() & extras.keys()
    if overlap:
        raise ValueError(f"passthrough fields shadow canonical fields: {sorted(overlap)}")
    merged = dict(known)
    merged.update(extras)
    return merged
