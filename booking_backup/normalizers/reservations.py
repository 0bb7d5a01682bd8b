"""
Schema detection and legacy-to-canonical normalization for reservation records.

Stored reservations come in two shapes:

- legacy (v1): no schemaVersion tag, flat deposit fields, a single notes field
- canonical (v2): schemaVersion=2, nested payment object, split notes

decode_record() inspects the version tag once and returns a tagged variant;
normalize_record() turns either variant into the canonical shape. Unknown
fields are never dropped: they are copied onto the output and their names
are listed in _importMeta.unknownKeys.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Union

import structlog

from booking_backup.errors import MalformedRecordError
from booking_backup.models.reservations import (
    CURRENT_SCHEMA_VERSION,
    DEFAULT_STATUS,
    LEGACY_SCHEMA_VERSION,
    V1_COPIED_FIELDS,
    V1_KNOWN_FIELDS,
    ImportMeta,
    merge_extras,
)
from booking_backup.utils.datetime import iso_timestamp

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LegacyRecord:
    """A record without a version tag (or tagged 1), in the flat v1 layout."""

    fields: dict[str, Any]

    version = LEGACY_SCHEMA_VERSION


@dataclass(frozen=True)
class CanonicalRecord:
    """A record tagged schemaVersion=2."""

    fields: dict[str, Any]

    version = CURRENT_SCHEMA_VERSION


DecodedRecord = Union[LegacyRecord, CanonicalRecord]


@dataclass
class NormalizationResult:
    """
    Output of normalize_record().

    Attributes:
        record: Canonical record (a new dict; the input is never mutated)
        import_meta: Migration metadata, None when the input was already canonical
    """

    record: dict[str, Any]
    import_meta: ImportMeta | None = None

    @property
    def was_normalized(self) -> bool:
        return self.import_meta is not None


@dataclass
class _Mapping:
    payment: dict[str, Any] = field(default_factory=dict)
    unknown_keys: list[str] = field(default_factory=list)
    # Legacy fields whose value could not be translated; kept under their own name
    untranslated: list[str] = field(default_factory=list)


def decode_record(raw: Any) -> DecodedRecord:
    """
    Detect the schema version of a raw record.

    Rules:
        - not a JSON object            -> MalformedRecordError
        - schemaVersion missing/null/1 -> LegacyRecord
        - schemaVersion 2              -> CanonicalRecord
        - any other schemaVersion      -> MalformedRecordError

    Args:
        raw: Value decoded from JSON

    Returns:
        DecodedRecord: LegacyRecord or CanonicalRecord wrapping the same dict
    """
    if not isinstance(raw, dict):
        raise MalformedRecordError(f"record must be a JSON object, got {type(raw).__name__}")

    version = raw.get("schemaVersion")

    # bool is an int subclass; true/false are not versions
    if version is None or (version == LEGACY_SCHEMA_VERSION and not isinstance(version, bool)):
        return LegacyRecord(raw)
    if version == CURRENT_SCHEMA_VERSION and not isinstance(version, bool):
        return CanonicalRecord(raw)

    raise MalformedRecordError(f"unsupported schemaVersion: {version!r}. Expected 1, 2, or missing.")


def find_unknown_keys(raw: dict[str, Any]) -> list[str]:
    """Return the names of fields outside the known legacy field set, in input order."""
    return [key for key in raw if key not in V1_KNOWN_FIELDS]


def _is_amount(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _map_legacy(raw: dict[str, Any]) -> _Mapping:
    mapping = _Mapping(unknown_keys=find_unknown_keys(raw))

    deposit: dict[str, Any] = {}
    for source, target, valid in (
        ("depositDue", "due", _is_amount),
        ("depositPaid", "paid", lambda value: isinstance(value, bool)),
    ):
        if source not in raw:
            continue
        if valid(raw[source]):
            deposit[target] = raw[source]
        else:
            mapping.untranslated.append(source)

    if deposit:
        mapping.payment["deposit"] = deposit
    mapping.payment["events"] = []
    return mapping


def _resolve_collisions(
    raw: dict[str, Any], known: dict[str, Any], extras: dict[str, Any], mapping: _Mapping
) -> None:
    """
    Settle passthrough fields that share a name with a field the mapping produced.

    - _importMeta: the migration metadata is kept; the incoming value moves
      to _importMetaPrevious
    - status: the incoming value is kept instead of the default
    - notesInternal: the incoming value is kept; legacy notes stays as notes
    - payment: an incoming object without its own deposit absorbs the
      translated deposit; otherwise it is kept as is and the legacy deposit
      fields stay untranslated
    """
    if "_importMeta" in extras:
        stash = "_importMetaPrevious"
        while stash in extras:
            stash = "_" + stash
        extras[stash] = extras.pop("_importMeta")

    if "status" in extras:
        del known["status"]

    if "notesInternal" in extras and "notesInternal" in known:
        del known["notesInternal"]
        mapping.untranslated.append("notes")

    if "payment" in extras:
        incoming = extras.pop("payment")
        translated = known["payment"]
        if isinstance(incoming, dict) and not ("deposit" in incoming and "deposit" in translated):
            merged = dict(incoming)
            if "deposit" in translated:
                merged["deposit"] = translated["deposit"]
            merged.setdefault("events", [])
            known["payment"] = merged
        else:
            known["payment"] = incoming
            for name in ("depositDue", "depositPaid"):
                if name in raw and name not in mapping.untranslated:
                    mapping.untranslated.append(name)


def normalize_legacy(raw: dict[str, Any], now: datetime | None = None) -> NormalizationResult:
    """
    Map a legacy record onto the canonical shape.

    Mappings:
        - schemaVersion              -> 2
        - status                     -> "confirmed"
        - depositDue / depositPaid   -> payment.deposit.due / .paid
        - notes                      -> notesInternal
        - totalNights (absent)       -> 1
        - createdAt (absent)         -> migration time
        - updatedAt                  -> migration time
        - unknown fields             -> copied verbatim, names in _importMeta.unknownKeys

    A present field is carried over even when its value is null. A legacy
    value that cannot be translated (a non-numeric depositDue, or a deposit
    that clashes with an incoming payment object) stays on the record under
    its legacy name and is listed in unknownKeys alongside the unknown fields.

    Args:
        raw: Legacy record (not mutated)
        now: Migration time, injectable for deterministic output

    Returns:
        NormalizationResult with import_meta set
    """
    migrated_at = iso_timestamp(now)
    mapping = _map_legacy(raw)

    known: dict[str, Any] = {"schemaVersion": CURRENT_SCHEMA_VERSION}
    for name in V1_COPIED_FIELDS:
        if name in raw:
            known[name] = copy.deepcopy(raw[name])

    known.setdefault("totalNights", 1)
    known.setdefault("createdAt", migrated_at)
    known["updatedAt"] = migrated_at
    known["status"] = DEFAULT_STATUS
    known["payment"] = mapping.payment
    if "notes" in raw:
        known["notesInternal"] = copy.deepcopy(raw["notes"])

    extras = {key: copy.deepcopy(raw[key]) for key in mapping.unknown_keys}
    _resolve_collisions(raw, known, extras, mapping)
    for name in mapping.untranslated:
        extras[name] = copy.deepcopy(raw[name])

    unknown_keys = mapping.unknown_keys + mapping.untranslated
    import_meta: ImportMeta = {
        "normalizedFrom": LEGACY_SCHEMA_VERSION,
        "normalizedAt": migrated_at,
    }
    if unknown_keys:
        import_meta["unknownKeys"] = unknown_keys
    known["_importMeta"] = import_meta

    record = merge_extras(known, extras)

    logger.debug(
        "record_normalized",
        record_id=raw.get("id"),
        normalized_from=LEGACY_SCHEMA_VERSION,
        unknown_keys=len(unknown_keys),
    )
    return NormalizationResult(record=record, import_meta=import_meta)


def normalize_record(raw: Any, now: datetime | None = None) -> NormalizationResult:
    """
    Normalize any raw record to the canonical shape.

    Canonical input passes through unchanged (as a copy, without import
    metadata), so calling this repeatedly is safe.

    Args:
        raw: Value decoded from JSON
        now: Migration time for legacy input, injectable for deterministic output

    Returns:
        NormalizationResult

    Raises:
        MalformedRecordError: If raw is not an object or has an unsupported version
    """
    decoded = decode_record(raw)
    if isinstance(decoded, CanonicalRecord):
        return NormalizationResult(record=copy.deepcopy(decoded.fields))
    return normalize_legacy(decoded.fields, now=now)
