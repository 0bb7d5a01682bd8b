"""
NDJSON ingestion for restore uploads.

parse_ndjson() never raises on bad input lines: every line that is not a
JSON object becomes a ParseError and parsing moves on to the next line.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

import structlog

from booking_backup.errors import BadRequestError

logger = structlog.get_logger(__name__)

UTF8_BOM = "\ufeff"


@dataclass(frozen=True)
class ParseError:
    line: int
    message: str


@dataclass(frozen=True)
class ParsedLine:
    """A decoded JSON object and the 1-based line it came from."""

    line: int
    data: dict[str, Any]


@dataclass
class ParseResult:
    """
    Output of parse_ndjson().

    Attributes:
        records: Decoded objects, not yet validated or normalized
        errors: One entry per line that could not be used
        total_lines: Number of non-blank lines seen
    """

    records: list[ParsedLine] = field(default_factory=list)
    errors: list[ParseError] = field(default_factory=list)
    total_lines: int = 0


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def parse_ndjson(content: str) -> ParseResult:
    """
    Parse newline-delimited JSON.

    Blank lines are skipped but still count toward line numbers, so every
    reported line number points at the physical line of the upload.

    Args:
        content: Decoded upload text

    Returns:
        ParseResult
    """
    result = ParseResult()
    if content.startswith(UTF8_BOM):
        content = content[len(UTF8_BOM) :]

    for index, raw_line in enumerate(content.split("\n"), start=1):
        line = raw_line.rstrip("\r")
        if not line.strip():
            continue
        result.total_lines += 1

        try:
            data = json.loads(line, parse_constant=_reject_constant)
        except ValueError as e:
            result.errors.append(ParseError(line=index, message=f"invalid JSON: {e}"))
            continue

        if not isinstance(data, dict):
            result.errors.append(
                ParseError(line=index, message=f"not an object (got {type(data).__name__})")
            )
            continue

        result.records.append(ParsedLine(line=index, data=data))

    if result.errors:
        logger.info(
            "ndjson_parse_errors",
            total_lines=result.total_lines,
            records=len(result.records),
            errors=len(result.errors),
        )
    return result


def decode_upload(payload: bytes, max_bytes: int) -> str:
    """
    Enforce the upload ceiling and decode the upload as UTF-8.

    Raises:
        BadRequestError: If the upload is too large or not UTF-8 text
    """
    if len(payload) > max_bytes:
        raise BadRequestError(
            f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB"
        )
    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError as e:
        raise BadRequestError(f"File is not valid UTF-8 text (byte {e.start})") from e
