"""
Opaque keyset cursors.

A cursor is the urlsafe-base64 JSON list of the sort key of the last row on
a page, e.g. ``[created_at, id]`` or ``[reaction_count, created_at, id]``.
Clients must treat it as an opaque string.
"""

import base64
import binascii
import json
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence, TypeVar

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 50

T = TypeVar("T")


class InvalidCursor(ValueError):
    pass


def clamp_limit(limit: int) -> int:
    return max(1, min(limit, MAX_PAGE_SIZE))


def _encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


def encode_cursor(*values: Any) -> str:
    raw = json.dumps([_encode_value(v) for v in values], separators=(",", ":"))
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def parse_datetime(value: Any) -> datetime:
    parsed = datetime.fromisoformat(value)
    # stored timestamps are UTC; asyncpg refuses naive values for timestamptz
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError("expected an integer")
    return value


def decode_cursor(cursor: str, *parsers: Callable[[Any], Any]) -> tuple:
    """Decode ``cursor`` and convert each element with the matching parser.

    Raises InvalidCursor when the cursor is not base64 JSON, has the wrong
    number of elements, or an element cannot be parsed.
    """
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        values = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise InvalidCursor("cursor is not valid") from exc

    if not isinstance(values, list) or len(values) != len(parsers):
        raise InvalidCursor("cursor has the wrong shape")

    try:
        return tuple(parse(value) for parse, value in zip(parsers, values))
    except (TypeError, ValueError, AttributeError) as exc:
        raise InvalidCursor("cursor is not valid") from exc


# Splits a limit+1 fetch into (page, next_cursor, has_more)
def paginate(rows: Sequence[T], limit: int, cursor_key: Callable[[T], tuple]) -> tuple[list[T], Optional[str], bool]:
    has_more = len(rows) > limit
    page = list(rows[:limit])
    next_cursor = encode_cursor(*cursor_key(page[-1])) if has_more and page else None
    return page, next_cursor, has_more
