import uuid
from datetime import datetime, timezone

import pytest

from vibecode.pagination import (
    InvalidCursor,
    clamp_limit,
    decode_cursor,
    encode_cursor,
    paginate,
    parse_datetime,
    parse_int,
)


def test_cursor_is_opaque_and_decodes_with_parsers():
    stamp = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)
    vibe_id = uuid.uuid4()

    cursor = encode_cursor(12, stamp, vibe_id)
    assert "=" not in cursor
    assert decode_cursor(cursor, parse_int, parse_datetime, uuid.UUID) == (12, stamp, vibe_id)


def test_naive_datetimes_are_treated_as_utc():
    naive = datetime(2024, 1, 2, 3, 4, 5)
    (decoded,) = decode_cursor(encode_cursor(naive), parse_datetime)
    assert decoded == naive.replace(tzinfo=timezone.utc)


@pytest.mark.parametrize("cursor", ["", "%%%", "bnVsbA", "WzEsMl0", "WyJ4Il0"])
def test_bad_cursors_raise(cursor):
    with pytest.raises(InvalidCursor):
        decode_cursor(cursor, parse_datetime)


def test_parse_int_rejects_bools_and_strings():
    with pytest.raises(ValueError):
        parse_int(True)
    with pytest.raises(ValueError):
        parse_int("3")


@pytest.mark.parametrize("given, expected", [(0, 1), (1, 1), (20, 20), (50, 50), (51, 50), (10_000, 50)])
def test_clamp_limit(given, expected):
    assert clamp_limit(given) == expected


def test_paginate_uses_the_extra_row_as_has_more():
    rows = list(range(6))
    page, cursor, has_more = paginate(rows, 5, lambda r: (r,))
    assert page == [0, 1, 2, 3, 4]
    assert has_more is True
    assert decode_cursor(cursor, parse_int) == (4,)

    page, cursor, has_more = paginate(rows[:3], 5, lambda r: (r,))
    assert (page, cursor, has_more) == ([0, 1, 2], None, False)
