from datetime import date, datetime, timezone

import pytest
from fastapi import HTTPException

from godplan.models.attendance import AttendanceStatus
from godplan.services.attendance import (
    DEFAULT_HISTORY_LIMIT,
    MonotonicClock,
    derive_status,
    parse_date_filter,
    parse_limit,
)
from godplan.services.geofence import GeofenceResult


def test_derive_status():
    assert derive_status(GeofenceResult(True, 10.0), force=False) is AttendanceStatus.APPROVED
    assert derive_status(GeofenceResult(True, 10.0), force=True) is AttendanceStatus.APPROVED
    assert derive_status(GeofenceResult(False, 500.0), force=True) is AttendanceStatus.FORCED
    assert derive_status(GeofenceResult(False, 500.0), force=False) is AttendanceStatus.REJECTED


def test_clock_never_repeats_an_instant():
    frozen = datetime(2025, 1, 1, 8, 0, tzinfo=timezone.utc)
    clock = MonotonicClock(now=lambda: frozen)
    first, second, third = clock(), clock(), clock()
    assert first == frozen
    assert first < second < third


@pytest.mark.parametrize("raw,expected", [
    (None, DEFAULT_HISTORY_LIMIT),
    ("", DEFAULT_HISTORY_LIMIT),
    ("abc", DEFAULT_HISTORY_LIMIT),
    ("0", DEFAULT_HISTORY_LIMIT),
    ("-5", DEFAULT_HISTORY_LIMIT),
    ("10", 10),
])
def test_parse_limit(raw, expected):
    assert parse_limit(raw) == expected


def test_parse_date_filter():
    assert parse_date_filter(None) is None
    assert parse_date_filter("2025-03-09") == date(2025, 3, 9)
    with pytest.raises(HTTPException) as exc:
        parse_date_filter("09/03/2025")
    assert exc.value.status_code == 400
