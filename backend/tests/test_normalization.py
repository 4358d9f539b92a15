from datetime import datetime, timedelta, timezone

import pytest

from exam_verification.services.normalization import (
    IST, format_timestamp, normalize_phone, normalize_yes_no, parse_timestamp,
)


@pytest.mark.parametrize("raw, expected", [
    ("98765 43210", "9876543210"),
    ("+91 (987) 654-3210", "919876543210"),
    ("98765-43210\n", "9876543210"),
    ("abc", ""),
    ("", ""),
    (None, ""),
    (9876543210, "9876543210"),
])
def test_normalize_phone_strips_non_digits(raw, expected):
    assert normalize_phone(raw) == expected


@pytest.mark.parametrize("raw", ["98765 43210", "+1-(555)-010", " ", "x1y2z3"])
def test_normalize_phone_is_idempotent(raw):
    once = normalize_phone(raw)
    assert normalize_phone(once) == once


@pytest.mark.parametrize("raw, expected", [
    (True, "Yes"),
    (False, "No"),
    ("Yes", "Yes"),
    (" yes ", "Yes"),
    ("YES", "Yes"),
    ("TRUE", "No"),
    ("y", "No"),
    ("1", "No"),
    (1, "No"),
    ("No", "No"),
    ("maybe", "No"),
    (0, "No"),
    (None, "No"),
])
def test_normalize_yes_no(raw, expected):
    assert normalize_yes_no(raw) == expected


def test_format_timestamp_uses_fixed_ist_offset():
    moment = datetime(2025, 1, 15, 9, 0, 30, 123456, tzinfo=timezone.utc)
    assert format_timestamp(moment) == "2025-01-15T14:30:30+05:30"


def test_format_timestamp_treats_naive_as_ist():
    assert format_timestamp(datetime(2025, 1, 15, 14, 30)) == "2025-01-15T14:30:00+05:30"


def test_parse_timestamp_round_trips_offset():
    parsed = parse_timestamp("2025-01-15T14:30:00+05:30")
    assert parsed == datetime(2025, 1, 15, 14, 30, tzinfo=IST)
    assert parsed.utcoffset() == timedelta(hours=5, minutes=30)


def test_parse_timestamp_accepts_utc_z_suffix():
    parsed = parse_timestamp("2025-01-15T09:00:00Z")
    assert parsed == datetime(2025, 1, 15, 14, 30, tzinfo=IST)


@pytest.mark.parametrize("raw", [None, "", "   ", "yesterday"])
def test_parse_timestamp_returns_none_for_unusable_values(raw):
    assert parse_timestamp(raw) is None
