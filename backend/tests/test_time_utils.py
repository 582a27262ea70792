from datetime import datetime, timezone

from runmetrics.core.time_utils import format_pace, parse_iso8601, seconds_to_hhmmss


def test_parse_plain_and_offset_timestamps():
    assert parse_iso8601("2025-01-06T07:00:00Z") == datetime(2025, 1, 6, 7, tzinfo=timezone.utc)
    assert parse_iso8601("2025-01-06T09:00:00+02:00") == datetime(2025, 1, 6, 7, tzinfo=timezone.utc)
    # Naive times are taken as UTC
    assert parse_iso8601("2025-01-06T07:00:00") == datetime(2025, 1, 6, 7, tzinfo=timezone.utc)


def test_parse_any_fraction_length():
    expected = datetime(2025, 1, 6, 7, 0, 0, 500000, tzinfo=timezone.utc)
    assert parse_iso8601("2025-01-06T07:00:00.5Z") == expected
    assert parse_iso8601("2025-01-06T07:00:00.50Z") == expected
    assert parse_iso8601("2025-01-06T07:00:00.500000000Z") == expected
    assert parse_iso8601("2025-01-06T07:00:00.123456789+00:00").microsecond == 123456


def test_parse_rejects_garbage():
    assert parse_iso8601(None) is None
    assert parse_iso8601("") is None
    assert parse_iso8601("yesterday") is None


def test_formatting():
    assert seconds_to_hhmmss(2732) == "45:32"
    assert seconds_to_hhmmss(3725) == "1:02:05"
    assert format_pace(7.5) == "7:30"
    assert format_pace(0) == "0:00"
