"""Tests for shared URL and timestamp helpers."""

from datetime import datetime, timedelta, timezone

from finscope.core.utils import (
    hour_timestamp,
    normalize_http_url,
    now_timestamp,
    parse_timestamp,
    timestamp_is_after,
)


def test_normalize_http_url():
    assert normalize_http_url("jellyfin.local:8096/") == "http://jellyfin.local:8096"
    assert normalize_http_url(" 'https://media.example.com/jf/' ") == "https://media.example.com/jf"
    assert normalize_http_url("") == ""
    assert normalize_http_url(None) == ""


def test_parse_timestamp_handles_jellyfin_precision():
    parsed = parse_timestamp("2024-01-01T20:00:00.1234567Z")

    assert parsed == datetime(2024, 1, 1, 20, 0, 0, 123456, tzinfo=timezone.utc)


def test_parse_timestamp_keeps_stated_offset():
    parsed = parse_timestamp("2024-01-01T20:00:00+02:00")

    assert parsed.hour == 20
    assert parsed.utcoffset() == timedelta(hours=2)


def test_parse_timestamp_rejects_garbage():
    assert parse_timestamp("yesterday") is None
    assert parse_timestamp("") is None
    assert parse_timestamp(None) is None


def test_timestamp_is_after_is_chronological():
    assert timestamp_is_after("2024-01-01T20:00:01Z", "2024-01-01T20:00:00.9999999Z")
    assert not timestamp_is_after("2024-01-01T20:00:00.0000000Z", "2024-01-01T20:00:00Z")
    assert timestamp_is_after("2024-01-01T21:00:00+02:00", "2024-01-01T18:00:00Z")


def test_timestamp_is_after_falls_back_to_string_order():
    assert timestamp_is_after("b", "a")
    assert not timestamp_is_after("a", "a")


def test_hour_and_now_timestamps():
    assert hour_timestamp(datetime(2024, 1, 1, 9, 59, 59, tzinfo=timezone.utc)) == "2024-01-01T09:00:00.000Z"
    assert parse_timestamp(now_timestamp()) is not None
    assert now_timestamp().endswith("Z")
