"""Tests for history analytics, genre summaries and store metrics."""

from __future__ import annotations

import os
import tempfile

import pytest

from finscope.core.analytics import (
    aggregate_history,
    build_histograms,
    collect_pulse_stats,
    empty_analytics,
    summarize_genres,
)
from finscope.core.history_db import HistoryDB
from finscope.core.models import PlaybackRecord

SERVER = "http://jellyfin.local:8096"


@pytest.fixture
def history_db():
    with tempfile.TemporaryDirectory() as tmpdir:
        db = HistoryDB(os.path.join(tmpdir, "finscope.db"))
        db.initialize()
        yield db


def _store(history_db: HistoryDB, *dates: str, user_id: str = "u1") -> None:
    history_db.insert_playback_records(
        PlaybackRecord(server_url=SERVER, user_id=user_id, item_id=f"item-{i}", date_played=d)
        for i, d in enumerate(dates)
    )


class TestHistograms:
    def test_day_and_hour_buckets(self, history_db):
        _store(history_db, "2024-01-01T20:00:00Z", "2024-01-01T20:30:00Z", "2024-01-02T05:00:00Z")

        analytics = aggregate_history(history_db, SERVER)

        assert analytics.day_histogram == {"2024-01-01": 2, "2024-01-02": 1}
        expected_hours = [0] * 24
        expected_hours[20] = 2
        expected_hours[5] = 1
        assert analytics.hour_histogram == expected_hours
        assert analytics.total_plays == 3

    def test_unparseable_timestamp_counts_only_in_total(self, history_db):
        _store(history_db, "2024-01-01T20:00:00Z", "not-a-date")

        analytics = aggregate_history(history_db, SERVER)

        assert analytics.total_plays == 2
        assert analytics.parse_errors == 1
        assert analytics.day_histogram == {"2024-01-01": 1}
        assert sum(analytics.hour_histogram) == 1

    def test_offsets_are_not_converted(self):
        analytics = build_histograms(["2024-03-01T23:30:00+05:00", "2024-03-01T23:30:00.1234567-08:00"])

        assert analytics.day_histogram == {"2024-03-01": 2}
        assert analytics.hour_histogram[23] == 2

    def test_aggregates_across_accounts(self, history_db):
        _store(history_db, "2024-01-01T08:00:00Z", user_id="u1")
        _store(history_db, "2024-01-01T09:00:00Z", user_id="u2")

        analytics = aggregate_history(history_db, SERVER)

        assert analytics.total_plays == 2
        assert analytics.day_histogram == {"2024-01-01": 2}

    def test_empty_store_returns_well_formed_structure(self, history_db):
        payload = aggregate_history(history_db, SERVER).to_dict()

        assert payload == {"historyMap": {}, "peakHours": [0] * 24, "totalPlays": 0}
        assert empty_analytics() == payload


class TestGenres:
    def test_top_genres_with_percentages(self):
        items = [
            {"Genres": ["Drama", "Comedy"]},
            {"Genres": ["Drama"]},
            {"Genres": ["Action", "Drama"]},
            {"Genres": []},
            {"Name": "no genres"},
        ]

        assert summarize_genres(items) == [
            {"name": "Drama", "count": 3, "pct": 100},
            {"name": "Comedy", "count": 1, "pct": 33},
            {"name": "Action", "count": 1, "pct": 33},
        ]

    def test_limit_applies(self):
        items = [{"Genres": [f"G{i}"]} for i in range(12)]

        assert len(summarize_genres(items)) == 8
        assert len(summarize_genres(items, limit=3)) == 3

    def test_no_items(self):
        assert summarize_genres([]) == []


class TestPulseStats:
    def test_stats_for_configured_server(self, history_db):
        _store(history_db, "2024-01-01T00:00:00Z", "2024-01-02T00:00:00Z")
        history_db.upsert_watermark(SERVER, "u1", "2024-01-02T00:00:00Z", 2)

        stats = collect_pulse_stats(history_db, SERVER)

        assert stats["dbSizeBytes"] > 0
        assert stats["totalHistoryEntries"] == 2
        assert stats["lastSyncTime"] == "2024-01-02T00:00:00Z"

    def test_stats_without_server(self, history_db):
        stats = collect_pulse_stats(history_db, None)

        assert stats["totalHistoryEntries"] == 0
        assert stats["lastSyncTime"] is None
