"""Read-only aggregations over the local playback history."""

from __future__ import annotations

from collections import Counter
from typing import Any, Dict, Iterable, List, Optional

from finscope.core.history_db import HistoryDB
from finscope.core.logger import setup_logger
from finscope.core.models import HOURS_PER_DAY, HistoryAnalytics
from finscope.core.utils import parse_timestamp

logger = setup_logger(__name__)

DEFAULT_GENRE_LIMIT = 8


def build_histograms(played_dates: Iterable[Any]) -> HistoryAnalytics:
    """Bucket timestamps by calendar day and hour of day.

    Day and hour come from the timestamp as written, in its own offset; no
    timezone conversion happens. Unparseable values are counted in
    ``parse_errors`` and in ``total_plays`` but not in either histogram.
    """
    analytics = HistoryAnalytics()
    day_counts: Counter = Counter()

    for raw_value in played_dates:
        analytics.total_plays += 1
        moment = parse_timestamp(raw_value)
        if moment is None:
            analytics.parse_errors += 1
            continue
        day_counts[moment.date().isoformat()] += 1
        analytics.hour_histogram[moment.hour] += 1

    analytics.day_histogram = dict(day_counts)
    return analytics


def aggregate_history(history_db: HistoryDB, server_url: str) -> HistoryAnalytics:
    """Aggregate every stored play for a server, across all accounts."""
    analytics = build_histograms(history_db.list_played_dates(server_url))
    logger.info(
        f"Analytics for {server_url}: {analytics.total_plays} total rows, "
        f"{len(analytics.day_histogram)} days, {analytics.parse_errors} parse errors"
    )
    return analytics


def empty_analytics() -> Dict[str, Any]:
    return HistoryAnalytics(hour_histogram=[0] * HOURS_PER_DAY).to_dict()


def summarize_genres(items: Iterable[Any], limit: int = DEFAULT_GENRE_LIMIT) -> List[Dict[str, Any]]:
    """Count genre occurrences across library items; top ``limit`` with percentages.

    Only items carrying at least one genre count towards the percentage base.
    """
    genre_counts: Counter = Counter()
    total_items = 0

    for item in items:
        if not isinstance(item, dict):
            continue
        genres = item.get("Genres") or []
        if not isinstance(genres, list) or not genres:
            continue
        total_items += 1
        for genre in genres:
            if isinstance(genre, str) and genre:
                genre_counts[genre] += 1

    # most_common keeps first-seen order for equal counts.
    return [
        {
            "name": name,
            "count": count,
            "pct": round(count / total_items * 100) if total_items > 0 else 0,
        }
        for name, count in genre_counts.most_common(limit)
    ]


def collect_pulse_stats(history_db: HistoryDB, server_url: Optional[str]) -> Dict[str, Any]:
    """Database metrics for the status view."""
    stats: Dict[str, Any] = {
        "dbSizeBytes": history_db.get_db_size_bytes(),
        "totalHistoryEntries": 0,
        "lastSyncTime": None,
    }
    if server_url:
        stats["totalHistoryEntries"] = history_db.count_records(server_url)
        stats["lastSyncTime"] = history_db.get_last_sync_time(server_url)
    return stats
