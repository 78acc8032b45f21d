"""Record currently-playing Jellyfin sessions as playback events."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional

from finscope.core.history_db import HistoryDB
from finscope.core.logger import setup_logger
from finscope.core.models import PlaybackRecord
from finscope.core.utils import hour_timestamp

logger = setup_logger(__name__)


def _session_to_record(server_url: str, session: Any, date_played: str) -> PlaybackRecord | None:
    if not isinstance(session, dict):
        return None
    user_id = str(session.get("userId") or "").strip()
    item_id = str(session.get("itemId") or "").strip()
    if not user_id or not item_id:
        return None
    return PlaybackRecord(
        server_url=server_url,
        user_id=user_id,
        item_id=item_id,
        date_played=date_played,
        item_name=session.get("itemName"),
        item_type=session.get("itemType"),
    )


def track_sessions(
    history_db: HistoryDB,
    server_url: str,
    sessions: Iterable[Any],
    now: Optional[datetime] = None,
) -> int:
    """Store active sessions, coalesced to the current UTC hour.

    Re-reporting the same session within the hour hits the unique constraint
    and is ignored. Returns the number of new rows.
    """
    hour_key = hour_timestamp(now)
    records = []
    for session in sessions:
        record = _session_to_record(server_url, session, hour_key)
        if record is None:
            logger.debug(f"Skipping malformed session entry: {session!r}")
            continue
        records.append(record)

    tracked = history_db.insert_playback_records(records)
    if tracked > 0:
        logger.info(f"Recorded {tracked} playback events from live sessions")
    return tracked
