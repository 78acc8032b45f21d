"""SQLite store for the local playback-history cache and sync watermarks."""

import os
import sqlite3
import threading
from typing import Iterable, List, Optional

from finscope.core.logger import setup_logger
from finscope.core.models import PlaybackRecord, SyncWatermark
from finscope.core.utils import timestamp_is_after

logger = setup_logger(__name__)

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS playback_history (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    server_url  TEXT NOT NULL,
    user_id     TEXT NOT NULL,
    item_id     TEXT NOT NULL,
    item_name   TEXT,
    item_type   TEXT,
    date_played TEXT NOT NULL,
    UNIQUE(server_url, user_id, item_id, date_played)
);

CREATE INDEX IF NOT EXISTS idx_history_lookup
ON playback_history (server_url, user_id, date_played);

CREATE TABLE IF NOT EXISTS sync_meta (
    server_url   TEXT NOT NULL,
    user_id      TEXT NOT NULL,
    last_sync    TEXT,
    total_synced INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (server_url, user_id)
);

CREATE TABLE IF NOT EXISTS jellyfin_configs (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id          TEXT NOT NULL,
    server_url       TEXT NOT NULL,
    api_key          TEXT NOT NULL,
    jellyfin_user_id TEXT,
    server_name      TEXT,
    is_active        INTEGER NOT NULL DEFAULT 1,
    created_at       TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(user_id, server_url)
);

CREATE INDEX IF NOT EXISTS idx_jellyfin_configs_user_active
ON jellyfin_configs (user_id, is_active);
"""

_INSERT_RECORD_SQL = """
INSERT OR IGNORE INTO playback_history (
    server_url, user_id, item_id, item_name, item_type, date_played
)
VALUES (?, ?, ?, ?, ?, ?)
"""


def get_history_db_path(config_dir: Optional[str] = None) -> str:
    """Return the configured history database path."""
    if config_dir:
        return os.path.join(config_dir, "finscope.db")
    return os.environ.get("DB_PATH") or os.path.join(
        os.environ.get("CONFIG_DIR", "/config"), "finscope.db"
    )


def _record_params(record: PlaybackRecord) -> tuple:
    return (
        record.server_url,
        record.user_id,
        record.item_id,
        record.item_name,
        record.item_type,
        record.date_played,
    )


class HistoryDB:
    """Thread-safe SQLite store for playback records and sync watermarks."""

    def __init__(self, db_path: str):
        self._db_path = db_path
        self._lock = threading.Lock()

    @property
    def db_path(self) -> str:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def initialize(self) -> None:
        """Create database and tables if they don't exist."""
        parent = os.path.dirname(self._db_path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with self._lock:
            conn = self._connect()
            try:
                conn.executescript(_CREATE_TABLES_SQL)
                conn.commit()
                # WAL mode must be changed outside an open transaction.
                conn.execute("PRAGMA journal_mode=WAL")
            finally:
                conn.close()

    # ------------------------------------------------------------------
    # Playback records
    # ------------------------------------------------------------------

    def insert_playback_record(self, record: PlaybackRecord) -> bool:
        """Insert one record. Returns False when an identical record already exists."""
        return self.insert_playback_records([record]) == 1

    def insert_playback_records(self, records: Iterable[PlaybackRecord]) -> int:
        """Insert records in a single transaction, ignoring duplicates.

        Returns the number of rows actually inserted.
        """
        batch = list(records)
        if not batch:
            return 0
        with self._lock:
            conn = self._connect()
            try:
                inserted = 0
                with conn:
                    for record in batch:
                        cursor = conn.execute(_INSERT_RECORD_SQL, _record_params(record))
                        inserted += cursor.rowcount
                return inserted
            finally:
                conn.close()

    def list_records(self, server_url: str, user_id: Optional[str] = None) -> List[PlaybackRecord]:
        """List records for an endpoint (optionally one account), oldest first."""
        query = "SELECT * FROM playback_history WHERE server_url = ?"
        params: list = [server_url]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        query += " ORDER BY date_played ASC, id ASC"

        conn = self._connect()
        try:
            rows = conn.execute(query, params).fetchall()
            return [PlaybackRecord.from_row(row) for row in rows]
        finally:
            conn.close()

    def list_played_dates(self, server_url: str) -> List[str]:
        """Return every date_played value for an endpoint, oldest first."""
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT date_played FROM playback_history WHERE server_url = ? ORDER BY date_played",
                (server_url,),
            ).fetchall()
            return [row["date_played"] for row in rows]
        finally:
            conn.close()

    def count_records(self, server_url: str) -> int:
        """Count records for an endpoint across all accounts."""
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT COUNT(*) AS count FROM playback_history WHERE server_url = ?",
                (server_url,),
            ).fetchone()
            return int(row["count"]) if row else 0
        finally:
            conn.close()

    def clear_history(self, server_url: str) -> int:
        """Delete every record and watermark for an endpoint. Returns deleted record count."""
        with self._lock:
            conn = self._connect()
            try:
                with conn:
                    cursor = conn.execute(
                        "DELETE FROM playback_history WHERE server_url = ?",
                        (server_url,),
                    )
                    conn.execute("DELETE FROM sync_meta WHERE server_url = ?", (server_url,))
                deleted = max(cursor.rowcount, 0)
                logger.info(f"Cleared {deleted} history entries for {server_url}")
                return deleted
            finally:
                conn.close()

    # ------------------------------------------------------------------
    # Watermarks
    # ------------------------------------------------------------------

    def get_watermark(self, server_url: str, user_id: str) -> Optional[SyncWatermark]:
        """Get the sync watermark for an account. Returns None if never synced."""
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM sync_meta WHERE server_url = ? AND user_id = ?",
                (server_url, user_id),
            ).fetchone()
            if row is None:
                return None
            return SyncWatermark(
                server_url=row["server_url"],
                user_id=row["user_id"],
                last_sync=row["last_sync"],
                total_synced=int(row["total_synced"] or 0),
            )
        finally:
            conn.close()

    def upsert_watermark(
        self,
        server_url: str,
        user_id: str,
        last_synced_at: Optional[str],
        increment_by: int,
    ) -> SyncWatermark:
        """Advance an account's watermark and add ``increment_by`` to its counter.

        ``last_sync`` never moves backwards: an older or equal timestamp keeps the
        stored value, and None only records the increment.
        """
        if increment_by < 0:
            raise ValueError("increment_by must not be negative")
        with self._lock:
            conn = self._connect()
            try:
                with conn:
                    row = conn.execute(
                        "SELECT last_sync, total_synced FROM sync_meta WHERE server_url = ? AND user_id = ?",
                        (server_url, user_id),
                    ).fetchone()
                    if row is None:
                        conn.execute(
                            """INSERT INTO sync_meta (server_url, user_id, last_sync, total_synced)
                               VALUES (?, ?, ?, ?)""",
                            (server_url, user_id, last_synced_at, increment_by),
                        )
                        last_sync, total = last_synced_at, increment_by
                    else:
                        last_sync = row["last_sync"]
                        if last_synced_at and (not last_sync or timestamp_is_after(last_synced_at, last_sync)):
                            last_sync = last_synced_at
                        total = int(row["total_synced"] or 0) + increment_by
                        conn.execute(
                            """UPDATE sync_meta SET last_sync = ?, total_synced = ?
                               WHERE server_url = ? AND user_id = ?""",
                            (last_sync, total, server_url, user_id),
                        )
                return SyncWatermark(server_url, user_id, last_sync, total)
            finally:
                conn.close()

    def delete_watermarks(self, server_url: str) -> int:
        """Delete all watermarks for an endpoint. Returns number deleted."""
        with self._lock:
            conn = self._connect()
            try:
                cursor = conn.execute("DELETE FROM sync_meta WHERE server_url = ?", (server_url,))
                conn.commit()
                return max(cursor.rowcount, 0)
            finally:
                conn.close()

    def get_last_sync_time(self, server_url: str) -> Optional[str]:
        """Newest watermark across all accounts of an endpoint."""
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT MAX(last_sync) AS last_sync FROM sync_meta WHERE server_url = ?",
                (server_url,),
            ).fetchone()
            return row["last_sync"] if row else None
        finally:
            conn.close()

    def get_db_size_bytes(self) -> int:
        """Size of the database file on disk, 0 if it cannot be read."""
        try:
            return os.path.getsize(self._db_path)
        except OSError:
            return 0
