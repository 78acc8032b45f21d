"""Persistence helpers for per-user Jellyfin server configuration."""

from __future__ import annotations

import sqlite3
import threading
from typing import Any

from finscope.core.logger import setup_logger
from finscope.core.models import ServerConfig
from finscope.core.utils import normalize_http_url

logger = setup_logger(__name__)


def mask_api_key(key: Any) -> str:
    """Hide most of an API key for display."""
    text = str(key or "")
    if len(text) <= 8:
        return "****"
    return f"{text[:4]}***{text[-4:]}"


def _normalize_user_id(user_id: Any) -> str:
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValueError("user_id must be a non-empty string")
    return user_id.strip()


class ServerConfigService:
    """Service for storing and resolving the active Jellyfin server per local user.

    Shares the history database; tables are created by ``HistoryDB.initialize``.
    """

    def __init__(self, db_path: str):
        self._db_path = db_path
        self._lock = threading.Lock()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def save_config(
        self,
        *,
        user_id: str,
        server_url: str,
        api_key: str,
        jellyfin_user_id: str = "",
        server_name: str = "Jellyfin",
    ) -> ServerConfig:
        """Upsert a server config and make it the user's only active one."""
        normalized_user_id = _normalize_user_id(user_id)
        normalized_url = normalize_http_url(server_url)
        if not normalized_url:
            raise ValueError("server_url is required")
        if not isinstance(api_key, str) or not api_key.strip():
            raise ValueError("api_key is required")

        with self._lock:
            conn = self._connect()
            try:
                with conn:
                    conn.execute(
                        """
                        INSERT INTO jellyfin_configs (
                            user_id, server_url, api_key, jellyfin_user_id, server_name
                        )
                        VALUES (?, ?, ?, ?, ?)
                        ON CONFLICT(user_id, server_url) DO UPDATE SET
                            api_key = excluded.api_key,
                            jellyfin_user_id = excluded.jellyfin_user_id,
                            server_name = excluded.server_name
                        """,
                        (
                            normalized_user_id,
                            normalized_url,
                            api_key.strip(),
                            jellyfin_user_id or "",
                            server_name or "Jellyfin",
                        ),
                    )
                    conn.execute(
                        "UPDATE jellyfin_configs SET is_active = 0 WHERE user_id = ?",
                        (normalized_user_id,),
                    )
                    conn.execute(
                        "UPDATE jellyfin_configs SET is_active = 1 WHERE user_id = ? AND server_url = ?",
                        (normalized_user_id, normalized_url),
                    )
                row = conn.execute(
                    "SELECT * FROM jellyfin_configs WHERE user_id = ? AND server_url = ?",
                    (normalized_user_id, normalized_url),
                ).fetchone()
            finally:
                conn.close()

        if row is None:
            raise ValueError(f"Server config for {normalized_url} not found after save")
        logger.info(f"Saved Jellyfin server {normalized_url} for user '{normalized_user_id}'")
        return ServerConfig.from_row(row)

    def get_active_config(self, user_id: str) -> ServerConfig | None:
        """Return the active server config for a user, or None."""
        conn = self._connect()
        try:
            row = conn.execute(
                """
                SELECT * FROM jellyfin_configs
                WHERE user_id = ? AND is_active = 1
                ORDER BY id DESC
                LIMIT 1
                """,
                (user_id,),
            ).fetchone()
            return ServerConfig.from_row(row) if row is not None else None
        finally:
            conn.close()

    @staticmethod
    def to_public_dict(config: ServerConfig) -> dict[str, Any]:
        """Serialize a config for API responses with the key masked."""
        return {
            "serverUrl": config.server_url,
            "apiKeyMasked": mask_api_key(config.api_key),
            "jellyfinUserId": config.jellyfin_user_id,
            "serverName": config.server_name,
        }
