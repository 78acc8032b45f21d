"""Data structures and models used across the application."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

# Item kinds that count as a playback event in the history listing.
PLAYABLE_ITEM_TYPES = ("Movie", "Episode", "Audio", "MusicAlbum")

HOURS_PER_DAY = 24


class PageOutcome(str, Enum):
    """Result of processing one page of played items."""
    CONTINUE = "continue"
    STOP = "stop"


@dataclass(frozen=True)
class AccountRef:
    """An upstream Jellyfin account whose playback is synchronized."""
    id: str
    display_name: str = ""


@dataclass(frozen=True)
class PlaybackRecord:
    """One observed play event, unique per (server_url, user_id, item_id, date_played)."""
    server_url: str
    user_id: str
    item_id: str
    date_played: str
    item_name: Optional[str] = None
    item_type: Optional[str] = None

    @classmethod
    def from_row(cls, row: Any) -> "PlaybackRecord":
        return cls(
            server_url=row["server_url"],
            user_id=row["user_id"],
            item_id=row["item_id"],
            date_played=row["date_played"],
            item_name=row["item_name"],
            item_type=row["item_type"],
        )


@dataclass(frozen=True)
class SyncWatermark:
    """Per (server_url, user_id) cursor: newest date_played fully synced."""
    server_url: str
    user_id: str
    last_sync: Optional[str] = None
    total_synced: int = 0


@dataclass(frozen=True)
class ServerConfig:
    """Jellyfin server connection stored for a local dashboard user."""
    user_id: str
    server_url: str
    api_key: str
    jellyfin_user_id: str = ""
    server_name: str = "Jellyfin"
    is_active: bool = True
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Any) -> "ServerConfig":
        return cls(
            user_id=row["user_id"],
            server_url=row["server_url"],
            api_key=row["api_key"],
            jellyfin_user_id=row["jellyfin_user_id"] or "",
            server_name=row["server_name"] or "Jellyfin",
            is_active=bool(row["is_active"]),
            created_at=row["created_at"],
        )


@dataclass
class SyncResult:
    """Outcome of one synchronization run for an endpoint."""
    new_entries: int = 0
    total_entries: int = 0
    accounts_synced: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "newEntries": self.new_entries,
            "totalEntries": self.total_entries,
            "usersSynced": self.accounts_synced,
        }


@dataclass
class HistoryAnalytics:
    """Day and hour-of-day play histograms for one endpoint."""
    day_histogram: Dict[str, int] = field(default_factory=dict)
    hour_histogram: List[int] = field(default_factory=lambda: [0] * HOURS_PER_DAY)
    total_plays: int = 0
    parse_errors: int = 0

    def to_dict(self) -> Dict[str, Any]:
        # parse_errors is diagnostic only and stays out of the payload.
        return {
            "historyMap": dict(self.day_histogram),
            "peakHours": list(self.hour_histogram),
            "totalPlays": self.total_plays,
        }
