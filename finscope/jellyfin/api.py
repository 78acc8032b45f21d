"""Jellyfin API client for connection testing, user listing and history paging."""

from typing import Any, Dict, List, Optional

import requests

from finscope.core.logger import setup_logger
from finscope.core.models import PLAYABLE_ITEM_TYPES
from finscope.core.utils import normalize_http_url

logger = setup_logger(__name__)

CLIENT_NAME = "FinScope"
CLIENT_DEVICE = "Web"
CLIENT_DEVICE_ID = "finscope-proxy-v1"
CLIENT_VERSION = "1.0.0"

GENRE_ITEM_TYPES = ("Movie", "Series")
GENRE_ITEM_LIMIT = 2000


def build_auth_header(api_key: str) -> str:
    """Build the MediaBrowser authorization header value for an API key."""
    return (
        f'MediaBrowser Client="{CLIENT_NAME}", Device="{CLIENT_DEVICE}", '
        f'DeviceId="{CLIENT_DEVICE_ID}", Version="{CLIENT_VERSION}", Token="{api_key}"'
    )


class JellyfinClient:
    """Client for interacting with the Jellyfin REST API."""

    def __init__(self, url: str, api_key: str, timeout: int = 30):
        self.base_url = normalize_http_url(url)
        self.api_key = api_key
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers.update({
            "X-Emby-Authorization": build_auth_header(api_key),
            "Accept": "application/json",
            "Content-Type": "application/json",
        })

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Make an API request to Jellyfin. Returns parsed JSON response."""
        url = self.base_url + endpoint
        logger.debug(f"Jellyfin API: {method} {url}")

        try:
            response = self._session.request(
                method=method,
                url=url,
                params=params,
                timeout=self.timeout,
            )

            if not response.ok:
                logger.error(f"Jellyfin API error response: {response.text[:500]}")

            response.raise_for_status()
            return response.json()

        except requests.exceptions.JSONDecodeError as e:
            logger.error(f"Invalid JSON response from Jellyfin: {e}")
            raise ValueError(f"Invalid JSON response: {e}")
        except requests.exceptions.HTTPError as e:
            logger.error(f"Jellyfin API HTTP error: {e.response.status_code} {e.response.reason}")
            raise
        except requests.exceptions.RequestException as e:
            logger.error(f"Jellyfin API request failed: {e}")
            raise

    def get_json(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET an arbitrary API path (must start with '/')."""
        if not endpoint.startswith("/"):
            raise ValueError("endpoint must start with '/'")
        return self._request("GET", endpoint, params=params)

    def get_system_info(self) -> Dict[str, Any]:
        """Fetch /System/Info; used to validate the URL and API key."""
        info = self._request("GET", "/System/Info")
        return info if isinstance(info, dict) else {}

    def list_users(self) -> List[Dict[str, Any]]:
        """List all Jellyfin users. Raises on failure so callers can fall back."""
        users = self._request("GET", "/Users")
        if not isinstance(users, list):
            raise ValueError("Unexpected /Users response")
        return [user for user in users if isinstance(user, dict)]

    def get_played_items(
        self,
        user_id: str,
        *,
        start_index: int = 0,
        limit: int = 500,
        item_types: tuple = PLAYABLE_ITEM_TYPES,
    ) -> Dict[str, Any]:
        """
        Fetch one page of a user's played items, newest DatePlayed first.

        Returns ``{"Items": [...], "TotalRecordCount": n}``.
        """
        params = {
            "SortBy": "DatePlayed",
            "SortOrder": "Descending",
            "Filters": "IsPlayed",
            "IncludeItemTypes": ",".join(item_types),
            "Limit": limit,
            "StartIndex": start_index,
            "Fields": "DatePlayed",
            "Recursive": "true",
        }
        data = self._request("GET", f"/Users/{user_id}/Items", params=params)
        if not isinstance(data, dict):
            raise ValueError("Unexpected played items response")
        items = data.get("Items") or []
        if not isinstance(items, list):
            raise ValueError("Unexpected played items payload")
        return {"Items": items, "TotalRecordCount": data.get("TotalRecordCount")}

    def get_genre_items(self, user_id: str) -> List[Dict[str, Any]]:
        """Fetch library movies and series with their genres."""
        params = {
            "Recursive": "true",
            "IncludeItemTypes": ",".join(GENRE_ITEM_TYPES),
            "Fields": "Genres",
            "Limit": GENRE_ITEM_LIMIT,
        }
        data = self._request("GET", f"/Users/{user_id}/Items", params=params)
        if not isinstance(data, dict):
            return []
        items = data.get("Items") or []
        return items if isinstance(items, list) else []

    def close(self) -> None:
        """Release the pooled HTTP connections."""
        self._session.close()

    def fetch_image(self, path: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        """Fetch an image path and return the raw response (caller checks status)."""
        url = self.base_url + path
        logger.debug(f"Jellyfin image: GET {url}")
        return self._session.get(url, params=params, timeout=self.timeout)


def pick_primary_user_id(users: List[Dict[str, Any]]) -> str:
    """Return the first administrator's id, else the first user's id, else ''."""
    for user in users:
        policy = user.get("Policy") or {}
        if isinstance(policy, dict) and policy.get("IsAdministrator"):
            return str(user.get("Id") or "")
    if users:
        return str(users[0].get("Id") or "")
    return ""
