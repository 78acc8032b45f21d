"""Shared utility functions for FinScope."""

import re
from datetime import datetime, timezone
from typing import Optional

_FRACTION_RE = re.compile(r"\.(\d+)")


def normalize_http_url(
    url: Optional[str],
    *,
    default_scheme: str = "http",
    strip_trailing_slash: bool = True,
) -> str:
    """Normalize a configured HTTP URL for requests and links."""
    if not isinstance(url, str):
        return ""

    normalized = url.strip()
    if not normalized:
        return ""

    if (normalized.startswith("\"") and normalized.endswith("\"")) or (
        normalized.startswith("'") and normalized.endswith("'")
    ):
        normalized = normalized[1:-1].strip()
        if not normalized:
            return ""

    if "://" not in normalized:
        scheme = default_scheme.strip().rstrip(":/")
        if scheme:
            normalized = f"{scheme}://{normalized}"

    if strip_trailing_slash:
        normalized = normalized.rstrip("/")

    return normalized


def now_timestamp() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def hour_timestamp(moment: Optional[datetime] = None) -> str:
    """Truncate ``moment`` (default: now) to the UTC hour, e.g. ``2024-01-01T20:00:00.000Z``."""
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:00:00.000Z")


def parse_timestamp(value: object) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as emitted by Jellyfin.

    Accepts a trailing ``Z`` and any number of fractional-second digits
    (Jellyfin uses seven). The stated offset is kept; naive values stay naive.
    Returns None when the value cannot be parsed.
    """
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _comparable(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def timestamp_is_after(candidate: str, reference: str) -> bool:
    """Return True when ``candidate`` is strictly later than ``reference``.

    Both values are compared chronologically; if either fails to parse, the
    ISO strings are compared lexicographically instead.
    """
    candidate_dt = parse_timestamp(candidate)
    reference_dt = parse_timestamp(reference)
    if candidate_dt is None or reference_dt is None:
        return candidate > reference
    return _comparable(candidate_dt) > _comparable(reference_dt)
