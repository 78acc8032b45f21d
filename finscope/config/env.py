"""Bootstrap environment variables. No local dependencies - import first."""

import os
from pathlib import Path


def string_to_bool(s: str) -> bool:
    """Convert string to boolean."""
    return s.lower() in ["true", "yes", "1", "y"]


def _env_int(name: str, default: int) -> int:
    raw_value = os.getenv(name)
    if raw_value is None or not raw_value.strip():
        return default
    try:
        return int(raw_value.strip())
    except ValueError:
        return default


def _normalize_auth_mode(value: str) -> str:
    normalized = (value or "").strip().lower()
    if normalized in {"none", "proxy"}:
        return normalized
    return "none"


def _is_config_dir_writable() -> bool:
    """Check if the config directory exists and is writable."""
    try:
        if not CONFIG_DIR.exists() or not CONFIG_DIR.is_dir():
            return False
        test_file = CONFIG_DIR / ".write_test"
        test_file.touch()
        test_file.unlink()
        return True
    except (OSError, PermissionError):
        return False


# =============================================================================
# Bootstrap paths - needed before the database is opened
# =============================================================================

CONFIG_DIR = Path(os.getenv("CONFIG_DIR", "/config"))
LOG_ROOT = Path(os.getenv("LOG_ROOT", "/var/log/"))
LOG_DIR = LOG_ROOT / "finscope"
LOG_FILE = LOG_DIR / "finscope.log"


# =============================================================================
# Logger configuration
# =============================================================================

DEBUG = string_to_bool(os.getenv("DEBUG", "false"))
LOG_LEVEL = "DEBUG" if DEBUG else os.getenv("LOG_LEVEL", "INFO").upper()
ENABLE_LOGGING = string_to_bool(os.getenv("ENABLE_LOGGING", "true"))


# =============================================================================
# Flask configuration - needed before app starts
# =============================================================================

FLASK_HOST = os.getenv("FLASK_HOST", "0.0.0.0")
FLASK_PORT = _env_int("FLASK_PORT", 3001)
SECRET_KEY = os.getenv("SECRET_KEY", "")


# =============================================================================
# Authentication
# =============================================================================

SESSION_COOKIE_SECURE_ENV = os.getenv("SESSION_COOKIE_SECURE", "false")
SESSION_COOKIE_NAME = "finscope_session"
AUTH_MODE = _normalize_auth_mode(os.getenv("AUTH_MODE", "none"))
PROXY_AUTH_USER_HEADER = os.getenv("PROXY_AUTH_USER_HEADER", "X-Auth-User")
LOCAL_USER_ID = "local"


# =============================================================================
# Jellyfin access
# =============================================================================

JELLYFIN_TIMEOUT = _env_int("JELLYFIN_TIMEOUT", 30)
HISTORY_SYNC_PAGE_SIZE = max(1, _env_int("HISTORY_SYNC_PAGE_SIZE", 500))


# =============================================================================
# Version information from Docker build
# =============================================================================

BUILD_VERSION = os.getenv("BUILD_VERSION", "N/A")
