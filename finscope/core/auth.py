"""Session-based principal resolution for API routes.

FinScope does not handle passwords. The principal is either the single local
user (auth mode ``none``) or the username forwarded by an authenticating
reverse proxy (auth mode ``proxy``).
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable

from flask import jsonify, request, session

from finscope.config import env
from finscope.core.logger import setup_logger

logger = setup_logger(__name__)

AUTH_MODE_NONE = "none"
AUTH_MODE_PROXY = "proxy"

PUBLIC_PATHS = frozenset({"/api/health"})


def get_auth_mode() -> str:
    """Current auth mode from the environment."""
    return env.AUTH_MODE


def get_proxy_header(header_name: str) -> str | None:
    """Resolve proxy auth values from headers with WSGI env fallbacks."""
    value = request.headers.get(header_name)
    if value:
        return value

    env_key = f"HTTP_{header_name.upper().replace('-', '_')}"
    value = request.environ.get(env_key)
    if value:
        return value

    # Some proxies set authenticated username in REMOTE_USER (not as a header).
    if header_name.lower().replace("_", "-") == "remote-user":
        return request.environ.get("REMOTE_USER")

    return None


def proxy_auth_middleware(resolve_auth_mode: Callable[[], str] = get_auth_mode):
    """Populate the session from the reverse-proxy user header in proxy mode."""
    if resolve_auth_mode() != AUTH_MODE_PROXY:
        return None
    if request.path in PUBLIC_PATHS:
        return None

    user_header = env.PROXY_AUTH_USER_HEADER
    username = (get_proxy_header(user_header) or "").strip()
    if not username:
        logger.warning(f"Proxy auth enabled but no username found in header '{user_header}'")
        return jsonify({"error": "Authentication required. Proxy header not set."}), 401

    session["user_id"] = username
    session.permanent = False
    return None


def current_user_id(resolve_auth_mode: Callable[[], str] = get_auth_mode) -> str | None:
    """Return the local principal for this request, or None when unauthenticated."""
    if resolve_auth_mode() == AUTH_MODE_NONE:
        return str(session.get("user_id") or env.LOCAL_USER_ID)
    raw_user_id = session.get("user_id")
    if raw_user_id is None:
        return None
    user_id = str(raw_user_id).strip()
    return user_id or None


def login_required(resolve_auth_mode: Callable[[], str] = get_auth_mode):
    """Decorator factory rejecting requests without a principal (401)."""

    def decorator(f: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if current_user_id(resolve_auth_mode) is None:
                return jsonify({"error": "Unauthorized"}), 401
            return f(*args, **kwargs)

        return decorated_function

    return decorator
