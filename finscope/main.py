"""Flask app - routes and middleware."""

import logging
import sqlite3
from typing import Callable, Optional

from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.middleware.proxy_fix import ProxyFix
from werkzeug.wrappers import Response

from finscope.config.env import (
    BUILD_VERSION, CONFIG_DIR, DEBUG, FLASK_HOST, FLASK_PORT, HISTORY_SYNC_PAGE_SIZE,
    JELLYFIN_TIMEOUT, SECRET_KEY, SESSION_COOKIE_NAME, SESSION_COOKIE_SECURE_ENV,
    _is_config_dir_writable, string_to_bool,
)
from finscope.core.auth import get_auth_mode, proxy_auth_middleware
from finscope.core.history_db import HistoryDB, get_history_db_path
from finscope.core.history_routes import register_history_routes
from finscope.core.history_sync import HistorySyncService
from finscope.core.jellyfin_routes import register_jellyfin_routes
from finscope.core.logger import setup_logger
from finscope.core.models import ServerConfig
from finscope.core.server_configs import ServerConfigService
from finscope.jellyfin.api import JellyfinClient

logger = setup_logger(__name__)


def default_client_factory(config: ServerConfig) -> JellyfinClient:
    return JellyfinClient(config.server_url, config.api_key, timeout=JELLYFIN_TIMEOUT)


# Custom log filter to exclude routine polling requests
class LogNoiseFilter(logging.Filter):
    """Filter out dashboard polling requests to reduce log noise."""

    _NOISY_REQUESTS = (
        "GET /api/health",
        "POST /api/history/track-sessions",
    )

    def filter(self, record):
        message = record.getMessage() if hasattr(record, 'getMessage') else str(record.msg)
        return not any(noise in message for noise in self._NOISY_REQUESTS)


def _configure_framework_logging(app: Flask) -> None:
    app.logger.handlers = logger.handlers
    app.logger.setLevel(logger.level)
    werkzeug_logger = logging.getLogger('werkzeug')
    werkzeug_logger.handlers = logger.handlers
    werkzeug_logger.setLevel(logger.level)
    if not any(isinstance(f, LogNoiseFilter) for f in werkzeug_logger.filters):
        werkzeug_logger.addFilter(LogNoiseFilter())


def create_app(
    db_path: Optional[str] = None,
    *,
    client_factory: Callable[[ServerConfig], JellyfinClient] = default_client_factory,
    resolve_auth_mode: Callable[[], str] = get_auth_mode,
    page_size: int = HISTORY_SYNC_PAGE_SIZE,
) -> Flask:
    """Build the Flask app and register every API route."""
    app = Flask(__name__)
    app.config['SEND_FILE_MAX_AGE_DEFAULT'] = 0  # Disable caching
    app.config['SECRET_KEY'] = SECRET_KEY or 'finscope-dev-secret'
    app.config['SESSION_COOKIE_NAME'] = SESSION_COOKIE_NAME
    app.config['SESSION_COOKIE_HTTPONLY'] = True
    app.config['SESSION_COOKIE_SAMESITE'] = 'Lax'
    app.config['SESSION_COOKIE_SECURE'] = string_to_bool(SESSION_COOKIE_SECURE_ENV)
    app.wsgi_app = ProxyFix(app.wsgi_app)  # type: ignore

    if not SECRET_KEY:
        logger.warning("SECRET_KEY is not set; sessions use an insecure development key")

    # Enable CORS in development mode for local frontend development
    if DEBUG:
        CORS(app, resources={
            r"/api/*": {
                "origins": ["http://localhost:5173", "http://127.0.0.1:5173"],
                "supports_credentials": True,
                "allow_headers": ["Content-Type", "Authorization"],
                "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            }
        })

    _configure_framework_logging(app)

    @app.before_request
    def _proxy_auth():
        return proxy_auth_middleware(resolve_auth_mode)

    @app.after_request
    def set_security_headers(response: Response) -> Response:
        """Add baseline security headers to every response."""
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        return response

    @app.route('/api/health', methods=['GET'])
    def api_health():
        """Health check endpoint for container orchestration. No authentication required."""
        return jsonify({"status": "ok", "service": "finscope-proxy", "version": BUILD_VERSION})

    # If the database location is missing or read-only, only the health endpoint is served.
    resolved_db_path = db_path or get_history_db_path()
    try:
        history_db = HistoryDB(resolved_db_path)
        history_db.initialize()
    except (sqlite3.OperationalError, OSError) as e:
        logger.warning(
            f"History database initialization failed: {e}. "
            f"History and server features will be disabled. "
            f"Ensure DB_PATH ({resolved_db_path}) is in a writable directory."
        )
        return app

    config_service = ServerConfigService(resolved_db_path)
    sync_service = HistorySyncService(history_db, client_factory, page_size=page_size)

    register_jellyfin_routes(
        app,
        config_service=config_service,
        client_factory=client_factory,
        resolve_auth_mode=resolve_auth_mode,
    )
    register_history_routes(
        app,
        history_db,
        config_service=config_service,
        sync_service=sync_service,
        client_factory=client_factory,
        resolve_auth_mode=resolve_auth_mode,
    )

    app.extensions["finscope"] = {
        "history_db": history_db,
        "config_service": config_service,
        "sync_service": sync_service,
    }
    logger.info(f"SQLite history database ready at {resolved_db_path}")
    return app


def main() -> None:
    app = create_app()
    if not _is_config_dir_writable():
        logger.warning(
            f"Config directory {CONFIG_DIR} is not writable. History will not persist. "
            "Mount a config volume or point DB_PATH at a writable location."
        )
    logger.info(f"FinScope proxy running on {FLASK_HOST}:{FLASK_PORT}")
    app.run(host=FLASK_HOST, port=FLASK_PORT, debug=DEBUG, use_reloader=False)


if __name__ == '__main__':
    main()
