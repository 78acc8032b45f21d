"""History API routes (sync, live-session tracking, analytics, store metrics, genres)."""

from __future__ import annotations

import sqlite3
from contextlib import closing
from typing import Any, Callable

import requests
from flask import Flask, jsonify, request

from finscope.core.analytics import aggregate_history, collect_pulse_stats, empty_analytics, summarize_genres
from finscope.core.auth import current_user_id, get_auth_mode, login_required
from finscope.core.history_db import HistoryDB
from finscope.core.history_sync import HistorySyncService, run_sync_with_empty_retry
from finscope.core.logger import setup_logger
from finscope.core.models import ServerConfig
from finscope.core.server_configs import ServerConfigService
from finscope.core.session_tracker import track_sessions
from finscope.jellyfin.api import JellyfinClient

logger = setup_logger(__name__)

_NO_SERVER_RESPONSE = {"error": "No Jellyfin server configured"}


def _parse_bool_arg(value: Any) -> bool:
    return str(value or "").strip().lower() in {"1", "true", "yes"}


def register_history_routes(
    app: Flask,
    history_db: HistoryDB,
    *,
    config_service: ServerConfigService,
    sync_service: HistorySyncService,
    client_factory: Callable[[ServerConfig], JellyfinClient],
    resolve_auth_mode: Callable[[], str] = get_auth_mode,
) -> None:
    """Register history routes."""

    def _active_config() -> ServerConfig | None:
        user_id = current_user_id(resolve_auth_mode)
        if user_id is None:
            return None
        return config_service.get_active_config(user_id)

    @app.route("/api/history/sync", methods=["POST"])
    @login_required(resolve_auth_mode)
    def api_history_sync():
        config = _active_config()
        if config is None:
            return jsonify(_NO_SERVER_RESPONSE), 400

        force_full = _parse_bool_arg(request.args.get("force"))
        try:
            result = run_sync_with_empty_retry(sync_service, config, force_full=force_full)
        except Exception as exc:
            logger.error_trace(f"History sync failed for {config.server_url}: {exc}")
            return jsonify({"error": f"Sync error: {exc}"}), 502
        return jsonify(result.to_dict())

    @app.route("/api/history/track-sessions", methods=["POST"])
    @login_required(resolve_auth_mode)
    def api_history_track_sessions():
        config = _active_config()
        if config is None:
            return jsonify(_NO_SERVER_RESPONSE), 400

        data = request.get_json(silent=True) or {}
        sessions = data.get("sessions") if isinstance(data, dict) else None
        if not sessions:
            return jsonify({"tracked": 0})
        if not isinstance(sessions, list):
            return jsonify({"error": "sessions must be a list"}), 400

        try:
            tracked = track_sessions(history_db, config.server_url, sessions)
        except (sqlite3.Error, OSError) as exc:
            logger.error_trace(f"Session tracking failed for {config.server_url}: {exc}")
            return jsonify({"error": "Failed to record sessions"}), 500
        return jsonify({"tracked": tracked})

    @app.route("/api/history", methods=["DELETE"])
    @login_required(resolve_auth_mode)
    def api_history_clear():
        config = _active_config()
        if config is None:
            return jsonify(_NO_SERVER_RESPONSE), 400
        try:
            deleted_count = history_db.clear_history(config.server_url)
        except (sqlite3.Error, OSError) as exc:
            logger.error_trace(f"Failed to clear history for {config.server_url}: {exc}")
            return jsonify({"error": "Failed to clear history"}), 500
        return jsonify({"status": "cleared", "deletedCount": deleted_count})

    @app.route("/api/history/analytics", methods=["GET"])
    @login_required(resolve_auth_mode)
    def api_history_analytics():
        config = _active_config()
        if config is None:
            logger.info("No Jellyfin config found for analytics request")
            return jsonify(empty_analytics())
        try:
            analytics = aggregate_history(history_db, config.server_url)
        except (sqlite3.Error, OSError) as exc:
            logger.error_trace(f"Analytics failed for {config.server_url}: {exc}")
            return jsonify({"error": "Failed to load analytics"}), 500
        return jsonify(analytics.to_dict())

    @app.route("/api/pulse-stats", methods=["GET"])
    @login_required(resolve_auth_mode)
    def api_pulse_stats():
        config = _active_config()
        try:
            stats = collect_pulse_stats(history_db, config.server_url if config else None)
        except (sqlite3.Error, OSError) as exc:
            logger.error_trace(f"Failed to collect pulse stats: {exc}")
            return jsonify({"error": "Failed to load stats"}), 500
        return jsonify(stats)

    @app.route("/api/genres", methods=["GET"])
    @login_required(resolve_auth_mode)
    def api_genres():
        config = _active_config()
        if config is None or not config.jellyfin_user_id:
            return jsonify({"genres": []})
        try:
            with closing(client_factory(config)) as client:
                items = client.get_genre_items(config.jellyfin_user_id)
        except (requests.exceptions.RequestException, ValueError) as exc:
            logger.warning(f"Genre lookup failed for {config.server_url}: {exc}")
            return jsonify({"genres": []})
        return jsonify({"genres": summarize_genres(items)})
