"""Jellyfin server configuration and relay routes."""

from __future__ import annotations

from contextlib import closing
from typing import Any, Callable

import requests
from flask import Flask, Response, jsonify, request

from finscope.core.auth import current_user_id, get_auth_mode, login_required
from finscope.core.logger import setup_logger
from finscope.core.models import ServerConfig
from finscope.core.server_configs import ServerConfigService
from finscope.core.utils import normalize_http_url
from finscope.jellyfin.api import JellyfinClient, pick_primary_user_id

logger = setup_logger(__name__)

IMAGE_CACHE_CONTROL = "public, max-age=86400"
_ITEM_IMAGE_PARAMS = {"fillHeight": 800, "fillWidth": 800, "quality": 90}
_USER_IMAGE_PARAMS = {"fillHeight": 200, "fillWidth": 200, "quality": 90}


class ServerConnectionError(Exception):
    """Raised when a Jellyfin server cannot be validated."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


def connect_server(
    client_factory: Callable[[ServerConfig], JellyfinClient],
    *,
    user_id: str,
    server_url: str,
    api_key: str,
) -> ServerConfig:
    """Validate a server URL and key; return the config to store.

    The upstream account used for fallback sync and genre lookups is the
    first administrator, else the first user.
    """
    base_url = normalize_http_url(server_url)
    candidate = ServerConfig(user_id=user_id, server_url=base_url, api_key=api_key)

    with closing(client_factory(candidate)) as client:
        try:
            info = client.get_system_info()
        except requests.exceptions.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else "unknown"
            raise ServerConnectionError(f"Jellyfin returned {status} - check URL and API key", 400) from exc
        except requests.exceptions.ConnectionError as exc:
            raise ServerConnectionError("Cannot reach Jellyfin server - check URL", 502) from exc
        except (requests.exceptions.RequestException, ValueError) as exc:
            raise ServerConnectionError(str(exc) or "Connection failed", 502) from exc

        try:
            users = client.list_users()
        except (requests.exceptions.RequestException, ValueError) as exc:
            logger.warning(f"Could not list Jellyfin users for {base_url}: {exc}")
            users = []

    return ServerConfig(
        user_id=user_id,
        server_url=base_url,
        api_key=api_key,
        jellyfin_user_id=pick_primary_user_id(users),
        server_name=str(info.get("ServerName") or "Jellyfin"),
    )


def _relay_image(client: JellyfinClient, path: str, params: dict[str, Any]) -> Response | tuple[Any, int]:
    try:
        upstream = client.fetch_image(path, params=params)
    except requests.exceptions.RequestException as exc:
        logger.warning(f"Image relay failed for {path}: {exc}")
        return "", 502

    if not upstream.ok:
        return "", upstream.status_code

    response = Response(upstream.content, status=200)
    content_type = upstream.headers.get("Content-Type")
    if content_type:
        response.headers["Content-Type"] = content_type
    response.headers["Cache-Control"] = IMAGE_CACHE_CONTROL
    return response


def register_jellyfin_routes(
    app: Flask,
    *,
    config_service: ServerConfigService,
    client_factory: Callable[[ServerConfig], JellyfinClient],
    resolve_auth_mode: Callable[[], str] = get_auth_mode,
) -> None:
    """Register server config, API relay and image relay routes."""

    def _active_config() -> ServerConfig | None:
        user_id = current_user_id(resolve_auth_mode)
        if user_id is None:
            return None
        return config_service.get_active_config(user_id)

    @app.route("/api/jellyfin-config", methods=["POST"])
    @login_required(resolve_auth_mode)
    def api_save_jellyfin_config():
        data = request.get_json(silent=True) or {}
        server_url = str(data.get("serverUrl") or "").strip() if isinstance(data, dict) else ""
        api_key = str(data.get("apiKey") or "").strip() if isinstance(data, dict) else ""
        if not server_url or not api_key:
            return jsonify({"error": "Missing serverUrl or apiKey"}), 400

        user_id = current_user_id(resolve_auth_mode)
        try:
            validated = connect_server(
                client_factory,
                user_id=user_id,
                server_url=server_url,
                api_key=api_key,
            )
            saved = config_service.save_config(
                user_id=user_id,
                server_url=validated.server_url,
                api_key=validated.api_key,
                jellyfin_user_id=validated.jellyfin_user_id,
                server_name=validated.server_name,
            )
        except ServerConnectionError as exc:
            return jsonify({"error": str(exc)}), exc.status_code
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400

        return jsonify({
            "success": True,
            "serverName": saved.server_name,
            "jellyfinUserId": saved.jellyfin_user_id,
        })

    @app.route("/api/jellyfin-config", methods=["GET"])
    @login_required(resolve_auth_mode)
    def api_get_jellyfin_config():
        config = _active_config()
        if config is None:
            return jsonify({"config": None})
        return jsonify({"config": config_service.to_public_dict(config)})

    @app.route("/api/jellyfin", methods=["GET"])
    @login_required(resolve_auth_mode)
    def api_jellyfin_relay():
        endpoint = (request.args.get("endpoint") or "").strip()
        if not endpoint:
            return jsonify({"error": "Missing endpoint"}), 400
        if not endpoint.startswith("/"):
            return jsonify({"error": "endpoint must start with '/'"}), 400

        config = _active_config()
        if config is None:
            return jsonify({"error": "No Jellyfin server configured"}), 400

        try:
            with closing(client_factory(config)) as client:
                data = client.get_json(endpoint)
        except requests.exceptions.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else 502
            return jsonify({"error": f"Jellyfin returned {status}"}), status
        except (requests.exceptions.RequestException, ValueError) as exc:
            return jsonify({"error": f"Proxy error: {exc}"}), 502
        return jsonify(data)

    @app.route("/api/jellyfin/image", methods=["GET"])
    @login_required(resolve_auth_mode)
    def api_jellyfin_image():
        item_id = (request.args.get("itemId") or "").strip()
        image_type = (request.args.get("type") or "Primary").strip() or "Primary"
        if not item_id:
            return "", 400
        config = _active_config()
        if config is None:
            return "", 400
        with closing(client_factory(config)) as client:
            return _relay_image(client, f"/Items/{item_id}/Images/{image_type}", _ITEM_IMAGE_PARAMS)

    @app.route("/api/jellyfin/user-image", methods=["GET"])
    @login_required(resolve_auth_mode)
    def api_jellyfin_user_image():
        jellyfin_user_id = (request.args.get("userId") or "").strip()
        if not jellyfin_user_id:
            return "", 400
        config = _active_config()
        if config is None:
            return "", 400
        with closing(client_factory(config)) as client:
            return _relay_image(client, f"/Users/{jellyfin_user_id}/Images/Primary", _USER_IMAGE_PARAMS)
