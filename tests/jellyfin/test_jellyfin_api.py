"""Tests for the Jellyfin API client."""

from unittest.mock import Mock, patch

import pytest
import requests

from finscope.jellyfin.api import JellyfinClient, build_auth_header, pick_primary_user_id


def _response(payload=None, status_code=200, text="", json_error=None):
    response = Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.text = text
    response.reason = "Reason"
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = payload
    if response.ok:
        response.raise_for_status.return_value = None
    else:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(
            f"{status_code} Error", response=response
        )
    return response


@pytest.fixture
def client():
    return JellyfinClient("jellyfin.local:8096/", "secret-key", timeout=5)


class TestJellyfinClient:
    def test_session_carries_auth_header(self, client):
        assert client.base_url == "http://jellyfin.local:8096"
        header = client._session.headers["X-Emby-Authorization"]
        assert header == build_auth_header("secret-key")
        assert 'Token="secret-key"' in header
        assert 'Client="FinScope"' in header

    def test_get_played_items_builds_descending_query(self, client):
        with patch.object(client._session, "request", return_value=_response({"Items": [{"Id": "a"}], "TotalRecordCount": 7})) as mock_request:
            page = client.get_played_items("user-1", start_index=500, limit=500)

        assert page == {"Items": [{"Id": "a"}], "TotalRecordCount": 7}
        kwargs = mock_request.call_args.kwargs
        assert kwargs["url"] == "http://jellyfin.local:8096/Users/user-1/Items"
        assert kwargs["timeout"] == 5
        params = kwargs["params"]
        assert params["SortBy"] == "DatePlayed"
        assert params["SortOrder"] == "Descending"
        assert params["Filters"] == "IsPlayed"
        assert params["IncludeItemTypes"] == "Movie,Episode,Audio,MusicAlbum"
        assert params["StartIndex"] == 500
        assert params["Limit"] == 500
        assert params["Fields"] == "DatePlayed"

    def test_missing_items_key_yields_empty_page(self, client):
        with patch.object(client._session, "request", return_value=_response({"TotalRecordCount": 0})):
            page = client.get_played_items("user-1")

        assert page["Items"] == []

    def test_http_error_is_raised(self, client):
        with patch.object(client._session, "request", return_value=_response(status_code=500, text="boom")):
            with pytest.raises(requests.exceptions.HTTPError):
                client.get_played_items("user-1")

    def test_invalid_json_raises_value_error(self, client):
        bad_json = requests.exceptions.JSONDecodeError("Expecting value", "<html>", 0)
        with patch.object(client._session, "request", return_value=_response(json_error=bad_json)):
            with pytest.raises(ValueError):
                client.list_users()

    def test_connection_error_is_raised(self, client):
        with patch.object(client._session, "request", side_effect=requests.exceptions.ConnectionError("refused")):
            with pytest.raises(requests.exceptions.ConnectionError):
                client.get_system_info()

    def test_list_users_rejects_non_list(self, client):
        with patch.object(client._session, "request", return_value=_response({"Id": "x"})):
            with pytest.raises(ValueError):
                client.list_users()

    def test_get_json_requires_absolute_path(self, client):
        with pytest.raises(ValueError):
            client.get_json("Sessions")

    def test_get_genre_items(self, client):
        payload = {"Items": [{"Genres": ["Drama"]}]}
        with patch.object(client._session, "request", return_value=_response(payload)) as mock_request:
            items = client.get_genre_items("admin")

        assert items == [{"Genres": ["Drama"]}]
        params = mock_request.call_args.kwargs["params"]
        assert params["IncludeItemTypes"] == "Movie,Series"
        assert params["Fields"] == "Genres"

    def test_close_releases_session(self, client):
        with patch.object(client._session, "close") as mock_close:
            client.close()

        mock_close.assert_called_once_with()


def test_pick_primary_user_id_prefers_admin():
    users = [
        {"Id": "viewer", "Policy": {"IsAdministrator": False}},
        {"Id": "admin", "Policy": {"IsAdministrator": True}},
    ]
    assert pick_primary_user_id(users) == "admin"
    assert pick_primary_user_id([{"Id": "only"}]) == "only"
    assert pick_primary_user_id([]) == ""
