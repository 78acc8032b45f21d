"""Tests for environment parsing helpers."""

from finscope.config.env import _env_int, _normalize_auth_mode, string_to_bool


def test_string_to_bool():
    assert string_to_bool("true")
    assert string_to_bool("YES")
    assert string_to_bool("1")
    assert not string_to_bool("false")
    assert not string_to_bool("")


def test_env_int_falls_back_on_missing_or_invalid(monkeypatch):
    monkeypatch.delenv("FINSCOPE_TEST_INT", raising=False)
    assert _env_int("FINSCOPE_TEST_INT", 7) == 7

    monkeypatch.setenv("FINSCOPE_TEST_INT", " 42 ")
    assert _env_int("FINSCOPE_TEST_INT", 7) == 42

    monkeypatch.setenv("FINSCOPE_TEST_INT", "lots")
    assert _env_int("FINSCOPE_TEST_INT", 7) == 7


def test_auth_mode_normalization():
    assert _normalize_auth_mode("Proxy ") == "proxy"
    assert _normalize_auth_mode("none") == "none"
    assert _normalize_auth_mode("oidc") == "none"
    assert _normalize_auth_mode("") == "none"
