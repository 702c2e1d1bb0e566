import logging

import pytest

from polygon_feed.adapters.env_provider import EnvSecretsProvider, MissingSecretError


@pytest.fixture(autouse=True)
def reset_logging_handlers():
    # Keep test logging deterministic and avoid leaking handlers between tests.
    logging.getLogger("polygon_feed.adapters.env_provider").handlers = []


def test_get_returns_env_value(monkeypatch):
    monkeypatch.setenv("POLYGON_API_KEY", "super-secret")

    provider = EnvSecretsProvider()

    assert provider.get("polygon_api_key") == "super-secret"


def test_missing_secret_raises_for_unknown_name(monkeypatch):
    monkeypatch.setenv("POLYGON_API_KEY", "super-secret")
    provider = EnvSecretsProvider()

    with pytest.raises(MissingSecretError) as exc:
        provider.get("nonexistent")

    assert "nonexistent" in str(exc.value)


def test_missing_secret_raises_when_env_absent(monkeypatch):
    monkeypatch.delenv("POLYGON_API_KEY", raising=False)
    provider = EnvSecretsProvider()

    with pytest.raises(MissingSecretError) as exc:
        provider.get("polygon_api_key")

    assert "polygon_api_key" in str(exc.value)


def test_empty_value_is_missing(monkeypatch):
    monkeypatch.setenv("POLYGON_API_KEY", "")

    with pytest.raises(MissingSecretError):
        EnvSecretsProvider().get("polygon_api_key")


def test_custom_prefix_and_allowlist(monkeypatch):
    monkeypatch.setenv("MY_STREAM_TOKEN", "token-123")
    provider = EnvSecretsProvider(prefix="MY_", allowed={"stream_token": "STREAM_TOKEN"})

    assert provider.get("stream_token") == "token-123"


def test_empty_prefix_rejected():
    with pytest.raises(ValueError):
        EnvSecretsProvider(prefix="")


def test_resolution_is_logged_without_value(monkeypatch, caplog):
    monkeypatch.setenv("POLYGON_API_KEY", "super-secret")
    caplog.set_level(logging.DEBUG, logger="polygon_feed.adapters.env_provider")

    EnvSecretsProvider().get("polygon_api_key")

    assert any(getattr(r, "event", None) == "secret_resolved" for r in caplog.records)
    assert "super-secret" not in caplog.text
