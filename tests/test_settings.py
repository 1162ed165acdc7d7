"""Tests for core/settings.py"""

import httpx

from readwise_export.core.settings import Settings
from readwise_export.providers.readwise import ReadwiseClient

ENV_VARS = (
    "READWISE_API_TOKEN",
    "READWISE_BASE_URL",
    "READWISE_TIMEOUT",
    "READWISE_MAX_PAGES",
    "READWISE_MAX_DURATION",
    "LOG_LEVEL",
)


def _clear(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults(monkeypatch):
    _clear(monkeypatch)
    s = Settings.from_env()

    assert s.readwise_api_token == ""
    assert s.readwise_base_url == "https://readwise.io/api"
    assert s.readwise_timeout == 30.0
    assert s.max_pages == 1000
    assert s.max_duration is None
    assert s.log_level == "INFO"


def test_from_env(monkeypatch):
    _clear(monkeypatch)
    monkeypatch.setenv("READWISE_API_TOKEN", " abc123 ")
    monkeypatch.setenv("READWISE_TIMEOUT", "5")
    monkeypatch.setenv("READWISE_MAX_PAGES", "0")
    monkeypatch.setenv("READWISE_MAX_DURATION", "90")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    s = Settings.from_env()

    assert s.readwise_api_token == "abc123"
    assert s.readwise_timeout == 5.0
    assert s.max_pages is None
    assert s.max_duration == 90.0
    assert s.log_level == "DEBUG"


def test_client_from_settings(monkeypatch):
    _clear(monkeypatch)
    monkeypatch.setenv("READWISE_API_TOKEN", "abc123")
    monkeypatch.setenv("READWISE_BASE_URL", "https://rw.test/api")
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"results": [], "nextPageCursor": None})

    with ReadwiseClient.from_settings(Settings.from_env(), transport=httpx.MockTransport(handler)) as client:
        assert client.export() == []

    assert str(requests[0].url).startswith("https://rw.test/api/v2/export/")
    assert requests[0].headers["Authorization"] == "Token abc123"
