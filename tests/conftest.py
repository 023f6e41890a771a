import os

# Keep tests away from any developer database or .env credentials
os.environ["DATABASE__URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CREDENTIALS__SCRAPINGDOG_API_KEY"] = ""
os.environ["CREDENTIALS__APIFY_API_TOKEN"] = ""
os.environ["CREDENTIALS__YOUTUBE_API_KEY"] = ""

import pytest

from podtrack.config import settings
from tests.fixtures.memory import MemoryStore, memory_uow_factory


class StaticSettingsStore:
    """Settings store over a plain dict."""

    def __init__(self, values: dict[str, str] | None = None) -> None:
        self.values = dict(values or {})

    def get_setting(self, key: str) -> str | None:
        return self.values.get(key) or None


@pytest.fixture(autouse=True)
def fast_timings(monkeypatch):
    """No pacing or polling delays in tests."""
    monkeypatch.setattr(settings.queue, "platform_delay", 0.0)
    monkeypatch.setattr(settings.providers, "batch_request_delay", 0.0)
    monkeypatch.setattr(settings.providers, "apify_poll_interval", 0.0)


@pytest.fixture(autouse=True)
def isolated_paths(monkeypatch, tmp_path):
    """Logs and data land in a temporary directory."""
    monkeypatch.setattr(settings.logging, "log_file", tmp_path / "logs" / "podtrack.log")
    monkeypatch.setattr(settings, "data_dir", tmp_path / "data")


@pytest.fixture
def store():
    """Empty in-memory store behind the repository protocols."""
    return MemoryStore()


@pytest.fixture
def uow_factory(store):
    return memory_uow_factory(store)


@pytest.fixture
def credentials():
    """Settings store with every provider configured."""
    return StaticSettingsStore(
        {
            "scrapingdog_api_key": "sd-test-key",
            "apify_api_token": "apify-test-token",
            "youtube_api_key": "yt-test-key",
        }
    )


@pytest.fixture
def no_credentials():
    return StaticSettingsStore()
