"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from chatdock.chat.events import EventBus
from chatdock.services.prompt_store import PromptStore
from chatdock.services.settings import Settings, SettingsStore

from tests.helpers import API_URL, VALID_KEY, FakeHost

_ENV_VARS = (
    "CHATDOCK_API_KEY",
    "CHATDOCK_API_URL",
    "CHATDOCK_MODEL",
    "CHATDOCK_DEBUG_LOGGING",
    "CHATDOCK_TEMPERATURE",
    "CHATDOCK_REQUEST_TIMEOUT",
    "CHATDOCK_MAX_TOKENS",
    "CHATDOCK_LOG_DIR",
)


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # Default store and log locations resolve under HOME at call time.
    monkeypatch.setenv("HOME", str(tmp_path_factory.mktemp("home")))


@pytest.fixture
def settings_store(tmp_path) -> SettingsStore:
    return SettingsStore(tmp_path / "settings.json")


@pytest.fixture
def configured_store(settings_store: SettingsStore) -> SettingsStore:
    settings_store.save(Settings(api_key=VALID_KEY, api_url=API_URL, model="gpt-4o"))
    return settings_store


@pytest.fixture
def prompt_store(tmp_path) -> PromptStore:
    return PromptStore(tmp_path / "prompts.json")


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()
