"""Tests for logging setup."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from chatdock.services.settings import Settings
from chatdock.utils import logging as logging_utils


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_setup_logging_writes_rotating_file(tmp_path: Path, restore_root_logging) -> None:
    path = logging_utils.setup_logging(logging.DEBUG, log_dir=tmp_path, console=False, force=True)

    logging.getLogger("chatdock.test").info("hello log")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert path == tmp_path / "chatdock.log"
    assert logging_utils.get_log_path() == path
    assert "hello log" in path.read_text(encoding="utf-8")
    assert logging.getLogger("httpx").level == logging.WARNING


def test_setup_logging_is_idempotent_without_force(tmp_path: Path, restore_root_logging) -> None:
    first = logging_utils.setup_logging(log_dir=tmp_path / "a", console=False, force=True)
    second = logging_utils.setup_logging(log_dir=tmp_path / "b", console=False)

    assert first == second


def test_log_dir_env_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, restore_root_logging) -> None:
    monkeypatch.setenv("CHATDOCK_LOG_DIR", str(tmp_path / "env"))

    path = logging_utils.setup_logging(console=False, force=True)

    assert path.parent == tmp_path / "env"


def test_api_keys_are_redacted_in_log_file(tmp_path: Path, restore_root_logging) -> None:
    key = "sk-" + "q" * 40
    path = logging_utils.setup_logging(logging.DEBUG, log_dir=tmp_path, console=False, force=True)

    logging.getLogger("chatdock.test").debug("headers: Authorization: Bearer %s", key)
    logging.getLogger("chatdock.test").info("configured key %s", key)
    for handler in logging.getLogger().handlers:
        handler.flush()

    text = path.read_text(encoding="utf-8")
    assert key not in text
    assert "Authorization: Bearer sk****" in text
    assert "configured key sk****" in text


@pytest.mark.parametrize(
    "message, expected",
    [
        ("no secrets here", "no secrets here"),
        ("Bearer abcdef", "Bearer ab**ef"),
        ("key=sk-1234567890", "key=sk*********90"),
    ],
)
def test_redact_text(message: str, expected: str) -> None:
    assert logging_utils.redact_text(message) == expected


@pytest.mark.parametrize("debug, level", [(True, logging.DEBUG), (False, logging.INFO)])
def test_configure_from_settings_uses_debug_flag(tmp_path: Path, restore_root_logging, debug: bool, level: int) -> None:
    path = logging_utils.configure_from_settings(Settings(debug_logging=debug), log_dir=tmp_path, force=True)

    root = logging.getLogger()
    assert path == tmp_path / "chatdock.log"
    assert root.level == level
    stream_handlers = [handler for handler in root.handlers if type(handler) is logging.StreamHandler]
    assert bool(stream_handlers) is debug


def test_default_log_dir_follows_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, restore_root_logging) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))

    path = logging_utils.setup_logging(console=False, force=True)

    assert path == tmp_path / ".chatdock" / "logs" / "chatdock.log"
