"""Logging setup for the chat assistant.

Records go to a rotating ``chatdock.log`` under the settings directory (or
``CHATDOCK_LOG_DIR``). Every handler installed here carries a
:class:`SecretRedactingFilter`, so API keys and bearer tokens never reach the
log file in clear text.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import re
from pathlib import Path

from ..services.settings import Settings, redact_secret, settings_dir

__all__ = [
    "SecretRedactingFilter",
    "configure_from_settings",
    "get_log_path",
    "redact_text",
    "setup_logging",
]

LOG_DIR_ENV = "CHATDOCK_LOG_DIR"
_LOG_FILENAME = "chatdock.log"
_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")
_BEARER_TOKEN = re.compile(r"(Bearer\s+)(\S+)", re.IGNORECASE)
_API_KEY_TOKEN = re.compile(r"sk-[A-Za-z0-9_\-]{6,}")

_LOG_PATH: Path | None = None


class SecretRedactingFilter(logging.Filter):
    """Masks ``sk-`` keys and ``Bearer`` tokens in the rendered message."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_text(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def redact_text(text: str) -> str:
    text = _BEARER_TOKEN.sub(lambda match: match.group(1) + redact_secret(match.group(2)), text)
    return _API_KEY_TOKEN.sub(lambda match: redact_secret(match.group(0)), text)


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Install the file (and optionally console) handlers on the root logger.

    Repeated calls are no-ops unless ``force`` is set, so the extension can
    call this on every activation.
    """

    global _LOG_PATH
    if _LOG_PATH is not None and not force:
        return _LOG_PATH

    target_dir = _resolve_log_dir(log_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = target_dir / _LOG_FILENAME

    handlers = [
        logging.handlers.RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    ]
    if console:
        handlers.append(logging.StreamHandler())
    formatter = logging.Formatter(fmt=_LOG_FORMAT, datefmt=_DATE_FORMAT)
    redactor = SecretRedactingFilter()
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(redactor)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    _quiet_http_loggers(level)

    _LOG_PATH = log_path
    logging.getLogger(__name__).debug("Logging to %s at %s", log_path, logging.getLevelName(level))
    return log_path


def configure_from_settings(settings: Settings, *, log_dir: Path | str | None = None, force: bool = False) -> Path:
    """DEBUG with console echo when ``debug_logging`` is on, INFO to file otherwise."""

    debug = settings.debug_logging
    return setup_logging(
        logging.DEBUG if debug else logging.INFO,
        log_dir=log_dir,
        console=debug,
        force=force,
    )


def get_log_path() -> Path | None:
    return _LOG_PATH


def _resolve_log_dir(log_dir: Path | str | None) -> Path:
    if log_dir:
        return Path(log_dir).expanduser()
    env_override = os.environ.get(LOG_DIR_ENV)
    if env_override:
        return Path(env_override).expanduser()
    return settings_dir() / "logs"


def _quiet_http_loggers(root_level: int) -> None:
    # HTTP client chatter drowns out stream diagnostics at DEBUG.
    quiet_level = max(root_level, logging.WARNING)
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(quiet_level)
