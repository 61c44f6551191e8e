"""Durable key-value store for named system-prompt templates."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping

from .settings import settings_dir

__all__ = ["PromptStore"]

LOGGER = logging.getLogger(__name__)
_PROMPTS_FILENAME = "prompts.json"
_PROMPTS_VERSION = 1


def _default_prompts_path() -> Path:
    return settings_dir() / _PROMPTS_FILENAME


class PromptStore:
    """Prompt templates keyed by exact (case-sensitive) name.

    Every write is flushed to disk immediately; the file keeps insertion order so
    selectors list templates in the order they were created. Writing an existing
    name replaces its content in place.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or _default_prompts_path()
        self._prompts: Dict[str, str] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def get(self, name: str) -> str | None:
        return self._load().get(name)

    def set(self, name: str, content: str) -> None:
        if not name or not name.strip():
            raise ValueError("Prompt name must not be empty")
        prompts = self._load()
        prompts[name] = content
        self._save(prompts)
        LOGGER.debug("Prompt %r saved (%d chars)", name, len(content))

    def delete(self, name: str) -> bool:
        prompts = self._load()
        if name not in prompts:
            return False
        del prompts[name]
        self._save(prompts)
        LOGGER.debug("Prompt %r deleted", name)
        return True

    def list_names(self) -> tuple[str, ...]:
        return tuple(self._load())

    def items(self) -> tuple[tuple[str, str], ...]:
        return tuple(self._load().items())

    def __contains__(self, name: object) -> bool:
        return name in self._load()

    def __iter__(self) -> Iterator[str]:
        return iter(self.list_names())

    def __len__(self) -> int:
        return len(self._load())

    def _load(self) -> Dict[str, str]:
        if self._prompts is None:
            self._prompts = _coerce_prompts(self._read_payload().get("prompts"))
        return self._prompts

    def _save(self, prompts: Mapping[str, str]) -> Path:
        payload = {"version": _PROMPTS_VERSION, "prompts": dict(prompts)}
        body = json.dumps(payload, indent=2, ensure_ascii=False)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        return self._path

    def _read_payload(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            if isinstance(data, Mapping):
                return dict(data)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Prompt library %s is not valid JSON: %s", self._path, exc)
        return {}


def _coerce_prompts(value: Any) -> Dict[str, str]:
    if not isinstance(value, Mapping):
        return {}
    result: Dict[str, str] = {}
    for name, content in value.items():
        if not isinstance(name, str) or not isinstance(content, str):
            continue
        result[name] = content
    return result
