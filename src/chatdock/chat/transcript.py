"""Headless renderer that applies display commands to an in-memory transcript."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Protocol

from .events import (
    DISPLAY_COMMANDS,
    AppendFragment,
    BeginResponse,
    ClearHistory,
    Event,
    FinalizeResponse,
    RestoreHistory,
    ShowMessage,
    UpdatePromptList,
    UpdateSessionList,
)
from .models import SessionSummary

__all__ = ["Renderer", "TranscriptEntry", "TranscriptView"]

LOGGER = logging.getLogger(__name__)


class Renderer(Protocol):
    """Anything that can display the chat; receives every display command."""

    def render(self, command: Event) -> None:
        ...


@dataclass(slots=True)
class TranscriptEntry:
    text: str
    response_id: str | None = None
    finalized: bool = True


class TranscriptView:
    """Reference renderer used by headless hosts and tests.

    Fragments for an unknown response id are ignored, mirroring a view whose
    region was cleared by a history reload while the response was streaming.
    """

    def __init__(self) -> None:
        self.entries: list[TranscriptEntry] = []
        self.sessions: tuple[SessionSummary, ...] = ()
        self.prompt_names: tuple[str, ...] = ()
        self._regions: Dict[str, TranscriptEntry] = {}
        self._dispatch: Dict[type, Callable[[Event], None]] = {
            BeginResponse: self._begin,
            AppendFragment: self._append,
            FinalizeResponse: self._finalize,
            ClearHistory: self._clear,
            RestoreHistory: self._restore,
            UpdateSessionList: self._update_sessions,
            UpdatePromptList: self._update_prompts,
            ShowMessage: self._show,
        }
        missing = set(DISPLAY_COMMANDS) - set(self._dispatch)
        if missing:
            raise TypeError(f"TranscriptView lacks handlers for {sorted(t.__name__ for t in missing)}")

    def render(self, command: Event) -> None:
        handler = self._dispatch.get(type(command))
        if handler is None:
            raise TypeError(f"Unsupported display command {type(command).__name__}")
        handler(command)

    def lines(self) -> tuple[str, ...]:
        return tuple(entry.text for entry in self.entries)

    def region(self, response_id: str) -> TranscriptEntry | None:
        return self._regions.get(response_id)

    @property
    def active_session_id(self) -> str | None:
        for summary in self.sessions:
            if summary.is_active:
                return summary.id
        return None

    def _begin(self, command: BeginResponse) -> None:
        entry = TranscriptEntry(text=command.prefix, response_id=command.response_id, finalized=False)
        self.entries.append(entry)
        self._regions[command.response_id] = entry

    def _append(self, command: AppendFragment) -> None:
        entry = self._regions.get(command.response_id)
        if entry is None:
            LOGGER.debug("Fragment for unknown region %s ignored", command.response_id)
            return
        entry.text += command.text

    def _finalize(self, command: FinalizeResponse) -> None:
        entry = self._regions.get(command.response_id)
        if entry is not None:
            entry.finalized = True

    def _clear(self, command: ClearHistory) -> None:
        self.entries.clear()
        self._regions.clear()

    def _restore(self, command: RestoreHistory) -> None:
        self.entries.extend(TranscriptEntry(text=message) for message in command.messages)

    def _update_sessions(self, command: UpdateSessionList) -> None:
        self.sessions = tuple(command.sessions)

    def _update_prompts(self, command: UpdatePromptList) -> None:
        self.prompt_names = tuple(command.names)

    def _show(self, command: ShowMessage) -> None:
        self.entries.append(TranscriptEntry(text=command.text))
