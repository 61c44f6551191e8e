"""Shared test helpers and stub classes.

Import from here instead of duplicating fakes in individual test files.
"""

from __future__ import annotations

import json
from collections import deque
from typing import Any, AsyncIterator, Iterable, Sequence

import httpx

from chatdock.chat.events import Event
from chatdock.services.host import InputValidator, MessageLevel

VALID_KEY = "sk-" + "a" * 45
API_URL = "https://api.test/v1/chat/completions"


class FakeHost:
    """Scripted stand-in for the editor.

    Each dialog pops its next answer from the matching queue and returns
    ``None`` (dismissed) once the queue is empty.
    """

    def __init__(
        self,
        *,
        inputs: Iterable[str | None] = (),
        answers: Iterable[str | None] = (),
        picks: Iterable[str | None] = (),
        edits: Iterable[str | None] = (),
        selection: str | None = None,
    ) -> None:
        self.inputs = deque(inputs)
        self.answers = deque(answers)
        self.picks = deque(picks)
        self.edits = deque(edits)
        self.selection = selection
        self.notifications: list[tuple[MessageLevel, str]] = []
        self.input_calls: list[dict[str, Any]] = []
        self.ask_calls: list[tuple[MessageLevel, str, tuple[str, ...]]] = []
        self.pick_calls: list[tuple[tuple[str, ...], str]] = []
        self.edit_calls: list[tuple[str, str]] = []
        self.documents: list[tuple[str, str]] = []
        self.focus_count = 0

    def notify(self, level: MessageLevel, message: str) -> None:
        self.notifications.append((level, message))

    async def ask(self, level: MessageLevel, message: str, *actions: str) -> str | None:
        self.ask_calls.append((level, message, actions))
        return self.answers.popleft() if self.answers else None

    async def input_box(
        self,
        *,
        prompt: str,
        value: str = "",
        placeholder: str = "",
        password: bool = False,
        validate: InputValidator | None = None,
    ) -> str | None:
        self.input_calls.append(
            {"prompt": prompt, "value": value, "placeholder": placeholder, "password": password, "validate": validate}
        )
        return self.inputs.popleft() if self.inputs else None

    async def quick_pick(self, items: Sequence[str], *, placeholder: str = "") -> str | None:
        self.pick_calls.append((tuple(items), placeholder))
        return self.picks.popleft() if self.picks else None

    async def edit_text(self, title: str, content: str) -> str | None:
        self.edit_calls.append((title, content))
        return self.edits.popleft() if self.edits else None

    async def open_document(self, content: str, *, language: str = "markdown") -> None:
        self.documents.append((content, language))

    async def focus_chat_view(self) -> None:
        self.focus_count += 1

    def selected_text(self) -> str | None:
        return self.selection

    def messages(self, level: MessageLevel | None = None) -> list[str]:
        return [message for lvl, message in self.notifications if level is None or lvl is level]


class RecordingRenderer:
    """Renderer that keeps every display command it receives."""

    def __init__(self) -> None:
        self.commands: list[Event] = []

    def render(self, command: Event) -> None:
        self.commands.append(command)

    def of_type(self, command_type: type) -> list[Any]:
        return [command for command in self.commands if isinstance(command, command_type)]


class FakeCompletionClient:
    """Yields scripted fragments, then optionally raises."""

    def __init__(self, fragments: Iterable[str] = (), *, error: Exception | None = None) -> None:
        self.fragments = list(fragments)
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def stream(self, system_prompt: str, user_content: str) -> AsyncIterator[str]:
        self.calls.append((system_prompt, user_content))
        for fragment in self.fragments:
            yield fragment
        if self.error is not None:
            raise self.error


def sse_line(content: str | None = None, *, role: str | None = None) -> str:
    delta: dict[str, Any] = {}
    if role is not None:
        delta["role"] = role
    if content is not None:
        delta["content"] = content
    return "data: " + json.dumps({"choices": [{"index": 0, "delta": delta}]}) + "\n"


def sse_body(*fragments: str, done: bool = True) -> str:
    body = "".join(sse_line(fragment) for fragment in fragments)
    if done:
        body += "data: [DONE]\n"
    return body


async def iter_chunks(chunks: Iterable[str]) -> AsyncIterator[str]:
    for chunk in chunks:
        yield chunk


async def iter_bytes(chunks: Iterable[str], *, error: Exception | None = None) -> AsyncIterator[bytes]:
    for chunk in chunks:
        yield chunk.encode("utf-8")
    if error is not None:
        raise error


def mock_http_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))
