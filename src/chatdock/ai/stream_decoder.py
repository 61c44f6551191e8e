"""Incremental decoder for server-sent-event completion streams.

The completion endpoint answers a streaming request with lines such as::

    data: {"choices": [{"delta": {"content": "Hi"}}]}
    data: [DONE]

:class:`StreamDecoder` turns arbitrary text chunks of that body into the ordered
sequence of ``delta.content`` fragments. Lines are only interpreted once their
terminating newline has arrived, so a record split across two transport chunks
is never emitted half-way.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, AsyncIterable, AsyncIterator

__all__ = ["StreamDecoder", "StreamOutcome", "extract_delta_content"]

LOGGER = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_TOKEN = "[DONE]"


class StreamOutcome(Enum):
    """How a decoded stream ended.

    Values:
        PENDING: Still reading.
        DONE: The done sentinel was received.
        EXHAUSTED: The transport closed without sending the sentinel.
        FAILED: The transport raised while reading.
    """

    PENDING = "pending"
    DONE = "done"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


class StreamDecoder:
    """Stateful line parser; one instance per response body."""

    def __init__(self, *, prefix: str = DATA_PREFIX, done_token: str = DONE_TOKEN) -> None:
        if not prefix:
            raise ValueError("prefix is required")
        self._prefix = prefix
        self._done_token = done_token
        self._buffer = ""
        self._outcome = StreamOutcome.PENDING
        self.parse_errors = 0
        self.fragments_emitted = 0

    @property
    def outcome(self) -> StreamOutcome:
        return self._outcome

    @property
    def finished(self) -> bool:
        return self._outcome is not StreamOutcome.PENDING

    @property
    def pending_text(self) -> str:
        """Text received after the last complete line."""

        return self._buffer

    def feed(self, chunk: str) -> list[str]:
        """Consume ``chunk`` and return the fragments of every line it completes."""

        if self.finished or not chunk:
            return []
        self._buffer += chunk
        fragments: list[str] = []
        while not self.finished:
            line_end = self._buffer.find("\n")
            if line_end < 0:
                break
            line = self._buffer[:line_end]
            self._buffer = self._buffer[line_end + 1 :]
            fragment = self._parse_line(line)
            if fragment is not None:
                fragments.append(fragment)
        if self.finished:
            self._buffer = ""
        self.fragments_emitted += len(fragments)
        return fragments

    def close(self) -> StreamOutcome:
        """Mark the transport as ended; an incomplete trailing line is dropped."""

        if self._outcome is StreamOutcome.PENDING:
            if self._buffer.strip():
                LOGGER.debug("Discarding %d chars of unterminated stream data", len(self._buffer))
            self._buffer = ""
            self._outcome = StreamOutcome.EXHAUSTED
        return self._outcome

    async def decode(self, chunks: AsyncIterable[str]) -> AsyncIterator[str]:
        """Yield fragments from ``chunks`` until the sentinel or the end of the source.

        A transport error marks the decoder ``FAILED`` and propagates to the caller;
        fragments yielded before it stay delivered.
        """

        try:
            async for chunk in chunks:
                for fragment in self.feed(chunk):
                    yield fragment
                if self.finished:
                    return
        except Exception:
            self._outcome = StreamOutcome.FAILED
            raise
        self.close()

    def _parse_line(self, raw_line: str) -> str | None:
        line = raw_line.strip()
        if not line.startswith(self._prefix):
            return None
        payload = line[len(self._prefix) :].strip()
        if payload == self._done_token:
            self._outcome = StreamOutcome.DONE
            return None
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            self.parse_errors += 1
            LOGGER.warning("Skipping undecodable stream line (%s): %.120s", exc.msg, payload)
            return None
        return extract_delta_content(data)


def extract_delta_content(data: Any) -> str | None:
    """Return ``choices[0].delta.content`` when it is a non-empty string."""

    if not isinstance(data, dict):
        return None
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    if isinstance(content, str) and content:
        return content
    return None
