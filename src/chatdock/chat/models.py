"""Chat session and in-flight response data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet

from ..ai.errors import CompletionError


@dataclass(slots=True)
class Session:
    """A named conversation; ``messages`` holds display lines in append order."""

    id: str
    name: str
    messages: list[str] = field(default_factory=list)

    def copy(self) -> "Session":
        return Session(id=self.id, name=self.name, messages=list(self.messages))


@dataclass(slots=True, frozen=True)
class SessionSummary:
    """Row of the session selector."""

    id: str
    name: str
    is_active: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {"id": self.id, "name": self.name, "isActive": self.is_active}


class ResponseState(str, Enum):
    """Lifecycle of one streamed assistant response.

    ``FINALIZED`` and ``ABORTED`` are terminal.
    """

    CREATED = "created"
    STREAMING = "streaming"
    FINALIZED = "finalized"
    ABORTED = "aborted"


_ALLOWED_TRANSITIONS: Dict[ResponseState, FrozenSet[ResponseState]] = {
    ResponseState.CREATED: frozenset({ResponseState.STREAMING}),
    ResponseState.STREAMING: frozenset({ResponseState.FINALIZED, ResponseState.ABORTED}),
    ResponseState.FINALIZED: frozenset(),
    ResponseState.ABORTED: frozenset(),
}


class InvalidTransitionError(RuntimeError):
    """Raised when a pending response is moved along an edge the lifecycle lacks."""

    def __init__(self, current: ResponseState, target: ResponseState) -> None:
        super().__init__(f"Cannot move response from {current.value} to {target.value}")
        self.current = current
        self.target = target


@dataclass(slots=True)
class PendingResponse:
    """Accumulator for an assistant response while it streams."""

    id: str
    session_id: str
    prefix: str
    state: ResponseState = ResponseState.CREATED
    fragments: list[str] = field(default_factory=list)
    error: CompletionError | None = None

    @property
    def text(self) -> str:
        return "".join(self.fragments)

    @property
    def is_terminal(self) -> bool:
        return not _ALLOWED_TRANSITIONS[self.state]

    def transition(self, target: ResponseState) -> None:
        if target not in _ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransitionError(self.state, target)
        self.state = target

    def append(self, fragment: str) -> None:
        if self.state is not ResponseState.STREAMING:
            raise InvalidTransitionError(self.state, ResponseState.STREAMING)
        self.fragments.append(fragment)


__all__ = [
    "InvalidTransitionError",
    "PendingResponse",
    "ResponseState",
    "Session",
    "SessionSummary",
]
