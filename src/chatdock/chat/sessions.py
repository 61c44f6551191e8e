"""In-memory collection of chat sessions with a current-session pointer.

All methods are synchronous and run on the event-loop thread, so every
mutation (including removal plus pointer reassignment) is observed atomically
by concurrently running response tasks.
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable, Iterator

from .events import ClearHistory, EventBus, RestoreHistory, ShowMessage, UpdateSessionList
from .models import Session, SessionSummary

__all__ = [
    "DEFAULT_SESSION_ID",
    "DEFAULT_SESSION_NAME",
    "EmptyNameError",
    "LastSessionDeleteError",
    "SessionError",
    "SessionNotFoundError",
    "SessionStore",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_SESSION_ID = "default"
DEFAULT_SESSION_NAME = "New chat"


class SessionError(Exception):
    """Base class for rejected session operations."""

    code = "session_error"


class SessionNotFoundError(SessionError, KeyError):
    code = "session_not_found"

    def __init__(self, session_id: str) -> None:
        super().__init__(session_id)
        self.session_id = session_id

    def __str__(self) -> str:
        return f"Unknown session '{self.session_id}'"


class EmptyNameError(SessionError, ValueError):
    code = "empty_name"

    def __init__(self) -> None:
        super().__init__("Chat name must not be empty")


class LastSessionDeleteError(SessionError):
    code = "last_session"

    def __init__(self) -> None:
        super().__init__("Cannot delete the only chat")


def _new_session_id() -> str:
    return f"chat-{uuid.uuid4().hex[:12]}"


class SessionStore:
    """Ordered sessions; exactly one is current and the list is never empty."""

    def __init__(
        self,
        event_bus: EventBus,
        *,
        initial_name: str = DEFAULT_SESSION_NAME,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._bus = event_bus
        self._id_factory = id_factory or _new_session_id
        self._sessions: list[Session] = [Session(id=DEFAULT_SESSION_ID, name=initial_name)]
        self._current_id = DEFAULT_SESSION_ID

    @property
    def current_id(self) -> str:
        return self._current_id

    @property
    def current(self) -> Session:
        return self._require(self._current_id)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return self._find(session_id) is not None

    def __iter__(self) -> Iterator[Session]:
        return (session.copy() for session in list(self._sessions))

    def default_name(self) -> str:
        return f"Chat {len(self._sessions) + 1}"

    def sessions(self) -> tuple[SessionSummary, ...]:
        return tuple(
            SessionSummary(id=session.id, name=session.name, is_active=session.id == self._current_id)
            for session in self._sessions
        )

    def get(self, session_id: str) -> Session | None:
        session = self._find(session_id)
        return session.copy() if session is not None else None

    def history(self, session_id: str | None = None) -> tuple[str, ...]:
        return tuple(self._require(session_id or self._current_id).messages)

    def create_session(self, proposed_name: str | None = None) -> str:
        name = (proposed_name or "").strip() or self.default_name()
        session_id = self._id_factory()
        while self._find(session_id) is not None:
            session_id = self._id_factory()
        self._sessions.append(Session(id=session_id, name=name))
        self._current_id = session_id
        LOGGER.debug("Created session %s (%s)", session_id, name)
        self.restore_history()
        self.publish_session_list()
        return session_id

    def switch_current(self, session_id: str) -> bool:
        if session_id == self._current_id or self._find(session_id) is None:
            return False
        self._current_id = session_id
        self.restore_history()
        self.publish_session_list()
        return True

    def delete_session(self, session_id: str) -> bool:
        """Remove a session; the first remaining one becomes current if needed.

        Raises :class:`LastSessionDeleteError` when ``session_id`` is the only session.
        """

        if len(self._sessions) == 1:
            raise LastSessionDeleteError()
        session = self._find(session_id)
        if session is None:
            return False
        self._sessions.remove(session)
        was_current = session_id == self._current_id
        if was_current:
            self._current_id = self._sessions[0].id
        LOGGER.debug("Deleted session %s (%s)", session_id, session.name)
        if was_current:
            self.restore_history()
        self.publish_session_list()
        return True

    def rename_session(self, session_id: str, new_name: str | None) -> bool:
        name = (new_name or "").strip()
        if not name:
            raise EmptyNameError()
        session = self._find(session_id)
        if session is None:
            return False
        session.name = name
        self.publish_session_list()
        return True

    def append_message(self, session_id: str, text: str) -> bool:
        """Append a line and show it if ``session_id`` is current; False if it is gone."""

        session = self._find(session_id)
        if session is None:
            LOGGER.debug("Dropping message for deleted session %s", session_id)
            return False
        session.messages.append(text)
        if session_id == self._current_id:
            self._bus.publish(ShowMessage(text=text))
        return True

    def append_assembled_response(self, session_id: str, prefix: str, text: str) -> bool:
        """Record a response whose text was already streamed to the display."""

        session = self._find(session_id)
        if session is None:
            LOGGER.debug("Dropping response for deleted session %s", session_id)
            return False
        session.messages.append(prefix + text)
        return True

    def clear_current(self) -> None:
        self.current.messages.clear()
        self._bus.publish(ClearHistory())

    def restore_history(self) -> None:
        self._bus.publish(ClearHistory())
        self._bus.publish(RestoreHistory(messages=self.history()))

    def publish_session_list(self) -> None:
        self._bus.publish(UpdateSessionList(sessions=self.sessions()))

    def _find(self, session_id: object) -> Session | None:
        for session in self._sessions:
            if session.id == session_id:
                return session
        return None

    def _require(self, session_id: str) -> Session:
        session = self._find(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session
