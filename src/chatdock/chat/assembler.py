"""Drives one streamed completion from request to committed transcript line."""

from __future__ import annotations

import logging
import uuid
from contextlib import aclosing
from typing import Callable

from ..ai.client import CompletionClient
from ..ai.errors import CompletionError, UnknownCompletionError
from ..services.host import HostEnvironment, MessageLevel
from .events import AppendFragment, BeginResponse, EventBus, FinalizeResponse
from .models import PendingResponse, ResponseState
from .sessions import SessionStore

__all__ = ["ASSISTANT_PREFIX", "ResponseAssembler"]

LOGGER = logging.getLogger(__name__)

ASSISTANT_PREFIX = "Assistant: "
ERROR_SEPARATOR = "\n\nError: "


def _new_response_id() -> str:
    return f"response-{uuid.uuid4().hex[:12]}"


class ResponseAssembler:
    """Streams fragments to the display and commits the finished text.

    The target session is captured when the request starts; switching chats
    while the response streams does not redirect it, and deleting the target
    session turns the final commit into a no-op.
    """

    def __init__(
        self,
        client: CompletionClient,
        sessions: SessionStore,
        event_bus: EventBus,
        host: HostEnvironment,
        *,
        prefix: str = ASSISTANT_PREFIX,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._client = client
        self._sessions = sessions
        self._bus = event_bus
        self._host = host
        self._prefix = prefix
        self._id_factory = id_factory or _new_response_id

    async def run(
        self,
        system_prompt: str,
        user_content: str,
        *,
        session_id: str | None = None,
    ) -> PendingResponse:
        pending = PendingResponse(
            id=self._id_factory(),
            session_id=session_id or self._sessions.current_id,
            prefix=self._prefix,
        )
        self._bus.publish(BeginResponse(response_id=pending.id, prefix=pending.prefix))
        pending.transition(ResponseState.STREAMING)

        try:
            async with aclosing(self._client.stream(system_prompt, user_content)) as fragments:
                async for fragment in fragments:
                    pending.append(fragment)
                    self._bus.publish(AppendFragment(response_id=pending.id, text=fragment))
        except CompletionError as exc:
            self._abort(pending, exc)
            return pending
        except Exception as exc:
            LOGGER.exception("Response %s failed unexpectedly", pending.id)
            self._abort(pending, UnknownCompletionError(str(exc) or type(exc).__name__))
            return pending

        pending.transition(ResponseState.FINALIZED)
        self._bus.publish(FinalizeResponse(response_id=pending.id))
        committed = self._sessions.append_assembled_response(pending.session_id, pending.prefix, pending.text)
        LOGGER.debug(
            "Response %s finalized (%d chars, committed=%s)",
            pending.id,
            len(pending.text),
            committed,
        )
        return pending

    def _abort(self, pending: PendingResponse, error: CompletionError) -> None:
        pending.transition(ResponseState.ABORTED)
        pending.error = error
        LOGGER.warning("Response %s aborted: %s", pending.id, error.code)
        detail = str(error).removeprefix("Error: ")
        self._bus.publish(AppendFragment(response_id=pending.id, text=f"{ERROR_SEPARATOR}{detail}"))
        self._host.notify(MessageLevel.ERROR, str(error))
