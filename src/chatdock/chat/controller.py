"""Mediator between the chat view, the session store and the completion pipeline."""

from __future__ import annotations

import logging
import weakref
from typing import Any, Awaitable, Callable, Dict, Mapping

from ..services.host import CommandRegistry, HostEnvironment, MessageLevel, UnknownCommandError
from ..services.prompt_store import PromptStore
from .assembler import ResponseAssembler
from .events import DISPLAY_COMMANDS, EventBus, UpdatePromptList
from .intents import (
    INTENT_TYPES,
    DeleteSession,
    Intent,
    InvokeHostCommand,
    NewSession,
    RenameSessionRequest,
    RequestPromptList,
    RequestSessionList,
    SendMessage,
    SwitchSession,
    parse_intent,
)
from .models import PendingResponse
from .sessions import EmptyNameError, LastSessionDeleteError, SessionStore
from .transcript import Renderer

__all__ = ["DEFAULT_SYSTEM_PROMPT", "ChatViewController", "summarize_request"]

LOGGER = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."
USER_PREFIX = "You: "
REQUEST_PREVIEW_CHARS = 100


def summarize_request(text: str, limit: int = REQUEST_PREVIEW_CHARS) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


class ChatViewController:
    """Handles user intents and keeps the attached renderer in sync."""

    def __init__(
        self,
        host: HostEnvironment,
        sessions: SessionStore,
        prompts: PromptStore,
        assembler: ResponseAssembler,
        event_bus: EventBus,
        commands: CommandRegistry,
    ) -> None:
        self._host = host
        self._sessions = sessions
        self._prompts = prompts
        self._assembler = assembler
        self._bus = event_bus
        self._commands = commands
        self._renderer_ref: weakref.ReferenceType[Renderer] | None = None
        self._handlers: Dict[type, Callable[[Any], Awaitable[None]]] = {
            SendMessage: self._handle_send_message,
            NewSession: self._handle_new_session,
            DeleteSession: self._handle_delete_session,
            SwitchSession: self._handle_switch_session,
            RenameSessionRequest: self._handle_rename_session,
            RequestPromptList: self._handle_request_prompt_list,
            RequestSessionList: self._handle_request_session_list,
            InvokeHostCommand: self._handle_invoke_host_command,
        }
        if set(self._handlers) != set(INTENT_TYPES):
            raise TypeError("Intent handler table does not cover the intent set")

    @property
    def sessions(self) -> SessionStore:
        return self._sessions

    @property
    def is_attached(self) -> bool:
        return self._renderer_ref is not None and self._renderer_ref() is not None

    # ------------------------------------------------------------------
    # Renderer lifecycle
    # ------------------------------------------------------------------
    def attach_renderer(self, renderer: Renderer) -> None:
        """Route display commands to ``renderer`` and send it the current state."""

        self.detach_renderer()
        for command_type in DISPLAY_COMMANDS:
            self._bus.subscribe(command_type, renderer.render)
        self._renderer_ref = weakref.ref(renderer)
        LOGGER.debug("Renderer %s attached", type(renderer).__name__)
        self._sessions.publish_session_list()
        self._sessions.restore_history()
        self.publish_prompt_list()

    def detach_renderer(self) -> None:
        renderer = self._renderer_ref() if self._renderer_ref is not None else None
        self._renderer_ref = None
        if renderer is None:
            return
        for command_type in DISPLAY_COMMANDS:
            self._bus.unsubscribe(command_type, renderer.render)
        LOGGER.debug("Renderer %s detached", type(renderer).__name__)

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------
    async def handle_message(self, payload: Mapping[str, Any] | str | bytes) -> None:
        await self.handle_intent(parse_intent(payload))

    async def handle_intent(self, intent: Intent) -> None:
        handler = self._handlers.get(type(intent))
        if handler is None:
            raise TypeError(f"Unsupported intent {type(intent).__name__}")
        await handler(intent)

    async def _handle_send_message(self, intent: SendMessage) -> None:
        if not intent.text.strip():
            LOGGER.debug("Ignoring blank chat message")
            return
        session_id = self._sessions.current_id
        system_prompt = DEFAULT_SYSTEM_PROMPT
        if intent.selected_prompt:
            system_prompt = self._prompts.get(intent.selected_prompt) or DEFAULT_SYSTEM_PROMPT
            self._sessions.append_message(session_id, f"Using prompt: {intent.selected_prompt}")
        self._sessions.append_message(session_id, f"{USER_PREFIX}{intent.text}")
        await self._assembler.run(system_prompt, intent.text, session_id=session_id)

    async def _handle_new_session(self, intent: NewSession) -> None:
        await self.create_session()

    async def _handle_delete_session(self, intent: DeleteSession) -> None:
        try:
            self._sessions.delete_session(intent.session_id)
        except LastSessionDeleteError as exc:
            self._host.notify(MessageLevel.INFO, str(exc))

    async def _handle_switch_session(self, intent: SwitchSession) -> None:
        self._sessions.switch_current(intent.session_id)

    async def _handle_rename_session(self, intent: RenameSessionRequest) -> None:
        session = self._sessions.get(intent.session_id)
        if session is None:
            return
        new_name = await self._host.input_box(prompt="Rename chat", value=session.name, placeholder="New chat name")
        if new_name is None:
            return
        try:
            self._sessions.rename_session(intent.session_id, new_name)
        except EmptyNameError as exc:
            self._host.notify(MessageLevel.WARNING, str(exc))

    async def _handle_request_prompt_list(self, intent: RequestPromptList) -> None:
        self.publish_prompt_list()

    async def _handle_request_session_list(self, intent: RequestSessionList) -> None:
        self._sessions.publish_session_list()

    async def _handle_invoke_host_command(self, intent: InvokeHostCommand) -> None:
        try:
            await self._commands.execute(intent.command_id)
        except UnknownCommandError as exc:
            LOGGER.warning("Chat view requested %s", exc)
            self._host.notify(MessageLevel.WARNING, str(exc))

    # ------------------------------------------------------------------
    # Operations used by editor commands
    # ------------------------------------------------------------------
    async def create_session(self) -> str | None:
        name = await self._host.input_box(
            prompt="Create a new chat",
            value=self._sessions.default_name(),
            placeholder="Chat name",
        )
        if name is None:
            return None
        return self._sessions.create_session(name)

    def clear_history(self) -> None:
        self._sessions.clear_current()

    def publish_prompt_list(self) -> None:
        self._bus.publish(UpdatePromptList(names=self._prompts.list_names()))

    async def process_text(self, prompt_name: str, prompt_content: str, text: str) -> PendingResponse:
        """Run a stored template against ``text`` in the current session."""

        session_id = self._sessions.current_id
        self._sessions.append_message(session_id, f"Prompt: {prompt_name}\nRequest: {summarize_request(text)}")
        return await self._assembler.run(prompt_content, text, session_id=session_id)
