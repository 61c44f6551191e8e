"""Wires the chat components together and exposes them as host commands."""

from __future__ import annotations

import logging
import re
from typing import Callable

import httpx

from .ai.client import CompletionClient
from .ai.connection import ConnectionResolver
from .chat.assembler import ResponseAssembler
from .chat.controller import ChatViewController
from .chat.events import EventBus
from .chat.models import PendingResponse
from .chat.sessions import SessionStore
from .chat.transcript import Renderer
from .services.host import CommandRegistry, HostEnvironment, MessageLevel
from .services.prompt_store import PromptStore
from .services.settings import DEFAULT_API_URL, SettingsStore
from .utils.logging import configure_from_settings

__all__ = ["COMMAND_PREFIX", "PROMPT_COMMAND_PREFIX", "ChatExtension", "sanitize_command_name"]

LOGGER = logging.getLogger(__name__)

COMMAND_PREFIX = "chatdock."
PROMPT_COMMAND_PREFIX = f"{COMMAND_PREFIX}prompt."
_UNSAFE_COMMAND_CHARS = re.compile(r"[^a-zA-Z0-9_]")


def sanitize_command_name(name: str) -> str:
    return _UNSAFE_COMMAND_CHARS.sub("_", name)


class ChatExtension:
    """Owns the long-lived services for one editor window."""

    def __init__(
        self,
        host: HostEnvironment,
        *,
        settings_store: SettingsStore | None = None,
        prompt_store: PromptStore | None = None,
        http_client: httpx.AsyncClient | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.host = host
        self.settings_store = settings_store if settings_store is not None else SettingsStore()
        self.prompts = prompt_store if prompt_store is not None else PromptStore()
        self.event_bus = event_bus if event_bus is not None else EventBus()
        self.commands = CommandRegistry()
        self.resolver = ConnectionResolver(self.settings_store, host)
        self.client = CompletionClient(self.settings_store, host, http_client=http_client, resolver=self.resolver)
        self.sessions = SessionStore(self.event_bus)
        self.assembler = ResponseAssembler(self.client, self.sessions, self.event_bus, host)
        self.controller = ChatViewController(
            host,
            self.sessions,
            self.prompts,
            self.assembler,
            self.event_bus,
            self.commands,
        )
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def activate(self, *, configure_logging: bool = False) -> None:
        if self._active:
            return
        if configure_logging:
            configure_from_settings(self.settings_store.load())
        commands: dict[str, Callable[[], object]] = {
            "openChat": self.open_chat,
            "addPrompt": self.add_prompt,
            "showPrompts": self.show_prompts,
            "deletePrompt": self.delete_prompt,
            "editPrompt": self.edit_prompt,
            "setApiKey": self.set_api_key,
            "resetApiKey": self.reset_api_key,
            "setApiUrl": self.set_api_url,
            "setModel": self.set_model,
            "clearChatHistory": self.clear_chat_history,
            "contextMenu": self.run_prompt_on_selection,
        }
        for name, handler in commands.items():
            self.commands.register(f"{COMMAND_PREFIX}{name}", handler)
        self.refresh_prompt_commands()
        self._active = True
        LOGGER.info("Chat extension activated with %d command(s)", len(self.commands.ids()))

    async def deactivate(self) -> None:
        self.controller.detach_renderer()
        self.commands.clear()
        self.event_bus.clear()
        await self.client.aclose()
        await self.resolver.aclose()
        self._active = False
        LOGGER.info("Chat extension deactivated")

    def attach_view(self, renderer: Renderer) -> None:
        self.controller.attach_renderer(renderer)

    def detach_view(self) -> None:
        self.controller.detach_renderer()

    # ------------------------------------------------------------------
    # Chat commands
    # ------------------------------------------------------------------
    async def open_chat(self) -> None:
        await self.host.focus_chat_view()

    def clear_chat_history(self) -> None:
        self.controller.clear_history()
        self.host.notify(MessageLevel.INFO, "Chat history cleared")

    async def run_prompt_on_selection(self) -> PendingResponse | None:
        """Pick a stored template and run it on the editor selection."""

        if not self._has_selection():
            self.host.notify(MessageLevel.INFO, "Select some text to send to the assistant")
            return None
        names = self.prompts.list_names()
        if not names:
            self.host.notify(MessageLevel.INFO, 'No saved prompts. Add one with the "Add Prompt" command.')
            return None
        name = await self.host.quick_pick(names, placeholder="Select a prompt")
        if not name:
            return None
        return await self.run_prompt(name)

    async def run_prompt(self, name: str) -> PendingResponse | None:
        content = self.prompts.get(name)
        if content is None:
            self.host.notify(MessageLevel.WARNING, f'Prompt "{name}" no longer exists')
            return None
        text = self.host.selected_text()
        if not text:
            self.host.notify(MessageLevel.WARNING, "No text selected")
            return None
        await self.host.focus_chat_view()
        if not self.controller.is_attached:
            self.host.notify(MessageLevel.ERROR, "The chat view is not open")
            return None
        return await self.controller.process_text(name, content, text)

    # ------------------------------------------------------------------
    # Prompt library commands
    # ------------------------------------------------------------------
    async def add_prompt(self) -> None:
        name = await self.host.input_box(prompt="Name for the new prompt", placeholder="Prompt name")
        if not name:
            return
        existing = self.prompts.get(name)
        if existing is not None:
            answer = await self.host.ask(
                MessageLevel.WARNING,
                f'A prompt named "{name}" already exists. Overwrite it?',
                "Yes",
                "No",
            )
            if answer != "Yes":
                return
        content = await self.host.edit_text(f"Prompt: {name}", existing or "")
        if content is None:
            return
        self._save_prompt(name, content)
        self.host.notify(MessageLevel.INFO, f'Prompt "{name}" saved.')

    async def edit_prompt(self) -> None:
        name = await self._pick_prompt("Select a prompt to edit", empty_message="No saved prompts to edit")
        if not name:
            return
        content = await self.host.edit_text(f"Prompt: {name}", self.prompts.get(name) or "")
        if content is None:
            return
        self._save_prompt(name, content)
        self.host.notify(MessageLevel.INFO, f'Prompt "{name}" updated.')

    async def delete_prompt(self) -> None:
        name = await self._pick_prompt("Select a prompt to delete")
        if not name:
            return
        if self.prompts.delete(name):
            self._prompts_changed()
            self.host.notify(MessageLevel.INFO, f'Prompt "{name}" deleted')

    async def show_prompts(self) -> None:
        items = self.prompts.items()
        if not items:
            self.host.notify(MessageLevel.INFO, "No saved prompts")
            return
        document = "\n\n".join(f"{name}: {content}" for name, content in items)
        await self.host.open_document(document, language="markdown")

    def refresh_prompt_commands(self) -> list[str]:
        """Re-register one ``chatdock.prompt.<name>`` command per stored template."""

        self.commands.unregister_prefix(PROMPT_COMMAND_PREFIX)
        registered: list[str] = []
        for name in self.prompts.list_names():
            command_id = f"{PROMPT_COMMAND_PREFIX}{sanitize_command_name(name)}"
            self.commands.register(command_id, self._prompt_command(name))
            registered.append(command_id)
        return registered

    # ------------------------------------------------------------------
    # Connection commands
    # ------------------------------------------------------------------
    async def set_api_key(self) -> None:
        await self.resolver.prompt_for_api_key()

    async def reset_api_key(self) -> None:
        await self.client.reset_api_key()

    async def set_api_url(self) -> None:
        current = self.settings_store.load().api_url or DEFAULT_API_URL
        await self.resolver.prompt_for_api_url(current=current)

    async def set_model(self) -> None:
        await self.resolver.prompt_for_model()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _has_selection(self) -> bool:
        return bool(self.host.selected_text())

    async def _pick_prompt(self, placeholder: str, *, empty_message: str = "No saved prompts") -> str | None:
        names = self.prompts.list_names()
        if not names:
            self.host.notify(MessageLevel.INFO, empty_message)
            return None
        return await self.host.quick_pick(names, placeholder=placeholder)

    def _save_prompt(self, name: str, content: str) -> None:
        self.prompts.set(name, content)
        self._prompts_changed()

    def _prompts_changed(self) -> None:
        self.refresh_prompt_commands()
        self.controller.publish_prompt_list()

    def _prompt_command(self, name: str) -> Callable[[], object]:
        async def run() -> PendingResponse | None:
            return await self.run_prompt(name)

        return run
