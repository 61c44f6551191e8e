"""Interfaces to the hosting editor: dialogs, notifications and commands."""

from __future__ import annotations

import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol, Sequence

__all__ = [
    "CommandHandler",
    "CommandRegistry",
    "HostEnvironment",
    "InputValidator",
    "MessageLevel",
    "UnknownCommandError",
]

LOGGER = logging.getLogger(__name__)

InputValidator = Callable[[str], "str | None"]
CommandHandler = Callable[[], "Awaitable[Any] | Any"]


class MessageLevel(str, Enum):
    """Severity of a user-facing host message."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class HostEnvironment(Protocol):
    """Opaque request/response calls provided by the editor.

    ``notify`` is fire-and-forget; every other call may suspend until the user
    answers and returns ``None`` when the user dismisses the dialog.
    """

    def notify(self, level: MessageLevel, message: str) -> None:
        ...

    async def ask(self, level: MessageLevel, message: str, *actions: str) -> str | None:
        ...

    async def input_box(
        self,
        *,
        prompt: str,
        value: str = "",
        placeholder: str = "",
        password: bool = False,
        validate: InputValidator | None = None,
    ) -> str | None:
        ...

    async def quick_pick(self, items: Sequence[str], *, placeholder: str = "") -> str | None:
        ...

    async def edit_text(self, title: str, content: str) -> str | None:
        ...

    async def open_document(self, content: str, *, language: str = "markdown") -> None:
        ...

    async def focus_chat_view(self) -> None:
        ...

    def selected_text(self) -> str | None:
        ...


class UnknownCommandError(KeyError):
    """Raised when executing a command id nobody registered."""

    def __init__(self, command_id: str) -> None:
        super().__init__(command_id)
        self.command_id = command_id

    def __str__(self) -> str:
        return f"Unknown command '{self.command_id}'"


class CommandRegistry:
    """Named commands the host can invoke (palette entries, buttons, menus)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}

    def register(self, command_id: str, handler: CommandHandler) -> None:
        if not command_id:
            raise ValueError("command_id is required")
        if command_id in self._handlers:
            LOGGER.debug("Replacing handler for command %s", command_id)
        self._handlers[command_id] = handler

    def unregister(self, command_id: str) -> bool:
        return self._handlers.pop(command_id, None) is not None

    def unregister_prefix(self, prefix: str) -> list[str]:
        removed = [command_id for command_id in self._handlers if command_id.startswith(prefix)]
        for command_id in removed:
            del self._handlers[command_id]
        return removed

    def has(self, command_id: str) -> bool:
        return command_id in self._handlers

    def ids(self) -> tuple[str, ...]:
        return tuple(self._handlers)

    def clear(self) -> None:
        self._handlers.clear()

    async def execute(self, command_id: str) -> Any:
        handler = self._handlers.get(command_id)
        if handler is None:
            raise UnknownCommandError(command_id)
        LOGGER.debug("Executing command %s", command_id)
        result = handler()
        if inspect.isawaitable(result):
            result = await result
        return result
