"""Tests for the host command registry."""

from __future__ import annotations

import pytest

from chatdock.services.host import CommandRegistry, MessageLevel, UnknownCommandError


@pytest.mark.asyncio
async def test_execute_sync_and_async_handlers() -> None:
    registry = CommandRegistry()

    async def async_handler() -> str:
        return "async"

    registry.register("a.sync", lambda: "sync")
    registry.register("a.async", async_handler)

    assert await registry.execute("a.sync") == "sync"
    assert await registry.execute("a.async") == "async"


@pytest.mark.asyncio
async def test_unknown_command_raises() -> None:
    with pytest.raises(UnknownCommandError) as excinfo:
        await CommandRegistry().execute("missing")

    assert excinfo.value.command_id == "missing"
    assert str(excinfo.value) == "Unknown command 'missing'"
    assert isinstance(excinfo.value, KeyError)


def test_register_replace_and_unregister() -> None:
    registry = CommandRegistry()
    registry.register("x", lambda: 1)
    registry.register("x", lambda: 2)

    assert registry.ids() == ("x",)
    assert registry.unregister("x") is True
    assert registry.unregister("x") is False
    with pytest.raises(ValueError):
        registry.register("", lambda: None)


def test_unregister_prefix() -> None:
    registry = CommandRegistry()
    for command_id in ("chatdock.prompt.a", "chatdock.prompt.b", "chatdock.openChat"):
        registry.register(command_id, lambda: None)

    removed = registry.unregister_prefix("chatdock.prompt.")

    assert removed == ["chatdock.prompt.a", "chatdock.prompt.b"]
    assert registry.ids() == ("chatdock.openChat",)
    assert registry.has("chatdock.openChat")


def test_message_level_values() -> None:
    assert [level.value for level in MessageLevel] == ["info", "warning", "error"]
