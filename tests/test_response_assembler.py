"""Tests for the streamed response state machine."""

from __future__ import annotations

import asyncio
from typing import cast

import httpx
import pytest

from chatdock.ai.client import CompletionClient
from chatdock.ai.errors import RateLimitedError, StreamInterruptedError, UnknownCompletionError
from chatdock.chat.assembler import ResponseAssembler
from chatdock.chat.events import (
    DISPLAY_COMMANDS,
    AppendFragment,
    BeginResponse,
    EventBus,
    FinalizeResponse,
    RestoreHistory,
)
from chatdock.chat.models import InvalidTransitionError, PendingResponse, ResponseState
from chatdock.chat.sessions import DEFAULT_SESSION_ID, SessionStore
from chatdock.services.host import MessageLevel

from tests.helpers import (
    FakeCompletionClient,
    FakeHost,
    RecordingRenderer,
    iter_bytes,
    mock_http_client,
    sse_body,
    sse_line,
)


def _wire(client, *, renderer: RecordingRenderer | None = None):
    bus = EventBus()
    if renderer is not None:
        for command_type in DISPLAY_COMMANDS:
            bus.subscribe(command_type, renderer.render)
    sessions = SessionStore(bus)
    host = FakeHost()
    assembler = ResponseAssembler(
        cast(CompletionClient, client), sessions, bus, host, id_factory=lambda: "response-1"
    )
    return assembler, sessions, host


@pytest.mark.asyncio
async def test_successful_stream_commits_prefixed_text() -> None:
    renderer = RecordingRenderer()
    assembler, sessions, host = _wire(FakeCompletionClient(["Hi", " there"]), renderer=renderer)

    pending = await assembler.run("sys", "Hello")

    assert pending.state is ResponseState.FINALIZED
    assert pending.text == "Hi there"
    assert sessions.history() == ("Assistant: Hi there",)
    assert renderer.commands == [
        BeginResponse(response_id="response-1", prefix="Assistant: "),
        AppendFragment(response_id="response-1", text="Hi"),
        AppendFragment(response_id="response-1", text=" there"),
        FinalizeResponse(response_id="response-1"),
    ]
    assert host.notifications == []


@pytest.mark.asyncio
async def test_failure_appends_error_notifies_and_does_not_commit() -> None:
    renderer = RecordingRenderer()
    error = RateLimitedError()
    assembler, sessions, host = _wire(FakeCompletionClient(["partial"], error=error), renderer=renderer)

    pending = await assembler.run("sys", "Hello")

    assert pending.state is ResponseState.ABORTED
    assert pending.error is error
    assert sessions.history() == ()
    assert renderer.commands[-1] == AppendFragment(response_id="response-1", text=f"\n\nError: {error}")
    assert renderer.of_type(FinalizeResponse) == []
    assert host.notifications == [(MessageLevel.ERROR, str(error))]


@pytest.mark.asyncio
async def test_response_commits_to_session_captured_at_start() -> None:
    release = asyncio.Event()

    class _SlowClient:
        async def stream(self, system_prompt: str, user_content: str):
            yield "first"
            await release.wait()
            yield " second"

    assembler, sessions, _ = _wire(_SlowClient())
    task = asyncio.create_task(assembler.run("sys", "go"))
    await asyncio.sleep(0)
    other = sessions.create_session("Elsewhere")
    release.set()
    pending = await task

    assert pending.session_id == DEFAULT_SESSION_ID
    assert sessions.history(DEFAULT_SESSION_ID) == ("Assistant: first second",)
    assert sessions.history(other) == ()


@pytest.mark.asyncio
async def test_commit_to_deleted_session_is_noop() -> None:
    release = asyncio.Event()

    class _SlowClient:
        async def stream(self, system_prompt: str, user_content: str):
            await release.wait()
            yield "late"

    assembler, sessions, _ = _wire(_SlowClient())
    doomed = sessions.create_session()
    task = asyncio.create_task(assembler.run("sys", "go", session_id=doomed))
    await asyncio.sleep(0)
    sessions.delete_session(doomed)
    release.set()
    pending = await task

    assert pending.state is ResponseState.FINALIZED
    assert doomed not in sessions
    assert sessions.history(DEFAULT_SESSION_ID) == ()


@pytest.mark.asyncio
async def test_without_renderer_events_are_dropped_silently() -> None:
    assembler, sessions, host = _wire(FakeCompletionClient(["ok"]))

    pending = await assembler.run("sys", "Hello")

    assert pending.state is ResponseState.FINALIZED
    assert sessions.history() == ("Assistant: ok",)
    assert host.notifications == []


@pytest.mark.asyncio
async def test_mid_stream_interruption_from_real_client(configured_store) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=iter_bytes([sse_line("par")], error=httpx.ReadError("reset")))

    renderer = RecordingRenderer()
    bus = EventBus()
    for command_type in DISPLAY_COMMANDS:
        bus.subscribe(command_type, renderer.render)
    host = FakeHost()
    client = CompletionClient(configured_store, host, http_client=mock_http_client(handler))
    sessions = SessionStore(bus)
    assembler = ResponseAssembler(client, sessions, bus, host)

    pending = await assembler.run("sys", "Hello")

    assert isinstance(pending.error, StreamInterruptedError)
    assert [command.text for command in renderer.of_type(AppendFragment)][0] == "par"
    assert sessions.history() == ()


@pytest.mark.asyncio
async def test_end_to_end_session_scenario(configured_store) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=sse_body("Hi", " there"))

    renderer = RecordingRenderer()
    bus = EventBus()
    for command_type in DISPLAY_COMMANDS:
        bus.subscribe(command_type, renderer.render)
    host = FakeHost()
    client = CompletionClient(configured_store, host, http_client=mock_http_client(handler))
    sessions = SessionStore(bus)
    assembler = ResponseAssembler(client, sessions, bus, host)

    new_id = sessions.create_session()
    assert len(sessions) == 2
    assert sessions.current_id == new_id
    assert sessions.get(new_id).name == "Chat 2"

    renderer.commands.clear()
    sessions.append_message(new_id, "You: Hello")
    pending = await assembler.run("You are a helpful assistant.", "Hello")

    assert sessions.history(new_id) == ("You: Hello", "Assistant: Hi there")
    streamed = [
        command
        for command in renderer.commands
        if isinstance(command, (BeginResponse, AppendFragment, FinalizeResponse))
    ]
    assert streamed == [
        BeginResponse(response_id=pending.id, prefix="Assistant: "),
        AppendFragment(response_id=pending.id, text="Hi"),
        AppendFragment(response_id=pending.id, text=" there"),
        FinalizeResponse(response_id=pending.id),
    ]

    renderer.commands.clear()
    sessions.delete_session(new_id)
    assert sessions.current_id == DEFAULT_SESSION_ID
    assert renderer.of_type(RestoreHistory) == [RestoreHistory(messages=())]


def test_pending_response_rejects_illegal_transitions() -> None:
    pending = PendingResponse(id="response-x", session_id="default", prefix="Assistant: ")

    with pytest.raises(InvalidTransitionError):
        pending.transition(ResponseState.FINALIZED)
    with pytest.raises(InvalidTransitionError):
        pending.append("too early")

    pending.transition(ResponseState.STREAMING)
    pending.transition(ResponseState.ABORTED)
    assert pending.is_terminal
    with pytest.raises(InvalidTransitionError):
        pending.transition(ResponseState.STREAMING)


@pytest.mark.asyncio
async def test_unexpected_failure_is_reported_as_unknown_error() -> None:
    renderer = RecordingRenderer()
    client = FakeCompletionClient(["partial"], error=PermissionError("settings dir is read-only"))
    assembler, sessions, host = _wire(client, renderer=renderer)

    pending = await assembler.run("sys", "Hello")

    assert pending.state is ResponseState.ABORTED
    assert isinstance(pending.error, UnknownCompletionError)
    assert sessions.history() == ()
    assert renderer.of_type(FinalizeResponse) == []
    assert renderer.commands[-1] == AppendFragment(
        response_id="response-1", text="\n\nError: settings dir is read-only"
    )
    assert host.messages(MessageLevel.ERROR) == ["Error: settings dir is read-only"]
