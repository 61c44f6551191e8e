"""User intents emitted by the chat view and their wire validation."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from json import JSONDecodeError
from typing import Any, Callable, Dict, Union

from jsonschema import Draft7Validator, ValidationError

__all__ = [
    "INTENT_TYPES",
    "DeleteSession",
    "Intent",
    "InvalidIntentError",
    "InvokeHostCommand",
    "NewSession",
    "RenameSessionRequest",
    "RequestPromptList",
    "RequestSessionList",
    "SendMessage",
    "SwitchSession",
    "parse_intent",
]


class InvalidIntentError(ValueError):
    """Raised for renderer messages with an unknown tag or a malformed shape."""


@dataclass(slots=True, frozen=True)
class SendMessage:
    text: str
    selected_prompt: str | None = None


@dataclass(slots=True, frozen=True)
class NewSession:
    pass


@dataclass(slots=True, frozen=True)
class DeleteSession:
    session_id: str


@dataclass(slots=True, frozen=True)
class SwitchSession:
    session_id: str


@dataclass(slots=True, frozen=True)
class RenameSessionRequest:
    session_id: str


@dataclass(slots=True, frozen=True)
class RequestPromptList:
    pass


@dataclass(slots=True, frozen=True)
class RequestSessionList:
    pass


@dataclass(slots=True, frozen=True)
class InvokeHostCommand:
    command_id: str


Intent = Union[
    SendMessage,
    NewSession,
    DeleteSession,
    SwitchSession,
    RenameSessionRequest,
    RequestPromptList,
    RequestSessionList,
    InvokeHostCommand,
]

INTENT_TYPES: tuple[type, ...] = (
    SendMessage,
    NewSession,
    DeleteSession,
    SwitchSession,
    RenameSessionRequest,
    RequestPromptList,
    RequestSessionList,
    InvokeHostCommand,
)


def _command_schema(tag: str, properties: Dict[str, Any] | None = None, required: tuple[str, ...] = ()) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {"command": {"const": tag}, **(properties or {})},
        "required": ["command", *required],
        "additionalProperties": True,
    }


_NON_EMPTY_STRING: Dict[str, Any] = {"type": "string", "minLength": 1}

_CHAT_ID_SCHEMA = {"chatId": _NON_EMPTY_STRING}

_WIRE_FORMATS: Dict[str, tuple[Dict[str, Any], Callable[[Mapping[str, Any]], Intent]]] = {
    "sendMessage": (
        _command_schema(
            "sendMessage",
            {"text": {"type": "string"}, "selectedPrompt": {"type": ["string", "null"]}},
            ("text",),
        ),
        lambda payload: SendMessage(text=payload["text"], selected_prompt=payload.get("selectedPrompt") or None),
    ),
    "newChat": (_command_schema("newChat"), lambda payload: NewSession()),
    "deleteChat": (
        _command_schema("deleteChat", _CHAT_ID_SCHEMA, ("chatId",)),
        lambda payload: DeleteSession(session_id=payload["chatId"]),
    ),
    "switchChat": (
        _command_schema("switchChat", _CHAT_ID_SCHEMA, ("chatId",)),
        lambda payload: SwitchSession(session_id=payload["chatId"]),
    ),
    "renameChatRequest": (
        _command_schema("renameChatRequest", _CHAT_ID_SCHEMA, ("chatId",)),
        lambda payload: RenameSessionRequest(session_id=payload["chatId"]),
    ),
    "requestPromptsList": (_command_schema("requestPromptsList"), lambda payload: RequestPromptList()),
    "requestChatsList": (_command_schema("requestChatsList"), lambda payload: RequestSessionList()),
    "executeCommand": (
        _command_schema("executeCommand", {"commandId": _NON_EMPTY_STRING}, ("commandId",)),
        lambda payload: InvokeHostCommand(command_id=payload["commandId"]),
    ),
}

_VALIDATORS: Dict[str, Draft7Validator] = {
    tag: Draft7Validator(schema) for tag, (schema, _) in _WIRE_FORMATS.items()
}


def parse_intent(payload: Mapping[str, Any] | str | bytes) -> Intent:
    """Convert a raw renderer message into an intent.

    Raises :class:`InvalidIntentError` for undecodable JSON, unknown command tags,
    and payloads missing required fields.
    """

    message = _coerce_payload(payload)
    tag = message.get("command")
    if not isinstance(tag, str) or tag not in _WIRE_FORMATS:
        raise InvalidIntentError(f"Unknown command {tag!r}")
    try:
        _VALIDATORS[tag].validate(message)
    except ValidationError as error:
        raise InvalidIntentError(f"{tag}: {_format_validation_error(error)}") from error
    _, build = _WIRE_FORMATS[tag]
    return build(message)


def _coerce_payload(payload: Mapping[str, Any] | str | bytes) -> Dict[str, Any]:
    if isinstance(payload, Mapping):
        return dict(payload)
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")
    if isinstance(payload, str):
        try:
            parsed = json.loads(payload)
        except JSONDecodeError as exc:
            raise InvalidIntentError("Message is not valid JSON") from exc
        if not isinstance(parsed, Mapping):
            raise InvalidIntentError("Message must decode to an object")
        return dict(parsed)
    raise InvalidIntentError("Message must be a mapping or JSON string")


def _format_validation_error(error: ValidationError) -> str:
    path = ".".join(str(part) for part in error.path)
    if path:
        return f"{path}: {error.message}"
    return error.message
