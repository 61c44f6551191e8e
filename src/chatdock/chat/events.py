"""Display commands and the bus that carries them to the renderer.

Everything the chat view shows arrives as one of the :data:`DISPLAY_COMMANDS`
published on an :class:`EventBus`. Publishing never fails: when no renderer is
subscribed (or the renderer was garbage collected) the command is dropped.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar
from weakref import WeakMethod

from .models import SessionSummary

LOGGER = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for everything published on the bus."""


# Published once per fragment; never logged individually.
_QUIET_EVENT_TYPES: set[type] = set()


@dataclass(slots=True)
class BeginResponse(Event):
    """Open a new streaming region labelled with ``prefix``."""

    response_id: str
    prefix: str


@dataclass(slots=True)
class AppendFragment(Event):
    """Append ``text`` to the streaming region ``response_id``."""

    response_id: str
    text: str


_QUIET_EVENT_TYPES.add(AppendFragment)


@dataclass(slots=True)
class FinalizeResponse(Event):
    response_id: str


@dataclass(slots=True)
class ClearHistory(Event):
    pass


@dataclass(slots=True)
class RestoreHistory(Event):
    messages: tuple[str, ...] = ()


@dataclass(slots=True)
class UpdateSessionList(Event):
    sessions: tuple[SessionSummary, ...] = ()


@dataclass(slots=True)
class UpdatePromptList(Event):
    names: tuple[str, ...] = ()


@dataclass(slots=True)
class ShowMessage(Event):
    """A complete, non-streamed transcript line (user input, prompt banner)."""

    text: str


DISPLAY_COMMANDS: tuple[type[Event], ...] = (
    BeginResponse,
    AppendFragment,
    FinalizeResponse,
    ClearHistory,
    RestoreHistory,
    UpdateSessionList,
    UpdatePromptList,
    ShowMessage,
)


class EventBus(Generic[E]):
    """Synchronous typed publish/subscribe.

    Bound-method handlers are held weakly so a discarded renderer stops
    receiving events without an explicit unsubscribe; plain functions are held
    strongly. A handler that raises is logged and the remaining handlers still
    run. Not thread-safe: use it from the event-loop thread only.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: defaultdict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        self._handlers[event_type].append(_HandlerRef.create(handler))
        LOGGER.debug("Subscribed %s to %s", _handler_name(handler), event_type.__name__)

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> bool:
        """Remove the first registration of ``handler``; returns False if absent."""

        handlers = self._handlers.get(event_type)
        if not handlers:
            return False
        for index, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                handlers.pop(index)
                LOGGER.debug("Unsubscribed %s from %s", _handler_name(handler), event_type.__name__)
                return True
        return False

    def publish(self, event: E) -> int:
        """Deliver ``event`` to its live handlers and return how many ran."""

        event_type = type(event)
        handlers = self._handlers.get(event_type)
        is_quiet = event_type in _QUIET_EVENT_TYPES
        if not handlers:
            if not is_quiet:
                LOGGER.debug("No handlers for %s; dropped", event_type.__name__)
            return 0
        if not is_quiet:
            LOGGER.debug("Publishing %s to %d handler(s)", event_type.__name__, len(handlers))

        delivered = 0
        live: list[_HandlerRef] = []
        for handler_ref in list(handlers):
            handler = handler_ref.resolve()
            if handler is None:
                continue
            live.append(handler_ref)
            try:
                handler(event)
            except Exception:
                LOGGER.exception("Handler %s failed for %s", _handler_name(handler), event_type.__name__)
            delivered += 1

        if len(live) != len(handlers):
            handlers[:] = [ref for ref in handlers if ref.resolve() is not None]
        return delivered

    def clear(self) -> None:
        self._handlers.clear()

    def handler_count(self, event_type: type[E] | None = None) -> int:
        if event_type is not None:
            return sum(1 for ref in self._handlers.get(event_type, ()) if ref.resolve() is not None)
        return sum(self.handler_count(kind) for kind in list(self._handlers))


class _HandlerRef:
    """Weak reference for bound methods, strong reference for anything else."""

    __slots__ = ("_ref", "_is_weak")

    def __init__(self, handler_ref: WeakMethod | Handler, is_weak: bool) -> None:
        self._ref = handler_ref
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> "_HandlerRef":
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)
            except TypeError:
                pass
        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        if not self._is_weak:
            return self._ref  # type: ignore[return-value]
        return self._ref()  # type: ignore[operator]

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        return resolved is not None and resolved == handler


def _handler_name(handler: Handler) -> str:
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        return f"{type(handler.__self__).__name__}.{handler.__func__.__name__}"
    return getattr(handler, "__name__", repr(handler))


__all__ = [
    "AppendFragment",
    "BeginResponse",
    "ClearHistory",
    "DISPLAY_COMMANDS",
    "Event",
    "EventBus",
    "FinalizeResponse",
    "Handler",
    "RestoreHistory",
    "ShowMessage",
    "UpdatePromptList",
    "UpdateSessionList",
]
