"""Event handler contract for applications embedding the stream client."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Generic, Optional, Protocol, TypeVar, Union

from src.stream.events import (
    Activation,
    Event,
    Heartbeat,
    MarketData,
    OrderUpdate,
    PnLUpdate,
    Raw,
    Status,
    System,
    Unknown,
)

S = TypeVar("S")

HandlerResult = Union[S, Awaitable[S]]


class EventHandler(Protocol[S]):
    """Receives each decoded event together with the application's state.

    Return the next state. Raising signals a failed invocation: the
    connection logs it, keeps the previous state and carries on. Coroutine
    handlers are awaited before the next frame is dispatched.
    """

    def handle_event(self, event: Event, state: S) -> HandlerResult[S]:
        ...


class BaseEventHandler(Generic[S]):
    """No-op handler; subclass and override :meth:`handle_event`."""

    def handle_event(self, event: Event, state: S) -> HandlerResult[S]:
        return state


class CallbackEventHandler(BaseEventHandler[S]):
    """Adapt a plain ``(event, state) -> state`` function to the handler contract."""

    def __init__(self, callback: Callable[[Event, S], HandlerResult[S]]) -> None:
        self._callback = callback

    def handle_event(self, event: Event, state: S) -> HandlerResult[S]:
        return self._callback(event, state)


class LoggingEventHandler(BaseEventHandler[Any]):
    """Log every event with structured context; state passes through."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger("stream.events")

    def handle_event(self, event: Event, state: Any) -> Any:
        if isinstance(event, MarketData):
            self.logger.info(
                "Market data for %s", event.instrument_id,
                extra={"event": event.kind, "instrument_id": event.instrument_id, "fields": event.fields},
            )
        elif isinstance(event, OrderUpdate):
            self.logger.info("Order update on %s", event.topic, extra={"event": event.kind, "data": event.raw_data})
        elif isinstance(event, PnLUpdate):
            self.logger.info(
                "P&L update",
                extra={"event": event.kind, "daily_pnl": event.daily_pnl, "unrealized_pnl": event.unrealized_pnl},
            )
        elif isinstance(event, Activation):
            self.logger.info(
                "Session activated for %s", event.selected_account,
                extra={"event": event.kind, "accounts": event.accounts, "session_id": event.session_id},
            )
        elif isinstance(event, Status):
            self.logger.info(
                "Session status authenticated=%s competing=%s", event.authenticated, event.competing,
                extra={"event": event.kind, "username": event.username, "status_message": event.message},
            )
        elif isinstance(event, System):
            self.logger.info(
                "System notice paper=%s", event.is_paper_trading,
                extra={"event": event.kind, "success": event.success},
            )
        elif isinstance(event, Heartbeat):
            self.logger.debug("Heartbeat received", extra={"event": event.kind})
        elif isinstance(event, (Unknown, Raw)):
            self.logger.warning("Unrecognized frame", extra={"event": event.kind, "raw": event.raw})
        return state


__all__ = ["EventHandler", "BaseEventHandler", "CallbackEventHandler", "LoggingEventHandler"]
