"""Connection supervisor for the gateway streaming socket.

A :class:`StreamConnection` owns one WebSocket for its whole life:

* one reader task decodes frames, folds them into the :class:`SessionState`
  and hands each event to the application's handler, strictly in wire order;
* one writer task drains the outbound command queue onto the socket;
* an optional heartbeat task feeds ``ech+hb`` into the same queue.

The lifecycle is ``CONNECTING -> CONNECTED -> DISCONNECTED``. A disconnected
instance is finished; reconnecting means building a new one (see
:mod:`src.stream.runner`).
"""

from __future__ import annotations

import asyncio
import contextlib
import copy
import inspect
import json
import logging
import ssl
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Hashable, Iterable, Optional, TypeVar, Union

from websockets.exceptions import ConnectionClosed, WebSocketException

from src.infra.metrics import MetricsSink
from src.stream.codec import decode_frame
from src.stream.errors import MalformedFrameError, StreamError
from src.stream.events import Event
from src.stream.handler import BaseEventHandler, EventHandler
from src.stream.heartbeat import DEFAULT_HEARTBEAT_INTERVAL_SECONDS, HeartbeatScheduler
from src.stream.session import SessionState, apply_event
from src.stream.subscriptions import (
    DEFAULT_TEMPO_MS,
    HEARTBEAT_COMMAND,
    RegistrySnapshot,
    SubscriptionRegistry,
)
from src.stream.transport import (
    DEFAULT_GATEWAY_URL,
    DEFAULT_USER_AGENT,
    Connector,
    build_ssl_context,
    connect_headers,
    connect_kwargs,
    default_connector,
)

S = TypeVar("S")


class ConnectionState(str, Enum):
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"


@dataclass(frozen=True)
class DisconnectInfo:
    """Why a connection ended; handed to ``on_disconnect`` and returned by ``run``."""

    code: Optional[int] = None
    reason: str = ""
    error: Optional[BaseException] = None
    was_connected: bool = False
    requested: bool = False

    def describe(self) -> str:
        if self.error is not None:
            return f"{type(self.error).__name__}: {self.error}"
        return f"code={self.code} reason={self.reason or '-'}"


class StreamConnection(Generic[S]):
    """A single streaming session against the gateway."""

    def __init__(
        self,
        url: str = DEFAULT_GATEWAY_URL,
        handler: Optional[EventHandler[S]] = None,
        initial_state: Optional[S] = None,
        *,
        heartbeat_enabled: bool = True,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL_SECONDS,
        verify_tls: Optional[bool] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        session_token: Optional[str] = None,
        on_disconnect: Optional[Callable[[DisconnectInfo], None]] = None,
        metrics: Optional[MetricsSink] = None,
        connector: Optional[Connector] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.url = url
        self.handler: EventHandler[S] = handler or BaseEventHandler()
        self.user_agent = user_agent
        self.session_token = session_token
        self.on_disconnect = on_disconnect
        self.metrics = metrics or MetricsSink()
        self.logger = logger or logging.getLogger(__name__)
        self._connector = connector or default_connector()
        self._ssl_context = ssl_context if ssl_context is not None else build_ssl_context(url, verify_tls)

        self._lock = threading.Lock()
        self._state = ConnectionState.CONNECTING
        self._session = SessionState()
        self._user_state = initial_state
        self.subscriptions = SubscriptionRegistry()
        self.heartbeat = HeartbeatScheduler(
            self.send_heartbeat,
            interval_seconds=heartbeat_interval,
            enabled=heartbeat_enabled,
            logger=self.logger.getChild("heartbeat"),
        )

        self._outbox: asyncio.Queue[str] = asyncio.Queue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._ws: Any = None
        self._started = False
        self._close_requested = False
        self._disconnect: Optional[DisconnectInfo] = None
        self._write_error: Optional[BaseException] = None

    # --- Read accessors (any thread) -------------------------------------
    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def ssl_context(self) -> Optional[ssl.SSLContext]:
        return self._ssl_context

    @property
    def user_state(self) -> Optional[S]:
        with self._lock:
            return self._user_state

    @property
    def disconnect_info(self) -> Optional[DisconnectInfo]:
        with self._lock:
            return self._disconnect

    def session_snapshot(self) -> SessionState:
        """Deep copy of the current session, safe to hand to another thread."""

        with self._lock:
            return copy.deepcopy(self._session)

    def subscriptions_snapshot(self) -> RegistrySnapshot:
        return self.subscriptions.snapshot()

    # --- Outbound commands (fire and forget, any thread) -----------------
    def subscribe_market_data(
        self,
        instrument_ids: Iterable[Hashable],
        fields: Iterable[str],
        tempo_ms: int = DEFAULT_TEMPO_MS,
        snapshot: bool = True,
    ) -> None:
        for command in self.subscriptions.subscribe_market_data(instrument_ids, fields, tempo_ms, snapshot):
            self._enqueue(command)

    def unsubscribe_market_data(self, instrument_ids: Iterable[Hashable]) -> None:
        for command in self.subscriptions.unsubscribe_market_data(instrument_ids):
            self._enqueue(command)

    def subscribe_order_updates(self) -> None:
        self._enqueue(self.subscriptions.subscribe_order_updates())

    def unsubscribe_order_updates(self) -> None:
        self._enqueue(self.subscriptions.unsubscribe_order_updates())

    def subscribe_pnl(self) -> None:
        self._enqueue(self.subscriptions.subscribe_pnl())

    def unsubscribe_pnl(self) -> None:
        self._enqueue(self.subscriptions.unsubscribe_pnl())

    def send_heartbeat(self) -> None:
        self._enqueue(HEARTBEAT_COMMAND)

    def restore_subscriptions(self, snapshot: RegistrySnapshot) -> None:
        """Re-issue every stream recorded in ``snapshot`` on this connection."""

        for command in self.subscriptions.restore(snapshot):
            self._enqueue(command)

    def _enqueue(self, command: str) -> None:
        if self.state is ConnectionState.DISCONNECTED:
            # Finished connections have no writer; the registry still records
            # the change so a replacement connection replays it.
            self.logger.debug("Not sending %s on a closed connection", command, extra={"event": "command_dropped"})
            return
        loop = self._loop
        if loop is not None and not loop.is_closed():
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is not loop:
                loop.call_soon_threadsafe(self._outbox.put_nowait, command)
                return
        self._outbox.put_nowait(command)

    # --- Lifecycle --------------------------------------------------------
    async def run(self) -> DisconnectInfo:
        """Connect and dispatch frames until the transport closes.

        Transport failures (refused connection, TLS errors, abrupt closes)
        end the connection and are reported through the returned
        :class:`DisconnectInfo`; they are not raised.
        """

        if self._started:
            raise StreamError("StreamConnection instances are single-use; create a new one to reconnect")
        self._started = True
        self._loop = asyncio.get_running_loop()

        headers = connect_headers(self.user_agent, self.session_token)
        writer: Optional[asyncio.Task] = None
        connected = False
        info: Optional[DisconnectInfo] = None
        self.logger.info("Connecting to gateway stream %s", self.url, extra={"event": "connecting", "url": self.url})
        try:
            async with self._connector(self.url, **connect_kwargs(self.url, self._ssl_context, headers)) as ws:
                self._ws = ws
                connected = True
                self._set_state(ConnectionState.CONNECTED)
                self.logger.info("Connected to gateway stream", extra={"event": "connected", "url": self.url})
                if self.session_token:
                    await ws.send(json.dumps({"session": self.session_token}))
                writer = asyncio.create_task(self._write_loop(ws), name="stream-writer")
                self.heartbeat.start()
                if self._close_requested:
                    await ws.close()
                async for raw in ws:
                    await self._dispatch(raw)
                info = DisconnectInfo(
                    code=getattr(ws, "close_code", None),
                    reason=getattr(ws, "close_reason", None) or "",
                    error=self._write_error,
                    was_connected=True,
                    requested=self._close_requested,
                )
        except ConnectionClosed as exc:
            received = exc.rcvd
            info = DisconnectInfo(
                code=received.code if received else None,
                reason=received.reason if received else "",
                error=exc,
                was_connected=connected,
                requested=self._close_requested,
            )
        except (OSError, WebSocketException, asyncio.TimeoutError) as exc:
            info = DisconnectInfo(error=exc, was_connected=connected, requested=self._close_requested)
        except asyncio.CancelledError:
            self._mark_disconnected(DisconnectInfo(reason="cancelled", was_connected=connected, requested=True))
            raise
        finally:
            await self.heartbeat.stop()
            if writer is not None:
                writer.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await writer
            self._ws = None

        self._mark_disconnected(info)
        return info

    async def close(self) -> None:
        """Ask the transport to close; ``run`` returns once it has."""

        self._close_requested = True
        ws = self._ws
        if ws is not None:
            await ws.close()

    # --- Internals --------------------------------------------------------
    async def _dispatch(self, raw: Union[str, bytes]) -> None:
        self.metrics.incr("frames_received")
        try:
            event = decode_frame(raw)
        except MalformedFrameError as exc:
            self.metrics.incr("frames_malformed")
            self.logger.warning(
                "Discarding malformed frame: %s", exc,
                extra={"event": "malformed_frame", "raw": exc.preview()},
            )
            return
        except Exception:
            self.metrics.incr("frames_malformed")
            self.logger.exception("Discarding frame that failed to decode", extra={"event": "malformed_frame"})
            return

        with self._lock:
            self._session = apply_event(self._session, event)
            current = self._user_state
        self.metrics.incr(f"events_{event.kind}")

        try:
            result = self.handler.handle_event(event, current)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            self.metrics.incr("handler_errors")
            self.logger.exception(
                "Event handler failed on %s event: %s", event.kind, exc,
                extra={"event": "handler_error", "event_kind": event.kind},
            )
            return

        with self._lock:
            self._user_state = result

    async def _write_loop(self, ws: Any) -> None:
        while True:
            command = await self._outbox.get()
            try:
                await ws.send(command)
            except ConnectionClosed:
                self.logger.warning(
                    "Dropping command on closed socket", extra={"event": "command_dropped", "command": command}
                )
                return
            except (WebSocketException, OSError) as exc:
                self._write_error = exc
                self.logger.warning(
                    "Send failed, closing gateway stream: %s", exc,
                    extra={"event": "send_failed", "command": command},
                )
                with contextlib.suppress(WebSocketException, OSError):
                    await ws.close()
                return
            self.metrics.incr("heartbeats_sent" if command == HEARTBEAT_COMMAND else "commands_sent")
            self.logger.debug("Sent command %s", command, extra={"event": "command_sent"})

    def _set_state(self, state: ConnectionState) -> None:
        with self._lock:
            self._state = state
        self.metrics.set_gauge("connected", 1 if state is ConnectionState.CONNECTED else 0)

    def _mark_disconnected(self, info: DisconnectInfo) -> None:
        with self._lock:
            self._state = ConnectionState.DISCONNECTED
            self._disconnect = info
        self.metrics.incr("disconnects")
        self.metrics.set_gauge("connected", 0)
        log = self.logger.info if info.requested and info.error is None else self.logger.warning
        log(
            "Disconnected from gateway stream (%s)", info.describe(),
            extra={"event": "disconnected", "code": info.code, "reason": info.reason, "requested": info.requested},
        )
        if self.on_disconnect is None:
            return
        try:
            self.on_disconnect(info)
        except Exception:
            self.logger.exception("on_disconnect callback failed", extra={"event": "disconnect_callback_error"})


__all__ = ["StreamConnection", "ConnectionState", "DisconnectInfo"]
