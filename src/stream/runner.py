"""Reconnect loop around single-use :class:`StreamConnection` instances.

Each attempt gets a fresh connection (and therefore a fresh session state).
Subscriptions and the application's state are carried over from the previous
attempt, and attempts are spaced out with exponential backoff plus jitter.
"""

from __future__ import annotations

import asyncio
import logging
import random
import threading
from typing import Callable, Generic, Hashable, Iterable, Optional, TypeVar

from src.gateway.session_client import GatewayError, GatewaySessionClient
from src.infra.config import BackoffConfig, StreamConfig
from src.infra.metrics import MetricsSink
from src.stream.connection import DisconnectInfo, StreamConnection
from src.stream.handler import EventHandler
from src.stream.session import SessionState
from src.stream.subscriptions import DEFAULT_TEMPO_MS, RegistrySnapshot
from src.stream.transport import Connector

S = TypeVar("S")


class ReconnectingStream(Generic[S]):
    """Keeps a gateway stream alive across transport failures."""

    def __init__(
        self,
        config: StreamConfig,
        handler: EventHandler[S],
        initial_state: Optional[S] = None,
        backoff: Optional[BackoffConfig] = None,
        gateway: Optional[GatewaySessionClient] = None,
        metrics: Optional[MetricsSink] = None,
        connector: Optional[Connector] = None,
        on_disconnect: Optional[Callable[[DisconnectInfo], None]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config
        self.handler = handler
        self.backoff = backoff or BackoffConfig()
        self.gateway = gateway
        self.metrics = metrics or MetricsSink()
        self.on_disconnect = on_disconnect
        self.logger = logger or logging.getLogger(__name__)
        self._connector = connector
        self._lock = threading.Lock()
        self._running = False
        self.attempts = 0
        self._connection = self._new_connection(initial_state)

    @property
    def connection(self) -> StreamConnection[S]:
        with self._lock:
            return self._connection

    # Status accessors shared with the dashboard.
    def session_snapshot(self) -> SessionState:
        return self.connection.session_snapshot()

    def subscriptions_snapshot(self) -> RegistrySnapshot:
        return self.connection.subscriptions_snapshot()

    @property
    def user_state(self) -> Optional[S]:
        return self.connection.user_state

    @property
    def state(self) -> str:
        return self.connection.state.value

    # Commands go to whichever connection is current; the swap holds the same
    # lock so nothing is recorded on a connection that is being replaced.
    def subscribe_market_data(
        self,
        instrument_ids: Iterable[Hashable],
        fields: Iterable[str],
        tempo_ms: int = DEFAULT_TEMPO_MS,
        snapshot: bool = True,
    ) -> None:
        with self._lock:
            self._connection.subscribe_market_data(instrument_ids, fields, tempo_ms, snapshot)

    def unsubscribe_market_data(self, instrument_ids: Iterable[Hashable]) -> None:
        with self._lock:
            self._connection.unsubscribe_market_data(instrument_ids)

    def subscribe_order_updates(self) -> None:
        with self._lock:
            self._connection.subscribe_order_updates()

    def unsubscribe_order_updates(self) -> None:
        with self._lock:
            self._connection.unsubscribe_order_updates()

    def subscribe_pnl(self) -> None:
        with self._lock:
            self._connection.subscribe_pnl()

    def unsubscribe_pnl(self) -> None:
        with self._lock:
            self._connection.unsubscribe_pnl()

    def send_heartbeat(self) -> None:
        with self._lock:
            self._connection.send_heartbeat()

    async def run(self) -> None:
        """Run connections back to back until :meth:`stop` is called."""

        self._running = True
        delay = self.backoff.initial
        while self._running:
            connection = self.connection
            self.attempts += 1
            connection.session_token = await self._fetch_session_token()
            info = await connection.run()
            if not self._running:
                break
            if info.was_connected:
                delay = self.backoff.initial
            sleep_for = min(delay, self.backoff.maximum) + random.uniform(0, self.backoff.jitter)
            self.metrics.incr("reconnects")
            self.logger.info(
                "Reconnecting to gateway stream",
                extra={"event": "reconnect", "sleep_seconds": sleep_for, "attempt": self.attempts},
            )
            await asyncio.sleep(sleep_for)
            delay = min(delay * self.backoff.factor, self.backoff.maximum)
            self._rotate()

    async def stop(self) -> None:
        self._running = False
        await self.connection.close()

    def _rotate(self) -> None:
        with self._lock:
            previous = self._connection
            replacement = self._new_connection(previous.user_state)
            replacement.restore_subscriptions(previous.subscriptions_snapshot())
            self._connection = replacement

    def _new_connection(self, initial_state: Optional[S]) -> StreamConnection[S]:
        return StreamConnection(
            self.config.url,
            self.handler,
            initial_state,
            heartbeat_enabled=self.config.heartbeat_enabled,
            heartbeat_interval=self.config.heartbeat_interval_seconds,
            verify_tls=self.config.verify_tls,
            user_agent=self.config.user_agent,
            on_disconnect=self.on_disconnect,
            metrics=self.metrics,
            connector=self._connector,
            logger=self.logger.getChild("connection"),
        )

    async def _fetch_session_token(self) -> Optional[str]:
        if self.gateway is None:
            return None
        try:
            response = await asyncio.to_thread(self.gateway.tickle)
        except GatewayError as exc:
            self.logger.warning(
                "Could not fetch gateway session token: %s", exc, extra={"event": "tickle_failed"}
            )
            return None
        if response.authenticated is False:
            self.logger.warning(
                "Gateway session is not authenticated; log in through the gateway first",
                extra={"event": "not_authenticated"},
            )
        return response.session


__all__ = ["ReconnectingStream"]
