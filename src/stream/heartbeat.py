"""Periodic keepalive for the streaming socket."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Callable, Optional

DEFAULT_HEARTBEAT_INTERVAL_SECONDS = 10.0


class HeartbeatScheduler:
    """Emit a keepalive every ``interval_seconds`` while the connection lives.

    The enabled/disabled choice is fixed at construction. When disabled,
    :meth:`start` is a no-op and the application sends heartbeats itself.
    The scheduler never waits for a reply; the gateway answers with an
    ordinary frame that flows through the normal dispatch path.
    """

    def __init__(
        self,
        send: Callable[[], None],
        interval_seconds: float = DEFAULT_HEARTBEAT_INTERVAL_SECONDS,
        enabled: bool = True,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("heartbeat interval must be positive")
        self._send = send
        self.interval_seconds = interval_seconds
        self._enabled = enabled
        self.logger = logger or logging.getLogger(__name__)
        self._task: Optional[asyncio.Task] = None
        self.beats = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the first heartbeat; must be called from the event loop."""

        if not self._enabled or self.running:
            return
        self._task = asyncio.create_task(self._run(), name="stream-heartbeat")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self._send()
            except Exception:
                self.logger.exception("Heartbeat send failed", extra={"event": "heartbeat_failed"})
                continue
            self.beats += 1
            self.logger.debug("Heartbeat sent", extra={"event": "heartbeat", "beats": self.beats})


__all__ = ["HeartbeatScheduler", "DEFAULT_HEARTBEAT_INTERVAL_SECONDS"]
