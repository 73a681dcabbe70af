"""In-memory stand-ins for the gateway WebSocket used by the stream tests."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, List, Optional, Tuple

_CLOSE = object()


class FakeWebSocket:
    """Yields queued frames, records sent commands, closes on request."""

    def __init__(self, frames: Optional[List[Any]] = None, hold_open: bool = False) -> None:
        self._incoming: asyncio.Queue = asyncio.Queue()
        for frame in frames or []:
            self._incoming.put_nowait(frame)
        if not hold_open:
            self._incoming.put_nowait(_CLOSE)
        self.sent: List[str] = []
        self.close_code: Optional[int] = None
        self.close_reason = ""

    def feed(self, frame: Any) -> None:
        self._incoming.put_nowait(frame)

    def fail(self, exc: BaseException) -> None:
        self._incoming.put_nowait(exc)

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.close_code is None:
            self.close_code = code
            self.close_reason = reason
        self._incoming.put_nowait(_CLOSE)

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> Any:
        item = await self._incoming.get()
        if item is _CLOSE:
            if self.close_code is None:
                self.close_code = 1000
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


class _Connect:
    def __init__(self, target: Any) -> None:
        self._target = target

    async def __aenter__(self) -> FakeWebSocket:
        if isinstance(self._target, BaseException):
            raise self._target
        return self._target

    async def __aexit__(self, *exc_info: Any) -> None:
        return None


class FakeConnector:
    """Callable with the shape of ``websockets.connect``.

    Each call consumes the next scripted socket (or exception to raise on
    connect) and records the URL and keyword arguments it was called with.
    """

    def __init__(self, *targets: Any) -> None:
        self._targets = list(targets)
        self.calls: List[Tuple[str, dict]] = []

    def __call__(self, url: str, **kwargs: Any) -> _Connect:
        self.calls.append((url, kwargs))
        if not self._targets:
            return _Connect(ConnectionRefusedError("no more scripted sockets"))
        return _Connect(self._targets.pop(0))


async def wait_for(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the loop until ``predicate`` holds or fail after ``timeout``."""

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)
