"""Exceptions raised by the streaming client."""

from __future__ import annotations

from typing import Union


class StreamError(Exception):
    """Base class for streaming client failures."""


class MalformedFrameError(StreamError):
    """Inbound frame could not be decoded as JSON text."""

    def __init__(self, message: str, raw: Union[str, bytes]) -> None:
        super().__init__(message)
        self.raw = raw

    def preview(self, limit: int = 256) -> str:
        """Return a printable, truncated copy of the offending payload."""

        text = self.raw.decode("utf-8", errors="replace") if isinstance(self.raw, bytes) else self.raw
        return text if len(text) <= limit else text[:limit] + "..."


__all__ = ["StreamError", "MalformedFrameError"]
