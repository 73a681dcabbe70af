"""In-process counters and gauges for the streaming client."""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict


@dataclass
class MetricsSink:
    """Collects counters and gauges; optionally mirrors them to a Prometheus textfile.

    Counter names used by the stream: ``frames_received``, ``frames_malformed``,
    ``events_<kind>``, ``handler_errors``, ``commands_sent``,
    ``heartbeats_sent``, ``disconnects`` and ``reconnects``. The ``connected``
    gauge is 1 while a socket is open.
    """

    counters: Dict[str, int] = field(default_factory=dict)
    gauges: Dict[str, float] = field(default_factory=dict)
    metrics_file: Path = Path("var/metrics.prom")
    emit_textfile: bool = False
    prefix: str = "ibkr_stream_"
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("metrics"))
    _lock: threading.Lock = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def incr(self, name: str, value: int = 1) -> None:
        with self._lock:
            self.counters[name] = self.counters.get(name, 0) + value
            self._persist_unlocked()

    def set_gauge(self, name: str, value: float) -> None:
        with self._lock:
            self.gauges[name] = float(value)
            self._persist_unlocked()

    def counter(self, name: str) -> int:
        with self._lock:
            return self.counters.get(name, 0)

    def export(self) -> Dict[str, float | int]:
        """Return a merged view of all current metrics."""

        with self._lock:
            return {**self.counters, **self.gauges}

    def _persist_unlocked(self) -> None:
        if not self.emit_textfile:
            return
        try:
            self.metrics_file.parent.mkdir(parents=True, exist_ok=True)
            temp_path = self.metrics_file.with_suffix(".tmp")
            temp_path.write_text(self.render_prometheus(), encoding="utf-8")
            os.replace(temp_path, self.metrics_file)
        except OSError as exc:
            self.logger.debug("Metrics textfile write failed: %s", exc)

    def render_prometheus(self) -> str:
        lines = []
        for name, value in sorted(self.counters.items()):
            lines.append(f"{self.prefix}{name}_total {int(value)}")
        for name, value in sorted(self.gauges.items()):
            lines.append(f"{self.prefix}{name} {float(value)}")
        return "\n".join(lines) + "\n"


__all__ = ["MetricsSink"]
