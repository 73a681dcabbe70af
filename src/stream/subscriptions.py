"""Outbound command frames and the registry of active streams.

Commands follow the gateway convention ``<verb>+<key>+<json>``::

    smd+8314+{"fields":["31","83"],"tempo":1000,"snapshot":true}
    umd+8314+{}
    sor+{}   uor+{}   spl+{}   upl+{}
    ech+hb
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, Iterable, List, Tuple

SUBSCRIBE_MARKET_DATA = "smd"
UNSUBSCRIBE_MARKET_DATA = "umd"
SUBSCRIBE_ORDERS = "sor"
UNSUBSCRIBE_ORDERS = "uor"
SUBSCRIBE_PNL = "spl"
UNSUBSCRIBE_PNL = "upl"
HEARTBEAT_COMMAND = "ech+hb"

DEFAULT_TEMPO_MS = 1000


def _compact(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"))


def market_data_subscribe_command(
    instrument_id: Hashable, fields: Iterable[str], tempo_ms: int = DEFAULT_TEMPO_MS, snapshot: bool = True
) -> str:
    payload = {"fields": [str(code) for code in fields], "tempo": tempo_ms, "snapshot": snapshot}
    return f"{SUBSCRIBE_MARKET_DATA}+{instrument_id}+{_compact(payload)}"


def market_data_unsubscribe_command(instrument_id: Hashable) -> str:
    return f"{UNSUBSCRIBE_MARKET_DATA}+{instrument_id}+{{}}"


def topic_command(verb: str) -> str:
    """Command for a fixed-topic stream (orders, P&L); the key is empty."""

    return f"{verb}+{{}}"


@dataclass(frozen=True)
class MarketDataSubscription:
    fields: Tuple[str, ...]
    tempo_ms: int = DEFAULT_TEMPO_MS
    snapshot: bool = True


@dataclass(frozen=True)
class RegistrySnapshot:
    """Point-in-time copy of a :class:`SubscriptionRegistry`."""

    market_data: Dict[Hashable, MarketDataSubscription] = field(default_factory=dict)
    order_updates_active: bool = False
    pnl_active: bool = False

    def replay_commands(self) -> List[str]:
        """Subscribe commands that restore every active stream on a new socket."""

        commands = [
            market_data_subscribe_command(instrument_id, sub.fields, sub.tempo_ms, sub.snapshot)
            for instrument_id, sub in self.market_data.items()
        ]
        if self.order_updates_active:
            commands.append(topic_command(SUBSCRIBE_ORDERS))
        if self.pnl_active:
            commands.append(topic_command(SUBSCRIBE_PNL))
        return commands

    def to_dict(self) -> Dict[str, Any]:
        return {
            "market_data": {
                str(instrument_id): {
                    "fields": list(sub.fields),
                    "tempo_ms": sub.tempo_ms,
                    "snapshot": sub.snapshot,
                }
                for instrument_id, sub in self.market_data.items()
            },
            "order_updates_active": self.order_updates_active,
            "pnl_active": self.pnl_active,
        }


class SubscriptionRegistry:
    """Tracks which streams the connection asked for.

    Each mutator records the change and returns the command frame(s) the
    caller must put on the wire. Re-subscribing an instrument replaces its
    entry; unsubscribing an unknown instrument leaves the registry unchanged.
    Mutations are guarded by a lock so callers on any thread see whole entries.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._market_data: Dict[Hashable, MarketDataSubscription] = {}
        self._order_updates_active = False
        self._pnl_active = False

    def subscribe_market_data(
        self,
        instrument_ids: Iterable[Hashable],
        fields: Iterable[str],
        tempo_ms: int = DEFAULT_TEMPO_MS,
        snapshot: bool = True,
    ) -> List[str]:
        codes = tuple(dict.fromkeys(str(code) for code in fields))
        entry = MarketDataSubscription(fields=codes, tempo_ms=tempo_ms, snapshot=snapshot)
        commands = []
        with self._lock:
            for instrument_id in instrument_ids:
                self._market_data[instrument_id] = entry
                commands.append(market_data_subscribe_command(instrument_id, codes, tempo_ms, snapshot))
        return commands

    def unsubscribe_market_data(self, instrument_ids: Iterable[Hashable]) -> List[str]:
        commands = []
        with self._lock:
            for instrument_id in instrument_ids:
                self._market_data.pop(instrument_id, None)
                commands.append(market_data_unsubscribe_command(instrument_id))
        return commands

    def subscribe_order_updates(self) -> str:
        with self._lock:
            self._order_updates_active = True
        return topic_command(SUBSCRIBE_ORDERS)

    def unsubscribe_order_updates(self) -> str:
        with self._lock:
            self._order_updates_active = False
        return topic_command(UNSUBSCRIBE_ORDERS)

    def subscribe_pnl(self) -> str:
        with self._lock:
            self._pnl_active = True
        return topic_command(SUBSCRIBE_PNL)

    def unsubscribe_pnl(self) -> str:
        with self._lock:
            self._pnl_active = False
        return topic_command(UNSUBSCRIBE_PNL)

    def is_subscribed(self, instrument_id: Hashable) -> bool:
        with self._lock:
            return instrument_id in self._market_data

    def snapshot(self) -> RegistrySnapshot:
        with self._lock:
            return RegistrySnapshot(
                market_data=dict(self._market_data),
                order_updates_active=self._order_updates_active,
                pnl_active=self._pnl_active,
            )

    def restore(self, snapshot: RegistrySnapshot) -> List[str]:
        """Adopt every stream recorded in ``snapshot``; return the commands that re-open them."""

        with self._lock:
            self._market_data = dict(snapshot.market_data)
            self._order_updates_active = snapshot.order_updates_active
            self._pnl_active = snapshot.pnl_active
        return snapshot.replay_commands()


__all__ = [
    "SubscriptionRegistry",
    "RegistrySnapshot",
    "MarketDataSubscription",
    "market_data_subscribe_command",
    "market_data_unsubscribe_command",
    "topic_command",
    "HEARTBEAT_COMMAND",
    "DEFAULT_TEMPO_MS",
    "SUBSCRIBE_MARKET_DATA",
    "UNSUBSCRIBE_MARKET_DATA",
    "SUBSCRIBE_ORDERS",
    "UNSUBSCRIBE_ORDERS",
    "SUBSCRIBE_PNL",
    "UNSUBSCRIBE_PNL",
]
