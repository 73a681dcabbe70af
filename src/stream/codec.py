"""Decode gateway text frames into typed :mod:`src.stream.events`.

Classification is an ordered chain keyed on the ``topic`` field. The payload
shapes overlap (a ``system`` frame may also carry an ``hb`` key), so the first
matching rule wins:

1. ``smd+<conid>``            -> :class:`MarketData`
2. ``sor`` or ``o+...``       -> :class:`OrderUpdate`
3. ``spl``                    -> :class:`PnLUpdate`
4. ``act``                    -> :class:`Activation`
5. ``sts``                    -> :class:`Status`
6. ``system``                 -> :class:`System`
7. any other topic with ``hb`` -> :class:`Heartbeat`
8. any other topic            -> :class:`Unknown`
9. no topic at all            -> :class:`Raw`
"""

from __future__ import annotations

import json
import time
from typing import Any, Dict, List, Optional, Union

from src.stream.errors import MalformedFrameError
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

MARKET_DATA_PREFIX = "smd+"
ORDER_UPDATE_TOPIC = "sor"
ORDER_UPDATE_PREFIX = "o+"
PNL_TOPIC = "spl"
ACTIVATION_TOPIC = "act"
STATUS_TOPIC = "sts"
SYSTEM_TOPIC = "system"
HEARTBEAT_MARKER = "hb"

MARKET_DATA_METADATA_KEYS = frozenset({"topic", "conid", "seq"})


def decode_frame(raw: Union[str, bytes], now_ms: Optional[int] = None) -> Event:
    """Decode one inbound frame.

    Raises:
        MalformedFrameError: the payload is not valid UTF-8 JSON text, or a
            recognized topic carries a body that cannot be read.
    """

    try:
        text = raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw
        data = json.loads(text)
    except (UnicodeDecodeError, ValueError, TypeError) as exc:
        raise MalformedFrameError(f"frame is not valid JSON: {exc}", raw) from exc

    timestamp_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    try:
        return classify(data, timestamp_ms)
    except (TypeError, ValueError, AttributeError) as exc:
        raise MalformedFrameError(f"frame has an unexpected shape: {exc}", raw) from exc


def classify(data: Any, timestamp_ms: int) -> Event:
    """Map an already-parsed JSON value onto exactly one event variant."""

    if not isinstance(data, dict) or "topic" not in data:
        return Raw(raw=data)

    topic = data["topic"]
    if isinstance(topic, str):
        if topic.startswith(MARKET_DATA_PREFIX):
            return _market_data(topic, data, timestamp_ms)
        if topic == ORDER_UPDATE_TOPIC or topic.startswith(ORDER_UPDATE_PREFIX):
            return OrderUpdate(topic=topic, raw_data=data, timestamp_ms=timestamp_ms)
        if topic == PNL_TOPIC:
            return _pnl_update(topic, data, timestamp_ms)
        if topic == ACTIVATION_TOPIC:
            return _activation(data)
        if topic == STATUS_TOPIC:
            return _status(data)
        if topic == SYSTEM_TOPIC:
            return _system(data)

    if HEARTBEAT_MARKER in data:
        return Heartbeat(raw=data)
    return Unknown(raw=data)


def _market_data(topic: str, data: Dict[str, Any], timestamp_ms: int) -> MarketData:
    instrument_id = data.get("conid")
    if instrument_id is None:
        suffix = topic[len(MARKET_DATA_PREFIX):]
        instrument_id = int(suffix) if suffix.isdecimal() else suffix or None
    fields = {key: value for key, value in data.items() if key not in MARKET_DATA_METADATA_KEYS}
    return MarketData(instrument_id=instrument_id, topic=topic, fields=fields, timestamp_ms=timestamp_ms)


def _pnl_update(topic: str, data: Dict[str, Any], timestamp_ms: int) -> PnLUpdate:
    account_data: Dict[str, Any] = {}
    args = data.get("args")
    if isinstance(args, dict) and args:
        first = next(iter(args.values()))
        if isinstance(first, dict):
            account_data = first
    return PnLUpdate(
        topic=topic,
        daily_pnl=_safe_float(account_data.get("dpl")),
        unrealized_pnl=_safe_float(account_data.get("upl")),
        raw_account_data=account_data,
        timestamp_ms=timestamp_ms,
    )


def _activation(data: Dict[str, Any]) -> Activation:
    args = _args(data)
    features = args.get("allowFeatures", args.get("allowedFeatures"))
    return Activation(
        accounts=_as_list(args.get("accounts")),
        selected_account=args.get("selectedAccount"),
        acct_props=_as_dict(args.get("acctProps")),
        allowed_features=_as_dict(features),
        chart_periods=_as_dict(args.get("chartPeriods")),
        groups=_as_list(args.get("groups")),
        profiles=_as_list(args.get("profiles")),
        server_info=_as_dict(args.get("serverInfo")),
        session_id=args.get("sessionId"),
    )


def _status(data: Dict[str, Any]) -> Status:
    args = _args(data)
    return Status(
        authenticated=args.get("authenticated"),
        competing=args.get("competing"),
        connected=args.get("connected"),
        username=args.get("username"),
        message=args.get("message"),
        fail=args.get("fail"),
        server_name=args.get("serverName"),
        server_version=args.get("serverVersion"),
    )


def _system(data: Dict[str, Any]) -> System:
    # The gateway sends these at the top level; older builds nest them in args.
    args = _args(data)

    def pick(key: str) -> Any:
        return data[key] if key in data else args.get(key)

    return System(
        is_paper_trading=pick("isPaper"),
        is_financial_trader=pick("isFT"),
        success=pick("success"),
    )


def _args(data: Dict[str, Any]) -> Dict[str, Any]:
    return _as_dict(data.get("args"))


# Vendor payloads drift; a field of the wrong JSON type counts as absent.
def _as_dict(value: Any) -> Dict[str, Any]:
    return dict(value) if isinstance(value, dict) else {}


def _as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, list) else []


def _safe_float(value: Any) -> Optional[float]:
    try:
        if value is None or isinstance(value, bool):
            return None
        return float(value)
    except (TypeError, ValueError):
        return None


__all__ = [
    "decode_frame",
    "classify",
    "MARKET_DATA_PREFIX",
    "ORDER_UPDATE_TOPIC",
    "ORDER_UPDATE_PREFIX",
    "PNL_TOPIC",
    "ACTIVATION_TOPIC",
    "STATUS_TOPIC",
    "SYSTEM_TOPIC",
    "HEARTBEAT_MARKER",
]
