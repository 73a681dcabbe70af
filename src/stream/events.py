"""Typed events decoded from gateway streaming frames.

Every inbound frame is classified into exactly one of the variants below. The
set is closed: consumers can branch on ``isinstance`` (or on the ``kind`` tag)
and know they have covered every case once :data:`Event` is exhausted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Union


@dataclass(frozen=True)
class MarketData:
    """Quote update for a single instrument.

    ``fields`` holds the vendor field codes (``"31"`` last, ``"84"`` bid, ...)
    exactly as received, minus the protocol metadata keys.
    """

    kind: ClassVar[str] = "market_data"

    instrument_id: Any
    topic: str
    fields: Dict[str, Any]
    timestamp_ms: int


@dataclass(frozen=True)
class OrderUpdate:
    """Order lifecycle notification, passed through untouched."""

    kind: ClassVar[str] = "order_update"

    topic: str
    raw_data: Dict[str, Any]
    timestamp_ms: int


@dataclass(frozen=True)
class PnLUpdate:
    """Account P&L for the first account reported in the frame."""

    kind: ClassVar[str] = "pnl_update"

    topic: str
    daily_pnl: Optional[float]
    unrealized_pnl: Optional[float]
    raw_account_data: Dict[str, Any]
    timestamp_ms: int


@dataclass(frozen=True)
class Activation:
    """Session activation sent by the gateway right after the socket opens."""

    kind: ClassVar[str] = "activation"

    accounts: List[str] = field(default_factory=list)
    selected_account: Optional[str] = None
    acct_props: Dict[str, Any] = field(default_factory=dict)
    allowed_features: Dict[str, Any] = field(default_factory=dict)
    chart_periods: Dict[str, Any] = field(default_factory=dict)
    groups: List[Any] = field(default_factory=list)
    profiles: List[Any] = field(default_factory=list)
    server_info: Dict[str, Any] = field(default_factory=dict)
    session_id: Optional[str] = None


@dataclass(frozen=True)
class Status:
    """Authentication status of the brokerage session."""

    kind: ClassVar[str] = "status"

    authenticated: Optional[bool] = None
    competing: Optional[bool] = None
    connected: Optional[bool] = None
    username: Optional[str] = None
    message: Optional[str] = None
    fail: Optional[str] = None
    server_name: Optional[str] = None
    server_version: Optional[str] = None


@dataclass(frozen=True)
class System:
    """System notice carrying the trading mode of the logged-in user."""

    kind: ClassVar[str] = "system"

    is_paper_trading: Optional[bool] = None
    is_financial_trader: Optional[bool] = None
    success: Optional[str] = None


@dataclass(frozen=True)
class Heartbeat:
    kind: ClassVar[str] = "heartbeat"

    raw: Dict[str, Any]


@dataclass(frozen=True)
class Unknown:
    """Frame with a topic this client does not recognize."""

    kind: ClassVar[str] = "unknown"

    raw: Dict[str, Any]


@dataclass(frozen=True)
class Raw:
    """Frame without any topic key."""

    kind: ClassVar[str] = "raw"

    raw: Any


Event = Union[
    MarketData,
    OrderUpdate,
    PnLUpdate,
    Activation,
    Status,
    System,
    Heartbeat,
    Unknown,
    Raw,
]


__all__ = [
    "Event",
    "MarketData",
    "OrderUpdate",
    "PnLUpdate",
    "Activation",
    "Status",
    "System",
    "Heartbeat",
    "Unknown",
    "Raw",
]
