"""Streaming session client for the gateway WebSocket protocol."""

from .codec import decode_frame
from .connection import ConnectionState, DisconnectInfo, StreamConnection
from .errors import MalformedFrameError, StreamError
from .events import (
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
from .handler import BaseEventHandler, CallbackEventHandler, EventHandler, LoggingEventHandler
from .heartbeat import HeartbeatScheduler
from .runner import ReconnectingStream
from .session import AuthState, SessionState, SystemState, apply_event
from .subscriptions import MarketDataSubscription, RegistrySnapshot, SubscriptionRegistry

__all__ = [
    "decode_frame",
    "apply_event",
    "StreamConnection",
    "ConnectionState",
    "DisconnectInfo",
    "ReconnectingStream",
    "HeartbeatScheduler",
    "SubscriptionRegistry",
    "RegistrySnapshot",
    "MarketDataSubscription",
    "SessionState",
    "AuthState",
    "SystemState",
    "EventHandler",
    "BaseEventHandler",
    "CallbackEventHandler",
    "LoggingEventHandler",
    "StreamError",
    "MalformedFrameError",
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
