"""Config loading for the streaming client and its dashboard."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


class ConfigError(ValueError):
    """Configuration file is unreadable or has the wrong shape."""


@dataclass
class StreamConfig:
    host: str = "localhost"
    port: int = 5000
    path: str = "/v1/api/ws"
    scheme: str = "wss"
    heartbeat_enabled: bool = True
    heartbeat_interval_seconds: float = 10.0
    # None lets the client decide: skip verification for loopback only.
    verify_tls: Optional[bool] = None
    user_agent: str = "ibkr-stream-python/0.1"

    @property
    def url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}{self.path}"


@dataclass
class GatewayConfig:
    """REST side of the gateway, used only to fetch the stream session token."""

    enable: bool = True
    base_path: str = "/v1/api"
    timeout_seconds: float = 10.0


@dataclass
class BackoffConfig:
    """Configuration for reconnection backoff."""

    initial: float = 1.0
    maximum: float = 60.0
    factor: float = 2.0
    jitter: float = 0.25


@dataclass
class MarketDataSubscriptionConfig:
    conids: List[int]
    fields: List[str]
    tempo_ms: int = 1000
    snapshot: bool = True


@dataclass
class SubscriptionsConfig:
    market_data: List[MarketDataSubscriptionConfig] = field(default_factory=list)
    order_updates: bool = False
    pnl: bool = False


@dataclass
class DashboardConfig:
    host: str = "127.0.0.1"
    port: int = 8000
    enable: bool = False


@dataclass
class MetricsConfig:
    emit_textfile: bool = False
    metrics_file: str = "var/metrics.prom"


@dataclass
class AppConfig:
    stream: StreamConfig = field(default_factory=StreamConfig)
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    backoff: BackoffConfig = field(default_factory=BackoffConfig)
    subscriptions: SubscriptionsConfig = field(default_factory=SubscriptionsConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)

    @property
    def gateway_base_url(self) -> str:
        scheme = "https" if self.stream.scheme == "wss" else "http"
        return f"{scheme}://{self.stream.host}:{self.stream.port}{self.gateway.base_path}"


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load YAML config; a missing file yields defaults plus env overrides."""

    raw: Dict[str, Any] = {}
    if path is not None:
        resolved = Path(path).expanduser().resolve()
        if resolved.exists():
            try:
                with resolved.open("r", encoding="utf-8") as f:
                    raw = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigError(f"invalid YAML in {resolved}: {exc}") from exc
            if not isinstance(raw, dict):
                raise ConfigError(f"{resolved} must contain a mapping at the top level")
    return _apply_env_overrides(parse_config(raw))


def parse_config(raw: Dict[str, Any]) -> AppConfig:
    stream = raw.get("stream") or {}
    gateway = raw.get("gateway") or {}
    backoff = raw.get("backoff") or {}
    subs = raw.get("subscriptions") or {}
    dashboard = raw.get("dashboard") or {}
    metrics = raw.get("metrics") or {}

    try:
        market_data = [
            MarketDataSubscriptionConfig(
                conids=[int(conid) for conid in entry["conids"]],
                fields=[str(code) for code in entry["fields"]],
                tempo_ms=int(entry.get("tempo_ms", 1000)),
                snapshot=bool(entry.get("snapshot", True)),
            )
            for entry in subs.get("market_data", [])
        ]
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigError(f"invalid subscriptions.market_data entry: {exc}") from exc

    return AppConfig(
        stream=StreamConfig(
            host=stream.get("host", "localhost"),
            port=int(stream.get("port", 5000)),
            path=stream.get("path", "/v1/api/ws"),
            scheme=stream.get("scheme", "wss"),
            heartbeat_enabled=bool(stream.get("heartbeat_enabled", True)),
            heartbeat_interval_seconds=float(stream.get("heartbeat_interval_seconds", 10.0)),
            verify_tls=stream.get("verify_tls"),
            user_agent=stream.get("user_agent", "ibkr-stream-python/0.1"),
        ),
        gateway=GatewayConfig(
            enable=bool(gateway.get("enable", True)),
            base_path=gateway.get("base_path", "/v1/api"),
            timeout_seconds=float(gateway.get("timeout_seconds", 10.0)),
        ),
        backoff=BackoffConfig(
            initial=float(backoff.get("initial", BackoffConfig.initial)),
            maximum=float(backoff.get("maximum", BackoffConfig.maximum)),
            factor=float(backoff.get("factor", BackoffConfig.factor)),
            jitter=float(backoff.get("jitter", BackoffConfig.jitter)),
        ),
        subscriptions=SubscriptionsConfig(
            market_data=market_data,
            order_updates=bool(subs.get("order_updates", False)),
            pnl=bool(subs.get("pnl", False)),
        ),
        dashboard=DashboardConfig(
            host=dashboard.get("host", "127.0.0.1"),
            port=int(dashboard.get("port", 8000)),
            enable=bool(dashboard.get("enable", False)),
        ),
        metrics=MetricsConfig(
            emit_textfile=bool(metrics.get("emit_textfile", False)),
            metrics_file=metrics.get("metrics_file", "var/metrics.prom"),
        ),
    )


def _apply_env_overrides(config: AppConfig) -> AppConfig:
    host = os.getenv("IBKR_GATEWAY_HOST")
    port = os.getenv("IBKR_GATEWAY_PORT")
    if host:
        config.stream.host = host
    if port:
        try:
            config.stream.port = int(port)
        except ValueError as exc:
            raise ConfigError(f"IBKR_GATEWAY_PORT must be an integer, got {port!r}") from exc
    return config


__all__ = [
    "load_config",
    "parse_config",
    "ConfigError",
    "AppConfig",
    "StreamConfig",
    "GatewayConfig",
    "BackoffConfig",
    "SubscriptionsConfig",
    "MarketDataSubscriptionConfig",
    "DashboardConfig",
    "MetricsConfig",
]
