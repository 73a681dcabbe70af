"""Entry point for streaming gateway events and logging them."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Optional

from src.gateway.session_client import GatewaySessionClient
from src.infra.config import AppConfig, SubscriptionsConfig, load_config
from src.infra.logging import configure_logging
from src.infra.metrics import MetricsSink
from src.stream.handler import EventHandler, LoggingEventHandler
from src.stream.runner import ReconnectingStream
from src.stream.transport import Connector, is_local_target

DEFAULT_CONFIG_PATH = Path(os.getenv("CONFIG_PATH", "config/settings.yaml"))


def build_gateway_client(config: AppConfig, logger: logging.Logger) -> Optional[GatewaySessionClient]:
    """REST client used for the session token, or None when disabled."""

    if not config.gateway.enable:
        return None
    verify = config.stream.verify_tls
    if verify is None:
        verify = not is_local_target(config.gateway_base_url)
    return GatewaySessionClient(
        config.gateway_base_url,
        verify=verify,
        timeout=config.gateway.timeout_seconds,
        logger=logger.getChild("gateway"),
    )


def build_stream(
    config: AppConfig,
    handler: EventHandler[Any],
    logger: logging.Logger,
    initial_state: Any = None,
    metrics: Optional[MetricsSink] = None,
    connector: Optional[Connector] = None,
) -> ReconnectingStream[Any]:
    """Instantiate the reconnecting stream from configuration."""

    return ReconnectingStream(
        config.stream,
        handler,
        initial_state,
        backoff=config.backoff,
        gateway=build_gateway_client(config, logger),
        metrics=metrics,
        connector=connector,
        logger=logger.getChild("stream"),
    )


def apply_subscriptions(stream: ReconnectingStream[Any], subscriptions: SubscriptionsConfig) -> None:
    for entry in subscriptions.market_data:
        stream.subscribe_market_data(entry.conids, entry.fields, entry.tempo_ms, entry.snapshot)
    if subscriptions.order_updates:
        stream.subscribe_order_updates()
    if subscriptions.pnl:
        stream.subscribe_pnl()


class StreamApp:
    """Wires configuration, metrics and the reconnecting stream together."""

    def __init__(
        self,
        config: AppConfig,
        handler: Optional[EventHandler[Any]] = None,
        connector: Optional[Connector] = None,
    ) -> None:
        self.logger = logging.getLogger("ibkr_stream.app")
        self.config = config
        self.metrics = MetricsSink(
            metrics_file=Path(config.metrics.metrics_file),
            emit_textfile=config.metrics.emit_textfile,
        )
        self.stream = build_stream(
            config,
            handler or LoggingEventHandler(),
            self.logger,
            metrics=self.metrics,
            connector=connector,
        )
        apply_subscriptions(self.stream, config.subscriptions)

    async def run(self) -> None:
        if not (self.config.subscriptions.market_data or self.config.subscriptions.order_updates
                or self.config.subscriptions.pnl):
            self.logger.warning("No subscriptions configured; only session events will arrive.")
        await self.stream.run()

    async def stop(self) -> None:
        await self.stream.stop()


def main() -> None:
    configure_logging()
    config = load_config(DEFAULT_CONFIG_PATH)
    app = StreamApp(config)
    asyncio.run(app.run())


if __name__ == "__main__":
    main()
