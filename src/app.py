"""Command-line runner: gateway stream plus optional status dashboard."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from typing import List, Optional

from src.dashboard.app import create_dashboard_app, run_dashboard
from src.infra.config import AppConfig, MarketDataSubscriptionConfig, load_config
from src.infra.logging import configure_logging
from src.main import DEFAULT_CONFIG_PATH, StreamApp


def apply_cli_overrides(cfg: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Fold command-line flags into the loaded configuration."""

    if args.conid:
        fields = [code.strip() for code in args.fields.split(",") if code.strip()]
        cfg.subscriptions.market_data.append(
            MarketDataSubscriptionConfig(conids=list(args.conid), fields=fields, tempo_ms=args.tempo)
        )
    if args.orders:
        cfg.subscriptions.order_updates = True
    if args.pnl:
        cfg.subscriptions.pnl = True
    if args.no_heartbeat:
        cfg.stream.heartbeat_enabled = False
    if args.dashboard:
        cfg.dashboard.enable = True
    return cfg


async def run_client(cfg: AppConfig, app: Optional[StreamApp] = None) -> None:
    """Run until a signal arrives or a task ends; a failed task's error is re-raised."""

    logger = logging.getLogger(__name__)
    app = app or StreamApp(cfg)
    stop_event = asyncio.Event()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            asyncio.get_running_loop().add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows/limited environments
            pass

    tasks = [asyncio.create_task(app.run(), name="stream")]
    if cfg.dashboard.enable:
        dashboard = create_dashboard_app(app.stream, app.metrics)
        tasks.append(
            asyncio.create_task(run_dashboard(dashboard, cfg.dashboard.host, cfg.dashboard.port), name="dashboard")
        )
        logger.info("Dashboard listening on %s:%s", cfg.dashboard.host, cfg.dashboard.port)

    stop_task = asyncio.create_task(stop_event.wait(), name="stop")
    done, _ = await asyncio.wait({stop_task, *tasks}, return_when=asyncio.FIRST_COMPLETED)
    failed = next((task for task in tasks if task in done and not task.cancelled() and task.exception()), None)
    if failed is not None:
        logger.error(
            "Task %s failed; shutting down", failed.get_name(),
            exc_info=failed.exception(), extra={"event": "task_failed"},
        )
    else:
        logger.info("Shutting down stream client")

    await app.stop()
    for task in (stop_task, *tasks):
        task.cancel()
    await asyncio.gather(stop_task, *tasks, return_exceptions=True)
    if failed is not None:
        raise failed.exception()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Gateway streaming client")
    parser.add_argument("--config", default=str(DEFAULT_CONFIG_PATH))
    parser.add_argument("--conid", type=int, action="append", help="Instrument id to stream (repeatable)")
    parser.add_argument("--fields", default="31,83,84,86", help="Comma separated market data field codes")
    parser.add_argument("--tempo", type=int, default=1000, help="Market data update interval in ms")
    parser.add_argument("--orders", action="store_true", help="Subscribe to order updates")
    parser.add_argument("--pnl", action="store_true", help="Subscribe to P&L updates")
    parser.add_argument("--no-heartbeat", action="store_true", help="Disable the automatic keepalive")
    parser.add_argument("--dashboard", action="store_true", help="Serve the status dashboard")
    return parser.parse_args(argv)


def main() -> None:
    args = parse_args()
    configure_logging()
    cfg = apply_cli_overrides(load_config(args.config), args)
    asyncio.run(run_client(cfg))


if __name__ == "__main__":
    main()
