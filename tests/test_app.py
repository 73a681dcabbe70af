import asyncio
import json
import logging
import unittest

from src.app import apply_cli_overrides, parse_args, run_client
from src.infra.config import AppConfig, GatewayConfig, StreamConfig
from src.main import StreamApp, build_gateway_client
from src.stream.handler import BaseEventHandler

from tests.fake_gateway import FakeConnector, FakeWebSocket, wait_for


class KindsHandler(BaseEventHandler[list]):
    def handle_event(self, event, state):
        return (state or []) + [event.kind]


class CliOverridesTest(unittest.TestCase):
    def test_flags_extend_loaded_config(self) -> None:
        args = parse_args(["--conid", "8314", "--conid", "265598", "--fields", "31, 84", "--pnl", "--no-heartbeat"])

        cfg = apply_cli_overrides(AppConfig(), args)

        entry = cfg.subscriptions.market_data[0]
        self.assertEqual([8314, 265598], entry.conids)
        self.assertEqual(["31", "84"], entry.fields)
        self.assertTrue(cfg.subscriptions.pnl)
        self.assertFalse(cfg.subscriptions.order_updates)
        self.assertFalse(cfg.stream.heartbeat_enabled)
        self.assertFalse(cfg.dashboard.enable)

    def test_no_flags_leave_config_untouched(self) -> None:
        cfg = apply_cli_overrides(AppConfig(), parse_args([]))

        self.assertEqual(AppConfig(), cfg)


class BuildGatewayClientTest(unittest.TestCase):
    def test_disabled_gateway(self) -> None:
        config = AppConfig(gateway=GatewayConfig(enable=False))

        self.assertIsNone(build_gateway_client(config, logging.getLogger("tests")))

    def test_local_gateway_skips_certificate_checks(self) -> None:
        client = build_gateway_client(AppConfig(), logging.getLogger("tests"))

        self.assertEqual("https://localhost:5000/v1/api", client.base_url)
        self.assertFalse(client.verify)


class StreamAppTest(unittest.IsolatedAsyncioTestCase):
    async def test_configured_subscriptions_are_sent_on_connect(self) -> None:
        args = parse_args(["--conid", "8314", "--fields", "31", "--orders", "--no-heartbeat"])
        cfg = apply_cli_overrides(
            AppConfig(stream=StreamConfig(), gateway=GatewayConfig(enable=False)), args
        )
        ws = FakeWebSocket([json.dumps({"topic": "sor", "orderId": 1})], hold_open=True)
        app = StreamApp(cfg, handler=KindsHandler(), connector=FakeConnector(ws))

        task = asyncio.create_task(app.run())
        await wait_for(lambda: len(ws.sent) == 2 and app.stream.user_state == ["order_update"])
        await app.stop()
        await task

        self.assertEqual(['smd+8314+{"fields":["31"],"tempo":1000,"snapshot":true}', "sor+{}"], ws.sent)
        self.assertEqual(1, app.metrics.counter("events_order_update"))


class CrashingStreamApp:
    def __init__(self) -> None:
        self.stopped = False

    async def run(self) -> None:
        await asyncio.sleep(0)
        raise RuntimeError("stream task died")

    async def stop(self) -> None:
        self.stopped = True


class RunClientTest(unittest.IsolatedAsyncioTestCase):
    async def test_failed_stream_task_ends_client(self) -> None:
        app = CrashingStreamApp()

        with self.assertRaisesRegex(RuntimeError, "stream task died"):
            await asyncio.wait_for(run_client(AppConfig(), app=app), timeout=1.0)

        self.assertTrue(app.stopped)


if __name__ == "__main__":
    unittest.main()
