import asyncio
import unittest

from src.stream.heartbeat import HeartbeatScheduler

from tests.fake_gateway import wait_for


class HeartbeatSchedulerTest(unittest.IsolatedAsyncioTestCase):
    async def test_enabled_scheduler_keeps_firing(self) -> None:
        sent = []
        scheduler = HeartbeatScheduler(lambda: sent.append("ech+hb"), interval_seconds=0.01)

        scheduler.start()
        await wait_for(lambda: len(sent) >= 3)
        await scheduler.stop()

        self.assertFalse(scheduler.running)
        self.assertGreaterEqual(scheduler.beats, 3)

    async def test_disabled_scheduler_never_schedules(self) -> None:
        sent = []
        scheduler = HeartbeatScheduler(lambda: sent.append("ech+hb"), interval_seconds=0.01, enabled=False)

        scheduler.start()
        await asyncio.sleep(0.05)

        self.assertFalse(scheduler.running)
        self.assertEqual([], sent)

    async def test_stop_cancels_pending_timer(self) -> None:
        sent = []
        scheduler = HeartbeatScheduler(lambda: sent.append("ech+hb"), interval_seconds=10.0)

        scheduler.start()
        self.assertTrue(scheduler.running)
        await scheduler.stop()
        await scheduler.stop()

        self.assertFalse(scheduler.running)
        self.assertEqual([], sent)

    async def test_send_failure_does_not_end_loop(self) -> None:
        calls = []

        def flaky_send() -> None:
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("queue unavailable")

        scheduler = HeartbeatScheduler(flaky_send, interval_seconds=0.01)
        scheduler.start()
        await wait_for(lambda: len(calls) >= 3)
        await scheduler.stop()

        self.assertGreaterEqual(scheduler.beats, 2)

    def test_rejects_non_positive_interval(self) -> None:
        with self.assertRaises(ValueError):
            HeartbeatScheduler(lambda: None, interval_seconds=0)


if __name__ == "__main__":
    unittest.main()
