import asyncio
import unittest

from twitch_announcer.orchestration.ticker import Ticker


class TickerTests(unittest.IsolatedAsyncioTestCase):
    async def test_ticks_repeatedly_and_survives_errors(self) -> None:
        calls = []
        done = asyncio.Event()

        async def _tick():
            calls.append(len(calls))
            if len(calls) == 1:
                raise RuntimeError("first tick fails")
            if len(calls) >= 3:
                done.set()

        ticker = Ticker(0.01, _tick, name="test", initial_delay=0)
        ticker.start()
        await asyncio.wait_for(done.wait(), timeout=2)
        await ticker.aclose()

        self.assertGreaterEqual(len(calls), 3)
        self.assertFalse(ticker.running)

    async def test_stop_prevents_further_ticks(self) -> None:
        calls = []

        async def _tick():
            calls.append(1)

        ticker = Ticker(10, _tick, name="test")
        ticker.start()
        self.assertTrue(ticker.running)
        ticker.stop()
        await asyncio.sleep(0)

        self.assertFalse(ticker.running)
        self.assertEqual(calls, [])

    async def test_start_is_idempotent(self) -> None:
        async def _tick():
            pass

        ticker = Ticker(10, _tick)
        ticker.start()
        task = ticker._task
        ticker.start()
        self.assertIs(ticker._task, task)
        await ticker.aclose()


if __name__ == "__main__":
    unittest.main()
