import asyncio
import logging
from typing import Awaitable, Callable, Optional

log = logging.getLogger(__name__)


class Ticker:
    """Runs ``callback`` every ``interval`` seconds on the running loop.

    Exceptions raised by a tick are logged and the next tick still fires.
    ``interval`` is re-read before every sleep, so it may be changed while
    the ticker is running.
    """

    def __init__(self, interval: float, callback: Callable[[], Awaitable[None]], name: str = "ticker",
                 initial_delay: Optional[float] = None):
        self.interval = interval
        self.callback = callback
        self.name = name
        self.initial_delay = interval if initial_delay is None else initial_delay
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=self.name)

    def stop(self):
        task, self._task = self._task, None
        if task and not task.done():
            task.cancel()

    async def aclose(self):
        task = self._task
        self.stop()
        if task and task is not asyncio.current_task():
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _run(self):
        await asyncio.sleep(self.initial_delay)
        while True:
            try:
                await self.callback()
            except Exception:
                log.exception("%s: tick failed", self.name)
            await asyncio.sleep(self.interval)
