# =============================================================================
# FIXED-INTERVAL POLLING LOOP
# =============================================================================
# Shared by the scheduled-post publisher and the video-status poller. Ticks
# are independent: a failing tick is logged and the next one runs on time.

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

from .logger import logger
from .structured_logger import structured_logger

TickFunction = Callable[[], Awaitable[Optional[Dict[str, Any]]]]


class PeriodicPoller:
    def __init__(self, name: str, interval: float, tick: TickFunction, run_immediately: bool = True):
        self.name = name
        self.interval = interval
        self._tick = tick
        self.run_immediately = run_immediately
        self.running = False
        self.tick_count = 0
        self.failed_ticks = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Start the loop on the running event loop; a second start is a no-op"""
        if self.is_running:
            return self._task
        self.running = True
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"▶️ {self.name} started (every {self.interval}s)")
        return self._task

    async def stop(self):
        """Stop the loop and wait for the current tick to unwind"""
        self.running = False
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info(f"🛑 {self.name} stopped")

    async def run_once(self) -> Optional[Dict[str, Any]]:
        """Run a single tick; exceptions are logged, never raised"""
        loop = asyncio.get_running_loop()
        started = loop.time()
        self.tick_count += 1
        try:
            summary = await self._tick()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failed_ticks += 1
            logger.error(f"❌ {self.name} tick failed: {str(e)}")
            return None

        summary = summary or {}
        structured_logger.log_poll_tick(
            self.name,
            items=summary.get('items', 0),
            failures=summary.get('failures', 0),
            duration_ms=(loop.time() - started) * 1000
        )
        return summary

    async def _run(self):
        loop = asyncio.get_running_loop()
        if not self.run_immediately:
            await asyncio.sleep(self.interval)

        while self.running:
            cycle_start = loop.time()
            await self.run_once()

            cycle_duration = loop.time() - cycle_start
            sleep_time = max(0, self.interval - cycle_duration)
            if sleep_time > 0:
                await asyncio.sleep(sleep_time)
            else:
                logger.warning(f"⚠️ {self.name} tick took {cycle_duration:.1f}s, longer than {self.interval}s interval")
