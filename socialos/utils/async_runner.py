# =============================================================================
# BACKGROUND EVENT LOOP FOR SYNCHRONOUS CALLERS
# =============================================================================
# Flask handles requests on plain threads; the connection manager and its
# timers live on one asyncio loop running in a daemon thread.

import asyncio
import threading
from typing import Any, Awaitable, Optional

from .logger import logger


class AsyncRunner:
    def __init__(self, name: str = 'socialos-loop'):
        self.name = name
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> asyncio.AbstractEventLoop:
        if self.is_running:
            return self.loop
        self.loop = asyncio.new_event_loop()
        self._ready.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        self._ready.wait()
        logger.debug(f"Background loop {self.name} started")
        return self.loop

    def _run(self):
        asyncio.set_event_loop(self.loop)
        self.loop.call_soon(self._ready.set)
        self.loop.run_forever()

    def run(self, coro: Awaitable[Any], timeout: Optional[float] = None) -> Any:
        """Run ``coro`` on the background loop and block for its result"""
        if not self.is_running:
            self.start()
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return future.result(timeout)

    def stop(self):
        if not self.is_running:
            return
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=5)
        self.loop.close()
        self._thread = None
        logger.debug(f"Background loop {self.name} stopped")
