# =============================================================================
# BACKEND WAKE-UP
# =============================================================================
# The hosted backend sleeps when idle. Before critical calls, ping the health
# endpoint if nothing has succeeded for a while.

import asyncio
import time
from typing import Awaitable, Callable, Optional

import aiohttp

from ..config.settings import settings
from ..utils.logger import logger

WAKEUP_COOLDOWN_SECONDS = 30.0
COLD_START_THRESHOLD_SECONDS = 5 * 60.0
POST_WAKEUP_WAIT_SECONDS = 2.0


class BackendWakeup:
    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Awaitable] = asyncio.sleep):
        self.health_url = f"{(base_url or settings.API_BASE_URL).rstrip('/')}/auth/health"
        self.timeout = timeout or settings.HEALTH_TIMEOUT_SECONDS
        self._clock = clock
        self._sleep = sleep
        self.is_waking_up = False
        self.last_wakeup_attempt: Optional[float] = None
        self.last_successful_request = clock()

    def mark_active(self):
        self.last_successful_request = self._clock()

    def is_likely_cold(self) -> bool:
        return self._clock() - self.last_successful_request > COLD_START_THRESHOLD_SECONDS

    async def _ping(self) -> int:
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
            async with session.get(self.health_url) as response:
                return response.status

    async def wakeup(self) -> bool:
        """Ping the health endpoint; False when skipped or the backend did not answer 200"""
        if self.is_waking_up:
            logger.debug("Wake-up already in progress")
            return False

        now = self._clock()
        if self.last_wakeup_attempt is not None and now - self.last_wakeup_attempt < WAKEUP_COOLDOWN_SECONDS:
            logger.debug("Wake-up cooldown active, skipping")
            return False

        self.is_waking_up = True
        self.last_wakeup_attempt = now
        try:
            logger.info("⏰ Pinging backend health endpoint...")
            status = await self._ping()
            logger.info(f"Backend responded with {status} in {self._clock() - now:.2f}s")
            if status == 200:
                self.mark_active()
                return True
            return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"⚠️ Backend health check failed: {str(e)}")
            return False
        finally:
            self.is_waking_up = False

    async def ensure_awake(self):
        if self.is_likely_cold():
            logger.info("Backend likely cold, attempting wake-up...")
            await self.wakeup()
            await self._sleep(POST_WAKEUP_WAIT_SECONDS)
