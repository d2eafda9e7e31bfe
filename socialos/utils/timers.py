# =============================================================================
# CANCELLABLE PER-PLATFORM TIMERS
# =============================================================================
# Each connect attempt owns a warning timer and a hard-timeout timer. They are
# registered here under the platform so every exit path can cancel them.

import asyncio
from typing import Callable, Dict, Hashable, List, Optional

from .logger import logger


class TimerRegistry:
    """Named asyncio timer handles grouped by an owner key (the platform)"""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._handles: Dict[Hashable, Dict[str, asyncio.TimerHandle]] = {}

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule(self, owner: Hashable, name: str, delay: float, callback: Callable[[], None]):
        """Run ``callback`` after ``delay`` seconds, replacing any timer with the same name"""
        self.cancel(owner, name)

        def fire():
            self._forget(owner, name)
            callback()

        handle = self._get_loop().call_later(max(0.0, delay), fire)
        self._handles.setdefault(owner, {})[name] = handle
        return handle

    def cancel(self, owner: Hashable, name: Optional[str] = None) -> int:
        """Cancel one named timer, or all of the owner's timers; returns how many were live"""
        timers = self._handles.get(owner)
        if not timers:
            return 0

        names = [name] if name is not None else list(timers)
        cancelled = 0
        for timer_name in names:
            handle = timers.pop(timer_name, None)
            if handle is not None:
                handle.cancel()
                cancelled += 1

        if not timers:
            self._handles.pop(owner, None)
        if cancelled:
            logger.debug(f"Cancelled {cancelled} timer(s) for {owner}")
        return cancelled

    def cancel_all(self) -> int:
        return sum(self.cancel(owner) for owner in list(self._handles))

    def active(self, owner: Hashable) -> List[str]:
        return sorted(self._handles.get(owner, {}))

    def has_active(self, owner: Hashable) -> bool:
        return bool(self._handles.get(owner))

    def _forget(self, owner, name):
        timers = self._handles.get(owner)
        if timers is not None:
            timers.pop(name, None)
            if not timers:
                self._handles.pop(owner, None)
