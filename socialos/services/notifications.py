# =============================================================================
# IN-APP NOTIFICATIONS
# =============================================================================

import threading
from collections import deque
from typing import Callable, List, Optional

from ..models.post import Notification
from ..utils.logger import logger

MAX_NOTIFICATIONS = 50


class NotificationCenter:
    """Most recent notices from the background loops, newest first"""

    def __init__(self, max_items: int = MAX_NOTIFICATIONS):
        self._items = deque(maxlen=max_items)
        self._listeners: List[Callable[[Notification], None]] = []
        self._lock = threading.Lock()

    def add_listener(self, listener: Callable[[Notification], None]):
        self._listeners.append(listener)

    def add(self, kind: str, title: str, message: str, post_id: Optional[str] = None) -> Notification:
        notification = Notification(kind=kind, title=title, message=message, post_id=post_id)
        with self._lock:
            self._items.appendleft(notification)

        log = logger.error if kind == 'error' else logger.info
        log(f"🔔 {title}: {message}")
        for listener in self._listeners:
            listener(notification)
        return notification

    def all(self) -> List[Notification]:
        with self._lock:
            return list(self._items)

    def unread(self) -> List[Notification]:
        return [n for n in self.all() if not n.read]

    def mark_all_read(self):
        with self._lock:
            for notification in self._items:
                notification.read = True

    def clear(self):
        with self._lock:
            self._items.clear()
