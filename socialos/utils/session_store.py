# =============================================================================
# SESSION-SCOPED KEY/VALUE STORE
# =============================================================================
# Holds the few markers a connect flow needs across a redirect: the key of
# the last processed callback and the last platform a connect was attempted
# for. Kept in memory; optionally mirrored to a JSON file.

import json
from pathlib import Path
from typing import Any, Dict, Optional

import aiofiles

from .logger import logger

LAST_PROCESSED_CALLBACK = 'last_processed_oauth_callback'
ATTEMPTED_OAUTH_PLATFORM = 'attempted_oauth_platform'


class SessionStore:
    def __init__(self, path: Optional[str] = None):
        self.path = Path(path) if path else None
        self._data: Dict[str, Any] = {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any):
        self._data[key] = value

    def remove(self, key: str):
        self._data.pop(key, None)

    def clear(self):
        self._data.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._data

    async def load(self):
        """Load markers saved by a previous process; a missing or corrupt file starts empty"""
        if not self.path or not self.path.exists():
            return
        try:
            async with aiofiles.open(self.path, 'r') as f:
                content = await f.read()
            data = json.loads(content) if content.strip() else {}
            if isinstance(data, dict):
                self._data.update(data)
        except Exception as e:
            logger.error(f"Error loading session store {self.path}: {str(e)}")

    async def save(self):
        if not self.path:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(self.path, 'w') as f:
                await f.write(json.dumps(self._data, indent=2))
        except Exception as e:
            logger.error(f"Error saving session store {self.path}: {str(e)}")
