# =============================================================================
# TIMER, SESSION STORE, TOKEN STORE AND BACKGROUND LOOP TESTS
# =============================================================================

import asyncio
import json
import pytest
import sys
import os
from unittest.mock import AsyncMock, MagicMock
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from socialos.utils.async_runner import AsyncRunner
from socialos.utils.periodic import PeriodicPoller
from socialos.utils.session_store import LAST_PROCESSED_CALLBACK, SessionStore
from socialos.utils.timers import TimerRegistry
from socialos.utils.token_store import TokenStore


class TestTimerRegistry:
    @pytest.mark.asyncio
    async def test_fires_and_forgets(self):
        timers = TimerRegistry()
        callback = MagicMock()

        timers.schedule('twitter', 'timeout', 0.01, callback)
        assert timers.active('twitter') == ['timeout']

        await asyncio.sleep(0.03)
        callback.assert_called_once()
        assert not timers.has_active('twitter')

    @pytest.mark.asyncio
    async def test_cancel_owner(self):
        timers = TimerRegistry()
        callback = MagicMock()
        timers.schedule('twitter', 'warning', 0.01, callback)
        timers.schedule('twitter', 'timeout', 0.02, callback)
        timers.schedule('linkedin', 'timeout', 0.02, callback)

        assert timers.cancel('twitter') == 2
        await asyncio.sleep(0.04)

        assert callback.call_count == 1
        assert timers.cancel('twitter') == 0

    @pytest.mark.asyncio
    async def test_schedule_replaces_same_name(self):
        timers = TimerRegistry()
        first, second = MagicMock(), MagicMock()
        timers.schedule('youtube', 'timeout', 0.01, first)
        timers.schedule('youtube', 'timeout', 0.01, second)

        await asyncio.sleep(0.03)
        first.assert_not_called()
        second.assert_called_once()

    @pytest.mark.asyncio
    async def test_cancel_all(self):
        timers = TimerRegistry()
        timers.schedule('a', 'x', 1, MagicMock())
        timers.schedule('b', 'y', 1, MagicMock())
        assert timers.cancel_all() == 2
        assert not timers.has_active('a')


class TestSessionStore:
    def test_in_memory(self):
        store = SessionStore()
        store.set(LAST_PROCESSED_CALLBACK, 'twitter_')
        assert LAST_PROCESSED_CALLBACK in store
        store.remove(LAST_PROCESSED_CALLBACK)
        store.remove(LAST_PROCESSED_CALLBACK)
        assert store.get(LAST_PROCESSED_CALLBACK) is None

    @pytest.mark.asyncio
    async def test_save_and_load(self, tmp_path):
        path = tmp_path / 'state' / 'session.json'
        store = SessionStore(str(path))
        store.set(LAST_PROCESSED_CALLBACK, 'linkedin_')
        await store.save()

        assert json.loads(path.read_text()) == {LAST_PROCESSED_CALLBACK: 'linkedin_'}

        restored = SessionStore(str(path))
        await restored.load()
        assert restored.get(LAST_PROCESSED_CALLBACK) == 'linkedin_'

    @pytest.mark.asyncio
    async def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / 'session.json'
        path.write_text('{not json')
        store = SessionStore(str(path))
        await store.load()
        assert store.get(LAST_PROCESSED_CALLBACK) is None

    @pytest.mark.asyncio
    async def test_save_without_path(self):
        await SessionStore().save()


class TestTokenStore:
    def test_update_keeps_refresh_token(self):
        tokens = TokenStore('a1', 'r1')
        tokens.update('a2')
        assert tokens.access_token == 'a2'
        assert tokens.refresh_token == 'r1'

    def test_clear(self):
        tokens = TokenStore('a1', 'r1')
        tokens.clear()
        assert not tokens.is_authenticated

    def test_from_settings(self):
        settings = MagicMock(AUTH_TOKEN='a', REFRESH_TOKEN='r')
        tokens = TokenStore.from_settings(settings)
        assert (tokens.access_token, tokens.refresh_token) == ('a', 'r')


class TestPeriodicPoller:
    @pytest.mark.asyncio
    async def test_run_once_returns_summary(self):
        tick = AsyncMock(return_value={'items': 2, 'failures': 0})
        poller = PeriodicPoller('test', 60, tick)
        assert await poller.run_once() == {'items': 2, 'failures': 0}
        assert poller.tick_count == 1

    @pytest.mark.asyncio
    async def test_failed_tick_is_contained(self):
        poller = PeriodicPoller('test', 60, AsyncMock(side_effect=RuntimeError("backend down")))
        assert await poller.run_once() is None
        assert poller.failed_ticks == 1

    @pytest.mark.asyncio
    async def test_loop_keeps_running_after_failure(self):
        calls = []

        async def tick():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return {'items': 0}

        poller = PeriodicPoller('test', 0.01, tick)

        poller.start()
        assert poller.start() is poller._task
        await asyncio.sleep(0.05)
        await poller.stop()

        assert len(calls) >= 2
        assert poller.failed_ticks == 1
        assert not poller.is_running

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        await PeriodicPoller('test', 1, AsyncMock()).stop()


class TestAsyncRunner:
    def test_run_coroutine_from_thread(self):
        runner = AsyncRunner()

        async def add(a, b):
            await asyncio.sleep(0)
            return a + b

        try:
            assert runner.run(add(1, 2), timeout=5) == 3
            assert runner.is_running
        finally:
            runner.stop()
        assert not runner.is_running
