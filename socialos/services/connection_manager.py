# =============================================================================
# PLATFORM CONNECTION MANAGER
# =============================================================================
# Drives connect / callback / reconcile / disconnect for every platform of a
# workspace. The web shell and the CLI are thin views over one instance.
#
# Flow:
#   begin_connect   -> authorizing (timers armed, browser sent to consent page)
#   handle_callback -> reconciling (poll status until the backend agrees)
#                   -> connected | idle | error
# =============================================================================

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Set, Union

from .callback_interpreter import CallbackParams, parse_callback_params
from .platform_service import PlatformService
from ..exceptions import (
    APIError,
    SocialOSError,
    ValidationError,
    WorkspaceRequiredError,
    ConnectionTimeoutError,
)
from ..models.connection import ConnectionEvent, ConnectionPhase, ConnectionStateMachine
from ..models.platform import (
    PLATFORM_TIMEOUTS,
    TIMEOUT_WARNING_LEAD,
    ConnectionStatus,
    Platform,
    build_status_map,
    is_platform_connected,
)
from ..utils.error_mapper import detect_platform_from_error, is_ambiguous_error, map_error_code
from ..utils.logger import logger
from ..utils.retry import BackoffSchedule, PollResult, poll_until
from ..utils.session_store import ATTEMPTED_OAUTH_PLATFORM, LAST_PROCESSED_CALLBACK, SessionStore
from ..utils.structured_logger import structured_logger
from ..utils.timers import TimerRegistry

# Backend credential writes lag the redirect; poll this long before giving up
RECONCILE_SCHEDULE = BackoffSchedule.fixed([1.5, 1.0, 2.0, 3.0], max_attempts=4)
# csrf_check_failed may still have saved credentials; about 6s of checking
CSRF_VERIFY_SCHEDULE = BackoffSchedule.fixed([1.0, 2.0, 3.0], max_attempts=3)

RERUN_GUARD_SECONDS = 0.5

# Platform blamed for errors that name none and follow no remembered attempt
FALLBACK_ERROR_PLATFORM = Platform.TWITTER

Navigator = Callable[[str], Any]


@dataclass
class ConnectResult:
    platform: Platform
    authorization_url: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.authorization_url is not None


@dataclass
class CallbackOutcome:
    """What handle_callback decided; ``task`` is the background reconciliation, if any"""
    action: str  # 'none', 'duplicate', 'reconcile', 'verify', 'error', 'ignored'
    params: CallbackParams
    platform: Optional[Platform] = None
    error: Optional[str] = None
    task: Optional[asyncio.Task] = None


def error_message_for(exc: BaseException, default: str = 'Connection failed') -> str:
    if isinstance(exc, APIError):
        return exc.detail or default
    if isinstance(exc, SocialOSError):
        return exc.message or default
    return str(exc) or default


class ConnectionManager:
    def __init__(
        self,
        platform_service: PlatformService,
        workspace_id: Optional[str] = None,
        session_store: Optional[SessionStore] = None,
        navigator: Optional[Navigator] = None,
        timeouts: Optional[Dict[Platform, float]] = None,
        warning_lead: float = TIMEOUT_WARNING_LEAD,
        reconcile_schedule: BackoffSchedule = RECONCILE_SCHEDULE,
        verify_schedule: BackoffSchedule = CSRF_VERIFY_SCHEDULE,
        wakeup=None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rerun_guard_seconds: float = RERUN_GUARD_SECONDS,
    ):
        self.platform_service = platform_service
        self.workspace_id = workspace_id
        self.session = session_store or SessionStore()
        self.navigator = navigator
        self.timeouts = dict(timeouts or PLATFORM_TIMEOUTS)
        self.warning_lead = warning_lead
        self.reconcile_schedule = reconcile_schedule
        self.verify_schedule = verify_schedule
        self.wakeup = wakeup
        self._sleep = sleep
        self._clock = clock
        self.rerun_guard_seconds = rerun_guard_seconds

        self.machine = ConnectionStateMachine()
        self.machine.add_listener(self._log_transition)
        self.timers = TimerRegistry()
        self.statuses: Dict[Platform, ConnectionStatus] = build_status_map([])
        self.is_loading = False
        self._last_load: Optional[float] = None
        self._tasks: Dict[Any, asyncio.Task] = {}

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    @property
    def connected_accounts(self) -> Dict[Platform, bool]:
        return {platform: is_platform_connected(self.statuses, platform) for platform in Platform}

    @property
    def errors(self) -> Dict[Platform, Optional[str]]:
        return {platform: state.error_message for platform, state in self.machine.snapshot().items()}

    @property
    def connecting_platform(self) -> Optional[Platform]:
        return self.machine.connecting_platform

    @property
    def timeout_warnings(self) -> Set[Platform]:
        return {platform for platform, state in self.machine.snapshot().items() if state.timeout_warning}

    def snapshot(self) -> Dict[str, Any]:
        """Everything a presentational shell needs to render the accounts list"""
        states = self.machine.snapshot()
        platforms = []
        for platform in Platform:
            status = self.statuses[platform].to_dict()
            status.update(states[platform].to_dict())
            status['display_name'] = platform.display_name
            status['connecting'] = states[platform].is_connecting
            platforms.append(status)

        connecting = self.connecting_platform
        return {
            'workspace_id': self.workspace_id,
            'connecting_platform': connecting.value if connecting else None,
            'is_loading': self.is_loading,
            'platforms': platforms,
        }

    # -------------------------------------------------------------------------
    # Credential status
    # -------------------------------------------------------------------------

    async def _fetch_statuses(self) -> Dict[Platform, ConnectionStatus]:
        return build_status_map(await self.platform_service.get_credential_status(self.workspace_id))

    def _apply_statuses(self, statuses: Dict[Platform, ConnectionStatus]):
        self.statuses = statuses
        for platform, status in statuses.items():
            self.machine.apply_status(platform, status.connected is True)

    async def load_status(self, force: bool = False) -> bool:
        """Refresh the status snapshot; False when skipped or the fetch failed.

        Plain reloads are skipped while a platform is reconciling and when the
        previous one ran within the rerun guard window. ``force`` bypasses both.
        """
        if not force:
            if any(state.phase == ConnectionPhase.RECONCILING for state in self.machine.snapshot().values()):
                logger.debug("Status reload skipped: reconciliation in progress")
                return False
            now = self._clock()
            if self._last_load is not None and now - self._last_load < self.rerun_guard_seconds:
                logger.debug("Status reload skipped: ran too recently")
                return False
        self._last_load = self._clock()

        self.is_loading = True
        try:
            statuses = await self._fetch_statuses()
        except Exception as e:
            # Keep the previous snapshot; stale errors would only flicker
            logger.error(f"❌ Failed to load connection status: {error_message_for(e)}")
            self.machine.clear_errors()
            return False
        finally:
            self.is_loading = False

        self._apply_statuses(statuses)
        return True

    async def load_status_silently(self) -> bool:
        """Background refresh that leaves displayed errors alone when it fails"""
        self._last_load = self._clock()
        try:
            statuses = await self._fetch_statuses()
        except Exception as e:
            logger.warning(f"⚠️ Background status refresh failed: {error_message_for(e)}")
            return False
        self._apply_statuses(statuses)
        return True

    # -------------------------------------------------------------------------
    # Authorization
    # -------------------------------------------------------------------------

    async def begin_connect(self, platform: Union[Platform, str], workspace_id: Optional[str] = None) -> ConnectResult:
        """Start the OAuth flow for ``platform`` and send the user to the consent page.

        Failures are recorded as the platform's error and returned, never raised.
        """
        parsed = Platform.parse(platform)
        if parsed is None:
            raise ValidationError(f"Unknown platform: {platform}", field='platform')
        platform = parsed
        workspace_id = workspace_id or self.workspace_id

        if not workspace_id:
            # Nothing can start, so other platforms' attempts are left running
            error = WorkspaceRequiredError()
            structured_logger.log_connect_failed(platform.value, error.__class__.__name__, error.message)
            self._settle(platform)
            self._fail(platform, error.message)
            return ConnectResult(platform, error=error.message)

        self._abandon_other_attempts(platform)
        self._settle(platform)
        self.machine.dispatch(platform, ConnectionEvent.CONNECT_CLICKED)

        # A new attempt expects a new callback, even one that looks like the last
        self.session.remove(LAST_PROCESSED_CALLBACK)
        self.session.set(ATTEMPTED_OAUTH_PLATFORM, platform.value)
        await self.session.save()

        try:
            if self.wakeup is not None:
                await self.wakeup.ensure_awake()

            url = await self.platform_service.get_authorization_url(platform, workspace_id)
        except Exception as e:
            message = error_message_for(e)
            structured_logger.log_connect_failed(platform.value, e.__class__.__name__, message)
            self._fail(platform, message)
            return ConnectResult(platform, error=message)

        if self.machine.get(platform).phase != ConnectionPhase.AUTHORIZING:
            # Abandoned or timed out while the URL was being fetched
            return ConnectResult(platform, error=self.machine.get(platform).error_message)

        timeout = self.timeouts[platform]
        self._arm_timers(platform, timeout)
        structured_logger.log_connect_started(platform.value, workspace_id, timeout)

        if self.navigator is not None:
            self.navigator(url)
        return ConnectResult(platform, authorization_url=url)

    def _arm_timers(self, platform: Platform, timeout: float):
        self.timers.schedule(platform, 'warning', max(0.0, timeout - self.warning_lead),
                             lambda: self._on_timeout_warning(platform))
        self.timers.schedule(platform, 'timeout', timeout, lambda: self._on_timeout(platform))

    def _on_timeout_warning(self, platform: Platform):
        if self.machine.mark_timeout_warning(platform):
            logger.warning(f"⏳ {platform.display_name} connection is taking longer than expected")

    def _on_timeout(self, platform: Platform):
        self.timers.cancel(platform)
        if not self.machine.can_accept(platform, ConnectionEvent.TIMEOUT):
            return
        error = ConnectionTimeoutError(platform=platform.value)
        self.machine.dispatch(platform, ConnectionEvent.TIMEOUT, error_message=error.message)
        structured_logger.log_connect_failed(platform.value, error.__class__.__name__, error.message)

    def _abandon_other_attempts(self, platform: Platform):
        """One attempt at a time: settle whatever else is in flight"""
        for other, state in self.machine.snapshot().items():
            if other != platform and state.is_connecting:
                self._settle(other)
                logger.info(f"Abandoned in-flight {other.display_name} attempt")

    def _settle(self, platform: Platform):
        """Cancel the platform's timers and task and leave it in a settled phase"""
        self._cancel_attempt(platform)
        phase = self.machine.get(platform).phase
        if phase == ConnectionPhase.AUTHORIZING:
            self.machine.dispatch(platform, ConnectionEvent.ABANDONED)
        elif phase == ConnectionPhase.RECONCILING:
            self.machine.dispatch(platform, ConnectionEvent.POLL_EXHAUSTED)

    def _cancel_attempt(self, platform: Platform):
        self.timers.cancel(platform)
        task = self._tasks.pop(platform, None)
        if task is not None and not task.done():
            task.cancel()

    def _fail(self, platform: Platform, message: str):
        self.timers.cancel(platform)
        self.machine.dispatch(platform, ConnectionEvent.FAILURE, error_message=message)

    # -------------------------------------------------------------------------
    # Callback handling
    # -------------------------------------------------------------------------

    async def handle_callback(self, params: Mapping[str, Any], wait: bool = False) -> CallbackOutcome:
        """Process the query parameters the backend redirected back with.

        Reconciliation runs in the background; pass ``wait=True`` to block
        until it settles. Each distinct callback is processed once per session.
        """
        callback = parse_callback_params(params)
        if not callback.has_callback:
            await self.load_status()
            return CallbackOutcome('none', callback)

        duplicate = self.session.get(LAST_PROCESSED_CALLBACK) == callback.key
        structured_logger.log_callback_received(callback.success, callback.error_code, duplicate=duplicate)
        if duplicate:
            await self.load_status()
            return CallbackOutcome('duplicate', callback)

        self.session.set(LAST_PROCESSED_CALLBACK, callback.key)
        await self.session.save()

        if callback.error_code:
            outcome = self._handle_error_callback(callback)
        else:
            outcome = await self._handle_success_callback(callback)

        if wait and outcome.task is not None:
            await asyncio.gather(outcome.task, return_exceptions=True)
        return outcome

    def _attribute_error(self, error_code: str) -> Optional[Platform]:
        platform = detect_platform_from_error(error_code)
        if platform is None:
            platform = Platform.parse(self.session.get(ATTEMPTED_OAUTH_PLATFORM))
        return platform

    def _handle_error_callback(self, callback: CallbackParams) -> CallbackOutcome:
        error_code = callback.error_code
        platform = self._attribute_error(error_code)

        if is_ambiguous_error(error_code) and platform is not None \
                and self.machine.can_accept(platform, ConnectionEvent.VERIFY_STARTED):
            logger.warning(f"⚠️ {error_code} for {platform.value}, checking whether the connection went through")
            self.timers.cancel(platform)
            self.machine.dispatch(platform, ConnectionEvent.VERIFY_STARTED)
            task = self._spawn(platform, self.verify_after_ambiguous_error(platform, error_code))
            return CallbackOutcome('verify', callback, platform, task=task)

        if platform is None:
            logger.warning(f"Could not detect platform from error: {error_code}")
            platform = FALLBACK_ERROR_PLATFORM

        message = map_error_code(error_code)
        self.timers.cancel(platform)
        if self.machine.can_accept(platform, ConnectionEvent.CALLBACK_ERROR):
            self.machine.dispatch(platform, ConnectionEvent.CALLBACK_ERROR, error_message=message)
        structured_logger.log_connect_failed(platform.value, 'OAuthCallbackError', message)

        task = self._spawn('status', self.load_status_silently())
        return CallbackOutcome('error', callback, platform, error=message, task=task)

    async def _handle_success_callback(self, callback: CallbackParams) -> CallbackOutcome:
        platform = callback.success_platform
        if platform is None:
            logger.warning(f"Ignoring callback for unknown platform: {callback.success}")
            await self.load_status(force=True)
            return CallbackOutcome('ignored', callback)

        if not self.machine.can_accept(platform, ConnectionEvent.CALLBACK_SUCCESS):
            # Already reconciling this platform
            return CallbackOutcome('duplicate', callback, platform, task=self._tasks.get(platform))

        self._abandon_other_attempts(platform)
        self.timers.cancel(platform)
        self.machine.dispatch(platform, ConnectionEvent.CALLBACK_SUCCESS)
        task = self._spawn(platform, self.reconcile(platform))
        return CallbackOutcome('reconcile', callback, platform, task=task)

    def _spawn(self, key, coro) -> asyncio.Task:
        previous = self._tasks.get(key)
        if previous is not None and not previous.done():
            previous.cancel()
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks[key] = task

        def _done(finished: asyncio.Task):
            if self._tasks.get(key) is finished:
                self._tasks.pop(key, None)
            if not finished.cancelled() and finished.exception() is not None:
                logger.error(f"❌ Background connection task failed: {finished.exception()}")

        task.add_done_callback(_done)
        return task

    # -------------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------------

    def _poll_logger(self, platform: Platform, schedule: BackoffSchedule):
        def on_attempt(attempt, statuses, error):
            connected = is_platform_connected(statuses, platform) if statuses is not None else None
            structured_logger.log_reconcile_attempt(platform.value, attempt, schedule.max_attempts, connected)
        return on_attempt

    async def reconcile(self, platform: Platform) -> PollResult:
        """Poll status until ``platform`` shows connected or the schedule runs out.

        On exhaustion the last snapshot is accepted as-is; this never raises
        for the ordinary path.
        """
        result = await poll_until(
            self._fetch_statuses,
            lambda statuses: is_platform_connected(statuses, platform),
            self.reconcile_schedule,
            on_attempt=self._poll_logger(platform, self.reconcile_schedule),
            sleep=self._sleep,
        )

        event = ConnectionEvent.POLL_CONNECTED if result.satisfied else ConnectionEvent.POLL_EXHAUSTED
        if self.machine.can_accept(platform, event):
            self.machine.dispatch(platform, event)
        if result.value is not None:
            self._apply_statuses(result.value)
        self._last_load = self._clock()

        structured_logger.log_reconcile_result(platform.value, result.satisfied, result.attempts)
        return result

    async def verify_after_ambiguous_error(self, platform: Platform, error_code: str) -> PollResult:
        """Check whether an attempt the backend reported as failed actually connected"""
        result = await poll_until(
            self._fetch_statuses,
            lambda statuses: is_platform_connected(statuses, platform),
            self.verify_schedule,
            on_attempt=self._poll_logger(platform, self.verify_schedule),
            sleep=self._sleep,
        )

        if result.satisfied:
            logger.info(f"✅ {platform.value} connection succeeded despite {error_code} "
                        f"(attempt {result.attempts})")
            if self.machine.can_accept(platform, ConnectionEvent.POLL_CONNECTED):
                self.machine.dispatch(platform, ConnectionEvent.POLL_CONNECTED)
        else:
            message = map_error_code(error_code)
            logger.warning(f"❌ {platform.value} connection failed after {result.attempts} verification attempts")
            self.machine.dispatch(platform, ConnectionEvent.FAILURE, error_message=message)

        if result.value is not None:
            self._apply_statuses(result.value)
        return result

    # -------------------------------------------------------------------------
    # Disconnect
    # -------------------------------------------------------------------------

    async def disconnect(self, platform: Union[Platform, str], workspace_id: Optional[str] = None) -> bool:
        parsed = Platform.parse(platform)
        if parsed is None:
            raise ValidationError(f"Unknown platform: {platform}", field='platform')
        platform = parsed
        workspace_id = workspace_id or self.workspace_id

        try:
            if not workspace_id:
                raise WorkspaceRequiredError()
            await self.platform_service.disconnect_platform(platform, workspace_id)
        except Exception as e:
            message = error_message_for(e, 'Failed to disconnect')
            logger.error(f"❌ Failed to disconnect {platform.value}: {message}")
            self.machine.set_error(platform, message)
            return False

        self._cancel_attempt(platform)
        if self.machine.can_accept(platform, ConnectionEvent.DISCONNECTED):
            self.machine.dispatch(platform, ConnectionEvent.DISCONNECTED)
        logger.info(f"🔌 Disconnected {platform.display_name}")

        await self.load_status(force=True)
        self.machine.set_error(platform, None)
        return True

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def wait_idle(self):
        """Wait for background reconciliation and status loads to finish"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def close(self):
        self.timers.cancel_all()
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        # Nothing can settle an attempt once the manager is gone
        for platform in Platform:
            self._settle(platform)

    def _log_transition(self, before, after, event):
        structured_logger.debug(
            f"{after.platform.value}: {before.phase.value} -> {after.phase.value}",
            event="connection_transition",
            platform=after.platform.value,
            from_phase=before.phase.value,
            to_phase=after.phase.value,
            trigger=event.value,
            error_message=after.error_message
        )
