# =============================================================================
# PER-PLATFORM CONNECTION STATE MACHINE
# =============================================================================
# Every platform moves through idle -> authorizing -> reconciling -> connected
# (or error). "Already handled" questions such as a duplicate callback or a
# reload during reconciliation are answered by looking at the phase.

import time
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, List, Optional

from .platform import Platform
from ..exceptions import InvalidTransitionError


class ConnectionPhase(str, Enum):
    IDLE = 'idle'
    AUTHORIZING = 'authorizing'
    RECONCILING = 'reconciling'
    CONNECTED = 'connected'
    ERROR = 'error'


class ConnectionEvent(str, Enum):
    CONNECT_CLICKED = 'connect_clicked'
    CALLBACK_SUCCESS = 'callback_success'
    CALLBACK_ERROR = 'callback_error'
    VERIFY_STARTED = 'verify_started'
    POLL_CONNECTED = 'poll_connected'
    POLL_EXHAUSTED = 'poll_exhausted'
    TIMEOUT = 'timeout'
    ABANDONED = 'abandoned'
    DISCONNECTED = 'disconnected'
    FAILURE = 'failure'


_P = ConnectionPhase
_E = ConnectionEvent

_SETTLED = (_P.IDLE, _P.CONNECTED, _P.ERROR)

TRANSITIONS: Dict[tuple, ConnectionPhase] = {}

for _phase in _SETTLED + (_P.AUTHORIZING,):
    TRANSITIONS[(_phase, _E.CONNECT_CLICKED)] = _P.AUTHORIZING
    TRANSITIONS[(_phase, _E.CALLBACK_SUCCESS)] = _P.RECONCILING
    TRANSITIONS[(_phase, _E.CALLBACK_ERROR)] = _P.ERROR
    TRANSITIONS[(_phase, _E.VERIFY_STARTED)] = _P.RECONCILING

for _phase in _P:
    TRANSITIONS[(_phase, _E.FAILURE)] = _P.ERROR

for _phase in _SETTLED:
    TRANSITIONS[(_phase, _E.DISCONNECTED)] = _P.IDLE

TRANSITIONS.update({
    (_P.RECONCILING, _E.POLL_CONNECTED): _P.CONNECTED,
    (_P.RECONCILING, _E.POLL_EXHAUSTED): _P.IDLE,
    (_P.AUTHORIZING, _E.TIMEOUT): _P.ERROR,
    (_P.AUTHORIZING, _E.ABANDONED): _P.IDLE,
})

# Events that start a fresh attempt and therefore wipe the previous message
_CLEARS_ERROR = {_E.CONNECT_CLICKED, _E.CALLBACK_SUCCESS, _E.VERIFY_STARTED,
                 _E.POLL_CONNECTED, _E.DISCONNECTED}


@dataclass
class PlatformConnectionState:
    """Client-only view of one platform's connection attempt"""
    platform: Platform
    phase: ConnectionPhase = ConnectionPhase.IDLE
    error_message: Optional[str] = None
    timeout_warning: bool = False
    attempt: int = 0
    updated_at: float = field(default_factory=time.time)

    @property
    def is_connecting(self) -> bool:
        return self.phase in (ConnectionPhase.AUTHORIZING, ConnectionPhase.RECONCILING)

    def to_dict(self):
        return {
            'platform': self.platform.value,
            'phase': self.phase.value,
            'error': self.error_message,
            'timeout_warning': self.timeout_warning,
            'attempt': self.attempt,
        }


TransitionListener = Callable[[PlatformConnectionState, PlatformConnectionState, ConnectionEvent], None]


class ConnectionStateMachine:
    """Holds one PlatformConnectionState per platform and applies events to them"""

    def __init__(self):
        self._states: Dict[Platform, PlatformConnectionState] = {
            platform: PlatformConnectionState(platform=platform) for platform in Platform
        }
        self._listeners: List[TransitionListener] = []
        # The web shell reads snapshots from request threads
        self._lock = threading.RLock()

    def add_listener(self, listener: TransitionListener):
        self._listeners.append(listener)

    def get(self, platform: Platform) -> PlatformConnectionState:
        with self._lock:
            return self._states[platform]

    def snapshot(self) -> Dict[Platform, PlatformConnectionState]:
        with self._lock:
            return dict(self._states)

    def can_accept(self, platform: Platform, event: ConnectionEvent) -> bool:
        return (self.get(platform).phase, event) in TRANSITIONS

    @property
    def connecting_platform(self) -> Optional[Platform]:
        """The platform with an attempt in flight, if any"""
        with self._lock:
            for platform, state in self._states.items():
                if state.is_connecting:
                    return platform
        return None

    def dispatch(self, platform: Platform, event: ConnectionEvent,
                 error_message: Optional[str] = None) -> PlatformConnectionState:
        """Apply ``event``; raises InvalidTransitionError for events the phase does not accept"""
        with self._lock:
            current = self._states[platform]
            target = TRANSITIONS.get((current.phase, event))
            if target is None:
                raise InvalidTransitionError(platform.value, current.phase.value, event.value)

            changes = {'phase': target, 'updated_at': time.time()}
            if event == ConnectionEvent.CONNECT_CLICKED:
                changes['attempt'] = current.attempt + 1
            if target != ConnectionPhase.AUTHORIZING or event == ConnectionEvent.CONNECT_CLICKED:
                changes['timeout_warning'] = False
            if event in _CLEARS_ERROR:
                changes['error_message'] = None
            if target == ConnectionPhase.ERROR:
                changes['error_message'] = error_message or current.error_message

            updated = replace(current, **changes)
            self._states[platform] = updated

        self._notify(current, updated, event)
        return updated

    def apply_status(self, platform: Platform, connected: bool) -> PlatformConnectionState:
        """Fold a backend status into a settled phase.

        Phases with an attempt in flight are left alone; the attempt itself
        decides when it is over.
        """
        with self._lock:
            current = self._states[platform]
            if current.is_connecting:
                return current

            if connected:
                target, message = ConnectionPhase.CONNECTED, None
            elif current.phase == ConnectionPhase.ERROR:
                target, message = ConnectionPhase.ERROR, current.error_message
            else:
                target, message = ConnectionPhase.IDLE, None

            if target == current.phase and message == current.error_message:
                return current

            updated = replace(current, phase=target, error_message=message, updated_at=time.time())
            self._states[platform] = updated
        return updated

    def mark_timeout_warning(self, platform: Platform) -> bool:
        """Flag the warning; False when the attempt is no longer authorizing"""
        with self._lock:
            current = self._states[platform]
            if current.phase != ConnectionPhase.AUTHORIZING:
                return False
            self._states[platform] = replace(current, timeout_warning=True)
        return True

    def set_error(self, platform: Platform, message: Optional[str]):
        """Set or clear the message without moving the phase"""
        with self._lock:
            current = self._states[platform]
            self._states[platform] = replace(current, error_message=message)

    def clear_errors(self):
        with self._lock:
            for platform, state in self._states.items():
                if state.error_message is not None:
                    phase = ConnectionPhase.IDLE if state.phase == ConnectionPhase.ERROR else state.phase
                    self._states[platform] = replace(state, error_message=None, phase=phase)

    def _notify(self, before, after, event):
        for listener in self._listeners:
            listener(before, after, event)
