# =============================================================================
# CONNECTION STATE MACHINE TESTS
# =============================================================================

import pytest
import sys
import os
from unittest.mock import MagicMock
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from socialos.exceptions import InvalidTransitionError
from socialos.models.connection import ConnectionEvent, ConnectionPhase, ConnectionStateMachine
from socialos.models.platform import Platform

E = ConnectionEvent
P = ConnectionPhase


@pytest.fixture
def machine():
    return ConnectionStateMachine()


class TestTransitions:
    def test_happy_path(self, machine):
        machine.dispatch(Platform.TWITTER, E.CONNECT_CLICKED)
        assert machine.get(Platform.TWITTER).phase == P.AUTHORIZING
        assert machine.connecting_platform == Platform.TWITTER

        machine.dispatch(Platform.TWITTER, E.CALLBACK_SUCCESS)
        assert machine.get(Platform.TWITTER).phase == P.RECONCILING
        assert machine.connecting_platform == Platform.TWITTER

        machine.dispatch(Platform.TWITTER, E.POLL_CONNECTED)
        assert machine.get(Platform.TWITTER).phase == P.CONNECTED
        assert machine.connecting_platform is None

    def test_attempt_counter(self, machine):
        machine.dispatch(Platform.LINKEDIN, E.CONNECT_CLICKED)
        machine.dispatch(Platform.LINKEDIN, E.ABANDONED)
        machine.dispatch(Platform.LINKEDIN, E.CONNECT_CLICKED)
        assert machine.get(Platform.LINKEDIN).attempt == 2

    def test_timeout_sets_error(self, machine):
        machine.dispatch(Platform.FACEBOOK, E.CONNECT_CLICKED)
        state = machine.dispatch(Platform.FACEBOOK, E.TIMEOUT, error_message='Connection timed out.')
        assert state.phase == P.ERROR
        assert state.error_message == 'Connection timed out.'
        assert not state.is_connecting

    def test_new_attempt_clears_error(self, machine):
        machine.dispatch(Platform.FACEBOOK, E.CALLBACK_ERROR, error_message='You denied the connection request.')
        state = machine.dispatch(Platform.FACEBOOK, E.CONNECT_CLICKED)
        assert state.error_message is None

    def test_exhausted_poll_goes_idle(self, machine):
        machine.dispatch(Platform.TIKTOK, E.CALLBACK_SUCCESS)
        assert machine.dispatch(Platform.TIKTOK, E.POLL_EXHAUSTED).phase == P.IDLE

    def test_invalid_transition(self, machine):
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.dispatch(Platform.TWITTER, E.POLL_CONNECTED)
        assert exc_info.value.phase == 'idle'
        assert exc_info.value.event == 'poll_connected'

    def test_reconciling_rejects_second_success(self, machine):
        machine.dispatch(Platform.YOUTUBE, E.CALLBACK_SUCCESS)
        assert not machine.can_accept(Platform.YOUTUBE, E.CALLBACK_SUCCESS)
        assert not machine.can_accept(Platform.YOUTUBE, E.CONNECT_CLICKED)

    def test_failure_from_any_phase(self, machine):
        machine.dispatch(Platform.YOUTUBE, E.CALLBACK_SUCCESS)
        state = machine.dispatch(Platform.YOUTUBE, E.FAILURE, error_message='boom')
        assert state.phase == P.ERROR

    def test_listeners_notified(self, machine):
        listener = MagicMock()
        machine.add_listener(listener)
        machine.dispatch(Platform.TWITTER, E.CONNECT_CLICKED)
        before, after, event = listener.call_args.args
        assert before.phase == P.IDLE
        assert after.phase == P.AUTHORIZING
        assert event == E.CONNECT_CLICKED


class TestTimeoutWarning:
    def test_warning_only_while_authorizing(self, machine):
        assert not machine.mark_timeout_warning(Platform.TWITTER)
        machine.dispatch(Platform.TWITTER, E.CONNECT_CLICKED)
        assert machine.mark_timeout_warning(Platform.TWITTER)
        assert machine.get(Platform.TWITTER).timeout_warning

    def test_warning_cleared_on_exit(self, machine):
        machine.dispatch(Platform.TWITTER, E.CONNECT_CLICKED)
        machine.mark_timeout_warning(Platform.TWITTER)
        state = machine.dispatch(Platform.TWITTER, E.CALLBACK_SUCCESS)
        assert not state.timeout_warning


class TestApplyStatus:
    def test_connected_status(self, machine):
        assert machine.apply_status(Platform.TWITTER, True).phase == P.CONNECTED
        assert machine.apply_status(Platform.TWITTER, False).phase == P.IDLE

    def test_in_flight_attempt_untouched(self, machine):
        machine.dispatch(Platform.TWITTER, E.CALLBACK_SUCCESS)
        assert machine.apply_status(Platform.TWITTER, True).phase == P.RECONCILING

    def test_error_survives_disconnected_status(self, machine):
        machine.dispatch(Platform.TWITTER, E.CALLBACK_ERROR, error_message='denied')
        state = machine.apply_status(Platform.TWITTER, False)
        assert state.phase == P.ERROR
        assert state.error_message == 'denied'

    def test_connected_status_clears_error(self, machine):
        machine.dispatch(Platform.TWITTER, E.CALLBACK_ERROR, error_message='denied')
        state = machine.apply_status(Platform.TWITTER, True)
        assert state.phase == P.CONNECTED
        assert state.error_message is None


class TestErrors:
    def test_set_error_keeps_phase(self, machine):
        machine.apply_status(Platform.LINKEDIN, True)
        machine.set_error(Platform.LINKEDIN, 'Failed to disconnect')
        state = machine.get(Platform.LINKEDIN)
        assert state.phase == P.CONNECTED
        assert state.error_message == 'Failed to disconnect'

    def test_clear_errors(self, machine):
        machine.dispatch(Platform.TWITTER, E.CALLBACK_ERROR, error_message='denied')
        machine.apply_status(Platform.LINKEDIN, True)
        machine.set_error(Platform.LINKEDIN, 'oops')

        machine.clear_errors()

        assert machine.get(Platform.TWITTER).phase == P.IDLE
        assert machine.get(Platform.TWITTER).error_message is None
        assert machine.get(Platform.LINKEDIN).phase == P.CONNECTED
        assert machine.get(Platform.LINKEDIN).error_message is None
