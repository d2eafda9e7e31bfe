# =============================================================================
# ACCOUNTS WEB SHELL TESTS
# =============================================================================

import pytest
import sys
import os
from unittest.mock import AsyncMock, MagicMock
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from socialos.exceptions import APIError
from socialos.models.platform import ConnectionStatus, Platform
from socialos.services.connection_manager import ConnectionManager
from socialos.services.notifications import NotificationCenter
from socialos.utils.async_runner import AsyncRunner
from socialos.web.accounts_app import AccountsDashboard

AUTH_URL = 'https://twitter.example.com/i/oauth2/authorize?state=xyz'


async def no_sleep(delay):
    return None


@pytest.fixture
def service():
    service = MagicMock()
    service.get_credential_status = AsyncMock(return_value=[])
    service.get_authorization_url = AsyncMock(return_value=AUTH_URL)
    service.disconnect_platform = AsyncMock()
    return service


@pytest.fixture
def runner():
    runner = AsyncRunner(name='test-loop')
    runner.start()
    yield runner
    runner.stop()


@pytest.fixture
def manager(service, runner):
    manager = ConnectionManager(service, workspace_id='ws-1', sleep=no_sleep, rerun_guard_seconds=0)
    yield manager
    runner.run(manager.close(), timeout=5)


@pytest.fixture
def notifications():
    return NotificationCenter()


@pytest.fixture
def client(manager, runner, notifications):
    dashboard = AccountsDashboard(manager, runner=runner, notifications=notifications)
    dashboard.app.config['TESTING'] = True
    return dashboard.app.test_client()


class TestAccountsPages:
    def test_health(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        data = response.get_json()
        assert data['status'] == 'healthy'
        assert data['workspace_configured'] is True

    def test_accounts_json(self, client, service):
        service.get_credential_status.return_value = [ConnectionStatus(Platform.LINKEDIN, connected=True)]

        response = client.get('/accounts')

        assert response.status_code == 200
        platforms = {p['platform']: p for p in response.get_json()['platforms']}
        assert platforms['linkedin']['connected'] is True
        assert platforms['twitter']['connected'] is False

    def test_accounts_html(self, client):
        response = client.get('/accounts', headers={'Accept': 'text/html'})
        assert response.status_code == 200
        assert b'Connected Accounts' in response.data
        assert b'/connect/twitter?return_to=/accounts' in response.data

    def test_success_callback_redirects_to_clean_url(self, client, manager, runner, service):
        service.get_credential_status.return_value = [ConnectionStatus(Platform.TWITTER, connected=True)]

        response = client.get('/accounts?oauth_success=twitter')
        runner.run(manager.wait_idle(), timeout=5)

        assert response.status_code == 302
        assert response.headers['Location'].endswith('/accounts')
        assert manager.connected_accounts[Platform.TWITTER]

    def test_error_callback_on_settings_tab(self, client, manager, runner):
        response = client.get('/settings?tab=accounts&oauth_error=user_denied')
        runner.run(manager.wait_idle(), timeout=5)

        assert response.status_code == 302
        assert response.headers['Location'].endswith('/settings?tab=accounts')
        assert manager.errors[Platform.TWITTER] == 'You denied the connection request.'


class TestConnectAndDisconnect:
    def test_connect_redirects_to_consent_page(self, client, manager):
        response = client.get('/connect/twitter')

        assert response.status_code == 302
        assert response.headers['Location'] == AUTH_URL
        assert manager.connecting_platform == Platform.TWITTER

    def test_connect_unknown_platform(self, client):
        assert client.get('/connect/myspace').status_code == 404

    def test_connect_failure_returns_to_shell(self, client, manager, service):
        service.get_authorization_url.side_effect = APIError("Platform is not configured", status_code=400)

        response = client.get('/connect/tiktok?return_to=/settings')

        assert response.status_code == 302
        assert response.headers['Location'].endswith('/settings?tab=accounts')
        assert manager.errors[Platform.TIKTOK] == 'Platform is not configured'

    def test_disconnect(self, client, service):
        response = client.post('/disconnect/facebook')

        assert response.status_code == 200
        assert response.get_json() == {'success': True, 'platform': 'facebook', 'error': None}
        service.disconnect_platform.assert_awaited_once_with(Platform.FACEBOOK, 'ws-1')

    def test_disconnect_failure(self, client, service):
        service.disconnect_platform.side_effect = APIError("Not allowed", status_code=403)

        response = client.post('/disconnect/facebook')

        assert response.status_code == 400
        assert response.get_json()['error'] == 'Not allowed'


class TestStatusApi:
    def test_includes_notifications(self, client, notifications):
        notifications.add('post_published', 'Post Published', 'Posted to 2 platforms', post_id='p1')

        data = client.get('/api/status').get_json()

        assert data['workspace_id'] == 'ws-1'
        assert data['notifications'][0]['title'] == 'Post Published'
        assert data['notifications'][0]['read'] is False
