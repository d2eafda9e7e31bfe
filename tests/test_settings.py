# =============================================================================
# SETTINGS AND CONFIGURATION TESTS
# =============================================================================

import pytest
import sys
import os
from unittest.mock import patch
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from socialos.config.settings import DEFAULT_API_BASE_URL, Settings, mask_secret


class TestSettings:
    @patch.dict(os.environ, {
        'API_BASE_URL': 'https://api.example.com/api/v1/',
        'AUTH_TOKEN': 'session-token-1234567890',
        'REFRESH_TOKEN': 'refresh-token',
        'WORKSPACE_ID': 'ws-1',
        'SCHEDULED_POST_INTERVAL_SECONDS': '120',
        'VIDEO_POLL_INTERVAL_SECONDS': '20',
        'DASHBOARD_PORT': '9090',
    })
    def test_reads_environment(self):
        settings = Settings()
        assert settings.API_BASE_URL == 'https://api.example.com/api/v1'
        assert settings.WORKSPACE_ID == 'ws-1'
        assert settings.SCHEDULED_POST_INTERVAL == 120
        assert settings.VIDEO_POLL_INTERVAL == 20
        assert settings.DASHBOARD_PORT == 9090
        assert settings.validate_credentials()

    @patch.dict(os.environ, {}, clear=True)
    def test_defaults(self):
        settings = Settings()
        assert settings.API_BASE_URL == DEFAULT_API_BASE_URL
        assert settings.SCHEDULED_POST_INTERVAL == 60
        assert settings.VIDEO_POLL_INTERVAL == 15
        assert settings.AUTH_TOKEN is None

    @patch.dict(os.environ, {'AUTH_TOKEN': 'your_auth_token_here', 'WORKSPACE_ID': ''}, clear=True)
    def test_placeholder_credentials(self, capsys):
        assert not Settings().validate_credentials()
        output = capsys.readouterr().out
        assert 'AUTH_TOKEN' in output
        assert 'WORKSPACE_ID' in output

    @patch.dict(os.environ, {'AUTH_TOKEN': 'tok', 'WORKSPACE_ID': 'ws-1'}, clear=True)
    def test_configuration_summary(self):
        summary = Settings().get_configuration_summary()
        assert summary['authenticated']
        assert not summary['refresh_token_configured']
        assert summary['validation_status'] is None

    def test_mask_secret(self):
        assert mask_secret('short') == '*****'
        assert mask_secret('abcdef1234567890') == 'abcdef******7890'
