# =============================================================================
# CONFIGURATION SETTINGS
# =============================================================================
# Before running:
# 1. Copy .env.example to .env
# 2. Point API_BASE_URL at the SocialOS backend
# 3. Paste the session's AUTH_TOKEN / REFRESH_TOKEN and your WORKSPACE_ID
# =============================================================================

import os
import logging
from dotenv import load_dotenv
from typing import Dict, Any, Optional

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = 'http://localhost:8000/api/v1'


class Settings:
    def __init__(self, validate_on_init: bool = False):
        self._validation_results: Optional[Dict[str, Any]] = None
        self._is_valid: Optional[bool] = None

        # Backend API
        self.API_BASE_URL = os.getenv('API_BASE_URL', DEFAULT_API_BASE_URL).rstrip('/')
        self.API_TIMEOUT_SECONDS = float(os.getenv('API_TIMEOUT_SECONDS', 30))
        self.HEALTH_TIMEOUT_SECONDS = float(os.getenv('HEALTH_TIMEOUT_SECONDS', 5))

        # Session (issued by the auth provider, refreshed through /auth/refresh)
        self.AUTH_TOKEN = os.getenv('AUTH_TOKEN')
        self.REFRESH_TOKEN = os.getenv('REFRESH_TOKEN')
        self.WORKSPACE_ID = os.getenv('WORKSPACE_ID')

        # Polling loops
        self.SCHEDULED_POST_INTERVAL = int(os.getenv('SCHEDULED_POST_INTERVAL_SECONDS', 60))
        self.VIDEO_POLL_INTERVAL = int(os.getenv('VIDEO_POLL_INTERVAL_SECONDS', 15))

        # Where callback dedup markers and the last attempted platform live
        self.SESSION_STORE_PATH = os.getenv('SESSION_STORE_PATH', 'logs/session_store.json')

        # Web shell
        self.DASHBOARD_HOST = os.getenv('DASHBOARD_HOST', '127.0.0.1')
        self.DASHBOARD_PORT = int(os.getenv('DASHBOARD_PORT', 8080))

        self.LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

        if validate_on_init:
            self.validate_configuration_comprehensive()

    def validate_credentials(self) -> bool:
        """Check that a session token and workspace are available"""
        missing = []
        if not self.AUTH_TOKEN or self.AUTH_TOKEN.startswith('your_'):
            missing.append('AUTH_TOKEN')
        if not self.WORKSPACE_ID or self.WORKSPACE_ID.startswith('your_'):
            missing.append('WORKSPACE_ID')

        if missing:
            print("❌ MISSING SETTINGS:")
            for name in missing:
                print(f"  - {name}")
            print("\n📋 Copy .env.example to .env and fill in the values from your SocialOS session")
            return False

        return True

    def validate_configuration_comprehensive(self) -> bool:
        """
        Comprehensive configuration validation using the validator system.
        Returns True if configuration is valid, False otherwise.
        """
        from .validator import ConfigValidator, ValidationLevel

        validator = ConfigValidator()
        self._validation_results = validator.validate_all()
        self._is_valid = self._validation_results['valid']

        if not self._is_valid or any(
            r.level in [ValidationLevel.ERROR, ValidationLevel.WARNING]
            for r in self._validation_results['results']
        ):
            validator.print_results()

        return self._is_valid

    def get_validation_results(self) -> Optional[Dict[str, Any]]:
        """Get the last validation results"""
        return self._validation_results

    def is_configuration_valid(self) -> bool:
        if self._is_valid is None:
            return self.validate_configuration_comprehensive()
        return self._is_valid

    def get_configuration_summary(self) -> Dict[str, Any]:
        """Get a summary of the current configuration"""
        return {
            'api_base_url': self.API_BASE_URL,
            'api_timeout_seconds': self.API_TIMEOUT_SECONDS,
            'authenticated': bool(self.AUTH_TOKEN),
            'refresh_token_configured': bool(self.REFRESH_TOKEN),
            'workspace_configured': bool(self.WORKSPACE_ID),
            'scheduled_post_interval': self.SCHEDULED_POST_INTERVAL,
            'video_poll_interval': self.VIDEO_POLL_INTERVAL,
            'session_store_path': self.SESSION_STORE_PATH,
            'dashboard_port': self.DASHBOARD_PORT,
            'log_level': self.LOG_LEVEL,
            'validation_status': self._is_valid
        }

    def print_configuration_status(self, mask_secrets: bool = True):
        """Print current configuration status with secrets masked"""
        summary = self.get_configuration_summary()

        print("🔧 CONFIGURATION STATUS:")
        print(f"   Backend: {summary['api_base_url']} (timeout {summary['api_timeout_seconds']}s)")
        print(f"   Session token: {'✅' if summary['authenticated'] else '❌'}")
        print(f"   Refresh token: {'✅' if summary['refresh_token_configured'] else '❌'}")
        print(f"   Workspace: {'✅' if summary['workspace_configured'] else '❌'}")
        print(f"   Scheduled posts every {summary['scheduled_post_interval']}s, "
              f"videos every {summary['video_poll_interval']}s")
        print(f"   Dashboard port: {summary['dashboard_port']}")
        print(f"   Log Level: {summary['log_level']}")

        if summary['validation_status'] is not None:
            status = "✅ Valid" if summary['validation_status'] else "❌ Invalid"
            print(f"   Validation: {status}")
        else:
            print(f"   Validation: ⚠️ Not run")

        token = self.AUTH_TOKEN or ''
        if not token:
            print("   Auth token: Not set")
        elif mask_secrets:
            print(f"   Auth token: {mask_secret(token)}")
        else:
            print(f"   Auth token: {token}")


def mask_secret(value: str) -> str:
    if len(value) <= 10:
        return '*' * len(value)
    return value[:6] + '*' * (len(value) - 10) + value[-4:]

# Global settings instance
settings = Settings()
