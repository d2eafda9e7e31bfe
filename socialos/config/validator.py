"""
Configuration validation for the SocialOS client.
Validates backend URL, session credentials and polling settings from the environment.
"""

import os
import re
from pathlib import Path
from typing import List, Dict, Any, Optional
from pydantic import BaseModel, Field, field_validator
from enum import Enum
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

class ValidationLevel(Enum):
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"

@dataclass
class ValidationResult:
    level: ValidationLevel
    field: str
    message: str
    suggestion: Optional[str] = None

# =============================================================================
# PYDANTIC SCHEMAS FOR CONFIGURATION VALIDATION
# =============================================================================

class BackendConfig(BaseModel):
    """Schema for the backend API connection"""
    base_url: str = Field(..., min_length=1, description="SocialOS API base URL")
    timeout_seconds: float = Field(default=30.0, gt=0, le=300, description="Request timeout")

    @field_validator('base_url')
    @classmethod
    def validate_base_url(cls, v):
        if not re.match(r'^https?://[^\s/]+', v):
            raise ValueError("API_BASE_URL must start with http:// or https://")
        return v.rstrip('/')

class SessionConfig(BaseModel):
    """Schema for the authenticated session"""
    auth_token: str = Field(..., min_length=1, description="Bearer token")
    refresh_token: Optional[str] = Field(None, description="Refresh token for /auth/refresh")
    workspace_id: str = Field(..., min_length=1, description="Workspace to operate on")

    @field_validator('auth_token', 'workspace_id')
    @classmethod
    def validate_not_placeholder(cls, v, info):
        if v.startswith('your_') or v in ['', 'REPLACE_ME']:
            raise ValueError(f"{info.field_name} appears to be a placeholder value")
        return v

class PollingConfig(BaseModel):
    """Schema for the background polling loops"""
    scheduled_post_interval: int = Field(default=60, ge=10, le=3600)
    video_poll_interval: int = Field(default=15, ge=5, le=600)
    log_level: str = Field(default="INFO")

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

class CompleteConfig(BaseModel):
    """Complete configuration schema"""
    backend: BackendConfig
    session: Optional[SessionConfig] = None
    polling: PollingConfig

# =============================================================================
# CONFIGURATION VALIDATOR CLASS
# =============================================================================

class ConfigValidator:
    """Configuration validator for the SocialOS client"""

    def __init__(self, env: Optional[Dict[str, str]] = None):
        self.results: List[ValidationResult] = []
        self.config_data: Dict[str, Any] = {}
        self._env = env

    def validate_all(self) -> Dict[str, Any]:
        """Validate all configuration and return results"""
        self.results = []

        env_config = self._load_environment_config()
        backend = self._validate_backend(env_config)
        session = self._validate_session(env_config)
        polling = self._validate_polling(env_config)

        if backend is not None:
            self.config_data = CompleteConfig(
                backend=backend, session=session, polling=polling
            ).model_dump()

        return {
            'valid': len([r for r in self.results if r.level == ValidationLevel.ERROR]) == 0,
            'config': self.config_data,
            'results': self.results
        }

    def _load_environment_config(self) -> Dict[str, str]:
        if self._env is not None:
            return dict(self._env)

        if not Path('.env').exists():
            self.results.append(ValidationResult(
                level=ValidationLevel.WARNING,
                field="env_file",
                message=".env file not found",
                suggestion="Copy .env.example to .env and fill in your session values"
            ))
        return dict(os.environ)

    def _validate_backend(self, env_config: Dict[str, str]) -> Optional[BackendConfig]:
        try:
            return BackendConfig(
                base_url=env_config.get('API_BASE_URL', 'http://localhost:8000/api/v1'),
                timeout_seconds=float(env_config.get('API_TIMEOUT_SECONDS', '30'))
            )
        except Exception as e:
            self.results.append(ValidationResult(
                level=ValidationLevel.ERROR,
                field="backend",
                message=f"Invalid backend configuration: {str(e)}",
                suggestion="Set API_BASE_URL to something like https://api.example.com/api/v1"
            ))
            return None

    def _validate_session(self, env_config: Dict[str, str]) -> Optional[SessionConfig]:
        try:
            session = SessionConfig(
                auth_token=env_config.get('AUTH_TOKEN', ''),
                refresh_token=env_config.get('REFRESH_TOKEN') or None,
                workspace_id=env_config.get('WORKSPACE_ID', '')
            )
        except Exception as e:
            self.results.append(ValidationResult(
                level=ValidationLevel.ERROR,
                field="session",
                message=f"Invalid session configuration: {str(e)}",
                suggestion="Log in to SocialOS and copy AUTH_TOKEN and WORKSPACE_ID into .env"
            ))
            return None

        if not session.refresh_token:
            self.results.append(ValidationResult(
                level=ValidationLevel.WARNING,
                field="refresh_token",
                message="REFRESH_TOKEN not set; an expired session cannot be renewed",
                suggestion="Add REFRESH_TOKEN to .env"
            ))
        return session

    def _validate_polling(self, env_config: Dict[str, str]) -> PollingConfig:
        try:
            return PollingConfig(
                scheduled_post_interval=int(env_config.get('SCHEDULED_POST_INTERVAL_SECONDS', '60')),
                video_poll_interval=int(env_config.get('VIDEO_POLL_INTERVAL_SECONDS', '15')),
                log_level=env_config.get('LOG_LEVEL', 'INFO')
            )
        except Exception as e:
            self.results.append(ValidationResult(
                level=ValidationLevel.ERROR,
                field="polling",
                message=f"Invalid polling configuration: {str(e)}",
                suggestion="Check the *_INTERVAL_SECONDS and LOG_LEVEL values in .env"
            ))
            return PollingConfig()

    def print_results(self):
        """Print validation results in a user-friendly format"""
        if not self.results:
            print("✅ All configuration validation checks passed!")
            return

        errors = [r for r in self.results if r.level == ValidationLevel.ERROR]
        warnings = [r for r in self.results if r.level == ValidationLevel.WARNING]

        for title, group in (("❌ CONFIGURATION ERRORS:", errors), ("⚠️ CONFIGURATION WARNINGS:", warnings)):
            if not group:
                continue
            print(title)
            for result in group:
                print(f"   • {result.field}: {result.message}")
                if result.suggestion:
                    print(f"     💡 {result.suggestion}")
            print()

        if errors:
            print(f"❌ Configuration validation failed with {len(errors)} error(s)")
        else:
            print(f"✅ Configuration validation passed with {len(warnings)} warning(s)")

# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def validate_configuration() -> Dict[str, Any]:
    """Validate complete configuration and return results"""
    return ConfigValidator().validate_all()

def validate_and_print() -> bool:
    """Validate configuration and print results, return True if valid"""
    validator = ConfigValidator()
    results = validator.validate_all()
    validator.print_results()
    return results['valid']
