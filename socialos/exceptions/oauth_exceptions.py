# =============================================================================
# OAUTH CONNECTION EXCEPTIONS
# =============================================================================
# Errors raised while connecting, reconciling or disconnecting platform accounts

from typing import Optional

from .base_exceptions import SocialOSError, ValidationError


class OAuthError(SocialOSError):
    """General failure in the platform connection flow"""

    def __init__(self, message: str, platform: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.platform = platform

    def to_dict(self):
        result = super().to_dict()
        result['platform'] = self.platform
        return result


class WorkspaceRequiredError(ValidationError):
    """A workspace-scoped operation was started without a workspace id"""

    def __init__(self, message: str = "Workspace ID is required", **kwargs):
        kwargs.setdefault('error_code', 'NO_WORKSPACE')
        super().__init__(message, field='workspace_id', **kwargs)


class AuthorizationUrlError(OAuthError):
    """Backend did not hand out a usable authorization URL"""

    def __init__(self, message: str = "Failed to get authorization URL", **kwargs):
        kwargs.setdefault('error_code', 'AUTH_URL_ERROR')
        super().__init__(message, **kwargs)


class ConnectionTimeoutError(OAuthError):
    """The consent flow did not come back before the platform's deadline"""

    def __init__(self, message: str = "Connection timed out. Please try again.", **kwargs):
        kwargs.setdefault('error_code', 'CONNECT_TIMEOUT')
        kwargs.setdefault('retryable', True)
        super().__init__(message, **kwargs)


class InvalidTransitionError(OAuthError):
    """Event not accepted in the platform's current connection phase"""

    def __init__(self, platform: str, phase: str, event: str, **kwargs):
        kwargs.setdefault('error_code', 'INVALID_TRANSITION')
        super().__init__(
            f"Event '{event}' is not valid for {platform} in phase '{phase}'",
            platform=platform,
            context={'phase': phase, 'event': event},
            **kwargs
        )
        self.phase = phase
        self.event = event
