# =============================================================================
# CUSTOM EXCEPTION HIERARCHY
# =============================================================================
# Error handling for the SocialOS connection and publishing client

from .base_exceptions import (
    SocialOSError,
    APIError,
    AuthenticationError,
    NetworkError,
    ValidationError,
    ConfigurationError
)

from .oauth_exceptions import (
    OAuthError,
    WorkspaceRequiredError,
    AuthorizationUrlError,
    ConnectionTimeoutError,
    InvalidTransitionError
)

from .publishing_exceptions import (
    PublishError,
    PostValidationError,
    VideoStatusError
)

__all__ = [
    # Base exceptions
    'SocialOSError',
    'APIError',
    'AuthenticationError',
    'NetworkError',
    'ValidationError',
    'ConfigurationError',

    # Connection flow exceptions
    'OAuthError',
    'WorkspaceRequiredError',
    'AuthorizationUrlError',
    'ConnectionTimeoutError',
    'InvalidTransitionError',

    # Publishing exceptions
    'PublishError',
    'PostValidationError',
    'VideoStatusError'
]
