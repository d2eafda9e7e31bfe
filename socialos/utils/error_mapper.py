# =============================================================================
# OAUTH ERROR CODE MAPPING
# =============================================================================
# Turns the opaque codes the backend puts in ?oauth_error= into messages a
# user can act on.

from typing import Optional

from ..models.platform import Platform

GENERIC_CONNECTION_ERROR = 'Connection failed. Please try again.'
WORKSPACE_INITIALIZING = 'Workspace is being initialized. Please try again in a moment.'

ERROR_MESSAGES = {
    'oauth_unauthorized': 'Not authenticated. Please log in.',
    'no_workspace': WORKSPACE_INITIALIZING,
    'NO_WORKSPACE': WORKSPACE_INITIALIZING,
    'WORKSPACE_INIT_ERROR': 'Workspace initialization failed. Please refresh the page and try again.',
    'user_denied': 'You denied the connection request.',
    'missing_params': 'OAuth parameters missing. Please try again.',
    'csrf_check_failed': 'Security verification failed. Please try again.',
    'missing_verifier': 'Security token missing. Please restart connection.',
    'callback_error': 'Connection callback failed. Please try again.',
    'token_exchange_failed': 'Failed to exchange authorization code. Please try again.',
    'get_pages_failed': 'Failed to retrieve your pages. Please try again.',
    'no_pages_found': 'No pages found. Please create a page and try again.',
    'get_account_failed': 'Failed to retrieve your account. Please try again.',
    'no_account_found': 'No account found. Please try again.',
    'save_failed': 'Failed to save credentials. Please try again.',
    'config_missing': 'Platform is not configured. Please contact support.',
    'insufficient_permissions': 'Access denied. Only workspace admins can connect social media accounts.',
}

WORKSPACE_PHRASES = ('workspace not found', 'workspace error', 'initialize workspace')

# Codes the backend may emit even though the platform actually got connected
AMBIGUOUS_ERROR_CODES = frozenset({'csrf_check_failed'})


def map_error_code(error_code: Optional[str]) -> str:
    """Return the user-facing message for a backend OAuth error code.

    Unknown codes get the generic message; the raw code is never shown.
    """
    if not error_code:
        return GENERIC_CONNECTION_ERROR

    if error_code in ERROR_MESSAGES:
        return ERROR_MESSAGES[error_code]

    lowered = error_code.lower()
    if any(phrase in lowered for phrase in WORKSPACE_PHRASES):
        return WORKSPACE_INITIALIZING

    return GENERIC_CONNECTION_ERROR


def detect_platform_from_error(error_code: Optional[str]) -> Optional[Platform]:
    """Find the platform a namespaced error code refers to, e.g. ``facebook_no_pages``"""
    if not error_code:
        return None
    lowered = error_code.lower()
    for platform in Platform:
        if platform.value in lowered:
            return platform
    return None


def is_ambiguous_error(error_code: Optional[str]) -> bool:
    return error_code in AMBIGUOUS_ERROR_CODES
