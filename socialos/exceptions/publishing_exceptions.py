# =============================================================================
# PUBLISHING EXCEPTIONS
# =============================================================================
# Errors raised by the scheduled-post publisher and the video status poller

from typing import Optional

from .base_exceptions import SocialOSError, ValidationError


class PublishError(SocialOSError):
    """Publishing a post to its platforms failed"""

    def __init__(self, message: str, post_id: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.post_id = post_id


class PostValidationError(ValidationError):
    """A post is not publishable as it stands"""

    def __init__(self, message: str, post_id: Optional[str] = None, **kwargs):
        kwargs.setdefault('error_code', 'POST_INVALID')
        super().__init__(message, **kwargs)
        self.post_id = post_id


class VideoStatusError(SocialOSError):
    """Checking an AI video generation operation failed"""

    def __init__(self, message: str, operation_id: Optional[str] = None, **kwargs):
        kwargs.setdefault('retryable', True)
        super().__init__(message, **kwargs)
        self.operation_id = operation_id
