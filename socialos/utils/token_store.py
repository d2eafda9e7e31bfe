# =============================================================================
# AUTH TOKEN STORE
# =============================================================================

from typing import Optional


class TokenStore:
    """Access/refresh token pair for the current session"""

    def __init__(self, access_token: Optional[str] = None, refresh_token: Optional[str] = None):
        self.access_token = access_token
        self.refresh_token = refresh_token

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)

    def update(self, access_token: str, refresh_token: Optional[str] = None):
        self.access_token = access_token
        if refresh_token:
            self.refresh_token = refresh_token

    def clear(self):
        self.access_token = None
        self.refresh_token = None

    @classmethod
    def from_settings(cls, settings) -> 'TokenStore':
        return cls(settings.AUTH_TOKEN, settings.REFRESH_TOKEN)
