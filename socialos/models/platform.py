# =============================================================================
# PLATFORM AND CONNECTION STATUS MODELS
# =============================================================================

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Dict, Any, List, Union


class Platform(str, Enum):
    """External social networks a workspace can connect"""
    TWITTER = 'twitter'
    LINKEDIN = 'linkedin'
    FACEBOOK = 'facebook'
    INSTAGRAM = 'instagram'
    TIKTOK = 'tiktok'
    YOUTUBE = 'youtube'

    @classmethod
    def parse(cls, value: Union[str, 'Platform', None]) -> Optional['Platform']:
        """Case-insensitive lookup; None for anything that is not a platform"""
        if value is None:
            return None
        if isinstance(value, Platform):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None

    @property
    def display_name(self) -> str:
        return PLATFORM_DISPLAY_NAMES[self]


PLATFORM_DISPLAY_NAMES = {
    Platform.TWITTER: 'Twitter',
    Platform.LINKEDIN: 'LinkedIn',
    Platform.FACEBOOK: 'Facebook',
    Platform.INSTAGRAM: 'Instagram',
    Platform.TIKTOK: 'TikTok',
    Platform.YOUTUBE: 'YouTube',
}

# Seconds each platform's consent flow gets before the attempt is abandoned.
# Facebook and Instagram include a page-selection step.
PLATFORM_TIMEOUTS: Dict[Platform, float] = {
    Platform.TWITTER: 45.0,
    Platform.LINKEDIN: 60.0,
    Platform.FACEBOOK: 90.0,
    Platform.INSTAGRAM: 90.0,
    Platform.TIKTOK: 60.0,
    Platform.YOUTUBE: 60.0,
}

# The "taking longer than expected" warning fires this long before the deadline
TIMEOUT_WARNING_LEAD = 30.0

EXPIRING_SOON_WINDOW = timedelta(days=7)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Accept ISO-8601 strings (with or without Z) and unix seconds"""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value, timezone.utc)
        except (ValueError, OverflowError, OSError):
            return None
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def parse_flag(value: Any) -> Optional[bool]:
    """Backend booleans sometimes arrive as strings; None when absent"""
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 'yes')
    return bool(value)


@dataclass
class ConnectionStatus:
    """Backend-reported credential state of one platform"""
    platform: Platform
    connected: bool = False
    username: Optional[str] = None
    expires_at: Optional[datetime] = None
    is_expired: Optional[bool] = None
    is_expiring_soon: Optional[bool] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any], now: Optional[datetime] = None) -> Optional['ConnectionStatus']:
        """Create from one entry of GET /credentials/status; None for unknown platforms"""
        platform = Platform.parse(data.get('platform'))
        if platform is None:
            return None

        expires_at = parse_timestamp(data.get('expires_at', data.get('expiresAt')))
        is_expired = parse_flag(data.get('is_expired', data.get('isExpired')))
        is_expiring_soon = parse_flag(data.get('is_expiring_soon', data.get('isExpiringSoon')))

        if expires_at is not None:
            now = now or datetime.now(timezone.utc)
            if is_expired is None:
                is_expired = expires_at <= now
            if is_expiring_soon is None:
                is_expiring_soon = not is_expired and expires_at - now <= EXPIRING_SOON_WINDOW

        return cls(
            platform=platform,
            connected=parse_flag(data.get('connected', data.get('isConnected'))) is True,
            username=data.get('username'),
            expires_at=expires_at,
            is_expired=is_expired,
            is_expiring_soon=is_expiring_soon,
        )

    @classmethod
    def disconnected(cls, platform: Platform) -> 'ConnectionStatus':
        return cls(platform=platform, connected=False)

    @property
    def needs_reconnect(self) -> bool:
        return self.connected and bool(self.is_expired)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'platform': self.platform.value,
            'connected': self.connected,
            'username': self.username,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'is_expired': self.is_expired,
            'is_expiring_soon': self.is_expiring_soon,
        }


def build_status_map(entries: List[ConnectionStatus]) -> Dict[Platform, ConnectionStatus]:
    """One status per platform; platforms the backend left out are disconnected"""
    statuses = {platform: ConnectionStatus.disconnected(platform) for platform in Platform}
    for entry in entries:
        statuses[entry.platform] = entry
    return statuses


def is_platform_connected(statuses: Dict[Platform, ConnectionStatus], platform: Platform) -> bool:
    status = statuses.get(platform)
    return bool(status and status.connected is True)
