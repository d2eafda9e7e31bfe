# =============================================================================
# PLATFORM CREDENTIALS AND PUBLISHING SERVICE
# =============================================================================

from typing import Any, Dict, List, Optional

from .api_client import ApiClient, unwrap_envelope
from ..exceptions import APIError, AuthorizationUrlError
from ..models.platform import ConnectionStatus, Platform
from ..utils.logger import logger


def _workspace_params(workspace_id: Optional[str]) -> Dict[str, str]:
    return {'workspace_id': workspace_id} if workspace_id else {}


class PlatformService:
    def __init__(self, client: ApiClient):
        self.client = client

    async def get_credential_status(self, workspace_id: Optional[str] = None) -> List[ConnectionStatus]:
        """Per-platform connection status; without a workspace the backend uses the session's"""
        body = unwrap_envelope(await self.client.get('/credentials/status', params=_workspace_params(workspace_id)))
        if isinstance(body, dict):
            body = body.get('credentials') or body.get('items') or []
        if not isinstance(body, list):
            raise APIError("Unexpected credential status response", response_body=body)

        statuses = []
        for entry in body:
            if not isinstance(entry, dict):
                continue
            status = ConnectionStatus.from_api(entry)
            if status is None:
                logger.debug(f"Ignoring status for unknown platform: {entry.get('platform')}")
                continue
            statuses.append(status)
        return statuses

    async def get_authorization_url(self, platform: Platform, workspace_id: Optional[str] = None) -> str:
        """Ask the backend to start the platform's OAuth flow and return the consent URL"""
        body = unwrap_envelope(await self.client.get(
            f"/oauth/{platform.value}/authorize", params=_workspace_params(workspace_id)
        ))
        url = None
        if isinstance(body, dict):
            url = body.get('authorization_url') or body.get('redirectUrl')
        if not url:
            raise AuthorizationUrlError(platform=platform.value)
        return url

    async def disconnect_platform(self, platform: Platform, workspace_id: Optional[str] = None):
        await self.client.delete(f"/credentials/{platform.value}/disconnect",
                                 params=_workspace_params(workspace_id))

    async def verify_connection(self, platform: Platform, workspace_id: str) -> Dict[str, Any]:
        body = unwrap_envelope(await self.client.get(
            f"/platforms/{platform.value}/verify", params={'workspace_id': workspace_id}
        ))
        return body if isinstance(body, dict) else {'connected': False}

    async def publish_to_multiple_platforms(self, platforms: List[str], content_by_platform: Dict[str, str],
                                            workspace_id: str, media_urls: Optional[List[str]] = None) -> Dict[str, Any]:
        return await self.client.post('/platforms/publish/multiple', {
            'platforms': platforms,
            'content_by_platform': content_by_platform,
            'media_urls': media_urls or [],
            'workspace_id': workspace_id,
        })

    async def publish_single(self, platform: str, content: str, workspace_id: str,
                             media_urls: Optional[List[str]] = None) -> Dict[str, Any]:
        return await self.client.post('/platforms/publish', {
            'platform': platform,
            'content': content,
            'media_urls': media_urls or [],
            'workspace_id': workspace_id,
        })
