# =============================================================================
# MEDIA LIBRARY AND AI MEDIA SERVICES
# =============================================================================

import time
from typing import Any, Dict, Optional

from .api_client import ApiClient, unwrap_envelope
from ..exceptions import APIError, VideoStatusError, WorkspaceRequiredError
from ..models.post import VideoOperation
from ..utils.logger import logger


class MediaService:
    def __init__(self, client: ApiClient):
        self.client = client

    async def upload_base64(self, base64_data: str, file_name: str, media_type: str,
                            workspace_id: str) -> Dict[str, Any]:
        return await self.client.post('/media/upload/base64', {
            'base64Data': base64_data,
            'fileName': file_name,
            'type': media_type,
        }, params={'workspace_id': workspace_id})

    async def auto_save_ai_media(self, url: str, media_type: str, workspace_id: Optional[str],
                                 topic: Optional[str] = None) -> Dict[str, Any]:
        """Store AI-generated media in the workspace library; returns the saved asset"""
        if not workspace_id:
            raise WorkspaceRequiredError("Workspace ID is required for media storage")

        extension = 'png' if media_type == 'image' else 'mp4'
        file_name = f"{media_type}_{int(time.time() * 1000)}.{extension}"

        response = await self.upload_base64(url, file_name, media_type, workspace_id)
        data = unwrap_envelope(response)
        if not (isinstance(response, dict) and response.get('success') and isinstance(data, dict)):
            raise APIError("Failed to upload media to the library", response_body=response)

        logger.info(f"💾 Saved AI {media_type} to media library: {file_name}")
        return {
            'name': file_name,
            'type': media_type,
            'url': data.get('url'),
            'tags': [topic] if topic else [],
            'source': 'ai-generated',
        }


class AIService:
    def __init__(self, client: ApiClient):
        self.client = client

    async def get_video_status(self, video_id: str) -> VideoOperation:
        body = await self.client.get(f"/ai/media/video/{video_id}/status")
        data = unwrap_envelope(body)
        video = data.get('video') if isinstance(data, dict) else None
        if not isinstance(video, dict):
            raise VideoStatusError("Video status response had no video", operation_id=video_id)
        video.setdefault('id', video_id)
        return VideoOperation.from_api(video)
