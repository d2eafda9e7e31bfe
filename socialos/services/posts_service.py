# =============================================================================
# POSTS AND LIBRARY SERVICES
# =============================================================================

from typing import Any, Dict, List, Optional

from .api_client import ApiClient, unwrap_envelope
from ..models.post import Post


class PostsService:
    def __init__(self, client: ApiClient):
        self.client = client

    @staticmethod
    def _posts_from(body: Any) -> List[Post]:
        body = unwrap_envelope(body)
        if isinstance(body, dict):
            body = body.get('items') or []
        return [Post.from_api(item) for item in body or [] if isinstance(item, dict) and item.get('id')]

    async def get_posts(self, workspace_id: str, status: Optional[str] = None) -> List[Post]:
        """First page of the workspace's posts (GET /posts is paginated)"""
        params = {'workspace_id': workspace_id}
        if status:
            params['status'] = status
        return self._posts_from(await self.client.get('/posts', params=params))

    async def get_scheduled_posts(self, workspace_id: str) -> List[Post]:
        return self._posts_from(await self.client.get('/posts/scheduled', params={'workspace_id': workspace_id}))

    async def delete_post(self, post_id: str):
        await self.client.delete(f"/posts/{post_id}")

    async def update_post_status(self, post_id: str, status: str) -> Dict[str, Any]:
        return await self.client.patch(f"/posts/{post_id}/status", {'status': status})


class LibraryService:
    def __init__(self, client: ApiClient):
        self.client = client

    async def create_library_item(self, workspace_id: str, title: str, content: Any,
                                  item_type: str, tags: Optional[List[str]] = None) -> Dict[str, Any]:
        payload = {
            'workspace_id': workspace_id,
            'title': title,
            'content': content,
            'type': item_type,
        }
        if tags:
            payload['tags'] = tags
        return await self.client.post('/library', payload)
