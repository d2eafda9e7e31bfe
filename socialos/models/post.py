# =============================================================================
# DATA MODELS FOR POSTS, VIDEO OPERATIONS AND NOTIFICATIONS
# =============================================================================

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

from .platform import parse_timestamp


@dataclass
class VideoOperation:
    """An AI video generation job tracked by the backend"""
    id: str
    status: str = 'processing'
    progress: int = 0
    url: Optional[str] = None
    error: Optional[Dict[str, Any]] = None
    done: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'VideoOperation':
        """Create from the ``video`` object of GET /ai/media/video/{id}/status"""
        status = data.get('status', 'processing')
        return cls(
            id=str(data.get('id', '')),
            status=status,
            progress=int(data.get('progress') or 0),
            url=data.get('url') or data.get('video_url'),
            error=data.get('error'),
            done=bool(data.get('done', status in ('completed', 'failed'))),
            metadata=data.get('metadata') or {},
        )

    @property
    def is_finished(self) -> bool:
        return self.status in ('completed', 'failed')

    @property
    def error_message(self) -> str:
        if isinstance(self.error, dict) and self.error.get('message'):
            return self.error['message']
        return 'Video generation failed'


@dataclass
class Post:
    """A drafted or scheduled post as stored by the backend"""
    id: str
    workspace_id: str
    topic: str
    platforms: List[str]
    content: Dict[str, Any]
    status: str = 'draft'  # 'draft', 'scheduled', 'published', 'failed'
    scheduled_at: Optional[datetime] = None
    generated_image: Optional[str] = None
    generated_video_url: Optional[str] = None
    campaign_id: Optional[str] = None
    video_operation_id: Optional[str] = None
    video_operation_status: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'Post':
        """Create Post object from a backend post payload"""
        content = data.get('content') or {}
        operation = data.get('video_operation') or content.get('video_operation') or {}
        if not isinstance(operation, dict):
            operation = {}
        operation_id = operation.get('id') or data.get('video_operation_id')
        return cls(
            id=str(data['id']),
            workspace_id=data.get('workspace_id', ''),
            topic=data.get('topic', ''),
            platforms=list(data.get('platforms') or []),
            content=content,
            status=data.get('status', 'draft'),
            scheduled_at=parse_timestamp(data.get('scheduled_at')),
            generated_image=data.get('generated_image') or content.get('generated_image'),
            generated_video_url=data.get('generated_video_url') or content.get('generated_video_url'),
            campaign_id=data.get('campaign_id'),
            video_operation_id=str(operation_id) if operation_id else None,
            video_operation_status=operation.get('status') or data.get('video_operation_status'),
        )

    @property
    def is_generating_video(self) -> bool:
        """A video operation is attached and has not finished yet"""
        return bool(self.video_operation_id) and self.video_operation_status not in ('completed', 'failed')

    def is_due(self, now: Optional[datetime] = None) -> bool:
        if self.status != 'scheduled' or self.scheduled_at is None:
            return False
        return self.scheduled_at <= (now or datetime.now(timezone.utc))

    def content_for(self, platform: str) -> str:
        """Publishable text for one platform; '' when there is none"""
        raw = self.content.get(platform)
        if isinstance(raw, str):
            return raw
        if isinstance(raw, dict):
            return raw.get('description') or ''
        return ''

    @property
    def media_urls(self) -> List[str]:
        return [url for url in (self.generated_image, self.generated_video_url) if url]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'workspace_id': self.workspace_id,
            'topic': self.topic,
            'platforms': self.platforms,
            'content': self.content,
            'status': self.status,
            'scheduled_at': self.scheduled_at.isoformat() if self.scheduled_at else None,
            'media_urls': self.media_urls,
            'video_operation_id': self.video_operation_id,
        }


@dataclass
class Notification:
    """A user-facing notice raised by a background loop"""
    kind: str  # 'post_scheduled', 'post_published', 'video_complete', 'error'
    title: str
    message: str
    post_id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    read: bool = False
