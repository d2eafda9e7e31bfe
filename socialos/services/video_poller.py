# =============================================================================
# AI VIDEO GENERATION POLLER
# =============================================================================
# Every 15 seconds, check all videos still generating. Completed videos are
# saved to the media library; failed ones stop being tracked. Each tick first
# picks up workspace posts whose video operation is still running.

import asyncio
from dataclasses import dataclass
from typing import Dict, List, Optional

from .media_service import AIService, MediaService
from .notifications import NotificationCenter
from .posts_service import PostsService
from ..config.settings import settings
from ..models.post import VideoOperation
from ..utils.logger import logger
from ..utils.periodic import PeriodicPoller


@dataclass
class TrackedVideo:
    post_id: str
    topic: str
    operation_id: str
    status_message: str = 'Starting video generation...'
    operation: Optional[VideoOperation] = None
    video_url: Optional[str] = None
    finished: bool = False


class VideoStatusPoller:
    def __init__(self, ai: AIService, media: MediaService, notifications: NotificationCenter,
                 workspace_id: Optional[str], interval: Optional[float] = None,
                 posts: Optional[PostsService] = None):
        self.ai = ai
        self.media = media
        self.notifications = notifications
        self.workspace_id = workspace_id
        self.posts = posts
        self.videos: Dict[str, TrackedVideo] = {}
        self.poller = PeriodicPoller('video-poller', interval or settings.VIDEO_POLL_INTERVAL, self.poll_video_statuses)

    def start(self):
        return self.poller.start()

    async def stop(self):
        await self.poller.stop()

    def track(self, post_id: str, topic: str, operation_id: str) -> TrackedVideo:
        video = TrackedVideo(post_id=post_id, topic=topic, operation_id=operation_id)
        self.videos[post_id] = video
        return video

    def active(self) -> List[TrackedVideo]:
        return [video for video in self.videos.values() if not video.finished]

    async def sync_from_posts(self) -> int:
        """Track workspace posts with a running video operation; returns how many were added"""
        if self.posts is None or not self.workspace_id:
            return 0
        try:
            posts = await self.posts.get_posts(self.workspace_id)
        except Exception as e:
            logger.error(f"❌ Failed to load posts for video polling: {str(e)}")
            return 0

        added = 0
        for post in posts:
            if not post.is_generating_video:
                continue
            known = self.videos.get(post.id)
            if known is not None and known.operation_id == post.video_operation_id:
                continue
            self.track(post.id, post.topic, post.video_operation_id)
            added += 1
        if added:
            logger.info(f"🎬 Tracking {added} new video generation(s)")
        return added

    async def poll_video_statuses(self) -> Dict[str, int]:
        """One tick: check every active video concurrently"""
        await self.sync_from_posts()
        active = self.active()
        if not active:
            return {'items': 0, 'failures': 0}

        logger.info(f"🎬 Checking {len(active)} active video generation(s)")
        results = await asyncio.gather(
            *(self.ai.get_video_status(video.operation_id) for video in active),
            return_exceptions=True
        )

        failures = 0
        for video, result in zip(active, results):
            if isinstance(result, Exception):
                failures += 1
                logger.error(f"❌ Video status check failed for {video.operation_id}: {result}")
                continue
            await self._apply(video, result)

        return {'items': len(active), 'failures': failures}

    async def _apply(self, video: TrackedVideo, operation: VideoOperation):
        video.operation = operation

        if operation.status == 'completed':
            video.finished = True
            video.video_url = operation.url
            try:
                if self.workspace_id and operation.url:
                    await self.media.auto_save_ai_media(operation.url, 'video', self.workspace_id, topic=video.topic)
            except Exception as e:
                logger.error(f"❌ Failed to save completed video for {video.post_id}: {str(e)}")
                video.status_message = 'Failed.'
                return
            video.status_message = 'Completed!'
            self.notifications.add('video_complete', 'Video Generation Complete',
                                   f'Video for "{video.topic}" is ready!', post_id=video.post_id)

        elif operation.status == 'failed':
            video.finished = True
            video.status_message = f"Failed: {operation.error_message}"

        else:
            video.status_message = f"Processing... {operation.progress}%"
