# =============================================================================
# SCHEDULED POST PUBLISHER
# =============================================================================
# Every minute: publish scheduled posts whose time has come, archive them to
# the library and remove them from the posts table. One failing post never
# stops the others.

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .notifications import NotificationCenter
from .platform_service import PlatformService
from .posts_service import LibraryService, PostsService
from ..config.settings import settings
from ..exceptions import PostValidationError, PublishError
from ..models.post import Post
from ..utils.logger import logger
from ..utils.periodic import PeriodicPoller
from ..utils.structured_logger import structured_logger


class ScheduledPostPublisher:
    def __init__(self, posts: PostsService, platforms: PlatformService, library: LibraryService,
                 notifications: NotificationCenter, workspace_id: Optional[str],
                 interval: Optional[float] = None):
        self.posts = posts
        self.platforms = platforms
        self.library = library
        self.notifications = notifications
        self.workspace_id = workspace_id
        self.poller = PeriodicPoller('scheduled-publisher', interval or settings.SCHEDULED_POST_INTERVAL,
                                     self.check_scheduled_posts)

    def start(self):
        return self.poller.start()

    async def stop(self):
        await self.poller.stop()

    @staticmethod
    def build_publish_payload(post: Post) -> Dict[str, Any]:
        """Content per platform and media URLs; raises PostValidationError for incomplete posts"""
        if not post.platforms:
            raise PostValidationError('No platforms selected', post_id=post.id)

        content_by_platform = {}
        for platform in post.platforms:
            content = post.content_for(platform)
            if not content:
                raise PostValidationError(f"No content for {platform}", post_id=post.id, field=platform)
            content_by_platform[platform] = content

        return {
            'platforms': list(post.platforms),
            'content_by_platform': content_by_platform,
            'media_urls': post.media_urls,
        }

    async def publish_post(self, post: Post) -> Dict[str, Any]:
        if not self.workspace_id:
            raise PublishError('No workspace selected', post_id=post.id)

        payload = self.build_publish_payload(post)
        result = await self.platforms.publish_to_multiple_platforms(
            payload['platforms'], payload['content_by_platform'], self.workspace_id,
            media_urls=payload['media_urls']
        )

        if isinstance(result, dict) and result.get('success'):
            await self.library.create_library_item(
                self.workspace_id, post.topic,
                {'post': post.to_dict(), 'publishResult': result},
                'published_post'
            )

        await self.posts.delete_post(post.id)
        structured_logger.log_post_published(post.id, post.platforms)
        self.notifications.add('post_published', 'Post Published',
                               f"Posted to {len(post.platforms)} platforms", post_id=post.id)
        return result

    async def check_scheduled_posts(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """One tick: publish every due post"""
        if not self.workspace_id:
            logger.debug("Scheduled publisher idle: no workspace")
            return {'items': 0, 'failures': 0}

        now = now or datetime.now(timezone.utc)
        scheduled: List[Post] = await self.posts.get_scheduled_posts(self.workspace_id)
        due = [post for post in scheduled if post.is_due(now)]

        failures = 0
        for post in due:
            try:
                await self.publish_post(post)
            except PostValidationError as e:
                failures += 1
                self.notifications.add('error', 'Validation Error', e.message, post_id=post.id)
            except Exception as e:
                failures += 1
                logger.error(f"❌ Failed to auto-publish post {post.id}: {str(e)}")
                self.notifications.add('error', 'Publishing Error',
                                       f'Failed to publish "{post.topic}"', post_id=post.id)

        return {'items': len(due), 'failures': failures}
