# =============================================================================
# API CLIENT AND SERVICE TESTS
# =============================================================================
# ApiClient._send is patched so no HTTP traffic happens.

import pytest
import sys
import os
from unittest.mock import AsyncMock, MagicMock, patch
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from socialos.exceptions import (
    APIError,
    AuthenticationError,
    AuthorizationUrlError,
    NetworkError,
    VideoStatusError,
    WorkspaceRequiredError,
)
from socialos.models.platform import Platform
from socialos.services.api_client import ApiClient, extract_error_detail, unwrap_envelope
from socialos.services.media_service import AIService, MediaService
from socialos.services.platform_service import PlatformService
from socialos.services.posts_service import LibraryService, PostsService
from socialos.utils.token_store import TokenStore

BASE_URL = 'https://api.example.com/api/v1'


@pytest.fixture
def tokens():
    return TokenStore('access-1', 'refresh-1')


@pytest.fixture
def client(tokens):
    return ApiClient(base_url=BASE_URL, tokens=tokens, timeout=5)


class TestErrorDetail:
    def test_detail_field(self):
        assert extract_error_detail({'detail': 'Workspace not found'}) == 'Workspace not found'

    def test_validation_error_list(self):
        body = {'detail': [{'loc': ['query', 'workspace_id'], 'msg': 'field required'}]}
        assert extract_error_detail(body) == 'field required'

    def test_nested_error(self):
        assert extract_error_detail({'error': {'message': 'Rate limited'}}) == 'Rate limited'

    def test_fallback(self):
        assert extract_error_detail(None) == 'An error occurred'
        assert extract_error_detail({}, 'Custom') == 'Custom'
        assert extract_error_detail('Bad Gateway') == 'Bad Gateway'

    def test_unwrap_envelope(self):
        assert unwrap_envelope({'success': True, 'data': [1]}) == [1]
        assert unwrap_envelope({'items': []}) == {'items': []}


class TestApiClient:
    @pytest.mark.asyncio
    async def test_request_adds_token_and_drops_none_params(self, client):
        on_success = MagicMock()
        client.on_success = on_success
        with patch.object(client, '_send', new=AsyncMock(return_value=(200, {'ok': True}))) as send:
            body = await client.get('/credentials/status', params={'workspace_id': 'ws-1', 'cursor': None})

        assert body == {'ok': True}
        method, url, params, json_body, headers, timeout = send.await_args.args
        assert method == 'GET'
        assert url == f"{BASE_URL}/credentials/status"
        assert params == {'workspace_id': 'ws-1'}
        assert headers == {'Authorization': 'Bearer access-1'}
        on_success.assert_called_once()

    @pytest.mark.asyncio
    async def test_error_status_raises_with_detail(self, client):
        with patch.object(client, '_send', new=AsyncMock(return_value=(400, {'detail': 'Platform not configured'}))):
            with pytest.raises(APIError) as exc_info:
                await client.get('/oauth/tiktok/authorize')

        assert exc_info.value.status_code == 400
        assert exc_info.value.detail == 'Platform not configured'
        assert not exc_info.value.retryable
        assert client.get_performance_metrics()['failed_requests'] == 1

    @pytest.mark.asyncio
    async def test_server_error_is_retryable(self, client):
        with patch.object(client, '_send', new=AsyncMock(return_value=(503, None))):
            with pytest.raises(APIError) as exc_info:
                await client.get('/credentials/status')
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_401_refreshes_and_replays(self, client, tokens):
        responses = [
            (401, {'detail': 'Token expired'}),
            (200, {'access_token': 'access-2', 'refresh_token': 'refresh-2'}),
            (200, {'ok': True}),
        ]
        with patch.object(client, '_send', new=AsyncMock(side_effect=responses)) as send:
            body = await client.get('/credentials/status')

        assert body == {'ok': True}
        assert tokens.access_token == 'access-2'
        assert tokens.refresh_token == 'refresh-2'

        refresh_call = send.await_args_list[1]
        assert refresh_call.args[1] == f"{BASE_URL}/auth/refresh"
        assert refresh_call.kwargs['json_body'] == {'refresh_token': 'refresh-1'}
        assert send.await_args_list[2].args[4] == {'Authorization': 'Bearer access-2'}

    @pytest.mark.asyncio
    async def test_failed_refresh_clears_tokens(self, client, tokens):
        responses = [(401, {'detail': 'Token expired'}), (401, {'detail': 'Invalid refresh token'})]
        with patch.object(client, '_send', new=AsyncMock(side_effect=responses)):
            with pytest.raises(AuthenticationError):
                await client.get('/credentials/status')

        assert not tokens.is_authenticated
        assert tokens.refresh_token is None

    @pytest.mark.asyncio
    async def test_no_refresh_token(self):
        tokens = TokenStore('access-1', None)
        client = ApiClient(base_url=BASE_URL, tokens=tokens)
        with patch.object(client, '_send', new=AsyncMock(return_value=(401, None))) as send:
            with pytest.raises(AuthenticationError):
                await client.get('/credentials/status')

        assert send.await_count == 1
        assert not tokens.is_authenticated

    @pytest.mark.asyncio
    async def test_replayed_401_raises(self, client):
        responses = [(401, None), (200, {'access_token': 'access-2'}), (401, {'detail': 'Still no'})]
        with patch.object(client, '_send', new=AsyncMock(side_effect=responses)):
            with pytest.raises(AuthenticationError):
                await client.get('/credentials/status')


class TestTransportRetry:
    """Reads survive a dropped connection; writes are never resent"""

    @pytest.fixture(autouse=True)
    def no_backoff(self):
        with patch('socialos.utils.retry.calculate_delay', return_value=0):
            yield

    @pytest.mark.asyncio
    async def test_get_retried_after_network_error(self, client):
        responses = [NetworkError("connection reset"), (200, [])]
        with patch.object(client, '_send', new=AsyncMock(side_effect=responses)) as send:
            body = await client.get('/credentials/status')

        assert body == []
        assert send.await_count == 2

    @pytest.mark.asyncio
    async def test_get_gives_up_after_three_attempts(self, client):
        with patch.object(client, '_send', new=AsyncMock(side_effect=NetworkError("down"))) as send:
            with pytest.raises(NetworkError):
                await client.get('/credentials/status')
        assert send.await_count == 3

    @pytest.mark.asyncio
    async def test_post_sent_once(self, client):
        with patch.object(client, '_send', new=AsyncMock(side_effect=NetworkError("down"))) as send:
            with pytest.raises(NetworkError):
                await client.post('/platforms/publish/multiple', {'platforms': ['twitter']})
        assert send.await_count == 1

    @pytest.mark.asyncio
    async def test_http_errors_not_retried(self, client):
        with patch.object(client, '_send', new=AsyncMock(return_value=(503, None))) as send:
            with pytest.raises(APIError):
                await client.get('/credentials/status')
        assert send.await_count == 1


class TestPlatformService:
    @pytest.fixture
    def api(self):
        api = MagicMock()
        api.get = AsyncMock()
        api.post = AsyncMock()
        api.delete = AsyncMock()
        return api

    @pytest.mark.asyncio
    async def test_credential_status(self, api):
        api.get.return_value = {'success': True, 'data': [
            {'platform': 'twitter', 'connected': True, 'username': 'me'},
            {'platform': 'myspace', 'connected': True},
            'garbage',
        ]}

        statuses = await PlatformService(api).get_credential_status('ws-1')

        api.get.assert_awaited_once_with('/credentials/status', params={'workspace_id': 'ws-1'})
        assert [s.platform for s in statuses] == [Platform.TWITTER]
        assert statuses[0].username == 'me'

    @pytest.mark.asyncio
    async def test_credential_status_wrapped_in_dict(self, api):
        api.get.return_value = {'credentials': [{'platform': 'youtube', 'connected': False}]}
        statuses = await PlatformService(api).get_credential_status()
        api.get.assert_awaited_once_with('/credentials/status', params={})
        assert statuses[0].platform == Platform.YOUTUBE

    @pytest.mark.asyncio
    async def test_credential_status_bad_shape(self, api):
        api.get.return_value = 'nope'
        with pytest.raises(APIError):
            await PlatformService(api).get_credential_status('ws-1')

    @pytest.mark.asyncio
    async def test_authorization_url(self, api):
        api.get.return_value = {'authorization_url': 'https://x.example.com/consent'}
        url = await PlatformService(api).get_authorization_url(Platform.TWITTER, 'ws-1')
        assert url == 'https://x.example.com/consent'
        api.get.assert_awaited_once_with('/oauth/twitter/authorize', params={'workspace_id': 'ws-1'})

    @pytest.mark.asyncio
    async def test_authorization_url_redirect_key(self, api):
        api.get.return_value = {'success': True, 'data': {'redirectUrl': 'https://li.example.com/consent'}}
        assert await PlatformService(api).get_authorization_url(Platform.LINKEDIN, 'ws-1') == \
            'https://li.example.com/consent'

    @pytest.mark.asyncio
    async def test_authorization_url_missing(self, api):
        api.get.return_value = {}
        with pytest.raises(AuthorizationUrlError) as exc_info:
            await PlatformService(api).get_authorization_url(Platform.TIKTOK, 'ws-1')
        assert exc_info.value.platform == 'tiktok'

    @pytest.mark.asyncio
    async def test_disconnect(self, api):
        await PlatformService(api).disconnect_platform(Platform.FACEBOOK, 'ws-1')
        api.delete.assert_awaited_once_with('/credentials/facebook/disconnect', params={'workspace_id': 'ws-1'})

    @pytest.mark.asyncio
    async def test_publish_multiple(self, api):
        await PlatformService(api).publish_to_multiple_platforms(['twitter'], {'twitter': 'hi'}, 'ws-1')
        path, payload = api.post.await_args.args
        assert path == '/platforms/publish/multiple'
        assert payload['media_urls'] == []
        assert payload['workspace_id'] == 'ws-1'


class TestPostsAndMedia:
    @pytest.fixture
    def api(self):
        api = MagicMock()
        api.get = AsyncMock()
        api.post = AsyncMock()
        api.delete = AsyncMock()
        return api

    @pytest.mark.asyncio
    async def test_scheduled_posts(self, api):
        api.get.return_value = [
            {'id': 'p1', 'topic': 'A', 'platforms': ['twitter'], 'content': {'twitter': 'hi'}, 'status': 'scheduled'},
            {'topic': 'no id'},
        ]
        posts = await PostsService(api).get_scheduled_posts('ws-1')
        assert [p.id for p in posts] == ['p1']

    @pytest.mark.asyncio
    async def test_posts_page(self, api):
        api.get.return_value = {'items': [
            {'id': 'p2', 'topic': 'Teaser', 'video_operation': {'id': 'op-2', 'status': 'processing'}},
        ], 'total': 1, 'page': 1}

        posts = await PostsService(api).get_posts('ws-1')

        api.get.assert_awaited_once_with('/posts', params={'workspace_id': 'ws-1'})
        assert posts[0].video_operation_id == 'op-2'
        assert posts[0].is_generating_video

    @pytest.mark.asyncio
    async def test_library_item(self, api):
        await LibraryService(api).create_library_item('ws-1', 'Title', {'a': 1}, 'published_post', tags=['x'])
        path, payload = api.post.await_args.args
        assert path == '/library'
        assert payload['type'] == 'published_post'
        assert payload['tags'] == ['x']

    @pytest.mark.asyncio
    async def test_auto_save_requires_workspace(self, api):
        with pytest.raises(WorkspaceRequiredError):
            await MediaService(api).auto_save_ai_media('https://cdn/v.mp4', 'video', None)

    @pytest.mark.asyncio
    async def test_auto_save(self, api):
        api.post.return_value = {'success': True, 'data': {'url': 'https://storage/v.mp4'}}

        asset = await MediaService(api).auto_save_ai_media('https://cdn/v.mp4', 'video', 'ws-1', topic='Launch')

        assert asset['url'] == 'https://storage/v.mp4'
        assert asset['name'].endswith('.mp4')
        assert asset['tags'] == ['Launch']
        assert api.post.await_args.kwargs['params'] == {'workspace_id': 'ws-1'}

    @pytest.mark.asyncio
    async def test_auto_save_failure(self, api):
        api.post.return_value = {'success': False}
        with pytest.raises(APIError):
            await MediaService(api).auto_save_ai_media('https://cdn/i.png', 'image', 'ws-1')

    @pytest.mark.asyncio
    async def test_video_status(self, api):
        api.get.return_value = {'success': True, 'data': {'video': {'status': 'processing', 'progress': 40}}}
        operation = await AIService(api).get_video_status('op-1')
        assert operation.id == 'op-1'
        assert operation.progress == 40
        api.get.assert_awaited_once_with('/ai/media/video/op-1/status')

    @pytest.mark.asyncio
    async def test_video_status_missing_video(self, api):
        api.get.return_value = {'success': True, 'data': {}}
        with pytest.raises(VideoStatusError):
            await AIService(api).get_video_status('op-1')
