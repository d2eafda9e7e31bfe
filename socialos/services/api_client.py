# =============================================================================
# ASYNC SOCIALOS API CLIENT
# =============================================================================
# One aiohttp session per client. Adds the bearer token to every request,
# refreshes it once on a 401 and replays the request, and turns every
# failure into an APIError/NetworkError carrying the backend's detail.

import asyncio
import json
from typing import Any, Callable, Dict, Optional, Tuple

import aiohttp

from ..config.settings import settings
from ..exceptions import APIError, AuthenticationError, NetworkError
from ..utils.logger import logger
from ..utils.retry import retry_async_with_backoff
from ..utils.structured_logger import structured_logger
from ..utils.token_store import TokenStore

DEFAULT_ERROR_DETAIL = 'An error occurred'
# Safe to resend after a transport failure
IDEMPOTENT_METHODS = frozenset({'GET', 'DELETE'})


def extract_error_detail(body: Any, fallback: Optional[str] = None) -> str:
    """Backend errors look like ``{"detail": "..."}``; FastAPI validation errors carry a list"""
    if isinstance(body, dict):
        detail = body.get('detail') or body.get('message') or body.get('error')
        if isinstance(detail, list) and detail:
            first = detail[0]
            detail = first.get('msg') if isinstance(first, dict) else str(first)
        if isinstance(detail, dict):
            detail = detail.get('message')
        if detail:
            return str(detail)
    elif isinstance(body, str) and body.strip():
        return body.strip()
    return fallback or DEFAULT_ERROR_DETAIL


def unwrap_envelope(body: Any) -> Any:
    """Return ``data`` from an ``{"success": ..., "data": ...}`` response, else the body"""
    if isinstance(body, dict) and 'success' in body and 'data' in body:
        return body['data']
    return body


class ApiClient:
    def __init__(self, base_url: Optional[str] = None, tokens: Optional[TokenStore] = None,
                 timeout: Optional[float] = None, on_success: Optional[Callable[[], None]] = None):
        self.base_url = (base_url or settings.API_BASE_URL).rstrip('/')
        self.tokens = tokens or TokenStore.from_settings(settings)
        self.timeout = timeout or settings.API_TIMEOUT_SECONDS
        self.on_success = on_success
        self.session: Optional[aiohttp.ClientSession] = None

        # Performance tracking
        self.total_requests = 0
        self.failed_requests = 0

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def initialize(self):
        if self.session is not None and not self.session.closed:
            return
        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            headers={
                'Content-Type': 'application/json',
                'Accept': 'application/json',
                'User-Agent': 'SocialOS-Client/1.0'
            }
        )

    async def close(self):
        if self.session is not None:
            await self.session.close()
            self.session = None

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _auth_headers(self) -> Dict[str, str]:
        if self.tokens.access_token:
            return {'Authorization': f"Bearer {self.tokens.access_token}"}
        return {}

    async def _send(self, method: str, url: str, params: Optional[Dict[str, Any]] = None,
                    json_body: Any = None, headers: Optional[Dict[str, str]] = None,
                    timeout: Optional[float] = None) -> Tuple[int, Any]:
        """Perform one HTTP exchange; returns (status, decoded body)"""
        await self.initialize()
        request_timeout = aiohttp.ClientTimeout(total=timeout) if timeout else None
        try:
            async with self.session.request(method, url, params=params, json=json_body,
                                            headers=headers, timeout=request_timeout) as response:
                text = await response.text()
                try:
                    body = json.loads(text) if text else None
                except ValueError:
                    body = text
                return response.status, body
        except aiohttp.ClientError as e:
            raise NetworkError(f"Request to {url} failed: {str(e)}",
                               context={'method': method, 'url': url}) from e
        except asyncio.TimeoutError as e:
            raise NetworkError(f"Request to {url} timed out",
                               context={'method': method, 'url': url}) from e

    @retry_async_with_backoff(retryable_exceptions=(NetworkError,))
    async def _send_idempotent(self, *args) -> Tuple[int, Any]:
        return await self._send(*args)

    async def _exchange(self, method: str, url: str, params: Optional[Dict[str, Any]],
                        json_body: Any, timeout: Optional[float]) -> Tuple[int, Any]:
        """Transport failures of GET/DELETE are retried; writes are sent once"""
        send = self._send_idempotent if method in IDEMPOTENT_METHODS else self._send
        return await send(method, url, params, json_body, self._auth_headers(), timeout)

    async def request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
                      json_body: Any = None, timeout: Optional[float] = None) -> Any:
        """Send an authenticated request and return the decoded body"""
        url = self.url_for(path)
        params = {k: v for k, v in (params or {}).items() if v is not None} or None
        self.total_requests += 1

        with structured_logger.time_operation('api_request', method=method, path=path) as timing:
            status, body = await self._exchange(method, url, params, json_body, timeout)

            if status == 401:
                logger.info(f"🔑 {method} {path} returned 401, refreshing session")
                await self.refresh_access_token()
                status, body = await self._exchange(method, url, params, json_body, timeout)
            timing['status_code'] = status

            if status >= 400:
                self.failed_requests += 1
                detail = extract_error_detail(body)
                if status == 401:
                    raise AuthenticationError(detail, status_code=status, response_body=body)
                raise APIError(detail, status_code=status, response_body=body, detail=detail)

        if self.on_success:
            self.on_success()
        return body

    async def refresh_access_token(self) -> str:
        """Exchange the refresh token for a new access token; clears both on failure"""
        refresh_token = self.tokens.refresh_token
        if not refresh_token:
            self.tokens.clear()
            raise AuthenticationError()

        try:
            status, body = await self._send('POST', self.url_for('/auth/refresh'),
                                            json_body={'refresh_token': refresh_token})
        except NetworkError:
            self.tokens.clear()
            raise

        access_token = body.get('access_token') if isinstance(body, dict) else None
        if status >= 400 or not access_token:
            self.tokens.clear()
            logger.warning("⚠️ Session refresh failed, tokens cleared")
            raise AuthenticationError(extract_error_detail(body, "Session expired. Please log in again."),
                                      status_code=status, response_body=body)

        self.tokens.update(access_token, body.get('refresh_token'))
        logger.info("✅ Session refreshed")
        return access_token

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        return await self.request('GET', path, params=params, **kwargs)

    async def post(self, path: str, json_body: Any = None, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        return await self.request('POST', path, params=params, json_body=json_body, **kwargs)

    async def put(self, path: str, json_body: Any = None, **kwargs) -> Any:
        return await self.request('PUT', path, json_body=json_body, **kwargs)

    async def patch(self, path: str, json_body: Any = None, **kwargs) -> Any:
        return await self.request('PATCH', path, json_body=json_body, **kwargs)

    async def delete(self, path: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        return await self.request('DELETE', path, params=params, **kwargs)

    def get_performance_metrics(self) -> Dict[str, Any]:
        success = self.total_requests - self.failed_requests
        return {
            'total_requests': self.total_requests,
            'failed_requests': self.failed_requests,
            'success_rate_percent': (success / self.total_requests * 100) if self.total_requests else 0.0
        }
