# =============================================================================
# OAUTH CALLBACK PARAMETER PARSING
# =============================================================================
# After consent the backend redirects back with the outcome in the query
# string. Current callbacks use oauth_success / oauth_error; older ones
# used <platform>_connected=true and error=<code>.

from dataclasses import dataclass
from typing import Any, Mapping, Optional
from urllib.parse import parse_qsl, urlsplit

from ..models.platform import Platform

LEGACY_SUCCESS_PARAMS = {f"{platform.value}_connected": platform for platform in Platform}

CALLBACK_PARAM_NAMES = frozenset({'oauth_success', 'oauth_error', 'error'} | set(LEGACY_SUCCESS_PARAMS))


@dataclass(frozen=True)
class CallbackParams:
    success: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def has_callback(self) -> bool:
        return bool(self.success or self.error_code)

    @property
    def success_platform(self) -> Optional[Platform]:
        return Platform.parse(self.success)

    @property
    def key(self) -> str:
        """Identifies one callback so it is processed once per session"""
        return f"{self.success or ''}_{self.error_code or ''}"


def _first(params: Mapping[str, Any], name: str) -> Optional[str]:
    value = params.get(name)
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def parse_callback_params(params: Mapping[str, Any]) -> CallbackParams:
    """Read the callback outcome from query parameters (a dict, MultiDict or parse_qs result)"""
    success = _first(params, 'oauth_success')
    error_code = _first(params, 'oauth_error')

    if not success:
        for name, platform in LEGACY_SUCCESS_PARAMS.items():
            if _first(params, name) == 'true':
                success = platform.value
                break

    if not error_code:
        error_code = _first(params, 'error')

    return CallbackParams(success=success, error_code=error_code)


def parse_callback_url(url: str) -> CallbackParams:
    return parse_callback_params(dict(parse_qsl(urlsplit(url).query)))


def strip_callback_params(params: Mapping[str, Any]) -> dict:
    """Query parameters left once the callback ones are removed"""
    return {name: value for name, value in params.items() if name not in CALLBACK_PARAM_NAMES}
