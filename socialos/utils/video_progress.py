# =============================================================================
# VIDEO GENERATION PROGRESS HELPERS
# =============================================================================
# Estimates for AI video operations. The backend reports only timestamps,
# so progress is derived from elapsed time against a typical run.

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..models.platform import parse_timestamp

ESTIMATED_TOTAL_SECONDS = 180
MAX_ESTIMATED_PROGRESS = 95
# Shown when the operation carries no timing information
DEFAULT_PROGRESS = 10


def _elapsed_seconds(created_at: Any, now: Optional[datetime] = None) -> Optional[float]:
    created = parse_timestamp(created_at)
    if created is None:
        return None
    now = now or datetime.now(timezone.utc)
    return (now - created).total_seconds()


def calculate_video_progress(operation: Optional[Dict[str, Any]], now: Optional[datetime] = None) -> int:
    """Percentage 0-100 for a video operation payload"""
    if not operation:
        return 0
    if operation.get('done'):
        return 100

    metadata = operation.get('metadata') or {}
    if metadata.get('createTime') and metadata.get('updateTime'):
        elapsed = _elapsed_seconds(metadata['createTime'], now)
        if elapsed is not None:
            progress = min(max(elapsed, 0.0) / ESTIMATED_TOTAL_SECONDS * 100, MAX_ESTIMATED_PROGRESS)
            return round(progress)

    return DEFAULT_PROGRESS


def get_video_status_message(operation: Optional[Dict[str, Any]], fallback: str = 'Processing...') -> str:
    if not operation:
        return fallback

    if operation.get('done'):
        if operation.get('error'):
            return 'Generation failed'
        if operation.get('response'):
            return 'Finalizing video...'
        return 'Complete!'

    metadata = operation.get('metadata') or {}
    return metadata.get('status') or metadata.get('state') or fallback


def is_video_operation_in_progress(operation: Optional[Dict[str, Any]]) -> bool:
    if not operation:
        return False
    return not operation.get('done') and not operation.get('error')


def get_estimated_time_remaining(operation: Optional[Dict[str, Any]], now: Optional[datetime] = None) -> Optional[int]:
    """Seconds left, or None when finished or the start time is unknown"""
    if not operation or operation.get('done'):
        return None

    metadata = operation.get('metadata') or {}
    elapsed = _elapsed_seconds(metadata.get('createTime'), now)
    if elapsed is None:
        return None
    return round(max(0.0, ESTIMATED_TOTAL_SECONDS - elapsed))
