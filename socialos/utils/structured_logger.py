# =============================================================================
# STRUCTURED JSON LOGGING SYSTEM
# =============================================================================
# JSON-formatted events for the connection flow and the polling loops.
#
# - JSON file output for machine processing, plain text for humans
# - event= keyword metadata attached to every structured record
# - time_operation() context manager for timing backend calls
# =============================================================================

import json
import os
import time
import logging
import threading
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from pathlib import Path
from contextlib import contextmanager

class StructuredFormatter(logging.Formatter):
    """Custom formatter that outputs JSON structured logs"""

    def __init__(self):
        super().__init__()
        self.hostname = "socialos-client"

    def format(self, record):
        """Format log record as JSON structure"""
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "thread": threading.current_thread().name,
            "hostname": self.hostname
        }

        if hasattr(record, 'structured_data'):
            log_entry.update(record.structured_data)

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info) if record.exc_info else None
            }

        return json.dumps(log_entry, ensure_ascii=False, default=str)

class StructuredLogger:
    """
    Logger that supports both traditional and structured JSON logging

    Keyword arguments passed to info/warning/error/debug are attached to the
    record and end up as top-level keys of the JSON line.
    """

    def __init__(self, name="socialos.events", enable_json=True, log_dir=None):
        self.logger_name = name
        self.enable_json = enable_json
        self.log_dir = Path(log_dir or os.getenv('LOG_DIR', 'logs'))

        self.log_dir.mkdir(exist_ok=True)

        self.logger = logging.getLogger(name)
        if not self.logger.handlers:
            self._setup_handlers()

    def _setup_handlers(self):
        """Set up logging handlers for both JSON and human-readable output"""
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False

        today = datetime.now().strftime('%Y-%m-%d')

        if self.enable_json:
            json_handler = logging.FileHandler(self.json_log_path(today))
            json_handler.setLevel(logging.INFO)
            json_handler.setFormatter(StructuredFormatter())
            self.logger.addHandler(json_handler)

        text_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(text_formatter)
        self.logger.addHandler(console_handler)

    def _create_structured_record(self, level: str, message: str, **structured_data):
        """Create a log record with structured data"""
        enriched_data = {
            "event_id": f"{int(time.time() * 1000)}_{threading.current_thread().ident}",
            "service": "socialos_client",
            **structured_data
        }

        record = self.logger.makeRecord(
            name=self.logger.name,
            level=getattr(logging, level.upper()),
            fn='',
            lno=0,
            msg=message,
            args=(),
            exc_info=None
        )
        record.structured_data = enriched_data
        return record

    def _log(self, level: str, message: str, **structured_data):
        if structured_data:
            record = self._create_structured_record(level, message, **structured_data)
            if self.logger.isEnabledFor(record.levelno):
                self.logger.handle(record)
        else:
            getattr(self.logger, level.lower())(message)

    def info(self, message: str, **structured_data):
        """Log info message with optional structured data"""
        self._log("INFO", message, **structured_data)

    def warning(self, message: str, **structured_data):
        """Log warning message with optional structured data"""
        self._log("WARNING", message, **structured_data)

    def error(self, message: str, **structured_data):
        """Log error message with optional structured data"""
        self._log("ERROR", message, **structured_data)

    def debug(self, message: str, **structured_data):
        """Log debug message with optional structured data"""
        self._log("DEBUG", message, **structured_data)

    # Structured logging methods for specific events

    def log_connect_started(self, platform: str, workspace_id: str, timeout_seconds: float):
        """Log the start of an authorization attempt"""
        self.info(
            f"Connecting {platform}",
            event="connect_started",
            platform=platform,
            workspace_id=workspace_id,
            timeout_seconds=timeout_seconds
        )

    def log_connect_failed(self, platform: str, error_type: str, error_message: str):
        """Log a connection attempt that ended in a user-visible error"""
        self.error(
            f"Connection failed: {platform}",
            event="connect_failed",
            platform=platform,
            error_type=error_type,
            error_message=error_message
        )

    def log_reconcile_attempt(self, platform: str, attempt: int, max_attempts: int,
                              connected: Optional[bool]):
        """Log a single status poll of the reconciliation loop"""
        self.debug(
            f"Reconcile {platform}: attempt {attempt}/{max_attempts}",
            event="reconcile_attempt",
            platform=platform,
            attempt=attempt,
            max_attempts=max_attempts,
            connected=connected
        )

    def log_reconcile_result(self, platform: str, connected: bool, attempts: int):
        """Log how the reconciliation loop ended"""
        if connected:
            self.info(
                f"Successfully connected {platform}",
                event="reconcile_connected",
                platform=platform,
                attempts=attempts
            )
        else:
            self.warning(
                f"{platform} credentials not found after {attempts} attempts",
                event="reconcile_exhausted",
                platform=platform,
                attempts=attempts
            )

    def log_callback_received(self, success_platform: Optional[str], error_code: Optional[str],
                              duplicate: bool = False):
        """Log an OAuth callback coming back from the backend"""
        self.info(
            "OAuth callback received" + (" (already processed)" if duplicate else ""),
            event="oauth_callback",
            success_platform=success_platform,
            error_code=error_code,
            duplicate=duplicate
        )

    def log_poll_tick(self, poller: str, items: int, failures: int, duration_ms: float):
        """Log one tick of a periodic polling loop"""
        self.info(
            f"{poller} tick: {items} item(s), {failures} failure(s)",
            event="poll_tick",
            poller=poller,
            items=items,
            failures=failures,
            duration_ms=round(duration_ms, 2)
        )

    def log_post_published(self, post_id: str, platforms: list):
        """Log a scheduled post going out"""
        self.info(
            f"Post published: {post_id}",
            event="post_published",
            post_id=post_id,
            platforms=platforms,
            platform_count=len(platforms)
        )

    def json_log_path(self, day: Optional[str] = None) -> Path:
        """The JSON event file for ``day`` (YYYY-MM-DD, default today)"""
        return self.log_dir / f"socialos_{day or datetime.now().strftime('%Y-%m-%d')}.json"

    @contextmanager
    def time_operation(self, operation: str, **context):
        """Time a backend call.

        Yields a dict the caller can add result fields to (for example the
        HTTP status); they are logged with the duration. Completed calls log
        at debug, failed ones as ``operation_failed`` warnings.
        """
        started = time.monotonic()
        outcome: Dict[str, Any] = {}
        try:
            yield outcome
        except Exception as e:
            duration_ms = (time.monotonic() - started) * 1000
            self.warning(
                f"{operation} failed after {duration_ms:.0f}ms: {e}",
                event="operation_failed",
                operation=operation,
                duration_ms=round(duration_ms, 2),
                success=False,
                error_type=type(e).__name__,
                **{**context, **outcome}
            )
            raise

        duration_ms = (time.monotonic() - started) * 1000
        self.debug(
            f"{operation} took {duration_ms:.0f}ms",
            event="operation_completed",
            operation=operation,
            duration_ms=round(duration_ms, 2),
            success=True,
            **{**context, **outcome}
        )

class JSONLogAnalyzer:
    """Utility for analyzing structured JSON logs"""

    @staticmethod
    def parse_log_file(file_path: str) -> list:
        """Parse JSON log file and return list of log entries"""
        entries = []
        try:
            with open(file_path, 'r') as f:
                for line in f:
                    line = line.strip()
                    if line:
                        try:
                            entries.append(json.loads(line))
                        except json.JSONDecodeError:
                            continue
        except FileNotFoundError:
            pass
        return entries

    @staticmethod
    def get_connection_stats(entries: list) -> Dict[str, Any]:
        """Summarise reconciliation outcomes per platform"""
        results = [e for e in entries
                   if e.get('event') in ('reconcile_connected', 'reconcile_exhausted')]
        if not results:
            return {"error": "No reconciliation events found"}

        per_platform: Dict[str, Dict[str, int]] = {}
        for entry in results:
            stats = per_platform.setdefault(entry.get('platform', 'unknown'),
                                            {'connected': 0, 'exhausted': 0})
            if entry['event'] == 'reconcile_connected':
                stats['connected'] += 1
            else:
                stats['exhausted'] += 1

        connected = sum(s['connected'] for s in per_platform.values())
        return {
            "total_reconciliations": len(results),
            "connected": connected,
            "exhausted": len(results) - connected,
            "success_rate_percent": round(connected / len(results) * 100, 2),
            "platforms": per_platform
        }

    @staticmethod
    def get_error_summary(entries: list) -> Dict[str, Any]:
        """Analyze error patterns in logs"""
        error_events = [e for e in entries if e.get('level') == 'ERROR']

        if not error_events:
            return {"total_errors": 0}

        error_counts: Dict[str, int] = {}
        for event in error_events:
            error_type = event.get('error_type', 'unknown')
            error_counts[error_type] = error_counts.get(error_type, 0) + 1

        return {
            "total_errors": len(error_events),
            "error_types": error_counts,
            "most_common_error": max(error_counts.items(), key=lambda x: x[1])[0],
            "recent_errors": error_events[-5:]
        }

# Global structured logger instance
structured_logger = StructuredLogger("socialos.events", enable_json=True)
