# =============================================================================
# CONNECTED ACCOUNTS WEB SHELL
# =============================================================================
# A lightweight Flask app in front of one ConnectionManager. Two pages show
# the same accounts list:
# - /accounts              the standalone connected-accounts view
# - /settings?tab=accounts the accounts tab of workspace settings
# Both accept the OAuth callback parameters, hand them to the manager and
# redirect to their clean URL so a refresh does not replay the callback.
# =============================================================================

import time
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from flask import Flask, jsonify, redirect, render_template_string, request

from ..config.settings import settings
from ..models.platform import Platform
from ..services.callback_interpreter import parse_callback_params, strip_callback_params
from ..services.connection_manager import ConnectionManager
from ..services.notifications import NotificationCenter
from ..utils.async_runner import AsyncRunner
from ..utils.structured_logger import structured_logger

# Shell path -> query string its clean URL keeps
SHELLS = {
    '/accounts': {},
    '/settings': {'tab': 'accounts'},
}

# Longest a request waits on the manager; reconciliation itself runs in the background
REQUEST_TIMEOUT_SECONDS = 30


class AccountsDashboard:
    """Flask front end for connecting and disconnecting platform accounts"""

    def __init__(self, manager: ConnectionManager, runner: Optional[AsyncRunner] = None,
                 notifications: Optional[NotificationCenter] = None,
                 host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
        self.manager = manager
        self._owns_runner = runner is None
        self.runner = runner or AsyncRunner()
        self.notifications = notifications
        self.host = host or settings.DASHBOARD_HOST
        self.port = port or settings.DASHBOARD_PORT
        self.debug = debug
        self.app = Flask(__name__)
        self.start_time = time.time()
        self._setup_routes()

    def _run(self, coro):
        return self.runner.run(coro, timeout=REQUEST_TIMEOUT_SECONDS)

    def _setup_routes(self):

        @self.app.route('/accounts')
        def accounts_view():
            return self._shell_view('/accounts')

        @self.app.route('/settings')
        def settings_view():
            return self._shell_view('/settings')

        @self.app.route('/connect/<platform>')
        def connect(platform):
            """Start the OAuth flow and send the browser to the consent page"""
            parsed = Platform.parse(platform)
            if parsed is None:
                return jsonify({'error': f"Unknown platform: {platform}"}), 404

            result = self._run(self.manager.begin_connect(parsed))
            if result.ok:
                return redirect(result.authorization_url)

            return_to = request.args.get('return_to', '/accounts')
            if return_to not in SHELLS:
                return_to = '/accounts'
            return redirect(self._clean_url(return_to, {}))

        @self.app.route('/disconnect/<platform>', methods=['POST'])
        def disconnect(platform):
            parsed = Platform.parse(platform)
            if parsed is None:
                return jsonify({'error': f"Unknown platform: {platform}"}), 404

            ok = self._run(self.manager.disconnect(parsed))
            body = {'success': ok, 'platform': parsed.value, 'error': self.manager.errors[parsed]}
            return jsonify(body), (200 if ok else 400)

        @self.app.route('/api/status')
        def api_status():
            """Accounts snapshot plus recent notifications"""
            return jsonify(self._get_status())

        @self.app.route('/health')
        def health_endpoint():
            return jsonify(self._get_health_status())

    def _clean_url(self, path: str, extra: Dict[str, Any]) -> str:
        query = dict(SHELLS[path])
        query.update(extra)
        return f"{path}?{urlencode(query)}" if query else path

    def _shell_view(self, path: str):
        params = request.args.to_dict()
        callback = parse_callback_params(params)

        if callback.has_callback:
            self._run(self.manager.handle_callback(params))
            return redirect(self._clean_url(path, strip_callback_params(params)))

        self._run(self.manager.load_status())

        if request.accept_mimetypes.best_match(['application/json', 'text/html']) == 'text/html':
            return render_template_string(ACCOUNTS_HTML, view=self.manager.snapshot(), shell=path)
        return jsonify(self.manager.snapshot())

    def _get_status(self) -> Dict[str, Any]:
        status = self.manager.snapshot()
        if self.notifications is not None:
            status['notifications'] = [
                {
                    'kind': n.kind,
                    'title': n.title,
                    'message': n.message,
                    'post_id': n.post_id,
                    'created_at': n.created_at.isoformat(),
                    'read': n.read,
                }
                for n in self.notifications.all()
            ]
        return status

    def _get_health_status(self) -> Dict[str, Any]:
        uptime_seconds = time.time() - self.start_time
        connecting = self.manager.connecting_platform
        return {
            'status': 'healthy',
            'uptime_seconds': round(uptime_seconds, 2),
            'last_check': datetime.now(timezone.utc).isoformat(),
            'api_base_url': settings.API_BASE_URL,
            'workspace_configured': bool(self.manager.workspace_id),
            'connecting_platform': connecting.value if connecting else None,
            'connected_platforms': [p.value for p, ok in self.manager.connected_accounts.items() if ok],
        }

    def run(self):
        """Start the web server (blocking)"""
        self.runner.start()
        try:
            structured_logger.info(
                f"Starting accounts dashboard on port {self.port}",
                event="dashboard_starting",
                port=self.port,
                debug=self.debug
            )
            self.app.run(
                host=self.host,
                port=self.port,
                debug=self.debug,
                threaded=True,
                use_reloader=False  # Prevent double startup in debug mode
            )
        except Exception as e:
            structured_logger.error(
                f"Failed to start dashboard: {str(e)}",
                event="dashboard_startup_failed",
                error=str(e)
            )
            raise
        finally:
            if self._owns_runner:
                self.runner.run(self.manager.close(), timeout=REQUEST_TIMEOUT_SECONDS)
                self.runner.stop()

    def start_in_thread(self) -> threading.Thread:
        thread = threading.Thread(target=self.run, name="AccountsDashboardThread", daemon=True)
        thread.start()
        return thread


ACCOUNTS_HTML = '''
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Connected Accounts</title>
    <style>
        body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
               background: #f5f5f5; padding: 20px; }
        .card { background: white; max-width: 720px; margin: 0 auto; padding: 20px;
                border-radius: 8px; box-shadow: 0 2px 4px rgba(0,0,0,0.1); }
        .row { display: flex; justify-content: space-between; align-items: center;
               padding: 12px 0; border-bottom: 1px solid #eee; }
        .muted { color: #666; font-size: 13px; }
        .error { color: #dc3545; font-size: 13px; }
        .warning { color: #b8860b; font-size: 13px; }
        .expired { color: #dc3545; font-weight: 600; }
        .expiring { color: #fd7e14; font-weight: 600; }
    </style>
</head>
<body>
<div class="card">
    <h2>Connected Accounts</h2>
    {% for p in view.platforms %}
    <div class="row">
        <div>
            <strong>{{ p.display_name }}</strong>
            {% if p.connected and p.username %}
                <div class="muted">@{{ p.username }}
                    {% if p.is_expired %}<span class="expired">Token Expired</span>
                    {% elif p.is_expiring_soon %}<span class="expiring">Expiring Soon</span>{% endif %}
                </div>
            {% endif %}
            {% if p.connected and p.expires_at %}<div class="muted">Expires: {{ p.expires_at }}</div>{% endif %}
            {% if p.timeout_warning %}<div class="warning">Taking longer than expected, closing in 30 seconds</div>{% endif %}
            {% if p.error %}<div class="error">{{ p.error }}</div>{% endif %}
        </div>
        <div>
            {% if p.connecting %}
                <span class="muted">Connecting...</span>
            {% elif p.connected %}
                <form method="post" action="/disconnect/{{ p.platform }}"><button>Disconnect</button></form>
            {% else %}
                <a href="/connect/{{ p.platform }}?return_to={{ shell }}">Connect</a>
            {% endif %}
        </div>
    </div>
    {% endfor %}
</div>
</body>
</html>
'''
