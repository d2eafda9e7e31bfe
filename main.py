#!/usr/bin/env python3
# =============================================================================
# SOCIALOS CONNECT - COMMAND LINE CLIENT
# =============================================================================
# Before running, make sure you have:
# 1. API_BASE_URL pointing at the SocialOS backend in .env
# 2. AUTH_TOKEN / REFRESH_TOKEN from a logged-in session in .env
# 3. WORKSPACE_ID of the workspace whose accounts you manage
# =============================================================================

import sys
import asyncio
import threading
import webbrowser
from typing import Optional

from socialos.config.settings import settings
from socialos.config.validator import validate_and_print
from socialos.models.platform import Platform
from socialos.services.api_client import ApiClient
from socialos.services.backend_wakeup import BackendWakeup
from socialos.services.callback_interpreter import parse_callback_url
from socialos.services.connection_manager import ConnectionManager
from socialos.services.media_service import AIService, MediaService
from socialos.services.notifications import NotificationCenter
from socialos.services.platform_service import PlatformService
from socialos.services.posts_service import LibraryService, PostsService
from socialos.services.scheduled_publisher import ScheduledPostPublisher
from socialos.services.video_poller import VideoStatusPoller
from socialos.utils.async_runner import AsyncRunner
from socialos.utils.logger import logger
from socialos.utils.session_store import SessionStore
from socialos.utils.structured_logger import JSONLogAnalyzer, structured_logger
from socialos.utils.token_store import TokenStore
from socialos.web.accounts_app import AccountsDashboard


class SocialOSApp:
    """Wires the API client, services, connection manager and polling loops together"""

    def __init__(self, workspace_id: Optional[str] = None, navigator=None):
        self.workspace_id = workspace_id or settings.WORKSPACE_ID
        self.tokens = TokenStore.from_settings(settings)
        self.wakeup = BackendWakeup()
        self.client = ApiClient(tokens=self.tokens, on_success=self.wakeup.mark_active)

        self.platforms = PlatformService(self.client)
        self.posts = PostsService(self.client)
        self.library = LibraryService(self.client)
        self.media = MediaService(self.client)
        self.ai = AIService(self.client)
        self.notifications = NotificationCenter()
        self.session_store = SessionStore(settings.SESSION_STORE_PATH)

        self.manager = ConnectionManager(
            self.platforms,
            workspace_id=self.workspace_id,
            session_store=self.session_store,
            navigator=navigator,
            wakeup=self.wakeup,
        )
        self.publisher = ScheduledPostPublisher(self.posts, self.platforms, self.library,
                                                self.notifications, self.workspace_id)
        self.video_poller = VideoStatusPoller(self.ai, self.media, self.notifications, self.workspace_id,
                                              posts=self.posts)

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.cleanup()

    async def initialize(self):
        await self.session_store.load()
        await self.client.initialize()

    async def cleanup(self):
        await self.stop_pollers()
        await self.manager.close()
        await self.session_store.save()
        await self.client.close()

    async def start_pollers(self):
        """Start the background loops; only meaningful with a workspace"""
        if not self.workspace_id:
            logger.warning("⚠️ No WORKSPACE_ID configured, polling loops not started")
            return
        self.publisher.start()
        self.video_poller.start()

    async def stop_pollers(self):
        await self.publisher.stop()
        await self.video_poller.stop()

    async def show_status(self):
        await self.manager.load_status(force=True)
        print_accounts(self.manager)

    async def connect(self, platform: Platform, wait_for_callback: bool = True):
        """Open the consent page, then wait for the redirect URL to be pasted back"""
        result = await self.manager.begin_connect(platform)
        if not result.ok:
            print(f"❌ {platform.display_name}: {result.error}")
            return

        print(f"🌐 Opened {platform.display_name} authorization in your browser:")
        print(f"   {result.authorization_url}")
        if not wait_for_callback:
            return

        timeout = self.manager.timeouts[platform]
        url = await read_line("Paste the URL you were redirected back to: ", timeout)
        if url is None:
            print()
            print(f"⏰ {self.manager.errors[platform] or 'Connection timed out. Please try again.'}")
            return

        await self.process_callback(url)

    async def process_callback(self, url: str):
        params = parse_callback_url(url)
        if not params.has_callback:
            print("⚠️ That URL carries no OAuth result")
            return
        await self.manager.handle_callback({'oauth_success': params.success, 'oauth_error': params.error_code},
                                           wait=True)
        await self.manager.wait_idle()
        print_accounts(self.manager)

    async def disconnect(self, platform: Platform):
        if await self.manager.disconnect(platform):
            print(f"🔌 Disconnected {platform.display_name}")
        else:
            print(f"❌ {platform.display_name}: {self.manager.errors[platform]}")

    async def run_scheduled(self):
        """Run the polling loops until interrupted"""
        logger.info("🚀 Starting SocialOS background loops")
        if not settings.validate_configuration_comprehensive():
            logger.error("❌ Configuration validation failed. Please fix the issues above.")
            return

        structured_logger.info("Polling loops starting", event="pollers_start",
                               workspace_id=self.workspace_id)
        await self.start_pollers()
        try:
            while True:
                await asyncio.sleep(3600)
        except asyncio.CancelledError:
            logger.info("⚠️ Stopping due to cancellation")


def print_accounts(manager: ConnectionManager):
    print("🔗 CONNECTED ACCOUNTS:")
    for entry in manager.snapshot()['platforms']:
        if entry['connecting']:
            marker = '⏳'
        elif entry['connected']:
            marker = '✅'
        else:
            marker = '❌'
        line = f"   {marker} {entry['display_name']}"
        if entry['connected'] and entry['username']:
            line += f" (@{entry['username']})"
        if entry['is_expired']:
            line += " - Token Expired"
        elif entry['is_expiring_soon']:
            line += " - Expiring Soon"
        print(line)
        if entry['error']:
            print(f"      ⚠️ {entry['error']}")


async def read_line(prompt: str, timeout: float) -> Optional[str]:
    """One line from stdin, or None after ``timeout`` seconds.

    input() runs on a daemon thread so an unanswered prompt never holds up
    interpreter exit the way a default-executor worker would.
    """
    loop = asyncio.get_running_loop()
    answer = loop.create_future()

    def deliver(line):
        if not answer.done():
            answer.set_result(line)

    def reader():
        try:
            line = input(prompt)
        except EOFError:
            line = ''
        try:
            loop.call_soon_threadsafe(deliver, line)
        except RuntimeError:
            # Loop closed after the prompt timed out
            pass

    threading.Thread(target=reader, name="StdinReader", daemon=True).start()
    try:
        return await asyncio.wait_for(answer, timeout)
    except asyncio.TimeoutError:
        return None


def print_log_stats(day: Optional[str] = None):
    """Summarise the day's JSON event log: reconciliation outcomes and errors"""
    path = structured_logger.json_log_path(day)
    entries = JSONLogAnalyzer.parse_log_file(str(path))
    print(f"📊 CONNECTION STATS ({path.name}):")
    if not entries:
        print("   No events logged")
        return

    stats = JSONLogAnalyzer.get_connection_stats(entries)
    if 'error' in stats:
        print(f"   {stats['error']}")
    else:
        print(f"   Reconciliations: {stats['total_reconciliations']} "
              f"({stats['success_rate_percent']}% connected)")
        for platform, counts in sorted(stats['platforms'].items()):
            print(f"   {platform}: {counts['connected']} connected, {counts['exhausted']} gave up")

    errors = JSONLogAnalyzer.get_error_summary(entries)
    print(f"   Errors: {errors['total_errors']}")
    if errors['total_errors']:
        print(f"   Most common: {errors['most_common_error']}")


def parse_platform_arg(args) -> Optional[Platform]:
    platform = Platform.parse(args[0]) if args else None
    if platform is None:
        print(f"Unknown platform. Choose one of: {', '.join(p.value for p in Platform)}")
    return platform


def serve():
    """Run the accounts web shell with the polling loops on a background loop"""
    runner = AsyncRunner()
    app = SocialOSApp()
    runner.start()
    runner.run(app.initialize())
    runner.run(app.start_pollers())

    dashboard = AccountsDashboard(app.manager, runner=runner, notifications=app.notifications)
    print(f"🌐 Accounts dashboard on http://{dashboard.host}:{dashboard.port}/accounts")
    try:
        dashboard.run()
    finally:
        if runner.is_running:
            runner.run(app.cleanup())
            runner.stop()


async def main(argv):
    command = argv[1].lower() if len(argv) > 1 else 'status'
    args = argv[2:]

    if command == 'config':
        settings.print_configuration_status()
        validate_and_print()
        return

    if command == 'stats':
        print_log_stats(args[0] if args else None)
        return

    if command not in ('status', 'connect', 'callback', 'disconnect', 'run'):
        print_usage()
        return

    async with SocialOSApp(navigator=webbrowser.open) as app:
        if command == 'status':
            await app.show_status()
        elif command == 'connect':
            platform = parse_platform_arg(args)
            if platform:
                await app.connect(platform)
        elif command == 'callback':
            if not args:
                print("Usage: python main.py callback <redirect-url>")
                return
            await app.process_callback(args[0])
        elif command == 'disconnect':
            platform = parse_platform_arg(args)
            if platform:
                await app.disconnect(platform)
        elif command == 'run':
            await app.run_scheduled()


def print_usage():
    print("Usage: python main.py [status|connect|callback|disconnect|run|serve|config|stats]")
    print("  status               - Show connection status of every platform")
    print("  connect <platform>   - Connect a platform through its OAuth consent page")
    print("  callback <url>       - Process the URL the backend redirected back to")
    print("  disconnect <platform>- Remove a platform's stored credentials")
    print("  run                  - Publish scheduled posts and poll video generation")
    print("  serve                - Start the connected-accounts web dashboard")
    print("  config               - Show and validate configuration")
    print("  stats [YYYY-MM-DD]   - Summarise connection outcomes from the JSON event log")


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1].lower() == 'serve':
        serve()
    else:
        try:
            asyncio.run(main(sys.argv))
        except KeyboardInterrupt:
            logger.info("⚠️ Stopped by keyboard interrupt")
