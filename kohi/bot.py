"""Kohi bot: owns every subsystem and the request lifecycle.

Wires the command registry, image cache, outbound transport and the
two routers together, and feeds them events from the webhook. Each
messaging event is processed as its own tracked task.

Key classes:
    KohiBot: Main bot class -- owns all subsystem instances, the
        shared HTTP session and the hot-reload watcher.
"""

import asyncio
from typing import Any, Dict, Optional

import aiohttp
import structlog

from .commands import CommandRegistry
from .config import Config, get_config
from .image_cache import ImageCache
from .logging_config import mask_id
from .profile import setup_profile
from .routing import MessageRouter, PostbackRouter
from .tasks import TaskTracker
from .transport import MessengerTransport
from .watcher import CommandWatcher
from .webhook import WebhookServer

logger = structlog.get_logger("kohi.bot")


class KohiBot:
    """Messenger page bot with a hot-reloadable command registry.

    Subsystems are set up in two phases: __init__ loads config and
    commands synchronously; start() creates the HTTP session and
    everything that needs the running event loop.
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or get_config()
        self.token = ""
        self.session: Optional[aiohttp.ClientSession] = None
        self.transport: Optional[MessengerTransport] = None
        self.messages: Optional[MessageRouter] = None
        self.postbacks: Optional[PostbackRouter] = None
        self.watcher: Optional[CommandWatcher] = None
        self.running = False
        self._tasks = TaskTracker()

        self.image_cache = ImageCache(
            ttl_seconds=float(self.config.image_cache_ttl_minutes) * 60,
            sweep_every=self.config.image_cache_sweep_every,
        )
        self.registry = CommandRegistry(
            commands_dir=self.config.commands_dir,
            allowlist=self.config.command_allowlist,
        )
        self.registry.load()

        self.webhook = WebhookServer(
            verify_token=self.config.verify_token,
            on_event=self.submit,
            app_secret=self.config.app_secret,
            command_count=lambda: len(self.registry.snapshot.specs),
        )

    async def start(self):
        """Start the bot and all subsystems.

        Raises:
            ConfigError: If no page access token is configured.
        """
        self.token = self.config.require_page_access_token()
        self.session = aiohttp.ClientSession()
        self.transport = MessengerTransport(
            self.session,
            api_url=self.config.graph_api_url,
            timeout=self.config.request_timeout,
        )
        self.messages = MessageRouter(
            self.registry,
            self.transport,
            self.image_cache,
            prefix=self.config.command_prefix,
            default_command=self.config.default_command,
            session=self.session,
            command_options=self.config.command_options,
        )
        self.postbacks = PostbackRouter(self.messages, welcome_message=self.config.welcome_message)
        self.running = True

        self.image_cache.start(float(self.config.image_cache_sweep_interval_minutes) * 60)

        if self.config.hot_reload:
            self.watcher = CommandWatcher(self.config.commands_dir, self.reload_commands)
            self.watcher.start()

        if self.config.setup_menu:
            await setup_profile(self.transport, self.registry.snapshot, self.token)

        logger.info(
            "bot_started",
            commands=[s.name for s in self.registry.snapshot.specs],
            hot_reload=self.config.hot_reload,
        )

    async def stop(self):
        """Stop the watcher, finish in-flight events, then close the session."""
        if not self.running:
            return
        self.running = False
        if self.watcher:
            self.watcher.stop()
        await self._tasks.drain()
        await self.image_cache.stop()
        if self.session:
            await self.session.close()
        logger.info("bot_stopped")

    def submit(self, event: Dict[str, Any]) -> Optional[asyncio.Task]:
        """Schedule one messaging event for processing. Never blocks."""
        if not self.running:
            logger.warning("event_rejected_not_running")
            return None
        return self._tasks.spawn(self.handle_event(event), name="kohi-event")

    async def handle_event(self, event: Dict[str, Any]) -> None:
        """Route one messaging event to the message or postback router."""
        sender = event.get("sender")
        sender_id = sender.get("id", "") if isinstance(sender, dict) else ""
        if event.get("message") is not None:
            await self.messages.dispatch(event, self.token)
        elif event.get("postback") is not None:
            await self.postbacks.dispatch(event, self.token)
        else:
            logger.debug("event_ignored", sender=mask_id(str(sender_id)), keys=sorted(event)[:10])

    async def reload_commands(self) -> None:
        """Rebuild the registry off the event loop, then refresh the menu."""
        await asyncio.to_thread(self.registry.reload)
        if self.config.setup_menu and self.running:
            await setup_profile(self.transport, self.registry.snapshot, self.token)
