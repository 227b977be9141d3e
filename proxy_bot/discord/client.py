from __future__ import annotations

import asyncio
import logging
from typing import Any

import discord

from ..config import Settings
from ..proxy.log_channel import LogChannelService
from ..proxy.matcher import ProxyMatcher
from ..proxy.service import ProxyService
from ..proxy.webhooks import WebhookExecutor
from .mixins.message_mixin import MessageMixin

logger = logging.getLogger("proxy_bot")


class ProxyDiscordBot(
    MessageMixin,
    discord.Client,
):
    def __init__(self, settings: Settings, store: Any) -> None:
        intents = discord.Intents.default()
        intents.message_content = settings.discord_message_content_intent
        intents.members = settings.discord_members_intent

        super().__init__(intents=intents)

        self.settings = settings
        self.store = store
        self.webhooks = WebhookExecutor(self, settings.webhook_name)
        self.log_channel = LogChannelService()
        self.proxy = ProxyService(
            store,
            ProxyMatcher(latch_timeout_seconds=settings.latch_timeout_seconds),
            self.webhooks,
            self.log_channel,
            max_name_length=settings.max_proxy_name_length,
            delete_delay_seconds=settings.trigger_delete_delay_seconds,
        )

    async def setup_hook(self) -> None:
        await self.store.init()
        logger.info("Proxy store ready (backend=%s)", getattr(self.store, "backend_name", "unknown"))

    async def close(self) -> None:
        await self._run_shutdown_step("proxy.drain", self.proxy.drain(), timeout=10.0)
        await self._run_shutdown_step("store.close", self.store.close(), timeout=6.0)
        await self._run_shutdown_step("discord.Client.close", super().close(), timeout=6.0)

    async def _run_shutdown_step(self, label: str, coro: object, *, timeout: float) -> None:
        try:
            await asyncio.wait_for(coro, timeout=timeout)  # type: ignore[arg-type]
        except asyncio.TimeoutError:
            logger.warning("Shutdown step timed out: %s", label)
        except Exception as exc:
            logger.warning("Shutdown step failed: %s (%s)", label, exc)

    async def on_ready(self) -> None:
        if self.user:
            logger.info("Connected as %s (%s)", self.user, self.user.id)
