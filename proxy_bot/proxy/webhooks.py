from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Sequence

import discord

from ..errors import AttachmentTooLarge

logger = logging.getLogger("proxy_bot.webhooks")


def check_attachment_sizes(channel: discord.TextChannel, attachments: Sequence[discord.Attachment]) -> None:
    """Refuse to proxy a message whose files the webhook could not carry.

    Runs before anything is sent so the trigger, the only copy of the file, is left in place.
    """
    if not attachments:
        return
    limit = channel.guild.filesize_limit
    for attachment in attachments:
        if attachment.size > limit:
            logger.info(
                "[webhook.attachment] channel=%s too_large=%s size=%s limit=%s",
                channel.id,
                attachment.filename,
                attachment.size,
                limit,
            )
            raise AttachmentTooLarge(attachment.filename, attachment.size, limit)


class WebhookExecutor:
    """Re-emits content under a member's name and avatar through a per-channel webhook."""

    def __init__(self, client: discord.Client, webhook_name: str) -> None:
        self.client = client
        self.webhook_name = webhook_name
        self._webhooks: dict[int, discord.Webhook] = {}
        self._locks: dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def get_webhook(self, channel: discord.TextChannel) -> discord.Webhook:
        cached = self._webhooks.get(channel.id)
        if cached is not None:
            return cached

        async with self._locks[channel.id]:
            cached = self._webhooks.get(channel.id)
            if cached is not None:
                return cached
            webhook = await self._find_existing_webhook(channel)
            if webhook is None:
                webhook = await channel.create_webhook(name=self.webhook_name)
                logger.info("[webhook.create] channel=%s webhook=%s", channel.id, webhook.id)
            self._webhooks[channel.id] = webhook
            return webhook

    def invalidate(self, channel_id: int) -> None:
        self._webhooks.pop(channel_id, None)

    async def _find_existing_webhook(self, channel: discord.TextChannel) -> discord.Webhook | None:
        me = self.client.user
        if me is None:
            return None
        for hook in await channel.webhooks():
            if hook.type != discord.WebhookType.incoming or not hook.token:
                continue
            if hook.user is None or hook.user.id != me.id:
                continue
            if hook.name == self.webhook_name:
                return hook
        return None

    async def _prepare_files(self, attachments: Sequence[discord.Attachment]) -> list[discord.File]:
        return [await attachment.to_file(spoiler=attachment.is_spoiler()) for attachment in attachments]

    async def execute_webhook(
        self,
        channel: discord.TextChannel,
        name: str,
        avatar_url: str | None,
        content: str,
        attachments: Sequence[discord.Attachment],
        allow_everyone: bool,
    ) -> discord.WebhookMessage:
        check_attachment_sizes(channel, attachments)
        webhook = await self.get_webhook(channel)
        allowed_mentions = discord.AllowedMentions(everyone=allow_everyone, users=True, roles=True)

        try:
            message = await webhook.send(
                content=content,
                username=name,
                avatar_url=avatar_url or discord.utils.MISSING,
                files=await self._prepare_files(attachments),
                allowed_mentions=allowed_mentions,
                wait=True,
            )
        except discord.NotFound:
            # Webhook was deleted behind our back, nothing was sent with it.
            logger.warning("[webhook.missing] channel=%s webhook=%s; recreating", channel.id, webhook.id)
            self.invalidate(channel.id)
            webhook = await self.get_webhook(channel)
            message = await webhook.send(
                content=content,
                username=name,
                avatar_url=avatar_url or discord.utils.MISSING,
                files=await self._prepare_files(attachments),
                allowed_mentions=allowed_mentions,
                wait=True,
            )

        logger.debug("[webhook.sent] channel=%s webhook=%s message=%s", channel.id, webhook.id, message.id)
        return message
