from __future__ import annotations

import logging

import discord

from ...errors import ProxyError
from ..common import ERROR_EMOJI, truncate

logger = logging.getLogger("proxy_bot")


class MessageMixin:
    async def on_message(self, message: discord.Message) -> None:
        # Cheap bail-outs before touching the store; the proxy filter re-checks these.
        if message.guild is None or message.author.bot or message.webhook_id is not None:
            return

        ctx = await self.store.get_message_context(message.author.id, message.guild.id, message.channel.id)
        try:
            await self.proxy.handle_incoming_message(self, message, ctx, allow_autoproxy=True)
        except ProxyError as exc:
            logger.info(
                "[proxy.rejected] channel=%s author=%s reason=\"%s\"",
                message.channel.id,
                message.author.id,
                truncate(str(exc), 120),
            )
            await message.channel.send(f"{ERROR_EMOJI} {exc}")

    async def on_error(self, event_method: str, /, *args: object, **kwargs: object) -> None:
        logger.exception("Unhandled error in %s", event_method)
