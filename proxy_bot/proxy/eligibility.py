from __future__ import annotations

import discord

from .models import MessageContext


def should_proxy(message: discord.Message, ctx: MessageContext) -> bool:
    # Author has to have a system
    if ctx.system_id is None:
        return False

    # Guild text channel, normal message
    if message.channel.type != discord.ChannelType.text or message.type != discord.MessageType.default:
        return False

    # Normal user only; webhook output is never proxied again
    if message.author.system or message.author.bot or message.webhook_id is not None:
        return False

    if not ctx.proxy_enabled or ctx.in_blacklist:
        return False

    is_blank = message.content is None or not message.content.strip()
    if is_blank and len(message.attachments) == 0:
        return False

    return True
