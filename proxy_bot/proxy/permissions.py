from __future__ import annotations

import logging

import discord

from ..discord.common import ERROR_EMOJI

logger = logging.getLogger("proxy_bot.proxy")

MISSING_MANAGE_WEBHOOKS = (
    f"{ERROR_EMOJI} This bot does not have the *Manage Webhooks* permission in this channel, "
    "and thus cannot proxy messages. Please contact a server administrator to remedy this."
)
MISSING_MANAGE_MESSAGES = (
    f"{ERROR_EMOJI} This bot does not have the *Manage Messages* permission in this channel, "
    "and thus cannot delete the original trigger message. Please contact a server administrator to remedy this."
)


async def check_bot_permissions_or_error(channel: discord.TextChannel) -> bool:
    permissions = channel.permissions_for(channel.guild.me)

    # Without Send Messages nothing could be delivered, not even the warning.
    # Manage Messages does not override a lack of Send Messages.
    if not permissions.send_messages:
        logger.debug("[proxy.perms] channel=%s missing=send_messages", channel.id)
        return False

    if not permissions.manage_webhooks:
        logger.info("[proxy.perms] channel=%s missing=manage_webhooks", channel.id)
        await channel.send(MISSING_MANAGE_WEBHOOKS)
        return False

    if not permissions.manage_messages:
        logger.info("[proxy.perms] channel=%s missing=manage_messages", channel.id)
        await channel.send(MISSING_MANAGE_MESSAGES)
        return False

    return True


def sender_permissions(channel: discord.TextChannel, author: discord.abc.Snowflake) -> tuple[bool, bool]:
    """Return (allow_everyone, allow_embeds) as held by the triggering author in this channel."""
    permissions = channel.permissions_for(author)  # type: ignore[arg-type]
    return bool(permissions.mention_everyone), bool(permissions.embed_links)
