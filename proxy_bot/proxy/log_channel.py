from __future__ import annotations

import logging

import discord

from ..discord.common import truncate
from .models import MessageContext, ProxyMatch

logger = logging.getLogger("proxy_bot.proxy")

EMBED_DESCRIPTION_LIMIT = 4096


class LogChannelService:
    """Posts an audit entry for every proxied message to the guild's configured log channel."""

    async def log_message(
        self,
        shard: discord.Client,
        ctx: MessageContext,
        match: ProxyMatch,
        trigger: discord.Message,
        proxy_message_id: int,
    ) -> None:
        if ctx.log_channel is None or ctx.in_log_blacklist:
            return

        channel = shard.get_channel(ctx.log_channel)
        if channel is None or getattr(channel, "type", None) != discord.ChannelType.text:
            logger.debug("[proxy.log] log channel %s not found or not a text channel", ctx.log_channel)
            return

        permissions = channel.permissions_for(channel.guild.me)
        if not (permissions.send_messages and permissions.embed_links):
            logger.debug("[proxy.log] missing send/embed permissions in log channel %s", ctx.log_channel)
            return

        embed = self.build_embed(ctx, match, trigger, proxy_message_id)
        jump_url = f"https://discord.com/channels/{trigger.guild.id}/{trigger.channel.id}/{proxy_message_id}"
        await channel.send(content=jump_url, embed=embed)

    @staticmethod
    def build_embed(
        ctx: MessageContext,
        match: ProxyMatch,
        trigger: discord.Message,
        proxy_message_id: int,
    ) -> discord.Embed:
        member = match.member
        embed = discord.Embed(
            description=truncate(match.content, EMBED_DESCRIPTION_LIMIT),
            timestamp=trigger.created_at,
        )
        embed.set_author(
            name=f"#{trigger.channel.name}: {member.proxy_name(ctx)}",
            icon_url=member.proxy_avatar(ctx),
        )
        embed.set_footer(
            text=(
                f"System ID: {ctx.system_hid or ctx.system_id} | Member ID: {member.hid} | "
                f"Sender: {trigger.author} ({trigger.author.id}) | "
                f"Message ID: {proxy_message_id} | Original Message ID: {trigger.id}"
            )
        )
        return embed
