from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Any, Coroutine

import discord

from ..config import MAX_PROXY_NAME_LENGTH
from ..discord.common import break_link_embeds
from .eligibility import should_proxy
from .log_channel import LogChannelService
from .matcher import PersonaMatcher
from .models import MessageContext, MessageLink, ProxyMatch
from .names import check_proxy_name_bounds
from .permissions import check_bot_permissions_or_error, sender_permissions
from .webhooks import WebhookExecutor, check_attachment_sizes

logger = logging.getLogger("proxy_bot.proxy")


class ProxyService:
    """Turns an eligible trigger message into a webhook message sent as one of the author's members.

    After the webhook message is out, three post-proxy actions run concurrently in a tracked
    background task: the message link is written (the only user of the scoped store connection),
    the log channel entry is posted, and the trigger is deleted after a short delay. If the
    trigger was already deleted by someone else, the proxied copy is deleted as well.
    """

    def __init__(
        self,
        store: Any,
        matcher: PersonaMatcher,
        webhooks: WebhookExecutor,
        log_channel: LogChannelService,
        *,
        max_name_length: int = MAX_PROXY_NAME_LENGTH,
        delete_delay_seconds: float = 1.0,
    ) -> None:
        self.store = store
        self.matcher = matcher
        self.webhooks = webhooks
        self.log_channel = log_channel
        self.max_name_length = max_name_length
        self.delete_delay_seconds = max(0.0, float(delete_delay_seconds))
        self._pending: set[asyncio.Task[None]] = set()

    async def handle_incoming_message(
        self,
        shard: discord.Client,
        message: discord.Message,
        ctx: MessageContext,
        allow_autoproxy: bool,
    ) -> bool:
        if not should_proxy(message, ctx):
            return False

        async with contextlib.AsyncExitStack() as stack:
            conn = await stack.enter_async_context(self.store.obtain())

            started = time.monotonic()
            members = list(await self.store.get_proxy_members(conn, message.author.id, message.guild.id))
            logger.debug(
                "[proxy.members] account=%s guild=%s count=%s latency_ms=%s",
                message.author.id,
                message.guild.id,
                len(members),
                int((time.monotonic() - started) * 1000),
            )

            match = self.matcher.try_match(
                ctx,
                members,
                message.content,
                len(message.attachments) > 0,
                allow_autoproxy,
            )
            if match is None:
                return False

            # Checked only after a match so ordinary chatter never produces permission warnings.
            if not await check_bot_permissions_or_error(message.channel):
                return False
            check_proxy_name_bounds(match.member.proxy_name(ctx), self.max_name_length)
            check_attachment_sizes(message.channel, message.attachments)

            # Mirror the sender's own privileges so a proxy can't ping @everyone or embed
            # links on behalf of someone who couldn't.
            allow_everyone, allow_embeds = sender_permissions(message.channel, message.author)

            proxy_message = await self._execute_proxy(message, ctx, match, allow_everyone, allow_embeds)

            # From here on the connection belongs to the message link write.
            connection_scope = stack.pop_all()

        self._spawn(
            self._handle_proxy_executed_actions(shard, connection_scope, conn, ctx, message, proxy_message, match),
            name=f"proxy-post-{message.id}",
        )
        return True

    async def _execute_proxy(
        self,
        trigger: discord.Message,
        ctx: MessageContext,
        match: ProxyMatch,
        allow_everyone: bool,
        allow_embeds: bool,
    ) -> discord.WebhookMessage:
        content = match.content
        if not allow_embeds:
            content = break_link_embeds(content)

        proxy_message = await self.webhooks.execute_webhook(
            trigger.channel,
            match.member.proxy_name(ctx),
            match.member.proxy_avatar(ctx),
            content,
            trigger.attachments,
            allow_everyone,
        )
        logger.info(
            "[proxy.sent] channel=%s member=%s trigger=%s proxy=%s",
            trigger.channel.id,
            match.member.hid,
            trigger.id,
            proxy_message.id,
        )
        return proxy_message

    async def _handle_proxy_executed_actions(
        self,
        shard: discord.Client,
        connection_scope: contextlib.AsyncExitStack,
        conn: Any,
        ctx: MessageContext,
        trigger: discord.Message,
        proxy_message: discord.WebhookMessage,
        match: ProxyMatch,
    ) -> None:
        async def save_message_in_database() -> None:
            async with connection_scope:
                await self.store.add_message(
                    conn,
                    MessageLink(
                        mid=proxy_message.id,
                        original_mid=trigger.id,
                        channel=trigger.channel.id,
                        guild=trigger.guild.id,
                        member=match.member.id,
                        sender=trigger.author.id,
                    ),
                )

        async def log_message_to_channel() -> None:
            await self.log_channel.log_message(shard, ctx, match, trigger, proxy_message.id)

        async def delete_proxy_trigger_message() -> None:
            # Give moderation bots watching for new messages a chance to act on the original first.
            await asyncio.sleep(self.delete_delay_seconds)
            try:
                await trigger.delete()
            except discord.NotFound:
                logger.debug(
                    "Trigger message %s was already deleted when we attempted to; deleting proxy message %s also",
                    trigger.id,
                    proxy_message.id,
                )
                await self._handle_trigger_already_deleted(proxy_message)

        # Order doesn't matter; only the link write touches the scoped connection.
        steps = ("save_message", "log_message", "delete_trigger")
        try:
            results = await asyncio.gather(
                save_message_in_database(),
                log_message_to_channel(),
                delete_proxy_trigger_message(),
                return_exceptions=True,
            )
        finally:
            # Also released when the task is cancelled before the link write runs.
            await connection_scope.aclose()
        for step, result in zip(steps, results):
            if isinstance(result, BaseException):
                logger.error(
                    "[proxy.post] step=%s trigger=%s proxy=%s failed",
                    step,
                    trigger.id,
                    proxy_message.id,
                    exc_info=result,
                )

    async def _handle_trigger_already_deleted(self, proxy_message: discord.WebhookMessage) -> None:
        # Someone (usually a moderation bot) removed the trigger first; the proxied copy goes too.
        try:
            await proxy_message.delete()
        except (discord.NotFound, discord.Forbidden):
            pass

    def _spawn(self, coro: Coroutine[Any, Any, None], *, name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every in-flight post-proxy task to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
