from __future__ import annotations

from typing import Iterable

import aiosqlite
import discord

from ..proxy.models import AutoproxyMode, MessageContext
from .utils import _sqlite_proxy_connection, dump_id_list, load_id_list


class StoreSystemsMixin:
    async def create_system(
        self,
        hid: str,
        name: str | None = None,
        tag: str | None = None,
        avatar_url: str | None = None,
    ) -> int:
        async with _sqlite_proxy_connection(self.db_path) as db:
            cursor = await db.execute(
                "INSERT INTO systems (hid, name, tag, avatar_url) VALUES (?, ?, ?, ?)",
                (hid, name, tag, avatar_url),
            )
            await db.commit()
            return int(cursor.lastrowid)

    async def link_account(self, account_id: int, system_id: int) -> None:
        async with _sqlite_proxy_connection(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO accounts (uid, system) VALUES (?, ?)
                ON CONFLICT(uid) DO UPDATE SET system = excluded.system
                """,
                (int(account_id), int(system_id)),
            )
            await db.commit()

    async def set_system_guild(
        self,
        system_id: int,
        guild_id: int,
        *,
        proxy_enabled: bool = True,
        autoproxy_mode: AutoproxyMode = AutoproxyMode.OFF,
        autoproxy_member: int | None = None,
    ) -> None:
        async with _sqlite_proxy_connection(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO system_guild (system, guild, proxy_enabled, autoproxy_mode, autoproxy_member)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(system, guild) DO UPDATE SET
                    proxy_enabled = excluded.proxy_enabled,
                    autoproxy_mode = excluded.autoproxy_mode,
                    autoproxy_member = excluded.autoproxy_member
                """,
                (int(system_id), int(guild_id), int(bool(proxy_enabled)), int(autoproxy_mode), autoproxy_member),
            )
            await db.commit()

    async def set_server_settings(
        self,
        guild_id: int,
        *,
        log_channel: int | None = None,
        log_blacklist: Iterable[int] = (),
        blacklist: Iterable[int] = (),
    ) -> None:
        async with _sqlite_proxy_connection(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO servers (id, log_channel, log_blacklist, blacklist)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    log_channel = excluded.log_channel,
                    log_blacklist = excluded.log_blacklist,
                    blacklist = excluded.blacklist
                """,
                (int(guild_id), log_channel, dump_id_list(log_blacklist), dump_id_list(blacklist)),
            )
            await db.commit()

    async def get_message_context(self, account_id: int, guild_id: int, channel_id: int) -> MessageContext:
        ctx = MessageContext()
        async with _sqlite_proxy_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row

            async with db.execute(
                "SELECT log_channel, log_blacklist, blacklist FROM servers WHERE id = ?",
                (int(guild_id),),
            ) as cursor:
                server = await cursor.fetchone()
            if server is not None:
                ctx.log_channel = int(server["log_channel"]) if server["log_channel"] is not None else None
                ctx.in_log_blacklist = int(channel_id) in load_id_list(server["log_blacklist"])
                ctx.in_blacklist = int(channel_id) in load_id_list(server["blacklist"])

            async with db.execute(
                """
                SELECT s.id, s.hid, s.tag, s.avatar_url
                FROM accounts a
                JOIN systems s ON s.id = a.system
                WHERE a.uid = ?
                """,
                (int(account_id),),
            ) as cursor:
                system = await cursor.fetchone()
            if system is None:
                return ctx

            ctx.system_id = int(system["id"])
            ctx.system_hid = str(system["hid"])
            ctx.system_tag = system["tag"] or None
            ctx.system_avatar = system["avatar_url"] or None

            async with db.execute(
                """
                SELECT proxy_enabled, autoproxy_mode, autoproxy_member
                FROM system_guild
                WHERE system = ? AND guild = ?
                """,
                (ctx.system_id, int(guild_id)),
            ) as cursor:
                settings = await cursor.fetchone()
            if settings is not None:
                ctx.proxy_enabled = bool(settings["proxy_enabled"])
                ctx.autoproxy_mode = AutoproxyMode.parse(settings["autoproxy_mode"])
                member = settings["autoproxy_member"]
                ctx.autoproxy_member = int(member) if member is not None else None

            async with db.execute(
                """
                SELECT mid, member
                FROM messages
                WHERE sender = ? AND guild = ?
                ORDER BY mid DESC
                LIMIT 1
                """,
                (int(account_id), int(guild_id)),
            ) as cursor:
                last = await cursor.fetchone()
            if last is not None:
                ctx.last_message = int(last["mid"])
                ctx.last_message_member = int(last["member"])
                ctx.last_message_at = discord.utils.snowflake_time(ctx.last_message)

        return ctx
