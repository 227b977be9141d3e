from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, List

import asyncpg
import discord

from ..proxy.models import AutoproxyMode, MessageContext, MessageLink, ProxyMember, ProxyTag
from .utils import dump_proxy_tags, load_proxy_tags

logger = logging.getLogger("proxy_bot.storage")


class PostgresProxyStore:
    """Postgres-backed proxy store implementing the same API as ProxyStore."""

    SCHEMA_VERSION = 1
    backend_name = "postgres"

    def __init__(self, dsn: str) -> None:
        self.dsn = dsn.strip()
        if not self.dsn:
            raise ValueError("PROXY_POSTGRES_DSN cannot be empty")
        self._pool: asyncpg.Pool | None = None
        self._init_lock = asyncio.Lock()
        self._initialized = False

    async def _ensure_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            self._pool = await asyncpg.create_pool(
                dsn=self.dsn,
                min_size=1,
                max_size=10,
                command_timeout=30.0,
            )
        return self._pool

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
        self._initialized = False

    @asynccontextmanager
    async def obtain(self) -> AsyncIterator[asyncpg.Connection]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            yield conn

    async def init(self) -> None:
        async with self._init_lock:
            if self._initialized:
                return
            async with self.obtain() as conn:
                async with conn.transaction():
                    await conn.execute(
                        "CREATE TABLE IF NOT EXISTS schema_meta (id INT PRIMARY KEY, version INT NOT NULL)"
                    )
                    version = await conn.fetchval("SELECT version FROM schema_meta WHERE id = 1") or 0
                    if version > self.SCHEMA_VERSION:
                        raise RuntimeError(
                            f"Postgres proxy schema version {version} is newer than supported {self.SCHEMA_VERSION}. "
                            "Upgrade the bot before starting."
                        )
                    await self._create_schema(conn)
                    if version != self.SCHEMA_VERSION:
                        await conn.execute(
                            """
                            INSERT INTO schema_meta (id, version) VALUES (1, $1)
                            ON CONFLICT (id) DO UPDATE SET version = EXCLUDED.version
                            """,
                            self.SCHEMA_VERSION,
                        )
                        logger.info("Postgres proxy schema at v%s", self.SCHEMA_VERSION)
            self._initialized = True

    async def _create_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS systems (
                id SERIAL PRIMARY KEY,
                hid TEXT NOT NULL UNIQUE,
                name TEXT,
                tag TEXT,
                avatar_url TEXT,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );

            CREATE TABLE IF NOT EXISTS accounts (
                uid BIGINT PRIMARY KEY,
                system INT NOT NULL REFERENCES systems(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS members (
                id SERIAL PRIMARY KEY,
                hid TEXT NOT NULL UNIQUE,
                system INT NOT NULL REFERENCES systems(id) ON DELETE CASCADE,
                name TEXT NOT NULL,
                display_name TEXT,
                avatar_url TEXT,
                proxy_tags TEXT NOT NULL DEFAULT '[]',
                keep_proxy BOOLEAN NOT NULL DEFAULT FALSE,
                allow_autoproxy BOOLEAN NOT NULL DEFAULT TRUE,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );

            CREATE TABLE IF NOT EXISTS member_guild (
                member INT NOT NULL REFERENCES members(id) ON DELETE CASCADE,
                guild BIGINT NOT NULL,
                display_name TEXT,
                avatar_url TEXT,
                PRIMARY KEY (member, guild)
            );

            CREATE TABLE IF NOT EXISTS system_guild (
                system INT NOT NULL REFERENCES systems(id) ON DELETE CASCADE,
                guild BIGINT NOT NULL,
                proxy_enabled BOOLEAN NOT NULL DEFAULT TRUE,
                autoproxy_mode INT NOT NULL DEFAULT 1,
                autoproxy_member INT REFERENCES members(id) ON DELETE SET NULL,
                PRIMARY KEY (system, guild)
            );

            CREATE TABLE IF NOT EXISTS servers (
                id BIGINT PRIMARY KEY,
                log_channel BIGINT,
                log_blacklist BIGINT[] NOT NULL DEFAULT '{}',
                blacklist BIGINT[] NOT NULL DEFAULT '{}'
            );

            CREATE TABLE IF NOT EXISTS messages (
                mid BIGINT PRIMARY KEY,
                original_mid BIGINT,
                channel BIGINT NOT NULL,
                guild BIGINT NOT NULL,
                member INT NOT NULL REFERENCES members(id) ON DELETE CASCADE,
                sender BIGINT NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );

            CREATE INDEX IF NOT EXISTS idx_members_system ON members(system);
            CREATE INDEX IF NOT EXISTS idx_messages_sender_guild ON messages(sender, guild, mid DESC);
            CREATE INDEX IF NOT EXISTS idx_messages_original ON messages(original_mid);
            """
        )

    async def create_system(
        self,
        hid: str,
        name: str | None = None,
        tag: str | None = None,
        avatar_url: str | None = None,
    ) -> int:
        async with self.obtain() as conn:
            return int(
                await conn.fetchval(
                    "INSERT INTO systems (hid, name, tag, avatar_url) VALUES ($1, $2, $3, $4) RETURNING id",
                    hid,
                    name,
                    tag,
                    avatar_url,
                )
            )

    async def link_account(self, account_id: int, system_id: int) -> None:
        async with self.obtain() as conn:
            await conn.execute(
                """
                INSERT INTO accounts (uid, system) VALUES ($1, $2)
                ON CONFLICT (uid) DO UPDATE SET system = EXCLUDED.system
                """,
                int(account_id),
                int(system_id),
            )

    async def set_system_guild(
        self,
        system_id: int,
        guild_id: int,
        *,
        proxy_enabled: bool = True,
        autoproxy_mode: AutoproxyMode = AutoproxyMode.OFF,
        autoproxy_member: int | None = None,
    ) -> None:
        async with self.obtain() as conn:
            await conn.execute(
                """
                INSERT INTO system_guild (system, guild, proxy_enabled, autoproxy_mode, autoproxy_member)
                VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (system, guild) DO UPDATE SET
                    proxy_enabled = EXCLUDED.proxy_enabled,
                    autoproxy_mode = EXCLUDED.autoproxy_mode,
                    autoproxy_member = EXCLUDED.autoproxy_member
                """,
                int(system_id),
                int(guild_id),
                bool(proxy_enabled),
                int(autoproxy_mode),
                autoproxy_member,
            )

    async def set_server_settings(
        self,
        guild_id: int,
        *,
        log_channel: int | None = None,
        log_blacklist: Iterable[int] = (),
        blacklist: Iterable[int] = (),
    ) -> None:
        async with self.obtain() as conn:
            await conn.execute(
                """
                INSERT INTO servers (id, log_channel, log_blacklist, blacklist)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (id) DO UPDATE SET
                    log_channel = EXCLUDED.log_channel,
                    log_blacklist = EXCLUDED.log_blacklist,
                    blacklist = EXCLUDED.blacklist
                """,
                int(guild_id),
                log_channel,
                sorted({int(v) for v in log_blacklist}),
                sorted({int(v) for v in blacklist}),
            )

    async def create_member(
        self,
        system_id: int,
        hid: str,
        name: str,
        *,
        display_name: str | None = None,
        avatar_url: str | None = None,
        proxy_tags: Iterable[ProxyTag] = (),
        keep_proxy: bool = False,
        allow_autoproxy: bool = True,
    ) -> int:
        async with self.obtain() as conn:
            return int(
                await conn.fetchval(
                    """
                    INSERT INTO members (
                        hid, system, name, display_name, avatar_url, proxy_tags, keep_proxy, allow_autoproxy
                    )
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                    RETURNING id
                    """,
                    hid,
                    int(system_id),
                    name,
                    display_name,
                    avatar_url,
                    dump_proxy_tags(proxy_tags),
                    bool(keep_proxy),
                    bool(allow_autoproxy),
                )
            )

    async def set_member_guild(
        self,
        member_id: int,
        guild_id: int,
        *,
        display_name: str | None = None,
        avatar_url: str | None = None,
    ) -> None:
        async with self.obtain() as conn:
            await conn.execute(
                """
                INSERT INTO member_guild (member, guild, display_name, avatar_url)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (member, guild) DO UPDATE SET
                    display_name = EXCLUDED.display_name,
                    avatar_url = EXCLUDED.avatar_url
                """,
                int(member_id),
                int(guild_id),
                display_name,
                avatar_url,
            )

    async def get_message_context(self, account_id: int, guild_id: int, channel_id: int) -> MessageContext:
        ctx = MessageContext()
        async with self.obtain() as conn:
            server = await conn.fetchrow(
                "SELECT log_channel, log_blacklist, blacklist FROM servers WHERE id = $1",
                int(guild_id),
            )
            if server is not None:
                ctx.log_channel = server["log_channel"]
                ctx.in_log_blacklist = int(channel_id) in (server["log_blacklist"] or [])
                ctx.in_blacklist = int(channel_id) in (server["blacklist"] or [])

            system = await conn.fetchrow(
                """
                SELECT s.id, s.hid, s.tag, s.avatar_url
                FROM accounts a
                JOIN systems s ON s.id = a.system
                WHERE a.uid = $1
                """,
                int(account_id),
            )
            if system is None:
                return ctx

            ctx.system_id = int(system["id"])
            ctx.system_hid = str(system["hid"])
            ctx.system_tag = system["tag"] or None
            ctx.system_avatar = system["avatar_url"] or None

            settings = await conn.fetchrow(
                """
                SELECT proxy_enabled, autoproxy_mode, autoproxy_member
                FROM system_guild
                WHERE system = $1 AND guild = $2
                """,
                ctx.system_id,
                int(guild_id),
            )
            if settings is not None:
                ctx.proxy_enabled = bool(settings["proxy_enabled"])
                ctx.autoproxy_mode = AutoproxyMode.parse(settings["autoproxy_mode"])
                ctx.autoproxy_member = settings["autoproxy_member"]

            last = await conn.fetchrow(
                """
                SELECT mid, member
                FROM messages
                WHERE sender = $1 AND guild = $2
                ORDER BY mid DESC
                LIMIT 1
                """,
                int(account_id),
                int(guild_id),
            )
            if last is not None:
                ctx.last_message = int(last["mid"])
                ctx.last_message_member = int(last["member"])
                ctx.last_message_at = discord.utils.snowflake_time(ctx.last_message)
        return ctx

    async def get_proxy_members(
        self,
        conn: asyncpg.Connection,
        account_id: int,
        guild_id: int,
    ) -> List[ProxyMember]:
        rows = await conn.fetch(
            """
            SELECT
                m.id, m.hid, m.name, m.display_name, m.avatar_url, m.proxy_tags,
                m.keep_proxy, m.allow_autoproxy,
                mg.display_name AS server_name,
                mg.avatar_url AS server_avatar_url
            FROM accounts a
            JOIN members m ON m.system = a.system
            LEFT JOIN member_guild mg ON mg.member = m.id AND mg.guild = $1
            WHERE a.uid = $2
            ORDER BY m.id
            """,
            int(guild_id),
            int(account_id),
        )
        return [
            ProxyMember(
                id=int(row["id"]),
                hid=str(row["hid"]),
                name=str(row["name"]),
                display_name=row["display_name"] or None,
                server_name=row["server_name"] or None,
                avatar_url=row["avatar_url"] or None,
                server_avatar_url=row["server_avatar_url"] or None,
                proxy_tags=load_proxy_tags(row["proxy_tags"]),
                keep_proxy=bool(row["keep_proxy"]),
                allow_autoproxy=bool(row["allow_autoproxy"]),
            )
            for row in rows
        ]

    async def add_message(self, conn: asyncpg.Connection, link: MessageLink) -> None:
        await conn.execute(
            """
            INSERT INTO messages (mid, original_mid, channel, guild, member, sender)
            VALUES ($1, $2, $3, $4, $5, $6)
            """,
            int(link.mid),
            int(link.original_mid),
            int(link.channel),
            int(link.guild),
            int(link.member),
            int(link.sender),
        )

    async def get_message(self, message_id: int) -> MessageLink | None:
        async with self.obtain() as conn:
            row = await conn.fetchrow(
                """
                SELECT mid, original_mid, channel, guild, member, sender
                FROM messages
                WHERE mid = $1 OR original_mid = $1
                LIMIT 1
                """,
                int(message_id),
            )
        if row is None:
            return None
        return MessageLink(
            mid=int(row["mid"]),
            original_mid=int(row["original_mid"]),
            channel=int(row["channel"]),
            guild=int(row["guild"]),
            member=int(row["member"]),
            sender=int(row["sender"]),
        )

    async def count_messages(self, original_mid: int) -> int:
        async with self.obtain() as conn:
            return int(
                await conn.fetchval("SELECT COUNT(*) FROM messages WHERE original_mid = $1", int(original_mid))
            )
