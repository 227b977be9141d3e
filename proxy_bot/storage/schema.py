from __future__ import annotations

import logging
import os
from pathlib import Path

import aiosqlite

from .utils import _sqlite_proxy_connection

logger = logging.getLogger("proxy_bot.storage")


class StoreSchemaMixin:
    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _allow_destructive_reset_on_mismatch() -> bool:
        raw = os.getenv("PROXY_SQLITE_RESET_ON_SCHEMA_MISMATCH", "")
        return raw.strip().lower() in {"1", "true", "yes", "y", "on"}

    async def _has_user_tables(self, db: aiosqlite.Connection) -> bool:
        async with db.execute(
            """
            SELECT 1
            FROM sqlite_master
            WHERE type = 'table'
              AND name NOT LIKE 'sqlite_%'
            LIMIT 1
            """
        ) as cursor:
            row = await cursor.fetchone()
        return bool(row)

    async def init(self) -> None:
        async with _sqlite_proxy_connection(self.db_path) as db:
            await db.execute("PRAGMA journal_mode=WAL")
            async with db.execute("PRAGMA user_version") as cursor:
                row = await cursor.fetchone()
            version = int(row[0]) if row else 0
            has_tables = await self._has_user_tables(db)

            if version > self.SCHEMA_VERSION:
                if has_tables and self._allow_destructive_reset_on_mismatch():
                    logger.warning("Resetting proxy store schema v%s -> v%s", version, self.SCHEMA_VERSION)
                    await self._reset_schema(db)
                    await db.execute(f"PRAGMA user_version = {self.SCHEMA_VERSION}")
                    await db.commit()
                    return
                raise RuntimeError(
                    "SQLite schema version mismatch detected (database is newer than this bot build). "
                    f"Found user_version={version}, supported={self.SCHEMA_VERSION}. "
                    "Set PROXY_SQLITE_RESET_ON_SCHEMA_MISMATCH=1 to allow destructive reset."
                )

            await self._create_schema(db)
            if version != self.SCHEMA_VERSION:
                await db.execute(f"PRAGMA user_version = {self.SCHEMA_VERSION}")
            await db.commit()

    async def _reset_schema(self, db: aiosqlite.Connection) -> None:
        tables = (
            "messages",
            "system_guild",
            "member_guild",
            "members",
            "accounts",
            "servers",
            "systems",
        )
        for table in tables:
            await db.execute(f"DROP TABLE IF EXISTS {table}")
        await self._create_schema(db)

    async def _create_schema(self, db: aiosqlite.Connection) -> None:
        await db.executescript(
            """
            CREATE TABLE IF NOT EXISTS systems (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                hid TEXT NOT NULL UNIQUE,
                name TEXT,
                tag TEXT,
                avatar_url TEXT,
                created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS accounts (
                uid INTEGER PRIMARY KEY,
                system INTEGER NOT NULL,
                FOREIGN KEY(system) REFERENCES systems(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS members (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                hid TEXT NOT NULL UNIQUE,
                system INTEGER NOT NULL,
                name TEXT NOT NULL,
                display_name TEXT,
                avatar_url TEXT,
                proxy_tags TEXT NOT NULL DEFAULT '[]',
                keep_proxy INTEGER NOT NULL DEFAULT 0,
                allow_autoproxy INTEGER NOT NULL DEFAULT 1,
                created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY(system) REFERENCES systems(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS member_guild (
                member INTEGER NOT NULL,
                guild INTEGER NOT NULL,
                display_name TEXT,
                avatar_url TEXT,
                PRIMARY KEY(member, guild),
                FOREIGN KEY(member) REFERENCES members(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS system_guild (
                system INTEGER NOT NULL,
                guild INTEGER NOT NULL,
                proxy_enabled INTEGER NOT NULL DEFAULT 1,
                autoproxy_mode INTEGER NOT NULL DEFAULT 1,
                autoproxy_member INTEGER,
                PRIMARY KEY(system, guild),
                FOREIGN KEY(system) REFERENCES systems(id) ON DELETE CASCADE,
                FOREIGN KEY(autoproxy_member) REFERENCES members(id) ON DELETE SET NULL
            );

            CREATE TABLE IF NOT EXISTS servers (
                id INTEGER PRIMARY KEY,
                log_channel INTEGER,
                log_blacklist TEXT NOT NULL DEFAULT '[]',
                blacklist TEXT NOT NULL DEFAULT '[]'
            );

            CREATE TABLE IF NOT EXISTS messages (
                mid INTEGER PRIMARY KEY,
                original_mid INTEGER,
                channel INTEGER NOT NULL,
                guild INTEGER NOT NULL,
                member INTEGER NOT NULL,
                sender INTEGER NOT NULL,
                created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY(member) REFERENCES members(id) ON DELETE CASCADE
            );

            CREATE INDEX IF NOT EXISTS idx_members_system
            ON members(system);

            CREATE INDEX IF NOT EXISTS idx_messages_sender_guild
            ON messages(sender, guild, mid DESC);

            CREATE INDEX IF NOT EXISTS idx_messages_original
            ON messages(original_mid);
            """
        )
