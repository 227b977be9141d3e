from __future__ import annotations

import aiosqlite

from ..proxy.models import MessageLink
from .utils import _sqlite_proxy_connection


class StoreMessagesMixin:
    async def add_message(self, db: aiosqlite.Connection, link: MessageLink) -> None:
        await db.execute(
            """
            INSERT INTO messages (mid, original_mid, channel, guild, member, sender)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                int(link.mid),
                int(link.original_mid),
                int(link.channel),
                int(link.guild),
                int(link.member),
                int(link.sender),
            ),
        )
        await db.commit()

    async def get_message(self, message_id: int) -> MessageLink | None:
        """Look a link up by either the proxied message id or the original trigger id."""
        async with _sqlite_proxy_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                """
                SELECT mid, original_mid, channel, guild, member, sender
                FROM messages
                WHERE mid = ? OR original_mid = ?
                LIMIT 1
                """,
                (int(message_id), int(message_id)),
            ) as cursor:
                row = await cursor.fetchone()
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
        async with _sqlite_proxy_connection(self.db_path) as db:
            async with db.execute(
                "SELECT COUNT(*) FROM messages WHERE original_mid = ?",
                (int(original_mid),),
            ) as cursor:
                row = await cursor.fetchone()
        return int(row[0]) if row else 0
