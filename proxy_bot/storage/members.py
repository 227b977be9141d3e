from __future__ import annotations

from typing import Iterable, List

import aiosqlite

from ..proxy.models import ProxyMember, ProxyTag
from .utils import _sqlite_proxy_connection, dump_proxy_tags, load_proxy_tags


class StoreMembersMixin:
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
        async with _sqlite_proxy_connection(self.db_path) as db:
            cursor = await db.execute(
                """
                INSERT INTO members (
                    hid, system, name, display_name, avatar_url, proxy_tags, keep_proxy, allow_autoproxy
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    hid,
                    int(system_id),
                    name,
                    display_name,
                    avatar_url,
                    dump_proxy_tags(proxy_tags),
                    int(bool(keep_proxy)),
                    int(bool(allow_autoproxy)),
                ),
            )
            await db.commit()
            return int(cursor.lastrowid)

    async def set_member_guild(
        self,
        member_id: int,
        guild_id: int,
        *,
        display_name: str | None = None,
        avatar_url: str | None = None,
    ) -> None:
        async with _sqlite_proxy_connection(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO member_guild (member, guild, display_name, avatar_url)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(member, guild) DO UPDATE SET
                    display_name = excluded.display_name,
                    avatar_url = excluded.avatar_url
                """,
                (int(member_id), int(guild_id), display_name, avatar_url),
            )
            await db.commit()

    async def get_proxy_members(
        self,
        db: aiosqlite.Connection,
        account_id: int,
        guild_id: int,
    ) -> List[ProxyMember]:
        db.row_factory = aiosqlite.Row
        async with db.execute(
            """
            SELECT
                m.id, m.hid, m.name, m.display_name, m.avatar_url, m.proxy_tags,
                m.keep_proxy, m.allow_autoproxy,
                mg.display_name AS server_name,
                mg.avatar_url AS server_avatar_url
            FROM accounts a
            JOIN members m ON m.system = a.system
            LEFT JOIN member_guild mg ON mg.member = m.id AND mg.guild = ?
            WHERE a.uid = ?
            ORDER BY m.id
            """,
            (int(guild_id), int(account_id)),
        ) as cursor:
            rows = await cursor.fetchall()

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
