from __future__ import annotations

import asyncio
import sqlite3
import sys
from datetime import timedelta
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

discord = pytest.importorskip("discord")
pytest.importorskip("aiosqlite")

from proxy_bot.proxy.models import AutoproxyMode, MessageLink, ProxyTag  # noqa: E402
from proxy_bot.storage.schema import StoreSchemaMixin  # noqa: E402
from proxy_bot.storage.store import ProxyStore  # noqa: E402

ACCOUNT_ID = 1001
GUILD_ID = 2002
CHANNEL_ID = 3003


async def _seeded(tmp_path: Path) -> tuple[ProxyStore, int, int]:
    store = ProxyStore(tmp_path / "nested" / "proxy.db")
    await store.init()
    system_id = await store.create_system("sysaa", "Sys", "| Sys", "https://cdn.example/sys.png")
    await store.link_account(ACCOUNT_ID, system_id)
    member_id = await store.create_member(
        system_id,
        "memaa",
        "Bob",
        display_name="Bobby",
        proxy_tags=[ProxyTag("[", "]"), ProxyTag()],
        keep_proxy=True,
    )
    return store, system_id, member_id


def test_unknown_account_has_no_system(tmp_path: Path) -> None:
    async def scenario() -> object:
        store, _, _ = await _seeded(tmp_path)
        return await store.get_message_context(9999, GUILD_ID, CHANNEL_ID)

    ctx = asyncio.run(scenario())
    assert ctx.system_id is None
    assert ctx.proxy_enabled is True
    assert ctx.autoproxy_mode == AutoproxyMode.OFF


def test_context_carries_system_guild_and_server_settings(tmp_path: Path) -> None:
    async def scenario() -> object:
        store, system_id, member_id = await _seeded(tmp_path)
        await store.set_system_guild(
            system_id,
            GUILD_ID,
            proxy_enabled=False,
            autoproxy_mode=AutoproxyMode.MEMBER,
            autoproxy_member=member_id,
        )
        await store.set_server_settings(
            GUILD_ID,
            log_channel=8008,
            log_blacklist=[CHANNEL_ID],
            blacklist=[CHANNEL_ID, 4444],
        )
        return await store.get_message_context(ACCOUNT_ID, GUILD_ID, CHANNEL_ID)

    ctx = asyncio.run(scenario())
    assert ctx.system_hid == "sysaa"
    assert ctx.system_tag == "| Sys"
    assert ctx.system_avatar == "https://cdn.example/sys.png"
    assert ctx.proxy_enabled is False
    assert ctx.autoproxy_mode == AutoproxyMode.MEMBER
    assert ctx.autoproxy_member is not None
    assert ctx.log_channel == 8008
    assert ctx.in_log_blacklist is True
    assert ctx.in_blacklist is True


def test_blacklist_applies_only_to_listed_channels(tmp_path: Path) -> None:
    async def scenario() -> object:
        store, _, _ = await _seeded(tmp_path)
        await store.set_server_settings(GUILD_ID, blacklist=[4444])
        return await store.get_message_context(ACCOUNT_ID, GUILD_ID, CHANNEL_ID)

    ctx = asyncio.run(scenario())
    assert ctx.in_blacklist is False
    assert ctx.in_log_blacklist is False
    assert ctx.log_channel is None


def test_proxy_members_include_tags_and_server_overrides(tmp_path: Path) -> None:
    async def scenario() -> tuple[list, list]:
        store, _, member_id = await _seeded(tmp_path)
        await store.set_member_guild(member_id, GUILD_ID, display_name="Guild Bob", avatar_url="https://cdn.example/g.png")
        async with store.obtain() as db:
            here = await store.get_proxy_members(db, ACCOUNT_ID, GUILD_ID)
            elsewhere = await store.get_proxy_members(db, ACCOUNT_ID, 1)
        return here, elsewhere

    here, elsewhere = asyncio.run(scenario())
    assert len(here) == 1
    member = here[0]
    assert member.hid == "memaa"
    assert member.proxy_tags == [ProxyTag("[", "]")]
    assert member.keep_proxy is True
    assert member.server_name == "Guild Bob"
    assert member.server_avatar_url == "https://cdn.example/g.png"
    assert elsewhere[0].server_name is None
    assert elsewhere[0].display_name == "Bobby"


def test_latest_link_drives_last_message_context(tmp_path: Path) -> None:
    older = discord.utils.time_snowflake(discord.utils.utcnow() - timedelta(hours=1))
    newer = discord.utils.time_snowflake(discord.utils.utcnow())

    async def scenario() -> tuple[object, object, int]:
        store, _, member_id = await _seeded(tmp_path)
        async with store.obtain() as db:
            for mid, original in ((newer, 11), (older, 10)):
                await store.add_message(
                    db,
                    MessageLink(
                        mid=mid,
                        original_mid=original,
                        channel=CHANNEL_ID,
                        guild=GUILD_ID,
                        member=member_id,
                        sender=ACCOUNT_ID,
                    ),
                )
        ctx = await store.get_message_context(ACCOUNT_ID, GUILD_ID, CHANNEL_ID)
        link = await store.get_message(11)
        return ctx, link, await store.count_messages(10)

    ctx, link, count = asyncio.run(scenario())
    assert ctx.last_message == newer
    assert ctx.last_message_member is not None
    assert ctx.last_message_at == discord.utils.snowflake_time(newer)
    assert link is not None
    assert link.mid == newer
    assert count == 1


def test_schema_mismatch_raises_without_opt_in(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PROXY_SQLITE_RESET_ON_SCHEMA_MISMATCH", raising=False)
    db_path = tmp_path / "proxy.db"

    asyncio.run(StoreSchemaMixin(db_path).init())
    with sqlite3.connect(db_path) as conn:
        conn.execute("PRAGMA user_version = 999")
        conn.commit()

    with pytest.raises(RuntimeError, match="schema version mismatch"):
        asyncio.run(StoreSchemaMixin(db_path).init())


def test_schema_mismatch_can_reset_with_explicit_opt_in(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    db_path = tmp_path / "proxy.db"
    asyncio.run(StoreSchemaMixin(db_path).init())

    with sqlite3.connect(db_path) as conn:
        conn.execute("PRAGMA user_version = 999")
        conn.commit()

    monkeypatch.setenv("PROXY_SQLITE_RESET_ON_SCHEMA_MISMATCH", "1")
    asyncio.run(StoreSchemaMixin(db_path).init())

    with sqlite3.connect(db_path) as conn:
        version = conn.execute("PRAGMA user_version").fetchone()[0]
    assert version == StoreSchemaMixin.SCHEMA_VERSION
