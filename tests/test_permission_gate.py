from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

discord = pytest.importorskip("discord")

from proxy_bot.proxy.permissions import (  # noqa: E402
    check_bot_permissions_or_error,
    sender_permissions,
)


class _Channel:
    def __init__(self, permissions: "discord.Permissions") -> None:
        self.id = 555
        self.guild = SimpleNamespace(id=1, me=SimpleNamespace(id=9))
        self._permissions = permissions
        self.sent: list[str] = []

    def permissions_for(self, _who: object) -> "discord.Permissions":
        return self._permissions

    async def send(self, content: str) -> None:
        self.sent.append(content)


def _perms(**flags: bool) -> "discord.Permissions":
    base = {"send_messages": True, "manage_webhooks": True, "manage_messages": True}
    base.update(flags)
    return discord.Permissions(**base)


def test_all_permissions_present_passes_silently() -> None:
    channel = _Channel(_perms())

    assert asyncio.run(check_bot_permissions_or_error(channel)) is True
    assert channel.sent == []


def test_missing_manage_webhooks_sends_one_diagnostic() -> None:
    channel = _Channel(_perms(manage_webhooks=False))

    assert asyncio.run(check_bot_permissions_or_error(channel)) is False
    assert len(channel.sent) == 1
    assert "Manage Webhooks" in channel.sent[0]


def test_missing_manage_messages_sends_one_diagnostic() -> None:
    channel = _Channel(_perms(manage_messages=False))

    assert asyncio.run(check_bot_permissions_or_error(channel)) is False
    assert len(channel.sent) == 1
    assert "Manage Messages" in channel.sent[0]


def test_missing_send_messages_fails_without_any_output() -> None:
    channel = _Channel(_perms(send_messages=False, manage_webhooks=False))

    assert asyncio.run(check_bot_permissions_or_error(channel)) is False
    assert channel.sent == []


def test_sender_permissions_mirror_author_flags() -> None:
    channel = _Channel(discord.Permissions(mention_everyone=True, embed_links=False))
    assert sender_permissions(channel, SimpleNamespace(id=1)) == (True, False)

    channel = _Channel(discord.Permissions(embed_links=True))
    assert sender_permissions(channel, SimpleNamespace(id=1)) == (False, True)
