from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

discord = pytest.importorskip("discord")

from proxy_bot.errors import AttachmentTooLarge  # noqa: E402
from proxy_bot.proxy.webhooks import WebhookExecutor  # noqa: E402

BOT_ID = 4004
WEBHOOK_NAME = "Persona Proxy Webhook"


class _FakeWebhook:
    def __init__(
        self,
        webhook_id: int,
        *,
        name: str = WEBHOOK_NAME,
        owner: int = BOT_ID,
        errors: list[Exception] | None = None,
    ) -> None:
        self.id = webhook_id
        self.name = name
        self.type = discord.WebhookType.incoming
        self.token = "token"
        self.user = SimpleNamespace(id=owner)
        self.errors = list(errors or [])
        self.sent: list[dict[str, Any]] = []

    async def send(self, **kwargs: Any) -> Any:
        self.sent.append(kwargs)
        if self.errors:
            raise self.errors.pop(0)
        return SimpleNamespace(id=10_000 + len(self.sent))


class _FakeAttachment:
    def __init__(self, filename: str, size: int) -> None:
        self.filename = filename
        self.size = size

    def is_spoiler(self) -> bool:
        return self.filename.startswith("SPOILER_")

    async def to_file(self, *, spoiler: bool = False) -> str:
        return f"spoiler:{self.filename}" if spoiler else f"file:{self.filename}"


class _FakeChannel:
    def __init__(self, existing: list[_FakeWebhook] | None = None, filesize_limit: int = 100) -> None:
        self.id = 3003
        self.guild = SimpleNamespace(id=2002, filesize_limit=filesize_limit)
        self.existing = list(existing or [])
        self.created: list[_FakeWebhook] = []
        self.listed = 0

    async def webhooks(self) -> list[_FakeWebhook]:
        self.listed += 1
        return list(self.existing)

    async def create_webhook(self, *, name: str) -> _FakeWebhook:
        hook = _FakeWebhook(500 + len(self.created), name=name)
        self.created.append(hook)
        self.existing.append(hook)
        return hook


def _executor() -> WebhookExecutor:
    return WebhookExecutor(SimpleNamespace(user=SimpleNamespace(id=BOT_ID)), WEBHOOK_NAME)  # type: ignore[arg-type]


def test_reuses_existing_owned_webhook_and_caches_it() -> None:
    foreign = _FakeWebhook(1, owner=999)
    renamed = _FakeWebhook(2, name="Someone else")
    owned = _FakeWebhook(3)
    channel = _FakeChannel([foreign, renamed, owned])
    executor = _executor()

    async def scenario() -> tuple[Any, Any]:
        return await executor.get_webhook(channel), await executor.get_webhook(channel)

    first, second = asyncio.run(scenario())
    assert first is owned
    assert second is owned
    assert channel.listed == 1
    assert channel.created == []


def test_creates_webhook_once_for_concurrent_callers() -> None:
    channel = _FakeChannel()
    executor = _executor()

    async def scenario() -> list[Any]:
        return list(await asyncio.gather(*(executor.get_webhook(channel) for _ in range(5))))

    hooks = asyncio.run(scenario())
    assert len(channel.created) == 1
    assert all(hook is channel.created[0] for hook in hooks)


def test_execute_sends_under_member_identity() -> None:
    channel = _FakeChannel()
    executor = _executor()
    attachments = [
        _FakeAttachment("small.png", 10),
        _FakeAttachment("SPOILER_cat.png", 20),
    ]

    async def scenario() -> Any:
        return await executor.execute_webhook(channel, "Bob | Sys", None, "hello", attachments, False)

    message = asyncio.run(scenario())
    sent = channel.created[0].sent[0]

    assert message.id == 10_001
    assert sent["content"] == "hello"
    assert sent["username"] == "Bob | Sys"
    assert sent["avatar_url"] is discord.utils.MISSING
    assert sent["files"] == ["file:small.png", "spoiler:SPOILER_cat.png"]
    assert sent["wait"] is True
    assert sent["allowed_mentions"].everyone is False
    assert sent["allowed_mentions"].users is True


def test_execute_passes_avatar_and_everyone_flag() -> None:
    channel = _FakeChannel()
    executor = _executor()

    async def scenario() -> None:
        await executor.execute_webhook(channel, "Bob", "https://cdn.example/avatar.png", "@everyone hi", [], True)

    asyncio.run(scenario())
    sent = channel.created[0].sent[0]
    assert sent["avatar_url"] == "https://cdn.example/avatar.png"
    assert sent["allowed_mentions"].everyone is True


def test_deleted_webhook_is_recreated_and_send_retried_once() -> None:
    not_found = discord.NotFound(SimpleNamespace(status=404, reason="Not Found"), "Unknown Webhook")
    stale = _FakeWebhook(3, errors=[not_found])
    channel = _FakeChannel([stale])
    executor = _executor()

    async def scenario() -> Any:
        await executor.get_webhook(channel)
        channel.existing = []
        return await executor.execute_webhook(channel, "Bob", None, "hello", [], False)

    message = asyncio.run(scenario())
    assert len(stale.sent) == 1
    assert len(channel.created) == 1
    assert len(channel.created[0].sent) == 1
    assert message.id == 10_001


def test_second_not_found_is_not_retried_again() -> None:
    not_found = discord.NotFound(SimpleNamespace(status=404, reason="Not Found"), "Unknown Webhook")
    first = _FakeWebhook(3, errors=[not_found])
    channel = _FakeChannel([first])
    executor = _executor()

    async def scenario() -> None:
        await executor.get_webhook(channel)
        channel.existing = []
        original_create = channel.create_webhook

        async def create_broken(*, name: str) -> _FakeWebhook:
            hook = await original_create(name=name)
            hook.errors.append(not_found)
            return hook

        channel.create_webhook = create_broken  # type: ignore[method-assign]
        await executor.execute_webhook(channel, "Bob", None, "hello", [], False)

    with pytest.raises(discord.NotFound):
        asyncio.run(scenario())
    assert len(channel.created) == 1


def test_oversize_attachment_is_refused_before_anything_is_sent() -> None:
    owned = _FakeWebhook(3)
    channel = _FakeChannel([owned], filesize_limit=100)
    executor = _executor()
    attachments = [_FakeAttachment("small.png", 10), _FakeAttachment("huge.bin", 10_000)]

    async def scenario() -> None:
        await executor.execute_webhook(channel, "Bob", None, "look", attachments, False)

    with pytest.raises(AttachmentTooLarge) as excinfo:
        asyncio.run(scenario())
    assert excinfo.value.filename == "huge.bin"
    assert "`huge.bin`" in str(excinfo.value)
    assert owned.sent == []
    assert channel.listed == 0
    assert channel.created == []
