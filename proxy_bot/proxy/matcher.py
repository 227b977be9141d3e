from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Iterable, Protocol, Sequence

from .models import AutoproxyMode, MessageContext, ProxyMatch, ProxyMember, ProxyTag

# User/role/channel mentions and custom emotes that may sit in front of a proxy tag.
LEADING_MENTIONS = re.compile(r"^(?:<(?:@!?|@&|#|a?:\w+:)\d+>\s*)+")

AUTOPROXY_ESCAPE = "\\"


class PersonaMatcher(Protocol):
    def try_match(
        self,
        ctx: MessageContext,
        members: Sequence[ProxyMember],
        content: str | None,
        has_attachments: bool,
        allow_autoproxy: bool,
    ) -> ProxyMatch | None: ...


class ProxyTagParser:
    def try_match(self, members: Iterable[ProxyMember], content: str | None) -> ProxyMatch | None:
        if not content:
            return None

        # Longest tags first so "[[" beats "[" for the same message.
        candidates = sorted(
            ((tag, member) for member in members for tag in member.proxy_tags if not tag.is_empty),
            key=lambda pair: len(pair[0].prefix) + len(pair[0].suffix),
            reverse=True,
        )
        if not candidates:
            return None

        leading = ""
        body = content
        mentions = LEADING_MENTIONS.match(content)
        if mentions:
            leading = mentions.group(0)
            body = content[len(leading) :]

        for tag, member in candidates:
            inner = self._match_tag(tag, body)
            if inner is None:
                continue
            if member.keep_proxy:
                proxied = leading + body.strip()
            else:
                proxied = leading + inner
            return ProxyMatch(member=member, content=proxied, proxy_tags=tag)
        return None

    @staticmethod
    def _match_tag(tag: ProxyTag, text: str) -> str | None:
        text = text.strip()
        prefix_len = len(tag.prefix)
        suffix_len = len(tag.suffix)
        if len(text) < prefix_len + suffix_len:
            return None
        if text[:prefix_len].casefold() != tag.prefix.casefold():
            return None
        if suffix_len and text[len(text) - suffix_len :].casefold() != tag.suffix.casefold():
            return None
        return text[prefix_len : len(text) - suffix_len].strip()


class ProxyMatcher:
    """Selects at most one member for a message: explicit proxy tags first, then autoproxy."""

    def __init__(self, latch_timeout_seconds: int = 6 * 60 * 60, parser: ProxyTagParser | None = None) -> None:
        self.latch_timeout = timedelta(seconds=max(0, int(latch_timeout_seconds)))
        self.parser = parser or ProxyTagParser()

    def try_match(
        self,
        ctx: MessageContext,
        members: Sequence[ProxyMember],
        content: str | None,
        has_attachments: bool,
        allow_autoproxy: bool,
    ) -> ProxyMatch | None:
        match = self._try_match_tags(members, content, has_attachments)
        if match is not None:
            return match
        if allow_autoproxy:
            return self._try_match_autoproxy(ctx, members, content)
        return None

    def _try_match_tags(
        self,
        members: Sequence[ProxyMember],
        content: str | None,
        has_attachments: bool,
    ) -> ProxyMatch | None:
        match = self.parser.try_match(members, content)
        if match is None:
            return None
        # A bare tag only makes sense when there is something to carry.
        if not match.content.strip() and not has_attachments:
            return None
        return match

    def _try_match_autoproxy(
        self,
        ctx: MessageContext,
        members: Sequence[ProxyMember],
        content: str | None,
    ) -> ProxyMatch | None:
        text = content or ""
        if text.startswith(AUTOPROXY_ESCAPE):
            return None

        member_id: int | None
        if ctx.autoproxy_mode == AutoproxyMode.MEMBER:
            member_id = ctx.autoproxy_member
        elif ctx.autoproxy_mode == AutoproxyMode.LATCH:
            member_id = ctx.last_message_member if self._latch_alive(ctx) else None
        else:
            member_id = None
        if member_id is None:
            return None

        member = next((m for m in members if m.id == member_id), None)
        if member is None or not member.allow_autoproxy:
            return None
        return ProxyMatch(member=member, content=text, proxy_tags=None)

    def _latch_alive(self, ctx: MessageContext) -> bool:
        if ctx.last_message_member is None:
            return False
        if not self.latch_timeout:
            return True
        if ctx.last_message_at is None:
            return False
        last = ctx.last_message_at
        if last.tzinfo is None:
            last = last.replace(tzinfo=timezone.utc)
        return datetime.now(timezone.utc) - last <= self.latch_timeout
