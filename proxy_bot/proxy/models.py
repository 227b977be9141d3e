from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime


class AutoproxyMode(enum.IntEnum):
    OFF = 1
    LATCH = 2
    MEMBER = 3

    @classmethod
    def parse(cls, value: object) -> "AutoproxyMode":
        try:
            return cls(int(value))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            pass
        raw = str(value or "").strip().upper()
        return cls.__members__.get(raw, cls.OFF)


@dataclass(slots=True)
class MessageContext:
    """Per-account, per-channel state resolved before a message is considered for proxying."""

    system_id: int | None = None
    system_hid: str | None = None
    system_tag: str | None = None
    system_avatar: str | None = None
    proxy_enabled: bool = True
    in_blacklist: bool = False
    log_channel: int | None = None
    in_log_blacklist: bool = False
    autoproxy_mode: AutoproxyMode = AutoproxyMode.OFF
    autoproxy_member: int | None = None
    last_message: int | None = None
    last_message_member: int | None = None
    last_message_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class ProxyTag:
    prefix: str = ""
    suffix: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.prefix and not self.suffix

    @property
    def proxy_string(self) -> str:
        return f"{self.prefix}text{self.suffix}"

    def to_dict(self) -> dict[str, str]:
        return {"prefix": self.prefix, "suffix": self.suffix}

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "ProxyTag":
        return cls(prefix=str(data.get("prefix") or ""), suffix=str(data.get("suffix") or ""))


@dataclass(slots=True)
class ProxyMember:
    id: int
    hid: str
    name: str
    display_name: str | None = None
    server_name: str | None = None
    avatar_url: str | None = None
    server_avatar_url: str | None = None
    proxy_tags: list[ProxyTag] = field(default_factory=list)
    keep_proxy: bool = False
    allow_autoproxy: bool = True

    def proxy_name(self, ctx: MessageContext) -> str:
        name = self.server_name or self.display_name or self.name
        if ctx.system_tag:
            return f"{name} {ctx.system_tag}"
        return name

    def proxy_avatar(self, ctx: MessageContext) -> str | None:
        return self.server_avatar_url or self.avatar_url or ctx.system_avatar


@dataclass(slots=True)
class ProxyMatch:
    member: ProxyMember
    content: str
    proxy_tags: ProxyTag | None = None


@dataclass(frozen=True, slots=True)
class MessageLink:
    mid: int
    original_mid: int
    channel: int
    guild: int
    member: int
    sender: int
