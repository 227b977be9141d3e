from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


load_dotenv()

# Discord rejects webhook usernames longer than this.
MAX_PROXY_NAME_LENGTH = 80
MIN_PROXY_NAME_LENGTH = 2


def _env_lookup(name: str, aliases: tuple[str, ...] = ()) -> str | None:
    for key in (name, *aliases):
        # Be tolerant to UTF-8 BOM accidentally saved in .env key names.
        for candidate in (key, f"\ufeff{key}"):
            raw = os.getenv(candidate)
            if raw is not None:
                return raw
    return None


def _env_bool(name: str, default: bool, aliases: tuple[str, ...] = ()) -> bool:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int, aliases: tuple[str, ...] = ()) -> int:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float, aliases: tuple[str, ...] = ()) -> float:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _clean_token(value: str) -> str:
    cleaned = value.strip()
    if cleaned.lower().startswith("bot "):
        cleaned = cleaned[4:].strip()
    if (cleaned.startswith('"') and cleaned.endswith('"')) or (
        cleaned.startswith("'") and cleaned.endswith("'")
    ):
        cleaned = cleaned[1:-1].strip()
    return cleaned


def _env_str(name: str, default: str, aliases: tuple[str, ...] = ()) -> str:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    value = raw.strip()
    return value if value else default


@dataclass(slots=True)
class Settings:
    discord_token: str
    discord_message_content_intent: bool
    discord_members_intent: bool

    sqlite_path: Path

    max_proxy_name_length: int
    trigger_delete_delay_seconds: float
    latch_timeout_seconds: int
    webhook_name: str

    log_level: str

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            discord_token=_clean_token(_env_lookup("DISCORD_TOKEN") or ""),
            discord_message_content_intent=_env_bool("DISCORD_MESSAGE_CONTENT_INTENT", True),
            discord_members_intent=_env_bool("DISCORD_MEMBERS_INTENT", True),
            sqlite_path=Path(_env_str("SQLITE_PATH", "./data/proxy.db")).expanduser(),
            max_proxy_name_length=_env_int("PROXY_MAX_NAME_LENGTH", MAX_PROXY_NAME_LENGTH),
            trigger_delete_delay_seconds=_env_float(
                "PROXY_TRIGGER_DELETE_DELAY_SECONDS",
                1.0,
                aliases=("PROXY_DELETE_DELAY_SECONDS",),
            ),
            latch_timeout_seconds=_env_int("PROXY_LATCH_TIMEOUT_SECONDS", 6 * 60 * 60),
            webhook_name=_env_str("PROXY_WEBHOOK_NAME", "Persona Proxy Webhook"),
            log_level=_env_str("PROXY_LOG_LEVEL", "INFO").upper(),
        )

    def validate(self) -> None:
        if not self.discord_token:
            raise ValueError("DISCORD_TOKEN is required")
        if self.discord_token == "put_your_discord_bot_token_here":
            raise ValueError("DISCORD_TOKEN is still placeholder")

        if self.max_proxy_name_length < MIN_PROXY_NAME_LENGTH:
            raise ValueError(f"PROXY_MAX_NAME_LENGTH must be >= {MIN_PROXY_NAME_LENGTH}")
        if self.max_proxy_name_length > MAX_PROXY_NAME_LENGTH:
            raise ValueError(f"PROXY_MAX_NAME_LENGTH must be <= {MAX_PROXY_NAME_LENGTH}")
        if self.trigger_delete_delay_seconds < 0.0:
            raise ValueError("PROXY_TRIGGER_DELETE_DELAY_SECONDS must be >= 0")
        if self.latch_timeout_seconds < 0:
            raise ValueError("PROXY_LATCH_TIMEOUT_SECONDS must be >= 0 (0 disables latch expiry)")
        if not self.webhook_name.strip():
            raise ValueError("PROXY_WEBHOOK_NAME cannot be empty")
        if self.log_level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("PROXY_LOG_LEVEL must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")
