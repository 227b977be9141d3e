from __future__ import annotations

import asyncio
import contextlib
import logging

from .config import Settings
from .discord.client import ProxyDiscordBot
from .storage.factory import build_proxy_store

logger = logging.getLogger("proxy_bot")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logging.getLogger("discord.gateway").setLevel(logging.WARNING)
    logging.getLogger("discord.http").setLevel(logging.WARNING)


def build_bot(settings: Settings) -> ProxyDiscordBot:
    store = build_proxy_store(settings.sqlite_path)
    return ProxyDiscordBot(settings=settings, store=store)


async def _run_bot(settings: Settings) -> None:
    bot = build_bot(settings)
    try:
        async with bot:
            await bot.start(settings.discord_token)
    finally:
        if not bot.is_closed():
            with contextlib.suppress(Exception):
                await asyncio.wait_for(bot.close(), timeout=15.0)


def main() -> None:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    settings.validate()
    try:
        asyncio.run(_run_bot(settings))
    except KeyboardInterrupt:
        logger.info("Shutdown requested, exiting.")
