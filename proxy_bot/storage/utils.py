from __future__ import annotations

import json
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from ..proxy.models import ProxyTag


def _sqlite_busy_timeout_ms() -> int:
    raw = os.getenv("PROXY_SQLITE_BUSY_TIMEOUT_MS", "5000").strip()
    try:
        timeout = int(raw)
    except ValueError:
        timeout = 5000
    return max(0, min(timeout, 60000))


@asynccontextmanager
async def _sqlite_proxy_connection(db_path: str | Path) -> AsyncIterator[aiosqlite.Connection]:
    async with aiosqlite.connect(db_path) as db:
        await db.execute("PRAGMA foreign_keys=ON")
        timeout_ms = _sqlite_busy_timeout_ms()
        if timeout_ms > 0:
            await db.execute(f"PRAGMA busy_timeout={timeout_ms}")
        yield db


def dump_id_list(values: object) -> str:
    result: list[int] = []
    for value in values or ():  # type: ignore[union-attr]
        try:
            result.append(int(value))
        except (TypeError, ValueError):
            continue
    return json.dumps(sorted(set(result)))


def load_id_list(raw: object) -> set[int]:
    if not raw:
        return set()
    try:
        data = json.loads(str(raw))
    except ValueError:
        return set()
    result: set[int] = set()
    for value in data if isinstance(data, list) else ():
        try:
            result.add(int(value))
        except (TypeError, ValueError):
            continue
    return result


def dump_proxy_tags(tags: object) -> str:
    return json.dumps([tag.to_dict() for tag in tags or () if not tag.is_empty])  # type: ignore[union-attr]


def load_proxy_tags(raw: object) -> list[ProxyTag]:
    if not raw:
        return []
    try:
        data = json.loads(str(raw))
    except ValueError:
        return []
    if not isinstance(data, list):
        return []
    return [ProxyTag.from_dict(item) for item in data if isinstance(item, dict)]
