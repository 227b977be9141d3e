from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import aiosqlite

from .members import StoreMembersMixin
from .messages import StoreMessagesMixin
from .schema import StoreSchemaMixin
from .systems import StoreSystemsMixin
from .utils import _sqlite_proxy_connection


class ProxyStore(
    StoreSchemaMixin,
    StoreSystemsMixin,
    StoreMembersMixin,
    StoreMessagesMixin,
):
    """SQLite store for systems, members, guild settings and proxied message links."""

    backend_name = "sqlite"

    @asynccontextmanager
    async def obtain(self) -> AsyncIterator[aiosqlite.Connection]:
        async with _sqlite_proxy_connection(self.db_path) as db:
            yield db

    async def close(self) -> None:
        # Connections are per-call; nothing is held open between them.
        return None
