from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from .store import ProxyStore


def _env(name: str, default: str = "") -> str:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip()


def _resolve_backend() -> str:
    backend = _env("PROXY_STORE_BACKEND", "sqlite").lower()
    if backend in {"sqlite", "postgres"}:
        return backend
    raise ValueError("PROXY_STORE_BACKEND must be 'sqlite' or 'postgres'")


def build_proxy_store(sqlite_path: Path) -> Any:
    backend = _resolve_backend()
    if backend == "sqlite":
        return ProxyStore(sqlite_path)

    postgres_dsn = _env("PROXY_POSTGRES_DSN")
    if not postgres_dsn:
        raise ValueError("PROXY_POSTGRES_DSN is required when PROXY_STORE_BACKEND=postgres")

    from .postgres_store import PostgresProxyStore

    return PostgresProxyStore(postgres_dsn)
