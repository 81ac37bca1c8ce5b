"""Shared asyncpg plumbing for the system-database stores."""

from __future__ import annotations

import json
from typing import Any

import asyncpg

from finquery.config import get_settings


class SystemDatabaseStore:
    """
    Base for stores persisted in the system database.

    Subclasses list their DDL in `_SCHEMA`; `initialize()` creates the pool
    (unless one was injected) and applies it.
    """

    _SCHEMA: tuple[str, ...] = ()
    _LABEL = "Store"

    def __init__(self, database_url: str | None = None, pool: asyncpg.Pool | None = None) -> None:
        if database_url is None and pool is None:
            settings = get_settings()
            database_url = (
                str(settings.system_database.url) if settings.system_database.url else None
            )
        self._database_url = database_url
        self._pool = pool
        self._owns_pool = pool is None

    async def initialize(self) -> None:
        if self._pool is None:
            if not self._database_url:
                raise ValueError(f"SYSTEM_DATABASE_URL must be set for {self._LABEL}.")
            dsn = normalize_postgres_url(self._database_url)
            self._pool = await asyncpg.create_pool(dsn=dsn, min_size=1, max_size=5)
            self._owns_pool = True
        for statement in self._SCHEMA:
            await self._pool.execute(statement)

    async def close(self) -> None:
        if self._pool is not None and self._owns_pool:
            await self._pool.close()
        self._pool = None

    def _ensure_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError(f"{self._LABEL} not initialized")
        return self._pool


def normalize_postgres_url(url: str) -> str:
    if url.startswith("postgresql+asyncpg://"):
        return "postgresql://" + url[len("postgresql+asyncpg://") :]
    return url


def decode_json_field(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return None
    return value


def affected_rows(status: Any) -> int:
    """Row count from an asyncpg command tag such as 'UPDATE 1'."""
    try:
        return int(str(status).split()[-1])
    except (ValueError, IndexError):
        return 0
