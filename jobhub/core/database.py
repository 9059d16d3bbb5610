from __future__ import annotations

import asyncpg  # type: ignore[import-untyped]

from jobhub.core.errors import DependencyUnavailableError


class Database:
    """Lazily created asyncpg pool shared by the store, cache and event bus."""

    def __init__(self, database_url: str | None, min_pool_size: int, max_pool_size: int) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise DependencyUnavailableError("JH_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise DependencyUnavailableError("database unavailable") from exc

    async def ping(self) -> None:
        pool = await self.get_pool()
        try:
            await pool.fetchval("select 1")
        except (asyncpg.PostgresError, OSError) as exc:  # pragma: no cover - depends on environment
            raise DependencyUnavailableError("database unavailable") from exc

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
