from __future__ import annotations

from jobhub.core.database import Database


class InMemoryKeyValueCache:
    def __init__(self) -> None:
        self.entries: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self.entries.get(key)

    async def set(self, key: str, value: str) -> None:
        self.entries[key] = value

    async def delete(self, key: str) -> None:
        self.entries.pop(key, None)

    async def close(self) -> None:
        return None


class PostgresKeyValueCache:
    """String key-value cache in the `kv_cache` table; no expiry."""

    def __init__(self, database: Database) -> None:
        self.database = database

    async def get(self, key: str) -> str | None:
        pool = await self.database.get_pool()
        return await pool.fetchval("select value from kv_cache where key = $1", key)

    async def set(self, key: str, value: str) -> None:
        pool = await self.database.get_pool()
        await pool.execute(
            """
            insert into kv_cache (key, value, updated_at)
            values ($1, $2, now())
            on conflict (key) do update set value = excluded.value, updated_at = now()
            """,
            key,
            value,
        )

    async def delete(self, key: str) -> None:
        pool = await self.database.get_pool()
        await pool.execute("delete from kv_cache where key = $1", key)

    async def close(self) -> None:
        return None
