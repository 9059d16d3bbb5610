from __future__ import annotations

import asyncio

import pytest

from jobhub.core.config import Settings
from jobhub.core.errors import DependencyUnavailableError
from jobhub.events.memory import InMemoryEventBus
from jobhub.services.repository import PostgresRepository
from jobhub.services.runtime import QUEUE_TOPOLOGY, Runtime, RuntimeState
from jobhub.services.store import InMemoryStore


class FlakyBus(InMemoryEventBus):
    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.bind_calls = 0

    async def bind(self, queue, patterns) -> None:
        self.bind_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise DependencyUnavailableError("bus unavailable")
        await super().bind(queue, patterns)


def _settings(**overrides) -> Settings:
    return Settings(otel_enabled=False, startup_retry_delay_seconds=0.0, **overrides)


def test_start_binds_every_queue_and_close_is_final() -> None:
    runtime = Runtime(_settings())

    asyncio.run(runtime.start())
    asyncio.run(runtime.start())

    assert runtime.state is RuntimeState.STARTED
    assert set(runtime.bus.bindings) == set(QUEUE_TOPOLOGY)
    assert runtime.bus.bindings["search.projection"] == list(QUEUE_TOPOLOGY["search.projection"])

    asyncio.run(runtime.close())
    assert runtime.state is RuntimeState.CLOSED
    with pytest.raises(DependencyUnavailableError):
        asyncio.run(runtime.start())


def test_start_retries_transient_failures() -> None:
    bus = FlakyBus(failures=2)
    runtime = Runtime(_settings(startup_max_attempts=3), bus=bus)

    asyncio.run(runtime.start())

    assert runtime.state is RuntimeState.STARTED
    assert set(bus.bindings) == set(QUEUE_TOPOLOGY)


def test_start_gives_up_after_max_attempts() -> None:
    runtime = Runtime(_settings(startup_max_attempts=2), bus=FlakyBus(failures=10))

    with pytest.raises(DependencyUnavailableError):
        asyncio.run(runtime.start())
    assert runtime.state is RuntimeState.CREATED


def test_postgres_backend_without_url_is_unavailable() -> None:
    runtime = Runtime(_settings(storage_backend="postgres", database_url=None, startup_max_attempts=1))

    with pytest.raises(DependencyUnavailableError, match="JH_DATABASE_URL"):
        asyncio.run(runtime.start())


def _public_methods(cls: type) -> set[str]:
    return {name for name, value in vars(cls).items() if callable(value) and not name.startswith("_")}


def test_memory_and_postgres_stores_share_one_contract() -> None:
    assert _public_methods(InMemoryStore) == _public_methods(PostgresRepository)
