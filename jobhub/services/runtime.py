from __future__ import annotations

import asyncio
import logging
from enum import Enum
from functools import lru_cache

from jobhub.core.config import Settings, get_settings
from jobhub.core.database import Database
from jobhub.core.errors import DependencyUnavailableError
from jobhub.events.memory import InMemoryEventBus
from jobhub.events.postgres import PostgresEventBus
from jobhub.services.applications import ApplicationService
from jobhub.services.cache import InMemoryKeyValueCache, PostgresKeyValueCache
from jobhub.services.jobs import JobService
from jobhub.services.notifications import NOTIFICATION_PATTERNS, NOTIFICATION_QUEUE, NotificationService
from jobhub.services.projection import SEARCH_PATTERNS, SEARCH_QUEUE, SearchProjection
from jobhub.services.push import PushGateway
from jobhub.services.ranking import SearchEngine
from jobhub.services.repository import PostgresRepository
from jobhub.services.store import InMemoryStore
from jobhub.services.subscriptions import SUBSCRIPTION_PATTERNS, SUBSCRIPTION_QUEUE, SubscriptionCache
from jobhub.services.trending import TRENDING_TRIGGER_PATTERNS, TRENDING_TRIGGER_QUEUE, TrendingPolicy, TrendingService

logger = logging.getLogger(__name__)

QUEUE_TOPOLOGY: dict[str, tuple[str, ...]] = {
    SUBSCRIPTION_QUEUE: SUBSCRIPTION_PATTERNS,
    SEARCH_QUEUE: SEARCH_PATTERNS,
    NOTIFICATION_QUEUE: NOTIFICATION_PATTERNS,
    TRENDING_TRIGGER_QUEUE: TRENDING_TRIGGER_PATTERNS,
}


class RuntimeState(str, Enum):
    CREATED = "created"
    STARTED = "started"
    CLOSED = "closed"


class Runtime:
    """Owns the store, cache, bus and push client and the services built on them.

    `start()` verifies connectivity and declares the queue bindings, retrying
    with backoff; it raises `DependencyUnavailableError` once attempts run out.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        store=None,
        bus=None,
        cache=None,
        push: PushGateway | None = None,
    ) -> None:
        self.settings = settings
        self.state = RuntimeState.CREATED
        self.database: Database | None = None

        if settings.storage_backend == "postgres":
            self.database = Database(
                settings.database_url,
                min_pool_size=settings.database_pool_min_size,
                max_pool_size=settings.database_pool_max_size,
            )
            store = store or PostgresRepository(self.database)
            cache = cache or PostgresKeyValueCache(self.database)
            bus = bus or PostgresEventBus(
                self.database,
                max_attempts=settings.event_max_attempts,
                retry_base_seconds=settings.event_retry_base_seconds,
                retry_max_seconds=settings.event_retry_max_seconds,
                lease_seconds=settings.event_lease_seconds,
            )
        else:
            store = store or InMemoryStore()
            cache = cache or InMemoryKeyValueCache()
            bus = bus or InMemoryEventBus(
                max_attempts=settings.event_max_attempts,
                lease_seconds=settings.event_lease_seconds,
            )

        self.store = store
        self.cache = cache
        self.bus = bus
        self.push = push or PushGateway(
            settings.push_gateway_url,
            api_token=settings.push_gateway_token,
            timeout_seconds=settings.push_timeout_seconds,
        )
        self.subscriptions = SubscriptionCache(cache)
        self.jobs = JobService(store, bus, self.subscriptions)
        self.applications = ApplicationService(store, bus)
        self.trending = TrendingService(
            store,
            bus,
            TrendingPolicy(
                application_threshold=settings.application_threshold,
                days_threshold=settings.days_threshold,
                hot_duration_days=settings.hot_duration_days,
            ),
        )
        self.projection = SearchProjection(store)
        self.search = SearchEngine(store)
        self.notifications = NotificationService(
            store,
            self.push,
            frontend_url=settings.frontend_url,
            ttl_days=settings.notification_ttl_days,
        )

    async def start(self) -> None:
        if self.state is RuntimeState.STARTED:
            return
        if self.state is RuntimeState.CLOSED:
            raise DependencyUnavailableError("runtime is closed")

        max_attempts = max(1, self.settings.startup_max_attempts)
        for attempt in range(1, max_attempts + 1):
            try:
                if self.database is not None:
                    await self.database.ping()
                for queue, patterns in QUEUE_TOPOLOGY.items():
                    await self.bus.bind(queue, patterns)
                break
            except DependencyUnavailableError as exc:
                if attempt >= max_attempts:
                    logger.error("dependencies unavailable after %s attempts: %s", attempt, exc)
                    raise
                delay = min(
                    self.settings.startup_retry_delay_seconds * (2 ** (attempt - 1)),
                    self.settings.max_backoff_seconds,
                )
                logger.warning("startup attempt %s/%s failed: %s; retry in %.1fs", attempt, max_attempts, exc, delay)
                await asyncio.sleep(delay)

        self.state = RuntimeState.STARTED
        logger.info(
            "runtime started backend=%s push_configured=%s",
            self.settings.storage_backend,
            self.push.configured,
        )

    async def close(self) -> None:
        if self.state is RuntimeState.CLOSED:
            return
        await self.push.close()
        await self.bus.close()
        await self.cache.close()
        await self.store.close()
        self.state = RuntimeState.CLOSED


@lru_cache
def get_runtime() -> Runtime:
    return Runtime(get_settings())
