from __future__ import annotations

import logging
from typing import Protocol

from pydantic import ValidationError

from jobhub.core.errors import EventProcessingError
from jobhub.events.models import CompanyCreated, CompanySubscriptionUpdated, Event
from jobhub.schemas.subscriptions import SubscriptionSnapshot

logger = logging.getLogger(__name__)

SUBSCRIPTION_KEY_PREFIX = "subscription:"
SUBSCRIPTION_QUEUE = "job.subscription_cache"
SUBSCRIPTION_PATTERNS = ("company.created", "company.subscription.updated")


class KeyValueCache(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


def subscription_key(company_id: str) -> str:
    return f"{SUBSCRIPTION_KEY_PREFIX}{company_id}"


class SubscriptionCache:
    """Read-through view of company plans, written only from company events.

    Entries are overwritten whole (last write wins) and never expire. A miss
    means the company's plan is not known yet.
    """

    def __init__(self, cache: KeyValueCache) -> None:
        self.cache = cache

    async def get(self, company_id: str) -> SubscriptionSnapshot | None:
        raw = await self.cache.get(subscription_key(company_id))
        if raw is None:
            return None
        try:
            return SubscriptionSnapshot.model_validate_json(raw)
        except ValidationError:
            logger.warning("discarding unreadable subscription snapshot company_id=%s", company_id)
            return None

    async def put(self, company_id: str, snapshot: SubscriptionSnapshot) -> None:
        await self.cache.set(subscription_key(company_id), snapshot.model_dump_json(by_alias=True))

    async def handle_event(self, event: Event) -> None:
        if not isinstance(event, (CompanyCreated, CompanySubscriptionUpdated)):
            raise EventProcessingError(f"unexpected event for subscription cache: {event.routing_key}")
        await self.put(event.company_id, event.subscription)
        logger.info(
            "subscription cached company_id=%s plan=%s job_post_limit=%s featured_jobs_limit=%s",
            event.company_id,
            event.subscription.plan,
            event.subscription.job_post_limit,
            event.subscription.featured_jobs_limit,
        )
