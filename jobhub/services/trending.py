from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jobhub.events.bus import EventBus
from jobhub.events.models import Event, JobApplicationSubmitted, JobHot
from jobhub.services.records import JobRecord

logger = logging.getLogger(__name__)

TRENDING_TRIGGER_QUEUE = "job.trending_trigger"
TRENDING_TRIGGER_PATTERNS = ("job.application",)


@dataclass(slots=True)
class TrendingPolicy:
    application_threshold: int = 10
    days_threshold: int = 1
    hot_duration_days: int = 7


class TrendingService:
    """Flips jobs into and out of the hot tier; only rows actually flipped emit `job.hot`."""

    def __init__(self, store, bus: EventBus, policy: TrendingPolicy | None = None) -> None:
        self.store = store
        self.bus = bus
        self.policy = policy or TrendingPolicy()

    async def promote_trending(
        self,
        now: datetime | None = None,
        job_ids: Sequence[str] | None = None,
    ) -> list[JobRecord]:
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(days=self.policy.days_threshold)
        counts = await self.store.count_recent_applications(since=since, job_ids=job_ids)
        candidates = sorted(job_id for job_id, count in counts.items() if count >= self.policy.application_threshold)
        if not candidates:
            return []

        promoted = await self.store.promote_hot(
            candidates,
            hot_until=now + timedelta(days=self.policy.hot_duration_days),
            now=now,
        )
        for job in promoted:
            await self.bus.publish(
                JobHot(
                    job_id=job.id,
                    slug=job.slug,
                    is_hot=True,
                    hot_until=job.hot_until,
                    title=job.title,
                    company_name=job.company_name,
                    posted_by=job.posted_by,
                )
            )
            logger.info("job marked hot job_id=%s applications=%s until=%s", job.id, counts[job.id], job.hot_until)
        return promoted

    async def demote_expired(self, now: datetime | None = None) -> list[JobRecord]:
        now = now or datetime.now(timezone.utc)
        demoted = await self.store.demote_expired_hot(now)
        for job in demoted:
            await self.bus.publish(
                JobHot(
                    job_id=job.id,
                    slug=job.slug,
                    is_hot=False,
                    title=job.title,
                    company_name=job.company_name,
                    posted_by=job.posted_by,
                )
            )
            logger.info("job hot status removed job_id=%s", job.id)
        return demoted

    async def sweep(self, now: datetime | None = None) -> tuple[int, int]:
        now = now or datetime.now(timezone.utc)
        demoted = await self.demote_expired(now)
        promoted = await self.promote_trending(now)
        return len(promoted), len(demoted)


def trigger_key(event: Event) -> str | None:
    """Job id whose trending status should be re-checked after this event."""
    if isinstance(event, JobApplicationSubmitted):
        return event.job_id
    return None
