from __future__ import annotations

import logging
from collections.abc import Iterable

from jobhub.core.errors import EventProcessingError
from jobhub.events.models import (
    Event,
    JobClosed,
    JobCreated,
    JobDeleted,
    JobFeatured,
    JobHot,
    JobPublished,
    JobSnapshot,
)
from jobhub.services.records import JOB_STATUS_PUBLISHED, SearchEntry

logger = logging.getLogger(__name__)

SEARCH_QUEUE = "search.projection"
SEARCH_PATTERNS = ("job.created", "job.published", "job.deleted", "job.closed", "job.featured", "job.hot")


def entry_from_snapshot(event: JobSnapshot) -> SearchEntry:
    return SearchEntry(
        job_id=event.job_id,
        slug=event.slug,
        title=event.title,
        company=event.company,
        company_name=event.company_name,
        location=event.location,
        salary=event.salary,
        experience=event.experience,
        skills=list(event.skills),
        job_type=event.job_type,
        category=event.category,
        posted_by=event.posted_by,
        status=event.status,
        is_featured=event.is_featured,
        is_hot=event.is_hot,
        created_at=event.created_at,
    )


class SearchProjection:
    """Denormalized, rebuildable search view keyed by slug.

    Every handler is an upsert, delete or single-flag patch, so replaying an
    event leaves the view unchanged.
    """

    def __init__(self, store) -> None:
        self.store = store

    async def apply(self, event: Event) -> None:
        if isinstance(event, JobPublished):
            await self.store.upsert_search_entry(entry_from_snapshot(event))
        elif isinstance(event, JobCreated):
            if event.status == JOB_STATUS_PUBLISHED:
                await self.store.upsert_search_entry(entry_from_snapshot(event))
        elif isinstance(event, (JobDeleted, JobClosed)):
            await self.store.delete_search_entry(event.slug)
        elif isinstance(event, JobFeatured):
            await self._patch(event.slug, "is_featured", event.is_featured, event.routing_key)
        elif isinstance(event, JobHot):
            await self._patch(event.slug, "is_hot", event.is_hot, event.routing_key)
        else:
            raise EventProcessingError(f"unexpected event for search projection: {event.routing_key}")

    async def rebuild(self, events: Iterable[Event]) -> int:
        removed = await self.store.clear_search_entries()
        applied = 0
        for event in events:
            if event.routing_key not in SEARCH_PATTERNS:
                continue
            await self.apply(event)
            applied += 1
        logger.info("search projection rebuilt: cleared=%s replayed=%s", removed, applied)
        return applied

    async def _patch(self, slug: str, flag: str, value: bool, routing_key: str) -> None:
        if not await self.store.patch_search_flag(slug, flag=flag, value=value):
            logger.warning("search entry missing for %s slug=%s; patch ignored", routing_key, slug)
