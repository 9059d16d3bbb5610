"""Job admission and lifecycle.

Admission reads the cached subscription snapshot and asks the store to count
and insert under a per-company lock, so concurrent postings for one company
cannot overshoot the plan. Every transition is a conditional update; when it
matches nothing the current row decides between NotFound and Conflict.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import ValidationError

from jobhub.core.auth import Principal, Role
from jobhub.core.errors import (
    ConflictError,
    DomainValidationError,
    NotFoundError,
    PermissionDeniedError,
    QuotaExceededError,
    QuotaUnavailableError,
)
from jobhub.core.slugs import next_free_slug, slugify
from jobhub.events.bus import EventBus
from jobhub.events.models import JobClosed, JobDeleted, JobFeatured, JobPublished
from jobhub.schemas.jobs import JobCreate
from jobhub.schemas.subscriptions import SubscriptionSnapshot
from jobhub.services.records import (
    JOB_STATUS_ARCHIVED,
    JOB_STATUS_CLOSED,
    JOB_STATUS_PENDING,
    JOB_STATUS_PUBLISHED,
    JOB_STATUS_REJECTED,
    JobRecord,
)
from jobhub.services.subscriptions import SubscriptionCache

logger = logging.getLogger(__name__)

DEFAULT_SLUG_RETRY_LIMIT = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def job_limit_message(snapshot: SubscriptionSnapshot) -> str:
    return f"Your plan ({snapshot.plan}) allows only {snapshot.job_post_limit} jobs."


def featured_limit_message(snapshot: SubscriptionSnapshot) -> str:
    return f"Your plan ({snapshot.plan}) allows only {snapshot.featured_jobs_limit} featured jobs."


def validate_job_payload(payload: JobCreate | Mapping[str, Any]) -> JobCreate:
    if isinstance(payload, JobCreate):
        return payload
    try:
        return JobCreate.model_validate(payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "payload"
        raise DomainValidationError(f"{field}: {first['msg']}") from exc


def build_job_published_event(job: JobRecord) -> JobPublished:
    return JobPublished(
        job_id=job.id,
        slug=job.slug,
        title=job.title,
        company=job.company,
        company_name=job.company_name,
        location=job.location,
        salary=job.salary,
        experience=job.experience,
        skills=list(job.skills),
        job_type=job.job_type,
        category=job.category,
        posted_by=job.posted_by,
        status=job.status,
        is_featured=job.is_featured,
        is_hot=job.is_hot,
        created_at=job.created_at,
        message=f'Your job "{job.title}" has been published.',
    )


class JobService:
    def __init__(
        self,
        store,
        bus: EventBus,
        subscriptions: SubscriptionCache,
        *,
        slug_retry_limit: int = DEFAULT_SLUG_RETRY_LIMIT,
    ) -> None:
        self.store = store
        self.bus = bus
        self.subscriptions = subscriptions
        self.slug_retry_limit = max(1, slug_retry_limit)

    async def create_job(self, payload: JobCreate | Mapping[str, Any], actor: Principal) -> JobRecord:
        actor.require_role(Role.RECRUITER, message="only recruiters can post jobs")
        data = validate_job_payload(payload)
        if actor.company_id is not None and actor.company_id != data.company:
            raise PermissionDeniedError("you can only post jobs for your own company")

        now = _utcnow()
        if data.application_deadline <= now:
            raise DomainValidationError("applicationDeadline: must be in the future")

        snapshot = await self.subscriptions.get(data.company)
        if snapshot is None:
            raise QuotaUnavailableError("subscription for this company is not available yet; retry shortly")

        base_slug = slugify(data.title)
        for attempt in range(1, self.slug_retry_limit + 1):
            taken = await self.store.list_slugs(base_slug)
            job = JobRecord(
                id=str(uuid4()),
                slug=next_free_slug(base_slug, taken),
                title=data.title,
                description=data.description,
                company=data.company,
                company_name=data.company_name,
                location=data.location,
                salary=data.salary,
                experience=data.experience,
                skills=list(data.skills),
                job_type=data.job_type,
                benefits=list(data.benefits),
                category=data.category,
                posted_by=actor.user_id,
                application_deadline=data.application_deadline,
                featured_requested=data.is_featured,
                status=JOB_STATUS_PENDING,
                created_at=now,
                updated_at=now,
            )
            try:
                outcome = await self.store.insert_job_if_within_quota(
                    job,
                    job_post_limit=snapshot.job_post_limit,
                    featured_limit=snapshot.featured_jobs_limit if data.is_featured else None,
                )
            except ConflictError:
                logger.info("slug collision slug=%s attempt=%s", job.slug, attempt)
                continue

            if outcome == "job_limit_reached":
                raise QuotaExceededError(job_limit_message(snapshot))
            if outcome == "featured_limit_reached":
                raise QuotaExceededError(featured_limit_message(snapshot))

            logger.info(
                "job created job_id=%s slug=%s company=%s featured_requested=%s",
                job.id,
                job.slug,
                job.company,
                job.featured_requested,
            )
            return job

        raise ConflictError("could not allocate a unique slug; retry the request")

    async def approve_job(self, job_id: str, actor: Principal) -> JobRecord:
        actor.require_role(Role.ADMIN, message="only admins can moderate jobs")
        job = await self._require_job(job_id)

        featured_limit: int | None = None
        featured_expiry: datetime | None = None
        if job.featured_requested:
            snapshot = await self.subscriptions.get(job.company)
            if snapshot is None or snapshot.end_date is None:
                logger.warning("featured placement skipped job_id=%s: no active subscription period", job.id)
            else:
                featured_limit = snapshot.featured_jobs_limit
                featured_expiry = snapshot.end_date

        published = await self.store.publish_job(
            job_id,
            featured_limit=featured_limit,
            featured_expiry=featured_expiry,
            now=_utcnow(),
        )
        if published is None:
            raise await self._transition_error(job_id, "only pending jobs can be approved")
        if published.featured_requested and not published.is_featured:
            logger.warning("featured placement not applied job_id=%s: featured quota exhausted", published.id)

        # TODO: write job.published through an outbox row in the same transaction as the status change.
        await self.bus.publish(build_job_published_event(published))
        logger.info("job published job_id=%s slug=%s featured=%s", published.id, published.slug, published.is_featured)
        return published

    async def reject_job(self, job_id: str, actor: Principal) -> JobRecord:
        actor.require_role(Role.ADMIN, message="only admins can moderate jobs")
        rejected = await self.store.transition_job(
            job_id,
            from_statuses={JOB_STATUS_PENDING},
            to_status=JOB_STATUS_REJECTED,
            now=_utcnow(),
        )
        if rejected is None:
            raise await self._transition_error(job_id, "only pending jobs can be rejected")
        logger.info("job rejected job_id=%s", job_id)
        return rejected

    async def mark_featured(self, job_id: str, actor: Principal) -> JobRecord:
        job = await self._require_job(job_id)
        is_poster = actor.has_role(Role.RECRUITER) and job.posted_by == actor.user_id
        if not (is_poster or actor.is_company_admin_of(job.company)):
            raise PermissionDeniedError("only the poster or a company admin can feature this job")
        if job.status != JOB_STATUS_PUBLISHED:
            raise ConflictError("only published jobs can be featured")
        if job.is_featured:
            raise ConflictError("job is already featured")

        snapshot = await self.subscriptions.get(job.company)
        if snapshot is None:
            raise QuotaUnavailableError("subscription for this company is not available yet; retry shortly")
        if snapshot.end_date is None:
            raise QuotaUnavailableError("featured placement requires an active subscription period")

        outcome = await self.store.set_featured_if_within_quota(
            job_id,
            featured_limit=snapshot.featured_jobs_limit,
            featured_expiry=snapshot.end_date,
            now=_utcnow(),
        )
        if outcome == "featured_limit_reached":
            raise QuotaExceededError(featured_limit_message(snapshot))
        if outcome == "not_eligible":
            raise await self._transition_error(job_id, "job can no longer be featured")

        featured = await self._require_job(job_id)
        await self.bus.publish(
            JobFeatured(
                job_id=featured.id,
                slug=featured.slug,
                is_featured=True,
                featured_expiry=featured.featured_expiry,
                title=featured.title,
            )
        )
        logger.info("job featured job_id=%s until=%s", featured.id, featured.featured_expiry)
        return featured

    async def delete_job(self, slug: str, actor: Principal) -> JobRecord:
        job = await self.get_job(slug)
        self._require_owner_or_admin(job, actor, action="delete")
        deleted = await self.store.delete_job(job.id)
        if deleted is None:
            raise NotFoundError("job not found")
        await self.bus.publish(
            JobDeleted(job_id=deleted.id, slug=deleted.slug, company=deleted.company, status=deleted.status)
        )
        logger.info("job deleted job_id=%s slug=%s", deleted.id, deleted.slug)
        return deleted

    async def close_job(self, job_id: str, actor: Principal) -> JobRecord:
        job = await self._require_job(job_id)
        self._require_owner_or_admin(job, actor, action="close")
        return await self._retire(job_id, JOB_STATUS_CLOSED, "only published jobs can be closed")

    async def archive_job(self, job_id: str, actor: Principal) -> JobRecord:
        actor.require_role(Role.ADMIN, message="only admins can archive jobs")
        return await self._retire(job_id, JOB_STATUS_ARCHIVED, "only published jobs can be archived")

    async def expire_past_deadline(self, now: datetime | None = None) -> list[JobRecord]:
        expired = await self.store.expire_past_deadline(now or _utcnow())
        for job in expired:
            await self.bus.publish(JobClosed(job_id=job.id, slug=job.slug, company=job.company, status=job.status))
        if expired:
            logger.info("expired jobs past deadline: %s", len(expired))
        return expired

    async def expire_featured(self, now: datetime | None = None) -> list[JobRecord]:
        unfeatured = await self.store.expire_featured(now or _utcnow())
        for job in unfeatured:
            await self.bus.publish(JobFeatured(job_id=job.id, slug=job.slug, is_featured=False, title=job.title))
        if unfeatured:
            logger.info("expired featured placements: %s", len(unfeatured))
        return unfeatured

    async def get_job(self, slug: str) -> JobRecord:
        job = await self.store.get_job_by_slug(slug)
        if job is None:
            raise NotFoundError("job not found")
        return job

    async def list_jobs(
        self,
        *,
        query: str | None = None,
        company: str | None = None,
        status: str | None = JOB_STATUS_PUBLISHED,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[JobRecord], int]:
        return await self.store.list_jobs(
            query=query,
            company=company,
            status=status,
            page=max(1, page),
            limit=max(1, min(limit, 100)),
        )

    async def list_posted_jobs(self, actor: Principal) -> list[JobRecord]:
        return await self.store.list_jobs_by_poster(actor.user_id)

    async def _retire(self, job_id: str, to_status: str, conflict_message: str) -> JobRecord:
        retired = await self.store.transition_job(
            job_id,
            from_statuses={JOB_STATUS_PUBLISHED},
            to_status=to_status,
            now=_utcnow(),
        )
        if retired is None:
            raise await self._transition_error(job_id, conflict_message)
        await self.bus.publish(
            JobClosed(job_id=retired.id, slug=retired.slug, company=retired.company, status=retired.status)
        )
        logger.info("job retired job_id=%s status=%s", retired.id, retired.status)
        return retired

    async def _require_job(self, job_id: str) -> JobRecord:
        job = await self.store.get_job(job_id)
        if job is None:
            raise NotFoundError("job not found")
        return job

    async def _transition_error(self, job_id: str, message: str) -> Exception:
        if await self.store.get_job(job_id) is None:
            return NotFoundError("job not found")
        return ConflictError(message)

    @staticmethod
    def _require_owner_or_admin(job: JobRecord, actor: Principal, *, action: str) -> None:
        if actor.has_role(Role.ADMIN) or actor.is_company_admin_of(job.company):
            return
        if job.posted_by == actor.user_id:
            return
        raise PermissionDeniedError(f"you are not allowed to {action} this job")
