from __future__ import annotations

import asyncio
import copy
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Literal

from jobhub.core.errors import ConflictError
from jobhub.core.slugs import is_slug_variant
from jobhub.services.records import (
    JOB_STATUS_EXPIRED,
    JOB_STATUS_PENDING,
    JOB_STATUS_PUBLISHED,
    AdmissionOutcome,
    ApplicationRecord,
    DeliveryTokenRecord,
    FeatureOutcome,
    JobRecord,
    NotificationRecord,
    SavedJobRecord,
    SearchEntry,
    SearchFilters,
    StatusHistoryEntry,
)

SearchFlag = Literal["is_featured", "is_hot"]


def _copy(value):
    return copy.deepcopy(value)


def _paginate(items: list, page: int, limit: int) -> list:
    start = (max(1, page) - 1) * limit
    return items[start : start + limit]


def matches_search_filters(entry: SearchEntry, filters: SearchFilters) -> bool:
    if filters.query and filters.query.lower() not in entry.title.lower():
        return False
    if filters.location and filters.location.lower() not in entry.location.lower():
        return False
    if filters.job_type and entry.job_type != filters.job_type:
        return False
    if filters.min_salary is not None and entry.salary < filters.min_salary:
        return False
    if filters.max_salary is not None and entry.salary > filters.max_salary:
        return False
    if filters.experience and entry.experience != filters.experience:
        return False
    if filters.skills and not set(filters.skills).intersection(entry.skills):
        return False
    return True


class InMemoryStore:
    """Store for local runs and tests; same contract as `PostgresRepository`.

    Records handed out are copies, so callers never mutate stored state.
    """

    def __init__(self) -> None:
        self.jobs: dict[str, JobRecord] = {}
        self.applications: dict[str, ApplicationRecord] = {}
        self.saved_jobs: dict[tuple[str, str], SavedJobRecord] = {}
        self.search_entries: dict[str, SearchEntry] = {}
        self.notifications: dict[str, NotificationRecord] = {}
        self.tokens: dict[str, DeliveryTokenRecord] = {}
        self._company_locks: dict[str, asyncio.Lock] = {}

    async def close(self) -> None:
        return None

    def _company_lock(self, company_id: str) -> asyncio.Lock:
        lock = self._company_locks.get(company_id)
        if lock is None:
            lock = asyncio.Lock()
            self._company_locks[company_id] = lock
        return lock

    def _reserved_featured_count(self, company_id: str, *, exclude_job_id: str | None = None) -> int:
        return sum(
            1
            for job in self.jobs.values()
            if job.company == company_id
            and job.id != exclude_job_id
            and (job.is_featured or (job.featured_requested and job.status == JOB_STATUS_PENDING))
        )

    # Jobs

    async def insert_job_if_within_quota(
        self,
        job: JobRecord,
        *,
        job_post_limit: int,
        featured_limit: int | None,
    ) -> AdmissionOutcome:
        async with self._company_lock(job.company):
            company_jobs = sum(1 for existing in self.jobs.values() if existing.company == job.company)
            if company_jobs >= job_post_limit:
                return "job_limit_reached"
            if job.featured_requested and featured_limit is not None:
                if self._reserved_featured_count(job.company) >= featured_limit:
                    return "featured_limit_reached"
            if any(existing.slug == job.slug for existing in self.jobs.values()):
                raise ConflictError(f"slug already taken: {job.slug}")
            self.jobs[job.id] = _copy(job)
            return "created"

    async def list_slugs(self, base: str) -> list[str]:
        return [job.slug for job in self.jobs.values() if is_slug_variant(base, job.slug)]

    async def get_job(self, job_id: str) -> JobRecord | None:
        job = self.jobs.get(job_id)
        return _copy(job) if job else None

    async def get_job_by_slug(self, slug: str) -> JobRecord | None:
        job = next((job for job in self.jobs.values() if job.slug == slug), None)
        return _copy(job) if job else None

    async def publish_job(
        self,
        job_id: str,
        *,
        featured_limit: int | None,
        featured_expiry: datetime | None,
        now: datetime,
    ) -> JobRecord | None:
        job = self.jobs.get(job_id)
        if job is None:
            return None
        async with self._company_lock(job.company):
            if job.status != JOB_STATUS_PENDING:
                return None
            if job.featured_requested and featured_limit is not None:
                if self._reserved_featured_count(job.company, exclude_job_id=job.id) < featured_limit:
                    job.is_featured = True
                    job.featured_expiry = featured_expiry
            job.status = JOB_STATUS_PUBLISHED
            job.updated_at = now
            return _copy(job)

    async def transition_job(
        self,
        job_id: str,
        *,
        from_statuses: Iterable[str],
        to_status: str,
        now: datetime,
    ) -> JobRecord | None:
        job = self.jobs.get(job_id)
        if job is None or job.status not in set(from_statuses):
            return None
        job.status = to_status
        job.updated_at = now
        return _copy(job)

    async def set_featured_if_within_quota(
        self,
        job_id: str,
        *,
        featured_limit: int,
        featured_expiry: datetime,
        now: datetime,
    ) -> FeatureOutcome:
        job = self.jobs.get(job_id)
        if job is None:
            return "not_eligible"
        async with self._company_lock(job.company):
            if job.status != JOB_STATUS_PUBLISHED or job.is_featured:
                return "not_eligible"
            if self._reserved_featured_count(job.company, exclude_job_id=job.id) >= featured_limit:
                return "featured_limit_reached"
            job.is_featured = True
            job.featured_expiry = featured_expiry
            job.updated_at = now
            return "featured"

    async def expire_featured(self, now: datetime) -> list[JobRecord]:
        flipped: list[JobRecord] = []
        for job in self.jobs.values():
            if job.is_featured and job.featured_expiry is not None and job.featured_expiry <= now:
                job.is_featured = False
                job.featured_expiry = None
                job.updated_at = now
                flipped.append(_copy(job))
        return flipped

    async def expire_past_deadline(self, now: datetime) -> list[JobRecord]:
        flipped: list[JobRecord] = []
        for job in self.jobs.values():
            if job.status == JOB_STATUS_PUBLISHED and job.application_deadline <= now:
                job.status = JOB_STATUS_EXPIRED
                job.updated_at = now
                flipped.append(_copy(job))
        return flipped

    async def delete_job(self, job_id: str) -> JobRecord | None:
        job = self.jobs.pop(job_id, None)
        if job is None:
            return None
        for application_id in [key for key, value in self.applications.items() if value.job_id == job_id]:
            del self.applications[application_id]
        for key in [key for key in self.saved_jobs if key[1] == job_id]:
            del self.saved_jobs[key]
        return job

    async def list_jobs(
        self,
        *,
        query: str | None,
        company: str | None,
        status: str | None,
        page: int,
        limit: int,
    ) -> tuple[list[JobRecord], int]:
        rows = list(self.jobs.values())
        if query:
            needle = query.lower()
            rows = [job for job in rows if needle in job.title.lower() or needle in job.description.lower()]
        if company:
            rows = [job for job in rows if job.company == company]
        if status:
            rows = [job for job in rows if job.status == status]
        rows.sort(key=lambda job: job.created_at, reverse=True)
        return [_copy(job) for job in _paginate(rows, page, limit)], len(rows)

    async def list_jobs_by_poster(self, user_id: str) -> list[JobRecord]:
        rows = [job for job in self.jobs.values() if job.posted_by == user_id]
        rows.sort(key=lambda job: job.created_at, reverse=True)
        return [_copy(job) for job in rows]

    async def promote_hot(self, job_ids: Sequence[str], *, hot_until: datetime, now: datetime) -> list[JobRecord]:
        flipped: list[JobRecord] = []
        for job_id in job_ids:
            job = self.jobs.get(job_id)
            if job is None or job.status != JOB_STATUS_PUBLISHED or job.is_hot:
                continue
            job.is_hot = True
            job.hot_until = hot_until
            job.updated_at = now
            flipped.append(_copy(job))
        return flipped

    async def demote_expired_hot(self, now: datetime) -> list[JobRecord]:
        flipped: list[JobRecord] = []
        for job in self.jobs.values():
            if job.is_hot and job.hot_until is not None and job.hot_until <= now:
                job.is_hot = False
                job.hot_until = None
                job.updated_at = now
                flipped.append(_copy(job))
        return flipped

    async def count_recent_applications(
        self,
        *,
        since: datetime,
        job_ids: Sequence[str] | None = None,
    ) -> dict[str, int]:
        wanted = set(job_ids) if job_ids is not None else None
        counts: dict[str, int] = {}
        for application in self.applications.values():
            if application.applied_date < since:
                continue
            if wanted is not None and application.job_id not in wanted:
                continue
            counts[application.job_id] = counts.get(application.job_id, 0) + 1
        return counts

    # Applications

    async def insert_application(self, application: ApplicationRecord) -> ApplicationRecord:
        for existing in self.applications.values():
            if existing.job_id == application.job_id and existing.user_id == application.user_id:
                raise ConflictError("you have already applied for this job")
        self.applications[application.id] = _copy(application)
        return _copy(application)

    async def get_application(self, application_id: str) -> ApplicationRecord | None:
        application = self.applications.get(application_id)
        return _copy(application) if application else None

    async def find_application(self, job_id: str, user_id: str) -> ApplicationRecord | None:
        application = next(
            (row for row in self.applications.values() if row.job_id == job_id and row.user_id == user_id),
            None,
        )
        return _copy(application) if application else None

    async def list_applications_by_user(self, user_id: str) -> list[ApplicationRecord]:
        rows = [row for row in self.applications.values() if row.user_id == user_id]
        rows.sort(key=lambda row: row.applied_date, reverse=True)
        return [_copy(row) for row in rows]

    async def list_applications_by_job(self, job_id: str) -> list[ApplicationRecord]:
        rows = [row for row in self.applications.values() if row.job_id == job_id]
        rows.sort(key=lambda row: row.applied_date, reverse=True)
        return [_copy(row) for row in rows]

    async def update_application_status(
        self,
        application_id: str,
        *,
        status: str,
        changed_by: str,
        notes: str | None,
        now: datetime,
    ) -> tuple[ApplicationRecord, str] | None:
        application = self.applications.get(application_id)
        if application is None:
            return None
        old_status = application.status
        if status != old_status:
            application.status_history.append(
                StatusHistoryEntry(status=status, changed_at=now, changed_by=changed_by, notes=notes)
            )
            application.status = status
        if notes is not None:
            application.notes = notes
        return _copy(application), old_status

    async def toggle_saved_job(self, user_id: str, job_id: str, now: datetime) -> bool:
        key = (user_id, job_id)
        if key in self.saved_jobs:
            del self.saved_jobs[key]
            return False
        self.saved_jobs[key] = SavedJobRecord(user_id=user_id, job_id=job_id, saved_date=now)
        return True

    # Search projection

    async def upsert_search_entry(self, entry: SearchEntry) -> None:
        self.search_entries[entry.slug] = _copy(entry)

    async def delete_search_entry(self, slug: str) -> bool:
        return self.search_entries.pop(slug, None) is not None

    async def patch_search_flag(self, slug: str, *, flag: SearchFlag, value: bool) -> bool:
        entry = self.search_entries.get(slug)
        if entry is None:
            return False
        setattr(entry, flag, value)
        return True

    async def get_search_entry(self, slug: str) -> SearchEntry | None:
        entry = self.search_entries.get(slug)
        return _copy(entry) if entry else None

    async def clear_search_entries(self) -> int:
        removed = len(self.search_entries)
        self.search_entries.clear()
        return removed

    async def find_search_entries(self, filters: SearchFilters) -> list[SearchEntry]:
        return [_copy(entry) for entry in self.search_entries.values() if matches_search_filters(entry, filters)]

    # Notifications

    async def insert_notification(self, notification: NotificationRecord) -> tuple[NotificationRecord, bool]:
        if notification.source_event_id is not None:
            for existing in self.notifications.values():
                if (
                    existing.source_event_id == notification.source_event_id
                    and existing.user_id == notification.user_id
                ):
                    return _copy(existing), False
        self.notifications[notification.id] = _copy(notification)
        return _copy(notification), True

    async def set_delivery_status(self, notification_id: str, *, channel: str, status: str) -> None:
        notification = self.notifications.get(notification_id)
        if notification is not None:
            notification.delivery_status[channel] = status

    async def list_notifications(
        self,
        user_id: str,
        *,
        unread_only: bool,
        page: int,
        limit: int,
    ) -> tuple[list[NotificationRecord], int]:
        rows = [row for row in self.notifications.values() if row.user_id == user_id]
        if unread_only:
            rows = [row for row in rows if not row.is_read]
        rows.sort(key=lambda row: row.created_at, reverse=True)
        return [_copy(row) for row in _paginate(rows, page, limit)], len(rows)

    async def mark_read(self, notification_id: str, user_id: str) -> NotificationRecord | None:
        notification = self.notifications.get(notification_id)
        if notification is None or notification.user_id != user_id:
            return None
        notification.is_read = True
        return _copy(notification)

    async def mark_all_read(self, user_id: str) -> int:
        updated = 0
        for notification in self.notifications.values():
            if notification.user_id == user_id and not notification.is_read:
                notification.is_read = True
                updated += 1
        return updated

    async def unread_count(self, user_id: str) -> int:
        return sum(1 for row in self.notifications.values() if row.user_id == user_id and not row.is_read)

    async def delete_notification(self, notification_id: str, user_id: str) -> bool:
        notification = self.notifications.get(notification_id)
        if notification is None or notification.user_id != user_id:
            return False
        del self.notifications[notification_id]
        return True

    async def purge_expired_notifications(self, now: datetime) -> int:
        expired = [key for key, row in self.notifications.items() if row.expires_at <= now]
        for key in expired:
            del self.notifications[key]
        return len(expired)

    # Delivery tokens

    async def upsert_token(self, token: DeliveryTokenRecord) -> DeliveryTokenRecord:
        stored = _copy(token)
        stored.is_active = True
        self.tokens[token.token] = stored
        return _copy(stored)

    async def list_active_tokens(self, user_id: str) -> list[DeliveryTokenRecord]:
        return [_copy(row) for row in self.tokens.values() if row.user_id == user_id and row.is_active]

    async def deactivate_tokens(self, tokens: Sequence[str]) -> int:
        updated = 0
        for token in tokens:
            record = self.tokens.get(token)
            if record is not None and record.is_active:
                record.is_active = False
                updated += 1
        return updated

    async def touch_tokens(self, tokens: Sequence[str], now: datetime) -> None:
        for token in tokens:
            record = self.tokens.get(token)
            if record is not None:
                record.last_used = now
