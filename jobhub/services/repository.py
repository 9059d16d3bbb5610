from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from dataclasses import asdict
from datetime import datetime
from typing import Any
from uuid import UUID

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from jobhub.core.database import Database
from jobhub.core.errors import ConflictError
from jobhub.services.records import (
    JOB_STATUS_EXPIRED,
    JOB_STATUS_PENDING,
    JOB_STATUS_PUBLISHED,
    AdmissionOutcome,
    ApplicationRecord,
    DeliveryTokenRecord,
    FeatureOutcome,
    JobRecord,
    NotificationAction,
    NotificationRecord,
    SearchEntry,
    SearchFilters,
    StatusHistoryEntry,
)
from jobhub.services.store import SearchFlag

_JOB_COLUMNS = """
  id::text as id,
  slug,
  title,
  description,
  company,
  company_name,
  location,
  salary,
  experience,
  skills,
  job_type,
  benefits,
  category,
  posted_by,
  status,
  is_featured,
  featured_expiry,
  featured_requested,
  is_hot,
  hot_until,
  application_deadline,
  created_at,
  updated_at
"""

_APPLICATION_COLUMNS = """
  id::text as id,
  job_id::text as job_id,
  user_id,
  user_name,
  user_email,
  user_phone_number,
  resume_url,
  cover_letter,
  notes,
  status,
  applied_date,
  status_history
"""

_SEARCH_COLUMNS = """
  slug,
  job_id::text as job_id,
  title,
  company,
  company_name,
  location,
  salary,
  experience,
  skills,
  job_type,
  category,
  posted_by,
  status,
  is_featured,
  is_hot,
  created_at
"""

_NOTIFICATION_COLUMNS = """
  id::text as id,
  user_id,
  title,
  message,
  type,
  priority,
  is_read,
  metadata,
  actions,
  delivery_status,
  source_event_id,
  expires_at,
  created_at
"""

# Featured slots held by a company: featured jobs plus pending ones that asked for a slot.
_RESERVED_FEATURED_SQL = """
  select count(*)
  from jobs
  where company = $1
    and id <> coalesce($2::uuid, '00000000-0000-0000-0000-000000000000'::uuid)
    and (is_featured or (featured_requested and status = 'Pending'))
"""


class PostgresRepository:
    """Job, application, search projection and notification storage on PostgreSQL."""

    def __init__(self, database: Database) -> None:
        self.database = database

    async def close(self) -> None:
        await self.database.close()

    # Jobs

    async def insert_job_if_within_quota(
        self,
        job: JobRecord,
        *,
        job_post_limit: int,
        featured_limit: int | None,
    ) -> AdmissionOutcome:
        pool = await self.database.get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                # Serializes count-then-insert per company across API replicas.
                await conn.execute("select pg_advisory_xact_lock(hashtext($1))", job.company)
                company_jobs = await conn.fetchval("select count(*) from jobs where company = $1", job.company)
                if int(company_jobs) >= job_post_limit:
                    return "job_limit_reached"
                if job.featured_requested and featured_limit is not None:
                    reserved = await conn.fetchval(_RESERVED_FEATURED_SQL, job.company, None)
                    if int(reserved) >= featured_limit:
                        return "featured_limit_reached"
                try:
                    await conn.execute(
                        """
                        insert into jobs (
                          id, slug, title, description, company, company_name, location, salary,
                          experience, skills, job_type, benefits, category, posted_by, status,
                          is_featured, featured_expiry, featured_requested, is_hot, hot_until,
                          application_deadline, created_at, updated_at
                        )
                        values (
                          $1::uuid, $2, $3, $4, $5, $6, $7, $8,
                          $9, $10::text[], $11, $12::text[], $13, $14, $15,
                          $16, $17, $18, $19, $20,
                          $21, $22, $23
                        )
                        """,
                        job.id,
                        job.slug,
                        job.title,
                        job.description,
                        job.company,
                        job.company_name,
                        job.location,
                        job.salary,
                        job.experience,
                        job.skills,
                        job.job_type,
                        job.benefits,
                        job.category,
                        job.posted_by,
                        job.status,
                        job.is_featured,
                        job.featured_expiry,
                        job.featured_requested,
                        job.is_hot,
                        job.hot_until,
                        job.application_deadline,
                        job.created_at,
                        job.updated_at,
                    )
                except pg_exc.UniqueViolationError as exc:
                    raise ConflictError(f"slug already taken: {job.slug}") from exc
                return "created"

    async def list_slugs(self, base: str) -> list[str]:
        pool = await self.database.get_pool()
        rows = await pool.fetch(
            "select slug from jobs where slug = $1 or slug ~ ('^' || $2 || '-[0-9]+$')",
            base,
            _regex_escape(base),
        )
        return [row["slug"] for row in rows]

    async def get_job(self, job_id: str) -> JobRecord | None:
        if not _is_uuid(job_id):
            return None
        pool = await self.database.get_pool()
        row = await pool.fetchrow(f"select {_JOB_COLUMNS} from jobs where id = $1::uuid", job_id)
        return self._job_row_to_record(row) if row else None

    async def get_job_by_slug(self, slug: str) -> JobRecord | None:
        pool = await self.database.get_pool()
        row = await pool.fetchrow(f"select {_JOB_COLUMNS} from jobs where slug = $1", slug)
        return self._job_row_to_record(row) if row else None

    async def publish_job(
        self,
        job_id: str,
        *,
        featured_limit: int | None,
        featured_expiry: datetime | None,
        now: datetime,
    ) -> JobRecord | None:
        if not _is_uuid(job_id):
            return None
        pool = await self.database.get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                current = await conn.fetchrow(
                    "select company, status, featured_requested from jobs where id = $1::uuid",
                    job_id,
                )
                if not current or current["status"] != JOB_STATUS_PENDING:
                    return None
                await conn.execute("select pg_advisory_xact_lock(hashtext($1))", current["company"])
                apply_featured = False
                if current["featured_requested"] and featured_limit is not None:
                    reserved = await conn.fetchval(_RESERVED_FEATURED_SQL, current["company"], job_id)
                    apply_featured = int(reserved) < featured_limit
                row = await conn.fetchrow(
                    f"""
                    update jobs
                    set
                      status = $2,
                      is_featured = case when $3 then true else is_featured end,
                      featured_expiry = case when $3 then $4::timestamptz else featured_expiry end,
                      updated_at = $5
                    where id = $1::uuid and status = $6
                    returning {_JOB_COLUMNS}
                    """,
                    job_id,
                    JOB_STATUS_PUBLISHED,
                    apply_featured,
                    featured_expiry,
                    now,
                    JOB_STATUS_PENDING,
                )
                return self._job_row_to_record(row) if row else None

    async def transition_job(
        self,
        job_id: str,
        *,
        from_statuses: Iterable[str],
        to_status: str,
        now: datetime,
    ) -> JobRecord | None:
        if not _is_uuid(job_id):
            return None
        pool = await self.database.get_pool()
        row = await pool.fetchrow(
            f"""
            update jobs
            set status = $2, updated_at = $3
            where id = $1::uuid and status = any($4::text[])
            returning {_JOB_COLUMNS}
            """,
            job_id,
            to_status,
            now,
            list(from_statuses),
        )
        return self._job_row_to_record(row) if row else None

    async def set_featured_if_within_quota(
        self,
        job_id: str,
        *,
        featured_limit: int,
        featured_expiry: datetime,
        now: datetime,
    ) -> FeatureOutcome:
        if not _is_uuid(job_id):
            return "not_eligible"
        pool = await self.database.get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                company = await conn.fetchval("select company from jobs where id = $1::uuid", job_id)
                if company is None:
                    return "not_eligible"
                await conn.execute("select pg_advisory_xact_lock(hashtext($1))", company)
                reserved = await conn.fetchval(_RESERVED_FEATURED_SQL, company, job_id)
                eligible = await conn.fetchval(
                    "select 1 from jobs where id = $1::uuid and status = $2 and not is_featured",
                    job_id,
                    JOB_STATUS_PUBLISHED,
                )
                if not eligible:
                    return "not_eligible"
                if int(reserved) >= featured_limit:
                    return "featured_limit_reached"
                await conn.execute(
                    """
                    update jobs
                    set is_featured = true, featured_expiry = $2, updated_at = $3
                    where id = $1::uuid and status = $4 and not is_featured
                    """,
                    job_id,
                    featured_expiry,
                    now,
                    JOB_STATUS_PUBLISHED,
                )
                return "featured"

    async def expire_featured(self, now: datetime) -> list[JobRecord]:
        pool = await self.database.get_pool()
        rows = await pool.fetch(
            f"""
            update jobs
            set is_featured = false, featured_expiry = null, updated_at = $1
            where is_featured and featured_expiry is not null and featured_expiry <= $1
            returning {_JOB_COLUMNS}
            """,
            now,
        )
        return [self._job_row_to_record(row) for row in rows]

    async def expire_past_deadline(self, now: datetime) -> list[JobRecord]:
        pool = await self.database.get_pool()
        rows = await pool.fetch(
            f"""
            update jobs
            set status = $2, updated_at = $1
            where status = $3 and application_deadline <= $1
            returning {_JOB_COLUMNS}
            """,
            now,
            JOB_STATUS_EXPIRED,
            JOB_STATUS_PUBLISHED,
        )
        return [self._job_row_to_record(row) for row in rows]

    async def delete_job(self, job_id: str) -> JobRecord | None:
        if not _is_uuid(job_id):
            return None
        pool = await self.database.get_pool()
        row = await pool.fetchrow(f"delete from jobs where id = $1::uuid returning {_JOB_COLUMNS}", job_id)
        return self._job_row_to_record(row) if row else None

    async def list_jobs(
        self,
        *,
        query: str | None,
        company: str | None,
        status: str | None,
        page: int,
        limit: int,
    ) -> tuple[list[JobRecord], int]:
        pool = await self.database.get_pool()
        where = """
          ($1::text is null or title ilike '%' || $1 || '%' or description ilike '%' || $1 || '%')
          and ($2::text is null or company = $2)
          and ($3::text is null or status = $3)
        """
        total = await pool.fetchval(f"select count(*) from jobs where {where}", query, company, status)
        rows = await pool.fetch(
            f"""
            select {_JOB_COLUMNS}
            from jobs
            where {where}
            order by created_at desc
            limit $4 offset $5
            """,
            query,
            company,
            status,
            limit,
            (max(1, page) - 1) * limit,
        )
        return [self._job_row_to_record(row) for row in rows], int(total)

    async def list_jobs_by_poster(self, user_id: str) -> list[JobRecord]:
        pool = await self.database.get_pool()
        rows = await pool.fetch(
            f"select {_JOB_COLUMNS} from jobs where posted_by = $1 order by created_at desc",
            user_id,
        )
        return [self._job_row_to_record(row) for row in rows]

    async def promote_hot(self, job_ids: Sequence[str], *, hot_until: datetime, now: datetime) -> list[JobRecord]:
        valid_ids = [job_id for job_id in job_ids if _is_uuid(job_id)]
        if not valid_ids:
            return []
        pool = await self.database.get_pool()
        rows = await pool.fetch(
            f"""
            update jobs
            set is_hot = true, hot_until = $2, updated_at = $3
            where id = any($1::uuid[]) and status = $4 and not is_hot
            returning {_JOB_COLUMNS}
            """,
            valid_ids,
            hot_until,
            now,
            JOB_STATUS_PUBLISHED,
        )
        return [self._job_row_to_record(row) for row in rows]

    async def demote_expired_hot(self, now: datetime) -> list[JobRecord]:
        pool = await self.database.get_pool()
        rows = await pool.fetch(
            f"""
            update jobs
            set is_hot = false, hot_until = null, updated_at = $1
            where is_hot and hot_until is not null and hot_until <= $1
            returning {_JOB_COLUMNS}
            """,
            now,
        )
        return [self._job_row_to_record(row) for row in rows]

    async def count_recent_applications(
        self,
        *,
        since: datetime,
        job_ids: Sequence[str] | None = None,
    ) -> dict[str, int]:
        pool = await self.database.get_pool()
        if job_ids is None:
            rows = await pool.fetch(
                """
                select job_id::text as job_id, count(*) as applications
                from applications
                where applied_date >= $1
                group by job_id
                """,
                since,
            )
        else:
            valid_ids = [job_id for job_id in job_ids if _is_uuid(job_id)]
            if not valid_ids:
                return {}
            rows = await pool.fetch(
                """
                select job_id::text as job_id, count(*) as applications
                from applications
                where applied_date >= $1 and job_id = any($2::uuid[])
                group by job_id
                """,
                since,
                valid_ids,
            )
        return {row["job_id"]: int(row["applications"]) for row in rows}

    # Applications

    async def insert_application(self, application: ApplicationRecord) -> ApplicationRecord:
        pool = await self.database.get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                insert into applications (
                  id, job_id, user_id, user_name, user_email, user_phone_number,
                  resume_url, cover_letter, notes, status, applied_date, status_history
                )
                values ($1::uuid, $2::uuid, $3, $4, $5, $6, $7, $8, $9, $10, $11, '[]'::jsonb)
                returning {_APPLICATION_COLUMNS}
                """,
                application.id,
                application.job_id,
                application.user_id,
                application.user_name,
                application.user_email,
                application.user_phone_number,
                application.resume_url,
                application.cover_letter,
                application.notes,
                application.status,
                application.applied_date,
            )
        except pg_exc.UniqueViolationError as exc:
            raise ConflictError("you have already applied for this job") from exc
        return self._application_row_to_record(row)

    async def get_application(self, application_id: str) -> ApplicationRecord | None:
        if not _is_uuid(application_id):
            return None
        pool = await self.database.get_pool()
        row = await pool.fetchrow(
            f"select {_APPLICATION_COLUMNS} from applications where id = $1::uuid",
            application_id,
        )
        return self._application_row_to_record(row) if row else None

    async def find_application(self, job_id: str, user_id: str) -> ApplicationRecord | None:
        if not _is_uuid(job_id):
            return None
        pool = await self.database.get_pool()
        row = await pool.fetchrow(
            f"select {_APPLICATION_COLUMNS} from applications where job_id = $1::uuid and user_id = $2",
            job_id,
            user_id,
        )
        return self._application_row_to_record(row) if row else None

    async def list_applications_by_user(self, user_id: str) -> list[ApplicationRecord]:
        pool = await self.database.get_pool()
        rows = await pool.fetch(
            f"select {_APPLICATION_COLUMNS} from applications where user_id = $1 order by applied_date desc",
            user_id,
        )
        return [self._application_row_to_record(row) for row in rows]

    async def list_applications_by_job(self, job_id: str) -> list[ApplicationRecord]:
        if not _is_uuid(job_id):
            return []
        pool = await self.database.get_pool()
        rows = await pool.fetch(
            f"select {_APPLICATION_COLUMNS} from applications where job_id = $1::uuid order by applied_date desc",
            job_id,
        )
        return [self._application_row_to_record(row) for row in rows]

    async def update_application_status(
        self,
        application_id: str,
        *,
        status: str,
        changed_by: str,
        notes: str | None,
        now: datetime,
    ) -> tuple[ApplicationRecord, str] | None:
        if not _is_uuid(application_id):
            return None
        pool = await self.database.get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                old_status = await conn.fetchval(
                    "select status from applications where id = $1::uuid for update",
                    application_id,
                )
                if old_status is None:
                    return None
                history_entry: list[dict[str, Any]] = []
                if status != old_status:
                    history_entry.append(
                        {"status": status, "changedAt": now.isoformat(), "changedBy": changed_by, "notes": notes}
                    )
                row = await conn.fetchrow(
                    f"""
                    update applications
                    set
                      status = $2,
                      notes = coalesce($3, notes),
                      status_history = status_history || $4::jsonb
                    where id = $1::uuid
                    returning {_APPLICATION_COLUMNS}
                    """,
                    application_id,
                    status,
                    notes,
                    json.dumps(history_entry),
                )
                return self._application_row_to_record(row), old_status

    async def toggle_saved_job(self, user_id: str, job_id: str, now: datetime) -> bool:
        pool = await self.database.get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                removed = await conn.fetchval(
                    "delete from saved_jobs where user_id = $1 and job_id = $2::uuid returning 1",
                    user_id,
                    job_id,
                )
                if removed:
                    return False
                await conn.execute(
                    """
                    insert into saved_jobs (user_id, job_id, saved_date)
                    values ($1, $2::uuid, $3)
                    on conflict (user_id, job_id) do nothing
                    """,
                    user_id,
                    job_id,
                    now,
                )
                return True

    # Search projection

    async def upsert_search_entry(self, entry: SearchEntry) -> None:
        pool = await self.database.get_pool()
        await pool.execute(
            """
            insert into search_entries (
              slug, job_id, title, company, company_name, location, salary, experience,
              skills, job_type, category, posted_by, status, is_featured, is_hot, created_at
            )
            values ($1, $2::uuid, $3, $4, $5, $6, $7, $8, $9::text[], $10, $11, $12, $13, $14, $15, $16)
            on conflict (slug) do update set
              job_id = excluded.job_id,
              title = excluded.title,
              company = excluded.company,
              company_name = excluded.company_name,
              location = excluded.location,
              salary = excluded.salary,
              experience = excluded.experience,
              skills = excluded.skills,
              job_type = excluded.job_type,
              category = excluded.category,
              posted_by = excluded.posted_by,
              status = excluded.status,
              is_featured = excluded.is_featured,
              is_hot = excluded.is_hot,
              created_at = excluded.created_at
            """,
            entry.slug,
            entry.job_id,
            entry.title,
            entry.company,
            entry.company_name,
            entry.location,
            entry.salary,
            entry.experience,
            entry.skills,
            entry.job_type,
            entry.category,
            entry.posted_by,
            entry.status,
            entry.is_featured,
            entry.is_hot,
            entry.created_at,
        )

    async def delete_search_entry(self, slug: str) -> bool:
        pool = await self.database.get_pool()
        removed = await pool.fetchval("delete from search_entries where slug = $1 returning 1", slug)
        return bool(removed)

    async def patch_search_flag(self, slug: str, *, flag: SearchFlag, value: bool) -> bool:
        if flag not in {"is_featured", "is_hot"}:
            raise ValueError(f"unsupported search flag: {flag}")
        pool = await self.database.get_pool()
        updated = await pool.fetchval(
            f"update search_entries set {flag} = $2 where slug = $1 returning 1",
            slug,
            value,
        )
        return bool(updated)

    async def get_search_entry(self, slug: str) -> SearchEntry | None:
        pool = await self.database.get_pool()
        row = await pool.fetchrow(f"select {_SEARCH_COLUMNS} from search_entries where slug = $1", slug)
        return self._search_row_to_entry(row) if row else None

    async def clear_search_entries(self) -> int:
        pool = await self.database.get_pool()
        rows = await pool.fetch("delete from search_entries returning slug")
        return len(rows)

    async def find_search_entries(self, filters: SearchFilters) -> list[SearchEntry]:
        pool = await self.database.get_pool()
        rows = await pool.fetch(
            f"""
            select {_SEARCH_COLUMNS}
            from search_entries
            where ($1::text is null or title ilike '%' || $1 || '%')
              and ($2::text is null or location ilike '%' || $2 || '%')
              and ($3::text is null or job_type = $3)
              and ($4::double precision is null or salary >= $4)
              and ($5::double precision is null or salary <= $5)
              and ($6::text is null or experience = $6)
              and (cardinality($7::text[]) = 0 or skills && $7::text[])
            """,
            filters.query,
            filters.location,
            filters.job_type,
            filters.min_salary,
            filters.max_salary,
            filters.experience,
            list(filters.skills),
        )
        return [self._search_row_to_entry(row) for row in rows]

    # Notifications

    async def insert_notification(self, notification: NotificationRecord) -> tuple[NotificationRecord, bool]:
        pool = await self.database.get_pool()
        row = await pool.fetchrow(
            f"""
            insert into notifications (
              id, user_id, title, message, type, priority, is_read, metadata, actions,
              delivery_status, source_event_id, expires_at, created_at
            )
            values ($1::uuid, $2, $3, $4, $5, $6, $7, $8::jsonb, $9::jsonb, $10::jsonb, $11, $12, $13)
            on conflict (user_id, source_event_id) where source_event_id is not null do nothing
            returning {_NOTIFICATION_COLUMNS}
            """,
            notification.id,
            notification.user_id,
            notification.title,
            notification.message,
            notification.type,
            notification.priority,
            notification.is_read,
            json.dumps(notification.metadata),
            json.dumps([asdict(action) for action in notification.actions]),
            json.dumps(notification.delivery_status),
            notification.source_event_id,
            notification.expires_at,
            notification.created_at,
        )
        if row:
            return self._notification_row_to_record(row), True
        existing = await pool.fetchrow(
            f"select {_NOTIFICATION_COLUMNS} from notifications where user_id = $1 and source_event_id = $2",
            notification.user_id,
            notification.source_event_id,
        )
        return self._notification_row_to_record(existing), False

    async def set_delivery_status(self, notification_id: str, *, channel: str, status: str) -> None:
        pool = await self.database.get_pool()
        await pool.execute(
            """
            update notifications
            set delivery_status = jsonb_set(delivery_status, array[$2::text], to_jsonb($3::text))
            where id = $1::uuid
            """,
            notification_id,
            channel,
            status,
        )

    async def list_notifications(
        self,
        user_id: str,
        *,
        unread_only: bool,
        page: int,
        limit: int,
    ) -> tuple[list[NotificationRecord], int]:
        pool = await self.database.get_pool()
        total = await pool.fetchval(
            "select count(*) from notifications where user_id = $1 and (not $2 or not is_read)",
            user_id,
            unread_only,
        )
        rows = await pool.fetch(
            f"""
            select {_NOTIFICATION_COLUMNS}
            from notifications
            where user_id = $1 and (not $2 or not is_read)
            order by created_at desc
            limit $3 offset $4
            """,
            user_id,
            unread_only,
            limit,
            (max(1, page) - 1) * limit,
        )
        return [self._notification_row_to_record(row) for row in rows], int(total)

    async def mark_read(self, notification_id: str, user_id: str) -> NotificationRecord | None:
        if not _is_uuid(notification_id):
            return None
        pool = await self.database.get_pool()
        row = await pool.fetchrow(
            f"""
            update notifications
            set is_read = true
            where id = $1::uuid and user_id = $2
            returning {_NOTIFICATION_COLUMNS}
            """,
            notification_id,
            user_id,
        )
        return self._notification_row_to_record(row) if row else None

    async def mark_all_read(self, user_id: str) -> int:
        pool = await self.database.get_pool()
        rows = await pool.fetch(
            "update notifications set is_read = true where user_id = $1 and not is_read returning id",
            user_id,
        )
        return len(rows)

    async def unread_count(self, user_id: str) -> int:
        pool = await self.database.get_pool()
        count = await pool.fetchval(
            "select count(*) from notifications where user_id = $1 and not is_read",
            user_id,
        )
        return int(count)

    async def delete_notification(self, notification_id: str, user_id: str) -> bool:
        if not _is_uuid(notification_id):
            return False
        pool = await self.database.get_pool()
        removed = await pool.fetchval(
            "delete from notifications where id = $1::uuid and user_id = $2 returning 1",
            notification_id,
            user_id,
        )
        return bool(removed)

    async def purge_expired_notifications(self, now: datetime) -> int:
        pool = await self.database.get_pool()
        rows = await pool.fetch("delete from notifications where expires_at <= $1 returning id", now)
        return len(rows)

    # Delivery tokens

    async def upsert_token(self, token: DeliveryTokenRecord) -> DeliveryTokenRecord:
        pool = await self.database.get_pool()
        row = await pool.fetchrow(
            """
            insert into delivery_tokens (token, user_id, device_id, platform, is_active, last_used)
            values ($1, $2, $3, $4, true, $5)
            on conflict (token) do update set
              user_id = excluded.user_id,
              device_id = excluded.device_id,
              platform = excluded.platform,
              is_active = true,
              last_used = excluded.last_used
            returning token, user_id, device_id, platform, is_active, last_used
            """,
            token.token,
            token.user_id,
            token.device_id,
            token.platform,
            token.last_used,
        )
        return self._token_row_to_record(row)

    async def list_active_tokens(self, user_id: str) -> list[DeliveryTokenRecord]:
        pool = await self.database.get_pool()
        rows = await pool.fetch(
            """
            select token, user_id, device_id, platform, is_active, last_used
            from delivery_tokens
            where user_id = $1 and is_active
            """,
            user_id,
        )
        return [self._token_row_to_record(row) for row in rows]

    async def deactivate_tokens(self, tokens: Sequence[str]) -> int:
        if not tokens:
            return 0
        pool = await self.database.get_pool()
        rows = await pool.fetch(
            "update delivery_tokens set is_active = false where token = any($1::text[]) and is_active returning token",
            list(tokens),
        )
        return len(rows)

    async def touch_tokens(self, tokens: Sequence[str], now: datetime) -> None:
        if not tokens:
            return
        pool = await self.database.get_pool()
        await pool.execute(
            "update delivery_tokens set last_used = $2 where token = any($1::text[])",
            list(tokens),
            now,
        )

    # Row mapping

    @staticmethod
    def _job_row_to_record(row: asyncpg.Record) -> JobRecord:
        return JobRecord(
            id=row["id"],
            slug=row["slug"],
            title=row["title"],
            description=row["description"],
            company=row["company"],
            company_name=row["company_name"],
            location=row["location"],
            salary=float(row["salary"]),
            experience=row["experience"],
            skills=list(row["skills"] or []),
            job_type=row["job_type"],
            benefits=list(row["benefits"] or []),
            category=row["category"],
            posted_by=row["posted_by"],
            status=row["status"],
            is_featured=bool(row["is_featured"]),
            featured_expiry=row["featured_expiry"],
            featured_requested=bool(row["featured_requested"]),
            is_hot=bool(row["is_hot"]),
            hot_until=row["hot_until"],
            application_deadline=row["application_deadline"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _application_row_to_record(row: asyncpg.Record) -> ApplicationRecord:
        history = [
            StatusHistoryEntry(
                status=item.get("status", ""),
                changed_at=datetime.fromisoformat(item["changedAt"]),
                changed_by=item.get("changedBy", ""),
                notes=item.get("notes"),
            )
            for item in _coerce_json(row["status_history"], default=[])
            if isinstance(item, dict) and item.get("changedAt")
        ]
        return ApplicationRecord(
            id=row["id"],
            job_id=row["job_id"],
            user_id=row["user_id"],
            user_name=row["user_name"],
            user_email=row["user_email"],
            user_phone_number=row["user_phone_number"],
            resume_url=row["resume_url"],
            cover_letter=row["cover_letter"],
            notes=row["notes"],
            status=row["status"],
            applied_date=row["applied_date"],
            status_history=history,
        )

    @staticmethod
    def _search_row_to_entry(row: asyncpg.Record) -> SearchEntry:
        return SearchEntry(
            job_id=row["job_id"],
            slug=row["slug"],
            title=row["title"],
            company=row["company"],
            company_name=row["company_name"],
            location=row["location"],
            salary=float(row["salary"]),
            experience=row["experience"],
            skills=list(row["skills"] or []),
            job_type=row["job_type"],
            category=row["category"],
            posted_by=row["posted_by"],
            status=row["status"],
            is_featured=bool(row["is_featured"]),
            is_hot=bool(row["is_hot"]),
            created_at=row["created_at"],
        )

    @staticmethod
    def _notification_row_to_record(row: asyncpg.Record) -> NotificationRecord:
        actions = [
            NotificationAction(
                label=item.get("label", ""),
                type=item.get("type", "link"),
                url=item.get("url"),
                method=item.get("method", "GET"),
                payload=item.get("payload"),
            )
            for item in _coerce_json(row["actions"], default=[])
            if isinstance(item, dict)
        ]
        return NotificationRecord(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            message=row["message"],
            type=row["type"],
            priority=row["priority"],
            is_read=bool(row["is_read"]),
            metadata=_coerce_json(row["metadata"], default={}),
            actions=actions,
            delivery_status=_coerce_json(row["delivery_status"], default={}),
            source_event_id=row["source_event_id"],
            expires_at=row["expires_at"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _token_row_to_record(row: asyncpg.Record) -> DeliveryTokenRecord:
        return DeliveryTokenRecord(
            user_id=row["user_id"],
            token=row["token"],
            device_id=row["device_id"],
            platform=row["platform"],
            is_active=bool(row["is_active"]),
            last_used=row["last_used"],
        )


def _is_uuid(value: str) -> bool:
    try:
        UUID(value)
    except (TypeError, ValueError):
        return False
    return True


def _regex_escape(value: str) -> str:
    return "".join(f"\\{char}" if char in r".^$*+?{}[]\|()" else char for char in value)


def _coerce_json(value: Any, *, default: Any) -> Any:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return default
    if value is None:
        return default
    if type(value) is not type(default):
        return default
    return value
