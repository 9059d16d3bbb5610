from __future__ import annotations

import asyncio
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from jobhub.core.auth import Principal
from jobhub.core.config import Settings
from jobhub.core.errors import ConflictError, QuotaExceededError
from jobhub.events.consumer import EventConsumer
from jobhub.events.models import CompanyCreated, JobSaved
from jobhub.schemas.applications import ApplicationCreate
from jobhub.schemas.subscriptions import SubscriptionSnapshot
from jobhub.services.records import NotificationRecord
from jobhub.services.runtime import Runtime
from jobhub.worker import Worker

SCHEMA_PATH = Path(__file__).resolve().parent.parent / "db" / "schema.sql"
TABLES = (
    "event_deliveries",
    "event_bindings",
    "event_log",
    "kv_cache",
    "delivery_tokens",
    "notifications",
    "search_entries",
    "saved_jobs",
    "applications",
    "jobs",
)
RECRUITER = Principal(user_id="rec-1", role="recruiter", company_id="c1")
ADMIN = Principal(user_id="admin-1", role="admin")


@pytest.fixture(scope="session")
def database_url() -> str:
    url = os.getenv("JH_DATABASE_URL")
    if not url:
        pytest.skip("integration tests require JH_DATABASE_URL")
    return url


async def _runtime(database_url: str, **overrides) -> Runtime:
    settings = Settings(
        storage_backend="postgres",
        database_url=database_url,
        otel_enabled=False,
        event_retry_base_seconds=0,
        trending_trigger_delay_seconds=0.0,
        **overrides,
    )
    runtime = Runtime(settings)
    assert runtime.database is not None
    pool = await runtime.database.get_pool()
    await pool.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
    await pool.execute(f"truncate {', '.join(TABLES)} restart identity cascade")
    await runtime.start()
    return runtime


def _job_payload(title: str = "Database Reliability Engineer") -> dict:
    return {
        "title": title,
        "description": "Run the Postgres fleet.",
        "company": "c1",
        "companyName": "Acme",
        "location": "Remote",
        "salary": 6000,
        "jobType": "Full-time",
        "skills": ["postgres"],
        "applicationDeadline": (datetime.now(timezone.utc) + timedelta(days=10)).isoformat(),
    }


def test_admission_projection_and_notification_flow(database_url: str) -> None:
    async def scenario() -> None:
        runtime = await _runtime(database_url)
        try:
            worker = Worker(runtime)
            await worker.setup()
            created = CompanyCreated(
                company_id="c1",
                subscription=SubscriptionSnapshot(plan="basic", job_post_limit=2),
            )
            await runtime.bus.publish(created)
            await runtime.bus.publish(created)
            assert await worker.run_once(now=0.0) == 1

            first = await runtime.jobs.create_job(_job_payload(), RECRUITER)
            second = await runtime.jobs.create_job(_job_payload(), RECRUITER)
            assert second.slug == f"{first.slug}-1"
            with pytest.raises(QuotaExceededError):
                await runtime.jobs.create_job(_job_payload(), RECRUITER)

            await runtime.jobs.approve_job(first.id, ADMIN)
            await worker.run_once(now=1.0)
            entry = await runtime.store.get_search_entry(first.slug)
            assert entry is not None and entry.job_id == first.id
            notifications, total = await runtime.notifications.list_notifications("rec-1")
            assert total == 1
            assert notifications[0].delivery_status["push"] == "failed"

            applicant = Principal(user_id="app-1", role="applicant")
            application = ApplicationCreate(
                user_name="Applicant",
                user_email="applicant@example.com",
                resume_url="https://files.example.com/cv.pdf",
            )
            await runtime.applications.apply(first.slug, application, applicant)
            with pytest.raises(ConflictError):
                await runtime.applications.apply(first.slug, application, applicant)

            await runtime.jobs.delete_job(first.slug, RECRUITER)
            await worker.run_once(now=2.0)
            assert await runtime.store.get_search_entry(first.slug) is None
        finally:
            await runtime.close()

    asyncio.run(scenario())


def test_failed_deliveries_retry_then_dead_letter(database_url: str) -> None:
    async def scenario() -> None:
        runtime = await _runtime(database_url, event_max_attempts=2)
        try:
            attempts: list[int] = []

            async def handler(event) -> None:
                attempts.append(1)
                raise RuntimeError("handler exploded")

            consumer = EventConsumer(runtime.bus, "test.failures", ("job.save",), handler)
            await consumer.setup()
            await runtime.bus.publish(JobSaved(user_id="u1", job_id="j1", message="saved"))

            assert await consumer.run_once(10) == 1
            assert await consumer.run_once(10) == 1
            assert await consumer.run_once(10) == 0
            assert len(attempts) == 2

            pool = await runtime.database.get_pool()
            status = await pool.fetchval("select status from event_deliveries where queue = 'test.failures'")
            assert status == "dead_letter"
        finally:
            await runtime.close()

    asyncio.run(scenario())


def test_notification_rows_are_unique_per_source_event(database_url: str) -> None:
    async def scenario() -> None:
        runtime = await _runtime(database_url)
        try:
            now = datetime.now(timezone.utc)

            def record(notification_id: str) -> NotificationRecord:
                return NotificationRecord(
                    id=notification_id,
                    user_id="u1",
                    title="Hello",
                    message="World",
                    type="job_saved",
                    created_at=now,
                    expires_at=now + timedelta(days=30),
                    source_event_id="evt-1",
                )

            first, created = await runtime.store.insert_notification(record("11111111-1111-1111-1111-111111111111"))
            again, created_again = await runtime.store.insert_notification(
                record("22222222-2222-2222-2222-222222222222")
            )
            assert created is True
            assert created_again is False
            assert again.id == first.id
            assert await runtime.store.unread_count("u1") == 1
        finally:
            await runtime.close()

    asyncio.run(scenario())
