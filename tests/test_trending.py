from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from jobhub.events.memory import InMemoryEventBus
from jobhub.events.models import JobApplicationSubmitted, JobSaved
from jobhub.services.records import ApplicationRecord, JobRecord
from jobhub.services.store import InMemoryStore
from jobhub.services.trending import TrendingPolicy, TrendingService, trigger_key

NOW = datetime(2026, 5, 10, 12, 0, tzinfo=timezone.utc)


def _job(job_id: str, *, status: str = "Published") -> JobRecord:
    return JobRecord(
        id=job_id,
        slug=f"slug-{job_id}",
        title=f"Job {job_id}",
        description="A role worth applying for.",
        company="c1",
        company_name="Acme",
        location="Remote",
        salary=1000.0,
        job_type="Full-time",
        posted_by="rec-1",
        application_deadline=NOW + timedelta(days=30),
        created_at=NOW - timedelta(days=3),
        updated_at=NOW - timedelta(days=3),
        status=status,
    )


def _seed(store: InMemoryStore, job_id: str, applications: int, *, age: timedelta = timedelta(hours=2)) -> None:
    store.jobs[job_id] = _job(job_id)
    for index in range(applications):
        asyncio.run(
            store.insert_application(
                ApplicationRecord(
                    id=f"{job_id}-app-{index}",
                    job_id=job_id,
                    user_id=f"user-{index}",
                    user_name="Applicant",
                    user_email=f"user-{index}@example.com",
                    resume_url="https://files.example.com/cv.pdf",
                    cover_letter="",
                    applied_date=NOW - age,
                )
            )
        )


def _hot_events(bus: InMemoryEventBus) -> list:
    return [event for event in bus.history if event.routing_key == "job.hot"]


def test_promotion_at_threshold_emits_exactly_once() -> None:
    store = InMemoryStore()
    bus = InMemoryEventBus()
    _seed(store, "busy", 10)
    trending = TrendingService(store, bus)

    promoted = asyncio.run(trending.promote_trending(NOW))
    again = asyncio.run(trending.promote_trending(NOW))

    assert [job.id for job in promoted] == ["busy"]
    assert again == []
    assert store.jobs["busy"].is_hot is True
    assert store.jobs["busy"].hot_until == NOW + timedelta(days=7)
    [event] = _hot_events(bus)
    assert event.is_hot is True
    assert event.hot_until == NOW + timedelta(days=7)
    assert event.posted_by == "rec-1"


def test_below_threshold_or_old_applications_do_not_promote() -> None:
    store = InMemoryStore()
    bus = InMemoryEventBus()
    _seed(store, "quiet", 9)
    _seed(store, "stale", 12, age=timedelta(days=2))
    trending = TrendingService(store, bus)

    assert asyncio.run(trending.promote_trending(NOW)) == []
    assert bus.history == []


def test_only_published_jobs_are_promoted() -> None:
    store = InMemoryStore()
    bus = InMemoryEventBus()
    _seed(store, "closed", 10)
    store.jobs["closed"].status = "Closed"

    assert asyncio.run(TrendingService(store, bus).promote_trending(NOW)) == []


def test_promotion_can_be_restricted_to_triggering_jobs() -> None:
    store = InMemoryStore()
    bus = InMemoryEventBus()
    _seed(store, "a", 10)
    _seed(store, "b", 10)
    trending = TrendingService(store, bus)

    promoted = asyncio.run(trending.promote_trending(NOW, job_ids=["b"]))

    assert [job.id for job in promoted] == ["b"]
    assert store.jobs["a"].is_hot is False


def test_demotion_after_expiry_is_idempotent() -> None:
    store = InMemoryStore()
    bus = InMemoryEventBus()
    _seed(store, "busy", 10)
    trending = TrendingService(store, bus)
    asyncio.run(trending.promote_trending(NOW))

    assert asyncio.run(trending.demote_expired(NOW + timedelta(days=6))) == []
    demoted = asyncio.run(trending.demote_expired(NOW + timedelta(days=7)))
    assert [job.id for job in demoted] == ["busy"]
    assert asyncio.run(trending.demote_expired(NOW + timedelta(days=8))) == []

    assert store.jobs["busy"].is_hot is False
    assert store.jobs["busy"].hot_until is None
    assert [event.is_hot for event in _hot_events(bus)] == [True, False]


def test_sweep_demotes_then_promotes_with_custom_policy() -> None:
    store = InMemoryStore()
    bus = InMemoryEventBus()
    _seed(store, "small", 2)
    trending = TrendingService(store, bus, TrendingPolicy(application_threshold=2, hot_duration_days=1))

    assert asyncio.run(trending.sweep(NOW)) == (1, 0)
    assert asyncio.run(trending.sweep(NOW + timedelta(days=1))) == (0, 1)


def test_trigger_key_uses_job_of_application_events() -> None:
    submitted = JobApplicationSubmitted(user_id="rec-1", job_id="job-7", job_slug="job-7", message="applied")
    assert trigger_key(submitted) == "job-7"
    assert trigger_key(JobSaved(user_id="u", job_id="job-7", message="saved")) is None
