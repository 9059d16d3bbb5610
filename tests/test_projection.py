from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

import pytest

from jobhub.core.errors import EventProcessingError
from jobhub.events.models import JobClosed, JobCreated, JobDeleted, JobFeatured, JobHot, JobPublished, JobSaved
from jobhub.services.projection import SearchProjection
from jobhub.services.store import InMemoryStore

CREATED_AT = datetime(2026, 2, 1, 9, 30, tzinfo=timezone.utc)


def _snapshot_fields(slug: str, **overrides) -> dict:
    fields = {
        "job_id": f"id-{slug}",
        "slug": slug,
        "title": "Backend Engineer",
        "company": "c1",
        "company_name": "Acme",
        "location": "Remote",
        "salary": 5000.0,
        "skills": ["python"],
        "job_type": "Full-time",
        "posted_by": "rec-1",
        "status": "Published",
        "created_at": CREATED_AT,
    }
    fields.update(overrides)
    return fields


def _published(slug: str, **overrides) -> JobPublished:
    return JobPublished(**_snapshot_fields(slug, **overrides))


def test_published_event_upserts_and_replay_is_idempotent() -> None:
    store = InMemoryStore()
    projection = SearchProjection(store)
    event = _published("backend-engineer")

    asyncio.run(projection.apply(event))
    first = dict(store.search_entries)
    asyncio.run(projection.apply(event))

    assert list(store.search_entries) == ["backend-engineer"]
    assert store.search_entries == first
    entry = store.search_entries["backend-engineer"]
    assert entry.job_id == "id-backend-engineer"
    assert entry.is_featured is False


def test_created_event_only_projects_published_snapshots() -> None:
    store = InMemoryStore()
    projection = SearchProjection(store)

    asyncio.run(projection.apply(JobCreated(**_snapshot_fields("draft-job", status="Pending"))))
    asyncio.run(projection.apply(JobCreated(**_snapshot_fields("legacy-job"))))

    assert list(store.search_entries) == ["legacy-job"]


def test_flag_events_patch_only_their_flag() -> None:
    store = InMemoryStore()
    projection = SearchProjection(store)
    asyncio.run(projection.apply(_published("backend-engineer", title="First Title")))

    asyncio.run(projection.apply(JobFeatured(job_id="id-backend-engineer", slug="backend-engineer", is_featured=True)))
    asyncio.run(projection.apply(JobHot(job_id="id-backend-engineer", slug="backend-engineer", is_hot=True)))
    asyncio.run(projection.apply(JobHot(job_id="id-backend-engineer", slug="backend-engineer", is_hot=True)))

    entry = store.search_entries["backend-engineer"]
    assert entry.is_featured is True
    assert entry.is_hot is True
    assert entry.title == "First Title"


def test_flag_patch_for_missing_slug_is_a_logged_noop(caplog: pytest.LogCaptureFixture) -> None:
    store = InMemoryStore()
    projection = SearchProjection(store)

    with caplog.at_level(logging.WARNING, logger="jobhub.services.projection"):
        asyncio.run(projection.apply(JobHot(job_id="id-x", slug="not-projected", is_hot=True)))

    assert store.search_entries == {}
    assert "not-projected" in caplog.text


def test_deleted_and_closed_events_remove_entries() -> None:
    store = InMemoryStore()
    projection = SearchProjection(store)
    asyncio.run(projection.apply(_published("a")))
    asyncio.run(projection.apply(_published("b")))

    asyncio.run(projection.apply(JobDeleted(job_id="id-a", slug="a", company="c1", status="Published")))
    asyncio.run(projection.apply(JobClosed(job_id="id-b", slug="b", company="c1", status="Closed")))
    asyncio.run(projection.apply(JobClosed(job_id="id-b", slug="b", company="c1", status="Closed")))

    assert store.search_entries == {}


def test_unrelated_event_is_rejected() -> None:
    projection = SearchProjection(InMemoryStore())
    with pytest.raises(EventProcessingError):
        asyncio.run(projection.apply(JobSaved(user_id="u1", job_id="j1", message="saved")))


def test_rebuild_clears_and_replays_log() -> None:
    store = InMemoryStore()
    projection = SearchProjection(store)
    asyncio.run(projection.apply(_published("stale")))

    events = [
        _published("a"),
        JobFeatured(job_id="id-a", slug="a", is_featured=True),
        _published("b"),
        JobDeleted(job_id="id-b", slug="b", company="c1", status="Published"),
    ]
    replayed = asyncio.run(projection.rebuild(events))

    assert replayed == 4
    assert list(store.search_entries) == ["a"]
    assert store.search_entries["a"].is_featured is True
