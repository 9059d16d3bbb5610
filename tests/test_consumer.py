from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from jobhub.events.bus import Delivery
from jobhub.events.consumer import EventConsumer
from jobhub.events.memory import InMemoryEventBus
from jobhub.events.models import CompanyVerified, JobSaved


def _saved(job_id: str = "job-1") -> JobSaved:
    return JobSaved(user_id="user-1", job_id=job_id, message="saved")


def test_publish_routes_by_binding_and_dedupes_event_ids() -> None:
    bus = InMemoryEventBus()
    asyncio.run(bus.bind("jobs", ("job.*",)))
    asyncio.run(bus.bind("companies", ("company.#",)))
    event = _saved()

    asyncio.run(bus.publish(event))
    asyncio.run(bus.publish(event))
    asyncio.run(bus.publish(CompanyVerified(company_id="c1")))

    assert bus.pending("jobs") == 1
    assert bus.pending("companies") == 1
    assert len(bus.history) == 2


def test_successful_handler_acks() -> None:
    bus = InMemoryEventBus()
    handled: list[str] = []

    async def handler(event) -> None:
        handled.append(event.job_id)

    consumer = EventConsumer(bus, "jobs", ("job.*",), handler)
    asyncio.run(consumer.setup())
    asyncio.run(bus.publish(_saved("job-1")))
    asyncio.run(bus.publish(_saved("job-2")))

    assert asyncio.run(consumer.run_once(10)) == 2
    assert handled == ["job-1", "job-2"]
    assert bus.pending("jobs") == 0
    assert bus.in_flight == {}


def test_failing_handler_is_redelivered_then_dead_lettered() -> None:
    bus = InMemoryEventBus(max_attempts=2)
    attempts: list[int] = []

    async def handler(event) -> None:
        attempts.append(1)
        raise RuntimeError("downstream unavailable")

    consumer = EventConsumer(bus, "jobs", ("job.*",), handler)
    asyncio.run(consumer.setup())
    asyncio.run(bus.publish(_saved()))

    asyncio.run(consumer.run_once(10))
    assert bus.pending("jobs") == 1
    assert bus.dead_letters == []

    asyncio.run(consumer.run_once(10))
    assert len(attempts) == 2
    assert bus.pending("jobs") == 0
    [dead] = bus.dead_letters
    assert dead.attempt == 2
    assert dead.routing_key == "job.save"


def test_undecodable_delivery_is_nacked_not_dropped() -> None:
    bus = InMemoryEventBus(max_attempts=3)
    handled: list[object] = []

    async def handler(event) -> None:
        handled.append(event)

    consumer = EventConsumer(bus, "jobs", ("job.*",), handler)
    asyncio.run(consumer.setup())
    bus.queues["jobs"].append(
        Delivery(delivery_id="d-1", queue="jobs", routing_key="job.save", event_id="e-1", payload={}, attempt=0)
    )

    asyncio.run(consumer.run_once(10))

    assert handled == []
    assert bus.pending("jobs") == 1
    assert bus.queues["jobs"][0].attempt == 1


def test_expired_leases_are_requeued() -> None:
    bus = InMemoryEventBus(lease_seconds=30)
    asyncio.run(bus.bind("jobs", ("job.*",)))
    asyncio.run(bus.publish(_saved()))
    [claimed] = asyncio.run(bus.fetch("jobs", 5))

    assert asyncio.run(bus.requeue_expired(10)) == 0
    later = datetime.now(timezone.utc) + timedelta(seconds=31)
    assert asyncio.run(bus.requeue_expired(10, now=later)) == 1
    assert bus.pending("jobs") == 1
    [again] = asyncio.run(bus.fetch("jobs", 5))
    assert again.delivery_id == claimed.delivery_id
    assert again.attempt == 2


def test_read_log_filters_by_pattern() -> None:
    bus = InMemoryEventBus()
    asyncio.run(bus.publish(_saved()))
    asyncio.run(bus.publish(CompanyVerified(company_id="c1")))

    [event] = asyncio.run(bus.read_log(("job.#",)))

    assert isinstance(event, JobSaved)
