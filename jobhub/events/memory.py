from __future__ import annotations

import logging
from collections import deque
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from jobhub.events.bus import Delivery
from jobhub.events.models import Event, EventBase, decode_event, encode_event
from jobhub.events.topics import matches_any

logger = logging.getLogger(__name__)


class InMemoryEventBus:
    """Process-local bus for development and tests.

    Redelivery after `nack` goes to the back of the queue without delay.
    """

    def __init__(self, max_attempts: int = 5, lease_seconds: int = 60) -> None:
        self.max_attempts = max(1, max_attempts)
        self.lease_seconds = max(1, lease_seconds)
        self.bindings: dict[str, list[str]] = {}
        self.queues: dict[str, deque[Delivery]] = {}
        self.in_flight: dict[str, tuple[Delivery, datetime]] = {}
        self.dead_letters: list[Delivery] = []
        self.history: list[EventBase] = []
        self._seen_event_ids: set[str] = set()

    async def publish(self, event: EventBase) -> None:
        if event.event_id in self._seen_event_ids:
            return
        self._seen_event_ids.add(event.event_id)
        self.history.append(event)
        payload = encode_event(event)
        for queue, patterns in self.bindings.items():
            if not matches_any(patterns, event.routing_key):
                continue
            self.queues[queue].append(
                Delivery(
                    delivery_id=str(uuid4()),
                    queue=queue,
                    routing_key=event.routing_key,
                    event_id=event.event_id,
                    payload=dict(payload),
                    attempt=0,
                )
            )

    async def bind(self, queue: str, patterns: Sequence[str]) -> None:
        bound = self.bindings.setdefault(queue, [])
        for pattern in patterns:
            if pattern not in bound:
                bound.append(pattern)
        self.queues.setdefault(queue, deque())

    async def fetch(self, queue: str, limit: int) -> list[Delivery]:
        pending = self.queues.get(queue)
        if not pending:
            return []
        claimed: list[Delivery] = []
        lease_expires_at = datetime.now(timezone.utc) + timedelta(seconds=self.lease_seconds)
        while pending and len(claimed) < limit:
            delivery = pending.popleft()
            delivery.attempt += 1
            self.in_flight[delivery.delivery_id] = (delivery, lease_expires_at)
            claimed.append(delivery)
        return claimed

    async def ack(self, delivery: Delivery) -> None:
        self.in_flight.pop(delivery.delivery_id, None)

    async def nack(self, delivery: Delivery, error: str) -> None:
        if self.in_flight.pop(delivery.delivery_id, None) is None:
            return
        if delivery.attempt >= self.max_attempts:
            logger.error(
                "delivery dead-lettered queue=%s routing_key=%s event_id=%s error=%s",
                delivery.queue,
                delivery.routing_key,
                delivery.event_id,
                error,
            )
            self.dead_letters.append(delivery)
            return
        self.queues[delivery.queue].append(delivery)

    async def requeue_expired(self, limit: int, now: datetime | None = None) -> int:
        now = now or datetime.now(timezone.utc)
        expired = [
            delivery_id for delivery_id, (_, lease_expires_at) in self.in_flight.items() if lease_expires_at <= now
        ][:limit]
        for delivery_id in expired:
            delivery, _ = self.in_flight.pop(delivery_id)
            self.queues[delivery.queue].append(delivery)
        return len(expired)

    async def read_log(self, patterns: Sequence[str]) -> list[Event]:
        return [
            decode_event(event.routing_key, encode_event(event))
            for event in self.history
            if matches_any(patterns, event.routing_key)
        ]

    def pending(self, queue: str) -> int:
        return len(self.queues.get(queue, ()))

    async def close(self) -> None:
        return None
