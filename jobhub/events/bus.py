from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from jobhub.events.models import Event, EventBase


@dataclass(slots=True)
class Delivery:
    """One queued copy of a published event, claimed by a consumer."""

    delivery_id: str
    queue: str
    routing_key: str
    event_id: str
    payload: dict[str, Any]
    attempt: int


class EventBus(Protocol):
    """Topic exchange with durable per-queue bindings and at-least-once delivery.

    `fetch` claims deliveries under a lease; a claimed delivery must be settled
    with `ack` after its handler succeeded or `nack` after it failed. Deliveries
    whose lease runs out are put back by `requeue_expired`.
    """

    async def publish(self, event: EventBase) -> None: ...

    async def bind(self, queue: str, patterns: Sequence[str]) -> None: ...

    async def fetch(self, queue: str, limit: int) -> list[Delivery]: ...

    async def ack(self, delivery: Delivery) -> None: ...

    async def nack(self, delivery: Delivery, error: str) -> None: ...

    async def requeue_expired(self, limit: int) -> int: ...

    async def read_log(self, patterns: Sequence[str]) -> list[Event]: ...

    async def close(self) -> None: ...
