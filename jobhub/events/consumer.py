from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence

from opentelemetry import trace

from jobhub.events.bus import EventBus
from jobhub.events.models import Event, decode_event

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

EventHandler = Callable[[Event], Awaitable[None]]


class EventConsumer:
    """Drains one queue, acknowledging a delivery only after its handler returned."""

    def __init__(self, bus: EventBus, queue: str, patterns: Sequence[str], handler: EventHandler) -> None:
        self.bus = bus
        self.queue = queue
        self.patterns = tuple(patterns)
        self.handler = handler

    async def setup(self) -> None:
        await self.bus.bind(self.queue, self.patterns)

    async def run_once(self, limit: int) -> int:
        deliveries = await self.bus.fetch(self.queue, limit)
        for delivery in deliveries:
            with tracer.start_as_current_span("worker.consume_event") as span:
                span.set_attribute("event.queue", self.queue)
                span.set_attribute("event.routing_key", delivery.routing_key)
                span.set_attribute("event.id", delivery.event_id)
                span.set_attribute("event.attempt", delivery.attempt)
                try:
                    event = decode_event(delivery.routing_key, delivery.payload)
                    await self.handler(event)
                except Exception as exc:
                    logger.exception(
                        "event handling failed queue=%s routing_key=%s event_id=%s attempt=%s",
                        self.queue,
                        delivery.routing_key,
                        delivery.event_id,
                        delivery.attempt,
                    )
                    span.record_exception(exc)
                    await self.bus.nack(delivery, error=str(exc) or exc.__class__.__name__)
                    continue
                await self.bus.ack(delivery)
        return len(deliveries)
