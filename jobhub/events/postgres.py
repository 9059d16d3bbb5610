from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any

from jobhub.core.database import Database
from jobhub.events.bus import Delivery
from jobhub.events.models import Event, EventBase, decode_event, encode_event
from jobhub.events.topics import matches_any

logger = logging.getLogger(__name__)


class PostgresEventBus:
    """Topic exchange persisted in `event_log`, fanned out into `event_deliveries`.

    A delivery moves queued -> claimed -> done. A failed delivery goes back to
    queued with exponential backoff until `max_attempts`, then to dead_letter.
    """

    def __init__(
        self,
        database: Database,
        *,
        max_attempts: int,
        retry_base_seconds: int,
        retry_max_seconds: int,
        lease_seconds: int,
    ) -> None:
        self.database = database
        self.max_attempts = max(1, max_attempts)
        self.retry_base_seconds = max(0, retry_base_seconds)
        self.retry_max_seconds = max(0, retry_max_seconds)
        self.lease_seconds = max(1, lease_seconds)

    async def publish(self, event: EventBase) -> None:
        pool = await self.database.get_pool()
        payload = encode_event(event)
        async with pool.acquire() as conn:
            async with conn.transaction():
                log_id = await conn.fetchval(
                    """
                    insert into event_log (event_id, routing_key, payload, occurred_at)
                    values ($1, $2, $3::jsonb, $4)
                    on conflict (event_id) do nothing
                    returning id
                    """,
                    event.event_id,
                    event.routing_key,
                    json.dumps(payload),
                    event.occurred_at,
                )
                if log_id is None:
                    logger.info("duplicate publish ignored event_id=%s", event.event_id)
                    return

                rows = await conn.fetch("select queue, pattern from event_bindings")
                bindings: dict[str, list[str]] = {}
                for row in rows:
                    bindings.setdefault(row["queue"], []).append(row["pattern"])
                queues = sorted(queue for queue, patterns in bindings.items() if matches_any(patterns, event.routing_key))
                if not queues:
                    return

                await conn.executemany(
                    """
                    insert into event_deliveries (queue, event_log_id)
                    values ($1, $2)
                    on conflict (queue, event_log_id) do nothing
                    """,
                    [(queue, log_id) for queue in queues],
                )

    async def bind(self, queue: str, patterns: Sequence[str]) -> None:
        pool = await self.database.get_pool()
        await pool.executemany(
            """
            insert into event_bindings (queue, pattern)
            values ($1, $2)
            on conflict (queue, pattern) do nothing
            """,
            [(queue, pattern) for pattern in patterns],
        )

    async def fetch(self, queue: str, limit: int) -> list[Delivery]:
        pool = await self.database.get_pool()
        bounded_limit = max(1, min(limit, 1000))
        rows = await pool.fetch(
            """
            with due as (
              select id
              from event_deliveries
              where queue = $1
                and status = 'queued'
                and next_run_at <= now()
              order by next_run_at asc, id asc
              limit $2
              for update skip locked
            ),
            claimed as (
              update event_deliveries d
              set
                status = 'claimed',
                attempt = d.attempt + 1,
                lease_expires_at = now() + ($3::int * interval '1 second'),
                updated_at = now()
              from due
              where d.id = due.id
              returning d.id, d.queue, d.event_log_id, d.attempt
            )
            select
              c.id::text as id,
              c.queue,
              c.attempt,
              l.routing_key,
              l.event_id,
              l.payload
            from claimed c
            join event_log l on l.id = c.event_log_id
            order by c.id asc
            """,
            queue,
            bounded_limit,
            self.lease_seconds,
        )
        return [self._delivery_row_to_delivery(row) for row in rows]

    async def ack(self, delivery: Delivery) -> None:
        pool = await self.database.get_pool()
        await pool.execute(
            """
            update event_deliveries
            set status = 'done', lease_expires_at = null, last_error = null, updated_at = now()
            where id = $1::bigint and status = 'claimed'
            """,
            int(delivery.delivery_id),
        )

    async def nack(self, delivery: Delivery, error: str) -> None:
        pool = await self.database.get_pool()
        if delivery.attempt >= self.max_attempts:
            await pool.execute(
                """
                update event_deliveries
                set status = 'dead_letter', lease_expires_at = null, last_error = $2, updated_at = now()
                where id = $1::bigint and status = 'claimed'
                """,
                int(delivery.delivery_id),
                error,
            )
            logger.error(
                "delivery dead-lettered queue=%s routing_key=%s event_id=%s error=%s",
                delivery.queue,
                delivery.routing_key,
                delivery.event_id,
                error,
            )
            return

        retry_delay_seconds = self._compute_retry_delay_seconds(attempt=delivery.attempt)
        await pool.execute(
            """
            update event_deliveries
            set
              status = 'queued',
              lease_expires_at = null,
              last_error = $2,
              next_run_at = now() + ($3::int * interval '1 second'),
              updated_at = now()
            where id = $1::bigint and status = 'claimed'
            """,
            int(delivery.delivery_id),
            error,
            retry_delay_seconds,
        )

    async def requeue_expired(self, limit: int) -> int:
        pool = await self.database.get_pool()
        bounded_limit = max(1, min(limit, 1000))
        rows = await pool.fetch(
            """
            with expired as (
              select id
              from event_deliveries
              where status = 'claimed'
                and lease_expires_at is not null
                and lease_expires_at <= now()
              order by lease_expires_at asc
              limit $1
              for update skip locked
            )
            update event_deliveries d
            set
              status = 'queued',
              lease_expires_at = null,
              next_run_at = now(),
              updated_at = now()
            from expired e
            where d.id = e.id
            returning d.id
            """,
            bounded_limit,
        )
        return len(rows)

    async def read_log(self, patterns: Sequence[str]) -> list[Event]:
        pool = await self.database.get_pool()
        rows = await pool.fetch("select routing_key, payload from event_log order by id asc")
        return [
            decode_event(row["routing_key"], self._coerce_payload(row["payload"]))
            for row in rows
            if matches_any(patterns, row["routing_key"])
        ]

    async def close(self) -> None:
        return None

    def _compute_retry_delay_seconds(self, *, attempt: int) -> int:
        if self.retry_base_seconds <= 0:
            return 0
        multiplier = max(0, attempt - 1)
        delay = self.retry_base_seconds * (2**multiplier)
        return min(delay, self.retry_max_seconds)

    def _delivery_row_to_delivery(self, row: Any) -> Delivery:
        return Delivery(
            delivery_id=row["id"],
            queue=row["queue"],
            routing_key=row["routing_key"],
            event_id=row["event_id"],
            payload=self._coerce_payload(row["payload"]),
            attempt=int(row["attempt"]),
        )

    @staticmethod
    def _coerce_payload(value: Any) -> dict[str, Any]:
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                return {}
        if isinstance(value, dict):
            return value
        return {}
