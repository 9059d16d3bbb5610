from __future__ import annotations

import asyncio
import logging
import random
import time

from opentelemetry import trace

from jobhub.core.config import get_settings
from jobhub.core.errors import DependencyUnavailableError
from jobhub.core.telemetry import configure_logging, setup_telemetry, shutdown_telemetry
from jobhub.events.consumer import EventConsumer
from jobhub.events.models import Event
from jobhub.jobs.scheduler import DebouncedTrigger, PeriodicTask
from jobhub.services.notifications import NOTIFICATION_PATTERNS, NOTIFICATION_QUEUE
from jobhub.services.projection import SEARCH_PATTERNS, SEARCH_QUEUE
from jobhub.services.runtime import Runtime, get_runtime
from jobhub.services.subscriptions import SUBSCRIPTION_PATTERNS, SUBSCRIPTION_QUEUE
from jobhub.services.trending import TRENDING_TRIGGER_PATTERNS, TRENDING_TRIGGER_QUEUE, trigger_key

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class Worker:
    """Event consumers plus the periodic sweeps, driven from one polling loop."""

    def __init__(self, runtime: Runtime) -> None:
        self.runtime = runtime
        settings = runtime.settings
        self.batch_size = max(1, settings.consumer_batch_size)
        self.trending_trigger = DebouncedTrigger(settings.trending_trigger_delay_seconds, self._promote_triggered)
        self.consumers = [
            EventConsumer(runtime.bus, SUBSCRIPTION_QUEUE, SUBSCRIPTION_PATTERNS, runtime.subscriptions.handle_event),
            EventConsumer(runtime.bus, SEARCH_QUEUE, SEARCH_PATTERNS, runtime.projection.apply),
            EventConsumer(runtime.bus, NOTIFICATION_QUEUE, NOTIFICATION_PATTERNS, runtime.notifications.handle_event),
            EventConsumer(runtime.bus, TRENDING_TRIGGER_QUEUE, TRENDING_TRIGGER_PATTERNS, self._on_application),
        ]
        self.periodic = [
            PeriodicTask("lease_reaper", settings.lease_reaper_interval_seconds, self._reap_leases, run_at_start=False),
            PeriodicTask("trending_sweep", settings.trending_sweep_interval_seconds, runtime.trending.sweep),
            PeriodicTask("lifecycle_sweep", settings.lifecycle_sweep_interval_seconds, self._lifecycle_sweep),
            PeriodicTask(
                "notification_purge",
                settings.notification_purge_interval_seconds,
                runtime.notifications.purge_expired,
            ),
        ]

    async def setup(self) -> None:
        for consumer in self.consumers:
            await consumer.setup()

    async def run_once(self, now: float | None = None) -> int:
        with tracer.start_as_current_span("worker.poll_cycle"):
            now = time.monotonic() if now is None else now
            for task in self.periodic:
                await self._run_periodic(task, now)

            processed = 0
            for consumer in self.consumers:
                processed += await consumer.run_once(self.batch_size)

            await self.trending_trigger.drain_if_due()
            return processed

    async def _run_periodic(self, task: PeriodicTask, now: float) -> None:
        with tracer.start_as_current_span("worker.periodic_task") as span:
            span.set_attribute("task.name", task.name)
            try:
                await task.run_if_due(now)
            except Exception as exc:
                # Still due on the next cycle; consumers keep running.
                logger.exception("periodic task %s failed", task.name)
                span.record_exception(exc)

    async def run(self, stop: asyncio.Event | None = None) -> None:
        settings = self.runtime.settings
        backoff = settings.poll_interval_seconds
        while stop is None or not stop.is_set():
            try:
                processed = await self.run_once()
                backoff = settings.poll_interval_seconds
                if not processed:
                    await _sleep(settings.poll_interval_seconds, stop)
            except Exception as exc:  # pragma: no cover - loop robustness
                jitter = random.uniform(0.0, 0.5)
                sleep_for = min(backoff * (2.0 + jitter), settings.max_backoff_seconds)
                logger.exception("worker iteration failed: %s; retry in %.1fs", exc, sleep_for)
                await _sleep(sleep_for, stop)
                backoff = sleep_for

    async def _on_application(self, event: Event) -> None:
        key = trigger_key(event)
        if key is not None:
            self.trending_trigger.notify(key)

    async def _promote_triggered(self, job_ids: list[str]) -> None:
        promoted = await self.runtime.trending.promote_trending(job_ids=job_ids)
        if promoted:
            logger.info("ad-hoc trending check promoted %s of %s jobs", len(promoted), len(job_ids))

    async def _reap_leases(self) -> int:
        requeued = await self.runtime.bus.requeue_expired(limit=self.batch_size * 10)
        if requeued:
            logger.info("requeued expired event leases: %s", requeued)
        return requeued

    async def _lifecycle_sweep(self) -> tuple[int, int]:
        expired = await self.runtime.jobs.expire_past_deadline()
        unfeatured = await self.runtime.jobs.expire_featured()
        return len(expired), len(unfeatured)


async def _sleep(seconds: float, stop: asyncio.Event | None) -> None:
    if stop is None:
        await asyncio.sleep(seconds)
        return
    try:
        await asyncio.wait_for(stop.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        pass


async def run_worker() -> None:
    settings = get_settings()
    configure_logging()
    telemetry_runtime = setup_telemetry(settings, service_name=f"{settings.otel_service_name}-worker")
    runtime = get_runtime()
    try:
        try:
            await runtime.start()
        except DependencyUnavailableError:
            logger.error("worker cannot start; exiting")
            raise SystemExit(1) from None
        worker = Worker(runtime)
        await worker.setup()
        await worker.run()
    finally:
        await runtime.close()
        shutdown_telemetry(telemetry_runtime)


def main() -> None:
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
