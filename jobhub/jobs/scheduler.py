from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PeriodicTask:
    """Runs `action` every `interval_seconds` of monotonic time, optionally once at startup.

    `last_run_at` only advances after a successful run, so a failed run is due
    again on the next loop iteration.
    """

    name: str
    interval_seconds: float
    action: Callable[[], Awaitable[Any]]
    run_at_start: bool = True
    last_run_at: float | None = None

    def is_due(self, now: float) -> bool:
        if self.last_run_at is None:
            if self.run_at_start:
                return True
            self.last_run_at = now
            return False
        return now - self.last_run_at >= self.interval_seconds

    async def run_if_due(self, now: float) -> bool:
        if not self.is_due(now):
            return False
        result = await self.action()
        self.last_run_at = now
        logger.debug("periodic task %s finished: %s", self.name, result)
        return True


class DebouncedTrigger:
    """Collects keys and hands them to `action` in one batch a fixed delay after the first notify."""

    def __init__(
        self,
        delay_seconds: float,
        action: Callable[[list[str]], Awaitable[Any]],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.delay_seconds = max(0.0, delay_seconds)
        self.action = action
        self.clock = clock
        self._pending: dict[str, float] = {}

    def notify(self, key: str) -> None:
        self._pending.setdefault(key, self.clock())

    @property
    def pending_keys(self) -> list[str]:
        return sorted(self._pending)

    async def drain_if_due(self) -> int:
        now = self.clock()
        due = sorted(key for key, first_seen in self._pending.items() if now - first_seen >= self.delay_seconds)
        if not due:
            return 0
        for key in due:
            del self._pending[key]
        try:
            await self.action(due)
        except Exception:
            # Due immediately on the next drain.
            for key in due:
                self._pending.setdefault(key, now - self.delay_seconds)
            raise
        return len(due)
