"""Periodic cache refresh.

Each cycle starts one task per cache key, waits for all of them and logs the
ones that failed. A failed key keeps whatever value it had before; the other
keys are still published. Between cycles the orchestrator sleeps for a fixed
interval, and that sleep ends early when shutdown is requested.

Example:
    orchestrator = RefreshOrchestrator(cache, tasks, interval=timedelta(minutes=15))
    stop = asyncio.Event()
    await orchestrator.run(stop)   # returns once stop is set
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from contextlib import suppress
from dataclasses import dataclass
from datetime import timedelta
from enum import StrEnum
from typing import Any

from loguru import logger

from attendant.cache import CacheService
from attendant.types import to_payload

type Fetch = Callable[[], Awaitable[Sequence[Any]]]


class OrchestratorState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    SLEEPING = "sleeping"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


@dataclass(frozen=True, slots=True)
class RefreshTask:
    """Fetches the records for one cache key.

    ``fetch`` returns canonical records (anything with ``to_dict``); the
    orchestrator serializes and publishes them.
    """

    key: str
    fetch: Fetch


@dataclass(frozen=True, slots=True)
class TaskOutcome:
    key: str
    count: int = 0
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True, slots=True)
class CycleReport:
    cycle: int
    outcomes: tuple[TaskOutcome, ...]
    duration: float

    @property
    def failures(self) -> list[TaskOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def ok(self) -> bool:
        return not self.failures


class RefreshOrchestrator:
    def __init__(
        self,
        cache: CacheService,
        tasks: Sequence[RefreshTask],
        *,
        interval: timedelta,
        ttl: timedelta = timedelta(0),
    ) -> None:
        keys = [task.key for task in tasks]
        if len(set(keys)) != len(keys):
            raise ValueError(f"Duplicate refresh keys: {keys}")
        self._cache = cache
        self._tasks = tuple(tasks)
        self._interval = interval
        self._ttl = ttl
        self._state = OrchestratorState.IDLE
        self._cycles = 0
        self._log = logger.bind(component="orchestrator")

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def keys(self) -> list[str]:
        return [task.key for task in self._tasks]

    async def _refresh(self, task: RefreshTask) -> TaskOutcome:
        try:
            records = await task.fetch()
            await self._cache.add_cache_item(task.key, to_payload(list(records)), self._ttl)
        except Exception as e:
            return TaskOutcome(key=task.key, error=e)
        return TaskOutcome(key=task.key, count=len(records))

    async def run_cycle(self) -> CycleReport:
        """Refresh every key once. Task errors are reported, never raised."""
        self._cycles += 1
        cycle = self._cycles
        start = time.perf_counter()
        self._log.info("Refreshing cache (cycle {cycle})", cycle=cycle)

        with logger.contextualize(cycle=cycle):
            async with asyncio.TaskGroup() as group:
                running = [
                    group.create_task(self._refresh(task), name=f"refresh-{task.key}")
                    for task in self._tasks
                ]
        outcomes = tuple(t.result() for t in running)

        for outcome in outcomes:
            if not outcome.ok:
                self._log.bind(key=outcome.key, cycle=cycle).warning(
                    "Refresh of {key} failed: {error}",
                    key=outcome.key, error=f"{type(outcome.error).__name__}: {outcome.error}",
                )

        report = CycleReport(cycle=cycle, outcomes=outcomes, duration=time.perf_counter() - start)
        self._log.info(
            "Refreshed cache (cycle {cycle}): {ok}/{total} keys in {elapsed:.2f}s",
            cycle=cycle, ok=len(outcomes) - len(report.failures),
            total=len(outcomes), elapsed=report.duration,
        )
        return report

    async def _sleep(self, stop: asyncio.Event) -> None:
        with suppress(TimeoutError):
            await asyncio.wait_for(stop.wait(), timeout=self._interval.total_seconds())

    async def run(self, stop: asyncio.Event) -> None:
        """Refresh until ``stop`` is set; an in-flight cycle is cancelled."""
        self._log.info(
            "Starting refresh loop for {keys} every {interval}",
            keys=", ".join(self.keys), interval=self._interval,
        )
        try:
            while not stop.is_set():
                self._state = OrchestratorState.RUNNING
                cycle = asyncio.create_task(self.run_cycle(), name="refresh-cycle")
                stopped = asyncio.create_task(stop.wait(), name="refresh-stop")
                try:
                    await asyncio.wait({cycle, stopped}, return_when=asyncio.FIRST_COMPLETED)
                finally:
                    stopped.cancel()
                    if not cycle.done():
                        self._state = OrchestratorState.SHUTTING_DOWN
                        cycle.cancel()
                    with suppress(asyncio.CancelledError):
                        await cycle
                if stop.is_set():
                    break

                self._state = OrchestratorState.SLEEPING
                await self._sleep(stop)
            self._state = OrchestratorState.SHUTTING_DOWN
        finally:
            self._state = OrchestratorState.STOPPED
            self._log.info("Refresh loop stopped")
