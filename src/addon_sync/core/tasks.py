"""
Task queue for per-account and per-addon units of work.

Each unit is independent: its failure is captured as a tagged outcome and
never stops the queue. With ``concurrency=1`` (the default) units run strictly
one after another, in submission order, to keep load on the remote service
and any proxy in front of it bounded.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "cancelled"


class TaskStatus(Enum):
    """Status of a unit of work."""

    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class WorkUnit:
    """A keyed coroutine factory. Units sharing a key never overlap."""

    key: str
    run: Callable[[], Awaitable[Any]]


@dataclass
class TaskOutcome:
    key: str
    status: TaskStatus
    value: Any = None
    error: str | None = None
    exception: Exception | None = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return self.status == TaskStatus.COMPLETED


class CancellationToken:
    """Checked between units; a unit already running is allowed to finish."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


def describe_error(exc: Exception) -> str:
    return str(exc) or type(exc).__name__


class TaskQueue:
    def __init__(
        self,
        concurrency: int = 1,
        token: CancellationToken | None = None,
        on_done: Callable[[TaskOutcome], None] | None = None,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.concurrency = concurrency
        self.token = token
        self.on_done = on_done
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def run(self, units: list[WorkUnit]) -> list[TaskOutcome]:
        """Run every unit; outcomes are returned in submission order."""
        if self.concurrency == 1:
            outcomes = []
            for unit in units:
                outcomes.append(await self._run_one(unit))
            return outcomes

        sem = asyncio.Semaphore(self.concurrency)

        async def guarded(unit: WorkUnit) -> TaskOutcome:
            async with sem:
                async with self._locks[unit.key]:
                    return await self._run_one(unit)

        return list(await asyncio.gather(*(guarded(u) for u in units)))

    async def _run_one(self, unit: WorkUnit) -> TaskOutcome:
        if self.token is not None and self.token.cancelled:
            outcome = TaskOutcome(key=unit.key, status=TaskStatus.CANCELLED, error=CANCELLED_MESSAGE)
        else:
            try:
                value = await unit.run()
                outcome = TaskOutcome(key=unit.key, status=TaskStatus.COMPLETED, value=value)
            except Exception as e:
                logger.warning(f"Unit {unit.key} failed: {describe_error(e)}")
                outcome = TaskOutcome(
                    key=unit.key,
                    status=TaskStatus.FAILED,
                    error=describe_error(e),
                    exception=e,
                )

        if self.on_done is not None:
            self.on_done(outcome)
        return outcome
