"""Delayed continuations for the step loop."""

from __future__ import annotations

import abc
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

Continuation = Callable[[], Awaitable[Any]]


class BaseScheduler(metaclass=abc.ABCMeta):
    """Schedules at most one pending continuation per key."""

    @abc.abstractmethod
    def call_later(self, key: str, delay: float, callback: Continuation) -> None:
        """Run ``callback`` after ``delay`` seconds, replacing any pending one for ``key``."""
        raise NotImplementedError

    @abc.abstractmethod
    def cancel(self, key: str) -> bool:
        """Drop the pending continuation for ``key``; ``True`` if one existed."""
        raise NotImplementedError

    @abc.abstractmethod
    def pending(self) -> List[str]:
        """Keys with a continuation waiting to run."""
        raise NotImplementedError


class AsyncioScheduler(BaseScheduler):
    """Scheduler backed by the running event loop's timers."""

    def __init__(self) -> None:
        self._handles: Dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()

    def call_later(self, key: str, delay: float, callback: Continuation) -> None:
        self.cancel(key)
        loop = asyncio.get_running_loop()
        self._handles[key] = loop.call_later(delay, self._fire, key, callback)

    def _fire(self, key: str, callback: Continuation) -> None:
        self._handles.pop(key, None)
        task = asyncio.ensure_future(callback())
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Scheduled continuation failed", exc_info=task.exception())

    def cancel(self, key: str) -> bool:
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def pending(self) -> List[str]:
        return list(self._handles)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait until no timers or callbacks remain."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None
        while self._handles or self._tasks:
            if deadline is not None and loop.time() >= deadline:
                raise asyncio.TimeoutError("Scheduler did not drain in time")
            if self._tasks:
                await asyncio.wait(set(self._tasks), timeout=0.05)
            else:
                await asyncio.sleep(0.01)


@dataclass
class _Pending:
    key: str
    delay: float
    callback: Continuation = field(repr=False)


class ManualScheduler(BaseScheduler):
    """Scheduler driven explicitly, with no wall-clock waits.

    Continuations run only when :meth:`run_next` or :meth:`run_until_idle`
    is awaited.
    """

    def __init__(self) -> None:
        self._queue: List[_Pending] = []
        self.delays: List[float] = []

    def call_later(self, key: str, delay: float, callback: Continuation) -> None:
        self.cancel(key)
        self._queue.append(_Pending(key=key, delay=delay, callback=callback))
        self.delays.append(delay)

    def cancel(self, key: str) -> bool:
        before = len(self._queue)
        self._queue = [p for p in self._queue if p.key != key]
        return len(self._queue) != before

    def pending(self) -> List[str]:
        return [p.key for p in self._queue]

    async def run_next(self) -> bool:
        if not self._queue:
            return False
        item = self._queue.pop(0)
        await item.callback()
        return True

    async def run_until_idle(self, limit: int = 1000) -> int:
        """Run continuations until none remain; returns how many ran."""
        ran = 0
        while ran < limit and await self.run_next():
            ran += 1
        return ran
