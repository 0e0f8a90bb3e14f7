"""In-process event transport for tests and single-process dashboards."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from typing import AsyncIterator, Deque, Dict, List, Optional

from ..events import EventEnvelope
from .base import BaseTransport


class InMemoryTransport(BaseTransport[EventEnvelope]):
    """One ``asyncio.Queue`` per topic, plus a bounded replay history.

    ``history`` keeps the last ``history_size`` envelopes published on a topic
    so a dashboard attaching late can render recent activity.
    """

    def __init__(self, history_size: int = 100) -> None:
        self._queues: Dict[str, asyncio.Queue[EventEnvelope]] = defaultdict(asyncio.Queue)
        self._history: Dict[str, Deque[EventEnvelope]] = defaultdict(
            lambda: deque(maxlen=history_size)
        )

    async def publish(self, topic: str, envelope: EventEnvelope) -> None:
        # subscribers receive their own copy
        copy = EventEnvelope.from_json(envelope.to_json())
        self._history[topic].append(copy)
        await self._queues[topic].put(copy)

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[tuple[EventEnvelope, EventEnvelope]]:
        queue = self._queues[topic]
        loop = asyncio.get_running_loop()
        deadline = loop.time() + lifespan if lifespan is not None else None

        while True:
            timeout = None
            if deadline is not None:
                timeout = deadline - loop.time()
                if timeout <= 0:
                    return
            try:
                envelope = await asyncio.wait_for(queue.get(), timeout)
            except asyncio.TimeoutError:
                return
            yield envelope, envelope

    async def ack(self, raw_message: EventEnvelope) -> None:
        """Nothing to acknowledge: the envelope left the queue on delivery."""

    def history(self, topic: str) -> List[EventEnvelope]:
        return list(self._history[topic])
