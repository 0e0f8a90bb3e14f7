from __future__ import annotations

import asyncio
import random


def backoff_delay(
    attempt: int, base: float = 1.5, cap: float = 30.0, jitter: float = 0.5
) -> float:
    """Delay in seconds before retry number ``attempt`` (0-based), capped."""
    return min(base ** attempt, cap) + random.uniform(0, jitter)


async def wait_before_retry(attempt: int, base: float = 1.5) -> None:
    await asyncio.sleep(backoff_delay(attempt, base=base))
