from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable

Sleep = Callable[[float], Awaitable[None]]


def compute_backoff(attempt: int, initial: float = 1.0, jitter: float = 0.5) -> float:
    """Compute exponential backoff with jitter, doubling from ``initial``."""
    delay = initial * (2 ** attempt)
    return delay + random.uniform(0, jitter)


async def schedule_retry(attempt: int, sleep: Sleep = asyncio.sleep) -> float:
    """Sleep for computed backoff delay before retrying and return the delay."""
    delay = compute_backoff(attempt)
    await sleep(delay)
    return delay
