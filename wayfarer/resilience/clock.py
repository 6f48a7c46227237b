"""Injectable time source.

Stateful resilience components read wall-clock time and sleep through a
``Clock`` so tests can substitute a controllable one.
"""

import asyncio
import time


class Clock:
    """Real wall clock backed by ``time.time`` and ``asyncio.sleep``."""

    def now(self) -> float:
        """Current time in seconds since the epoch."""
        return time.time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
