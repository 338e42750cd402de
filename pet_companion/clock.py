"""Clock abstraction shared by timers, token expiry and protocol delays."""

import asyncio
import time
from typing import Protocol


class Clock(Protocol):
    """Source of monotonic time and cooperative sleeps."""

    def now(self) -> float:
        """Return monotonic time in seconds."""
        ...

    async def sleep(self, seconds: float) -> None:
        """Suspend the current task for `seconds`."""
        ...


class MonotonicClock:
    """Clock backed by time.monotonic and asyncio.sleep."""

    def now(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)
        else:
            await asyncio.sleep(0)


DEFAULT_CLOCK = MonotonicClock()
