"""Clock abstraction used to pace polling.

Production code waits on the asyncio event loop; tests inject a clock
that advances virtual time instead of sleeping.
"""

from __future__ import annotations

import asyncio
import time
from typing import Protocol


class Clock(Protocol):
    def monotonic(self) -> float: ...

    async def sleep(self, seconds: float) -> None: ...


class AsyncioClock:
    """Real time, backed by the running event loop."""

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


_default_clock = AsyncioClock()


def default_clock() -> Clock:
    return _default_clock
