"""
Fixed-delay scheduled tasks.

Every measurement loop is a tick function that looks at its run context, does
at most one external call and says whether it wants to run again. The loop
sleeps for the interval after a tick completes (fixed delay, not fixed rate).
"""

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum

from loguru import logger


class TickOutcome(Enum):
    """What a tick asks the scheduler to do next."""

    RESCHEDULE = "reschedule"
    TERMINAL = "terminal"


Tick = Callable[[], Awaitable[TickOutcome]]


async def run_periodic(
    tick: Tick,
    interval_ms: float,
    running: Callable[[], bool] | None = None,
) -> TickOutcome:
    """
    Run ``tick`` until it returns TERMINAL or ``running`` turns false.

    Args:
        tick: Coroutine function evaluated once per iteration
        interval_ms: Delay between the end of one tick and the start of the next
        running: Optional cooperative cancellation latch, checked before each tick

    Returns:
        TERMINAL if the tick ended the loop, RESCHEDULE if the latch stopped it
    """
    ticks = 0
    while running is None or running():
        outcome = await tick()
        ticks += 1
        if outcome is TickOutcome.TERMINAL:
            logger.debug(f"Scheduled task finished after {ticks} ticks")
            return outcome
        await asyncio.sleep(interval_ms / 1000)

    logger.debug(f"Scheduled task cancelled after {ticks} ticks")
    return TickOutcome.RESCHEDULE
