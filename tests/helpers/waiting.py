"""Polling helpers for tests that observe background relay tasks.

The relay reacts to ledger events from its own tasks, so tests wait for
an observable effect instead of sleeping for a fixed time.
"""

import asyncio
import time
from typing import Callable, List


async def wait_until(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.005) -> None:
    """Poll ``predicate`` until it holds.

    Raises:
        AssertionError: If the predicate is still false after ``timeout`` seconds
    """
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError(f"Condition not met within {timeout}s")
        await asyncio.sleep(interval)


def write_names(ledger) -> List[str]:
    """Names of the confirmed writes an emulator has executed, in order."""
    return [call.function for call in ledger.write_log]
