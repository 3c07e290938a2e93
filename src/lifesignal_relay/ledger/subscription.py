"""Polling event subscription with cursor-preserving resubscription."""

import asyncio
from typing import TYPE_CHECKING, AsyncIterator, Callable, Optional, Sequence

from ..core.enums import EventKind
from ..domain.errors import RpcError, StreamError
from ..domain.events import BaseEvent
from ..utils.retry import compute_backoff

if TYPE_CHECKING:
    from .interfaces import LedgerClient


class EventSubscription:
    """
    Long-lived stream of domain events from one ledger.

    The subscription walks the chain in block ranges. A transport failure
    never drops events silently: it surfaces as StreamError, and iterating
    the same subscription again resumes at the unchanged cursor after an
    exponential backoff.
    """

    def __init__(
        self,
        client: "LedgerClient",
        kinds: Sequence[EventKind],
        from_block: Optional[int] = None,
        poll_interval: float = 15.0,
        max_block_range: int = 1000,
        backoff_base: float = 1.0,
        backoff_max: float = 300.0,
        on_checkpoint: Optional[Callable[[int], None]] = None,
    ):
        self.client = client
        self.kinds = tuple(kinds)
        self.cursor = from_block  # Next block to fetch; None means "start at head"
        self.poll_interval = poll_interval
        self.max_block_range = max_block_range
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self._on_checkpoint = on_checkpoint

        self.consecutive_failures = 0
        self.reconnects = 0
        self.delivered = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    def record_failure(self) -> None:
        """Count a failure the consumer saw, so the next iteration backs off."""
        self.consecutive_failures += 1

    def __aiter__(self) -> AsyncIterator[BaseEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[BaseEvent]:
        if self.consecutive_failures:
            delay = compute_backoff(
                self.consecutive_failures - 1, self.backoff_base, self.backoff_max, jitter_ratio=0.2
            )
            self.reconnects += 1
            await asyncio.sleep(delay)

        while not self._closed:
            try:
                head = await self.client.get_block_number()
                if self.cursor is None:
                    self.cursor = head + 1

                if self.cursor > head:
                    self.consecutive_failures = 0
                    await asyncio.sleep(self.poll_interval)
                    continue

                to_block = min(head, self.cursor + self.max_block_range - 1)
                events = await self.client.fetch_events(self.cursor, to_block, self.kinds)
            except RpcError as e:
                self.consecutive_failures += 1
                raise StreamError(
                    f"{self.client.side.value} subscription dropped at block {self.cursor}: {e}",
                    ledger=self.client.side.value,
                ) from e

            self.consecutive_failures = 0
            for event in sorted(events, key=lambda ev: (ev.block_number, ev.log_index)):
                self.delivered += 1
                yield event
                if self._closed:
                    return

            self.cursor = to_block + 1
            if self._on_checkpoint is not None:
                self._on_checkpoint(to_block)

            if to_block >= head:
                await asyncio.sleep(self.poll_interval)
