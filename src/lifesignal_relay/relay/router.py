"""Event router: pump ledger subscriptions into per-event handler tasks.

Each ledger gets a pump task reading its subscription into a bounded queue
and a consumer task that hands every queued event to ``dispatch`` in its
own task, so a slow handler never holds up the stream behind it.

The router also owns ledger checkpoints. A block is checkpointed only once
the subscription has scanned past it and every event it delivered from that
block or earlier has finished dispatching, so a restart never skips an event
that was still queued or in flight.
"""

import asyncio
import functools
from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Dict, Optional, Set

from ..core.enums import DispatchStatus, LedgerSide
from ..domain.errors import StreamError
from ..domain.events import BaseEvent
from ..ledger.subscription import EventSubscription
from ..store.journal import EventJournal, JournalError
from ..utils.logging_config import get_logger, log_exception
from .reconciliation import ReconciliationEngine

logger = get_logger('router')


@dataclass
class RouterStats:
    """Counters exposed through the status endpoint."""

    received: int = 0
    processed: int = 0
    ignored: int = 0
    failed: int = 0
    duplicates: int = 0
    stream_errors: int = 0
    received_by_ledger: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


class EventRouter:
    """Routes events from both subscriptions to the reconciliation engine."""

    def __init__(
        self,
        engine: ReconciliationEngine,
        journal: Optional[EventJournal] = None,
        queue_size: int = 1000,
    ):
        self.engine = engine
        self.journal = journal
        self.queue_size = queue_size
        self.stats = RouterStats()

        self._subscriptions: Dict[LedgerSide, EventSubscription] = {}
        self._queues: Dict[LedgerSide, asyncio.Queue] = {}
        self._pumps: Dict[LedgerSide, asyncio.Task] = {}
        self._consumers: Dict[LedgerSide, asyncio.Task] = {}
        self._inflight: Set[asyncio.Task] = set()
        self._in_progress: Set[str] = set()
        self._running = False

        # Checkpoint bookkeeping per ledger
        self._scanned: Dict[LedgerSide, int] = {}
        self._unfinished: Dict[LedgerSide, Counter] = {}
        self._checkpoints: Dict[LedgerSide, int] = {}

    @property
    def running(self) -> bool:
        return self._running

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    def queue_depths(self) -> Dict[str, int]:
        return {side.value: queue.qsize() for side, queue in self._queues.items()}

    async def dispatch(self, event: BaseEvent) -> DispatchStatus:
        """
        Handle one event and record its outcome.

        Never raises for handler failures: they are logged with the event
        context and recorded as errors.
        """
        context = event.log_context()
        self.stats.received += 1
        by_ledger = self.stats.received_by_ledger
        by_ledger[event.ledger.value] = by_ledger.get(event.ledger.value, 0) + 1
        logger.info(
            f"Received {event.kind.value} from {event.ledger.value} owner={event.owner} "
            f"tx={event.tx_hash} block={event.block_number}"
        )

        key = event.event_key
        if key in self._in_progress or self._already_processed(key):
            self.stats.duplicates += 1
            logger.info(f"Skipping duplicate delivery {key}")
            return DispatchStatus.DUPLICATE

        self._in_progress.add(key)
        try:
            try:
                status = await self.engine.handle(event)
            except Exception as e:
                self.stats.failed += 1
                log_exception('router', e, context)
                self._record(event, DispatchStatus.ERROR, f"{type(e).__name__}: {e}")
                return DispatchStatus.ERROR

            if status == DispatchStatus.IGNORED:
                self.stats.ignored += 1
            else:
                self.stats.processed += 1
            self._record(event, status)
            return status
        finally:
            self._in_progress.discard(key)

    def _already_processed(self, key: str) -> bool:
        if self.journal is None:
            return False
        try:
            return self.journal.has_processed(key)
        except JournalError as e:
            logger.error(f"Journal lookup failed, dispatching {key} anyway: {e}")
            return False

    def _record(self, event: BaseEvent, status: DispatchStatus, error: Optional[str] = None) -> None:
        if self.journal is None:
            return
        try:
            self.journal.record(event, status, error)
        except JournalError as e:
            logger.error(f"Could not journal {event.event_key} ({status.value}): {e}")

    # Checkpoints

    def mark_scanned(self, side: LedgerSide, block_number: int) -> None:
        """
        Note that a subscription has delivered every event up to ``block_number``.

        Used as the subscription's ``on_checkpoint`` callback. The journal
        checkpoint follows once those events have been dispatched.
        """
        self._scanned[side] = max(block_number, self._scanned.get(side, block_number))
        self._advance_checkpoint(side)

    def safe_checkpoint(self, side: LedgerSide) -> Optional[int]:
        """Highest block whose events have all been dispatched, if any."""
        scanned = self._scanned.get(side)
        if scanned is None:
            return None
        unfinished = self._unfinished.get(side)
        if unfinished:
            return min(scanned, min(unfinished) - 1)
        return scanned

    def _track(self, event: BaseEvent) -> None:
        self._unfinished.setdefault(event.ledger, Counter())[event.block_number] += 1

    def _finish(self, event: BaseEvent) -> None:
        unfinished = self._unfinished.get(event.ledger)
        if unfinished is not None:
            unfinished[event.block_number] -= 1
            if unfinished[event.block_number] <= 0:
                del unfinished[event.block_number]
        self._advance_checkpoint(event.ledger)

    def _advance_checkpoint(self, side: LedgerSide) -> None:
        block_number = self.safe_checkpoint(side)
        if block_number is None or block_number < 0:
            return
        if block_number <= self._checkpoints.get(side, -1):
            return
        self._checkpoints[side] = block_number
        if self.journal is None:
            return
        try:
            self.journal.save_checkpoint(side, block_number)
        except JournalError as e:
            logger.error(f"Could not save {side.value} checkpoint {block_number}: {e}")

    # Tasks

    def start(self, subscriptions: Dict[LedgerSide, EventSubscription]) -> None:
        """Start one pump and one consumer per subscription."""
        if self._running:
            logger.warning("Router already running")
            return

        self._running = True
        self._subscriptions = dict(subscriptions)
        self._scanned.clear()
        self._unfinished.clear()
        self._checkpoints.clear()
        for side, subscription in self._subscriptions.items():
            queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
            self._queues[side] = queue
            self._pumps[side] = asyncio.create_task(
                self._pump(side, subscription, queue), name=f"pump-{side.value}"
            )
            self._consumers[side] = asyncio.create_task(
                self._consume(queue), name=f"consume-{side.value}"
            )
            self._pumps[side].add_done_callback(self._watch)
            self._consumers[side].add_done_callback(self._watch)
        logger.info(f"Router started for {', '.join(side.value for side in self._subscriptions)}")

    def _watch(self, task: asyncio.Task) -> None:
        """Log a pump or consumer that ended on its own."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log_exception('router', exc, {"task": task.get_name()})
        elif self._running:
            logger.error(f"Task {task.get_name()} exited while the router is running")

    async def _pump(self, side: LedgerSide, subscription: EventSubscription, queue: asyncio.Queue) -> None:
        while not subscription.closed:
            try:
                async for event in subscription:
                    self._track(event)
                    await queue.put(event)
            except StreamError as e:
                self.stats.stream_errors += 1
                logger.warning(
                    f"{side.value} stream error (failure {subscription.consecutive_failures}), "
                    f"resubscribing from block {subscription.cursor}: {e}"
                )
            except Exception as e:
                # Anything else (an undecodable log, a failing callback) is retried the same way
                self.stats.stream_errors += 1
                subscription.record_failure()
                log_exception('router', e, {"ledger": side.value, "cursor": subscription.cursor})

    def _spawn(self, event: BaseEvent) -> None:
        task = asyncio.create_task(self.dispatch(event), name=f"dispatch-{event.event_key}")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        task.add_done_callback(functools.partial(self._on_dispatched, event))

    def _on_dispatched(self, event: BaseEvent, task: asyncio.Task) -> None:
        # A cancelled handler never finished; its block stays above the checkpoint
        if not task.cancelled():
            self._finish(event)

    async def _consume(self, queue: asyncio.Queue) -> None:
        while True:
            event = await queue.get()
            self._spawn(event)
            queue.task_done()

    async def stop(self) -> None:
        """
        Stop pumping, dispatch whatever is queued and wait for every
        in-flight handler so no transaction is abandoned mid-way.
        """
        if not self._running:
            logger.warning("Router not running")
            return
        self._running = False

        for subscription in self._subscriptions.values():
            subscription.close()
        await self._cancel(self._pumps)

        drained = 0
        for queue in self._queues.values():
            while not queue.empty():
                self._spawn(queue.get_nowait())
                queue.task_done()
                drained += 1
        await self._cancel(self._consumers)

        pending = list(self._inflight)
        if pending:
            logger.info(f"Waiting for {len(pending)} in-flight handlers ({drained} drained from queues)")
            await asyncio.gather(*pending, return_exceptions=True)

        self._subscriptions.clear()
        self._queues.clear()
        logger.info("Router stopped")

    @staticmethod
    async def _cancel(tasks: Dict[LedgerSide, asyncio.Task]) -> None:
        for task in tasks.values():
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks.values(), return_exceptions=True)
        tasks.clear()

    def status(self) -> Dict[str, object]:
        return {
            "running": self._running,
            "inflight": self.inflight,
            "queues": self.queue_depths(),
            "checkpoints": {side.value: block for side, block in self._checkpoints.items()},
            "subscriptions": {
                side.value: {
                    "cursor": sub.cursor,
                    "delivered": sub.delivered,
                    "reconnects": sub.reconnects,
                    "consecutive_failures": sub.consecutive_failures,
                }
                for side, sub in self._subscriptions.items()
            },
            **self.stats.to_dict(),
        }
