"""Reconciliation engine: translate ledger events into writes on the other ledger.

Rules:
- OwnerRegistered: re-read the registry and overwrite the automation mirror.
- HeartbeatSent: recordPing on the automation ledger.
- ConsensusReached(true): mirror, then startGracePeriod. The grace period
  is never started before the mirror write is confirmed.
- ConsensusReached(false): mirror only.
- GracePeriodProcessed: no writes; the outcome goes to registered listeners.

A deceased mirror is never overwritten with an alive record.
"""

import inspect
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar

from ..cache.state_cache import StateCache
from ..core.enums import DispatchStatus, EventKind
from ..domain.errors import OwnerNotFoundError, RevertedError, RpcError, TransactionTimeoutError
from ..domain.events import (
    BaseEvent,
    ConsensusReachedEvent,
    GracePeriodProcessedEvent,
    HeartbeatSentEvent,
    OwnerRegisteredEvent,
    RelayAddressUpdatedEvent,
)
from ..domain.models import OwnerRecord, Receipt, normalize_address
from ..ledger.interfaces import AutomationLedger, RegistryLedger
from ..utils.logging_config import get_logger
from ..utils.retry import retry_async

logger = get_logger('reconciliation')

T = TypeVar("T")

OutcomeListener = Callable[[GracePeriodProcessedEvent], Optional[Awaitable[None]]]


class ReconciliationEngine:
    """Stateless event handlers bridging the registry and automation ledgers."""

    def __init__(
        self,
        registry: RegistryLedger,
        automation: AutomationLedger,
        cache: StateCache,
        max_retries: int = 3,
        retry_delay: float = 5.0,
    ):
        self.registry = registry
        self.automation = automation
        self.cache = cache
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._outcome_listeners: List[OutcomeListener] = []

        # Map actionable event kinds to their handler methods
        self._handlers: Dict[EventKind, Callable[[BaseEvent], Awaitable[DispatchStatus]]] = {
            EventKind.OWNER_REGISTERED: self._handle_owner_registered,
            EventKind.HEARTBEAT_SENT: self._handle_heartbeat_sent,
            EventKind.CONSENSUS_REACHED: self._handle_consensus_reached,
            EventKind.GRACE_PERIOD_PROCESSED: self._handle_grace_period_processed,
            EventKind.RELAY_ADDRESS_UPDATED: self._handle_relay_address_updated,
        }

    def add_outcome_listener(self, listener: OutcomeListener) -> None:
        """Register a callback for final grace-period determinations."""
        self._outcome_listeners.append(listener)

    async def handle(self, event: BaseEvent) -> DispatchStatus:
        """
        Apply the rule for one event.

        Returns:
            OK if the event was acted on, IGNORED for informational events

        Raises:
            RelayError: Any read or write failure that survived retries
        """
        handler = self._handlers.get(event.kind)
        if handler is None:
            logger.info(f"{event.kind.value} for {event.owner} (informational, block {event.block_number})")
            return DispatchStatus.IGNORED
        return await handler(event)

    # Retry helpers

    async def _read(self, operation: Callable[[], Awaitable[T]], description: str) -> T:
        return await retry_async(
            operation,
            max_retries=self.max_retries,
            base_delay=self.retry_delay,
            retry_on=(RpcError,),
            description=description,
            logger=logger,
        )

    async def _write(
        self,
        operation: Callable[[], Awaitable[Receipt]],
        description: str,
        confirm: Callable[[], Awaitable[bool]],
    ) -> Optional[Receipt]:
        """
        Submit a write, retrying only failures that happened before broadcast.

        A confirmation timeout is resolved by re-reading the automation
        ledger: the write counts as done only if ``confirm`` observes the
        intended state.

        Returns:
            The receipt, or None when success was established by re-read
        """
        try:
            return await retry_async(
                operation,
                max_retries=self.max_retries,
                base_delay=self.retry_delay,
                retry_on=(RpcError,),
                description=description,
                logger=logger,
            )
        except TransactionTimeoutError as e:
            logger.warning(f"{description} unconfirmed (tx={e.tx_hash}); re-reading automation ledger")
            if await self._read(confirm, f"confirm {description}"):
                logger.info(f"{description} confirmed by re-read (tx={e.tx_hash})")
                return None
            raise

    # Writes

    async def mirror_owner(self, owner: str) -> OwnerRecord:
        """
        Copy the owner's registry state onto the automation mirror.

        Raises:
            OwnerNotFoundError: The registry has no such owner
            RelayError: Read or write failure
        """
        info = await self._read(lambda: self.registry.get_owner_info(owner), f"getOwnerInfo({owner})")
        if not info.exists:
            raise OwnerNotFoundError(owner)

        record = info.to_record()
        await self.cache.put(owner, record)

        if not record.is_deceased:
            current = await self._read(lambda: self.automation.get_owner_data(owner), f"getOwnerData({owner})")
            if current.is_deceased:
                logger.warning(
                    f"Refusing to mirror alive state for {owner}: automation ledger already holds isDeceased=true"
                )
                return record

        async def confirm() -> bool:
            mirror = await self.automation.get_owner_data(owner)
            return record.matches_mirror(mirror)

        receipt = await self._write(
            lambda: self.automation.update_owner_data(
                owner, record.grace_interval_seconds, record.is_deceased, record.exists
            ),
            f"updateOwnerData({owner})",
            confirm,
        )
        logger.info(
            f"Mirrored {owner}: graceInterval={record.grace_interval_seconds} "
            f"isDeceased={record.is_deceased} exists={record.exists}"
            + (f" tx={receipt.tx_hash}" if receipt else "")
        )
        return record

    async def start_grace_period(self, owner: str) -> None:
        async def confirm() -> bool:
            info = await self.automation.get_grace_period_info(owner)
            return info.is_running

        try:
            receipt = await self._write(
                lambda: self.automation.start_grace_period(owner), f"startGracePeriod({owner})", confirm
            )
        except RevertedError as e:
            # A redelivered consensus finds the period already running
            info = await self._read(
                lambda: self.automation.get_grace_period_info(owner), f"getGracePeriodInfo({owner})"
            )
            if info.is_running:
                logger.info(f"Grace period for {owner} already running since {info.start_time}: {e.reason}")
                return
            raise
        logger.info(f"Grace period started for {owner}" + (f" tx={receipt.tx_hash}" if receipt else ""))

    async def record_ping(self, owner: str) -> None:
        async def confirm() -> bool:
            info = await self.automation.get_grace_period_info(owner)
            # Outside a running grace period a ping changes no state, so there is nothing to miss
            return info.has_pinged or not info.is_running

        receipt = await self._write(lambda: self.automation.record_ping(owner), f"recordPing({owner})", confirm)
        logger.info(f"Ping recorded for {owner}" + (f" tx={receipt.tx_hash}" if receipt else ""))

    # Handlers

    async def _handle_owner_registered(self, event: OwnerRegisteredEvent) -> DispatchStatus:
        logger.info(f"Owner registered: {event.owner} ({event.first_name} {event.last_name})")
        await self.mirror_owner(event.owner)
        return DispatchStatus.OK

    async def _handle_heartbeat_sent(self, event: HeartbeatSentEvent) -> DispatchStatus:
        await self.record_ping(event.owner)
        return DispatchStatus.OK

    async def _handle_consensus_reached(self, event: ConsensusReachedEvent) -> DispatchStatus:
        logger.info(f"Consensus reached for {event.owner}: isDeceased={event.is_deceased}")
        await self.mirror_owner(event.owner)
        if event.is_deceased:
            await self.start_grace_period(event.owner)
        return DispatchStatus.OK

    async def _handle_grace_period_processed(self, event: GracePeriodProcessedEvent) -> DispatchStatus:
        outcome = "DEAD" if event.is_dead else "ALIVE"
        logger.info(f"Grace period processed for {event.owner}: {outcome} at {event.process_time}")
        await self.cache.invalidate(event.owner)

        for listener in list(self._outcome_listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Outcome listener {listener!r} failed for {event.owner}: {e}", exc_info=True)
        return DispatchStatus.OK

    async def _handle_relay_address_updated(self, event: RelayAddressUpdatedEvent) -> DispatchStatus:
        new_relay = normalize_address(event.new_relay)
        if new_relay != normalize_address(self.automation.signer_address):
            logger.warning(
                f"Automation relay rotated from {event.old_relay} to {event.new_relay}; "
                f"this relay signs as {self.automation.signer_address} and its writes will revert"
            )
        else:
            logger.info(f"Automation relay set to this relay ({event.new_relay})")
        return DispatchStatus.IGNORED
