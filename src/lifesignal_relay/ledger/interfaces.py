"""Abstract ledger client interfaces.

A ledger client is the only component allowed to perform ledger I/O. The
base class owns what every implementation shares: the single-writer lock
per signing identity, the audit trail of submitted transactions and the
construction of event subscriptions. Implementations provide the raw
transport primitives.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence

from ..core.enums import EventKind, LedgerSide
from ..domain.errors import OwnerNotFoundError
from ..domain.events import BaseEvent
from ..domain.models import (
    AutomationOwnerData,
    ContactInfo,
    ContractCall,
    DeathDeclarationStatus,
    GracePeriodRecord,
    OwnerInfo,
    OwnerRecord,
    Receipt,
)
from ..utils.logging_config import get_logger
from .subscription import EventSubscription

audit_logger = get_logger('audit')


class LedgerClient(ABC):
    """Base ledger client shared by both ledgers."""

    side: LedgerSide

    def __init__(
        self,
        poll_interval: float = 15.0,
        max_block_range: int = 1000,
        stream_backoff_base: float = 1.0,
        stream_backoff_max: float = 300.0,
    ):
        self.poll_interval = poll_interval
        self.max_block_range = max_block_range
        self.stream_backoff_base = stream_backoff_base
        self.stream_backoff_max = stream_backoff_max
        self._write_lock = asyncio.Lock()
        self.logger = get_logger(self.side.value)

    @property
    @abstractmethod
    def signer_address(self) -> str:
        """Address of the relay's signing identity on this ledger."""
        pass

    @abstractmethod
    async def get_block_number(self) -> int:
        """Current head block number."""
        pass

    @abstractmethod
    async def get_chain_id(self) -> int:
        pass

    @abstractmethod
    async def fetch_events(
        self, from_block: int, to_block: int, kinds: Sequence[EventKind]
    ) -> List[BaseEvent]:
        """Return decoded events of the given kinds in an inclusive block range."""
        pass

    @abstractmethod
    async def _send_transaction(self, call: ContractCall) -> Receipt:
        """Sign, broadcast and wait for confirmation of one call."""
        pass

    async def close(self) -> None:
        """Release transport resources."""
        return None

    async def submit_transaction(self, call: ContractCall) -> Receipt:
        """
        Submit a write call and wait for its confirmation.

        Calls on the same client are serialised so the signing identity
        never races itself on nonces.

        Raises:
            RpcError: Transport failure before broadcast
            RevertedError: Contract rejected the call
            TransactionTimeoutError: Broadcast but not confirmed in time
        """
        async with self._write_lock:
            audit_logger.info(f"[{self.side.value}] submitting {call.describe()} from {self.signer_address}")
            try:
                receipt = await self._send_transaction(call)
            except Exception as e:
                audit_logger.warning(
                    f"[{self.side.value}] {call.function} failed: {type(e).__name__}: {e}"
                )
                raise
            audit_logger.info(
                f"[{self.side.value}] confirmed {call.function} tx={receipt.tx_hash} block={receipt.block_number}"
            )
            return receipt

    def subscribe(
        self,
        kinds: Sequence[EventKind],
        from_block: Optional[int] = None,
        on_checkpoint: Optional[Callable[[int], None]] = None,
    ) -> EventSubscription:
        """Open a subscription for the given event kinds."""
        return EventSubscription(
            self,
            kinds,
            from_block=from_block,
            poll_interval=self.poll_interval,
            max_block_range=self.max_block_range,
            backoff_base=self.stream_backoff_base,
            backoff_max=self.stream_backoff_max,
            on_checkpoint=on_checkpoint,
        )


class RegistryLedger(LedgerClient):
    """Registry ledger: owners, contacts, heartbeats and death voting."""

    side = LedgerSide.REGISTRY

    @abstractmethod
    async def get_owner_info(self, owner: str) -> OwnerInfo:
        pass

    @abstractmethod
    async def get_death_declaration_status(self, owner: str) -> DeathDeclarationStatus:
        pass

    @abstractmethod
    async def get_contact_info(self, owner: str, contact: str) -> ContactInfo:
        pass

    @abstractmethod
    async def get_contact_list(self, owner: str) -> List[str]:
        pass

    @abstractmethod
    async def has_voted(self, owner: str, voter: str) -> bool:
        pass

    @abstractmethod
    async def get_vote(self, owner: str, voter: str) -> bool:
        pass

    async def get_owner_state(self, owner: str) -> OwnerRecord:
        """
        Read the owner's protocol state.

        Raises:
            OwnerNotFoundError: The owner never registered
            RpcError: Transport failure
        """
        info = await self.get_owner_info(owner)
        if not info.exists:
            raise OwnerNotFoundError(owner)
        return info.to_record()

    async def is_owner_active(self, owner: str) -> bool:
        info = await self.get_owner_info(owner)
        return info.exists and not info.is_deceased

    async def has_death_declaration_consensus(self, owner: str) -> bool:
        status = await self.get_death_declaration_status(owner)
        return status.is_active and status.consensus_reached


class AutomationLedger(LedgerClient):
    """Automation ledger: owner mirror and grace-period lifecycle."""

    side = LedgerSide.AUTOMATION

    @abstractmethod
    async def get_owner_data(self, owner: str) -> AutomationOwnerData:
        pass

    @abstractmethod
    async def get_grace_period_info(self, owner: str) -> GracePeriodRecord:
        pass

    @abstractmethod
    async def get_relay_address(self) -> str:
        """Relay address the automation contract accepts writes from."""
        pass

    async def update_owner_data(
        self, owner: str, grace_interval: int, is_deceased: bool, exists: bool
    ) -> Receipt:
        """Overwrite the owner mirror."""
        return await self.submit_transaction(
            ContractCall("updateOwnerData", (owner, grace_interval, is_deceased, exists))
        )

    async def start_grace_period(self, owner: str) -> Receipt:
        return await self.submit_transaction(ContractCall("startGracePeriod", (owner,)))

    async def record_ping(self, owner: str) -> Receipt:
        return await self.submit_transaction(ContractCall("recordPing", (owner,)))
