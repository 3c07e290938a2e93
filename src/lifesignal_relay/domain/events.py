"""Domain events observed on the two ledgers.

Events are immutable and identified by the ledger position they were
emitted at. The same delivery can reach the relay more than once, so
``event_key`` is what deduplication keys on.
"""

from abc import abstractmethod
from datetime import datetime, timezone
from typing import Dict, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field

from ..core.enums import EventKind, LedgerSide


class BaseEvent(BaseModel):
    """Base class for all domain events."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Ledger position
    ledger: LedgerSide
    tx_hash: str
    block_number: int
    log_index: int = 0
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Every protocol event except relay rotation is about one owner
    owner: Optional[str] = None

    @property
    @abstractmethod
    def kind(self) -> EventKind:
        """Return the event kind."""
        pass

    @property
    def event_key(self) -> str:
        """Stable identity of this delivery."""
        return f"{self.ledger.value}:{self.tx_hash}:{self.log_index}"

    def log_context(self) -> Dict[str, object]:
        return {
            "kind": self.kind.value,
            "ledger": self.ledger.value,
            "owner": self.owner,
            "tx_hash": self.tx_hash,
            "block": self.block_number,
        }


# Registry ledger


class OwnerRegisteredEvent(BaseEvent):
    """An owner registered on the registry ledger."""

    owner: str
    first_name: str = ""
    last_name: str = ""

    @property
    def kind(self) -> EventKind:
        return EventKind.OWNER_REGISTERED


class HeartbeatSentEvent(BaseEvent):
    """An owner proved liveness on the registry ledger."""

    owner: str
    timestamp: int = 0

    @property
    def kind(self) -> EventKind:
        return EventKind.HEARTBEAT_SENT


class ConsensusReachedEvent(BaseEvent):
    """Contact voting on a death declaration concluded."""

    owner: str
    is_deceased: bool
    timestamp: int = 0

    @property
    def kind(self) -> EventKind:
        return EventKind.CONSENSUS_REACHED


class DeathDeclaredEvent(BaseEvent):
    owner: str
    declared_by: str
    timestamp: int = 0

    @property
    def kind(self) -> EventKind:
        return EventKind.DEATH_DECLARED


class ContactAddedEvent(BaseEvent):
    owner: str
    contact: str
    has_voting_right: bool = False

    @property
    def kind(self) -> EventKind:
        return EventKind.CONTACT_ADDED


class ContactVerifiedEvent(BaseEvent):
    owner: str
    contact: str

    @property
    def kind(self) -> EventKind:
        return EventKind.CONTACT_VERIFIED


class VoteCastEvent(BaseEvent):
    owner: str
    voter: str
    vote: bool

    @property
    def kind(self) -> EventKind:
        return EventKind.VOTE_CAST


# Automation ledger


class GracePeriodProcessedEvent(BaseEvent):
    """The automation ledger's timer made its final determination."""

    owner: str
    is_dead: bool
    process_time: int = 0

    @property
    def kind(self) -> EventKind:
        return EventKind.GRACE_PERIOD_PROCESSED


class GracePeriodStartedEvent(BaseEvent):
    owner: str
    start_time: int = 0
    grace_interval: int = 0

    @property
    def kind(self) -> EventKind:
        return EventKind.GRACE_PERIOD_STARTED


class OwnerPingedEvent(BaseEvent):
    owner: str
    ping_time: int = 0

    @property
    def kind(self) -> EventKind:
        return EventKind.OWNER_PINGED


class OwnerDataUpdatedEvent(BaseEvent):
    owner: str
    grace_interval: int = 0
    is_deceased: bool = False

    @property
    def kind(self) -> EventKind:
        return EventKind.OWNER_DATA_UPDATED


class RelayAddressUpdatedEvent(BaseEvent):
    """The automation contract rotated its authorised relay."""

    old_relay: str
    new_relay: str

    @property
    def kind(self) -> EventKind:
        return EventKind.RELAY_ADDRESS_UPDATED


DomainEvent = Union[
    OwnerRegisteredEvent,
    HeartbeatSentEvent,
    ConsensusReachedEvent,
    DeathDeclaredEvent,
    ContactAddedEvent,
    ContactVerifiedEvent,
    VoteCastEvent,
    GracePeriodProcessedEvent,
    GracePeriodStartedEvent,
    OwnerPingedEvent,
    OwnerDataUpdatedEvent,
    RelayAddressUpdatedEvent,
]

EVENT_MODELS: Dict[EventKind, Type[BaseEvent]] = {
    EventKind.OWNER_REGISTERED: OwnerRegisteredEvent,
    EventKind.HEARTBEAT_SENT: HeartbeatSentEvent,
    EventKind.CONSENSUS_REACHED: ConsensusReachedEvent,
    EventKind.DEATH_DECLARED: DeathDeclaredEvent,
    EventKind.CONTACT_ADDED: ContactAddedEvent,
    EventKind.CONTACT_VERIFIED: ContactVerifiedEvent,
    EventKind.VOTE_CAST: VoteCastEvent,
    EventKind.GRACE_PERIOD_PROCESSED: GracePeriodProcessedEvent,
    EventKind.GRACE_PERIOD_STARTED: GracePeriodStartedEvent,
    EventKind.OWNER_PINGED: OwnerPingedEvent,
    EventKind.OWNER_DATA_UPDATED: OwnerDataUpdatedEvent,
    EventKind.RELAY_ADDRESS_UPDATED: RelayAddressUpdatedEvent,
}
