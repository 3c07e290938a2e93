"""Enums for the LifeSignal relay."""

from enum import Enum


class LedgerSide(str, Enum):
    """The two ledgers the relay bridges."""

    REGISTRY = "registry"
    AUTOMATION = "automation"


class EventKind(str, Enum):
    """Contract events the relay subscribes to."""

    # Registry ledger
    OWNER_REGISTERED = "OwnerRegistered"
    HEARTBEAT_SENT = "HeartbeatSent"
    CONSENSUS_REACHED = "ConsensusReached"
    DEATH_DECLARED = "DeathDeclared"
    CONTACT_ADDED = "ContactAdded"
    CONTACT_VERIFIED = "ContactVerified"
    VOTE_CAST = "VoteCast"

    # Automation ledger
    GRACE_PERIOD_PROCESSED = "GracePeriodProcessed"
    GRACE_PERIOD_STARTED = "GracePeriodStarted"
    OWNER_PINGED = "OwnerPinged"
    OWNER_DATA_UPDATED = "OwnerDataUpdated"
    RELAY_ADDRESS_UPDATED = "RelayAddressUpdated"


REGISTRY_EVENT_KINDS = (
    EventKind.OWNER_REGISTERED,
    EventKind.HEARTBEAT_SENT,
    EventKind.CONSENSUS_REACHED,
    EventKind.DEATH_DECLARED,
    EventKind.CONTACT_ADDED,
    EventKind.CONTACT_VERIFIED,
    EventKind.VOTE_CAST,
)

AUTOMATION_EVENT_KINDS = (
    EventKind.GRACE_PERIOD_PROCESSED,
    EventKind.GRACE_PERIOD_STARTED,
    EventKind.OWNER_PINGED,
    EventKind.OWNER_DATA_UPDATED,
    EventKind.RELAY_ADDRESS_UPDATED,
)


class OwnerPhase(str, Enum):
    """Per-owner protocol state inferred from both ledgers."""

    UNREGISTERED = "unregistered"
    ACTIVE = "active"
    DEATH_VOTING = "death_voting"
    CONSENSUS_ALIVE = "consensus_alive"
    CONSENSUS_DECEASED = "consensus_deceased"
    GRACE_PERIOD_RUNNING = "grace_period_running"
    GRACE_PERIOD_PROCESSED_DEAD = "grace_period_processed_dead"
    GRACE_PERIOD_PROCESSED_ALIVE = "grace_period_processed_alive"


class DispatchStatus(str, Enum):
    """Outcome of routing one event."""

    OK = "ok"
    ERROR = "error"
    IGNORED = "ignored"
    DUPLICATE = "duplicate"
