"""In-memory ledger emulators.

Both emulators keep contract state in dictionaries, mine one block per
transaction and record every emitted event so subscriptions can poll them
like a real node. Faults can be queued per operation to exercise the
relay's failure paths without a network.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..core.enums import EventKind
from ..domain.errors import RevertedError, TransactionTimeoutError
from ..domain.events import EVENT_MODELS, BaseEvent
from ..domain.models import (
    ZERO_ADDRESS,
    AutomationOwnerData,
    ContactInfo,
    ContractCall,
    DeathDeclarationStatus,
    GracePeriodRecord,
    OwnerInfo,
    Receipt,
    normalize_address,
)
from .interfaces import AutomationLedger, RegistryLedger

DEFAULT_REGISTRY_SIGNER = "0x00000000000000000000000000000000000000a1"
DEFAULT_AUTOMATION_SIGNER = "0x00000000000000000000000000000000000000b1"


@dataclass
class _Fault:
    exc: BaseException
    # Timeouts model "broadcast, confirmation lost": the call still lands
    apply: bool = False


class BaseMemoryLedger:
    """Block, event log and fault plumbing shared by both emulators."""

    def __init__(
        self,
        signer_address: str,
        chain_id: int,
        clock: Callable[[], float] = time.time,
        confirmation_delay: float = 0.0,
        poll_interval: float = 0.01,
        max_block_range: int = 1000,
        stream_backoff_base: float = 0.01,
        stream_backoff_max: float = 0.05,
    ):
        super().__init__(
            poll_interval=poll_interval,
            max_block_range=max_block_range,
            stream_backoff_base=stream_backoff_base,
            stream_backoff_max=stream_backoff_max,
        )
        self._signer = normalize_address(signer_address)
        self._chain_id = chain_id
        self.clock = clock
        self.confirmation_delay = confirmation_delay

        self._block = 0
        self._tx_counter = 0
        self._events: List[BaseEvent] = []
        self._faults: Dict[str, List[_Fault]] = {}

        # Relay writes, in submission and confirmation order
        self.attempts: List[ContractCall] = []
        self.write_log: List[ContractCall] = []

    # Fault injection

    def fail_next(self, operation: str, exc: BaseException, times: int = 1, apply: Optional[bool] = None) -> None:
        """
        Queue a failure for the next call(s) of an operation.

        Args:
            operation: Contract function name, or ``get_block_number``,
                ``fetch_events`` or a read method name
            exc: Exception to raise
            times: How many consecutive calls fail
            apply: Whether a failing write still changes state; defaults to
                True for TransactionTimeoutError only
        """
        if apply is None:
            apply = isinstance(exc, TransactionTimeoutError)
        self._faults.setdefault(operation, []).extend(_Fault(exc, apply) for _ in range(times))

    def _take_fault(self, operation: str) -> Optional[_Fault]:
        queued = self._faults.get(operation)
        if not queued:
            return None
        return queued.pop(0)

    def _check_fault(self, operation: str) -> None:
        fault = self._take_fault(operation)
        if fault is not None:
            raise fault.exc

    # Chain

    @property
    def signer_address(self) -> str:
        return self._signer

    @property
    def events(self) -> List[BaseEvent]:
        return list(self._events)

    def now(self) -> int:
        return int(self.clock())

    def _mine(self, *emitted: Tuple[EventKind, dict]) -> str:
        """Mine a block holding one transaction and its events."""
        self._block += 1
        self._tx_counter += 1
        tx_hash = "0x" + format(self._tx_counter, "064x")
        for log_index, (kind, fields) in enumerate(emitted):
            self._events.append(
                EVENT_MODELS[kind](
                    ledger=self.side,
                    tx_hash=tx_hash,
                    block_number=self._block,
                    log_index=log_index,
                    **fields,
                )
            )
        return tx_hash

    def mine_empty_blocks(self, count: int = 1) -> None:
        self._block += count

    async def get_block_number(self) -> int:
        self._check_fault("get_block_number")
        return self._block

    async def get_chain_id(self) -> int:
        self._check_fault("get_chain_id")
        return self._chain_id

    async def fetch_events(
        self, from_block: int, to_block: int, kinds: Sequence[EventKind]
    ) -> List[BaseEvent]:
        self._check_fault("fetch_events")
        return [
            event for event in self._events
            if from_block <= event.block_number <= to_block and event.kind in kinds
        ]

    async def _send_transaction(self, call: ContractCall) -> Receipt:
        self.attempts.append(call)
        fault = self._take_fault(call.function)
        if fault is not None and not fault.apply:
            raise fault.exc

        if self.confirmation_delay:
            await asyncio.sleep(self.confirmation_delay)

        execute = getattr(self, f"_exec_{call.function}", None)
        if execute is None:
            raise RevertedError("function selector was not recognized", call.function)
        tx_hash = execute(*call.args)
        self.write_log.append(call)

        if fault is not None:
            raise fault.exc

        return Receipt(
            ledger=self.side.value,
            function=call.function,
            tx_hash=tx_hash,
            block_number=self._block,
            gas_used=21000,
        )


@dataclass
class _Contact:
    has_voting_right: bool
    is_verified: bool = False


@dataclass
class _Declaration:
    is_active: bool = False
    start_time: int = 0
    votes_for: int = 0
    votes_against: int = 0
    total_voting_contacts: int = 0
    consensus_reached: bool = False
    votes: Dict[str, bool] = field(default_factory=dict)


@dataclass
class _Owner:
    first_name: str
    last_name: str
    grace_interval: int
    last_heartbeat: int
    is_deceased: bool = False
    contacts: Dict[str, _Contact] = field(default_factory=dict)
    declaration: _Declaration = field(default_factory=_Declaration)


class MemoryRegistryLedger(BaseMemoryLedger, RegistryLedger):
    """
    Registry ledger emulator.

    Protocol actions (registration, contacts, heartbeats, voting) are
    performed directly by test code acting as owners and contacts. A death
    declaration counts the declarer's vote; consensus needs a strict
    majority of verified voting contacts either way. A heartbeat during an
    active declaration cancels it with ConsensusReached(false).
    """

    def __init__(self, signer_address: str = DEFAULT_REGISTRY_SIGNER, chain_id: int = 23295, **kwargs):
        super().__init__(signer_address, chain_id, **kwargs)
        self._owners: Dict[str, _Owner] = {}

    def _require_owner(self, owner: str, function: str) -> Tuple[str, _Owner]:
        key = normalize_address(owner)
        state = self._owners.get(key)
        if state is None:
            raise RevertedError("Owner not registered", function)
        return key, state

    # Protocol actions

    def register_owner(self, owner: str, first_name: str, last_name: str, grace_interval: int) -> str:
        key = normalize_address(owner)
        if key in self._owners:
            raise RevertedError("Owner already registered", "registerOwner")
        if grace_interval <= 0:
            raise RevertedError("Grace interval must be positive", "registerOwner")
        self._owners[key] = _Owner(first_name, last_name, grace_interval, last_heartbeat=self.now())
        return self._mine(
            (EventKind.OWNER_REGISTERED, {"owner": key, "first_name": first_name, "last_name": last_name})
        )

    def add_contact(self, owner: str, contact: str, has_voting_right: bool = True) -> str:
        key, state = self._require_owner(owner, "addContact")
        contact_key = normalize_address(contact)
        if contact_key in state.contacts:
            raise RevertedError("Contact already exists", "addContact")
        state.contacts[contact_key] = _Contact(has_voting_right)
        return self._mine(
            (EventKind.CONTACT_ADDED, {"owner": key, "contact": contact_key, "has_voting_right": has_voting_right})
        )

    def verify_contact(self, owner: str, contact: str) -> str:
        key, state = self._require_owner(owner, "verifyContact")
        contact_key = normalize_address(contact)
        entry = state.contacts.get(contact_key)
        if entry is None:
            raise RevertedError("Not a contact", "verifyContact")
        entry.is_verified = True
        return self._mine((EventKind.CONTACT_VERIFIED, {"owner": key, "contact": contact_key}))

    def send_heartbeat(self, owner: str) -> str:
        key, state = self._require_owner(owner, "sendHeartbeat")
        timestamp = self.now()
        state.last_heartbeat = timestamp
        emitted = [(EventKind.HEARTBEAT_SENT, {"owner": key, "timestamp": timestamp})]
        if state.declaration.is_active and not state.declaration.consensus_reached:
            state.declaration = _Declaration()
            emitted.append(
                (EventKind.CONSENSUS_REACHED, {"owner": key, "is_deceased": False, "timestamp": timestamp})
            )
        return self._mine(*emitted)

    def _voting_contacts(self, state: _Owner) -> int:
        return sum(1 for c in state.contacts.values() if c.has_voting_right and c.is_verified)

    def _require_voter(self, state: _Owner, voter: str, function: str) -> str:
        voter_key = normalize_address(voter)
        contact = state.contacts.get(voter_key)
        if contact is None or not (contact.has_voting_right and contact.is_verified):
            raise RevertedError("Not a verified voting contact", function)
        return voter_key

    def declare_death(self, owner: str, declared_by: str) -> str:
        key, state = self._require_owner(owner, "declareDeceased")
        voter = self._require_voter(state, declared_by, "declareDeceased")
        if state.is_deceased or state.declaration.is_active:
            raise RevertedError("Declaration already active", "declareDeceased")

        timestamp = self.now()
        state.declaration = _Declaration(
            is_active=True,
            start_time=timestamp,
            votes_for=1,
            total_voting_contacts=self._voting_contacts(state),
            votes={voter: True},
        )
        emitted = [(EventKind.DEATH_DECLARED, {"owner": key, "declared_by": voter, "timestamp": timestamp})]
        emitted.extend(self._tally(key, state, timestamp))
        return self._mine(*emitted)

    def cast_vote(self, owner: str, voter: str, vote: bool) -> str:
        key, state = self._require_owner(owner, "voteOnDeathDeclaration")
        voter_key = self._require_voter(state, voter, "voteOnDeathDeclaration")
        declaration = state.declaration
        if not declaration.is_active or declaration.consensus_reached:
            raise RevertedError("No active declaration", "voteOnDeathDeclaration")
        if voter_key in declaration.votes:
            raise RevertedError("Already voted", "voteOnDeathDeclaration")

        declaration.votes[voter_key] = vote
        if vote:
            declaration.votes_for += 1
        else:
            declaration.votes_against += 1

        timestamp = self.now()
        emitted = [(EventKind.VOTE_CAST, {"owner": key, "voter": voter_key, "vote": vote})]
        emitted.extend(self._tally(key, state, timestamp))
        return self._mine(*emitted)

    def _tally(self, key: str, state: _Owner, timestamp: int) -> List[Tuple[EventKind, dict]]:
        declaration = state.declaration
        majority = declaration.total_voting_contacts / 2
        if declaration.votes_for > majority:
            declaration.consensus_reached = True
            state.is_deceased = True
            return [(EventKind.CONSENSUS_REACHED, {"owner": key, "is_deceased": True, "timestamp": timestamp})]
        if declaration.votes_against > majority:
            state.declaration = _Declaration()
            return [(EventKind.CONSENSUS_REACHED, {"owner": key, "is_deceased": False, "timestamp": timestamp})]
        return []

    # Reads

    async def get_owner_info(self, owner: str) -> OwnerInfo:
        self._check_fault("get_owner_info")
        state = self._owners.get(normalize_address(owner))
        if state is None:
            return OwnerInfo(
                first_name="", last_name="", last_heartbeat=0, grace_interval=0, is_deceased=False, exists=False
            )
        return OwnerInfo(
            first_name=state.first_name,
            last_name=state.last_name,
            last_heartbeat=state.last_heartbeat,
            grace_interval=state.grace_interval,
            is_deceased=state.is_deceased,
            exists=True,
        )

    async def get_death_declaration_status(self, owner: str) -> DeathDeclarationStatus:
        self._check_fault("get_death_declaration_status")
        state = self._owners.get(normalize_address(owner))
        declaration = state.declaration if state is not None else _Declaration()
        return DeathDeclarationStatus(
            is_active=declaration.is_active,
            start_time=declaration.start_time,
            votes_for=declaration.votes_for,
            votes_against=declaration.votes_against,
            total_voting_contacts=declaration.total_voting_contacts,
            consensus_reached=declaration.consensus_reached,
        )

    async def get_contact_info(self, owner: str, contact: str) -> ContactInfo:
        state = self._owners.get(normalize_address(owner))
        entry = state.contacts.get(normalize_address(contact)) if state is not None else None
        if entry is None:
            return ContactInfo(has_voting_right=False, is_verified=False, exists=False)
        return ContactInfo(has_voting_right=entry.has_voting_right, is_verified=entry.is_verified, exists=True)

    async def get_contact_list(self, owner: str) -> List[str]:
        state = self._owners.get(normalize_address(owner))
        return list(state.contacts) if state is not None else []

    async def has_voted(self, owner: str, voter: str) -> bool:
        state = self._owners.get(normalize_address(owner))
        return state is not None and normalize_address(voter) in state.declaration.votes

    async def get_vote(self, owner: str, voter: str) -> bool:
        state = self._owners.get(normalize_address(owner))
        if state is None:
            return False
        return state.declaration.votes.get(normalize_address(voter), False)


@dataclass
class _Mirror:
    grace_interval: int = 0
    is_deceased: bool = False
    exists: bool = False
    last_update: int = 0


@dataclass
class _GracePeriod:
    start_time: int = 0
    has_pinged: bool = False
    processed: bool = False
    grace_interval: int = 0
    is_deceased: bool = False


class MemoryAutomationLedger(BaseMemoryLedger, AutomationLedger):
    """
    Automation ledger emulator.

    Only the configured relay address may write. The grace-period timer is
    driven explicitly with ``process_grace_periods`` so tests control when
    the wall-clock decision happens.
    """

    def __init__(self, signer_address: str = DEFAULT_AUTOMATION_SIGNER, chain_id: int = 11155111, **kwargs):
        super().__init__(signer_address, chain_id, **kwargs)
        self.relay_address = self._signer
        self._mirrors: Dict[str, _Mirror] = {}
        self._grace_periods: Dict[str, _GracePeriod] = {}

    def _require_relay(self, function: str) -> None:
        if self.relay_address != self._signer:
            raise RevertedError("Only relay can call this function", function)

    # Contract functions called through submit_transaction

    def _exec_updateOwnerData(self, owner: str, grace_interval: int, is_deceased: bool, exists: bool) -> str:
        self._require_relay("updateOwnerData")
        key = normalize_address(owner)
        self._mirrors[key] = _Mirror(grace_interval, is_deceased, exists, last_update=self.now())
        return self._mine(
            (EventKind.OWNER_DATA_UPDATED, {"owner": key, "grace_interval": grace_interval, "is_deceased": is_deceased})
        )

    def _exec_startGracePeriod(self, owner: str) -> str:
        self._require_relay("startGracePeriod")
        key = normalize_address(owner)
        mirror = self._mirrors.get(key)
        if mirror is None or not mirror.exists:
            raise RevertedError("Owner does not exist", "startGracePeriod")
        period = self._grace_periods.get(key)
        if period is not None and period.start_time > 0 and not period.processed:
            raise RevertedError("Grace period already started", "startGracePeriod")

        start_time = self.now()
        self._grace_periods[key] = _GracePeriod(
            start_time=start_time, grace_interval=mirror.grace_interval, is_deceased=mirror.is_deceased
        )
        return self._mine(
            (
                EventKind.GRACE_PERIOD_STARTED,
                {"owner": key, "start_time": start_time, "grace_interval": mirror.grace_interval},
            )
        )

    def _exec_recordPing(self, owner: str) -> str:
        self._require_relay("recordPing")
        key = normalize_address(owner)
        period = self._grace_periods.get(key)
        if period is not None and period.start_time > 0 and not period.processed:
            period.has_pinged = True
        return self._mine((EventKind.OWNER_PINGED, {"owner": key, "ping_time": self.now()}))

    # Administrative and timer actions

    def set_relay_address(self, new_relay: str) -> str:
        old = self.relay_address
        self.relay_address = normalize_address(new_relay)
        return self._mine((EventKind.RELAY_ADDRESS_UPDATED, {"old_relay": old, "new_relay": self.relay_address}))

    def process_grace_periods(self, now: Optional[int] = None) -> List[str]:
        """Run the timer: finalize every expired, unprocessed grace period.

        Returns:
            Addresses whose grace period was processed
        """
        now = self.now() if now is None else now
        processed = []
        for key, period in self._grace_periods.items():
            if period.processed or period.start_time == 0:
                continue
            if now < period.start_time + period.grace_interval:
                continue
            period.processed = True
            is_dead = not period.has_pinged
            period.is_deceased = is_dead
            self._mine((EventKind.GRACE_PERIOD_PROCESSED, {"owner": key, "is_dead": is_dead, "process_time": now}))
            processed.append(key)
        return processed

    # Reads

    async def get_owner_data(self, owner: str) -> AutomationOwnerData:
        self._check_fault("get_owner_data")
        mirror = self._mirrors.get(normalize_address(owner), _Mirror())
        return AutomationOwnerData(
            grace_interval=mirror.grace_interval,
            is_deceased=mirror.is_deceased,
            exists=mirror.exists,
            last_update=mirror.last_update,
        )

    async def get_grace_period_info(self, owner: str) -> GracePeriodRecord:
        self._check_fault("get_grace_period_info")
        period = self._grace_periods.get(normalize_address(owner), _GracePeriod())
        return GracePeriodRecord(
            start_time=period.start_time,
            has_pinged=period.has_pinged,
            processed=period.processed,
            grace_interval=period.grace_interval,
            is_deceased=period.is_deceased,
        )

    async def get_relay_address(self) -> str:
        return self.relay_address or ZERO_ADDRESS


def create_memory_ledgers(**kwargs) -> Tuple[MemoryRegistryLedger, MemoryAutomationLedger]:
    """Build a matching pair of emulators sharing the same options."""
    return MemoryRegistryLedger(**kwargs), MemoryAutomationLedger(**kwargs)

