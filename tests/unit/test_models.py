"""Unit tests for domain models, events and lifecycle inference."""

import pytest
from pydantic import ValidationError

from lifesignal_relay.core.enums import EventKind, LedgerSide, OwnerPhase
from lifesignal_relay.domain.events import ConsensusReachedEvent, HeartbeatSentEvent
from lifesignal_relay.domain.lifecycle import infer_owner_phase
from lifesignal_relay.domain.models import (
    AutomationOwnerData,
    ContractCall,
    DeathDeclarationStatus,
    GracePeriodRecord,
    OwnerInfo,
    OwnerRecord,
    normalize_address,
)
from lifesignal_relay.ledger.abi import (
    GRACE_PERIOD_AUTOMATION_ABI,
    LIFE_SIGNAL_REGISTRY_ABI,
    event_from_log_args,
    event_signature,
)

OWNER = "0x000000000000000000000000000000000000000a"


def owner_info(**overrides) -> OwnerInfo:
    fields = dict(
        first_name="John", last_name="Doe", last_heartbeat=1, grace_interval=604800, is_deceased=False, exists=True
    )
    fields.update(overrides)
    return OwnerInfo(**fields)


def declaration(**overrides) -> DeathDeclarationStatus:
    fields = dict(
        is_active=False, start_time=0, votes_for=0, votes_against=0, total_voting_contacts=2, consensus_reached=False
    )
    fields.update(overrides)
    return DeathDeclarationStatus(**fields)


def grace(**overrides) -> GracePeriodRecord:
    fields = dict(start_time=0, has_pinged=False, processed=False, grace_interval=604800, is_deceased=True)
    fields.update(overrides)
    return GracePeriodRecord(**fields)


@pytest.mark.unit
class TestModels:
    """Test read models and write descriptors."""

    def test_normalize_address(self):
        assert normalize_address("  0x000000000000000000000000000000000000000A ") == OWNER

    @pytest.mark.parametrize("value", ["", "0x1234", "000000000000000000000000000000000000000a", None, "0xZZ" + "0" * 38])
    def test_normalize_address_rejects(self, value):
        with pytest.raises(ValueError):
            normalize_address(value)

    def test_read_models_are_frozen(self):
        info = owner_info()

        with pytest.raises(ValidationError):
            info.is_deceased = True

    def test_full_uint256_range(self):
        huge = 2**256 - 1

        assert owner_info(grace_interval=huge).to_record().grace_interval_seconds == huge

    def test_matches_mirror(self):
        record = OwnerRecord(grace_interval_seconds=604800, is_deceased=True, exists=True)

        assert record.matches_mirror(AutomationOwnerData(grace_interval=604800, is_deceased=True, exists=True, last_update=5))
        assert not record.matches_mirror(
            AutomationOwnerData(grace_interval=604800, is_deceased=False, exists=True, last_update=5)
        )

    def test_contract_call_describe(self):
        call = ContractCall("updateOwnerData", (OWNER, 604800, True, True))

        assert call.describe() == f"updateOwnerData({OWNER}, 604800, True, True)"

    def test_event_key_identifies_delivery(self):
        event = HeartbeatSentEvent(ledger=LedgerSide.REGISTRY, tx_hash="0xabc", block_number=3, log_index=1, owner=OWNER)

        assert event.kind == EventKind.HEARTBEAT_SENT
        assert event.event_key == "registry:0xabc:1"
        assert event.log_context()["block"] == 3


@pytest.mark.unit
class TestInferOwnerPhase:
    """Test lifecycle inference from both ledgers."""

    @pytest.mark.parametrize(
        "info,decl,period,expected",
        [
            (None, None, None, OwnerPhase.UNREGISTERED),
            (owner_info(exists=False), None, None, OwnerPhase.UNREGISTERED),
            (owner_info(), declaration(), grace(), OwnerPhase.ACTIVE),
            (owner_info(), declaration(is_active=True, votes_for=1), None, OwnerPhase.DEATH_VOTING),
            (owner_info(), declaration(is_active=True, consensus_reached=True), None, OwnerPhase.CONSENSUS_ALIVE),
            (owner_info(is_deceased=True), declaration(is_active=True, consensus_reached=True), grace(),
             OwnerPhase.CONSENSUS_DECEASED),
            (owner_info(is_deceased=True), None, grace(start_time=10), OwnerPhase.GRACE_PERIOD_RUNNING),
            (owner_info(is_deceased=True), None, grace(start_time=10, processed=True),
             OwnerPhase.GRACE_PERIOD_PROCESSED_DEAD),
            (owner_info(is_deceased=True), None, grace(start_time=10, processed=True, is_deceased=False),
             OwnerPhase.GRACE_PERIOD_PROCESSED_ALIVE),
        ],
    )
    def test_phases(self, info, decl, period, expected):
        assert infer_owner_phase(info, decl, period) == expected


@pytest.mark.unit
class TestAbi:
    """Test ABI helpers."""

    def test_event_signatures(self):
        assert event_signature(LIFE_SIGNAL_REGISTRY_ABI, "ConsensusReached") == "ConsensusReached(address,bool,uint256)"
        assert event_signature(GRACE_PERIOD_AUTOMATION_ABI, "RelayAddressUpdated") == "RelayAddressUpdated(address,address)"

    def test_unknown_event(self):
        with pytest.raises(KeyError):
            event_signature(LIFE_SIGNAL_REGISTRY_ABI, "GracePeriodProcessed")

    def test_event_from_log_args(self):
        event = event_from_log_args(
            EventKind.CONSENSUS_REACHED,
            LedgerSide.REGISTRY,
            {"owner": OWNER, "isDeceased": True, "timestamp": 1700000000},
            tx_hash="0x01",
            block_number=5,
            log_index=2,
        )

        assert isinstance(event, ConsensusReachedEvent)
        assert event.is_deceased is True
        assert event.timestamp == 1700000000
        assert event.event_key == "registry:0x01:2"
