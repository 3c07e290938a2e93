"""Unit tests for the event journal."""

import pytest
from sqlalchemy.exc import OperationalError

from lifesignal_relay.core.enums import DispatchStatus, EventKind, LedgerSide
from lifesignal_relay.domain.events import GracePeriodProcessedEvent, HeartbeatSentEvent
from lifesignal_relay.store.journal import JournalError

from tests.helpers.scenario import OTHER_OWNER, OWNER


def heartbeat(tx_hash: str, owner: str = OWNER, block: int = 1) -> HeartbeatSentEvent:
    return HeartbeatSentEvent(
        ledger=LedgerSide.REGISTRY, tx_hash=tx_hash, block_number=block, owner=owner, timestamp=1700000000
    )


@pytest.mark.unit
class TestEventJournal:
    """Test EventJournal."""

    def test_record_and_lookup(self, journal):
        event = heartbeat("0x01")
        assert journal.has_processed(event.event_key) is False

        journal.record(event, DispatchStatus.OK)

        assert journal.has_processed(event.event_key) is True
        entry = journal.recent()[0]
        assert entry["event_key"] == "registry:0x01:0"
        assert entry["status"] == "ok"
        assert entry["error"] is None
        assert entry["payload"]["timestamp"] == 1700000000

    def test_second_record_overwrites(self, journal):
        event = heartbeat("0x01")
        journal.record(event, DispatchStatus.ERROR, "RpcError: node down")
        journal.record(event, DispatchStatus.OK)

        entries = journal.recent()
        assert len(entries) == 1
        assert entries[0]["status"] == "ok"
        assert entries[0]["error"] is None

    def test_owner_is_stored_lower_case(self, journal):
        journal.record(heartbeat("0x01", owner=OWNER.replace("a", "A")), DispatchStatus.OK)

        assert journal.recent(owner=OWNER)[0]["owner"] == OWNER

    def test_filters_and_limit(self, journal):
        journal.record(heartbeat("0x01"), DispatchStatus.OK)
        journal.record(heartbeat("0x02", owner=OTHER_OWNER), DispatchStatus.ERROR, "boom")
        journal.record(heartbeat("0x03"), DispatchStatus.OK)

        assert len(journal.recent(status=DispatchStatus.OK)) == 2
        assert [e["tx_hash"] for e in journal.recent(status=DispatchStatus.ERROR)] == ["0x02"]
        assert len(journal.recent(owner=OTHER_OWNER)) == 1
        assert journal.recent(kind=EventKind.CONSENSUS_REACHED) == []
        assert len(journal.recent(limit=1)) == 1

    def test_newest_first(self, journal):
        for index in range(3):
            journal.record(heartbeat(f"0x0{index}"), DispatchStatus.OK)

        assert [e["tx_hash"] for e in journal.recent()] == ["0x02", "0x01", "0x00"]

    def test_counts(self, journal):
        journal.record(heartbeat("0x01"), DispatchStatus.OK)
        journal.record(heartbeat("0x02"), DispatchStatus.OK)
        journal.record(heartbeat("0x03"), DispatchStatus.IGNORED)

        assert journal.counts() == {"ok": 2, "ignored": 1}

    def test_grace_period_outcomes(self, journal):
        journal.record(heartbeat("0x01"), DispatchStatus.OK)
        journal.record(
            GracePeriodProcessedEvent(
                ledger=LedgerSide.AUTOMATION,
                tx_hash="0x09",
                block_number=9,
                owner=OWNER,
                is_dead=True,
                process_time=1700604800,
            ),
            DispatchStatus.OK,
        )

        outcomes = journal.grace_period_outcomes()

        assert len(outcomes) == 1
        assert outcomes[0]["owner"] == OWNER
        assert outcomes[0]["is_dead"] is True
        assert outcomes[0]["process_time"] == 1700604800
        assert outcomes[0]["block_number"] == 9


@pytest.mark.unit
class TestCheckpoints:
    """Test ledger checkpoints."""

    def test_unknown_ledger_has_no_checkpoint(self, journal):
        assert journal.get_checkpoint(LedgerSide.REGISTRY) is None

    def test_checkpoints_are_per_ledger(self, journal):
        journal.save_checkpoint(LedgerSide.REGISTRY, 10)
        journal.save_checkpoint(LedgerSide.AUTOMATION, 4)

        assert journal.get_checkpoint(LedgerSide.REGISTRY) == 10
        assert journal.get_checkpoint(LedgerSide.AUTOMATION) == 4

    def test_checkpoint_never_moves_backwards(self, journal):
        journal.save_checkpoint(LedgerSide.REGISTRY, 10)
        journal.save_checkpoint(LedgerSide.REGISTRY, 7)
        journal.save_checkpoint(LedgerSide.REGISTRY, 12)

        assert journal.get_checkpoint(LedgerSide.REGISTRY) == 12


@pytest.mark.unit
class TestJournalErrors:
    """Database failures surface as JournalError."""

    def test_missing_schema(self, journal, database):
        from lifesignal_relay.db.database import Base

        Base.metadata.drop_all(bind=database.engine)

        with pytest.raises(JournalError) as exc_info:
            journal.has_processed("registry:0x01:0")

        assert isinstance(exc_info.value.__cause__, OperationalError)
