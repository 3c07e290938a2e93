"""Event journal: delivery deduplication, outcomes and ledger checkpoints.

The journal remembers every dispatched event with the outcome of its
handler and the last fully-consumed block of each ledger. It gives
best-effort replay after a restart; it is not a transactional outbox.

Calls are synchronous and short; they run on the event loop.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from ..core.enums import DispatchStatus, EventKind, LedgerSide
from ..db.database import Database
from ..db.models import LedgerCheckpoint, ProcessedEvent
from ..domain.errors import RelayError
from ..domain.events import BaseEvent
from ..utils.logging_config import get_logger

logger = get_logger('journal')


class JournalError(RelayError):
    """Base exception for journal operations."""

    pass


def _entry_to_dict(row: ProcessedEvent) -> Dict[str, Any]:
    return {
        "event_key": row.event_key,
        "ledger": row.ledger,
        "kind": row.kind,
        "owner": row.owner,
        "tx_hash": row.tx_hash,
        "block_number": row.block_number,
        "log_index": row.log_index,
        "status": row.status,
        "error": row.error,
        "payload": json.loads(row.payload_json),
        "processed_at": row.processed_at,
    }


class EventJournal:
    """Persistent record of dispatched events and subscription checkpoints."""

    def __init__(self, database: Database):
        self.database = database

    def has_processed(self, event_key: str) -> bool:
        """Check whether a delivery was already dispatched."""
        try:
            with self.database.session() as db:
                found = db.execute(
                    select(ProcessedEvent.id).where(ProcessedEvent.event_key == event_key)
                ).first()
                return found is not None
        except SQLAlchemyError as e:
            raise JournalError(f"Failed to look up event {event_key}: {e}") from e

    def record(self, event: BaseEvent, status: DispatchStatus, error: Optional[str] = None) -> None:
        """
        Record the outcome of dispatching an event.

        A second record for the same delivery overwrites the first.

        Raises:
            JournalError: If the outcome could not be stored
        """
        try:
            with self.database.session() as db:
                row = db.execute(
                    select(ProcessedEvent).where(ProcessedEvent.event_key == event.event_key)
                ).scalar_one_or_none()
                if row is None:
                    row = ProcessedEvent(
                        event_key=event.event_key,
                        ledger=event.ledger.value,
                        kind=event.kind.value,
                        owner=event.owner.lower() if event.owner else None,
                        tx_hash=event.tx_hash,
                        block_number=event.block_number,
                        log_index=event.log_index,
                    )
                    db.add(row)
                row.status = status.value
                row.error = error
                row.payload_json = event.model_dump_json()
                row.processed_at = datetime.now(timezone.utc)
                db.commit()
        except SQLAlchemyError as e:
            raise JournalError(f"Failed to record event {event.event_key}: {e}") from e

    def get_checkpoint(self, ledger: LedgerSide) -> Optional[int]:
        """Last fully-consumed block of a ledger, or None if never seen."""
        try:
            with self.database.session() as db:
                row = db.get(LedgerCheckpoint, ledger.value)
                return row.block_number if row is not None else None
        except SQLAlchemyError as e:
            raise JournalError(f"Failed to read checkpoint for {ledger.value}: {e}") from e

    def save_checkpoint(self, ledger: LedgerSide, block_number: int) -> None:
        """Advance a ledger checkpoint. Checkpoints never move backwards."""
        try:
            with self.database.session() as db:
                row = db.get(LedgerCheckpoint, ledger.value)
                if row is None:
                    db.add(LedgerCheckpoint(ledger=ledger.value, block_number=block_number))
                elif block_number > row.block_number:
                    row.block_number = block_number
                else:
                    return
                db.commit()
        except SQLAlchemyError as e:
            raise JournalError(f"Failed to save checkpoint for {ledger.value}: {e}") from e
        logger.debug(f"Checkpoint {ledger.value} -> block {block_number}")

    def recent(
        self,
        limit: int = 50,
        status: Optional[DispatchStatus] = None,
        kind: Optional[EventKind] = None,
        owner: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Most recently processed events, newest first."""
        query = select(ProcessedEvent)
        if status is not None:
            query = query.where(ProcessedEvent.status == status.value)
        if kind is not None:
            query = query.where(ProcessedEvent.kind == kind.value)
        if owner is not None:
            query = query.where(ProcessedEvent.owner == owner.lower())
        query = query.order_by(ProcessedEvent.processed_at.desc(), ProcessedEvent.id.desc()).limit(limit)

        try:
            with self.database.session() as db:
                return [_entry_to_dict(row) for row in db.execute(query).scalars()]
        except SQLAlchemyError as e:
            raise JournalError(f"Failed to query journal: {e}") from e

    def grace_period_outcomes(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Final determinations observed on the automation ledger."""
        outcomes = []
        for entry in self.recent(limit=limit, kind=EventKind.GRACE_PERIOD_PROCESSED):
            payload = entry["payload"]
            outcomes.append({
                "owner": entry["owner"],
                "is_dead": payload.get("is_dead", False),
                "process_time": payload.get("process_time", 0),
                "tx_hash": entry["tx_hash"],
                "block_number": entry["block_number"],
                "observed_at": entry["processed_at"],
            })
        return outcomes

    def counts(self) -> Dict[str, int]:
        """Number of journal entries per dispatch status."""
        try:
            with self.database.session() as db:
                rows = db.execute(
                    select(ProcessedEvent.status, func.count(ProcessedEvent.id)).group_by(ProcessedEvent.status)
                ).all()
                return {status: count for status, count in rows}
        except SQLAlchemyError as e:
            raise JournalError(f"Failed to count journal entries: {e}") from e
