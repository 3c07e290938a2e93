"""SQLAlchemy models for the relay's event journal."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, String, Text

from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProcessedEvent(Base):
    """One dispatched ledger event and the outcome of handling it."""

    __tablename__ = "processed_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_key = Column(String(200), nullable=False, unique=True)
    ledger = Column(String(20), nullable=False)
    kind = Column(String(50), nullable=False)
    owner = Column(String(42), nullable=True)
    tx_hash = Column(String(66), nullable=False)
    block_number = Column(Integer, nullable=False)
    log_index = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False)
    error = Column(Text, nullable=True)
    payload_json = Column(Text, nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_processed_events_status", "status"),
        Index("ix_processed_events_kind", "kind"),
        Index("ix_processed_events_owner", "owner"),
    )


class LedgerCheckpoint(Base):
    """Last block whose events were fully consumed, per ledger."""

    __tablename__ = "ledger_checkpoints"

    ledger = Column(String(20), primary_key=True)
    block_number = Column(Integer, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
