"""Event journal endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ..core.enums import DispatchStatus, EventKind
from ..store.journal import EventJournal
from .dependencies import get_journal
from .schemas import JournalEntryResponse, OutcomeResponse

router = APIRouter(tags=["journal"])


@router.get("/events", response_model=List[JournalEntryResponse])
def list_events(
    status: Optional[DispatchStatus] = Query(None, description="Filter by dispatch outcome"),
    kind: Optional[EventKind] = Query(None, description="Filter by event kind"),
    owner: Optional[str] = Query(None, description="Filter by owner address"),
    limit: int = Query(50, ge=1, le=500),
    journal: EventJournal = Depends(get_journal),
) -> List[JournalEntryResponse]:
    """Recently dispatched events, newest first."""
    entries = journal.recent(limit=limit, status=status, kind=kind, owner=owner)
    return [JournalEntryResponse.model_validate(entry) for entry in entries]


@router.get("/outcomes", response_model=List[OutcomeResponse])
def list_outcomes(
    limit: int = Query(50, ge=1, le=500),
    journal: EventJournal = Depends(get_journal),
) -> List[OutcomeResponse]:
    """Grace-period determinations observed on the automation ledger."""
    return [OutcomeResponse.model_validate(outcome) for outcome in journal.grace_period_outcomes(limit=limit)]
