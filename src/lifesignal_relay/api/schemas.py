"""Pydantic models for control surface responses."""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

from ..core.enums import OwnerPhase

# 256-bit ledger integers exceed what JSON numbers carry safely
Uint256 = Annotated[int, PlainSerializer(lambda value: str(value), return_type=str, when_used="json")]


class BaseResponse(BaseModel):
    """Base response model with common fields."""

    model_config = ConfigDict(from_attributes=True)


class ProblemDetails(BaseModel):
    """RFC 9457 Problem Details for HTTP APIs."""

    type: str = Field(description="A URI reference that identifies the problem type")
    title: str = Field(description="A short, human-readable summary of the problem type")
    status: int = Field(description="The HTTP status code")
    detail: Optional[str] = Field(None, description="A human-readable explanation specific to this occurrence")
    instance: Optional[str] = Field(None, description="A URI reference that identifies the specific occurrence")


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str


class LifecycleResponse(BaseModel):
    """Result of a start or stop request."""

    running: bool
    changed: bool = Field(description="False when the relay was already in the requested state")


class LedgerHealthResponse(BaseResponse):
    healthy: bool
    block_number: Optional[Uint256] = None
    chain_id: Optional[Uint256] = None
    last_checked: Optional[float] = None
    consecutive_failures: int = 0
    total_failures: int = 0
    last_error: Optional[str] = None


class StatusResponse(BaseModel):
    """Relay status snapshot."""

    running: bool
    uptime_seconds: Optional[float] = None
    cache_size: int
    cache_evicted_total: int = 0
    signers: Dict[str, str]
    health: Dict[str, LedgerHealthResponse]
    router: Dict[str, Any]


class OwnerInfoResponse(BaseResponse):
    first_name: str
    last_name: str
    last_heartbeat: Uint256
    grace_interval: Uint256
    is_deceased: bool
    exists: bool


class DeathDeclarationResponse(BaseResponse):
    is_active: bool
    start_time: Uint256
    votes_for: Uint256
    votes_against: Uint256
    total_voting_contacts: Uint256
    consensus_reached: bool


class OwnerMirrorResponse(BaseResponse):
    grace_interval: Uint256
    is_deceased: bool
    exists: bool
    last_update: Uint256


class GracePeriodResponse(BaseResponse):
    """Automation ledger grace-period record."""

    owner: str
    start_time: Uint256
    has_pinged: bool
    processed: bool
    grace_interval: Uint256
    is_deceased: bool
    is_running: bool


class CachedOwnerResponse(BaseResponse):
    grace_interval_seconds: Uint256
    is_deceased: bool
    exists: bool
    last_update: float
    fresh: bool


class OwnerStatusResponse(BaseModel):
    """Merged view of one owner across both ledgers."""

    owner: str
    phase: OwnerPhase
    registry: OwnerInfoResponse
    declaration: DeathDeclarationResponse
    automation: OwnerMirrorResponse
    grace_period: GracePeriodResponse
    contacts: List[str] = Field(default_factory=list)
    cached: Optional[CachedOwnerResponse] = None


class JournalEntryResponse(BaseModel):
    event_key: str
    ledger: str
    kind: str
    owner: Optional[str] = None
    tx_hash: str
    block_number: Uint256
    log_index: int
    status: str
    error: Optional[str] = None
    processed_at: datetime


class OutcomeResponse(BaseModel):
    """A final grace-period determination observed on the automation ledger."""

    owner: str
    is_dead: bool
    process_time: Uint256
    tx_hash: str
    block_number: Uint256
    observed_at: datetime
