"""Per-owner protocol phase, inferred from the union of both ledgers.

The phase is never stored anywhere. It is derived on demand for the
control surface and for log context:

    ACTIVE -> DEATH_VOTING -> CONSENSUS_DECEASED | CONSENSUS_ALIVE
    CONSENSUS_DECEASED -> GRACE_PERIOD_RUNNING -> GRACE_PERIOD_PROCESSED_(DEAD|ALIVE)
"""

from typing import Optional

from ..core.enums import OwnerPhase
from .models import DeathDeclarationStatus, GracePeriodRecord, OwnerInfo


def infer_owner_phase(
    owner: Optional[OwnerInfo],
    declaration: Optional[DeathDeclarationStatus] = None,
    grace_period: Optional[GracePeriodRecord] = None,
) -> OwnerPhase:
    """Infer where an owner sits in the protocol state machine.

    Any argument may be None when the corresponding read was unavailable;
    the inference then falls back to what the remaining reads show.
    """
    if grace_period is not None and grace_period.start_time > 0:
        if grace_period.processed:
            if grace_period.is_deceased:
                return OwnerPhase.GRACE_PERIOD_PROCESSED_DEAD
            return OwnerPhase.GRACE_PERIOD_PROCESSED_ALIVE
        return OwnerPhase.GRACE_PERIOD_RUNNING

    if owner is None or not owner.exists:
        return OwnerPhase.UNREGISTERED

    if owner.is_deceased:
        return OwnerPhase.CONSENSUS_DECEASED

    if declaration is not None:
        if declaration.is_active and not declaration.consensus_reached:
            return OwnerPhase.DEATH_VOTING
        if declaration.consensus_reached:
            return OwnerPhase.CONSENSUS_ALIVE

    return OwnerPhase.ACTIVE
