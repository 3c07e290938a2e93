"""FastAPI dependencies resolving the running relay's components."""

from fastapi import Depends, Request, status

from ..bootstrap import RelayComponents
from ..domain.models import normalize_address
from ..relay.supervisor import RelaySupervisor
from ..store.journal import EventJournal
from .middleware import ProblemDetailsException


def get_components(request: Request) -> RelayComponents:
    """Relay components attached to the app at startup."""
    components = getattr(request.app.state, "relay", None)
    if components is None:
        raise ProblemDetailsException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            title="Relay Not Initialized",
            detail="The relay has not been configured in this process",
        )
    return components


def get_supervisor(components: RelayComponents = Depends(get_components)) -> RelaySupervisor:
    return components.supervisor


def get_journal(components: RelayComponents = Depends(get_components)) -> EventJournal:
    return components.journal


def valid_address(address: str) -> str:
    """Path parameter dependency: a normalised ledger address."""
    try:
        return normalize_address(address)
    except ValueError:
        raise ProblemDetailsException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            title="Invalid Address",
            detail=f"{address!r} is not a 20-byte hex address",
        )
