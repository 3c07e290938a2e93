"""Relay lifecycle and status endpoints."""

from fastapi import APIRouter, Depends, status

from ..domain.errors import RelayError
from ..relay.supervisor import RelaySupervisor
from ..utils.logging_config import get_logger
from .dependencies import get_supervisor
from .middleware import ProblemDetailsException
from .schemas import LifecycleResponse, ProblemDetails, StatusResponse

logger = get_logger('api')
router = APIRouter(tags=["relay"])


@router.get("/status", response_model=StatusResponse)
async def relay_status(supervisor: RelaySupervisor = Depends(get_supervisor)) -> StatusResponse:
    """Running flag, cache size, signer addresses, ledger health and router counters."""
    return StatusResponse.model_validate(supervisor.status())


@router.post(
    "/start",
    response_model=LifecycleResponse,
    responses={503: {"model": ProblemDetails, "description": "A ledger could not be reached"}},
)
async def start_relay(supervisor: RelaySupervisor = Depends(get_supervisor)) -> LifecycleResponse:
    """Start relaying. Starting a running relay is a no-op."""
    was_running = supervisor.running
    try:
        await supervisor.start()
    except RelayError as e:
        logger.error(f"Relay start failed: {e}")
        raise ProblemDetailsException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            title="Relay Start Failed",
            detail=str(e),
            error_type=type(e).__name__,
        )
    return LifecycleResponse(running=supervisor.running, changed=not was_running)


@router.post("/stop", response_model=LifecycleResponse)
async def stop_relay(supervisor: RelaySupervisor = Depends(get_supervisor)) -> LifecycleResponse:
    """Stop relaying after in-flight handlers finish. Stopping a stopped relay is a no-op."""
    was_running = supervisor.running
    await supervisor.stop()
    return LifecycleResponse(running=supervisor.running, changed=was_running)
