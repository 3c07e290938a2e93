"""Read-only owner views merged from both ledgers."""

import asyncio
from typing import Optional

from fastapi import APIRouter, Depends

from ..bootstrap import RelayComponents
from ..cache.state_cache import StateCache
from ..domain.errors import OwnerNotFoundError
from ..domain.lifecycle import infer_owner_phase
from ..domain.models import GracePeriodRecord
from ..ledger.interfaces import AutomationLedger, RegistryLedger
from .dependencies import get_components, valid_address
from .schemas import (
    CachedOwnerResponse,
    DeathDeclarationResponse,
    GracePeriodResponse,
    OwnerInfoResponse,
    OwnerMirrorResponse,
    OwnerStatusResponse,
    ProblemDetails,
)

router = APIRouter(tags=["owners"])

_ERRORS = {
    404: {"model": ProblemDetails, "description": "Owner not registered"},
    422: {"model": ProblemDetails, "description": "Invalid address"},
    502: {"model": ProblemDetails, "description": "Ledger read failed"},
}


def _grace_period_response(owner: str, record: GracePeriodRecord) -> GracePeriodResponse:
    return GracePeriodResponse(owner=owner, is_running=record.is_running, **record.model_dump())


async def load_owner_status(
    address: str,
    registry: RegistryLedger,
    automation: AutomationLedger,
    cache: Optional[StateCache] = None,
) -> OwnerStatusResponse:
    """
    Merged view of an owner: registry record, death declaration, automation
    mirror, grace period, inferred lifecycle phase and cache state.

    Raises:
        OwnerNotFoundError: The owner never registered
        RpcError: A ledger read failed
    """
    info = await registry.get_owner_info(address)
    if not info.exists:
        raise OwnerNotFoundError(address)

    declaration, contacts, mirror, grace_period = await asyncio.gather(
        registry.get_death_declaration_status(address),
        registry.get_contact_list(address),
        automation.get_owner_data(address),
        automation.get_grace_period_info(address),
    )

    cached = await cache.get(address) if cache is not None else None
    cached_response = None
    if cached is not None:
        cached_response = CachedOwnerResponse(
            grace_interval_seconds=cached.grace_interval_seconds,
            is_deceased=cached.is_deceased,
            exists=cached.exists,
            last_update=cached.last_update,
            fresh=cache.is_fresh(cached),
        )

    return OwnerStatusResponse(
        owner=address,
        phase=infer_owner_phase(info, declaration, grace_period),
        registry=OwnerInfoResponse(**info.model_dump()),
        declaration=DeathDeclarationResponse(**declaration.model_dump()),
        automation=OwnerMirrorResponse(**mirror.model_dump()),
        grace_period=_grace_period_response(address, grace_period),
        contacts=[contact.lower() for contact in contacts],
        cached=cached_response,
    )


@router.get("/owner/{address}", response_model=OwnerStatusResponse, responses=_ERRORS)
async def get_owner(
    address: str = Depends(valid_address),
    components: RelayComponents = Depends(get_components),
) -> OwnerStatusResponse:
    """Merged view of an owner across both ledgers."""
    return await load_owner_status(address, components.registry, components.automation, components.cache)


@router.get("/grace-period/{address}", response_model=GracePeriodResponse, responses=_ERRORS)
async def get_grace_period(
    address: str = Depends(valid_address),
    components: RelayComponents = Depends(get_components),
) -> GracePeriodResponse:
    """Grace-period record held by the automation ledger."""
    record = await components.automation.get_grace_period_info(address)
    return _grace_period_response(address, record)
