"""Reclamation sweep trigger, usually called by a scheduler."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session, sessionmaker

from agent_dispatch.api.deps import get_config, get_host_stores, get_session_factory
from agent_dispatch.api.schemas import DispatchResponse
from agent_dispatch.config import DispatchConfig
from agent_dispatch.services.host_store import HostStoreFactory
from agent_dispatch.services.reclamation_service import ReclamationService

router = APIRouter(prefix="/reclamation", tags=["reclamation"])


@router.post("/sweep", response_model=DispatchResponse)
async def run_sweep(
    config: DispatchConfig = Depends(get_config),
    host_stores: HostStoreFactory = Depends(get_host_stores),
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
) -> DispatchResponse:
    """Unassign conversations idle past each tenant's threshold."""
    service = ReclamationService(session_factory, config, host_stores=host_stores)
    result = await service.sweep()
    return DispatchResponse(
        message="Inactive contacts unassigned", data=result.to_dict()
    )
