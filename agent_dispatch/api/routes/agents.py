"""Online agent lookup."""

import httpx
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from agent_dispatch.api.deps import get_config, get_host_stores, get_transport
from agent_dispatch.api.schemas import DispatchResponse
from agent_dispatch.config import DispatchConfig
from agent_dispatch.db.connection import get_db
from agent_dispatch.services.host_store import HostStoreFactory
from agent_dispatch.services.presence_service import PresenceService

router = APIRouter(prefix="/agents", tags=["agents"])


@router.get("/logged-users", response_model=DispatchResponse)
async def logged_users(
    account_id: int | None = Query(None, alias="accountId", gt=0),
    system_account_id: int | None = Query(None, alias="systemAccountId", gt=0),
    domain: str | None = Query(None, min_length=1),
    db: Session = Depends(get_db),
    config: DispatchConfig = Depends(get_config),
    host_stores: HostStoreFactory = Depends(get_host_stores),
    transport: httpx.AsyncBaseTransport | None = Depends(get_transport),
) -> DispatchResponse:
    """Online agents for a Chatwoot account, or for every account of a domain.

    Args:
        account_id: Chatwoot account id.
        system_account_id: Tenant id; resolved from account_id when absent.
        domain: Domain whose accounts are all queried (used without accountId).

    Returns:
        Envelope with the users and per-account metadata.
    """
    service = PresenceService(db, config, host_stores=host_stores, transport=transport)
    data = await service.query(
        account_id=account_id,
        system_account_id=system_account_id,
        domain=domain,
    )
    return DispatchResponse(message="Logged users", data=data)
