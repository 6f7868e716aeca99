"""Primary assignment trigger.

Called by the helpdesk webhook when a new conversation arrives.
"""

import httpx
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from agent_dispatch.api.deps import get_config, get_host_stores, get_transport
from agent_dispatch.api.schemas import AssignmentTrigger, DispatchResponse
from agent_dispatch.config import DispatchConfig
from agent_dispatch.db.connection import get_db
from agent_dispatch.services.assignment_service import (
    AssignmentRequest,
    AssignmentService,
)
from agent_dispatch.services.host_store import HostStoreFactory

router = APIRouter(prefix="/assignments", tags=["assignments"])


@router.post("", response_model=DispatchResponse)
async def assign_conversation(
    payload: AssignmentTrigger,
    db: Session = Depends(get_db),
    config: DispatchConfig = Depends(get_config),
    host_stores: HostStoreFactory = Depends(get_host_stores),
    transport: httpx.AsyncBaseTransport | None = Depends(get_transport),
) -> DispatchResponse:
    """Route a conversation to an agent.

    Args:
        payload: Assignment trigger.
        db: State store session (injected).
        config: Engine configuration (injected).
        host_stores: Tenant database factory (injected).
        transport: Chatwoot HTTP transport (injected).

    Returns:
        Envelope with the assignment outcome.
    """
    service = AssignmentService(db, config, host_stores=host_stores, transport=transport)
    outcome = await service.assign(
        AssignmentRequest(
            account_id=payload.account_id,
            system_account_id=payload.system_account_id,
            contact_id=payload.contact_id,
            inbox_id=payload.inbox_id,
            conversation_id=payload.conversation_id,
        )
    )
    return DispatchResponse(message="Assignment processed", data=outcome.to_dict())
