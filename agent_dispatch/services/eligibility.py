"""Eligible-agent resolution for an inbox.

An agent is eligible when it is a member of the inbox, carries the seller
role, and Chatwoot reports it online right now.
"""

import logging

from agent_dispatch.services.chatwoot_client import ChatwootClient
from agent_dispatch.services.host_store import HostStore

logger = logging.getLogger(__name__)


async def resolve_eligible_agents(
    store: HostStore,
    client: ChatwootClient,
    inbox_id: int,
    role_id: int,
) -> list[int]:
    """Role-filtered inbox members that are currently online.

    Membership order is preserved. Presence failures propagate as
    ChatwootAPIError; an empty list is a valid result.

    Args:
        store: Tenant's Chatwoot database.
        client: Open Chatwoot API client for the tenant.
        inbox_id: Inbox to route into.
        role_id: custom_role_id that marks assignable agents.

    Returns:
        Eligible agent ids in membership order.
    """
    members = store.list_inbox_agent_ids(inbox_id, role_id)
    if not members:
        logger.info("Inbox %s has no members with role %s", inbox_id, role_id)
        return []

    online = set(await client.get_online_agent_ids())
    eligible = [agent_id for agent_id in members if agent_id in online]
    logger.info(
        "Inbox %s: %d members, %d eligible online: %s",
        inbox_id, len(members), len(eligible), eligible,
    )
    return eligible
