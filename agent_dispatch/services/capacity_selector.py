"""Capacity-aware agent selection.

Rules, first match wins:

1. An eligible agent with no ledger history in the inbox is picked at once.
2. Otherwise live open-conversation counts drop agents at or over the limit.
3. Among the rest, the agent whose latest ledger entry is oldest wins.
4. If the ledger yields nothing, the first under-limit agent wins.
5. If nobody is under the limit, there is no selection.

Any unexpected error degrades to the first eligible agent so that a
ranking bug never fails an assignment.
"""

import logging
from dataclasses import dataclass
from typing import Literal

from agent_dispatch.services.host_store import HostStore
from agent_dispatch.services.ledger_service import AssignmentLedger

logger = logging.getLogger(__name__)

SelectionRule = Literal[
    "never_assigned", "least_recent", "first_under_limit", "degraded", "none"
]


@dataclass(frozen=True)
class Selection:
    """Outcome of a selection: the agent (None when all are at capacity) and why."""

    agent_id: int | None
    rule: SelectionRule


def select_agent(
    eligible_agent_ids: list[int],
    inbox_id: int,
    max_assignment_limit: int,
    ledger: AssignmentLedger,
    store: HostStore,
) -> Selection:
    """Pick the agent that should receive the next conversation.

    Args:
        eligible_agent_ids: Online, role-eligible agents in membership order.
        inbox_id: Inbox being routed.
        max_assignment_limit: Open conversations an agent may hold.
        ledger: Assignment history for fairness ranking.
        store: Tenant database for live workload counts.

    Returns:
        Selection. ``agent_id`` is None only when every agent is at capacity
        (or there are no eligible agents).
    """
    if not eligible_agent_ids:
        return Selection(agent_id=None, rule="none")

    try:
        with_history = ledger.agents_with_history(inbox_id, eligible_agent_ids)
        for agent_id in eligible_agent_ids:
            if agent_id not in with_history:
                logger.info(
                    "Agent %s never assigned in inbox %s, selecting", agent_id, inbox_id
                )
                return Selection(agent_id=agent_id, rule="never_assigned")

        counts = store.count_open_conversations(eligible_agent_ids)
        under_limit = [
            agent_id
            for agent_id in eligible_agent_ids
            if counts.get(agent_id, 0) < max_assignment_limit
        ]
        logger.info(
            "Inbox %s open counts %s, limit %d, under limit: %s",
            inbox_id, counts, max_assignment_limit, under_limit,
        )
        if not under_limit:
            return Selection(agent_id=None, rule="none")

        oldest = ledger.least_recently_assigned(inbox_id, under_limit)
        if oldest is not None:
            return Selection(agent_id=oldest, rule="least_recent")

        return Selection(agent_id=under_limit[0], rule="first_under_limit")
    except Exception as e:
        logger.warning(
            "Agent ranking failed for inbox %s, using first eligible agent %s: %s",
            inbox_id, eligible_agent_ids[0], e,
        )
        return Selection(agent_id=eligible_agent_ids[0], rule="degraded")
