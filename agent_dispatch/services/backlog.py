"""Backlog redistribution.

After an agent receives a conversation, fill the rest of their capacity
with the oldest open conversations in the same inbox that are unassigned
or parked on the default agent.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from agent_dispatch.services.assignment_executor import AssignmentExecutor
from agent_dispatch.services.host_store import HostStore

logger = logging.getLogger(__name__)

AGENT_AT_CAPACITY = "agent_at_capacity"
NO_UNASSIGNED_CONVERSATIONS = "no_unassigned_conversations"


@dataclass
class BacklogResult:
    """Counts and per-conversation details of one backlog fill."""

    status: str
    reason: str | None = None
    assigned_count: int = 0
    failed_count: int = 0
    attempted: int = 0
    details: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "status": self.status,
            "assignedCount": self.assigned_count,
            "failedCount": self.failed_count,
            "totalAttempted": self.attempted,
            "details": self.details,
        }
        if self.reason:
            data["reason"] = self.reason
        return data


async def fill_backlog(
    executor: AssignmentExecutor,
    store: HostStore,
    inbox_id: int,
    agent_id: int,
    max_assignment_limit: int,
    default_agent_id: int,
) -> BacklogResult:
    """Assign waiting inbox conversations to *agent_id* up to their limit.

    Individual failures are recorded per conversation and do not stop the
    batch. A failure before the loop (e.g. the workload query) is reported
    as ``status="error"`` rather than raised.

    Args:
        executor: Executor bound to the tenant.
        store: Tenant database.
        inbox_id: Inbox to drain.
        agent_id: Agent that was just assigned.
        max_assignment_limit: Capacity of the agent.
        default_agent_id: Agent whose parked conversations are redistributable.

    Returns:
        BacklogResult.
    """
    try:
        current = store.count_open_conversations([agent_id]).get(agent_id, 0)
        remaining = max(0, max_assignment_limit - current)
        if remaining == 0:
            logger.info(
                "Agent %s at capacity (%d/%d), no backlog fill",
                agent_id, current, max_assignment_limit,
            )
            return BacklogResult(status="skipped", reason=AGENT_AT_CAPACITY)

        # The default agent already holds what is parked on it.
        parked_on = None if agent_id == default_agent_id else default_agent_id
        waiting = store.list_backlog_conversations(inbox_id, parked_on, remaining)
    except Exception as e:
        logger.exception("Backlog lookup failed for inbox %s", inbox_id)
        return BacklogResult(status="error", reason=str(e))

    if not waiting:
        logger.info("No waiting conversations in inbox %s", inbox_id)
        return BacklogResult(status="skipped", reason=NO_UNASSIGNED_CONVERSATIONS)

    logger.info(
        "Backlog fill: %d conversation(s) for agent %s in inbox %s (remaining %d)",
        len(waiting), agent_id, inbox_id, remaining,
    )
    result = BacklogResult(status="success", attempted=len(waiting))
    for conversation in waiting:
        item: dict[str, Any] = {
            "conversationId": conversation.id,
            "displayId": conversation.display_id,
            "contactId": conversation.contact_id,
        }
        try:
            await executor.execute(
                display_id=conversation.display_id,
                inbox_id=inbox_id,
                contact_id=conversation.contact_id,
                agent_id=agent_id,
            )
        except Exception as e:
            logger.warning(
                "Backlog assignment of conversation %s failed: %s",
                conversation.display_id, e,
            )
            item.update(status="error", error=str(e))
            result.failed_count += 1
        else:
            item["status"] = "success"
            result.assigned_count += 1
        result.details.append(item)

    logger.info(
        "Backlog fill done for agent %s: %d assigned, %d failed",
        agent_id, result.assigned_count, result.failed_count,
    )
    return result
