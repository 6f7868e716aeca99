"""Side-effecting assignment steps against Chatwoot.

For one conversation and a target agent:

1. POST the assignment (mandatory).
2. Toggle the conversation to open (best-effort).
3. Add the agent and their team supervisor as participants (best-effort).
4. Append a ledger entry (mandatory).

Best-effort steps report a StepResult instead of raising, so callers see
exactly which side effects were absorbed.
"""

import logging
from dataclasses import dataclass
from typing import Literal

from agent_dispatch.services.chatwoot_client import ChatwootClient
from agent_dispatch.services.errors import ChatwootAPIError
from agent_dispatch.services.host_store import HostStore
from agent_dispatch.services.ledger_service import AssignmentLedger

logger = logging.getLogger(__name__)

StepKind = Literal["done", "skipped", "host_api_error", "lookup_error"]


@dataclass(frozen=True)
class StepResult:
    """Outcome of a best-effort step."""

    ok: bool
    kind: StepKind
    detail: str | None = None

    def to_dict(self) -> dict:
        data: dict = {"ok": self.ok, "kind": self.kind}
        if self.detail:
            data["detail"] = self.detail
        return data


@dataclass(frozen=True)
class ExecutionReceipt:
    """What happened while assigning one conversation."""

    display_id: int
    agent_id: int
    status: StepResult
    participants: StepResult


class AssignmentExecutor:
    """Runs the assignment steps for one tenant."""

    def __init__(
        self,
        client: ChatwootClient,
        store: HostStore,
        ledger: AssignmentLedger,
        supervisor_role_id: int,
    ) -> None:
        """Initialize with the tenant's collaborators.

        Args:
            client: Open Chatwoot API client.
            store: Tenant database, used to find the team supervisor.
            ledger: Assignment history to append to.
            supervisor_role_id: custom_role_id marking team supervisors.
        """
        self.client = client
        self.store = store
        self.ledger = ledger
        self.supervisor_role_id = supervisor_role_id

    async def execute(
        self,
        display_id: int,
        inbox_id: int,
        contact_id: int | None,
        agent_id: int,
    ) -> ExecutionReceipt:
        """Assign a conversation to an agent and record it.

        Args:
            display_id: Conversation display id.
            inbox_id: Inbox the conversation belongs to.
            contact_id: Contact of the conversation, for the ledger.
            agent_id: Target agent (selected or default).

        Returns:
            ExecutionReceipt with the best-effort step results.

        Raises:
            ChatwootAPIError: If the assignment itself fails.
        """
        logger.info("Assigning conversation %s to agent %s", display_id, agent_id)
        await self.client.assign_conversation(display_id, agent_id)

        status = await self._open_conversation(display_id)
        participants = await self._add_participants(display_id, agent_id)

        self.ledger.record(inbox_id=inbox_id, agent_id=agent_id, contact_id=contact_id)

        if not participants.ok:
            logger.warning(
                "Participants not set on conversation %s (%s): %s",
                display_id, participants.kind, participants.detail,
            )
        return ExecutionReceipt(
            display_id=display_id,
            agent_id=agent_id,
            status=status,
            participants=participants,
        )

    async def _open_conversation(self, display_id: int) -> StepResult:
        try:
            await self.client.toggle_status(display_id, "open")
        except ChatwootAPIError as e:
            logger.warning("Could not reopen conversation %s: %s", display_id, e)
            return StepResult(ok=False, kind="host_api_error", detail=str(e))
        return StepResult(ok=True, kind="done")

    async def _add_participants(self, display_id: int, agent_id: int) -> StepResult:
        try:
            supervisor_id = self.store.find_team_supervisor(
                agent_id, self.supervisor_role_id
            )
        except Exception as e:
            return StepResult(ok=False, kind="lookup_error", detail=str(e))

        if supervisor_id is None:
            logger.info(
                "No team supervisor for agent %s, skipping participants", agent_id
            )
            return StepResult(ok=True, kind="skipped", detail="no_supervisor")

        try:
            await self.client.set_participants(display_id, [agent_id, supervisor_id])
        except ChatwootAPIError as e:
            return StepResult(ok=False, kind="host_api_error", detail=str(e))
        logger.info(
            "Agent %s and supervisor %s added to conversation %s",
            agent_id, supervisor_id, display_id,
        )
        return StepResult(ok=True, kind="done")
