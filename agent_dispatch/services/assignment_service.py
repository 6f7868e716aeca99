"""Primary assignment orchestration.

Routes one inbound conversation:

    lookup -> already assigned? -> host auto-assignment? -> eligibility
      -> selection -> assign (selected or default agent) -> backlog fill

Every terminal state is an AssignmentOutcome tagged with a reason; only
failures of mandatory steps raise.

Example:
    service = AssignmentService(db, config)
    outcome = await service.assign(AssignmentRequest(
        account_id=7, contact_id=55, inbox_id=3, conversation_id=1234,
    ))
"""

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from sqlalchemy.orm import Session

from agent_dispatch.config import DispatchConfig
from agent_dispatch.db.connection import SessionLocal
from agent_dispatch.services.assignment_executor import AssignmentExecutor
from agent_dispatch.services.backlog import BacklogResult, fill_backlog
from agent_dispatch.services.capacity_selector import Selection, select_agent
from agent_dispatch.services.chatwoot_client import ChatwootClient
from agent_dispatch.services.eligibility import resolve_eligible_agents
from agent_dispatch.services.host_store import HostStore, HostStoreFactory
from agent_dispatch.services.lease_service import AgentLeaseService
from agent_dispatch.services.ledger_service import AssignmentLedger
from agent_dispatch.services.parameter_service import ParameterService

logger = logging.getLogger(__name__)


class OutcomeReason:
    """Machine-readable reasons attached to terminal outcomes."""

    CONVERSATION_NOT_FOUND = "conversation_not_found"
    ALREADY_ASSIGNED = "already_assigned"
    HOST_AUTO_ASSIGNMENT = "auto_assignment_enabled_in_chatwoot"
    NO_AVAILABLE_AGENTS = "no_available_agents"
    AGENTS_AT_CAPACITY = "agents_at_capacity"


@dataclass(frozen=True)
class AssignmentRequest:
    """Inbound trigger for a primary assignment.

    Attributes:
        account_id: Chatwoot account id.
        contact_id: Contact that opened the conversation.
        inbox_id: Inbox (queue) of the conversation.
        conversation_id: Conversation display id.
        system_account_id: Tenant id; resolved from ``chatwoot-account`` when None.
    """

    account_id: int
    contact_id: int
    inbox_id: int
    conversation_id: int
    system_account_id: int | None = None


@dataclass
class AssignmentOutcome:
    """Terminal state of a primary assignment."""

    status: str
    reason: str | None = None
    assignee_id: int | None = None
    assigned_conversation_id: int | None = None
    additional_assignments: BacklogResult | None = None
    selection_rule: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the camelCase keys callers expect, omitting unset fields."""
        data: dict[str, Any] = {"status": self.status}
        if self.reason is not None:
            data["reason"] = self.reason
        if self.assignee_id is not None:
            data["assigneeId"] = self.assignee_id
        if self.assigned_conversation_id is not None:
            data["assignedConversationId"] = self.assigned_conversation_id
        if self.additional_assignments is not None:
            data["additionalAssignments"] = self.additional_assignments.to_dict()
        if self.selection_rule is not None:
            data["selectionRule"] = self.selection_rule
        return data


class AssignmentService:
    """Orchestrates one primary assignment per call.

    Holds no state between calls; the tenant database engine and the
    Chatwoot HTTP client are opened per call and released on exit.
    """

    def __init__(
        self,
        db: Session,
        config: DispatchConfig,
        host_stores: HostStoreFactory | None = None,
        lease_service: AgentLeaseService | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            db: State store session (parameters and ledger).
            config: Engine configuration.
            host_stores: Tenant database factory. Defaults to one built from
                ``config.host_db``.
            lease_service: Agent lease service, used only when
                ``config.assignment.lease_enabled``.
            transport: Optional httpx transport for the Chatwoot client.
        """
        self.db = db
        self.config = config
        self.params = ParameterService(db)
        self.ledger = AssignmentLedger(db)
        self.host_stores = host_stores or HostStoreFactory(config.host_db)
        self.transport = transport
        self.leases: AgentLeaseService | None = None
        if config.assignment.lease_enabled:
            self.leases = lease_service or self._default_lease_service()

    def _default_lease_service(self) -> AgentLeaseService:
        return AgentLeaseService(
            SessionLocal,
            ttl_seconds=self.config.assignment.lease_ttl_seconds,
            poll_seconds=self.config.assignment.lease_poll_seconds,
        )

    async def assign(self, request: AssignmentRequest) -> AssignmentOutcome:
        """Route one conversation to an agent.

        Args:
            request: Assignment trigger.

        Returns:
            AssignmentOutcome describing the terminal state.

        Raises:
            NotFoundError: If the tenant cannot be resolved.
            ParameterNotFoundError: If tenant parameters are missing.
            HostStoreError: If the tenant database is unreachable.
            ChatwootAPIError: If the presence lookup or the assignment fails.
        """
        system_account_id = request.system_account_id
        if system_account_id is None:
            system_account_id = self.params.resolve_system_account_id(request.account_id)

        logger.info(
            "Assignment request: chatwoot account %s (system %s), conversation %s, inbox %s",
            request.account_id, system_account_id, request.conversation_id, request.inbox_id,
        )
        credentials = self.params.get_host_credentials(system_account_id)
        db_host = self.params.get_host_db_host(system_account_id)

        with self.host_stores.open(db_host) as store:
            async with ChatwootClient(
                credentials,
                host_account_id=request.account_id,
                http=self.config.http,
                transport=self.transport,
            ) as client:
                outcome = await self._route(request, system_account_id, store, client)

        logger.info(
            "Conversation %s outcome: %s (%s) assignee=%s",
            request.conversation_id, outcome.status, outcome.reason, outcome.assignee_id,
        )
        return outcome

    async def _route(
        self,
        request: AssignmentRequest,
        system_account_id: int,
        store: HostStore,
        client: ChatwootClient,
    ) -> AssignmentOutcome:
        settings = self.config.assignment

        conversation = store.get_conversation(request.conversation_id)
        if conversation is None:
            logger.info("Conversation %s not found", request.conversation_id)
            return AssignmentOutcome(
                status="error", reason=OutcomeReason.CONVERSATION_NOT_FOUND
            )
        if conversation.assignee_id is not None:
            logger.info(
                "Conversation %s already assigned to %s, skipping",
                request.conversation_id, conversation.assignee_id,
            )
            return AssignmentOutcome(
                status="skipped",
                reason=OutcomeReason.ALREADY_ASSIGNED,
                assignee_id=conversation.assignee_id,
            )

        inbox = store.get_inbox_settings(request.inbox_id)
        if settings.honor_host_auto_assignment and inbox.auto_assignment_enabled:
            logger.info(
                "Inbox %s uses Chatwoot auto-assignment, skipping", request.inbox_id
            )
            return AssignmentOutcome(
                status="skipped", reason=OutcomeReason.HOST_AUTO_ASSIGNMENT
            )
        limit = inbox.max_assignment_limit or settings.default_max_assignment_limit

        executor = AssignmentExecutor(
            client, store, self.ledger, settings.supervisor_role_id
        )

        eligible = await resolve_eligible_agents(
            store, client, request.inbox_id, settings.seller_role_id
        )
        if not eligible:
            return await self._assign_default(
                executor, store, request, limit, OutcomeReason.NO_AVAILABLE_AGENTS
            )

        selection = select_agent(eligible, request.inbox_id, limit, self.ledger, store)
        if selection.agent_id is None:
            return await self._assign_default(
                executor, store, request, limit, OutcomeReason.AGENTS_AT_CAPACITY
            )
        logger.info(
            "Selected agent %s for conversation %s (rule=%s)",
            selection.agent_id, request.conversation_id, selection.rule,
        )

        if self.leases is not None:
            assigned = await self._assign_under_lease(
                executor, store, request, system_account_id, selection, limit
            )
            if not assigned:
                return await self._assign_default(
                    executor, store, request, limit, OutcomeReason.AGENTS_AT_CAPACITY
                )
        else:
            await executor.execute(
                display_id=request.conversation_id,
                inbox_id=request.inbox_id,
                contact_id=request.contact_id,
                agent_id=selection.agent_id,
            )

        backlog = await fill_backlog(
            executor,
            store,
            request.inbox_id,
            selection.agent_id,
            limit,
            settings.default_agent_id,
        )
        return AssignmentOutcome(
            status="success",
            assignee_id=selection.agent_id,
            assigned_conversation_id=request.conversation_id,
            additional_assignments=backlog,
            selection_rule=selection.rule,
        )

    async def _assign_under_lease(
        self,
        executor: AssignmentExecutor,
        store: HostStore,
        request: AssignmentRequest,
        system_account_id: int,
        selection: Selection,
        limit: int,
    ) -> bool:
        """Re-check capacity and assign while holding the agent's lease.

        Returns:
            False when the lease was not obtained or the agent filled up
            since selection.
        """
        leases = self.leases
        agent_id = selection.agent_id
        if leases is None or agent_id is None:
            raise RuntimeError("Lease assignment needs a lease service and a selected agent")
        async with leases.hold(
            str(system_account_id),
            agent_id,
            self.config.assignment.lease_wait_seconds,
        ) as held:
            if not held:
                return False
            if selection.rule in ("least_recent", "first_under_limit"):
                current = store.count_open_conversations([agent_id]).get(agent_id, 0)
                if current >= limit:
                    logger.info(
                        "Agent %s reached limit (%d/%d) before assignment",
                        agent_id, current, limit,
                    )
                    return False
            await executor.execute(
                display_id=request.conversation_id,
                inbox_id=request.inbox_id,
                contact_id=request.contact_id,
                agent_id=agent_id,
            )
        return True

    async def _assign_default(
        self,
        executor: AssignmentExecutor,
        store: HostStore,
        request: AssignmentRequest,
        limit: int,
        reason: str,
    ) -> AssignmentOutcome:
        default_agent_id = self.config.assignment.default_agent_id
        logger.info(
            "Assigning conversation %s to default agent %s (%s)",
            request.conversation_id, default_agent_id, reason,
        )
        await executor.execute(
            display_id=request.conversation_id,
            inbox_id=request.inbox_id,
            contact_id=request.contact_id,
            agent_id=default_agent_id,
        )
        backlog = await fill_backlog(
            executor, store, request.inbox_id, default_agent_id, limit, default_agent_id
        )
        return AssignmentOutcome(
            status="assigned_to_default",
            reason=reason,
            assignee_id=default_agent_id,
            assigned_conversation_id=request.conversation_id,
            additional_assignments=backlog,
        )
