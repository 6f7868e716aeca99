"""Service layer for the dispatch engine."""

from agent_dispatch.services.assignment_service import (
    AssignmentOutcome,
    AssignmentRequest,
    AssignmentService,
    OutcomeReason,
)
from agent_dispatch.services.chatwoot_client import ChatwootClient
from agent_dispatch.services.errors import ChatwootAPIError, HostStoreError
from agent_dispatch.services.host_store import HostStore, HostStoreFactory
from agent_dispatch.services.presence_service import PresenceService
from agent_dispatch.services.reclamation_service import (
    ReclamationService,
    SweepResult,
)

__all__ = [
    "AssignmentOutcome",
    "AssignmentRequest",
    "AssignmentService",
    "ChatwootAPIError",
    "ChatwootClient",
    "HostStore",
    "HostStoreError",
    "HostStoreFactory",
    "OutcomeReason",
    "PresenceService",
    "ReclamationService",
    "SweepResult",
]
