"""Database module for tenant parameters, the assignment ledger and leases."""

from agent_dispatch.db.connection import (
    SessionLocal,
    engine,
    get_db,
    get_db_context,
    init_db,
)
from agent_dispatch.db.models import (
    Account,
    AccountParameter,
    AgentLease,
    AssignmentLedgerEntry,
    Base,
    ParameterName,
)

__all__ = [
    # Models
    "Base",
    "Account",
    "AccountParameter",
    "AssignmentLedgerEntry",
    "AgentLease",
    "ParameterName",
    # Connection
    "engine",
    "SessionLocal",
    "get_db",
    "get_db_context",
    "init_db",
]
