"""SQLAlchemy ORM models for the dispatch state database.

Holds the tenant configuration tables (read-only to the engine), the
append-only assignment ledger used for fairness ranking, and the short-lived
agent leases. Uses SQLAlchemy 2.0 style with Mapped and mapped_column.
"""

from datetime import UTC, datetime

from sqlalchemy import (
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)


def utc_now_iso() -> str:
    """Generate current UTC timestamp in ISO8601 format."""
    return datetime.now(UTC).isoformat()


class ParameterName:
    """Well-known account parameter names."""

    HOST_URL = "chatwoot-url"
    HOST_TOKEN = "chatwoot-token"
    HOST_ACCOUNT = "chatwoot-account"
    HOST_DB_HOST = "chatwoot_db_host"
    PREFIX = "prefix-parameter"
    RECLAMATION_HOURS = "expiration-unassigned-hours"


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class Account(Base):
    """Tenant (system account).

    Attributes:
        id: System account id.
        name: Display name.
        domain: Domain shared by accounts of the same organisation.
    """

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    domain: Mapped[str | None] = mapped_column(String(255), nullable=True)

    parameters: Mapped[list["AccountParameter"]] = relationship(
        back_populates="account", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("idx_accounts_domain", "domain"),)

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, domain={self.domain!r})>"


class AccountParameter(Base):
    """Key-value configuration scoped to a tenant.

    Created and edited by tenant administrators outside this engine; the
    engine only reads it (see ParameterName for the keys it consults).
    """

    __tablename__ = "account_parameters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    value: Mapped[str | None] = mapped_column(Text, nullable=True)

    account: Mapped["Account"] = relationship(back_populates="parameters")

    __table_args__ = (
        Index("idx_account_parameters_account_name", "account_id", "name"),
        Index("idx_account_parameters_name", "name"),
    )

    def __repr__(self) -> str:
        return f"<AccountParameter(account_id={self.account_id}, name={self.name!r})>"


class AssignmentLedgerEntry(Base):
    """One row per successful assignment (primary or backlog-filled).

    Append-only. Used solely to rank agents by how long ago they last
    received a contact in a given inbox; current workload is always read
    live from the host.

    Attributes:
        id: Autoincrement primary key.
        inbox_id: Host inbox (queue) id.
        agent_id: Host user id of the assignee.
        contact_id: Host contact id.
        assigned_at: ISO8601 UTC timestamp (sorts lexicographically).
    """

    __tablename__ = "assignment_ledger"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    inbox_id: Mapped[int] = mapped_column(Integer, nullable=False)
    agent_id: Mapped[int] = mapped_column(Integer, nullable=False)
    contact_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    assigned_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    __table_args__ = (
        Index("idx_assignment_ledger_inbox_agent", "inbox_id", "agent_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<AssignmentLedgerEntry(inbox_id={self.inbox_id}, "
            f"agent_id={self.agent_id}, assigned_at={self.assigned_at!r})>"
        )


class AgentLease(Base):
    """Short-lived claim on an agent while a conversation is routed to them.

    Uniqueness on (tenant_key, agent_id) makes acquisition atomic; expired
    rows may be taken over by a conditional update.
    """

    __tablename__ = "agent_leases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_key: Mapped[str] = mapped_column(String(64), nullable=False)
    agent_id: Mapped[int] = mapped_column(Integer, nullable=False)
    holder: Mapped[str] = mapped_column(String(64), nullable=False)
    expires_at: Mapped[str] = mapped_column(String(50), nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_key", "agent_id", name="uq_agent_leases_tenant_agent"),
    )
