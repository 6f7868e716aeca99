"""Access to a tenant's Chatwoot database mirror.

The engine reads conversations, inbox membership and live workload
directly from Chatwoot's PostgreSQL database, and the reclamation sweep
writes assignee/status back to it. Tables are declared with SQLAlchemy
Core so the same queries run against PostgreSQL and SQLite.

Example:
    factory = HostStoreFactory(config.host_db)
    with factory.open("db.tenant.example.com") as store:
        conversation = store.get_conversation(display_id=1234)
"""

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Engine,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    func,
    select,
    text,
    update,
)
from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError

from agent_dispatch.config import HostDatabaseConfig
from agent_dispatch.services.errors import HostStoreError

logger = logging.getLogger(__name__)

OPEN_STATUS = 0

HOST_METADATA = MetaData()

conversations = Table(
    "conversations",
    HOST_METADATA,
    Column("id", Integer, primary_key=True),
    Column("display_id", Integer, nullable=False),
    Column("account_id", Integer),
    Column("inbox_id", Integer, nullable=False),
    Column("contact_id", Integer),
    Column("assignee_id", Integer, nullable=True),
    Column("status", Integer, nullable=False, default=OPEN_STATUS),
    Column("created_at", DateTime, nullable=False),
    Column("last_activity_at", DateTime),
)

users = Table(
    "users",
    HOST_METADATA,
    Column("id", Integer, primary_key=True),
    Column("name", String(255)),
    Column("email", String(255)),
)

contacts = Table(
    "contacts",
    HOST_METADATA,
    Column("id", Integer, primary_key=True),
    Column("name", String(255)),
    Column("phone_number", String(64)),
)

inboxes = Table(
    "inboxes",
    HOST_METADATA,
    Column("id", Integer, primary_key=True),
    Column("enable_auto_assignment", Boolean, default=True),
    Column("auto_assignment_config", JSON),
)

inbox_members = Table(
    "inbox_members",
    HOST_METADATA,
    Column("id", Integer, primary_key=True),
    Column("inbox_id", Integer, nullable=False),
    Column("user_id", Integer, nullable=False),
)

account_users = Table(
    "account_users",
    HOST_METADATA,
    Column("id", Integer, primary_key=True),
    Column("user_id", Integer, nullable=False),
    Column("custom_role_id", Integer),
)

team_members = Table(
    "team_members",
    HOST_METADATA,
    Column("id", Integer, primary_key=True),
    Column("team_id", Integer, nullable=False),
    Column("user_id", Integer, nullable=False),
)


@dataclass(frozen=True)
class HostConversation:
    """Conversation row as seen by the engine."""

    id: int
    display_id: int
    inbox_id: int
    contact_id: int | None
    assignee_id: int | None
    status: int
    created_at: datetime | None = None


@dataclass(frozen=True)
class InboxSettings:
    """Native auto-assignment flag and capacity limit of an inbox."""

    auto_assignment_enabled: bool
    max_assignment_limit: int | None


@dataclass(frozen=True)
class InactiveConversation:
    """Conversation eligible for reclamation, with display names."""

    conversation_id: int
    display_id: int
    assignee_id: int
    agent_name: str | None
    contact_name: str | None
    phone_number: str | None


def parse_assignment_limit(config: Any) -> int | None:
    """Extract ``max_assignment_limit`` from an inbox auto-assignment config.

    Chatwoot stores it as a string inside a JSON object; both ints and
    numeric strings are accepted. Anything else yields None.
    """
    if not isinstance(config, dict):
        return None
    raw = config.get("max_assignment_limit")
    if raw is None or isinstance(raw, bool):
        return None
    try:
        limit = int(str(raw).strip())
    except ValueError:
        return None
    return limit if limit > 0 else None


def _to_conversation(row: Any) -> HostConversation:
    return HostConversation(
        id=row.id,
        display_id=row.display_id,
        inbox_id=row.inbox_id,
        contact_id=row.contact_id,
        assignee_id=row.assignee_id,
        status=row.status,
        created_at=row.created_at,
    )


class HostStore:
    """Queries against one tenant's Chatwoot database.

    Every method opens a short-lived connection from the engine; writes
    run in their own transaction.
    """

    def __init__(self, engine: Engine) -> None:
        """Initialize with a SQLAlchemy engine bound to the tenant database.

        Args:
            engine: Engine for the Chatwoot database. Not owned by the store.
        """
        self.engine = engine

    def get_conversation(self, display_id: int) -> HostConversation | None:
        """Fetch a conversation by its display id."""
        with self.engine.connect() as conn:
            row = conn.execute(
                select(conversations)
                .where(conversations.c.display_id == display_id)
                .limit(1)
            ).first()
        return _to_conversation(row) if row is not None else None

    def get_inbox_settings(self, inbox_id: int) -> InboxSettings:
        """Read the inbox's native auto-assignment flag and capacity limit.

        An unknown inbox reads as auto-assignment disabled with no limit.
        """
        with self.engine.connect() as conn:
            row = conn.execute(
                select(
                    inboxes.c.enable_auto_assignment,
                    inboxes.c.auto_assignment_config,
                ).where(inboxes.c.id == inbox_id)
            ).first()
        if row is None:
            return InboxSettings(auto_assignment_enabled=False, max_assignment_limit=None)
        return InboxSettings(
            auto_assignment_enabled=bool(row.enable_auto_assignment),
            max_assignment_limit=parse_assignment_limit(row.auto_assignment_config),
        )

    def list_inbox_agent_ids(self, inbox_id: int, role_id: int) -> list[int]:
        """Members of an inbox carrying the given custom role, by user id."""
        stmt = (
            select(inbox_members.c.user_id)
            .join(account_users, account_users.c.user_id == inbox_members.c.user_id)
            .where(
                inbox_members.c.inbox_id == inbox_id,
                account_users.c.custom_role_id == role_id,
            )
            .distinct()
            .order_by(inbox_members.c.user_id)
        )
        with self.engine.connect() as conn:
            return list(conn.execute(stmt).scalars())

    def count_open_conversations(self, agent_ids: list[int]) -> dict[int, int]:
        """Live open-conversation count per agent; agents with none map to 0."""
        if not agent_ids:
            return {}
        stmt = (
            select(conversations.c.assignee_id, func.count().label("total"))
            .where(
                conversations.c.assignee_id.in_(agent_ids),
                conversations.c.status == OPEN_STATUS,
            )
            .group_by(conversations.c.assignee_id)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).all()
        counts = {agent_id: 0 for agent_id in agent_ids}
        for assignee_id, total in rows:
            counts[assignee_id] = int(total)
        return counts

    def list_backlog_conversations(
        self,
        inbox_id: int,
        default_agent_id: int | None,
        limit: int,
    ) -> list[HostConversation]:
        """Open inbox conversations that are unassigned or parked on the default agent.

        Oldest first by ``created_at``, then by id. With ``default_agent_id``
        None only unassigned conversations qualify.
        """
        if limit <= 0:
            return []
        waiting = conversations.c.assignee_id.is_(None)
        if default_agent_id is not None:
            waiting = waiting | (conversations.c.assignee_id == default_agent_id)
        stmt = (
            select(conversations)
            .where(
                conversations.c.inbox_id == inbox_id,
                conversations.c.status == OPEN_STATUS,
                waiting,
            )
            .order_by(conversations.c.created_at.asc(), conversations.c.id.asc())
            .limit(limit)
        )
        with self.engine.connect() as conn:
            return [_to_conversation(row) for row in conn.execute(stmt)]

    def find_team_supervisor(self, agent_id: int, role_id: int) -> int | None:
        """Supervisor of the agent's team, or None when there is no team or supervisor.

        The agent's team is its first team membership row.
        """
        with self.engine.connect() as conn:
            team_id = conn.execute(
                select(team_members.c.team_id)
                .where(team_members.c.user_id == agent_id)
                .order_by(team_members.c.id)
                .limit(1)
            ).scalar_one_or_none()
            if team_id is None:
                return None
            return conn.execute(
                select(team_members.c.user_id)
                .join(account_users, account_users.c.user_id == team_members.c.user_id)
                .where(
                    team_members.c.team_id == team_id,
                    account_users.c.custom_role_id == role_id,
                )
                .order_by(team_members.c.id)
                .limit(1)
            ).scalar_one_or_none()

    def get_users(self, user_ids: list[int]) -> dict[int, dict[str, Any]]:
        """Name and email for each known user id."""
        if not user_ids:
            return {}
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(users.c.id, users.c.name, users.c.email).where(
                    users.c.id.in_(user_ids)
                )
            ).all()
        return {row.id: {"name": row.name, "email": row.email} for row in rows}

    def find_inactive_conversations(
        self,
        cutoff: datetime,
        limit: int,
    ) -> list[InactiveConversation]:
        """Assigned conversations with no activity since *cutoff*.

        Args:
            cutoff: Naive UTC timestamp; rows with ``last_activity_at`` before it qualify.
            limit: Maximum rows returned.
        """
        stmt = (
            select(
                conversations.c.id,
                conversations.c.display_id,
                conversations.c.assignee_id,
                users.c.name.label("agent_name"),
                contacts.c.name.label("contact_name"),
                contacts.c.phone_number,
            )
            .select_from(conversations)
            .join(users, users.c.id == conversations.c.assignee_id)
            .join(contacts, contacts.c.id == conversations.c.contact_id)
            .where(
                conversations.c.assignee_id.is_not(None),
                conversations.c.last_activity_at < cutoff,
            )
            .order_by(conversations.c.last_activity_at.asc(), conversations.c.id.asc())
            .limit(limit)
        )
        with self.engine.connect() as conn:
            return [
                InactiveConversation(
                    conversation_id=row.id,
                    display_id=row.display_id,
                    assignee_id=row.assignee_id,
                    agent_name=row.agent_name,
                    contact_name=row.contact_name,
                    phone_number=row.phone_number,
                )
                for row in conn.execute(stmt)
            ]

    def release_conversation(self, conversation_id: int, status: int) -> bool:
        """Clear the assignee and set *status*, only if still assigned.

        Returns:
            True if a row changed.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                update(conversations)
                .where(
                    conversations.c.id == conversation_id,
                    conversations.c.assignee_id.is_not(None),
                )
                .values(assignee_id=None, status=status)
            )
        return result.rowcount > 0


EngineBuilder = Callable[[str], Engine]


class HostStoreFactory:
    """Builds a HostStore per tenant and disposes its engine afterwards."""

    def __init__(
        self,
        config: HostDatabaseConfig,
        engine_builder: EngineBuilder | None = None,
    ) -> None:
        """Initialize with mirror database settings.

        Args:
            config: Driver, port, database name and credentials.
            engine_builder: Optional override mapping a host name to an
                engine (tests inject SQLite engines here).
        """
        self.config = config
        self._engine_builder = engine_builder or self._build_engine

    def _build_engine(self, host: str) -> Engine:
        url = URL.create(
            self.config.driver,
            username=self.config.user,
            password=self.config.password or None,
            host=host,
            port=self.config.port,
            database=self.config.name,
        )
        return create_engine(
            url,
            pool_size=self.config.pool_size,
            pool_pre_ping=True,
            connect_args={"connect_timeout": self.config.connect_timeout_seconds},
        )

    @contextmanager
    def open(self, host: str) -> Iterator[HostStore]:
        """Yield a HostStore for *host*, disposing the engine on exit.

        Raises:
            HostStoreError: If the database cannot be reached.
        """
        engine = self._engine_builder(host)
        try:
            try:
                with engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
            except SQLAlchemyError as e:
                logger.error("Cannot reach Chatwoot database at %s: %s", host, e)
                raise HostStoreError(host=host, message=str(e)) from e
            yield HostStore(engine)
        finally:
            engine.dispose()
