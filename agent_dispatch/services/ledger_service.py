"""Assignment history ledger.

Append-only record of which agent received a contact in which inbox, and
when. Used only to rank agents for fairness; current workload is always
read live from Chatwoot.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from agent_dispatch.db.models import AssignmentLedgerEntry, utc_now_iso

logger = logging.getLogger(__name__)


class AssignmentLedger:
    """Reads and appends ledger entries through a caller-owned session."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def record(
        self,
        inbox_id: int,
        agent_id: int,
        contact_id: int | None,
        assigned_at: str | None = None,
    ) -> AssignmentLedgerEntry:
        """Append one entry and commit it.

        Args:
            inbox_id: Inbox (queue) the assignment happened in.
            agent_id: Agent that received the conversation.
            contact_id: Contact of the conversation, when known.
            assigned_at: ISO-8601 UTC timestamp. Defaults to now.

        Returns:
            The persisted entry.
        """
        entry = AssignmentLedgerEntry(
            inbox_id=inbox_id,
            agent_id=agent_id,
            contact_id=contact_id,
            assigned_at=assigned_at or utc_now_iso(),
        )
        self.db.add(entry)
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        logger.debug(
            "Ledger: inbox=%s agent=%s contact=%s", inbox_id, agent_id, contact_id
        )
        return entry

    def agents_with_history(self, inbox_id: int, agent_ids: list[int]) -> set[int]:
        """Subset of *agent_ids* with at least one entry for the inbox."""
        if not agent_ids:
            return set()
        return set(
            self.db.execute(
                select(AssignmentLedgerEntry.agent_id)
                .where(
                    AssignmentLedgerEntry.inbox_id == inbox_id,
                    AssignmentLedgerEntry.agent_id.in_(agent_ids),
                )
                .distinct()
            ).scalars()
        )

    def least_recently_assigned(
        self, inbox_id: int, agent_ids: list[int]
    ) -> int | None:
        """Agent whose latest entry in the inbox is the oldest.

        Ties on the latest timestamp go to the lower agent id. Agents
        without entries are not considered.
        """
        if not agent_ids:
            return None
        last_assigned = func.max(AssignmentLedgerEntry.assigned_at)
        return self.db.execute(
            select(AssignmentLedgerEntry.agent_id)
            .where(
                AssignmentLedgerEntry.inbox_id == inbox_id,
                AssignmentLedgerEntry.agent_id.in_(agent_ids),
            )
            .group_by(AssignmentLedgerEntry.agent_id)
            .order_by(last_assigned.asc(), AssignmentLedgerEntry.agent_id.asc())
            .limit(1)
        ).scalar_one_or_none()

    def count_for(self, inbox_id: int, agent_id: int) -> int:
        """Number of entries for one agent in one inbox."""
        return self.db.execute(
            select(func.count())
            .select_from(AssignmentLedgerEntry)
            .where(
                AssignmentLedgerEntry.inbox_id == inbox_id,
                AssignmentLedgerEntry.agent_id == agent_id,
            )
        ).scalar_one()
