"""Store-backed per-agent lease.

Serialises "re-check workload, assign" for one agent across concurrent
invocations. A lease is a row in ``agent_leases`` unique on
``(tenant_key, agent_id)``; expired rows are taken over with a
conditional update.

Example:
    leases = AgentLeaseService(SessionLocal, ttl_seconds=30)
    async with leases.hold("acct-7", agent_id=12, wait_seconds=5) as held:
        if held:
            ...
"""

import asyncio
import logging
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from agent_dispatch.db.models import AgentLease

logger = logging.getLogger(__name__)


def _iso(moment: datetime) -> str:
    return moment.isoformat()


class AgentLeaseService:
    """Acquire and release agent leases in the state store.

    Each operation uses its own short session so a lease commit never
    mixes with the caller's unit of work.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        ttl_seconds: float = 30.0,
        poll_seconds: float = 0.1,
    ) -> None:
        """Initialize the lease service.

        Args:
            session_factory: Factory for state-store sessions.
            ttl_seconds: Lifetime of a lease before others may take it over.
            poll_seconds: Delay between acquisition attempts.
        """
        self._session_factory = session_factory
        self.ttl_seconds = ttl_seconds
        self.poll_seconds = poll_seconds

    def try_acquire(self, tenant_key: str, agent_id: int, holder: str) -> bool:
        """Attempt to take the lease once.

        Returns:
            True if *holder* now owns the lease.
        """
        now = datetime.now(UTC)
        expires_at = _iso(now + timedelta(seconds=self.ttl_seconds))
        with self._session_factory() as db:
            db.add(
                AgentLease(
                    tenant_key=tenant_key,
                    agent_id=agent_id,
                    holder=holder,
                    expires_at=expires_at,
                )
            )
            try:
                db.commit()
                return True
            except IntegrityError:
                db.rollback()

            result = db.execute(
                update(AgentLease)
                .where(
                    AgentLease.tenant_key == tenant_key,
                    AgentLease.agent_id == agent_id,
                    AgentLease.expires_at < _iso(now),
                )
                .values(holder=holder, expires_at=expires_at)
            )
            db.commit()
            if result.rowcount:
                logger.info(
                    "Took over expired lease on agent %s (%s)", agent_id, tenant_key
                )
                return True
            return False

    def release(self, tenant_key: str, agent_id: int, holder: str) -> None:
        """Drop the lease if *holder* still owns it."""
        with self._session_factory() as db:
            db.execute(
                delete(AgentLease).where(
                    AgentLease.tenant_key == tenant_key,
                    AgentLease.agent_id == agent_id,
                    AgentLease.holder == holder,
                )
            )
            db.commit()

    async def acquire(
        self,
        tenant_key: str,
        agent_id: int,
        holder: str,
        wait_seconds: float,
    ) -> bool:
        """Poll for the lease until acquired or *wait_seconds* elapse.

        Each claim runs on a worker thread so the store round-trip never
        blocks the event loop.
        """
        deadline = time.monotonic() + wait_seconds
        while True:
            if await asyncio.to_thread(self.try_acquire, tenant_key, agent_id, holder):
                return True
            if time.monotonic() >= deadline:
                logger.warning(
                    "Lease on agent %s (%s) still held after %.1fs",
                    agent_id, tenant_key, wait_seconds,
                )
                return False
            await asyncio.sleep(self.poll_seconds)

    @asynccontextmanager
    async def hold(
        self,
        tenant_key: str,
        agent_id: int,
        wait_seconds: float,
    ) -> AsyncIterator[bool]:
        """Hold the lease for the duration of the block.

        Yields:
            Whether the lease was acquired. It is released on exit only if
            it was.
        """
        holder = uuid.uuid4().hex
        acquired = await self.acquire(tenant_key, agent_id, holder, wait_seconds)
        try:
            yield acquired
        finally:
            if acquired:
                await asyncio.to_thread(self.release, tenant_key, agent_id, holder)
