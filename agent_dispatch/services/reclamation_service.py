"""Inactive-conversation reclamation sweep.

For every tenant with a ``prefix-parameter``, unassign conversations whose
agent has been inactive longer than the tenant's threshold, returning them
to the pool. Tenants are swept concurrently under a semaphore; each
parameter fetch and each tenant run under its own timeout, and a failing
tenant never aborts the others. A tenant that times out stops releasing
before its next conversation and reports what it had released by then.

Example:
    service = ReclamationService(SessionLocal, config)
    result = await service.sweep()
    print(result.to_dict()["unassignedCount"])
"""

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, TypeVar

from sqlalchemy.orm import Session, sessionmaker

from agent_dispatch.config import DispatchConfig
from agent_dispatch.services.host_store import HostStoreFactory
from agent_dispatch.services.parameter_service import ParameterService

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class TenantSweepResult:
    """Per-tenant entry of a sweep result."""

    account_id: int
    prefix: str
    unassigned_count: int = 0
    contacts: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "accountId": self.account_id,
            "prefix": self.prefix,
            "unassignedCount": self.unassigned_count,
            "contacts": self.contacts,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class SweepResult:
    """Aggregate result of one sweep, accounts in prefix-parameter order."""

    accounts: list[TenantSweepResult] = field(default_factory=list)

    @property
    def unassigned_count(self) -> int:
        return sum(account.unassigned_count for account in self.accounts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "unassignedCount": self.unassigned_count,
            "accounts": [account.to_dict() for account in self.accounts],
        }


class _TenantRun:
    """Shared between a tenant's coroutine and its worker thread.

    A timed-out tenant stops the worker before its next release and reports
    the tally taken at that moment, so nothing changes after the sweep returns.
    """

    def __init__(self, result: TenantSweepResult) -> None:
        self.result = result
        self.lock = threading.Lock()
        self.stopped = False

    def stop(self) -> TenantSweepResult:
        """Stop further releases and return a snapshot of the result."""
        with self.lock:
            self.stopped = True
            return TenantSweepResult(
                account_id=self.result.account_id,
                prefix=self.result.prefix,
                unassigned_count=self.result.unassigned_count,
                contacts=list(self.result.contacts),
                error=self.result.error,
            )


class ReclamationService:
    """Runs the reclamation sweep across all prefixed tenants."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: DispatchConfig,
        host_stores: HostStoreFactory | None = None,
    ) -> None:
        """Initialize the sweep.

        Args:
            session_factory: Factory for state-store sessions. Each tenant
                gets its own session because tenants run on worker threads.
            config: Engine configuration.
            host_stores: Tenant database factory. Defaults to one built from
                ``config.host_db``.
        """
        self._session_factory = session_factory
        self.config = config
        self.host_stores = host_stores or HostStoreFactory(config.host_db)

    async def sweep(self) -> SweepResult:
        """Reclaim inactive conversations for every prefixed tenant.

        Returns:
            SweepResult; failing tenants carry ``error`` instead of raising.
        """
        settings = self.config.reclamation
        tenants = await asyncio.to_thread(self._list_tenants)
        if not tenants:
            logger.info("No tenants with a prefix parameter, nothing to sweep")
            return SweepResult()

        logger.info(
            "Sweeping %d tenant(s) with concurrency %d",
            len(tenants), settings.max_concurrency,
        )
        semaphore = asyncio.Semaphore(settings.max_concurrency)

        async def run(account_id: int, prefix: str) -> TenantSweepResult:
            async with semaphore:
                result = TenantSweepResult(account_id=account_id, prefix=prefix)
                tenant_run = _TenantRun(result)
                try:
                    await asyncio.wait_for(
                        self._sweep_tenant(tenant_run),
                        timeout=settings.tenant_timeout_seconds,
                    )
                except TimeoutError as e:
                    result = await asyncio.to_thread(tenant_run.stop)
                    result.error = str(e) or (
                        f"Tenant sweep timed out after {settings.tenant_timeout_seconds}s"
                    )
                    logger.error(
                        "Sweep of account %s (%s) timed out after %d release(s)",
                        account_id, prefix, result.unassigned_count,
                    )
                except Exception as e:
                    result.error = str(e) or type(e).__name__
                    logger.error(
                        "Sweep of account %s (%s) failed: %s", account_id, prefix, e
                    )
                return result

        results = await asyncio.gather(
            *(run(account_id, prefix) for account_id, prefix in tenants)
        )
        sweep = SweepResult(accounts=list(results))
        logger.info(
            "Sweep complete: %d conversation(s) reclaimed across %d tenant(s)",
            sweep.unassigned_count, len(sweep.accounts),
        )
        return sweep

    def _list_tenants(self) -> list[tuple[int, str]]:
        with self._session_factory() as db:
            return ParameterService(db).list_prefixed_tenants()

    async def _fetch_parameter(self, fetch: Callable[[ParameterService], T]) -> T:
        """Run one parameter lookup on a worker thread under the fetch timeout."""

        def _run() -> T:
            with self._session_factory() as db:
                return fetch(ParameterService(db))

        return await asyncio.wait_for(
            asyncio.to_thread(_run),
            timeout=self.config.reclamation.parameter_timeout_seconds,
        )

    async def _sweep_tenant(self, tenant_run: _TenantRun) -> None:
        settings = self.config.reclamation
        result = tenant_run.result
        account_id = result.account_id

        try:
            db_host = await self._fetch_parameter(
                lambda params: params.get_host_db_host(account_id)
            )
        except TimeoutError as e:
            raise TimeoutError(
                f"Fetching chatwoot_db_host timed out after "
                f"{settings.parameter_timeout_seconds}s"
            ) from e

        try:
            hours = await self._fetch_parameter(
                lambda params: params.get_reclamation_hours(
                    account_id, settings.default_hours
                )
            )
        except TimeoutError:
            logger.warning(
                "Threshold lookup timed out for account %s, using default %d",
                account_id, settings.default_hours,
            )
            hours = settings.default_hours

        cutoff = datetime.now(UTC).replace(tzinfo=None) - timedelta(hours=hours)
        logger.info(
            "Account %s (%s): reclaiming conversations idle for more than %dh",
            account_id, result.prefix, hours,
        )
        await asyncio.to_thread(self._reclaim, db_host, cutoff, tenant_run)

    def _reclaim(
        self, db_host: str, cutoff: datetime, tenant_run: _TenantRun
    ) -> None:
        settings = self.config.reclamation
        result = tenant_run.result
        if tenant_run.stopped:
            return
        with self.host_stores.open(db_host) as store:
            inactive = store.find_inactive_conversations(cutoff, settings.batch_limit)
            for conversation in inactive:
                with tenant_run.lock:
                    if tenant_run.stopped:
                        logger.info(
                            "Account %s stopped, leaving remaining conversations",
                            result.account_id,
                        )
                        return
                    if not store.release_conversation(
                        conversation.conversation_id, settings.reclaimed_status
                    ):
                        continue
                    result.unassigned_count += 1
                    result.contacts.append(
                        {
                            "conversationId": conversation.conversation_id,
                            "contactName": conversation.contact_name,
                            "agentName": conversation.agent_name,
                            "phoneNumber": conversation.phone_number,
                        }
                    )
                logger.info(
                    "Unassigned conversation %s (contact %s) from %s",
                    conversation.conversation_id,
                    conversation.contact_name,
                    conversation.agent_name,
                )
