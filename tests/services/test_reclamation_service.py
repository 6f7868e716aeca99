"""Tests for the inactive-conversation reclamation sweep."""

import asyncio
import time

import pytest
from sqlalchemy import create_engine

from agent_dispatch.config import DispatchConfig, HostDatabaseConfig, ReclamationConfig
from agent_dispatch.services.host_store import HostStore, HostStoreFactory
from agent_dispatch.services.parameter_service import ParameterService
from agent_dispatch.services.reclamation_service import ReclamationService
from tests.conftest import seed_tenant


@pytest.fixture
def sweep_config() -> DispatchConfig:
    """Sequential sweep; tenants share one in-memory state connection."""
    return DispatchConfig(reclamation=ReclamationConfig(max_concurrency=1))


@pytest.fixture
def stale(seeder) -> dict[str, int]:
    """One conversation idle 73h and one idle 71h, both assigned to agent 12."""
    seeder.agent(12, name="Ana")
    seeder.contact(50, name="Bruno", phone="+5511000")
    return {
        "old": seeder.conversation(inbox_id=3, assignee_id=12, contact_id=50, idle_hours=73),
        "recent": seeder.conversation(inbox_id=3, assignee_id=12, contact_id=50, idle_hours=71),
    }


@pytest.mark.asyncio
async def test_reclaims_past_default_threshold(db, session_factory, sweep_config, host_stores, seeder, stale):
    seed_tenant(db, prefix="acme")
    service = ReclamationService(session_factory, sweep_config, host_stores=host_stores)

    result = await service.sweep()

    assert result.to_dict() == {
        "unassignedCount": 1,
        "accounts": [
            {
                "accountId": 10,
                "prefix": "acme",
                "unassignedCount": 1,
                "contacts": [
                    {
                        "conversationId": 1,
                        "contactName": "Bruno",
                        "agentName": "Ana",
                        "phoneNumber": "+5511000",
                    }
                ],
            }
        ],
    }
    old = seeder.conversation_row(stale["old"])
    assert old.assignee_id is None
    assert old.status == 1
    assert seeder.conversation_row(stale["recent"]).assignee_id == 12

    again = await service.sweep()
    assert again.unassigned_count == 0


@pytest.mark.asyncio
async def test_tenant_threshold_overrides_default(db, session_factory, sweep_config, host_stores, seeder, stale):
    seed_tenant(db, prefix="acme", hours="24")

    result = await ReclamationService(session_factory, sweep_config, host_stores).sweep()

    assert result.unassigned_count == 2


@pytest.mark.asyncio
async def test_no_prefixed_tenants(db, session_factory, sweep_config, host_stores):
    seed_tenant(db)
    result = await ReclamationService(session_factory, sweep_config, host_stores).sweep()
    assert result.to_dict() == {"unassignedCount": 0, "accounts": []}


@pytest.mark.asyncio
async def test_failing_tenant_is_isolated(db, session_factory, sweep_config, host_stores, seeder, stale):
    seed_tenant(db, account_id=10, prefix="broken", db_host=None)
    seed_tenant(db, account_id=20, prefix="healthy", chatwoot_account_id=8)

    result = await ReclamationService(session_factory, sweep_config, host_stores).sweep()

    broken, healthy = result.accounts
    assert broken.prefix == "broken"
    assert "chatwoot_db_host" in broken.error
    assert broken.unassigned_count == 0
    assert healthy.error is None
    assert healthy.unassigned_count == 1
    assert result.unassigned_count == 1


@pytest.mark.asyncio
async def test_unreachable_tenant_database(db, session_factory, sweep_config, tmp_path):
    seed_tenant(db, prefix="acme")
    missing = tmp_path / "nowhere" / "chatwoot.db"
    factory = HostStoreFactory(
        HostDatabaseConfig(), engine_builder=lambda host: create_engine(f"sqlite:///{missing}")
    )

    result = await ReclamationService(session_factory, sweep_config, factory).sweep()

    (account,) = result.accounts
    assert "chatwoot-db.internal" in account.error


@pytest.mark.asyncio
async def test_db_host_lookup_timeout_fails_tenant(db, session_factory, host_stores, monkeypatch):
    seed_tenant(db, prefix="acme")

    def slow_db_host(self, account_id):
        time.sleep(0.3)
        return "chatwoot-db.internal"

    monkeypatch.setattr(ParameterService, "get_host_db_host", slow_db_host)
    config = DispatchConfig(
        reclamation=ReclamationConfig(max_concurrency=1, parameter_timeout_seconds=0.1)
    )

    result = await ReclamationService(session_factory, config, host_stores).sweep()

    (account,) = result.accounts
    assert account.error == "Fetching chatwoot_db_host timed out after 0.1s"


@pytest.mark.asyncio
async def test_threshold_lookup_timeout_uses_default(db, session_factory, host_stores, seeder, stale, monkeypatch):
    seed_tenant(db, prefix="acme", hours="1")

    def slow_hours(self, account_id, default):
        time.sleep(0.3)
        return 1

    monkeypatch.setattr(ParameterService, "get_reclamation_hours", slow_hours)
    config = DispatchConfig(
        reclamation=ReclamationConfig(max_concurrency=1, parameter_timeout_seconds=0.1)
    )

    result = await ReclamationService(session_factory, config, host_stores).sweep()

    (account,) = result.accounts
    assert account.error is None
    assert account.unassigned_count == 1


@pytest.mark.asyncio
async def test_tenant_timeout(db, session_factory, host_stores, monkeypatch):
    seed_tenant(db, prefix="acme")
    config = DispatchConfig(
        reclamation=ReclamationConfig(max_concurrency=1, tenant_timeout_seconds=0.2)
    )
    service = ReclamationService(session_factory, config, host_stores)
    monkeypatch.setattr(service, "_reclaim", lambda *args: time.sleep(0.6))

    result = await service.sweep()

    (account,) = result.accounts
    assert account.error == "Tenant sweep timed out after 0.2s"


@pytest.mark.asyncio
async def test_tenant_timeout_stops_releasing(db, session_factory, host_stores, seeder, monkeypatch):
    seed_tenant(db, prefix="acme")
    seeder.agent(12, name="Ana")
    seeder.contact(50, name="Bruno")
    stale = [
        seeder.conversation(inbox_id=3, assignee_id=12, contact_id=50, idle_hours=100)
        for _ in range(3)
    ]
    release = HostStore.release_conversation

    def slow_release(self, conversation_id, status):
        time.sleep(0.25)
        return release(self, conversation_id, status)

    monkeypatch.setattr(HostStore, "release_conversation", slow_release)
    config = DispatchConfig(
        reclamation=ReclamationConfig(max_concurrency=1, tenant_timeout_seconds=0.3)
    )

    result = await ReclamationService(session_factory, config, host_stores).sweep()
    (account,) = result.accounts
    reported = account.to_dict()
    await asyncio.sleep(0.8)

    released = [c for c in stale if seeder.conversation_row(c).assignee_id is None]
    assert account.error == "Tenant sweep timed out after 0.3s"
    assert 0 < account.unassigned_count < 3
    assert account.to_dict() == reported
    assert len(released) == account.unassigned_count
    assert len(account.contacts) == account.unassigned_count
