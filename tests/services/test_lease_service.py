"""Tests for per-agent leases."""

import threading

import pytest

from agent_dispatch.services.lease_service import AgentLeaseService


@pytest.fixture
def leases(session_factory) -> AgentLeaseService:
    return AgentLeaseService(session_factory, ttl_seconds=30, poll_seconds=0.01)


def test_second_holder_is_refused(leases):
    assert leases.try_acquire("10", 12, "a") is True
    assert leases.try_acquire("10", 12, "b") is False


def test_leases_are_per_agent_and_tenant(leases):
    assert leases.try_acquire("10", 12, "a") is True
    assert leases.try_acquire("10", 13, "b") is True
    assert leases.try_acquire("11", 12, "c") is True


def test_release_only_by_holder(leases):
    leases.try_acquire("10", 12, "a")
    leases.release("10", 12, "b")
    assert leases.try_acquire("10", 12, "b") is False
    leases.release("10", 12, "a")
    assert leases.try_acquire("10", 12, "b") is True


def test_expired_lease_is_taken_over(session_factory):
    expired = AgentLeaseService(session_factory, ttl_seconds=-1)
    assert expired.try_acquire("10", 12, "a") is True
    assert expired.try_acquire("10", 12, "b") is True


@pytest.mark.asyncio
async def test_acquire_times_out(leases):
    leases.try_acquire("10", 12, "a")
    assert await leases.acquire("10", 12, "b", wait_seconds=0.05) is False


@pytest.mark.asyncio
async def test_hold_releases_on_exit(leases):
    async with leases.hold("10", 12, wait_seconds=0) as held:
        assert held is True
        assert leases.try_acquire("10", 12, "other") is False
    assert leases.try_acquire("10", 12, "other") is True


@pytest.mark.asyncio
async def test_hold_not_acquired_leaves_existing_lease(leases):
    leases.try_acquire("10", 12, "a")
    async with leases.hold("10", 12, wait_seconds=0) as held:
        assert held is False
    assert leases.try_acquire("10", 12, "b") is False


@pytest.mark.asyncio
async def test_acquire_claims_off_the_event_loop(leases, monkeypatch):
    loop_thread = threading.get_ident()
    claim_threads = []
    try_acquire = AgentLeaseService.try_acquire

    def recording_try_acquire(self, tenant_key, agent_id, holder):
        claim_threads.append(threading.get_ident())
        return try_acquire(self, tenant_key, agent_id, holder)

    monkeypatch.setattr(AgentLeaseService, "try_acquire", recording_try_acquire)

    assert await leases.acquire("10", 12, "a", wait_seconds=0) is True
    assert claim_threads
    assert loop_thread not in claim_threads
