"""Tests for backlog redistribution."""

from unittest.mock import MagicMock

import pytest

from agent_dispatch.services.assignment_executor import AssignmentExecutor
from agent_dispatch.services.backlog import (
    AGENT_AT_CAPACITY,
    NO_UNASSIGNED_CONVERSATIONS,
    fill_backlog,
)
from agent_dispatch.services.chatwoot_client import ChatwootClient
from agent_dispatch.services.ledger_service import AssignmentLedger
from agent_dispatch.services.parameter_service import HostCredentials
from tests.conftest import CHATWOOT_URL

CREDS = HostCredentials(base_url=CHATWOOT_URL, api_token="tok")


@pytest.mark.asyncio
async def test_fills_remaining_capacity_oldest_first(db, host_store, seeder, chatwoot, config):
    seeder.agent(12)
    seeder.conversation(inbox_id=3, assignee_id=12)
    seeder.conversation(inbox_id=3, assignee_id=12)
    waiting = [seeder.conversation(inbox_id=3, contact_id=60 + n) for n in range(5)]

    async with ChatwootClient(CREDS, 7, config.http, chatwoot.transport()) as cw:
        executor = AssignmentExecutor(cw, host_store, AssignmentLedger(db), 4)
        result = await fill_backlog(executor, host_store, 3, 12, 5, default_agent_id=1)

    assert result.status == "success"
    assert result.assigned_count == 3
    assert result.attempted == 3
    assert [item["displayId"] for item in result.details] == waiting[:3]
    for display_id in waiting[:3]:
        assert seeder.conversation_row(display_id).assignee_id == 12
    for display_id in waiting[3:]:
        assert seeder.conversation_row(display_id).assignee_id is None


@pytest.mark.asyncio
async def test_redistributes_from_default_agent(db, host_store, seeder, chatwoot, config):
    seeder.agent(12)
    parked = seeder.conversation(inbox_id=3, assignee_id=1)

    async with ChatwootClient(CREDS, 7, config.http, chatwoot.transport()) as cw:
        executor = AssignmentExecutor(cw, host_store, AssignmentLedger(db), 4)
        result = await fill_backlog(executor, host_store, 3, 12, 7, default_agent_id=1)

    assert result.assigned_count == 1
    assert seeder.conversation_row(parked).assignee_id == 12


@pytest.mark.asyncio
async def test_agent_at_capacity(db, host_store, seeder, chatwoot, config):
    seeder.conversation(inbox_id=3, assignee_id=12)
    seeder.conversation(inbox_id=3)

    async with ChatwootClient(CREDS, 7, config.http, chatwoot.transport()) as cw:
        executor = AssignmentExecutor(cw, host_store, AssignmentLedger(db), 4)
        result = await fill_backlog(executor, host_store, 3, 12, 1, default_agent_id=1)

    assert result.status == "skipped"
    assert result.reason == AGENT_AT_CAPACITY
    assert chatwoot.requests == []


@pytest.mark.asyncio
async def test_nothing_waiting(db, host_store, chatwoot, config):
    async with ChatwootClient(CREDS, 7, config.http, chatwoot.transport()) as cw:
        executor = AssignmentExecutor(cw, host_store, AssignmentLedger(db), 4)
        result = await fill_backlog(executor, host_store, 3, 12, 7, default_agent_id=1)

    assert result.status == "skipped"
    assert result.reason == NO_UNASSIGNED_CONVERSATIONS
    assert result.to_dict()["reason"] == NO_UNASSIGNED_CONVERSATIONS


@pytest.mark.asyncio
async def test_failures_are_per_item(db, host_store, seeder, chatwoot, config):
    seeder.agent(12)
    first = seeder.conversation(inbox_id=3)
    second = seeder.conversation(inbox_id=3)
    chatwoot.fail("assignments", 404)

    async with ChatwootClient(CREDS, 7, config.http, chatwoot.transport()) as cw:
        executor = AssignmentExecutor(cw, host_store, AssignmentLedger(db), 4)
        result = await fill_backlog(executor, host_store, 3, 12, 7, default_agent_id=1)

    assert result.assigned_count == 1
    assert result.failed_count == 1
    assert result.details[0]["displayId"] == first
    assert result.details[0]["status"] == "error"
    assert result.details[1]["status"] == "success"
    assert seeder.conversation_row(second).assignee_id == 12
    assert result.to_dict()["totalAttempted"] == 2


@pytest.mark.asyncio
async def test_lookup_failure_reports_error(db):
    store = MagicMock()
    store.count_open_conversations.side_effect = RuntimeError("db gone")
    executor = MagicMock(spec=AssignmentExecutor)

    result = await fill_backlog(executor, store, 3, 12, 7, default_agent_id=1)

    assert result.status == "error"
    assert result.reason == "db gone"
    executor.execute.assert_not_called()
