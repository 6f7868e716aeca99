"""Tests for the Chatwoot database mirror queries."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import create_engine

from agent_dispatch.config import HostDatabaseConfig
from agent_dispatch.services.errors import HostStoreError
from agent_dispatch.services.host_store import (
    HostStoreFactory,
    parse_assignment_limit,
)


class TestParseAssignmentLimit:
    @pytest.mark.parametrize(
        "config, expected",
        [
            ({"max_assignment_limit": "5"}, 5),
            ({"max_assignment_limit": 3}, 3),
            ({"max_assignment_limit": " 4 "}, 4),
            ({"max_assignment_limit": "lots"}, None),
            ({"max_assignment_limit": "0"}, None),
            ({"max_assignment_limit": True}, None),
            ({}, None),
            (None, None),
            ("5", None),
        ],
    )
    def test_values(self, config, expected):
        assert parse_assignment_limit(config) == expected


class TestConversationQueries:
    def test_get_conversation(self, host_store, seeder):
        display_id = seeder.conversation(inbox_id=3, contact_id=50)
        conversation = host_store.get_conversation(display_id)
        assert conversation.inbox_id == 3
        assert conversation.contact_id == 50
        assert conversation.assignee_id is None

    def test_missing_conversation(self, host_store):
        assert host_store.get_conversation(404) is None

    def test_inbox_settings(self, host_store, seeder):
        seeder.inbox(3, auto_assignment=True, max_assignment_limit="2")
        settings = host_store.get_inbox_settings(3)
        assert settings.auto_assignment_enabled is True
        assert settings.max_assignment_limit == 2

    def test_unknown_inbox_settings(self, host_store):
        settings = host_store.get_inbox_settings(99)
        assert settings.auto_assignment_enabled is False
        assert settings.max_assignment_limit is None

    def test_inbox_agents_filtered_by_role(self, host_store, seeder):
        seeder.agent(12, inbox_id=3)
        seeder.agent(11, inbox_id=3)
        seeder.agent(13, inbox_id=3, role_id=4)
        seeder.agent(14, inbox_id=9)
        assert host_store.list_inbox_agent_ids(3, role_id=3) == [11, 12]

    def test_open_counts_include_zero(self, host_store, seeder):
        seeder.conversation(inbox_id=3, assignee_id=11)
        seeder.conversation(inbox_id=3, assignee_id=11)
        seeder.conversation(inbox_id=3, assignee_id=11, status=1)
        assert host_store.count_open_conversations([11, 12]) == {11: 2, 12: 0}

    def test_backlog_oldest_first_includes_default_agent(self, host_store, seeder):
        now = datetime.now(UTC).replace(tzinfo=None)
        newer = seeder.conversation(inbox_id=3, created_at=now - timedelta(minutes=5))
        parked = seeder.conversation(
            inbox_id=3, assignee_id=1, created_at=now - timedelta(minutes=30)
        )
        seeder.conversation(inbox_id=3, assignee_id=12)
        seeder.conversation(inbox_id=3, status=1)
        seeder.conversation(inbox_id=4)

        backlog = host_store.list_backlog_conversations(3, default_agent_id=1, limit=10)
        assert [c.display_id for c in backlog] == [parked, newer]
        assert host_store.list_backlog_conversations(3, 1, limit=1)[0].display_id == parked
        assert host_store.list_backlog_conversations(3, 1, limit=0) == []

    def test_team_supervisor(self, host_store, seeder):
        seeder.agent(12, team_id=5)
        seeder.agent(40, role_id=4, team_id=5)
        seeder.agent(13)
        assert host_store.find_team_supervisor(12, role_id=4) == 40
        assert host_store.find_team_supervisor(13, role_id=4) is None

    def test_team_without_supervisor(self, host_store, seeder):
        seeder.agent(12, team_id=5)
        assert host_store.find_team_supervisor(12, role_id=4) is None

    def test_get_users(self, host_store, seeder):
        seeder.agent(12, name="Ana")
        assert host_store.get_users([12, 99]) == {
            12: {"name": "Ana", "email": "agent12@example.com"}
        }


class TestReclamationQueries:
    def test_inactive_and_release(self, host_store, seeder):
        seeder.agent(12, name="Ana")
        seeder.contact(50, name="Bruno", phone="+5511000")
        stale = seeder.conversation(inbox_id=3, assignee_id=12, contact_id=50, idle_hours=73)
        seeder.conversation(inbox_id=3, assignee_id=12, contact_id=50, idle_hours=1)
        seeder.conversation(inbox_id=3, contact_id=50, idle_hours=100)

        cutoff = datetime.now(UTC).replace(tzinfo=None) - timedelta(hours=72)
        (inactive,) = host_store.find_inactive_conversations(cutoff, limit=100)
        assert inactive.display_id == stale
        assert inactive.agent_name == "Ana"
        assert inactive.contact_name == "Bruno"
        assert inactive.phone_number == "+5511000"

        assert host_store.release_conversation(inactive.conversation_id, status=1) is True
        assert host_store.release_conversation(inactive.conversation_id, status=1) is False
        row = seeder.conversation_row(stale)
        assert row.assignee_id is None
        assert row.status == 1
        assert host_store.find_inactive_conversations(cutoff, limit=100) == []


class TestFactory:
    def test_open_yields_store(self, host_stores, seeder):
        display_id = seeder.conversation(inbox_id=3)
        with host_stores.open("chatwoot-db.internal") as store:
            assert store.get_conversation(display_id) is not None

    def test_unreachable_database(self, tmp_path):
        missing = tmp_path / "no-such-dir" / "chatwoot.db"
        factory = HostStoreFactory(
            HostDatabaseConfig(),
            engine_builder=lambda host: create_engine(f"sqlite:///{missing}"),
        )
        with pytest.raises(HostStoreError) as exc_info:
            with factory.open("db.down"):
                pass
        assert exc_info.value.host == "db.down"
