"""Tests for the state store models and connection helpers."""

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agent_dispatch.db.connection import build_engine, get_database_url
from agent_dispatch.db.models import (
    Account,
    AccountParameter,
    AgentLease,
    AssignmentLedgerEntry,
    utc_now_iso,
)


def test_ledger_entry_defaults_timestamp(db: Session):
    entry = AssignmentLedgerEntry(inbox_id=3, agent_id=12, contact_id=55)
    db.add(entry)
    db.commit()
    assert entry.id is not None
    assert entry.assigned_at.endswith("+00:00")


def test_utc_now_iso_sorts_chronologically():
    first = utc_now_iso()
    second = utc_now_iso()
    assert first <= second


def test_parameters_cascade_with_account(db: Session):
    account = Account(id=1, name="Acme", domain="acme.test")
    account.parameters.append(AccountParameter(name="chatwoot-url", value="https://cw"))
    db.add(account)
    db.commit()

    db.delete(account)
    db.commit()
    assert db.query(AccountParameter).count() == 0


def test_agent_lease_unique_per_tenant_agent(db: Session):
    db.add(AgentLease(tenant_key="10", agent_id=5, holder="a", expires_at=utc_now_iso()))
    db.commit()
    db.add(AgentLease(tenant_key="10", agent_id=5, holder="b", expires_at=utc_now_iso()))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()

    db.add(AgentLease(tenant_key="11", agent_id=5, holder="b", expires_at=utc_now_iso()))
    db.commit()


def test_database_url_from_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg://u:p@db/state")
    assert get_database_url() == "postgresql+psycopg://u:p@db/state"


def test_database_url_default(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    assert get_database_url() == "sqlite:///./agent_dispatch.db"


def test_build_engine_enables_sqlite_foreign_keys(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'state.db'}")
    with engine.connect() as conn:
        assert conn.exec_driver_sql("PRAGMA foreign_keys").scalar() == 1
    engine.dispose()
