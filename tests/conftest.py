"""Root-level pytest fixtures for all tests.

Provides:
- State store fixtures (in-memory SQLite, StaticPool)
- Chatwoot mirror fixtures (file-based SQLite, survives engine disposal)
- A mock Chatwoot REST API wired through httpx.MockTransport
- Tenant seeding
"""

from collections.abc import Generator

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from agent_dispatch.config import DispatchConfig, HostDatabaseConfig, HttpConfig
from agent_dispatch.db.models import Account, AccountParameter, Base, ParameterName
from agent_dispatch.services.host_store import HOST_METADATA, HostStore, HostStoreFactory
from tests.helpers.mock_chatwoot import HostSeeder, MockChatwoot

SYSTEM_ACCOUNT_ID = 10
CHATWOOT_ACCOUNT_ID = 7
CHATWOOT_URL = "https://chat.example.com"


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests requiring external services"
    )


# ============================================================================
# State store
# ============================================================================


@pytest.fixture
def state_engine() -> Generator[Engine, None, None]:
    """In-memory state store shared by every session of a test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(state_engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(autocommit=False, autoflush=False, bind=state_engine)


@pytest.fixture
def db(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """State store session for testing."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def seed_tenant(
    db: Session,
    account_id: int = SYSTEM_ACCOUNT_ID,
    chatwoot_account_id: int | None = CHATWOOT_ACCOUNT_ID,
    domain: str | None = "example.com",
    db_host: str | None = "chatwoot-db.internal",
    prefix: str | None = None,
    hours: str | None = None,
    url: str | None = CHATWOOT_URL + "/",
    token: str | None = "secret-token",
) -> Account:
    """Insert an account with its parameters; None skips a parameter."""
    account = Account(id=account_id, name=f"Tenant {account_id}", domain=domain)
    db.add(account)
    values = {
        ParameterName.HOST_URL: url,
        ParameterName.HOST_TOKEN: token,
        ParameterName.HOST_ACCOUNT: (
            str(chatwoot_account_id) if chatwoot_account_id is not None else None
        ),
        ParameterName.HOST_DB_HOST: db_host,
        ParameterName.PREFIX: prefix,
        ParameterName.RECLAMATION_HOURS: hours,
    }
    for name, value in values.items():
        if value is not None:
            db.add(AccountParameter(account_id=account_id, name=name, value=value))
    db.commit()
    return account


@pytest.fixture
def tenant(db: Session) -> Account:
    """A fully configured tenant."""
    return seed_tenant(db)


# ============================================================================
# Chatwoot mirror
# ============================================================================


@pytest.fixture
def host_engine(tmp_path) -> Generator[Engine, None, None]:
    """File-based SQLite standing in for a tenant's Chatwoot database."""
    engine = create_engine(f"sqlite:///{tmp_path / 'chatwoot.db'}")
    HOST_METADATA.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def host_store(host_engine: Engine) -> HostStore:
    return HostStore(host_engine)


@pytest.fixture
def host_stores(host_engine: Engine) -> HostStoreFactory:
    """Factory that hands out the test mirror whatever the host name."""
    return HostStoreFactory(HostDatabaseConfig(), engine_builder=lambda host: host_engine)


@pytest.fixture
def seeder(host_engine: Engine) -> HostSeeder:
    return HostSeeder(host_engine)


@pytest.fixture
def chatwoot(host_engine: Engine) -> MockChatwoot:
    """Mock Chatwoot API writing through to the mirror."""
    return MockChatwoot(engine=host_engine)


# ============================================================================
# Configuration
# ============================================================================


@pytest.fixture
def config() -> DispatchConfig:
    """Default configuration with retry sleeps disabled."""
    return DispatchConfig(http=HttpConfig(base_delay_seconds=0, timeout_seconds=2))
