"""FastAPI dependencies shared by the trigger routes.

Overridable in tests through ``app.dependency_overrides``.
"""

import os
from functools import lru_cache

import httpx
from fastapi import Depends
from sqlalchemy.orm import Session, sessionmaker

from agent_dispatch.config import CONFIG_PATH_ENV, DispatchConfig, load_config
from agent_dispatch.db.connection import SessionLocal
from agent_dispatch.services.host_store import HostStoreFactory


@lru_cache(maxsize=1)
def get_config() -> DispatchConfig:
    """Load the engine configuration once per process."""
    return load_config(os.environ.get(CONFIG_PATH_ENV) or None)


def get_host_stores(config: DispatchConfig = Depends(get_config)) -> HostStoreFactory:
    """Tenant database factory built from the host_db section."""
    return HostStoreFactory(config.host_db)


def get_transport() -> httpx.AsyncBaseTransport | None:
    """HTTP transport for Chatwoot calls; None uses httpx's default."""
    return None


def get_session_factory() -> sessionmaker[Session]:
    """Session factory for work that opens its own sessions (the sweep)."""
    return SessionLocal
