"""Tenant parameter resolution.

Reads the key-value account parameters that tell the engine where each
tenant's Chatwoot instance lives and how it should be treated. Read-only:
parameters are maintained by tenant administrators elsewhere.

Example:
    params = ParameterService(db)
    creds = params.get_host_credentials(account_id=42)
    hours = params.get_reclamation_hours(42, default=72)
"""

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from agent_dispatch.db.models import Account, AccountParameter, ParameterName
from agent_dispatch.errors.domain import NotFoundError, ParameterNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HostCredentials:
    """Base URL and API token for a tenant's Chatwoot REST API."""

    base_url: str
    api_token: str

    def __repr__(self) -> str:
        return f"HostCredentials(base_url={self.base_url!r}, api_token='***')"


class ParameterService:
    """Lookups against the account_parameters table.

    Methods never commit; the session is owned by the caller.
    """

    def __init__(self, db: Session) -> None:
        """Initialize with a SQLAlchemy session.

        Args:
            db: Active database session.
        """
        self.db = db

    def get(self, account_id: int, name: str) -> str | None:
        """Return a parameter value, or None when absent or empty."""
        value = self.db.execute(
            select(AccountParameter.value)
            .where(
                AccountParameter.account_id == account_id,
                AccountParameter.name == name,
            )
            .order_by(AccountParameter.id)
            .limit(1)
        ).scalar_one_or_none()
        if value is None or not str(value).strip():
            return None
        return str(value).strip()

    def require(self, account_id: int, name: str) -> str:
        """Return a parameter value or raise.

        Raises:
            ParameterNotFoundError: If the parameter is absent or empty.
        """
        value = self.get(account_id, name)
        if value is None:
            raise ParameterNotFoundError(account_id, name)
        return value

    def get_many(self, account_id: int, names: list[str]) -> dict[str, str]:
        """Return the non-empty values among *names* in one query."""
        rows = self.db.execute(
            select(AccountParameter.name, AccountParameter.value)
            .where(
                AccountParameter.account_id == account_id,
                AccountParameter.name.in_(names),
            )
            .order_by(AccountParameter.id)
        ).all()
        found: dict[str, str] = {}
        for name, value in rows:
            if value is not None and str(value).strip() and name not in found:
                found[name] = str(value).strip()
        return found

    def get_host_credentials(self, account_id: int) -> HostCredentials:
        """Resolve the Chatwoot base URL and token for a tenant.

        Args:
            account_id: System account id.

        Returns:
            HostCredentials with the trailing slash stripped from the URL.

        Raises:
            ParameterNotFoundError: If either parameter is missing.
        """
        values = self.get_many(
            account_id, [ParameterName.HOST_URL, ParameterName.HOST_TOKEN]
        )
        for name in (ParameterName.HOST_URL, ParameterName.HOST_TOKEN):
            if name not in values:
                raise ParameterNotFoundError(account_id, name)
        return HostCredentials(
            base_url=values[ParameterName.HOST_URL].rstrip("/"),
            api_token=values[ParameterName.HOST_TOKEN],
        )

    def get_host_db_host(self, account_id: int) -> str:
        """Hostname of the tenant's Chatwoot database."""
        return self.require(account_id, ParameterName.HOST_DB_HOST)

    def get_host_account_id(self, account_id: int) -> int | None:
        """Chatwoot account id configured for a tenant, if any."""
        value = self.get(account_id, ParameterName.HOST_ACCOUNT)
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            logger.warning(
                "Ignoring non-numeric %s=%r for account_id=%s",
                ParameterName.HOST_ACCOUNT, value, account_id,
            )
            return None

    def get_reclamation_hours(self, account_id: int, default: int) -> int:
        """Inactivity threshold in hours for the reclamation sweep.

        Missing, non-integer or non-positive values fall back to *default*,
        and so does a failed lookup: the sweep must not stall on a bad row.
        """
        try:
            value = self.get(account_id, ParameterName.RECLAMATION_HOURS)
        except Exception as e:
            logger.warning(
                "Failed to read %s for account_id=%s, using default %d: %s",
                ParameterName.RECLAMATION_HOURS, account_id, default, e,
            )
            return default

        if value is None:
            logger.info(
                "%s not set for account_id=%s, using default %d",
                ParameterName.RECLAMATION_HOURS, account_id, default,
            )
            return default
        try:
            hours = int(value)
        except ValueError:
            logger.warning(
                "Invalid %s=%r for account_id=%s, using default %d",
                ParameterName.RECLAMATION_HOURS, value, account_id, default,
            )
            return default
        return hours if hours > 0 else default

    def resolve_system_account_id(self, host_account_id: int) -> int:
        """Map a Chatwoot account id back to its system account.

        Raises:
            NotFoundError: If no tenant declares that Chatwoot account.
        """
        account_id = self.db.execute(
            select(AccountParameter.account_id)
            .where(
                AccountParameter.name == ParameterName.HOST_ACCOUNT,
                AccountParameter.value == str(host_account_id),
            )
            .order_by(AccountParameter.id)
            .limit(1)
        ).scalar_one_or_none()
        if account_id is None:
            raise NotFoundError("Account for chatwoot-account", str(host_account_id))
        logger.info(
            "Resolved system account %s for chatwoot account %s",
            account_id, host_account_id,
        )
        return account_id

    def list_prefixed_tenants(self) -> list[tuple[int, str]]:
        """All (account_id, prefix) pairs, in insertion order.

        Prefixes are normalised by stripping surrounding slashes.
        """
        rows = self.db.execute(
            select(AccountParameter.account_id, AccountParameter.value)
            .where(AccountParameter.name == ParameterName.PREFIX)
            .order_by(AccountParameter.id)
        ).all()
        return [
            (account_id, str(value or "").strip("/"))
            for account_id, value in rows
        ]

    def list_account_ids_by_domain(self, domain: str) -> list[int]:
        """System account ids sharing a domain, ordered by id."""
        return list(
            self.db.execute(
                select(Account.id).where(Account.domain == domain).order_by(Account.id)
            ).scalars()
        )
