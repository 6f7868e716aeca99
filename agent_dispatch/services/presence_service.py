"""Logged-in agent lookup.

Returns the agents Chatwoot reports online, enriched with name, email and
live open-conversation count, for one Chatwoot account or for every
account that shares a domain.
"""

import logging
from typing import Any

import httpx
from sqlalchemy.orm import Session

from agent_dispatch.config import DispatchConfig
from agent_dispatch.errors.domain import NotFoundError, ValidationError
from agent_dispatch.services.chatwoot_client import ChatwootClient
from agent_dispatch.services.host_store import HostStoreFactory
from agent_dispatch.services.parameter_service import ParameterService

logger = logging.getLogger(__name__)


class PresenceService:
    """Online-agent queries per tenant or per domain."""

    def __init__(
        self,
        db: Session,
        config: DispatchConfig,
        host_stores: HostStoreFactory | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            db: State store session.
            config: Engine configuration.
            host_stores: Tenant database factory.
            transport: Optional httpx transport for the Chatwoot client.
        """
        self.params = ParameterService(db)
        self.config = config
        self.host_stores = host_stores or HostStoreFactory(config.host_db)
        self.transport = transport

    async def get_logged_users(
        self, host_account_id: int, system_account_id: int
    ) -> list[dict[str, Any]]:
        """Online agents of one Chatwoot account with workload details.

        Returns:
            Dicts with ``id``, ``name``, ``email`` and ``open_conversations``,
            ordered by user id. Online ids unknown to the database are omitted.
        """
        credentials = self.params.get_host_credentials(system_account_id)
        async with ChatwootClient(
            credentials,
            host_account_id=host_account_id,
            http=self.config.http,
            transport=self.transport,
        ) as client:
            online_ids = await client.get_online_agent_ids()
        if not online_ids:
            return []

        db_host = self.params.get_host_db_host(system_account_id)
        with self.host_stores.open(db_host) as store:
            users = store.get_users(online_ids)
            counts = store.count_open_conversations(online_ids)

        return [
            {
                "id": user_id,
                "name": users[user_id]["name"],
                "email": users[user_id]["email"],
                "open_conversations": counts.get(user_id, 0),
            }
            for user_id in sorted(users)
        ]

    async def query(
        self,
        account_id: int | None = None,
        system_account_id: int | None = None,
        domain: str | None = None,
    ) -> dict[str, Any]:
        """Resolve the request shape and run the lookup.

        An ``account_id`` takes precedence over ``domain``.

        Raises:
            ValidationError: If neither account_id nor domain is given.
            NotFoundError: If the account or domain is unknown.
        """
        if account_id is not None:
            if system_account_id is None:
                system_account_id = self.params.resolve_system_account_id(account_id)
            users = await self.get_logged_users(account_id, system_account_id)
            return {
                "accountId": account_id,
                "systemAccountId": system_account_id,
                "count": len(users),
                "data": users,
            }
        if domain:
            return await self._query_domain(domain)
        raise ValidationError("accountId or domain is required")

    async def _query_domain(self, domain: str) -> dict[str, Any]:
        account_ids = self.params.list_account_ids_by_domain(domain)
        if not account_ids:
            raise NotFoundError("Domain", domain)
        logger.info("Domain %s has %d account(s)", domain, len(account_ids))

        all_users: list[dict[str, Any]] = []
        accounts_info: list[dict[str, Any]] = []
        for system_account_id in account_ids:
            host_account_id = self.params.get_host_account_id(system_account_id)
            if host_account_id is None:
                logger.warning(
                    "Account %s has no chatwoot-account, skipping", system_account_id
                )
                continue
            try:
                users = await self.get_logged_users(host_account_id, system_account_id)
            except Exception as e:
                logger.error(
                    "Logged users lookup failed for chatwoot account %s: %s",
                    host_account_id, e,
                )
                continue
            all_users.extend(
                {
                    **user,
                    "chatwootAccountId": host_account_id,
                    "systemAccountId": system_account_id,
                }
                for user in users
            )
            accounts_info.append(
                {
                    "systemAccountId": system_account_id,
                    "chatwootAccountId": host_account_id,
                    "usersCount": len(users),
                }
            )

        unique: list[dict[str, Any]] = []
        seen: set[int] = set()
        for user in all_users:
            if user["id"] not in seen:
                seen.add(user["id"])
                unique.append(user)

        logger.info(
            "Domain %s: %d unique online user(s) of %d", domain, len(unique), len(all_users)
        )
        return {
            "domain": domain,
            "accountsProcessed": len(accounts_info),
            "accountsInfo": accounts_info,
            "count": len(unique),
            "totalCount": len(all_users),
            "data": unique,
        }
