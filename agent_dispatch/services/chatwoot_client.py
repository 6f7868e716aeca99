"""Chatwoot REST API client.

Thin async wrapper over the handful of Chatwoot endpoints the engine uses:
agent presence, conversation assignment, status toggle and participants.
Every call carries a bounded timeout and is retried on transport errors,
5xx and 429 with exponential backoff.

Example:
    async with ChatwootClient(creds, host_account_id=7, http=config.http) as cw:
        online = await cw.get_online_agent_ids()
        await cw.assign_conversation(display_id=1234, agent_id=online[0])
"""

import asyncio
import logging
from typing import Any

import httpx

from agent_dispatch.config import HttpConfig
from agent_dispatch.services.errors import ChatwootAPIError
from agent_dispatch.services.parameter_service import HostCredentials

logger = logging.getLogger(__name__)

ONLINE_STATUS = "online"


def _is_retryable_status(status_code: int) -> bool:
    return status_code >= 500 or status_code == 429


class ChatwootClient:
    """Client for one tenant's Chatwoot account.

    Use as an async context manager so the underlying connection pool is
    always released, including on error paths.
    """

    def __init__(
        self,
        credentials: HostCredentials,
        host_account_id: int,
        http: HttpConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize with tenant credentials.

        Args:
            credentials: Base URL and API token for the tenant.
            host_account_id: Chatwoot account id used in every path.
            http: Timeout and retry policy. Defaults to HttpConfig().
            transport: Optional httpx transport (tests use MockTransport).
        """
        self._credentials = credentials
        self._account_id = host_account_id
        self._http = http or HttpConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._retry_attempts_total = 0

    @property
    def retry_attempts_total(self) -> int:
        """Total number of retry sleeps performed by this client."""
        return self._retry_attempts_total

    async def __aenter__(self) -> "ChatwootClient":
        """Open the httpx async client."""
        self._client = httpx.AsyncClient(
            base_url=f"{self._credentials.base_url}/api/v1/accounts/{self._account_id}",
            headers={
                "api_access_token": self._credentials.api_token,
                "Content-Type": "application/json",
            },
            timeout=self._http.timeout_seconds,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Close the httpx async client."""
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request with retry and return the decoded JSON body.

        Args:
            method: HTTP method.
            path: Path relative to the account base URL.
            json: Optional JSON body.

        Returns:
            Decoded JSON, or None for an empty body.

        Raises:
            ChatwootAPIError: On non-retryable status or exhausted retries.
            RuntimeError: If used outside ``async with``.
        """
        if self._client is None:
            raise RuntimeError("ChatwootClient used outside 'async with'")

        url = f"{self._client.base_url}{path}"
        retries = self._http.max_retries
        last_error: ChatwootAPIError | None = None

        for attempt in range(retries + 1):
            try:
                response = await self._client.request(method, path, json=json)
            except httpx.TransportError as e:
                last_error = ChatwootAPIError(
                    method=method, url=url, message=str(e) or type(e).__name__,
                    retryable=True,
                )
            else:
                if response.status_code < 400:
                    if not response.content:
                        return None
                    try:
                        return response.json()
                    except ValueError:
                        return None
                last_error = ChatwootAPIError(
                    method=method,
                    url=url,
                    message=response.text[:500],
                    status_code=response.status_code,
                    retryable=_is_retryable_status(response.status_code),
                )

            if not last_error.retryable or attempt >= retries:
                break

            delay = self._http.base_delay_seconds * (2 ** attempt)
            logger.warning(
                "Chatwoot %s %s failed (attempt %d/%d), retrying in %.2fs: %s",
                method, path, attempt + 1, retries + 1, delay, last_error.message[:200],
            )
            self._retry_attempts_total += 1
            await asyncio.sleep(delay)

        if last_error is None:
            raise RuntimeError(f"Chatwoot {method} {path} made no attempts")
        logger.error("Chatwoot request failed: %s", last_error)
        raise last_error

    async def list_agents(self) -> list[dict[str, Any]]:
        """Fetch every agent of the account.

        Chatwoot versions differ in envelope: a bare list, or an object with
        ``payload``, ``agents`` or ``data``.
        """
        body = await self._request("GET", "/agents")
        if isinstance(body, list):
            return body
        if isinstance(body, dict):
            for key in ("payload", "agents", "data"):
                if isinstance(body.get(key), list):
                    return body[key]
        return []

    async def get_online_agent_ids(self) -> list[int]:
        """Ids of agents whose availability_status is online."""
        agents = await self.list_agents()
        online = [
            agent["id"]
            for agent in agents
            if isinstance(agent, dict)
            and agent.get("availability_status") == ONLINE_STATUS
            and agent.get("id") is not None
        ]
        logger.info(
            "Chatwoot account %s: %d/%d agents online",
            self._account_id, len(online), len(agents),
        )
        return online

    async def assign_conversation(self, display_id: int, agent_id: int) -> Any:
        """Assign a conversation (by display id) to an agent."""
        return await self._request(
            "POST",
            f"/conversations/{display_id}/assignments",
            json={"assignee_id": agent_id},
        )

    async def toggle_status(self, display_id: int, status: str = "open") -> Any:
        """Set a conversation's status (open, pending, snoozed, resolved)."""
        return await self._request(
            "POST",
            f"/conversations/{display_id}/toggle_status",
            json={"status": status},
        )

    async def set_participants(self, display_id: int, user_ids: list[int]) -> Any:
        """Replace the participant list of a conversation."""
        return await self._request(
            "PATCH",
            f"/conversations/{display_id}/participants",
            json={"user_ids": user_ids},
        )
