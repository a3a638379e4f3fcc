"""
Microsoft Graph Client

Thin async REST client for Microsoft Graph, authenticated with bearer tokens
from the resolver's live credential.
"""

from typing import Any

import httpx
import structlog
from azure.core.credentials_async import AsyncTokenCredential

logger = structlog.get_logger(__name__)


class GraphClient:
    """
    Microsoft Graph v1.0 client.

    A token is requested from the credential for every call; the Azure
    identity library caches tokens until shortly before they expire.
    """

    GRAPH_API_BASE = "https://graph.microsoft.com/v1.0"

    def __init__(
        self,
        credential: AsyncTokenCredential,
        scopes: list[str],
        timeout_seconds: float = 30.0,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not scopes:
            raise ValueError("GraphClient requires at least one scope")
        self.credential = credential
        self.scopes = list(scopes)
        self.base_url = (base_url or self.GRAPH_API_BASE).rstrip("/")
        self._timeout = timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self._timeout,
                transport=self._transport,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Send an authenticated request to Graph.

        Args:
            method: HTTP method
            path: Path relative to the API base, e.g. "/me"
            json: Optional JSON body
            params: Optional query parameters

        Returns:
            Decoded JSON body, or an empty dict for empty responses
        """
        client = await self._get_client()
        token = await self.credential.get_token(*self.scopes)

        logger.debug("Sending request to Microsoft Graph", method=method, path=path)

        response = await client.request(
            method,
            path,
            json=json,
            params=params,
            headers={"Authorization": f"Bearer {token.token}"},
        )
        response.raise_for_status()

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    async def get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: dict[str, Any]) -> dict[str, Any]:
        return await self.request("POST", path, json=json)

    async def create_online_meeting(self, details: dict[str, Any]) -> dict[str, Any]:
        """Create a Teams online meeting for the signed-in identity."""
        meeting = await self.post("/me/onlineMeetings", details)
        logger.info("Teams meeting created", meeting_id=meeting.get("id"))
        return meeting
