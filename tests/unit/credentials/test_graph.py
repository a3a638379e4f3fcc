"""Tests for the Microsoft Graph client."""

import json

import httpx
import pytest

from tests.fakes import FakeCredential
from voxrelay.credentials.graph import GraphClient


def graph(handler, credential: FakeCredential | None = None) -> GraphClient:
    return GraphClient(
        credential or FakeCredential(token="graph-token"),
        ["https://graph.microsoft.com/.default"],
        transport=httpx.MockTransport(handler),
    )


class TestGraphClient:
    """Tests for GraphClient."""

    def test_requires_scopes(self) -> None:
        with pytest.raises(ValueError):
            GraphClient(FakeCredential(), [])

    @pytest.mark.asyncio
    async def test_get_sends_bearer_token(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"displayName": "Relay Bot"})

        credential = FakeCredential(token="graph-token")
        client = graph(handler, credential)

        data = await client.get("/me", params={"$select": "displayName"})

        assert data == {"displayName": "Relay Bot"}
        assert seen[0].url.path == "/v1.0/me"
        assert seen[0].url.params["$select"] == "displayName"
        assert seen[0].headers["Authorization"] == "Bearer graph-token"
        assert credential.calls == [("https://graph.microsoft.com/.default",)]
        await client.close()

    @pytest.mark.asyncio
    async def test_create_online_meeting(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "POST"
            assert request.url.path == "/v1.0/me/onlineMeetings"
            body = json.loads(request.content)
            return httpx.Response(201, json={"id": "meeting-1", "subject": body["subject"]})

        client = graph(handler)
        meeting = await client.create_online_meeting({"subject": "Standup"})

        assert meeting == {"id": "meeting-1", "subject": "Standup"}
        await client.close()

    @pytest.mark.asyncio
    async def test_no_content(self) -> None:
        client = graph(lambda request: httpx.Response(204))
        assert await client.request("DELETE", "/me/events/1") == {}
        await client.close()

    @pytest.mark.asyncio
    async def test_error_status_raises(self) -> None:
        client = graph(lambda request: httpx.Response(403, json={"error": {"code": "Forbidden"}}))

        with pytest.raises(httpx.HTTPStatusError):
            await client.get("/me")
        await client.close()
