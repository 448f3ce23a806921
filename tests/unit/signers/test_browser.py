"""
Unit tests for signers.browser module.

Tests:
- The proxy page is served
- Pending requests are delivered exactly once
- Answers posted by the page complete the matching request
- Refusals, unknown ids and malformed answers
- Signing through a simulated NIP-07 page
"""

import asyncio
import json

import pytest
from aiohttp import test_utils
from nostr_sdk import Keys

from nostrforge.core.exceptions import SigningDenied
from nostrforge.models.event import UnsignedEvent
from nostrforge.nips.nip46 import Method
from nostrforge.signers.browser import BrowserProxySigner
from nostrforge.utils.keys import sign_with_keys


@pytest.fixture
def signer() -> BrowserProxySigner:
    return BrowserProxySigner("127.0.0.1:51034", timeout=2.0)


def _serve(signer: BrowserProxySigner) -> test_utils.TestClient:
    return test_utils.TestClient(test_utils.TestServer(signer.create_app()))


async def _next_requests(client: test_utils.TestClient) -> list[dict]:
    for _ in range(100):
        resp = await client.get("/api/pending")
        batch = await resp.json()
        if batch:
            return batch
        await asyncio.sleep(0.01)
    raise AssertionError("no request was queued")


class TestPage:
    """Tests for GET /."""

    @pytest.mark.asyncio
    async def test_page(self, signer: BrowserProxySigner) -> None:
        async with _serve(signer) as client:
            resp = await client.get("/")
            assert resp.status == 200
            assert "window.nostr" in await resp.text()

    def test_url(self, signer: BrowserProxySigner) -> None:
        assert signer.url == "http://127.0.0.1:51034/"


class TestRequests:
    """Tests for the pending/response exchange."""

    @pytest.mark.asyncio
    async def test_delivered_once(self, signer: BrowserProxySigner, owner: str) -> None:
        async with _serve(signer) as client:
            task = asyncio.create_task(signer._request(Method.GET_PUBLIC_KEY))
            (request,) = await _next_requests(client)
            assert request["method"] == "get_public_key"
            assert await (await client.get("/api/pending")).json() == []

            resp = await client.post("/api/response", json={"id": request["id"], "result": owner})
            assert await resp.json() == {"accepted": True}
            assert await task == owner

    @pytest.mark.asyncio
    async def test_refusal(self, signer: BrowserProxySigner) -> None:
        async with _serve(signer) as client:
            task = asyncio.create_task(signer._request(Method.GET_PUBLIC_KEY))
            (request,) = await _next_requests(client)
            await client.post(
                "/api/response",
                json={"id": request["id"], "result": None, "error": "user rejected"},
            )
            with pytest.raises(SigningDenied, match="user rejected"):
                await task

    @pytest.mark.asyncio
    async def test_unknown_id(self, signer: BrowserProxySigner) -> None:
        async with _serve(signer) as client:
            resp = await client.post("/api/response", json={"id": "nobody", "result": "x"})
            assert await resp.json() == {"accepted": False}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", ["[1, 2]", '{"result": "x"}', "{not json"])
    async def test_malformed_answer(self, signer: BrowserProxySigner, body: str) -> None:
        async with _serve(signer) as client:
            resp = await client.post(
                "/api/response", data=body, headers={"Content-Type": "application/json"}
            )
            assert resp.status == 400


class TestSign:
    """Tests for signing through a simulated extension page."""

    @pytest.mark.asyncio
    async def test_sign(self, signer: BrowserProxySigner, owner_keys: Keys, owner: str) -> None:
        signer._pubkey = owner
        template = UnsignedEvent(pubkey=owner, kind=1621, content="It crashes.")
        async with _serve(signer) as client:
            task = asyncio.create_task(signer.sign(template))
            (request,) = await _next_requests(client)
            assert request["method"] == "sign_event"

            unsigned = UnsignedEvent(**json.loads(request["params"][0]))
            signed = sign_with_keys(owner_keys, unsigned)
            await client.post(
                "/api/response", json={"id": request["id"], "result": signed.as_json()}
            )
            event = await task

        assert event.id == template.id
        assert event.verify()

    @pytest.mark.asyncio
    async def test_malformed_event(self, signer: BrowserProxySigner, owner: str) -> None:
        signer._pubkey = owner
        async with _serve(signer) as client:
            task = asyncio.create_task(signer.sign(UnsignedEvent(pubkey=owner, kind=1621)))
            (request,) = await _next_requests(client)
            await client.post("/api/response", json={"id": request["id"], "result": "{}"})
            with pytest.raises(SigningDenied, match="malformed event"):
                await task
