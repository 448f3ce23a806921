"""
Unit tests for utils.protocol module.

Tests:
- connect_relay() - overlay relays need a proxy
- send_event() - accepted, rejected and unreachable outcomes, never raising
- fetch_events() - conversion of nostr-sdk events, error mapping, one deadline
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from nostrforge.core.exceptions import RelayUnreachable
from nostrforge.models.relay import Relay
from nostrforge.models.results import OutcomeKind
from nostrforge.utils.protocol import connect_relay, fetch_events, send_event


URL = "wss://relay.one.example"


@pytest.fixture
def relay() -> Relay:
    return Relay(URL)


@pytest.fixture
def event(sign, owner_keys):
    return sign(owner_keys, 1621, tags=[["subject", "Crash"]], content="It crashes.")


def _client(**methods) -> MagicMock:
    client = MagicMock()
    client.shutdown = AsyncMock()
    for name, value in methods.items():
        setattr(client, name, value)
    return client


def _output(success=(), failed=None) -> MagicMock:
    output = MagicMock()
    output.success = list(success)
    output.failed = dict(failed or {})
    return output


# =============================================================================
# connect_relay() Tests
# =============================================================================


class TestConnectRelay:
    """Tests for connect_relay()."""

    @pytest.mark.asyncio
    async def test_overlay_without_proxy(self) -> None:
        with (
            patch("nostrforge.utils.protocol.create_client", AsyncMock()) as create,
            pytest.raises(RelayUnreachable, match="proxy_url required"),
        ):
            await connect_relay(Relay("wss://abcdefghijklmnop.onion"))
        create.assert_not_called()

    @pytest.mark.asyncio
    async def test_connect_failure(self, relay) -> None:
        client = _client(
            add_relay=AsyncMock(),
            try_connect=AsyncMock(return_value=_output(failed={URL: "connection refused"})),
        )
        with (
            patch("nostrforge.utils.protocol.RelayUrl") as relay_url,
            patch("nostrforge.utils.protocol.create_client", AsyncMock(return_value=client)),
            pytest.raises(RelayUnreachable, match="connection refused"),
        ):
            relay_url.parse.side_effect = lambda url: url
            await connect_relay(relay, timeout=1.0)
        client.shutdown.assert_awaited_once()


# =============================================================================
# send_event() Tests
# =============================================================================


class TestSendEvent:
    """Tests for send_event()."""

    async def _send(self, relay, event, client, timeout: float = 1.0):
        with (
            patch("nostrforge.utils.protocol.RelayUrl") as relay_url,
            patch("nostrforge.utils.protocol.connect_relay", AsyncMock(return_value=client)),
        ):
            relay_url.parse.side_effect = lambda url: url
            return await send_event(relay, event, timeout=timeout)

    @pytest.mark.asyncio
    async def test_accepted(self, relay, event) -> None:
        client = _client(send_event=AsyncMock(return_value=_output(success=[URL])))
        outcome = await self._send(relay, event, client)

        assert outcome.kind is OutcomeKind.ACCEPTED
        assert outcome.relay == URL
        client.shutdown.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rejected(self, relay, event) -> None:
        output = _output(failed={URL: "pow: difficulty 20 required"})
        client = _client(send_event=AsyncMock(return_value=output))
        outcome = await self._send(relay, event, client)

        assert outcome.kind is OutcomeKind.REJECTED
        assert outcome.reason == "pow: difficulty 20 required"

    @pytest.mark.asyncio
    async def test_no_ok(self, relay, event) -> None:
        client = _client(send_event=AsyncMock(return_value=_output()))
        outcome = await self._send(relay, event, client)
        assert outcome.kind is OutcomeKind.REJECTED
        assert outcome.reason == "no OK received"

    @pytest.mark.asyncio
    async def test_timeout(self, relay, event) -> None:
        async def hang(_event):
            await asyncio.sleep(30)

        client = _client(send_event=AsyncMock(side_effect=hang))
        outcome = await self._send(relay, event, client, timeout=0.05)

        assert outcome.kind is OutcomeKind.UNREACHABLE
        assert outcome.reason == "timed out waiting for OK"
        client.shutdown.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unreachable(self, relay, event) -> None:
        connect = AsyncMock(side_effect=RelayUnreachable(URL, "connection refused"))
        with patch("nostrforge.utils.protocol.connect_relay", connect):
            outcome = await send_event(relay, event)

        assert outcome.kind is OutcomeKind.UNREACHABLE
        assert outcome.reason == "connection refused"

    @pytest.mark.asyncio
    async def test_os_error(self, relay, event) -> None:
        with patch("nostrforge.utils.protocol.connect_relay", AsyncMock(side_effect=OSError("down"))):
            outcome = await send_event(relay, event)
        assert outcome.kind is OutcomeKind.UNREACHABLE
        assert outcome.reason == "down"


# =============================================================================
# fetch_events() Tests
# =============================================================================


class TestFetchEvents:
    """Tests for fetch_events()."""

    @pytest.mark.asyncio
    async def test_returns_events(self, relay, event) -> None:
        events = MagicMock()
        events.to_vec.return_value = [event.to_nostr()]
        client = _client(fetch_events=AsyncMock(return_value=events))

        with patch("nostrforge.utils.protocol.connect_relay", AsyncMock(return_value=client)):
            result = await fetch_events(relay, {"kinds": [1621], "limit": 5}, timeout=2.0)

        assert result == [event]
        client.shutdown.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_sdk_error_is_unreachable(self, relay) -> None:
        client = _client(fetch_events=AsyncMock(side_effect=RuntimeError("subscription closed")))

        with (
            patch("nostrforge.utils.protocol.connect_relay", AsyncMock(return_value=client)),
            pytest.raises(RelayUnreachable, match="subscription closed"),
        ):
            await fetch_events(relay, {"kinds": [1621]})
        client.shutdown.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_connect_time_counts_against_timeout(self, relay) -> None:
        async def slow_connect(relay, proxy_url, timeout):
            await asyncio.sleep(0.1)
            return client

        events = MagicMock()
        events.to_vec.return_value = []
        client = _client(fetch_events=AsyncMock(return_value=events))

        with patch("nostrforge.utils.protocol.connect_relay", AsyncMock(side_effect=slow_connect)):
            await fetch_events(relay, {"kinds": [1621]}, timeout=1.0)

        _, duration = client.fetch_events.await_args.args
        assert duration.total_seconds() <= 0.9
