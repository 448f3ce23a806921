"""Single-relay Nostr operations on top of ``nostr_sdk``.

Each function talks to exactly one relay through a short-lived ``Client``
and turns the outcome into nostrforge types. Fan-out over many relays lives
in [RelayPool][nostrforge.utils.transport.RelayPool].

Overlay networks (Tor, I2P, Lokinet) are reached through a SOCKS5 proxy via
``nostr_sdk.ConnectionMode.PROXY``; without ``proxy_url`` they are reported
unreachable instead of being attempted in the clear.

See Also:
    [nostrforge.models.relay.Relay][nostrforge.models.relay.Relay]: The relay
        model consumed by every function here.

Examples:
    ```python
    from nostrforge.utils.protocol import fetch_events, send_event

    outcome = await send_event(relay, event, timeout=15.0)
    events = await fetch_events(relay, {"kinds": [1621], "limit": 50})
    ```
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import socket
from datetime import timedelta
from ipaddress import AddressValueError, IPv4Address, IPv6Address
from typing import Any
from urllib.parse import urlparse

from nostr_sdk import (
    Client,
    ClientBuilder,
    ClientOptions,
    Connection,
    ConnectionMode,
    ConnectionTarget,
    Filter,
    RelayUrl,
)

from nostrforge.core.exceptions import RelayUnreachable
from nostrforge.models.constants import NetworkType
from nostrforge.models.event import Event
from nostrforge.models.relay import Relay  # noqa: TC001
from nostrforge.models.results import RelayOutcome


DEFAULT_TIMEOUT = 10.0

_OVERLAY_NETWORKS = frozenset({NetworkType.TOR, NetworkType.I2P, NetworkType.LOKI})


logger = logging.getLogger(__name__)

# Silence nostr-sdk callback noise; failures surface through return values
logging.getLogger("nostr_sdk").setLevel(logging.CRITICAL)


async def _proxy_ip(host: str) -> str:
    """nostr-sdk requires a numeric proxy address."""
    bare = host.strip("[]")
    for parser in (IPv4Address, IPv6Address):
        try:
            parser(bare)
        except (AddressValueError, ValueError):
            continue
        return bare
    return await asyncio.to_thread(socket.gethostbyname, host)


async def create_client(proxy_url: str | None = None) -> Client:
    """Create a read/write client without a signer.

    Events are signed before they reach the transport, so the client never
    holds key material.

    Args:
        proxy_url: SOCKS5 proxy for overlay networks (e.g. ``socks5://127.0.0.1:9050``).
    """
    builder = ClientBuilder()
    if proxy_url is not None:
        parsed = urlparse(proxy_url)
        host = await _proxy_ip(parsed.hostname or "127.0.0.1")
        mode = ConnectionMode.PROXY(host, parsed.port or 9050)
        connection = Connection().mode(mode).target(ConnectionTarget.ONION)
        builder = builder.opts(ClientOptions().connection(connection))
    return builder.build()


async def connect_relay(
    relay: Relay,
    proxy_url: str | None = None,
    timeout: float = DEFAULT_TIMEOUT,  # noqa: ASYNC109
) -> Client:
    """Open a client connected to *relay*.

    Raises:
        RelayUnreachable: If the relay needs a missing proxy or the
            connection fails within *timeout*.
    """
    if relay.network in _OVERLAY_NETWORKS and proxy_url is None:
        raise RelayUnreachable(relay.url, f"proxy_url required for {relay.network} relay")

    relay_url = RelayUrl.parse(relay.url)
    client = await create_client(proxy_url if relay.network in _OVERLAY_NETWORKS else None)
    await client.add_relay(relay_url)
    output = await client.try_connect(timedelta(seconds=timeout))

    if relay_url in output.success:
        logger.debug("relay_connected relay=%s", relay.url)
        return client

    error = output.failed.get(relay_url, "connection failed")
    with contextlib.suppress(Exception):
        await client.shutdown()
    logger.debug("relay_connect_failed relay=%s error=%s", relay.url, error)
    raise RelayUnreachable(relay.url, str(error))


async def send_event(
    relay: Relay,
    event: Event,
    *,
    proxy_url: str | None = None,
    timeout: float = DEFAULT_TIMEOUT,  # noqa: ASYNC109
) -> RelayOutcome:
    """Publish *event* to one relay and report how it answered.

    Never raises for relay-side problems: connection failures become an
    ``unreachable`` outcome and ``OK false`` replies a ``rejected`` one.
    """
    try:
        client = await connect_relay(relay, proxy_url, timeout)
    except RelayUnreachable as e:
        return RelayOutcome.unreachable(relay.url, e.reason)
    except (OSError, TimeoutError) as e:
        return RelayOutcome.unreachable(relay.url, str(e) or type(e).__name__)

    relay_url = RelayUrl.parse(relay.url)
    try:
        async with asyncio.timeout(timeout):
            output = await client.send_event(event.to_nostr())
    except TimeoutError:
        return RelayOutcome.unreachable(relay.url, "timed out waiting for OK")
    except Exception as e:  # nostr_sdk raises its own NostrSdkError
        return RelayOutcome.unreachable(relay.url, str(e) or type(e).__name__)
    finally:
        with contextlib.suppress(Exception):
            await client.shutdown()

    if relay_url in output.success:
        logger.debug("event_accepted relay=%s event=%s", relay.url, event.id)
        return RelayOutcome.accepted(relay.url)
    reason = output.failed.get(relay_url, "no OK received")
    logger.debug("event_rejected relay=%s event=%s reason=%s", relay.url, event.id, reason)
    return RelayOutcome.rejected(relay.url, str(reason))


async def fetch_events(
    relay: Relay,
    event_filter: dict[str, Any],
    *,
    proxy_url: str | None = None,
    timeout: float = DEFAULT_TIMEOUT,  # noqa: ASYNC109
) -> list[Event]:
    """Run one ``REQ`` against *relay* and return its signature-verified events.

    *timeout* bounds connecting and fetching together. Events received when
    it elapses are returned even if the relay never sent ``EOSE``. Events
    come back in the order the relay sent them; invalid ones are dropped and
    logged at DEBUG level.

    Raises:
        RelayUnreachable: If the relay cannot be reached.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    client = await connect_relay(relay, proxy_url, timeout)
    try:
        nostr_filter = Filter.from_json(json.dumps(event_filter))
        remaining = max(deadline - loop.time(), 0.0)
        events = await client.fetch_events(nostr_filter, timedelta(seconds=remaining))
    except Exception as e:  # nostr_sdk raises its own NostrSdkError
        raise RelayUnreachable(relay.url, str(e) or type(e).__name__) from e
    finally:
        with contextlib.suppress(Exception):
            await client.shutdown()

    result: list[Event] = []
    for nostr_event in events.to_vec():
        try:
            event = Event.from_nostr(nostr_event)
        except (ValueError, TypeError, OverflowError) as e:
            logger.debug("event_invalid relay=%s error=%s", relay.url, e)
            continue
        if event.verify():
            result.append(event)
        else:
            logger.debug("event_bad_signature relay=%s event=%s", relay.url, event.id)
    return result
