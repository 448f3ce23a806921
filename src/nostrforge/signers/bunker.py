"""NIP-46 remote signer ("bunker") backend.

Requests are kind-24133 events published to the bunker's relays; answers
come back on a subscription for events tagging the app public key and are
matched to their request through
[PendingRequests][nostrforge.signers.base.PendingRequests]. Answers may
arrive out of order, twice (one per relay) or for requests this process
never made; only the first answer to a known id counts.

See Also:
    [nostrforge.nips.nip46][]: Message encoding and encryption.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import secrets
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

import aiohttp

from nostrforge.core.exceptions import SignerUnavailable, SigningDenied
from nostrforge.core.logger import Logger
from nostrforge.models.constants import EventKind
from nostrforge.models.event import Event
from nostrforge.nips import nip46
from nostrforge.utils.keys import KeyringStore

from .base import DEFAULT_SIGN_TIMEOUT, PendingRequests, Signer


if TYPE_CHECKING:
    from nostr_sdk import Keys

    from nostrforge.models.event import UnsignedEvent


EventHandler = Callable[[Event], None]

# Accept answers published slightly before the subscription was opened
_SINCE_SKEW = 10


class RelayChannel(Protocol):
    """Bidirectional event stream between this client and the bunker."""

    async def start(self, pubkey: str, handler: EventHandler) -> None: ...

    async def send(self, event: Event) -> None: ...

    async def close(self) -> None: ...


class WebSocketChannel:
    """[RelayChannel][nostrforge.signers.bunker.RelayChannel] over raw
    NIP-01 websockets, one ``aiohttp`` connection per bunker relay.

    A relay that cannot be reached is skipped; the channel is usable as long
    as one relay is connected.
    """

    def __init__(self, relays: tuple[str, ...], *, connect_timeout: float = 10.0) -> None:
        self._relays = relays
        self._connect_timeout = connect_timeout
        self._session: aiohttp.ClientSession | None = None
        self._sockets: dict[str, aiohttp.ClientWebSocketResponse] = {}
        self._readers: list[asyncio.Task[None]] = []
        self._subscription = secrets.token_hex(8)
        self._logger = Logger("nostrforge.signers.bunker.channel")

    async def start(self, pubkey: str, handler: EventHandler) -> None:
        """Connect and subscribe to events addressed to *pubkey*.

        Raises:
            SignerUnavailable: If no bunker relay could be reached.
        """
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=None, connect=self._connect_timeout)
        )
        request = json.dumps(
            [
                "REQ",
                self._subscription,
                {
                    "kinds": [int(EventKind.NOSTR_CONNECT)],
                    "#p": [pubkey],
                    "since": int(time.time()) - _SINCE_SKEW,
                },
            ]
        )
        results = await asyncio.gather(
            *(self._connect(url) for url in self._relays), return_exceptions=True
        )
        for url, result in zip(self._relays, results, strict=True):
            if isinstance(result, BaseException):
                self._logger.warning("bunker_relay_unreachable", relay=url, error=str(result))
                continue
            await result.send_str(request)
            self._sockets[url] = result
            self._readers.append(asyncio.create_task(self._read(url, result, handler)))
        if not self._sockets:
            await self.close()
            raise SignerUnavailable("None of the bunker relays could be reached")

    async def _connect(self, url: str) -> aiohttp.ClientWebSocketResponse:
        assert self._session is not None  # noqa: S101  # created by start
        return await self._session.ws_connect(url, heartbeat=30.0)

    async def _read(
        self, url: str, ws: aiohttp.ClientWebSocketResponse, handler: EventHandler
    ) -> None:
        async for msg in ws:
            if msg.type != aiohttp.WSMsgType.TEXT:
                if msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                    break
                continue
            try:
                message: Any = json.loads(msg.data)
            except ValueError:
                continue
            if not isinstance(message, list) or len(message) < 3:  # noqa: PLR2004
                continue
            if message[0] == "EVENT" and message[1] == self._subscription:
                try:
                    event = Event.from_dict(message[2])
                except (TypeError, ValueError) as e:
                    self._logger.debug("bunker_event_invalid", relay=url, error=str(e))
                    continue
                if event.verify():
                    handler(event)
            elif message[0] == "OK" and message[2] is False:
                self._logger.warning(
                    "bunker_request_rejected",
                    relay=url,
                    reason=message[3] if len(message) > 3 else "",  # noqa: PLR2004
                )
        self._sockets.pop(url, None)
        self._logger.debug("bunker_relay_closed", relay=url)

    async def send(self, event: Event) -> None:
        """Raises ``SignerUnavailable`` when every relay connection is gone."""
        payload = json.dumps(["EVENT", event.to_dict()])
        sent = 0
        for url, ws in list(self._sockets.items()):
            try:
                await ws.send_str(payload)
                sent += 1
            except (aiohttp.ClientError, ConnectionError) as e:
                self._logger.warning("bunker_send_failed", relay=url, error=str(e))
        if not sent:
            raise SignerUnavailable("Lost connection to every bunker relay")

    async def close(self) -> None:
        for task in self._readers:
            task.cancel()
        await asyncio.gather(*self._readers, return_exceptions=True)
        self._readers.clear()
        for ws in self._sockets.values():
            with contextlib.suppress(Exception):
                await ws.close()
        self._sockets.clear()
        if self._session is not None:
            await self._session.close()
            self._session = None


class BunkerSigner(Signer):
    """Sign through a NIP-46 bunker.

    Args:
        uri: The parsed ``bunker://`` URI.
        app_keys: Stable client keypair the bunker has authorized. When
            omitted it is loaded from, or generated into, *store* on open.
        store: Keyring holding the app keypair.
        channel: Transport to the bunker; a
            [WebSocketChannel][nostrforge.signers.bunker.WebSocketChannel]
            over the URI's relays by default.
        timeout: Seconds to wait for each answer, including user approval
            on the bunker side.
    """

    BACKEND = "bunker"

    def __init__(
        self,
        uri: nip46.BunkerUri,
        app_keys: Keys | None = None,
        channel: RelayChannel | None = None,
        *,
        store: KeyringStore | None = None,
        timeout: float = DEFAULT_SIGN_TIMEOUT,
    ) -> None:
        super().__init__(timeout=timeout)
        self._uri = uri
        self._app_keys = app_keys
        self._store = store or KeyringStore()
        self._channel = channel or WebSocketChannel(uri.relays)
        self._pending: PendingRequests[nip46.Response] = PendingRequests()

    @property
    def uri(self) -> nip46.BunkerUri:
        return self._uri

    def _on_event(self, event: Event) -> None:
        if event.pubkey != self._uri.remote_pubkey:
            return
        try:
            response = nip46.open_response_event(self.app_keys, event)
        except ValueError as e:
            self._logger.debug("bunker_response_unreadable", event=event.id, error=str(e))
            return
        if response.is_auth_challenge:
            self._logger.warning(
                "bunker_auth_required",
                request_id=response.id,
                url=response.error or "",
            )
            return
        if not self._pending.resolve(response.id, response):
            self._logger.debug("bunker_response_unknown", request_id=response.id)

    async def _request(self, method: nip46.Method, *params: str) -> str:
        request = nip46.Request.create(method, *params)
        self._pending.create(request.id)
        try:
            event = nip46.build_request_event(self.app_keys, self._uri.remote_pubkey, request)
            await self._channel.send(event)
        except BaseException:
            self._pending.discard(request.id)
            raise
        self._logger.debug("bunker_request_sent", method=method.value, request_id=request.id)
        response = await self._pending.wait(request.id, self._timeout)
        if response.error is not None or response.result is None:
            raise SigningDenied(f"Bunker refused {method.value}: {response.error or 'no result'}")
        return response.result

    @property
    def app_keys(self) -> Keys:
        if self._app_keys is None:
            raise SignerUnavailable("Bunker signer has not been opened")
        return self._app_keys

    async def _open(self) -> str:
        if self._app_keys is None:
            self._app_keys = await asyncio.to_thread(self._store.load_or_create_app_keys)
        await self._channel.start(self._app_keys.public_key().to_hex(), self._on_event)
        try:
            params = [self._uri.remote_pubkey]
            if self._uri.secret:
                params.append(self._uri.secret)
            await self._request(nip46.Method.CONNECT, *params)
            pubkey = (await self._request(nip46.Method.GET_PUBLIC_KEY)).lower()
        except BaseException:
            await self._channel.close()
            raise
        if len(pubkey) != 64 or any(c not in "0123456789abcdef" for c in pubkey):  # noqa: PLR2004
            await self._channel.close()
            raise SigningDenied(f"Bunker returned an invalid public key: {pubkey!r}")
        return pubkey

    async def _sign(self, unsigned: UnsignedEvent) -> Event:
        result = await self._request(nip46.Method.SIGN_EVENT, unsigned.as_json())
        try:
            return Event.from_json(result)
        except (TypeError, ValueError) as e:
            raise SigningDenied(f"Bunker returned a malformed event: {e}") from e

    async def _close(self) -> None:
        self._pending.fail_all(SignerUnavailable("Bunker signer closed"))
        await self._channel.close()
