"""NIP-46 remote signing ("Nostr Connect") message layer.

A client and a remote signer (the *bunker*) exchange kind-24133 events.
Each event is signed by the sender's key, tags the recipient with ``p`` and
carries a NIP-44 encrypted JSON-RPC-like payload:

```text
request   {"id": "<random>", "method": "sign_event", "params": ["<event json>"]}
response  {"id": "<same id>", "result": "<signed event json>", "error": null}
```

The client side uses a stable *app* keypair that the bunker has authorized;
the user's own key never leaves the bunker. A response whose ``result`` is
``auth_url`` asks the user to approve the app in a browser; the real answer
follows later with the same id.

See Also:
    [BunkerSigner][nostrforge.signers.bunker.BunkerSigner]: Drives the
        request/response exchange over a relay connection.
"""

from __future__ import annotations

import json
import secrets
from dataclasses import dataclass
from enum import StrEnum
from typing import Any
from urllib.parse import parse_qs, urlencode, urlsplit

from nostr_sdk import Keys, Nip44Version, PublicKey, nip44_decrypt, nip44_encrypt

from nostrforge.core.exceptions import MalformedIdentifier
from nostrforge.models._validation import validate_hex
from nostrforge.models.constants import EventKind
from nostrforge.models.event import Event, UnsignedEvent
from nostrforge.models.relay import Relay
from nostrforge.utils.keys import sign_with_keys


BUNKER_SCHEME = "bunker"
AUTH_URL = "auth_url"


class Method(StrEnum):
    CONNECT = "connect"
    GET_PUBLIC_KEY = "get_public_key"
    SIGN_EVENT = "sign_event"
    PING = "ping"


@dataclass(frozen=True, slots=True)
class BunkerUri:
    """Parsed ``bunker://<remote-pubkey>?relay=<url>&secret=<token>`` URI.

    Attributes:
        remote_pubkey: Hex public key the bunker answers with.
        relays: Relays the bunker listens on, in URI order.
        secret: Optional one-time connection secret.
    """

    remote_pubkey: str
    relays: tuple[str, ...]
    secret: str | None = None

    @classmethod
    def parse(cls, uri: str) -> BunkerUri:
        """Raises ``MalformedIdentifier`` for anything that is not a usable bunker URI."""
        parts = urlsplit(uri.strip())
        if parts.scheme != BUNKER_SCHEME:
            raise MalformedIdentifier(f"Not a bunker URI: {uri!r}")
        remote_pubkey = parts.netloc.lower()
        try:
            validate_hex(remote_pubkey, "remote_pubkey")
        except (TypeError, ValueError) as e:
            raise MalformedIdentifier(f"Invalid bunker public key in {uri!r}") from e

        query = parse_qs(parts.query)
        try:
            relays = tuple(dict.fromkeys(Relay(url).url for url in query.get("relay", [])))
        except (TypeError, ValueError) as e:
            raise MalformedIdentifier(f"Invalid relay in bunker URI: {e}") from e
        if not relays:
            raise MalformedIdentifier(f"Bunker URI names no relay: {uri!r}")
        secret = query.get("secret", [None])[0]
        return cls(remote_pubkey=remote_pubkey, relays=relays, secret=secret)

    def __str__(self) -> str:
        query: list[tuple[str, str]] = [("relay", url) for url in self.relays]
        if self.secret:
            query.append(("secret", self.secret))
        return f"{BUNKER_SCHEME}://{self.remote_pubkey}?{urlencode(query)}"


@dataclass(frozen=True, slots=True)
class Request:
    id: str
    method: Method
    params: tuple[str, ...] = ()

    @classmethod
    def create(cls, method: Method, *params: str) -> Request:
        return cls(id=secrets.token_hex(8), method=method, params=params)

    def to_json(self) -> str:
        return json.dumps({"id": self.id, "method": self.method.value, "params": list(self.params)})


@dataclass(frozen=True, slots=True)
class Response:
    """A decrypted response.

    Attributes:
        result: The method's result, or ``auth_url`` for an approval challenge.
        error: Error text from the bunker, or the approval URL for a challenge.
    """

    id: str
    result: str | None = None
    error: str | None = None

    @property
    def is_auth_challenge(self) -> bool:
        return self.result == AUTH_URL

    @classmethod
    def from_json(cls, raw: str) -> Response:
        """Raises ``ValueError`` for a payload that is not a response object."""
        data: Any = json.loads(raw)
        if not isinstance(data, dict) or not isinstance(data.get("id"), str):
            raise ValueError("Response has no string id")
        result = data.get("result")
        error = data.get("error")
        return cls(
            id=data["id"],
            result=result if isinstance(result, str) and result else None,
            error=error if isinstance(error, str) and error else None,
        )


def encrypt(keys: Keys, peer_pubkey: str, plaintext: str) -> str:
    return nip44_encrypt(keys.secret_key(), PublicKey.parse(peer_pubkey), plaintext, Nip44Version.V2)


def decrypt(keys: Keys, peer_pubkey: str, payload: str) -> str:
    return nip44_decrypt(keys.secret_key(), PublicKey.parse(peer_pubkey), payload)


def build_request_event(app_keys: Keys, remote_pubkey: str, request: Request) -> Event:
    """Encrypt *request* to the bunker and sign it with the app keys."""
    unsigned = UnsignedEvent(
        pubkey=app_keys.public_key().to_hex(),
        kind=EventKind.NOSTR_CONNECT,
        tags=(("p", remote_pubkey),),
        content=encrypt(app_keys, remote_pubkey, request.to_json()),
    )
    return sign_with_keys(app_keys, unsigned)


def open_response_event(app_keys: Keys, event: Event) -> Response:
    """Decrypt a kind-24133 event sent to the app keys.

    Raises:
        ValueError: If the event is not addressed to the app or cannot be
            decrypted and parsed.
    """
    if event.kind != EventKind.NOSTR_CONNECT:
        raise ValueError(f"Unexpected kind {event.kind}")
    if app_keys.public_key().to_hex() not in event.tag_values("p"):
        raise ValueError("Response is not addressed to this client")
    try:
        plaintext = decrypt(app_keys, event.pubkey, event.content)
    except Exception as e:  # nostr_sdk raises its own NostrSdkError
        raise ValueError(f"Cannot decrypt response: {e}") from e
    return Response.from_json(plaintext)
