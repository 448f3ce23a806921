"""NIP-19 bech32 identifiers and NIP-21 ``nostr:`` URIs.

Maps the bech32 entities a collaboration client exchanges with users onto
this package's models, with ``nostr_sdk`` doing the bech32 and TLV work:

* ``naddr`` -- [RepositoryCoordinate][nostrforge.models.coordinate.RepositoryCoordinate]
* ``nevent`` -- [EventReference][nostrforge.models.references.EventReference]
* ``note`` -- [NoteId][nostrforge.nips.nip19.NoteId]
* ``nprofile`` -- [ProfilePointer][nostrforge.nips.nip19.ProfilePointer]
* ``npub`` -- [PublicKeyId][nostrforge.nips.nip19.PublicKeyId]

Decoding is strict: anything ``nostr_sdk`` refuses, a mixed-case string, an
unknown prefix or a relay hint that is not a public ``ws``/``wss`` relay
raises [MalformedIdentifier][nostrforge.core.exceptions.MalformedIdentifier].
Relay hints keep their order. Encoding embeds at most
[MAX_RELAY_HINTS][nostrforge.models.constants.MAX_RELAY_HINTS] hints, so
``decode(encode(x)) == x`` holds for entities within that limit.

Examples:
    ```python
    naddr = encode(RepositoryCoordinate(pubkey=owner, identifier="nostrforge"))
    decode(naddr).address   # '30617:<owner>:nostrforge'
    decode("nostr:" + naddr) == decode(naddr)   # True
    ```
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from nostr_sdk import (
    Coordinate,
    EventId,
    Kind,
    Nip19Coordinate,
    Nip19Event,
    Nip19Profile,
    NostrSdkError,
    PublicKey,
    RelayUrl,
)

from nostrforge.core.exceptions import MalformedIdentifier
from nostrforge.models._validation import validate_hex
from nostrforge.models.constants import MAX_RELAY_HINTS, EventKind
from nostrforge.models.coordinate import RepositoryCoordinate
from nostrforge.models.references import (
    CoordinateReference,
    DomainReference,
    EventReference,
    IdentifierReference,
    SetReference,
)
from nostrforge.models.relay import Relay, RelaySet


NOSTR_URI_PREFIX = "nostr:"

_HEX_ID = re.compile(r"^[0-9a-f]{64}$")


# =============================================================================
# Entities
# =============================================================================


@dataclass(frozen=True, slots=True)
class NoteId:
    event_id: str

    def __post_init__(self) -> None:
        validate_hex(self.event_id, "event_id")


@dataclass(frozen=True, slots=True)
class PublicKeyId:
    pubkey: str

    def __post_init__(self) -> None:
        validate_hex(self.pubkey, "pubkey")


@dataclass(frozen=True, slots=True)
class ProfilePointer:
    pubkey: str
    relays: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        validate_hex(self.pubkey, "pubkey")
        object.__setattr__(self, "relays", tuple(Relay(url).url for url in self.relays))


Nip19Entity = RepositoryCoordinate | EventReference | NoteId | ProfilePointer | PublicKeyId


# =============================================================================
# nostr_sdk conversion
# =============================================================================


def _to_relay_urls(relays: tuple[str, ...]) -> list[RelayUrl]:
    return [RelayUrl.parse(url) for url in RelaySet.from_urls(relays).limit(MAX_RELAY_HINTS).urls]


def _from_relay_urls(relays: list[RelayUrl]) -> tuple[str, ...]:
    return tuple(str(url) for url in relays)


def _to_sdk(entity: Nip19Entity) -> Nip19Coordinate | Nip19Event | Nip19Profile | PublicKey | EventId:
    if isinstance(entity, RepositoryCoordinate):
        coordinate = Coordinate(Kind(entity.kind), PublicKey.parse(entity.pubkey), entity.identifier)
        return Nip19Coordinate(coordinate, _to_relay_urls(entity.relays))
    if isinstance(entity, EventReference):
        return Nip19Event(
            EventId.parse(entity.event_id),
            PublicKey.parse(entity.author) if entity.author is not None else None,
            Kind(entity.kind) if entity.kind is not None else None,
            _to_relay_urls(entity.relays),
        )
    if isinstance(entity, ProfilePointer):
        return Nip19Profile(PublicKey.parse(entity.pubkey), _to_relay_urls(entity.relays))
    if isinstance(entity, NoteId):
        return EventId.parse(entity.event_id)
    if isinstance(entity, PublicKeyId):
        return PublicKey.parse(entity.pubkey)
    raise TypeError(f"Cannot encode {type(entity).__name__} as NIP-19")


def _from_sdk(hrp: str, text: str) -> Nip19Entity:
    if hrp == "npub":
        return PublicKeyId(PublicKey.from_bech32(text).to_hex())
    if hrp == "note":
        return NoteId(EventId.from_bech32(text).to_hex())
    if hrp == "nprofile":
        profile = Nip19Profile.from_bech32(text)
        return ProfilePointer(
            pubkey=profile.public_key().to_hex(), relays=_from_relay_urls(profile.relays())
        )
    if hrp == "nevent":
        event = Nip19Event.from_bech32(text)
        author = event.author()
        kind = event.kind()
        return EventReference(
            event_id=event.event_id().to_hex(),
            relays=_from_relay_urls(event.relays()),
            author=author.to_hex() if author is not None else None,
            kind=kind.as_u16() if kind is not None else None,
        )
    if hrp == "naddr":
        naddr = Nip19Coordinate.from_bech32(text)
        coordinate = naddr.coordinate()
        return RepositoryCoordinate(
            pubkey=coordinate.public_key().to_hex(),
            identifier=coordinate.identifier(),
            kind=coordinate.kind().as_u16(),
            relays=_from_relay_urls(naddr.relays()),
        )
    raise MalformedIdentifier(f"Unsupported NIP-19 prefix {hrp!r}")


# =============================================================================
# Public API
# =============================================================================


def encode(entity: Nip19Entity) -> str:
    """Encode an entity as a bech32 identifier (without ``nostr:`` prefix).

    Raises:
        MalformedIdentifier: If ``nostr_sdk`` cannot represent the entity.
        TypeError: If *entity* is not a supported entity type.
    """
    try:
        return _to_sdk(entity).to_bech32()
    except (NostrSdkError, ValueError, OverflowError) as e:
        raise MalformedIdentifier(f"Cannot encode {type(entity).__name__}: {e}") from None


def decode(text: str) -> Nip19Entity:
    """Decode a NIP-19 identifier, with or without the ``nostr:`` prefix.

    Raises:
        MalformedIdentifier: If the identifier is invalid in any way.
    """
    text = text.strip()
    if text.lower().startswith(NOSTR_URI_PREFIX):
        text = text[len(NOSTR_URI_PREFIX) :]
    if text != text.lower() and text != text.upper():
        raise MalformedIdentifier("Mixed-case bech32 string")
    text = text.lower()
    separator = text.rfind("1")
    if separator < 1:
        raise MalformedIdentifier("Missing bech32 separator")
    hrp = text[:separator]

    try:
        return _from_sdk(hrp, text)
    except (NostrSdkError, TypeError, ValueError) as e:
        raise MalformedIdentifier(f"Invalid {hrp}: {e}") from None


# =============================================================================
# Free-text references
# =============================================================================


def decode_coordinate(text: str) -> RepositoryCoordinate:
    """Decode an ``naddr`` that must point at a repository announcement.

    Raises:
        MalformedIdentifier: If *text* is not an ``naddr`` of kind 30617.
    """
    entity = decode(text)
    if not isinstance(entity, RepositoryCoordinate):
        raise MalformedIdentifier(f"Expected an naddr, got {text[:12]}...")
    if entity.kind != EventKind.REPOSITORY_ANNOUNCEMENT:
        raise MalformedIdentifier(
            f"naddr kind must be {int(EventKind.REPOSITORY_ANNOUNCEMENT)}, got {entity.kind}"
        )
    return entity


def decode_event_reference(text: str) -> EventReference:
    """Decode ``nevent``, ``note`` or a bare 64-char hex id into an event reference.

    Raises:
        MalformedIdentifier: If *text* is none of those forms.
    """
    text = text.strip()
    if _HEX_ID.match(text):
        return EventReference(event_id=text)
    entity = decode(text)
    if isinstance(entity, EventReference):
        return entity
    if isinstance(entity, NoteId):
        return EventReference(event_id=entity.event_id)
    raise MalformedIdentifier(f"Expected an nevent or note, got {text[:12]}...")


def decode_public_key(text: str) -> str:
    """Return the hex public key of an ``npub``/``nprofile`` or hex key.

    Raises:
        MalformedIdentifier: If *text* is none of those forms.
    """
    text = text.strip()
    if _HEX_ID.match(text):
        return text
    entity = decode(text)
    if isinstance(entity, PublicKeyId | ProfilePointer):
        return entity.pubkey
    raise MalformedIdentifier(f"Expected an npub or nprofile, got {text[:12]}...")


def parse_reference(text: str) -> IdentifierReference:
    """Classify free text as one of the four repository reference forms.

    * contains ``/`` -- NIP-05 ``[name@]domain/repository``
    * ``naddr1...`` (optionally ``nostr:`` prefixed) -- coordinate
    * ``nevent1...`` / ``note1...`` -- event reference
    * anything else -- the name of a configured set

    Raises:
        MalformedIdentifier: If an ``naddr``/``nevent``/``note`` or a NIP-05
            form cannot be decoded.
    """
    text = text.strip()
    bare = text[len(NOSTR_URI_PREFIX) :] if text.lower().startswith(NOSTR_URI_PREFIX) else text
    lowered = bare.lower()

    if "/" in text:
        try:
            return DomainReference.parse(text)
        except ValueError as e:
            raise MalformedIdentifier(str(e)) from None
    if lowered.startswith("naddr1"):
        return CoordinateReference(decode_coordinate(bare))
    if lowered.startswith(("nevent1", "note1")):
        return decode_event_reference(bare)
    try:
        return SetReference(text)
    except ValueError as e:
        raise MalformedIdentifier(str(e)) from None


_MENTION = re.compile(r"nostr:(npub1[02-9ac-hj-np-z]+|nprofile1[02-9ac-hj-np-z]+)")


def extract_mentions(content: str) -> list[str]:
    """Return hex public keys mentioned as ``nostr:npub``/``nostr:nprofile``.

    Undecodable mentions are ignored, duplicates removed, order kept.
    """
    found: dict[str, None] = {}
    for match in _MENTION.finditer(content):
        try:
            found[decode_public_key(match.group(1))] = None
        except MalformedIdentifier:
            continue
    return list(found)
