"""
Immutable Nostr events, signed and unsigned.

[UnsignedEvent][nostrforge.models.event.UnsignedEvent] is the template that
builders produce, the miner decorates with a nonce tag, and a
[Signer][nostrforge.signers.base.Signer] turns into a signed
[Event][nostrforge.models.event.Event]. Both compute their content-addressed
id eagerly at construction time from the canonical NIP-01 serialization
``[0, pubkey, created_at, kind, tags, content]``.

Schnorr verification is delegated to ``nostr_sdk`` so that this layer never
implements cryptography by hand.

See Also:
    [nostrforge.nips.nip13][]: Proof-of-work miner operating on
        [UnsignedEvent][nostrforge.models.event.UnsignedEvent] templates.
    [nostrforge.utils.protocol][]: Converts relay responses into
        [Event][nostrforge.models.event.Event] instances.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from time import time
from typing import Any

from nostr_sdk import Event as NostrEvent

from ._validation import (
    validate_hex,
    validate_kind,
    validate_str_no_null,
    validate_tags,
    validate_timestamp,
)


Tag = tuple[str, ...]


def _freeze_tags(tags: Iterable[Sequence[str]]) -> tuple[Tag, ...]:
    return tuple(tuple(tag) for tag in tags)


def serialize_for_id(
    pubkey: str, created_at: int, kind: int, tags: Sequence[Sequence[str]], content: str
) -> bytes:
    """Return the canonical NIP-01 serialization hashed into an event id."""
    payload = [0, pubkey, created_at, kind, [list(tag) for tag in tags], content]
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def compute_event_id(
    pubkey: str, created_at: int, kind: int, tags: Sequence[Sequence[str]], content: str
) -> str:
    """Return the lowercase hex SHA-256 id of an event."""
    return hashlib.sha256(serialize_for_id(pubkey, created_at, kind, tags, content)).hexdigest()


class _TagAccess:
    """Read helpers shared by signed and unsigned events."""

    __slots__ = ()

    tags: tuple[Tag, ...]

    def find_tags(self, name: str) -> list[Tag]:
        """Return every tag whose first element equals *name*, in order."""
        return [tag for tag in self.tags if tag[0] == name]

    def first_tag(self, name: str) -> Tag | None:
        """Return the first tag named *name*, or ``None``."""
        for tag in self.tags:
            if tag[0] == name:
                return tag
        return None

    def tag_value(self, name: str) -> str | None:
        """Return the second element of the first tag named *name*."""
        tag = self.first_tag(name)
        if tag is None or len(tag) < 2:  # noqa: PLR2004
            return None
        return tag[1]

    def tag_values(self, name: str) -> list[str]:
        """Return the second element of every tag named *name*."""
        return [tag[1] for tag in self.find_tags(name) if len(tag) > 1]


@dataclass(frozen=True, slots=True)
class UnsignedEvent(_TagAccess):
    """Event template awaiting a signature.

    Attributes:
        pubkey: Hex public key of the future signer.
        kind: Event kind.
        tags: Ordered tags; lists are normalised into tuples.
        content: Event content.
        created_at: Unix timestamp, defaulting to now.
        id: Content-addressed id (computed, not an input).

    Raises:
        ValueError: If a field is malformed or contains null bytes.
        TypeError: If a field has the wrong type.
    """

    pubkey: str
    kind: int
    tags: tuple[Tag, ...] = ()
    content: str = ""
    created_at: int = field(default_factory=lambda: int(time()))
    id: str = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "tags", _freeze_tags(self.tags))
        validate_hex(self.pubkey, "pubkey")
        validate_kind(self.kind)
        validate_tags(self.tags)
        validate_str_no_null(self.content, "content")
        validate_timestamp(self.created_at, "created_at")
        object.__setattr__(
            self,
            "id",
            compute_event_id(self.pubkey, self.created_at, self.kind, self.tags, self.content),
        )

    def with_tags(self, tags: Iterable[Sequence[str]]) -> UnsignedEvent:
        """Return a copy with *tags* appended."""
        return UnsignedEvent(
            pubkey=self.pubkey,
            kind=self.kind,
            tags=(*self.tags, *_freeze_tags(tags)),
            content=self.content,
            created_at=self.created_at,
        )

    def replace_tag(self, tag: Sequence[str]) -> UnsignedEvent:
        """Return a copy where every tag named ``tag[0]`` is replaced by *tag*."""
        kept = [t for t in self.tags if t[0] != tag[0]]
        return UnsignedEvent(
            pubkey=self.pubkey,
            kind=self.kind,
            tags=(*kept, tuple(tag)),
            content=self.content,
            created_at=self.created_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the NIP-46 / NIP-07 ``sign_event`` parameter shape."""
        return {
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
        }

    def as_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    def to_event(self, sig: str) -> Event:
        """Attach a signature, producing a signed [Event][nostrforge.models.event.Event]."""
        return Event(
            id=self.id,
            pubkey=self.pubkey,
            created_at=self.created_at,
            kind=self.kind,
            tags=self.tags,
            content=self.content,
            sig=sig,
        )


@dataclass(frozen=True, slots=True)
class Event(_TagAccess):
    """Immutable signed Nostr event.

    The declared ``id`` is checked against the recomputed digest at
    construction time, so an instance always carries a consistent id.
    The signature itself is checked lazily by
    [verify()][nostrforge.models.event.Event.verify].

    Examples:
        ```python
        event = Event.from_json(raw)
        event.verify()            # True for a correctly signed event
        event.tag_values("a")     # ['30617:<pubkey>:<identifier>', ...]
        ```
    """

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: tuple[Tag, ...]
    content: str
    sig: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "tags", _freeze_tags(self.tags))
        validate_hex(self.id, "id")
        validate_hex(self.pubkey, "pubkey")
        validate_hex(self.sig, "sig", length=128)
        validate_kind(self.kind)
        validate_tags(self.tags)
        validate_str_no_null(self.content, "content")
        validate_timestamp(self.created_at, "created_at")
        expected = compute_event_id(
            self.pubkey, self.created_at, self.kind, self.tags, self.content
        )
        if expected != self.id:
            raise ValueError(f"Event id mismatch: declared {self.id[:16]}..., computed {expected[:16]}...")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Event:
        """Build an event from its NIP-01 JSON object shape."""
        try:
            return cls(
                id=data["id"],
                pubkey=data["pubkey"],
                created_at=data["created_at"],
                kind=data["kind"],
                tags=data.get("tags", []),
                content=data.get("content", ""),
                sig=data["sig"],
            )
        except KeyError as e:
            raise ValueError(f"Event is missing field {e.args[0]!r}") from None

    @classmethod
    def from_json(cls, raw: str) -> Event:
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("Event JSON must be an object")
        return cls.from_dict(data)

    @classmethod
    def from_nostr(cls, nostr_event: NostrEvent) -> Event:
        """Convert a ``nostr_sdk.Event`` received from a relay."""
        return cls.from_json(nostr_event.as_json())

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
            "sig": self.sig,
        }

    def as_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    def to_nostr(self) -> NostrEvent:
        """Convert to a ``nostr_sdk.Event`` for publishing."""
        return NostrEvent.from_json(self.as_json())

    def verify(self) -> bool:
        """Return ``True`` when the id and Schnorr signature are both valid."""
        try:
            return bool(self.to_nostr().verify())
        except Exception:  # noqa: BLE001  # nostr_sdk raises its own error type on bad sig
            return False
