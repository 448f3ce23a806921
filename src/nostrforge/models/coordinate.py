"""
Addressable repository coordinates.

A coordinate is the ``kind:pubkey:identifier`` triple that names the latest
announcement of a repository, optionally accompanied by relay hints telling
where that announcement can be found.

See Also:
    [nostrforge.nips.nip19][]: Encodes coordinates as ``naddr`` identifiers.
    [nostrforge.services.resolver][]: Produces coordinates from every
        supported reference form.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from ._validation import validate_hex, validate_kind, validate_str_not_empty
from .constants import EventKind
from .relay import Relay


_KEBAB_CASE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


def is_kebab_case(value: str) -> bool:
    """Return ``True`` for lowercase ``words-joined-by-dashes`` identifiers."""
    return bool(_KEBAB_CASE.match(value))


@dataclass(frozen=True, slots=True)
class RepositoryCoordinate:
    """Reference to an addressable event (by default a repository announcement).

    Equality includes relay hints; use
    [address][nostrforge.models.coordinate.RepositoryCoordinate.address]
    to compare coordinates regardless of where they were seen.

    Attributes:
        pubkey: Hex public key of the repository owner.
        identifier: The ``d`` tag of the announcement.
        kind: Addressable kind, 30617 for repositories.
        relays: Relay hints in the order they were given.

    Examples:
        ```python
        coord = RepositoryCoordinate(pubkey=owner, identifier="nostrforge")
        coord.address       # '30617:<owner>:nostrforge'
        coord.as_tag()      # ('a', '30617:<owner>:nostrforge')
        ```
    """

    pubkey: str
    identifier: str
    kind: int = EventKind.REPOSITORY_ANNOUNCEMENT
    relays: tuple[str, ...] = field(default=())

    def __post_init__(self) -> None:
        validate_hex(self.pubkey, "pubkey")
        validate_kind(self.kind)
        if not isinstance(self.identifier, str):
            raise TypeError(f"identifier must be a str, got {type(self.identifier).__name__}")
        if "\x00" in self.identifier:
            raise ValueError("identifier contains null bytes")
        object.__setattr__(self, "kind", int(self.kind))
        object.__setattr__(self, "relays", tuple(Relay(url).url for url in self.relays))

    @property
    def address(self) -> str:
        """The ``kind:pubkey:identifier`` string used in ``a`` tags."""
        return f"{self.kind}:{self.pubkey}:{self.identifier}"

    @classmethod
    def parse(cls, address: str, relays: tuple[str, ...] = ()) -> RepositoryCoordinate:
        """Parse a ``kind:pubkey:identifier`` string.

        Raises:
            ValueError: If the string does not have three parts or the kind
                is not an integer.
        """
        validate_str_not_empty(address, "address")
        parts = address.split(":", 2)
        if len(parts) != 3:  # noqa: PLR2004
            raise ValueError(f"Coordinate must be kind:pubkey:identifier, got {address!r}")
        kind, pubkey, identifier = parts
        try:
            kind_value = int(kind)
        except ValueError:
            raise ValueError(f"Coordinate kind is not an integer: {kind!r}") from None
        return cls(pubkey=pubkey, identifier=identifier, kind=kind_value, relays=relays)

    def as_tag(self, relay_hint: str | None = None) -> tuple[str, ...]:
        """Return the ``a`` tag, with the first relay hint when one is known."""
        hint = relay_hint if relay_hint is not None else (self.relays[0] if self.relays else None)
        if hint:
            return ("a", self.address, hint)
        return ("a", self.address)

    def with_relays(self, relays: tuple[str, ...]) -> RepositoryCoordinate:
        merged = tuple(dict.fromkeys((*self.relays, *relays)))
        return RepositoryCoordinate(
            pubkey=self.pubkey, identifier=self.identifier, kind=self.kind, relays=merged
        )


def dedup_coordinates(coordinates: list[RepositoryCoordinate]) -> list[RepositoryCoordinate]:
    """Merge coordinates naming the same address, uniting their relay hints."""
    merged: dict[str, RepositoryCoordinate] = {}
    for coordinate in coordinates:
        known = merged.get(coordinate.address)
        merged[coordinate.address] = (
            coordinate if known is None else known.with_relays(coordinate.relays)
        )
    return list(merged.values())
