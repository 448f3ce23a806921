"""
Repository and event references as typed by the user.

The resolver accepts four closed forms of reference, modelled as a tagged
union of frozen dataclasses:

* [CoordinateReference][nostrforge.models.references.CoordinateReference] --
  a decoded ``naddr`` pointing at a repository announcement.
* [EventReference][nostrforge.models.references.EventReference] -- a decoded
  ``nevent``/``note`` pointing at an issue, patch or pull request.
* [DomainReference][nostrforge.models.references.DomainReference] -- a
  NIP-05 ``[name@]domain/repository`` form resolved over HTTPS.
* [SetReference][nostrforge.models.references.SetReference] -- the name of a
  locally configured [RepositorySet][nostrforge.models.references.RepositorySet].
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ._validation import validate_hex, validate_str_not_empty
from .coordinate import RepositoryCoordinate, dedup_coordinates
from .relay import Relay


DEFAULT_NIP05_NAME = "_"


@dataclass(frozen=True, slots=True)
class CoordinateReference:
    coordinate: RepositoryCoordinate


@dataclass(frozen=True, slots=True)
class EventReference:
    """Reference to a single event with optional hints about it."""

    event_id: str
    relays: tuple[str, ...] = ()
    author: str | None = None
    kind: int | None = None

    def __post_init__(self) -> None:
        validate_hex(self.event_id, "event_id")
        if self.author is not None:
            validate_hex(self.author, "author")
        object.__setattr__(self, "relays", tuple(Relay(url).url for url in self.relays))


@dataclass(frozen=True, slots=True)
class DomainReference:
    """NIP-05 repository address, ``name@domain/repository``.

    A missing ``name`` resolves the domain's root identity ``_``.
    """

    domain: str
    repository: str
    name: str = DEFAULT_NIP05_NAME

    def __post_init__(self) -> None:
        validate_str_not_empty(self.domain, "domain")
        validate_str_not_empty(self.repository, "repository")
        validate_str_not_empty(self.name, "name")
        object.__setattr__(self, "domain", self.domain.lower())
        object.__setattr__(self, "name", self.name.lower())

    @classmethod
    def parse(cls, text: str) -> DomainReference:
        """Parse ``[name@]domain/repository``.

        Raises:
            ValueError: If the repository or domain part is missing.
        """
        address, sep, repository = text.strip().partition("/")
        if not sep or not repository or "/" in repository:
            raise ValueError(f"Expected [name@]domain/repository, got {text!r}")
        name, at, domain = address.rpartition("@")
        if not at:
            return cls(domain=address, repository=repository)
        return cls(domain=domain, repository=repository, name=name or DEFAULT_NIP05_NAME)

    def __str__(self) -> str:
        return f"{self.name}@{self.domain}/{self.repository}"


@dataclass(frozen=True, slots=True)
class SetReference:
    name: str

    def __post_init__(self) -> None:
        validate_str_not_empty(self.name, "name")


IdentifierReference = CoordinateReference | EventReference | DomainReference | SetReference


@dataclass(frozen=True, slots=True)
class RepositorySet:
    """A named, user-defined group of repositories and relays.

    Coordinates are deduplicated by address (relay hints merged), relays by
    normalized URL.
    """

    name: str
    coordinates: tuple[RepositoryCoordinate, ...] = ()
    relays: tuple[str, ...] = field(default=())

    def __post_init__(self) -> None:
        validate_str_not_empty(self.name, "name")
        object.__setattr__(self, "coordinates", tuple(dedup_coordinates(list(self.coordinates))))
        normalized = (Relay(url).url for url in self.relays)
        object.__setattr__(self, "relays", tuple(dict.fromkeys(normalized)))

    def extend(
        self,
        coordinates: tuple[RepositoryCoordinate, ...] = (),
        relays: tuple[str, ...] = (),
    ) -> RepositorySet:
        return RepositorySet(
            name=self.name,
            coordinates=(*self.coordinates, *coordinates),
            relays=(*self.relays, *relays),
        )

    def without(
        self,
        addresses: frozenset[str] = frozenset(),
        relays: frozenset[str] = frozenset(),
    ) -> RepositorySet:
        """Return a copy without the given coordinate addresses and relay URLs."""
        normalized = {Relay(url).url for url in relays}
        return RepositorySet(
            name=self.name,
            coordinates=tuple(c for c in self.coordinates if c.address not in addresses),
            relays=tuple(r for r in self.relays if r not in normalized),
        )
