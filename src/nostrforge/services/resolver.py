"""Resolution of repository references to coordinates and relays.

Every command names its repositories in one of four forms, each resolved
differently:

| Form                               | Resolution                                   |
|------------------------------------|----------------------------------------------|
| ``naddr1...``                      | decoded, relay hints kept                    |
| ``[name@]domain/repository``       | NIP-05 lookup of the owner                   |
| ``nevent1...`` / ``note1...``      | event fetched, its ``a`` tags used           |
| any other word                     | named set from the configuration             |

Relays are then discovered the gossip way: the owners' kind-10002 relay
lists are fetched and their write relays used, together with relay hints,
set relays and the relays each repository announcement names. The
configured fallback relays are only used when none of those yields a relay.

See Also:
    [CollaborationEngine][nostrforge.services.engine.CollaborationEngine]:
        Consumes the [Resolution][nostrforge.services.resolver.Resolution].
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from nostrforge.core.config import ConfigSource  # noqa: TC001
from nostrforge.core.exceptions import InvalidEventError, UnresolvedRepository
from nostrforge.core.logger import Logger
from nostrforge.models.collaboration import RepositoryAnnouncement
from nostrforge.models.constants import EventKind
from nostrforge.models.coordinate import RepositoryCoordinate, dedup_coordinates
from nostrforge.models.event import Event
from nostrforge.models.references import (
    CoordinateReference,
    DomainReference,
    EventReference,
    IdentifierReference,
    SetReference,
)
from nostrforge.models.relay import RelayAccess, RelaySet
from nostrforge.nips import nip05, nip19
from nostrforge.nips.nip34.parsing import parse_announcement, repository_coordinates
from nostrforge.nips.nip65 import latest_relay_lists
from nostrforge.utils.transport import RelayPool  # noqa: TC001


Reference = IdentifierReference | str


@dataclass(frozen=True, slots=True)
class Resolution:
    """Where a set of repositories lives.

    Attributes:
        coordinates: Distinct repository coordinates, in reference order.
        relays: Relays to publish to and query from.
        maintainers: Owners plus announced maintainers, in that order.
        announcements: Latest announcement per coordinate address.
        events: Events fetched while resolving ``nevent``/``note`` references.
    """

    coordinates: tuple[RepositoryCoordinate, ...]
    relays: RelaySet
    maintainers: tuple[str, ...] = ()
    announcements: dict[str, RepositoryAnnouncement] = field(default_factory=dict, hash=False)
    events: tuple[Event, ...] = ()

    @property
    def owners(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys(c.pubkey for c in self.coordinates))

    @property
    def addresses(self) -> list[str]:
        return [c.address for c in self.coordinates]

    @property
    def relay_hint(self) -> str | None:
        """First relay, written into ``a``/``e`` tags."""
        urls = self.relays.urls
        return urls[0] if urls else None


class AddressResolver:
    """Resolve references through NIP-19, NIP-05, sets and NIP-65 gossip.

    Args:
        pool: Relay transport for gossip and event lookups.
        config: Source of named sets and fallback relays.
        nip05_timeout: Seconds allowed for one ``nostr.json`` fetch.
    """

    def __init__(
        self,
        pool: RelayPool,
        config: ConfigSource,
        *,
        nip05_timeout: float = nip05.DEFAULT_TIMEOUT,
    ) -> None:
        self._pool = pool
        self._config = config
        self._nip05_timeout = nip05_timeout
        self._logger = Logger("nostrforge.services.resolver")

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    async def fetch_event(self, reference: EventReference | str, relays: RelaySet | None = None) -> Event:
        """Fetch one event by id from its hints, *relays* and the fallbacks.

        Raises:
            MalformedIdentifier: If *reference* text cannot be decoded.
            InvalidEventError: If no relay returned the event.
        """
        if isinstance(reference, str):
            reference = nip19.decode_event_reference(reference)
        targets = RelaySet.from_urls(reference.relays).merge(
            relays or RelaySet(), self._config.default_relays()
        )
        if reference.author is not None:
            targets = targets | await self.outbox_relays([reference.author], fallback=targets)

        events = await self._pool.query({"ids": [reference.event_id]}, targets)
        for event in events:
            if event.id == reference.event_id:
                return event
        raise InvalidEventError(f"Event {reference.event_id} was not found on {len(targets)} relays")

    # -------------------------------------------------------------------------
    # Gossip
    # -------------------------------------------------------------------------

    async def outbox_relays(
        self,
        pubkeys: Sequence[str],
        *,
        fallback: RelaySet | None = None,
        access: RelayAccess = RelayAccess.WRITE,
    ) -> RelaySet:
        """Return the relays *pubkeys* advertise for *access* in their relay lists.

        The lists are looked up on *fallback* plus the configured defaults.
        Authors without a relay list contribute nothing.
        """
        if not pubkeys:
            return RelaySet()
        lookup = (fallback or RelaySet()) | self._config.default_relays()
        if not lookup:
            return RelaySet()
        events = await self._pool.query(
            {"kinds": [int(EventKind.RELAY_LIST)], "authors": list(dict.fromkeys(pubkeys))},
            lookup,
        )
        lists = latest_relay_lists(events)
        found = RelaySet()
        for pubkey in pubkeys:
            relay_set = lists.get(pubkey)
            if relay_set is None:
                continue
            found = found | (relay_set.writable() if access is RelayAccess.WRITE else relay_set.readable())
        self._logger.debug("outbox_relays_resolved", authors=len(pubkeys), relays=len(found))
        return found

    # -------------------------------------------------------------------------
    # Repositories
    # -------------------------------------------------------------------------

    async def _expand(
        self, reference: IdentifierReference
    ) -> tuple[list[RepositoryCoordinate], RelaySet, Event | None]:
        if isinstance(reference, CoordinateReference):
            return [reference.coordinate], RelaySet(), None
        if isinstance(reference, DomainReference):
            coordinate = await nip05.resolve_domain(reference, timeout=self._nip05_timeout)
            return [coordinate], RelaySet(), None
        if isinstance(reference, SetReference):
            coordinates, relays = self._config.resolve_set(reference.name)
            return coordinates, relays, None
        event = await self.fetch_event(reference)
        return repository_coordinates(event), RelaySet.from_urls(reference.relays), event

    async def announcements(
        self, coordinates: Sequence[RepositoryCoordinate], relays: RelaySet
    ) -> dict[str, RepositoryAnnouncement]:
        """Latest announcement for each coordinate found on *relays*."""
        if not coordinates or not relays:
            return {}
        events = await self._pool.query(
            {
                "kinds": [int(EventKind.REPOSITORY_ANNOUNCEMENT)],
                "authors": list(dict.fromkeys(c.pubkey for c in coordinates)),
                "#d": list(dict.fromkeys(c.identifier for c in coordinates)),
            },
            relays,
        )
        wanted = {c.address for c in coordinates}
        latest: dict[str, RepositoryAnnouncement] = {}
        # newest first, so the first seen per address wins
        for event in events:
            identifier = event.tag_value("d")
            address = f"{event.kind}:{event.pubkey}:{identifier}"
            if address not in wanted or address in latest:
                continue
            try:
                latest[address] = parse_announcement(event)
            except InvalidEventError as e:
                self._logger.debug("announcement_invalid", event=event.id, error=str(e))
        return latest

    async def resolve(self, references: Sequence[Reference]) -> Resolution:
        """Resolve *references* into one combined resolution.

        Raises:
            MalformedIdentifier: If a reference cannot be decoded.
            UnresolvedRepository: If no coordinate is found.
            ConfigurationError: If a named set does not exist.
        """
        coordinates: list[RepositoryCoordinate] = []
        explicit = RelaySet()
        events: list[Event] = []
        for item in references:
            reference = nip19.parse_reference(item) if isinstance(item, str) else item
            found, relays, event = await self._expand(reference)
            coordinates.extend(found)
            explicit = explicit | relays
            if event is not None:
                events.append(event)

        coordinates = dedup_coordinates(coordinates)
        if not coordinates:
            raise UnresolvedRepository("No repository coordinate found for the given references")

        hints = RelaySet.from_urls([url for c in coordinates for url in c.relays])
        known = explicit | hints
        owners = list(dict.fromkeys(c.pubkey for c in coordinates))
        gossip = await self.outbox_relays(owners, fallback=known)

        lookup = known | gossip | self._config.default_relays()
        announcements = await self.announcements(coordinates, lookup)
        announced = RelaySet.from_urls(
            [url for a in announcements.values() for url in a.relays if _valid_relay(url)]
        )

        relays = known | gossip | announced
        if not relays:
            relays = self._config.default_relays()
        maintainers = list(owners)
        for announcement in announcements.values():
            maintainers.extend(announcement.maintainers)

        resolution = Resolution(
            coordinates=tuple(coordinates),
            relays=relays,
            maintainers=tuple(dict.fromkeys(maintainers)),
            announcements=announcements,
            events=tuple(events),
        )
        self._logger.info(
            "repositories_resolved",
            coordinates=len(resolution.coordinates),
            relays=len(resolution.relays),
            maintainers=len(resolution.maintainers),
        )
        return resolution

    async def resolve_event(self, event: Event, relays: RelaySet | None = None) -> Resolution:
        """Resolve the repositories an already fetched event targets.

        Events without ``a`` tags resolve to no coordinates and to *relays*
        plus the fallback relays.
        """
        coordinates = repository_coordinates(event)
        if not coordinates:
            return Resolution(
                coordinates=(),
                relays=(relays or RelaySet()) | self._config.default_relays(),
                maintainers=(event.pubkey,),
                events=(event,),
            )
        resolution = await self.resolve([CoordinateReference(c) for c in coordinates])
        return Resolution(
            coordinates=resolution.coordinates,
            relays=resolution.relays | (relays or RelaySet()),
            maintainers=resolution.maintainers,
            announcements=resolution.announcements,
            events=(event,),
        )


def _valid_relay(url: str) -> bool:
    try:
        RelaySet.from_urls([url])
    except (TypeError, ValueError):
        return False
    return True
