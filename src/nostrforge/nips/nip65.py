"""NIP-65 relay list metadata (kind 10002).

Authors advertise the relays they write to (their outbox) and read from
(their inbox) with ``["r", <url>]`` tags, optionally marked ``read`` or
``write``. The resolver uses these lists to decide where to look for an
author's events and where to deliver events that mention them.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from nostrforge.models.constants import EventKind
from nostrforge.models.event import Event, UnsignedEvent
from nostrforge.models.relay import Relay, RelayAccess, RelaySet


logger = logging.getLogger(__name__)

_MARKERS = {"read": RelayAccess.READ, "write": RelayAccess.WRITE}


def parse_relay_list(event: Event) -> RelaySet:
    """Extract the relay set advertised by a kind-10002 event.

    Invalid URLs and unknown markers are skipped with a debug log; a relay
    list is advisory data published by someone else.

    Raises:
        ValueError: If *event* is not a relay list.
    """
    if event.kind != EventKind.RELAY_LIST:
        raise ValueError(f"Expected kind {int(EventKind.RELAY_LIST)}, got {event.kind}")

    entries: list[tuple[Relay, RelayAccess]] = []
    for tag in event.find_tags("r"):
        if len(tag) < 2:  # noqa: PLR2004
            continue
        marker = tag[2] if len(tag) > 2 else ""  # noqa: PLR2004
        access = _MARKERS.get(marker, RelayAccess.BOTH) if marker else RelayAccess.BOTH
        try:
            entries.append((Relay(tag[1]), access))
        except ValueError as e:
            logger.debug("relay_list_invalid_url author=%s url=%s error=%s", event.pubkey, tag[1], e)
    return RelaySet(tuple(entries))


def latest_relay_lists(events: Iterable[Event]) -> dict[str, RelaySet]:
    """Keep the newest relay list per author (kind 10002 is replaceable)."""
    newest: dict[str, Event] = {}
    for event in events:
        if event.kind != EventKind.RELAY_LIST:
            continue
        known = newest.get(event.pubkey)
        if known is None or (event.created_at, event.id) > (known.created_at, known.id):
            newest[event.pubkey] = event
    return {pubkey: parse_relay_list(event) for pubkey, event in newest.items()}


def build_relay_list(pubkey: str, relays: RelaySet) -> UnsignedEvent:
    """Build a kind-10002 event advertising *relays*."""
    tags = []
    for relay, access in relays.entries:
        if access is RelayAccess.BOTH:
            tags.append(("r", relay.url))
        else:
            tags.append(("r", relay.url, access.value))
    return UnsignedEvent(pubkey=pubkey, kind=EventKind.RELAY_LIST, tags=tuple(tags))
