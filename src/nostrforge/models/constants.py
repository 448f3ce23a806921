"""Shared constants for the models layer.

Defines enumerations and other constants that are used across multiple
model modules. Placing them here avoids circular dependencies between
the models and the ``nips`` layer.

See Also:
    [nostrforge.models.relay][]: Uses [NetworkType][nostrforge.models.constants.NetworkType]
        to classify relay URLs during construction.
    [nostrforge.nips.nip34][]: Builds events of the collaboration kinds
        enumerated in [EventKind][nostrforge.models.constants.EventKind].
"""

from __future__ import annotations

from enum import IntEnum, StrEnum


class NetworkType(StrEnum):
    """Network type enum for relay classification.

    Each relay URL is classified into exactly one network type during
    [Relay][nostrforge.models.relay.Relay] construction. Clearnet relays are
    forced onto ``wss://``; overlay networks and local development relays
    keep ``ws://``.

    Attributes:
        CLEARNET: Public internet relay using ``wss://`` (TLS required).
        TOR: Tor hidden service identified by a ``.onion`` hostname.
        I2P: I2P eepsite identified by a ``.i2p`` hostname.
        LOKI: Lokinet service identified by a ``.loki`` hostname.
        LOCAL: Loopback or private address (a developer's own relay).
        UNKNOWN: Hostname that could not be classified (rejected during validation).
    """

    CLEARNET = "clearnet"
    TOR = "tor"
    I2P = "i2p"
    LOKI = "loki"
    LOCAL = "local"
    UNKNOWN = "unknown"


class EventKind(IntEnum):
    """Nostr event kinds produced or consumed by the collaboration engine.

    Attributes:
        SET_METADATA: Kind 0 -- user profile metadata (NIP-01).
        RELAY_LIST: Kind 10002 -- NIP-65 relay list metadata.
        COMMENT: Kind 1111 -- NIP-22 comment.
        PATCH: Kind 1617 -- NIP-34 git patch.
        PULL_REQUEST: Kind 1618 -- NIP-34 pull request.
        PULL_REQUEST_UPDATE: Kind 1619 -- NIP-34 pull request tip update.
        ISSUE: Kind 1621 -- NIP-34 git issue.
        STATUS_OPEN: Kind 1630 -- open status.
        STATUS_APPLIED: Kind 1631 -- applied / merged / resolved status.
        STATUS_CLOSED: Kind 1632 -- closed status.
        STATUS_DRAFT: Kind 1633 -- draft status.
        NOSTR_CONNECT: Kind 24133 -- NIP-46 remote signer message.
        REPOSITORY_ANNOUNCEMENT: Kind 30617 -- addressable repository announcement.
        REPOSITORY_STATE: Kind 30618 -- addressable repository state (refs).

    See Also:
        [STATUS_KINDS][nostrforge.models.constants.STATUS_KINDS]: The four
            status-bearing kinds as a frozen set.
    """

    SET_METADATA = 0
    COMMENT = 1_111
    PATCH = 1_617
    PULL_REQUEST = 1_618
    PULL_REQUEST_UPDATE = 1_619
    ISSUE = 1_621
    STATUS_OPEN = 1_630
    STATUS_APPLIED = 1_631
    STATUS_CLOSED = 1_632
    STATUS_DRAFT = 1_633
    RELAY_LIST = 10_002
    NOSTR_CONNECT = 24_133
    REPOSITORY_ANNOUNCEMENT = 30_617
    REPOSITORY_STATE = 30_618


STATUS_KINDS: frozenset[int] = frozenset(
    {
        EventKind.STATUS_OPEN,
        EventKind.STATUS_APPLIED,
        EventKind.STATUS_CLOSED,
        EventKind.STATUS_DRAFT,
    }
)

ROOT_KINDS: frozenset[int] = frozenset(
    {EventKind.ISSUE, EventKind.PATCH, EventKind.PULL_REQUEST}
)

EVENT_KIND_MAX = 65_535

MAX_RELAY_HINTS = 3
"""Relay hints embedded in an encoded ``nevent``/``naddr`` identifier."""
