"""Pure frozen dataclasses with zero network I/O for events, relays and references.

The models layer is the foundation of the diamond DAG. It has no dependencies
on any other nostrforge package. Every model uses
``@dataclass(frozen=True, slots=True)`` and performs all validation in
``__post_init__`` so invalid instances never escape the constructor.

Attributes:
    Event: Signed Nostr event with eager id verification.
    UnsignedEvent: Event template produced by builders and consumed by signers.
    Relay: Validated relay URL with RFC 3986 parsing and
        [NetworkType][nostrforge.models.constants.NetworkType] detection.
    RelaySet: Ordered, deduplicated relays with NIP-65 access roles.
    RepositoryCoordinate: ``kind:pubkey:identifier`` repository address.
    IdentifierReference: Tagged union of the four user reference forms.
    CollaborationObject: Tagged union of issues, patches, pull requests,
        replies and status changes.
    PublishReport: Per-relay outcomes of a publish with the overall verdict.

See Also:
    [nostrforge.nips][nostrforge.nips]: Protocol codecs and builders using
        these models.
"""

from .collaboration import (
    CollaborationObject,
    Issue,
    ObjectType,
    Patch,
    PullRequest,
    Reply,
    RepositoryAnnouncement,
    RepositoryState,
    RootObject,
    Status,
    StatusChange,
    Transition,
)
from .constants import EVENT_KIND_MAX, ROOT_KINDS, STATUS_KINDS, EventKind, NetworkType
from .coordinate import RepositoryCoordinate, dedup_coordinates, is_kebab_case
from .event import Event, UnsignedEvent, compute_event_id
from .references import (
    CoordinateReference,
    DomainReference,
    EventReference,
    IdentifierReference,
    RepositorySet,
    SetReference,
)
from .relay import Relay, RelayAccess, RelaySet
from .results import OperationStatus, OutcomeKind, PublishReport, RelayOutcome


__all__ = [
    "EVENT_KIND_MAX",
    "ROOT_KINDS",
    "STATUS_KINDS",
    "CollaborationObject",
    "CoordinateReference",
    "DomainReference",
    "Event",
    "EventKind",
    "EventReference",
    "IdentifierReference",
    "Issue",
    "NetworkType",
    "ObjectType",
    "OperationStatus",
    "OutcomeKind",
    "Patch",
    "PublishReport",
    "PullRequest",
    "Relay",
    "RelayAccess",
    "RelayOutcome",
    "RelaySet",
    "Reply",
    "RepositoryAnnouncement",
    "RepositoryCoordinate",
    "RepositorySet",
    "RepositoryState",
    "RootObject",
    "SetReference",
    "Status",
    "StatusChange",
    "Transition",
    "UnsignedEvent",
    "compute_event_id",
    "dedup_coordinates",
    "is_kebab_case",
]
