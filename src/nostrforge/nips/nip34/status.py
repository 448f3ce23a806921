"""Collaboration status state machine and status interpretation.

Transition preconditions:

| Transition    | Allowed from          | Result  | Applies to             |
|---------------|-----------------------|---------|------------------------|
| reopen        | closed, draft         | open    | all root objects       |
| close         | open, draft           | closed  | all root objects       |
| resolve       | any                   | applied | issues                 |
| draft         | open                  | draft   | patches, pull requests |
| apply / merge | open                  | applied | patches, pull requests |

Anything else raises
[InvalidStatusTransition][nostrforge.core.exceptions.InvalidStatusTransition];
the engine never guesses at what the user meant.

The current status of a root object is the one set by the newest status
event referencing it, counting only events signed by the root's author or
by a repository maintainer. Revisions share their original's lifecycle.
"""

from __future__ import annotations

from collections.abc import Iterable

from nostrforge.core.exceptions import InvalidStatusTransition
from nostrforge.models.collaboration import ObjectType, Status, Transition
from nostrforge.models.constants import STATUS_KINDS, EventKind
from nostrforge.models.event import Event

from .builders import LEGACY_REVISION_ROOT_LABEL, REVISION_ROOT_LABEL, ROOT_LABEL


_ANY_STATUS = frozenset(Status)

PRECONDITIONS: dict[Transition, frozenset[Status]] = {
    Transition.REOPEN: frozenset({Status.CLOSED, Status.DRAFT}),
    Transition.CLOSE: frozenset({Status.OPEN, Status.DRAFT}),
    Transition.RESOLVE: _ANY_STATUS,
    Transition.DRAFT: frozenset({Status.OPEN}),
    Transition.APPLY: frozenset({Status.OPEN}),
    Transition.MERGE: frozenset({Status.OPEN}),
}

RESULTS: dict[Transition, Status] = {
    Transition.REOPEN: Status.OPEN,
    Transition.CLOSE: Status.CLOSED,
    Transition.RESOLVE: Status.APPLIED,
    Transition.DRAFT: Status.DRAFT,
    Transition.APPLY: Status.APPLIED,
    Transition.MERGE: Status.APPLIED,
}

_CHANGE_REQUESTS = frozenset({ObjectType.PATCH, ObjectType.PULL_REQUEST})

APPLICABLE: dict[Transition, frozenset[ObjectType]] = {
    Transition.REOPEN: frozenset(ObjectType),
    Transition.CLOSE: frozenset(ObjectType),
    Transition.RESOLVE: frozenset({ObjectType.ISSUE}),
    Transition.DRAFT: _CHANGE_REQUESTS,
    Transition.APPLY: _CHANGE_REQUESTS,
    Transition.MERGE: _CHANGE_REQUESTS,
}


def check_transition(object_type: ObjectType, current: Status, transition: Transition) -> Status:
    """Return the status *transition* leads to from *current*.

    Raises:
        InvalidStatusTransition: If *transition* does not apply to
            *object_type* or *current* is not in its precondition set.
    """
    if object_type not in APPLICABLE[transition]:
        noun = object_type.value.replace("_", " ")
        article = "an" if noun[0] in "aeiou" else "a"
        raise InvalidStatusTransition(
            current, transition, f"{transition.value} is not valid for {article} {noun}"
        )
    if current not in PRECONDITIONS[transition]:
        raise InvalidStatusTransition(current, transition)
    return RESULTS[transition]


# =============================================================================
# Interpretation
# =============================================================================


def is_revision(event: Event) -> bool:
    """``True`` for a patch that revises an earlier patch."""
    labels = event.tag_values("t")
    return event.kind == EventKind.PATCH and (
        REVISION_ROOT_LABEL in labels or LEGACY_REVISION_ROOT_LABEL in labels
    )


def is_root_patch(event: Event) -> bool:
    return event.kind == EventKind.PATCH and ROOT_LABEL in event.tag_values("t")


def revised_patch_id(event: Event) -> str | None:
    """Return the id of the patch a revision revises."""
    if not is_revision(event):
        return None
    for tag in event.find_tags("e"):
        if len(tag) > 3 and tag[3] == "reply":  # noqa: PLR2004
            return tag[1]
    values = event.tag_values("e")
    return values[0] if values else None


def status_root_id(event: Event) -> str | None:
    """Return the root id a status event refers to.

    The ``root`` marker is authoritative; an unmarked first ``e`` tag is
    accepted from clients that omit markers.
    """
    unmarked = None
    for tag in event.find_tags("e"):
        if len(tag) < 2:  # noqa: PLR2004
            continue
        marker = tag[3] if len(tag) > 3 else ""  # noqa: PLR2004
        if marker == "root":
            return tag[1]
        if not marker and unmarked is None:
            unmarked = tag[1]
    return unmarked


def mentioned_ids(event: Event) -> set[str]:
    """Ids tagged in a status event besides its root."""
    root_id = status_root_id(event)
    return {value for value in event.tag_values("e") if value != root_id}


def latest_status_event(
    root: Event,
    status_events: Iterable[Event],
    maintainers: Iterable[str] = (),
) -> Event | None:
    """Return the newest authorised status event for *root*.

    Ties on ``created_at`` are broken by the larger id so that the answer
    does not depend on relay response order.
    """
    authorized = {root.pubkey, *maintainers}
    latest: Event | None = None
    for event in status_events:
        if event.kind not in STATUS_KINDS or event.pubkey not in authorized:
            continue
        if status_root_id(event) != root.id:
            continue
        if latest is None or (event.created_at, event.id) > (latest.created_at, latest.id):
            latest = event
    return latest


def current_status(
    root: Event,
    status_events: Iterable[Event],
    maintainers: Iterable[str] = (),
) -> Status:
    """Status of a root object, ``OPEN`` when nobody changed it."""
    latest = latest_status_event(root, status_events, maintainers)
    return Status.OPEN if latest is None else Status.from_kind(latest.kind)


def revision_status(
    revision: Event,
    original: Event,
    status_events: Iterable[Event],
    maintainers: Iterable[str] = (),
) -> Status:
    """Status of a revision patch, derived from its original.

    If the newest status event of the original names the revision, that
    status applies as is. Otherwise the revision inherits the original's
    status, except that an applied original leaves an unnamed revision
    closed.
    """
    latest = latest_status_event(original, status_events, maintainers)
    if latest is None:
        return Status.OPEN
    status = Status.from_kind(latest.kind)
    if revision.id in mentioned_ids(latest):
        return status
    return Status.CLOSED if status is Status.APPLIED else status
