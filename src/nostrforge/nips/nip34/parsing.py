"""Interpretation of fetched NIP-34 events into collaboration objects.

Relays return raw events; these helpers read their tags into the typed
[CollaborationObject][nostrforge.models.collaboration.CollaborationObject]
variants and repository records. Unknown or malformed tags are ignored
rather than rejected, since the events were produced by other clients.
"""

from __future__ import annotations

import logging

from nostrforge.core.exceptions import InvalidEventError
from nostrforge.models.collaboration import (
    CollaborationObject,
    Issue,
    Patch,
    PullRequest,
    Reply,
    RepositoryAnnouncement,
    RepositoryState,
    Status,
    StatusChange,
)
from nostrforge.models.constants import STATUS_KINDS, EventKind
from nostrforge.models.coordinate import RepositoryCoordinate
from nostrforge.models.event import Event
from nostrforge.nips.nip22 import root_of_comment

from .builders import EUC_MARKER, PATCH_ALT_PREFIX
from .patches import parse_patch
from .status import is_revision, is_root_patch, mentioned_ids, revised_patch_id, status_root_id


logger = logging.getLogger(__name__)


def _multi_values(event: Event, name: str) -> tuple[str, ...]:
    """Values of a multi-valued tag (``clone``, ``web``...), across repeats."""
    values: list[str] = []
    for tag in event.find_tags(name):
        values.extend(v for v in tag[1:] if v)
    return tuple(dict.fromkeys(values))


def repository_coordinates(event: Event) -> list[RepositoryCoordinate]:
    """Repository coordinates referenced by ``a`` tags of *event*."""
    coordinates: list[RepositoryCoordinate] = []
    for tag in event.find_tags("a"):
        if len(tag) < 2:  # noqa: PLR2004
            continue
        relays = (tag[2],) if len(tag) > 2 and tag[2] else ()  # noqa: PLR2004
        try:
            coordinate = RepositoryCoordinate.parse(tag[1], relays=relays)
        except (TypeError, ValueError):
            try:
                coordinate = RepositoryCoordinate.parse(tag[1])
            except (TypeError, ValueError) as e:
                logger.debug("coordinate_tag_invalid event=%s value=%s error=%s", event.id, tag[1], e)
                continue
        if coordinate.kind == EventKind.REPOSITORY_ANNOUNCEMENT:
            coordinates.append(coordinate)
    return coordinates


def parse_announcement(event: Event) -> RepositoryAnnouncement:
    """Read a kind-30617 announcement.

    Raises:
        InvalidEventError: If *event* is not an announcement or has no ``d`` tag.
    """
    if event.kind != EventKind.REPOSITORY_ANNOUNCEMENT:
        raise InvalidEventError(f"Event {event.id} is not a repository announcement")
    identifier = event.tag_value("d")
    if identifier is None:
        raise InvalidEventError(f"Repository announcement {event.id} has no d tag")

    euc = None
    for tag in event.find_tags("r"):
        if len(tag) > 2 and tag[2] == EUC_MARKER:  # noqa: PLR2004
            euc = tag[1]
            break

    return RepositoryAnnouncement(
        identifier=identifier,
        name=event.tag_value("name"),
        description=event.tag_value("description"),
        web=_multi_values(event, "web"),
        clone=_multi_values(event, "clone"),
        relays=_multi_values(event, "relays"),
        maintainers=tuple(m for m in _multi_values(event, "maintainers") if m != event.pubkey),
        labels=tuple(event.tag_values("t")),
        euc=euc,
        author=event.pubkey,
    )


def parse_state(event: Event) -> RepositoryState:
    """Read a kind-30618 repository state.

    Raises:
        InvalidEventError: If *event* is not a repository state.
    """
    if event.kind != EventKind.REPOSITORY_STATE:
        raise InvalidEventError(f"Event {event.id} is not a repository state")
    head = None
    branches: dict[str, str] = {}
    tags: dict[str, str] = {}
    for tag in event.tags:
        if len(tag) < 2:  # noqa: PLR2004
            continue
        name, value = tag[0], tag[1]
        if name == "HEAD" and value.startswith("ref: refs/heads/"):
            head = value.removeprefix("ref: refs/heads/")
        elif name.startswith("refs/heads/"):
            branches[name.removeprefix("refs/heads/")] = value
        elif name.startswith("refs/tags/"):
            tags[name.removeprefix("refs/tags/")] = value
    return RepositoryState(
        identifier=event.tag_value("d") or "", head=head, branches=branches, tags=tags
    )


def _patch_subject(event: Event) -> str:
    alt = event.tag_value("alt")
    if alt and alt.startswith(PATCH_ALT_PREFIX):
        return alt.removeprefix(PATCH_ALT_PREFIX)
    try:
        return parse_patch(event.content).subject
    except ValueError:
        return event.content.splitlines()[0] if event.content else ""


def _marked_e(event: Event, marker: str) -> str | None:
    for tag in event.find_tags("e"):
        if len(tag) > 3 and tag[3] == marker:  # noqa: PLR2004
            return tag[1]
    return None


def parse_status_change(event: Event) -> StatusChange:
    """Read a status event.

    Raises:
        InvalidEventError: If *event* is not a status event or has no root.
    """
    if event.kind not in STATUS_KINDS:
        raise InvalidEventError(f"Event {event.id} is not a status event")
    root_id = status_root_id(event)
    if root_id is None:
        raise InvalidEventError(f"Status event {event.id} references no root")
    return StatusChange(
        event_id=event.id,
        author=event.pubkey,
        created_at=event.created_at,
        status=Status.from_kind(event.kind),
        root_id=root_id,
        content=event.content,
        revision_ids=tuple(sorted(mentioned_ids(event))),
        patch_ids=tuple(event.tag_values("q")),
        merge_commit=event.tag_value("merge-commit"),
        applied_commits=tuple(
            v for tag in event.find_tags("applied-as-commits") for v in tag[1:]
        ),
    )


def parse_object(event: Event, status: Status = Status.OPEN) -> CollaborationObject:
    """Interpret any collaboration event as its typed object.

    Args:
        event: An issue, patch, pull request, comment or status event.
        status: Status to attach to a root object.

    Raises:
        InvalidEventError: For any other kind.
    """
    coordinates = tuple(c.address for c in repository_coordinates(event))
    labels = tuple(event.tag_values("t"))

    if event.kind == EventKind.ISSUE:
        return Issue(
            event_id=event.id,
            author=event.pubkey,
            created_at=event.created_at,
            subject=event.tag_value("subject") or "",
            content=event.content,
            labels=labels,
            coordinates=coordinates,
            status=status,
        )
    if event.kind == EventKind.PATCH:
        return Patch(
            event_id=event.id,
            author=event.pubkey,
            created_at=event.created_at,
            subject=_patch_subject(event),
            content=event.content,
            labels=labels,
            coordinates=coordinates,
            is_root=is_root_patch(event) or is_revision(event),
            is_revision=is_revision(event),
            root_id=_marked_e(event, "root"),
            original_id=revised_patch_id(event),
            commit=event.tag_value("commit"),
            status=status,
        )
    if event.kind == EventKind.PULL_REQUEST:
        return PullRequest(
            event_id=event.id,
            author=event.pubkey,
            created_at=event.created_at,
            subject=event.tag_value("subject") or "",
            content=event.content,
            labels=labels,
            coordinates=coordinates,
            commit=event.tag_value("c"),
            clone=_multi_values(event, "clone"),
            branch=event.tag_value("branch-name"),
            status=status,
        )
    if event.kind == EventKind.COMMENT:
        root = root_of_comment(event)
        return Reply(
            event_id=event.id,
            author=event.pubkey,
            created_at=event.created_at,
            content=event.content,
            root_id=root[0] if root else None,
            parent_id=event.tag_value("e"),
        )
    if event.kind in STATUS_KINDS:
        return parse_status_change(event)
    raise InvalidEventError(f"Event {event.id} of kind {event.kind} is not a collaboration event")
