"""Event builders for NIP-34 git collaboration kinds.

Standalone functions that turn typed inputs into
[UnsignedEvent][nostrforge.models.event.UnsignedEvent] templates. They never
sign, mine or publish; the
[CollaborationEngine][nostrforge.services.engine.CollaborationEngine] drives
that pipeline.

Every builder that targets repositories takes the full list of resolved
coordinates and emits exactly one event carrying an ``a`` tag for each of
them.

See Also:
    [nostrforge.nips.nip34.status][]: Status transition checks applied
        before [build_status()][nostrforge.nips.nip34.builders.build_status].
    [nostrforge.nips.nip22][]: Comment builder for replies.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

from nostrforge.models.collaboration import RepositoryAnnouncement, RepositoryState, Status
from nostrforge.models.constants import EventKind
from nostrforge.models.coordinate import RepositoryCoordinate, is_kebab_case
from nostrforge.models.event import Event, Tag, UnsignedEvent
from nostrforge.nips.nip19 import extract_mentions

from .patches import parse_patch


# =============================================================================
# Constants
# =============================================================================

ROOT_LABEL = "root"
REVISION_ROOT_LABEL = "root-revision"
LEGACY_REVISION_ROOT_LABEL = "revision-root"

ISSUE_ALT_PREFIX = "git issue: "
PATCH_ALT_PREFIX = "git patch: "
PULL_REQUEST_ALT_PREFIX = "git pull request: "
REPOSITORY_ALT_PREFIX = "git repository: "

EUC_MARKER = "euc"

_HASHTAG = re.compile(r"(?<![\w#&/])#([A-Za-z0-9_][\w-]*)")


# =============================================================================
# Tag helpers
# =============================================================================


def dedup_tags(tags: Iterable[Sequence[str]]) -> tuple[Tag, ...]:
    """Drop repeated tags, keeping the first occurrence of each."""
    return tuple(dict.fromkeys(tuple(tag) for tag in tags))


def content_hashtags(content: str) -> list[str]:
    """Return ``#hashtags`` found in *content*, lowercased, in order."""
    return list(dict.fromkeys(match.lower() for match in _HASHTAG.findall(content)))


def add_coordinate_tags(
    tags: list[Tag],
    coordinates: Sequence[RepositoryCoordinate],
    relay_hint: str | None = None,
) -> None:
    """Add an ``a`` tag for every coordinate and a ``p`` tag for every owner."""
    for coordinate in coordinates:
        tags.append(coordinate.as_tag(relay_hint))
    for coordinate in coordinates:
        tags.append(("p", coordinate.pubkey))


def add_people_tags(tags: list[Tag], pubkeys: Iterable[str]) -> None:
    tags.extend(("p", pubkey) for pubkey in pubkeys)


def add_label_tags(tags: list[Tag], labels: Iterable[str]) -> None:
    tags.extend(("t", label) for label in labels if label)


def add_euc_tag(tags: list[Tag], euc: str | None) -> None:
    if euc:
        tags.append(("r", euc, EUC_MARKER))


def _require_coordinates(coordinates: Sequence[RepositoryCoordinate]) -> None:
    if not coordinates:
        raise ValueError("At least one repository coordinate is required")


# =============================================================================
# Repository
# =============================================================================


def build_repository_announcement(
    pubkey: str,
    announcement: RepositoryAnnouncement,
    *,
    force_identifier: bool = False,
) -> UnsignedEvent:
    """Build a kind-30617 repository announcement.

    Raises:
        ValueError: If the identifier is not kebab-case and
            *force_identifier* is false.
    """
    if not announcement.identifier:
        raise ValueError("Repository identifier must not be empty")
    if not force_identifier and not is_kebab_case(announcement.identifier):
        raise ValueError(
            f"Repository identifier {announcement.identifier!r} is not kebab-case"
        )

    tags: list[Tag] = [("d", announcement.identifier)]
    if announcement.name:
        tags.append(("name", announcement.name))
    if announcement.description:
        tags.append(("description", announcement.description))
    if announcement.web:
        tags.append(("web", *announcement.web))
    if announcement.clone:
        tags.append(("clone", *announcement.clone))
    if announcement.relays:
        tags.append(("relays", *announcement.relays))
    maintainers = [m for m in announcement.maintainers if m != pubkey]
    if maintainers:
        tags.append(("maintainers", *maintainers))
    add_label_tags(tags, announcement.labels)
    add_euc_tag(tags, announcement.euc)
    tags.append(("alt", REPOSITORY_ALT_PREFIX + (announcement.name or announcement.identifier)))

    return UnsignedEvent(
        pubkey=pubkey, kind=EventKind.REPOSITORY_ANNOUNCEMENT, tags=dedup_tags(tags)
    )


def build_repository_state(pubkey: str, state: RepositoryState) -> UnsignedEvent:
    """Build a kind-30618 announcement of branch and tag tips."""
    tags: list[Tag] = [("d", state.identifier)]
    if state.head:
        tags.append(("HEAD", f"ref: refs/heads/{state.head}"))
    tags.extend((f"refs/heads/{name}", commit) for name, commit in state.branches.items())
    tags.extend((f"refs/tags/{name}", commit) for name, commit in state.tags.items())
    return UnsignedEvent(pubkey=pubkey, kind=EventKind.REPOSITORY_STATE, tags=tuple(tags))


# =============================================================================
# Issue
# =============================================================================


def build_issue(  # noqa: PLR0913
    pubkey: str,
    coordinates: Sequence[RepositoryCoordinate],
    subject: str,
    content: str,
    *,
    labels: Iterable[str] = (),
    maintainers: Iterable[str] = (),
    relay_hint: str | None = None,
) -> UnsignedEvent:
    """Build one kind-1621 issue targeting every coordinate.

    Labels are the explicit ones followed by ``#hashtags`` from the content;
    public keys mentioned as ``nostr:npub``/``nostr:nprofile`` are notified.

    Raises:
        ValueError: If no coordinate is given or the subject is empty.
    """
    _require_coordinates(coordinates)
    if not subject.strip():
        raise ValueError("Issue subject must not be empty")

    tags: list[Tag] = []
    add_coordinate_tags(tags, coordinates, relay_hint)
    add_people_tags(tags, maintainers)
    tags.append(("subject", subject))
    add_label_tags(tags, [*labels, *content_hashtags(content)])
    add_people_tags(tags, extract_mentions(content))
    tags.append(("alt", ISSUE_ALT_PREFIX + subject))

    return UnsignedEvent(pubkey=pubkey, kind=EventKind.ISSUE, tags=dedup_tags(tags), content=content)


# =============================================================================
# Patches
# =============================================================================


def build_patch_series(  # noqa: PLR0913
    pubkey: str,
    coordinates: Sequence[RepositoryCoordinate],
    patches: Sequence[str],
    *,
    maintainers: Iterable[str] = (),
    labels: Iterable[str] = (),
    euc: str | None = None,
    original: Event | None = None,
    relay_hint: str | None = None,
    created_at: int | None = None,
) -> list[UnsignedEvent]:
    """Build kind-1617 events for a ``git format-patch`` series.

    The first patch is the root (``t root``) or, when *original* is given,
    a revision root (``t root-revision`` plus a reply to the original).
    Every later patch replies to the series root and to its predecessor.
    Patch events are never mined, so their ids are final before signing and
    can be referenced within the same series.

    Raises:
        ValueError: If no coordinate or no patch is given, or a patch has no
            subject.
    """
    _require_coordinates(coordinates)
    if not patches:
        raise ValueError("At least one patch is required")

    maintainers = list(maintainers)
    labels = list(labels)
    hint = relay_hint or ""
    events: list[UnsignedEvent] = []

    for index, text in enumerate(patches):
        parsed = parse_patch(text)
        tags: list[Tag] = []
        add_coordinate_tags(tags, coordinates, relay_hint)
        add_people_tags(tags, maintainers)
        add_euc_tag(tags, euc)

        if index == 0:
            if original is None:
                tags.append(("t", ROOT_LABEL))
            else:
                tags.append(("t", REVISION_ROOT_LABEL))
                tags.append(("e", original.id, hint, "reply"))
                tags.append(("p", original.pubkey))
            add_label_tags(tags, labels)
        else:
            tags.append(("e", events[0].id, hint, "root"))
            tags.append(("e", events[-1].id, hint, "reply"))

        if parsed.commit:
            tags.append(("commit", parsed.commit))
        if parsed.body:
            tags.append(("description", parsed.body))
        tags.append(("alt", PATCH_ALT_PREFIX + parsed.subject))

        kwargs = {"created_at": created_at} if created_at is not None else {}
        events.append(
            UnsignedEvent(
                pubkey=pubkey,
                kind=EventKind.PATCH,
                tags=dedup_tags(tags),
                content=text,
                **kwargs,
            )
        )

    return events


# =============================================================================
# Pull requests
# =============================================================================


def build_pull_request(  # noqa: PLR0913
    pubkey: str,
    coordinates: Sequence[RepositoryCoordinate],
    subject: str,
    content: str,
    *,
    commit: str,
    clone: Sequence[str],
    branch: str | None = None,
    labels: Iterable[str] = (),
    maintainers: Iterable[str] = (),
    euc: str | None = None,
    relay_hint: str | None = None,
) -> UnsignedEvent:
    """Build one kind-1618 pull request.

    Raises:
        ValueError: If no coordinate, subject, commit or clone URL is given.
    """
    _require_coordinates(coordinates)
    if not subject.strip():
        raise ValueError("Pull request subject must not be empty")
    if not commit:
        raise ValueError("Pull request requires the tip commit")
    if not clone:
        raise ValueError("Pull request requires at least one clone URL")

    tags: list[Tag] = []
    add_coordinate_tags(tags, coordinates, relay_hint)
    add_people_tags(tags, maintainers)
    tags.append(("subject", subject))
    add_label_tags(tags, [*labels, *content_hashtags(content)])
    tags.append(("c", commit))
    tags.append(("clone", *clone))
    if branch:
        tags.append(("branch-name", branch))
    add_euc_tag(tags, euc)
    add_people_tags(tags, extract_mentions(content))
    tags.append(("alt", PULL_REQUEST_ALT_PREFIX + subject))

    return UnsignedEvent(
        pubkey=pubkey, kind=EventKind.PULL_REQUEST, tags=dedup_tags(tags), content=content
    )


def build_pull_request_update(  # noqa: PLR0913
    pubkey: str,
    pull_request: Event,
    coordinates: Sequence[RepositoryCoordinate],
    *,
    commit: str,
    clone: Sequence[str],
    maintainers: Iterable[str] = (),
    relay_hint: str | None = None,
) -> UnsignedEvent:
    """Build a kind-1619 update moving a pull request to a new tip commit.

    Raises:
        ValueError: If *pull_request* is not a kind-1618 event, or the commit
            or clone URLs are missing.
    """
    if pull_request.kind != EventKind.PULL_REQUEST:
        raise ValueError(f"Expected a pull request, got kind {pull_request.kind}")
    _require_coordinates(coordinates)
    if not commit:
        raise ValueError("Pull request update requires the tip commit")
    if not clone:
        raise ValueError("Pull request update requires at least one clone URL")

    tags: list[Tag] = [
        ("E", pull_request.id, relay_hint or "", pull_request.pubkey),
        ("P", pull_request.pubkey),
        ("K", str(EventKind.PULL_REQUEST.value)),
    ]
    add_coordinate_tags(tags, coordinates, relay_hint)
    add_people_tags(tags, maintainers)
    tags.append(("c", commit))
    tags.append(("clone", *clone))

    return UnsignedEvent(
        pubkey=pubkey, kind=EventKind.PULL_REQUEST_UPDATE, tags=dedup_tags(tags)
    )


# =============================================================================
# Status
# =============================================================================


def build_status(  # noqa: PLR0913
    pubkey: str,
    status: Status,
    root: Event,
    coordinates: Sequence[RepositoryCoordinate],
    *,
    maintainers: Iterable[str] = (),
    revisions: Sequence[Event] = (),
    patch_ids: Sequence[str] = (),
    merge_commit: str | None = None,
    applied_commits: Sequence[str] = (),
    relay_hint: str | None = None,
    content: str = "",
) -> UnsignedEvent:
    """Build a status event (kinds 1630-1633) for exactly one root object.

    Revisions named in *revisions* are called out in the same event with
    ``mention`` markers; there is never a second event for them. Merge and
    applied-commit details are only valid on the applied status.

    Raises:
        ValueError: If applied details are given for another status.
    """
    if status is not Status.APPLIED and (patch_ids or merge_commit or applied_commits):
        raise ValueError("Patch, merge and commit details only apply to the applied status")

    hint = relay_hint or ""
    tags: list[Tag] = [("e", root.id, hint, "root")]
    for revision in revisions:
        tags.append(("e", revision.id, hint, "mention"))
    tags.append(("p", root.pubkey))
    for revision in revisions:
        tags.append(("p", revision.pubkey))
    add_people_tags(tags, maintainers)
    for coordinate in coordinates:
        tags.append(coordinate.as_tag(relay_hint))
        tags.append(("p", coordinate.pubkey))
    for patch_id in patch_ids:
        tags.append(("q", patch_id, hint, root.pubkey))
    if merge_commit:
        tags.append(("merge-commit", merge_commit))
        tags.append(("r", merge_commit))
    if applied_commits:
        tags.append(("applied-as-commits", *applied_commits))
        tags.extend(("r", commit) for commit in applied_commits)

    return UnsignedEvent(pubkey=pubkey, kind=status.kind, tags=dedup_tags(tags), content=content)
