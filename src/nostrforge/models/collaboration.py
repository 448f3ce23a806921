"""
Collaboration objects interpreted from NIP-34 events.

The collaboration records a repository accumulates form a closed tagged
union, [CollaborationObject][nostrforge.models.collaboration.CollaborationObject]:
issues, patches, pull requests, replies and status changes. Root objects
(issues, patches, pull requests) carry a derived
[Status][nostrforge.models.collaboration.Status]; replies and status changes
never do.

See Also:
    [nostrforge.nips.nip34.parsing][]: Builds these objects from events.
    [nostrforge.nips.nip34.status][]: The status state machine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum, StrEnum

from .constants import EventKind


class Status(IntEnum):
    """Lifecycle status of a root object, valued by its status event kind."""

    OPEN = EventKind.STATUS_OPEN
    APPLIED = EventKind.STATUS_APPLIED
    CLOSED = EventKind.STATUS_CLOSED
    DRAFT = EventKind.STATUS_DRAFT

    @classmethod
    def from_kind(cls, kind: int) -> Status:
        """Raises ``ValueError`` for a kind that is not a status kind."""
        return cls(kind)

    @property
    def kind(self) -> int:
        return int(self.value)

    def label(self, object_type: ObjectType) -> str:
        """Human readable name, which depends on the kind of root object."""
        if self is Status.APPLIED:
            return {
                ObjectType.ISSUE: "Resolved",
                ObjectType.PATCH: "Applied",
                ObjectType.PULL_REQUEST: "Merged",
            }[object_type]
        return self.name.capitalize()


class Transition(StrEnum):
    """A requested status change."""

    REOPEN = "reopen"
    CLOSE = "close"
    RESOLVE = "resolve"
    DRAFT = "draft"
    APPLY = "apply"
    MERGE = "merge"


class ObjectType(StrEnum):
    ISSUE = "issue"
    PATCH = "patch"
    PULL_REQUEST = "pull_request"

    @classmethod
    def from_kind(cls, kind: int) -> ObjectType:
        """Raises ``ValueError`` for a kind that is not a root object kind."""
        try:
            return _TYPE_BY_KIND[kind]
        except KeyError:
            raise ValueError(f"Kind {kind} is not an issue, patch or pull request") from None

    @property
    def kind(self) -> int:
        return {v: k for k, v in _TYPE_BY_KIND.items()}[self]


_TYPE_BY_KIND: dict[int, ObjectType] = {
    EventKind.ISSUE: ObjectType.ISSUE,
    EventKind.PATCH: ObjectType.PATCH,
    EventKind.PULL_REQUEST: ObjectType.PULL_REQUEST,
}


@dataclass(frozen=True, slots=True)
class Issue:
    event_id: str
    author: str
    created_at: int
    subject: str
    content: str
    labels: tuple[str, ...] = ()
    coordinates: tuple[str, ...] = ()
    status: Status = Status.OPEN

    object_type = ObjectType.ISSUE


@dataclass(frozen=True, slots=True)
class Patch:
    """A single patch event.

    Attributes:
        root_id: For follow-up patches of a series, the series root.
        original_id: For a revision root, the patch it revises.
    """

    event_id: str
    author: str
    created_at: int
    subject: str
    content: str
    labels: tuple[str, ...] = ()
    coordinates: tuple[str, ...] = ()
    is_root: bool = False
    is_revision: bool = False
    root_id: str | None = None
    original_id: str | None = None
    commit: str | None = None
    status: Status = Status.OPEN

    object_type = ObjectType.PATCH


@dataclass(frozen=True, slots=True)
class PullRequest:
    event_id: str
    author: str
    created_at: int
    subject: str
    content: str
    labels: tuple[str, ...] = ()
    coordinates: tuple[str, ...] = ()
    commit: str | None = None
    clone: tuple[str, ...] = ()
    branch: str | None = None
    status: Status = Status.OPEN

    object_type = ObjectType.PULL_REQUEST


@dataclass(frozen=True, slots=True)
class Reply:
    event_id: str
    author: str
    created_at: int
    content: str
    root_id: str | None = None
    parent_id: str | None = None


@dataclass(frozen=True, slots=True)
class StatusChange:
    """A status event (kinds 1630-1633).

    Attributes:
        root_id: The single root object the status applies to.
        revision_ids: Revisions called out by name in the same event.
        patch_ids: Patches marked as included when only some landed.
    """

    event_id: str
    author: str
    created_at: int
    status: Status
    root_id: str
    content: str = ""
    revision_ids: tuple[str, ...] = ()
    patch_ids: tuple[str, ...] = ()
    merge_commit: str | None = None
    applied_commits: tuple[str, ...] = ()


CollaborationObject = Issue | Patch | PullRequest | Reply | StatusChange
RootObject = Issue | Patch | PullRequest


@dataclass(frozen=True, slots=True)
class RepositoryAnnouncement:
    """Content of a kind-30617 repository announcement.

    Attributes:
        identifier: The ``d`` tag, kebab-case by convention.
        euc: Earliest unique commit, used to group forks of one project.
        maintainers: Hex public keys allowed to change statuses, the
            announcing author excluded.
    """

    identifier: str
    name: str | None = None
    description: str | None = None
    web: tuple[str, ...] = ()
    clone: tuple[str, ...] = ()
    relays: tuple[str, ...] = ()
    maintainers: tuple[str, ...] = ()
    labels: tuple[str, ...] = ()
    euc: str | None = None
    author: str | None = None


@dataclass(frozen=True, slots=True)
class RepositoryState:
    """Content of a kind-30618 repository state announcement."""

    identifier: str
    head: str | None = None
    branches: dict[str, str] = field(default_factory=dict, hash=False)
    tags: dict[str, str] = field(default_factory=dict, hash=False)
