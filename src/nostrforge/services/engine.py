"""Collaboration engine: build, mine, sign and publish NIP-34 events, and read them back.

Every write operation runs the same pipeline:

1. resolve the target repositories and their relays
   ([AddressResolver][nostrforge.services.resolver.AddressResolver]);
2. build an unsigned template ([nostrforge.nips.nip34.builders][],
   [nostrforge.nips.nip22][]);
3. mine a proof-of-work nonce, except for patches
   ([mine_async()][nostrforge.nips.nip13.mine_async]);
4. sign with the session's single signer;
5. publish to every relay and return the
   [PublishReport][nostrforge.models.results.PublishReport].

A report in which no relay accepted the event is raised as
[NoRelayAccepted][nostrforge.core.exceptions.NoRelayAccepted]; a partial
report is returned and left to the caller to present. Resolution, signing
and status errors abort before anything is published and are never retried.

Read operations fetch the relevant events and derive the status of each
root object from its status events (see [nostrforge.nips.nip34.status][]).
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from nostrforge.core.exceptions import InvalidEventError, InvalidStatusTransition, NoRelayAccepted
from nostrforge.models.collaboration import (
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
from nostrforge.models.constants import ROOT_KINDS, STATUS_KINDS, EventKind
from nostrforge.models.coordinate import RepositoryCoordinate
from nostrforge.models.event import Event, UnsignedEvent
from nostrforge.models.references import CoordinateReference, EventReference
from nostrforge.models.relay import RelayAccess, RelaySet
from nostrforge.nips import nip19, nip22
from nostrforge.nips.nip13 import mine_async
from nostrforge.nips.nip34 import builders
from nostrforge.nips.nip34.parsing import parse_object, parse_state, parse_status_change
from nostrforge.nips.nip34.status import (
    check_transition,
    current_status,
    is_revision,
    is_root_patch,
    latest_status_event,
    revised_patch_id,
    revision_status,
)


if TYPE_CHECKING:
    from nostrforge.models.results import PublishReport

    from .context import SessionContext
    from .resolver import Reference, Resolution


DEFAULT_LIST_LIMIT = 200

_STATUS_KIND_LIST = sorted(int(kind) for kind in STATUS_KINDS)
_REVISION_LABELS = [
    builders.ROOT_LABEL,
    builders.REVISION_ROOT_LABEL,
    builders.LEGACY_REVISION_ROOT_LABEL,
]


@dataclass(frozen=True, slots=True)
class RepositoryInfo:
    """What the relays know about a set of repositories.

    Attributes:
        resolution: Coordinates, relays and maintainers.
        states: Latest branch/tag state per coordinate address.
    """

    resolution: Resolution
    states: dict[str, RepositoryState] = field(default_factory=dict, hash=False)

    @property
    def announcements(self) -> list[RepositoryAnnouncement]:
        return list(self.resolution.announcements.values())


@dataclass(frozen=True, slots=True)
class ThreadView:
    """A root object with everything that references it.

    Attributes:
        root: The issue, patch or pull request, with its current status and,
            for pull requests, the tip of the latest update.
        replies: Comments, oldest first.
        status_changes: Authorised status events, oldest first.
        patches: Follow-up patches of the series and revisions, oldest first.
    """

    root: RootObject
    replies: tuple[Reply, ...] = ()
    status_changes: tuple[StatusChange, ...] = ()
    patches: tuple[Patch, ...] = ()

    @property
    def status(self) -> Status:
        return self.root.status


class CollaborationEngine:
    """Publish and read git collaboration events for one session.

    Args:
        context: Session holding the signer, relay pool, resolver and
            proof-of-work difficulty. The signer must be open.
    """

    def __init__(self, context: SessionContext) -> None:
        self._ctx = context
        self._logger = context.logger.bind(component="engine")

    @property
    def pubkey(self) -> str:
        return self._ctx.signer.identity()

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    async def _publish(
        self, template: UnsignedEvent, relays: RelaySet, *, mine: bool = True
    ) -> PublishReport:
        difficulty = self._ctx.difficulty if mine else 0
        if difficulty > 0:
            template = await mine_async(template, difficulty)
        event = await self._ctx.signer.sign(template)
        report = await self._ctx.pool.publish(event, relays)
        if not report.ok:
            self._logger.warning(
                "event_not_published",
                event=event.id,
                kind=event.kind,
                rejected=len(report.rejected),
                unreachable=len(report.unreachable),
            )
            raise NoRelayAccepted(report)
        self._logger.info(
            "event_published",
            event=event.id,
            kind=event.kind,
            status=report.status.value,
            accepted=len(report.accepted),
            relays=len(report.outcomes),
        )
        return report

    async def _fetch(self, reference: EventReference | str, relays: RelaySet | None = None) -> Event:
        return await self._ctx.resolver.fetch_event(reference, relays)

    def _with_fallback(self, relays: RelaySet) -> RelaySet:
        return relays or self._ctx.config.default_relays()

    # -------------------------------------------------------------------------
    # Repository
    # -------------------------------------------------------------------------

    async def announce_repository(
        self,
        announcement: RepositoryAnnouncement,
        *,
        relays: RelaySet | None = None,
        force_identifier: bool = False,
    ) -> PublishReport:
        """Publish a kind-30617 announcement for a repository owned by the signer.

        Goes to the relays the announcement names, the signer's write relays,
        *relays* and the fallback relays.

        Raises:
            ValueError: If the identifier is not kebab-case and
                *force_identifier* is false.
        """
        template = builders.build_repository_announcement(
            self.pubkey, announcement, force_identifier=force_identifier
        )
        targets = (relays or RelaySet()).merge(
            RelaySet.from_urls(announcement.relays),
            await self._ctx.resolver.outbox_relays([self.pubkey]),
            self._ctx.config.default_relays(),
        )
        return await self._publish(template, targets)

    async def announce_state(self, state: RepositoryState) -> PublishReport:
        """Publish the branch and tag tips of one of the signer's repositories."""
        coordinate = RepositoryCoordinate(pubkey=self.pubkey, identifier=state.identifier)
        resolution = await self._ctx.resolver.resolve([CoordinateReference(coordinate)])
        template = builders.build_repository_state(self.pubkey, state)
        return await self._publish(template, resolution.relays)

    # -------------------------------------------------------------------------
    # Root objects
    # -------------------------------------------------------------------------

    async def create_issue(
        self,
        references: Sequence[Reference],
        subject: str,
        content: str,
        *,
        labels: Sequence[str] = (),
    ) -> PublishReport:
        """Open one issue addressed to every resolved repository."""
        resolution = await self._ctx.resolver.resolve(references)
        template = builders.build_issue(
            self.pubkey,
            resolution.coordinates,
            subject,
            content,
            labels=labels,
            maintainers=resolution.maintainers,
            relay_hint=resolution.relay_hint,
        )
        return await self._publish(template, resolution.relays)

    async def send_patches(
        self,
        references: Sequence[Reference],
        patches: Sequence[str],
        *,
        labels: Sequence[str] = (),
        euc: str | None = None,
        original: EventReference | str | None = None,
    ) -> list[PublishReport]:
        """Publish a ``git format-patch`` series, optionally as a revision of *original*.

        Patches are never mined and are published in series order; the
        series stops at the first patch no relay accepted.

        Returns:
            One report per patch.
        """
        resolution = await self._ctx.resolver.resolve(references)
        original_event = None
        if original is not None:
            original_event = await self._fetch(original, resolution.relays)
            if original_event.kind != EventKind.PATCH:
                raise InvalidEventError(f"Event {original_event.id} is not a patch")
        if euc is None:
            euc = next((a.euc for a in resolution.announcements.values() if a.euc), None)

        templates = builders.build_patch_series(
            self.pubkey,
            resolution.coordinates,
            patches,
            maintainers=resolution.maintainers,
            labels=labels,
            euc=euc,
            original=original_event,
            relay_hint=resolution.relay_hint,
        )
        reports = []
        for template in templates:
            reports.append(await self._publish(template, resolution.relays, mine=False))
        return reports

    async def create_pull_request(
        self,
        references: Sequence[Reference],
        subject: str,
        content: str,
        *,
        commit: str,
        clone: Sequence[str],
        branch: str | None = None,
        labels: Sequence[str] = (),
        euc: str | None = None,
    ) -> PublishReport:
        """Open one pull request addressed to every resolved repository."""
        resolution = await self._ctx.resolver.resolve(references)
        if euc is None:
            euc = next((a.euc for a in resolution.announcements.values() if a.euc), None)
        template = builders.build_pull_request(
            self.pubkey,
            resolution.coordinates,
            subject,
            content,
            commit=commit,
            clone=clone,
            branch=branch,
            labels=labels,
            maintainers=resolution.maintainers,
            euc=euc,
            relay_hint=resolution.relay_hint,
        )
        return await self._publish(template, resolution.relays)

    async def update_pull_request(
        self,
        pull_request: EventReference | str,
        *,
        commit: str,
        clone: Sequence[str],
    ) -> PublishReport:
        """Move an existing pull request to a new tip commit.

        Raises:
            InvalidEventError: If the referenced event is not a pull request
                or has no repository coordinates.
        """
        event = await self._fetch(pull_request)
        if event.kind != EventKind.PULL_REQUEST:
            raise InvalidEventError(f"Event {event.id} is not a pull request")
        resolution = await self._ctx.resolver.resolve_event(event)
        if not resolution.coordinates:
            raise InvalidEventError(f"Pull request {event.id} targets no repository")
        template = builders.build_pull_request_update(
            self.pubkey,
            event,
            resolution.coordinates,
            commit=commit,
            clone=clone,
            maintainers=resolution.maintainers,
            relay_hint=resolution.relay_hint,
        )
        return await self._publish(template, resolution.relays)

    # -------------------------------------------------------------------------
    # Replies
    # -------------------------------------------------------------------------

    async def _thread_root(self, event: Event, relays: RelaySet | None = None) -> Event:
        """Return the root object *event* belongs to (itself for a root)."""
        if event.kind == EventKind.COMMENT:
            root = nip22.root_of_comment(event)
            if root is None:
                raise InvalidEventError(f"Comment {event.id} names no root")
            return await self._thread_root(await self._fetch(EventReference(event_id=root[0]), relays), relays)
        if event.kind == EventKind.PATCH and not is_root_patch(event) and not is_revision(event):
            for tag in event.find_tags("e"):
                if len(tag) > 3 and tag[3] == "root":  # noqa: PLR2004
                    return await self._fetch(EventReference(event_id=tag[1]), relays)
        if event.kind not in ROOT_KINDS:
            raise InvalidEventError(f"Event {event.id} of kind {event.kind} is not a collaboration root")
        return event

    async def reply(
        self,
        target: EventReference | str,
        content: str,
        *,
        quote_parent: bool = False,
    ) -> PublishReport:
        """Comment on an issue, patch, pull request or another comment.

        The comment goes to the repository relays and to the relays the
        parent's author reads from.
        """
        parent = await self._fetch(target)
        root = await self._thread_root(parent)
        resolution = await self._ctx.resolver.resolve_event(root)
        if quote_parent:
            label = nip19.encode(nip19.PublicKeyId(parent.pubkey))
            content = f"{nip22.quote(parent, label)}\n\n{content}"
        template = nip22.build_comment(
            self.pubkey,
            content,
            root=root,
            parent=parent,
            relay_hint=resolution.relay_hint or "",
            mentions=nip19.extract_mentions(content),
        )
        inbox = await self._ctx.resolver.outbox_relays(
            [parent.pubkey], fallback=resolution.relays, access=RelayAccess.READ
        )
        return await self._publish(template, resolution.relays | inbox)

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    async def _status_events(self, root_ids: Sequence[str], relays: RelaySet) -> list[Event]:
        if not root_ids:
            return []
        return await self._ctx.pool.query(
            {"kinds": _STATUS_KIND_LIST, "#e": list(dict.fromkeys(root_ids))}, relays
        )

    async def change_status(
        self,
        target: EventReference | str,
        transition: Transition,
        *,
        content: str = "",
        patch_ids: Sequence[str] = (),
        merge_commit: str | None = None,
        applied_commits: Sequence[str] = (),
    ) -> PublishReport:
        """Apply *transition* to a root object.

        A revision is never given its own status event: the event targets the
        original patch and names the revision in the same event.

        Raises:
            InvalidStatusTransition: If the precondition fails, the
                transition does not apply to the object, or the signer is
                neither its author nor a maintainer.
            InvalidEventError: If *target* is not part of an issue, patch or
                pull request.
        """
        event = await self._fetch(target)
        root = await self._thread_root(event)
        revisions: list[Event] = []
        if is_revision(root):
            original_id = revised_patch_id(root)
            if original_id is None:
                raise InvalidEventError(f"Revision {root.id} names no original patch")
            revisions.append(root)
            root = await self._fetch(EventReference(event_id=original_id))

        resolution = await self._ctx.resolver.resolve_event(root)
        status_events = await self._status_events([root.id], resolution.relays)
        current = current_status(root, status_events, resolution.maintainers)
        if self.pubkey != root.pubkey and self.pubkey not in resolution.maintainers:
            raise InvalidStatusTransition(
                current, transition, "only the author or a maintainer can change its status"
            )
        new_status = check_transition(ObjectType.from_kind(root.kind), current, transition)

        template = builders.build_status(
            self.pubkey,
            new_status,
            root,
            resolution.coordinates,
            maintainers=resolution.maintainers,
            revisions=revisions,
            patch_ids=patch_ids,
            merge_commit=merge_commit,
            applied_commits=applied_commits,
            relay_hint=resolution.relay_hint,
            content=content,
        )
        self._logger.info(
            "status_change_requested",
            root=root.id,
            current=current.name.lower(),
            requested=transition.value,
            result=new_status.name.lower(),
        )
        return await self._publish(template, resolution.relays)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def fetch_repository(self, references: Sequence[Reference]) -> RepositoryInfo:
        """Resolve *references* and fetch the latest repository states."""
        resolution = await self._ctx.resolver.resolve(references)
        events = await self._ctx.pool.query(
            {
                "kinds": [int(EventKind.REPOSITORY_STATE)],
                "authors": list(resolution.owners),
                "#d": list(dict.fromkeys(c.identifier for c in resolution.coordinates)),
            },
            resolution.relays,
        )
        wanted = set(resolution.addresses)
        states: dict[str, RepositoryState] = {}
        for event in events:
            address = f"{int(EventKind.REPOSITORY_ANNOUNCEMENT)}:{event.pubkey}:{event.tag_value('d')}"
            if address in wanted and address not in states:
                states[address] = parse_state(event)
        return RepositoryInfo(resolution=resolution, states=states)

    async def _list_roots(
        self, references: Sequence[Reference], event_filter: dict, limit: int
    ) -> tuple[list[Event], list[Event], Resolution]:
        resolution = await self._ctx.resolver.resolve(references)
        roots = await self._ctx.pool.query(
            {**event_filter, "#a": resolution.addresses, "limit": limit}, resolution.relays
        )
        return roots, await self._status_events([e.id for e in roots], resolution.relays), resolution

    async def list_issues(
        self,
        references: Sequence[Reference],
        *,
        status: Status | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[Issue]:
        """Issues of the repositories, newest first, optionally of one status."""
        roots, statuses, resolution = await self._list_roots(
            references, {"kinds": [int(EventKind.ISSUE)]}, limit
        )
        issues = [
            parse_object(e, current_status(e, statuses, resolution.maintainers)) for e in roots
        ]
        return [i for i in issues if isinstance(i, Issue) and (status is None or i.status is status)]

    async def list_pull_requests(
        self,
        references: Sequence[Reference],
        *,
        status: Status | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[PullRequest]:
        """Pull requests of the repositories, newest first, optionally of one status."""
        roots, statuses, resolution = await self._list_roots(
            references, {"kinds": [int(EventKind.PULL_REQUEST)]}, limit
        )
        requests = [
            parse_object(e, current_status(e, statuses, resolution.maintainers)) for e in roots
        ]
        return [
            r for r in requests if isinstance(r, PullRequest) and (status is None or r.status is status)
        ]

    async def list_patches(
        self,
        references: Sequence[Reference],
        *,
        status: Status | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[Patch]:
        """Root patches and revisions of the repositories, newest first.

        Revisions report their status as derived from their original.
        """
        roots, statuses, resolution = await self._list_roots(
            references, {"kinds": [int(EventKind.PATCH)], "#t": _REVISION_LABELS}, limit
        )
        by_id = {e.id: e for e in roots}
        missing = [
            original_id
            for e in roots
            if (original_id := revised_patch_id(e)) is not None and original_id not in by_id
        ]
        if missing:
            for event in await self._ctx.pool.query({"ids": missing}, resolution.relays):
                by_id.setdefault(event.id, event)
            statuses = [*statuses, *await self._status_events(missing, resolution.relays)]

        patches: list[Patch] = []
        for event in roots:
            original_id = revised_patch_id(event)
            original = by_id.get(original_id) if original_id is not None else None
            if original is not None:
                derived = revision_status(event, original, statuses, resolution.maintainers)
            else:
                derived = current_status(event, statuses, resolution.maintainers)
            patch = parse_object(event, derived)
            if isinstance(patch, Patch) and (status is None or patch.status is status):
                patches.append(patch)
        return patches

    async def view(self, target: EventReference | str) -> ThreadView:
        """Fetch a root object with its comments, statuses and patches.

        *target* may be the root itself or any comment or patch of its thread.
        """
        root = await self._thread_root(await self._fetch(target))
        original = None
        if is_revision(root) and (original_id := revised_patch_id(root)) is not None:
            try:
                original = await self._fetch(EventReference(event_id=original_id))
            except InvalidEventError:
                self._logger.debug("revision_original_missing", revision=root.id)

        resolution = await self._ctx.resolver.resolve_event(root)
        relays = self._with_fallback(resolution.relays)
        status_roots = [root.id] if original is None else [root.id, original.id]
        lower, upper, statuses = await asyncio.gather(
            self._ctx.pool.query({"#e": [root.id]}, relays),
            self._ctx.pool.query(
                {"kinds": [int(EventKind.COMMENT), int(EventKind.PULL_REQUEST_UPDATE)], "#E": [root.id]},
                relays,
            ),
            self._status_events(status_roots, relays),
        )

        if original is not None:
            status = revision_status(root, original, statuses, resolution.maintainers)
        else:
            status = current_status(root, statuses, resolution.maintainers)
        root_object = parse_object(root, status)
        assert isinstance(root_object, Issue | Patch | PullRequest)  # noqa: S101  # _thread_root

        updates = [e for e in upper if e.kind == EventKind.PULL_REQUEST_UPDATE and e.pubkey == root.pubkey]
        if isinstance(root_object, PullRequest) and updates:
            latest = max(updates, key=lambda e: (e.created_at, e.id))
            root_object = dataclasses.replace(
                root_object,
                commit=latest.tag_value("c") or root_object.commit,
                clone=tuple(v for tag in latest.find_tags("clone") for v in tag[1:]) or root_object.clone,
            )

        authorized = {root.pubkey, *resolution.maintainers}
        oldest_first = sorted({e.id: e for e in (*lower, *upper)}.values(), key=lambda e: (e.created_at, e.id))
        replies = tuple(
            obj for e in oldest_first if e.kind == EventKind.COMMENT
            if isinstance(obj := parse_object(e), Reply)
        )
        patches = tuple(
            obj for e in oldest_first if e.kind == EventKind.PATCH and e.id != root.id
            if isinstance(obj := parse_object(e, status), Patch)
        )
        changes = tuple(
            parse_status_change(e)
            for e in sorted(statuses, key=lambda e: (e.created_at, e.id))
            if e.pubkey in authorized and e.kind in STATUS_KINDS
        )
        latest_status = latest_status_event(root, statuses, resolution.maintainers)
        self._logger.debug(
            "thread_viewed",
            root=root.id,
            replies=len(replies),
            patches=len(patches),
            latest_status=latest_status.id if latest_status else "",
        )
        return ThreadView(root=root_object, replies=replies, status_changes=changes, patches=patches)
