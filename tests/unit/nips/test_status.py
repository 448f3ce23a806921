"""
Unit tests for nips.nip34.status module.

Tests:
- check_transition() over every (object type, status, transition) triple
- Revision detection and the revised patch id
- status_root_id() marker handling
- latest_status_event()/current_status() authorisation and tie-breaking
- revision_status() inheritance rules
"""

import itertools

import pytest

from nostrforge.core.exceptions import InvalidStatusTransition
from nostrforge.models.collaboration import ObjectType, Status, Transition
from nostrforge.nips.nip34.status import (
    check_transition,
    current_status,
    is_revision,
    is_root_patch,
    latest_status_event,
    mentioned_ids,
    revised_patch_id,
    revision_status,
    status_root_id,
)


_ALL = set(ObjectType)
_CHANGE_REQUESTS = {ObjectType.PATCH, ObjectType.PULL_REQUEST}

ALLOWED: dict[tuple[Transition, Status], tuple[set[ObjectType], Status]] = {
    (Transition.REOPEN, Status.CLOSED): (_ALL, Status.OPEN),
    (Transition.REOPEN, Status.DRAFT): (_ALL, Status.OPEN),
    (Transition.CLOSE, Status.OPEN): (_ALL, Status.CLOSED),
    (Transition.CLOSE, Status.DRAFT): (_ALL, Status.CLOSED),
    (Transition.RESOLVE, Status.OPEN): ({ObjectType.ISSUE}, Status.APPLIED),
    (Transition.RESOLVE, Status.APPLIED): ({ObjectType.ISSUE}, Status.APPLIED),
    (Transition.RESOLVE, Status.CLOSED): ({ObjectType.ISSUE}, Status.APPLIED),
    (Transition.RESOLVE, Status.DRAFT): ({ObjectType.ISSUE}, Status.APPLIED),
    (Transition.DRAFT, Status.OPEN): (_CHANGE_REQUESTS, Status.DRAFT),
    (Transition.APPLY, Status.OPEN): (_CHANGE_REQUESTS, Status.APPLIED),
    (Transition.MERGE, Status.OPEN): (_CHANGE_REQUESTS, Status.APPLIED),
}

TRIPLES = list(itertools.product(ObjectType, Status, Transition))


def _allowed(object_type: ObjectType, current: Status, transition: Transition) -> Status | None:
    entry = ALLOWED.get((transition, current))
    if entry is None or object_type not in entry[0]:
        return None
    return entry[1]


# ============================================================================
# State machine
# ============================================================================


class TestCheckTransition:
    """Tests for check_transition()."""

    @pytest.mark.parametrize(
        ("object_type", "current", "transition"),
        [t for t in TRIPLES if _allowed(*t) is not None],
    )
    def test_allowed(self, object_type, current, transition) -> None:
        assert check_transition(object_type, current, transition) is _allowed(
            object_type, current, transition
        )

    @pytest.mark.parametrize(
        ("object_type", "current", "transition"),
        [t for t in TRIPLES if _allowed(*t) is None],
    )
    def test_rejected(self, object_type, current, transition) -> None:
        with pytest.raises(InvalidStatusTransition) as exc_info:
            check_transition(object_type, current, transition)
        assert exc_info.value.current is current
        assert exc_info.value.requested is transition

    def test_close_applied_patch_rejected(self) -> None:
        with pytest.raises(InvalidStatusTransition, match="Cannot close"):
            check_transition(ObjectType.PATCH, Status.APPLIED, Transition.CLOSE)

    def test_resolve_on_patch_names_the_reason(self) -> None:
        with pytest.raises(InvalidStatusTransition, match="is not valid for a patch"):
            check_transition(ObjectType.PATCH, Status.OPEN, Transition.RESOLVE)

    def test_reopen_open_issue_rejected(self) -> None:
        with pytest.raises(InvalidStatusTransition):
            check_transition(ObjectType.ISSUE, Status.OPEN, Transition.REOPEN)


# ============================================================================
# Patch interpretation
# ============================================================================


class TestRevisions:
    """Tests for is_revision(), is_root_patch() and revised_patch_id()."""

    @pytest.mark.parametrize("label", ["root-revision", "revision-root"])
    def test_revision_labels(self, sign, contributor_keys, label: str) -> None:
        original_id = "a" * 64
        event = sign(contributor_keys, 1617, tags=[["t", label], ["e", original_id, "", "reply"]])
        assert is_revision(event)
        assert not is_root_patch(event)
        assert revised_patch_id(event) == original_id

    def test_root_patch(self, sign, contributor_keys) -> None:
        event = sign(contributor_keys, 1617, tags=[["t", "root"]])
        assert is_root_patch(event)
        assert not is_revision(event)
        assert revised_patch_id(event) is None

    def test_only_patches(self, sign, contributor_keys) -> None:
        event = sign(contributor_keys, 1621, tags=[["t", "root-revision"]])
        assert not is_revision(event)

    def test_unmarked_reference(self, sign, contributor_keys) -> None:
        event = sign(contributor_keys, 1617, tags=[["t", "root-revision"], ["e", "b" * 64]])
        assert revised_patch_id(event) == "b" * 64


class TestStatusRootId:
    """Tests for status_root_id() and mentioned_ids()."""

    def test_marker_wins(self, sign, owner_keys) -> None:
        event = sign(
            owner_keys,
            1632,
            tags=[["e", "a" * 64, "", "mention"], ["e", "b" * 64, "", "root"]],
        )
        assert status_root_id(event) == "b" * 64
        assert mentioned_ids(event) == {"a" * 64}

    def test_unmarked_fallback(self, sign, owner_keys) -> None:
        event = sign(owner_keys, 1632, tags=[["e", "c" * 64], ["e", "d" * 64]])
        assert status_root_id(event) == "c" * 64

    def test_no_reference(self, sign, owner_keys) -> None:
        assert status_root_id(sign(owner_keys, 1632)) is None


# ============================================================================
# Status derivation
# ============================================================================


class TestCurrentStatus:
    """Tests for latest_status_event() and current_status()."""

    @pytest.fixture
    def issue(self, sign, contributor_keys):
        return sign(contributor_keys, 1621, created_at=1_000)

    def _status(self, sign, keys, kind, root, created_at, *extra):
        return sign(keys, kind, tags=[["e", root.id, "", "root"], *extra], created_at=created_at)

    def test_open_without_events(self, issue) -> None:
        assert current_status(issue, []) is Status.OPEN
        assert latest_status_event(issue, []) is None

    def test_newest_wins(self, sign, contributor_keys, issue) -> None:
        closed = self._status(sign, contributor_keys, 1632, issue, 2_000)
        reopened = self._status(sign, contributor_keys, 1630, issue, 3_000)
        assert current_status(issue, [reopened, closed]) is Status.OPEN
        assert latest_status_event(issue, [closed, reopened]) == reopened

    def test_maintainer_counts(self, sign, maintainer_keys, maintainer, issue) -> None:
        resolved = self._status(sign, maintainer_keys, 1631, issue, 2_000)
        assert current_status(issue, [resolved]) is Status.OPEN
        assert current_status(issue, [resolved], [maintainer]) is Status.APPLIED

    def test_stranger_ignored(self, sign, owner_keys, contributor_keys, issue) -> None:
        mine = self._status(sign, contributor_keys, 1632, issue, 2_000)
        stranger = self._status(sign, owner_keys, 1630, issue, 3_000)
        assert current_status(issue, [mine, stranger]) is Status.CLOSED

    def test_other_roots_and_kinds_ignored(self, sign, contributor_keys, issue) -> None:
        elsewhere = sign(contributor_keys, 1632, tags=[["e", "f" * 64, "", "root"]], created_at=2_000)
        comment = sign(contributor_keys, 1111, tags=[["e", issue.id, "", "root"]], created_at=2_000)
        assert current_status(issue, [elsewhere, comment]) is Status.OPEN

    def test_tie_broken_by_larger_id(self, sign, contributor_keys, issue) -> None:
        closed = self._status(sign, contributor_keys, 1632, issue, 2_000)
        drafted = self._status(sign, contributor_keys, 1633, issue, 2_000)
        winner = max(closed, drafted, key=lambda e: e.id)
        assert latest_status_event(issue, [closed, drafted]) == winner
        assert latest_status_event(issue, [drafted, closed]) == winner


class TestRevisionStatus:
    """Tests for revision_status()."""

    @pytest.fixture
    def original(self, sign, contributor_keys):
        return sign(contributor_keys, 1617, tags=[["t", "root"]], created_at=1_000)

    @pytest.fixture
    def revision(self, sign, contributor_keys, original):
        return sign(
            contributor_keys,
            1617,
            tags=[["t", "root-revision"], ["e", original.id, "", "reply"]],
            created_at=1_500,
        )

    def _status(self, sign, keys, kind, original, *mentions):
        tags = [["e", original.id, "", "root"], *(["e", m.id, "", "mention"] for m in mentions)]
        return sign(keys, kind, tags=tags, created_at=2_000)

    def test_open_without_events(self, revision, original) -> None:
        assert revision_status(revision, original, []) is Status.OPEN

    def test_inherits_original(self, sign, contributor_keys, revision, original) -> None:
        closed = self._status(sign, contributor_keys, 1632, original)
        assert revision_status(revision, original, [closed]) is Status.CLOSED

    def test_applied_original_closes_unnamed_revision(
        self, sign, owner_keys, owner, revision, original
    ) -> None:
        applied = self._status(sign, owner_keys, 1631, original)
        assert revision_status(revision, original, [applied], [owner]) is Status.CLOSED

    def test_named_revision_takes_status(self, sign, owner_keys, owner, revision, original) -> None:
        applied = self._status(sign, owner_keys, 1631, original, revision)
        assert revision_status(revision, original, [applied], [owner]) is Status.APPLIED
