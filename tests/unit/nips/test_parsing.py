"""
Unit tests for nips.nip34.parsing module.

Tests:
- repository_coordinates() from a tags, invalid hints and foreign kinds
- parse_announcement() and parse_state() of builder output
- parse_object() for issues, patches, revisions, pull requests and comments
- parse_status_change() details
"""

import pytest

from nostrforge.core.exceptions import InvalidEventError
from nostrforge.models.collaboration import (
    Issue,
    Patch,
    PullRequest,
    Reply,
    RepositoryAnnouncement,
    RepositoryState,
    Status,
    StatusChange,
)
from nostrforge.nips.nip34.builders import (
    build_issue,
    build_patch_series,
    build_pull_request,
    build_repository_announcement,
    build_repository_state,
    build_status,
)
from nostrforge.nips.nip34.parsing import (
    parse_announcement,
    parse_object,
    parse_state,
    parse_status_change,
    repository_coordinates,
)
from nostrforge.utils.keys import sign_with_keys


COMMIT = "1234567890abcdef1234567890abcdef12345678"

PATCH = (
    f"From {COMMIT} Mon Sep 17 00:00:00 2001\n"
    "From: Alice <alice@example.com>\n"
    "Subject: [PATCH] Fix crash\n"
    "\n"
    "Details.\n"
    "---\n"
)


# ============================================================================
# Repositories
# ============================================================================


class TestRepositoryCoordinates:
    """Tests for repository_coordinates()."""

    def test_coordinates_with_hints(self, sign, contributor_keys, owner, maintainer) -> None:
        event = sign(
            contributor_keys,
            1621,
            tags=[
                ["a", f"30617:{owner}:forge", "wss://relay.example"],
                ["a", f"30617:{maintainer}:fork"],
            ],
        )
        coordinates = repository_coordinates(event)
        assert [c.address for c in coordinates] == [f"30617:{owner}:forge", f"30617:{maintainer}:fork"]
        assert coordinates[0].relays == ("wss://relay.example",)
        assert coordinates[1].relays == ()

    def test_invalid_hint_dropped(self, sign, contributor_keys, owner) -> None:
        event = sign(contributor_keys, 1621, tags=[["a", f"30617:{owner}:forge", "not a relay"]])
        (coordinate,) = repository_coordinates(event)
        assert coordinate.relays == ()

    def test_other_kinds_and_garbage_skipped(self, sign, contributor_keys, owner) -> None:
        event = sign(
            contributor_keys,
            1621,
            tags=[["a", f"30023:{owner}:article"], ["a", "garbage"], ["a"]],
        )
        assert repository_coordinates(event) == []


class TestParseAnnouncement:
    """Tests for parse_announcement() and parse_state()."""

    def test_announcement_from_builder(self, owner_keys, owner, maintainer) -> None:
        announcement = RepositoryAnnouncement(
            identifier="forge",
            name="Forge",
            description="A forge",
            web=("https://forge.example",),
            clone=("https://git.example/forge.git", "ssh://git.example/forge.git"),
            relays=("wss://relay.example",),
            maintainers=(maintainer,),
            labels=("nostr", "git"),
            euc=COMMIT,
        )
        event = sign_with_keys(owner_keys, build_repository_announcement(owner, announcement))
        parsed = parse_announcement(event)

        assert parsed == RepositoryAnnouncement(
            identifier="forge",
            name="Forge",
            description="A forge",
            web=("https://forge.example",),
            clone=("https://git.example/forge.git", "ssh://git.example/forge.git"),
            relays=("wss://relay.example",),
            maintainers=(maintainer,),
            labels=("nostr", "git"),
            euc=COMMIT,
            author=owner,
        )

    def test_author_not_listed_as_maintainer(self, sign, owner_keys, owner, maintainer) -> None:
        event = sign(owner_keys, 30617, tags=[["d", "forge"], ["maintainers", owner, maintainer]])
        assert parse_announcement(event).maintainers == (maintainer,)

    def test_announcement_errors(self, sign, owner_keys) -> None:
        with pytest.raises(InvalidEventError, match="not a repository announcement"):
            parse_announcement(sign(owner_keys, 1621))
        with pytest.raises(InvalidEventError, match="no d tag"):
            parse_announcement(sign(owner_keys, 30617))

    def test_state_from_builder(self, owner_keys, owner) -> None:
        state = RepositoryState(
            identifier="forge", head="main", branches={"main": COMMIT}, tags={"v1": "f" * 40}
        )
        event = sign_with_keys(owner_keys, build_repository_state(owner, state))
        assert parse_state(event) == state

    def test_state_wrong_kind(self, sign, owner_keys) -> None:
        with pytest.raises(InvalidEventError):
            parse_state(sign(owner_keys, 30617, tags=[["d", "forge"]]))


# ============================================================================
# Objects
# ============================================================================


class TestParseObject:
    """Tests for parse_object()."""

    def test_issue(self, contributor_keys, contributor, coordinate) -> None:
        template = build_issue(contributor, [coordinate], "Crash", "It #crashes", labels=["bug"])
        event = sign_with_keys(contributor_keys, template)
        issue = parse_object(event, Status.CLOSED)

        assert isinstance(issue, Issue)
        assert issue.subject == "Crash"
        assert issue.labels == ("bug", "crashes")
        assert issue.coordinates == (coordinate.address,)
        assert issue.status is Status.CLOSED
        assert issue.author == contributor

    def test_patch_series(self, contributor_keys, contributor, coordinate) -> None:
        templates = build_patch_series(contributor, [coordinate], [PATCH, PATCH])
        root, follow_up = (sign_with_keys(contributor_keys, t) for t in templates)

        parsed_root = parse_object(root)
        assert isinstance(parsed_root, Patch)
        assert parsed_root.is_root
        assert not parsed_root.is_revision
        assert parsed_root.subject == "Fix crash"
        assert parsed_root.commit == COMMIT

        parsed_follow_up = parse_object(follow_up)
        assert not parsed_follow_up.is_root
        assert parsed_follow_up.root_id == root.id

    def test_revision(self, sign, contributor_keys, contributor, coordinate) -> None:
        original = sign(contributor_keys, 1617, tags=[["t", "root"]], content=PATCH)
        (template,) = build_patch_series(contributor, [coordinate], [PATCH], original=original)
        revision = parse_object(sign_with_keys(contributor_keys, template))

        assert revision.is_root
        assert revision.is_revision
        assert revision.original_id == original.id

    def test_patch_subject_without_alt(self, sign, contributor_keys) -> None:
        assert parse_object(sign(contributor_keys, 1617, content=PATCH)).subject == "Fix crash"
        assert parse_object(sign(contributor_keys, 1617, content="free text\nmore")).subject == (
            "free text"
        )

    def test_pull_request(self, contributor_keys, contributor, coordinate) -> None:
        template = build_pull_request(
            contributor,
            [coordinate],
            "Add docs",
            "",
            commit=COMMIT,
            clone=["https://git.example/fork.git"],
            branch="docs",
        )
        pr = parse_object(sign_with_keys(contributor_keys, template))
        assert isinstance(pr, PullRequest)
        assert pr.commit == COMMIT
        assert pr.clone == ("https://git.example/fork.git",)
        assert pr.branch == "docs"

    def test_comment(self, sign, contributor_keys, owner_keys) -> None:
        issue = sign(owner_keys, 1621)
        comment = sign(
            contributor_keys,
            1111,
            tags=[["E", issue.id], ["K", "1621"], ["e", issue.id], ["k", "1621"]],
            content="+1",
        )
        reply = parse_object(comment)
        assert reply == Reply(
            event_id=comment.id,
            author=comment.pubkey,
            created_at=comment.created_at,
            content="+1",
            root_id=issue.id,
            parent_id=issue.id,
        )

    def test_status_event(self, sign, owner_keys, contributor_keys, owner, coordinate) -> None:
        issue = sign(contributor_keys, 1621)
        event = sign_with_keys(owner_keys, build_status(owner, Status.CLOSED, issue, [coordinate]))
        assert isinstance(parse_object(event), StatusChange)

    def test_unknown_kind(self, sign, owner_keys) -> None:
        with pytest.raises(InvalidEventError, match="not a collaboration event"):
            parse_object(sign(owner_keys, 1))


class TestParseStatusChange:
    """Tests for parse_status_change()."""

    def test_applied_details(self, sign, owner_keys, contributor_keys, owner, coordinate) -> None:
        patch = sign(contributor_keys, 1617, tags=[["t", "root"]])
        revision = sign(contributor_keys, 1617, tags=[["t", "root-revision"]])
        template = build_status(
            owner,
            Status.APPLIED,
            patch,
            [coordinate],
            revisions=[revision],
            patch_ids=["d" * 64],
            merge_commit=COMMIT,
            applied_commits=["a" * 40],
            content="Thanks!",
        )
        change = parse_status_change(sign_with_keys(owner_keys, template))

        assert change.status is Status.APPLIED
        assert change.root_id == patch.id
        assert change.revision_ids == (revision.id,)
        assert change.patch_ids == ("d" * 64,)
        assert change.merge_commit == COMMIT
        assert change.applied_commits == ("a" * 40,)
        assert change.content == "Thanks!"

    def test_errors(self, sign, owner_keys) -> None:
        with pytest.raises(InvalidEventError, match="not a status event"):
            parse_status_change(sign(owner_keys, 1621))
        with pytest.raises(InvalidEventError, match="references no root"):
            parse_status_change(sign(owner_keys, 1632))
