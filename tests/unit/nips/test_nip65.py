"""
Unit tests for nips.nip65 module.

Tests:
- parse_relay_list() markers, invalid URLs and wrong kinds
- latest_relay_lists() keeps the newest list per author
- build_relay_list() tag layout
"""

import pytest

from nostrforge.models.relay import RelayAccess, RelaySet
from nostrforge.nips.nip65 import build_relay_list, latest_relay_lists, parse_relay_list


# ============================================================================
# parse_relay_list
# ============================================================================


class TestParseRelayList:
    """Tests for parse_relay_list()."""

    def test_markers(self, sign, owner_keys) -> None:
        event = sign(
            owner_keys,
            10002,
            tags=[
                ["r", "wss://inbox.example", "read"],
                ["r", "wss://outbox.example", "write"],
                ["r", "wss://both.example"],
            ],
        )
        relays = parse_relay_list(event)
        assert relays.urls == ["wss://inbox.example", "wss://outbox.example", "wss://both.example"]
        assert relays.access("wss://inbox.example") is RelayAccess.READ
        assert relays.access("wss://outbox.example") is RelayAccess.WRITE
        assert relays.access("wss://both.example") is RelayAccess.BOTH

    def test_readable_and_writable(self, sign, owner_keys) -> None:
        event = sign(
            owner_keys,
            10002,
            tags=[["r", "wss://inbox.example", "read"], ["r", "wss://outbox.example", "write"]],
        )
        relays = parse_relay_list(event)
        assert relays.readable().urls == ["wss://inbox.example"]
        assert relays.writable().urls == ["wss://outbox.example"]

    def test_unknown_marker_is_both(self, sign, owner_keys) -> None:
        event = sign(owner_keys, 10002, tags=[["r", "wss://a.example", "sometimes"]])
        assert parse_relay_list(event).access("wss://a.example") is RelayAccess.BOTH

    def test_invalid_urls_skipped(self, sign, owner_keys) -> None:
        event = sign(
            owner_keys,
            10002,
            tags=[["r", "https://web.example"], ["r"], ["r", "wss://ok.example"]],
        )
        assert parse_relay_list(event).urls == ["wss://ok.example"]

    def test_wrong_kind(self, sign, owner_keys) -> None:
        event = sign(owner_keys, 1, tags=[["r", "wss://a.example"]])
        with pytest.raises(ValueError, match="Expected kind 10002"):
            parse_relay_list(event)


# ============================================================================
# latest_relay_lists
# ============================================================================


class TestLatestRelayLists:
    """Tests for latest_relay_lists()."""

    def test_newest_per_author(self, sign, owner_keys, contributor_keys, owner, contributor) -> None:
        old = sign(owner_keys, 10002, tags=[["r", "wss://old.example"]], created_at=100)
        new = sign(owner_keys, 10002, tags=[["r", "wss://new.example"]], created_at=200)
        other = sign(contributor_keys, 10002, tags=[["r", "wss://c.example"]], created_at=50)

        lists = latest_relay_lists([new, other, old])
        assert lists[owner].urls == ["wss://new.example"]
        assert lists[contributor].urls == ["wss://c.example"]

    def test_same_timestamp_uses_larger_id(self, sign, owner_keys, owner) -> None:
        a = sign(owner_keys, 10002, tags=[["r", "wss://a.example"]], created_at=100)
        b = sign(owner_keys, 10002, tags=[["r", "wss://b.example"]], created_at=100)
        winner = max(a, b, key=lambda e: e.id)

        assert latest_relay_lists([a, b])[owner] == parse_relay_list(winner)
        assert latest_relay_lists([b, a])[owner] == parse_relay_list(winner)

    def test_other_kinds_ignored(self, sign, owner_keys) -> None:
        assert latest_relay_lists([sign(owner_keys, 1)]) == {}


# ============================================================================
# build_relay_list
# ============================================================================


class TestBuildRelayList:
    """Tests for build_relay_list()."""

    def test_tags(self, owner) -> None:
        relays = RelaySet.from_urls(["wss://a.example"]) | RelaySet.from_urls(
            ["wss://b.example"], RelayAccess.READ
        )
        template = build_relay_list(owner, relays)
        assert template.kind == 10002
        assert template.pubkey == owner
        assert template.tags == (("r", "wss://a.example"), ("r", "wss://b.example", "read"))
