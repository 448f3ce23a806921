"""
Unit tests for nips.nip34.patches module.

Tests:
- parse_patch() headers, folded subjects, prefix stripping and body
- Missing Subject header
"""

import pytest

from nostrforge.nips.nip34.patches import GitPatch, parse_patch


COMMIT = "1234567890abcdef1234567890abcdef12345678"

PATCH = f"""From {COMMIT} Mon Sep 17 00:00:00 2001
From: Alice <alice@example.com>
Date: Mon, 2 Mar 2026 14:05:00 +0000
Subject: [PATCH 1/2] Fix crash on
 start

The config loader dereferenced None
when the file was empty.
---
 src/app.py | 2 +-
 1 file changed, 1 insertion(+), 1 deletion(-)

diff --git a/src/app.py b/src/app.py
"""


class TestParsePatch:
    """Tests for parse_patch()."""

    def test_full_patch(self) -> None:
        assert parse_patch(PATCH) == GitPatch(
            subject="Fix crash on start",
            body="The config loader dereferenced None\nwhen the file was empty.",
            commit=COMMIT,
            author="Alice <alice@example.com>",
        )

    @pytest.mark.parametrize(
        ("subject", "expected"),
        [
            ("[PATCH] Add docs", "Add docs"),
            ("[PATCH v2 3/7] Add docs", "Add docs"),
            ("[RFC PATCH] Add docs", "Add docs"),
            ("Add docs", "Add docs"),
        ],
    )
    def test_prefix_stripped(self, subject: str, expected: str) -> None:
        assert parse_patch(f"Subject: {subject}\n\nbody\n").subject == expected

    def test_without_mbox_line(self) -> None:
        parsed = parse_patch("Subject: Tweak\n\n")
        assert parsed.commit is None
        assert parsed.author is None
        assert parsed.body == ""

    def test_body_stops_at_diff(self) -> None:
        text = "Subject: Tweak\n\nExplain.\ndiff --git a/x b/x\n+more\n"
        assert parse_patch(text).body == "Explain."

    def test_missing_subject(self) -> None:
        with pytest.raises(ValueError, match="no Subject"):
            parse_patch(f"From {COMMIT} Mon Sep 17 00:00:00 2001\nFrom: Alice\n\nbody\n")
