"""Parsing of ``git format-patch`` output.

Only the mail headers are interpreted; the diff itself is carried verbatim
as the content of the patch event.
"""

from __future__ import annotations

import re
from dataclasses import dataclass


_FROM_LINE = re.compile(r"^From ([0-9a-f]{40}) ")
_SUBJECT_PREFIX = re.compile(r"^\[[^\]]*PATCH[^\]]*\]\s*", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class GitPatch:
    """Headers of one ``git format-patch`` mail.

    Attributes:
        subject: Subject with the ``[PATCH n/m]`` prefix removed.
        body: Commit message body, without the subject line.
        commit: Commit id from the mbox ``From`` line, when present.
        author: The ``From:`` header value.
    """

    subject: str
    body: str = ""
    commit: str | None = None
    author: str | None = None


def parse_patch(text: str) -> GitPatch:
    """Extract subject, body, commit id and author from a patch.

    Raises:
        ValueError: If the patch has no ``Subject:`` header.
    """
    lines = text.splitlines()
    commit = None
    author = None
    subject_parts: list[str] | None = None
    index = 0

    if lines and (match := _FROM_LINE.match(lines[0])):
        commit = match.group(1)
        index = 1

    while index < len(lines):
        line = lines[index]
        if not line.strip():
            index += 1
            break
        if subject_parts is not None and line[:1] in (" ", "\t"):
            subject_parts.append(line.strip())
        elif line.startswith("Subject:"):
            subject_parts = [line[len("Subject:") :].strip()]
        elif line.startswith("From:"):
            author = line[len("From:") :].strip()
        index += 1

    if not subject_parts:
        raise ValueError("Patch has no Subject header")

    body_lines: list[str] = []
    for line in lines[index:]:
        if line == "---" or line.startswith("diff --git "):
            break
        body_lines.append(line)

    subject = _SUBJECT_PREFIX.sub("", " ".join(subject_parts)).strip()
    return GitPatch(
        subject=subject,
        body="\n".join(body_lines).strip(),
        commit=commit,
        author=author,
    )
