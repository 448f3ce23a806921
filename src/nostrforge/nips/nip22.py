"""NIP-22 comments (kind 1111) on issues, patches and pull requests.

A comment carries two scopes: the root object it belongs to (uppercase
``E``/``K``/``P`` tags) and the item it directly answers (lowercase
``e``/``k``/``p``). A top-level comment uses the root as its parent.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime

from nostrforge.models.constants import EventKind
from nostrforge.models.event import Event, UnsignedEvent


def root_of_comment(comment: Event) -> tuple[str, int] | None:
    """Return ``(root_id, root_kind)`` from a comment's uppercase tags."""
    root_id = comment.tag_value("E")
    root_kind = comment.tag_value("K")
    if root_id is None or root_kind is None or not root_kind.isdigit():
        return None
    return root_id, int(root_kind)


def quote(event: Event, author_label: str | None = None) -> str:
    """Render *event* as an email-style quoted block.

    Examples:
        ```text
        On 2026-03-02 at 14:05 UTC, npub1... wrote:
        > first line
        > second line
        ```
    """
    when = datetime.fromtimestamp(event.created_at, UTC)
    who = author_label or event.pubkey
    body = "\n".join(f"> {line}" if line else ">" for line in event.content.splitlines())
    return f"On {when:%Y-%m-%d} at {when:%H:%M} UTC, {who} wrote:\n{body}"


def build_comment(
    pubkey: str,
    content: str,
    *,
    root: Event,
    parent: Event | None = None,
    relay_hint: str = "",
    mentions: Iterable[str] = (),
) -> UnsignedEvent:
    """Build a kind-1111 comment.

    Args:
        pubkey: Author of the comment.
        content: Comment body.
        root: The issue, patch or pull request the thread belongs to.
        parent: The event answered, defaulting to *root*.
        relay_hint: Relay where *root* and *parent* can be found.
        mentions: Extra hex public keys to notify.
    """
    parent = parent or root
    tags: list[tuple[str, ...]] = []

    if root.kind == EventKind.REPOSITORY_ANNOUNCEMENT:
        address = f"{root.kind}:{root.pubkey}:{root.tag_value('d') or ''}"
        tags.append(("A", address, relay_hint))
    else:
        tags.append(("E", root.id, relay_hint, root.pubkey))
    tags.extend(
        [
            ("K", str(root.kind)),
            ("P", root.pubkey, relay_hint),
            ("e", parent.id, relay_hint, parent.pubkey),
            ("k", str(parent.kind)),
            ("p", parent.pubkey, relay_hint),
        ]
    )
    notified = {root.pubkey, parent.pubkey, pubkey}
    for mention in mentions:
        if mention not in notified:
            notified.add(mention)
            tags.append(("p", mention))

    return UnsignedEvent(pubkey=pubkey, kind=EventKind.COMMENT, tags=tuple(tags), content=content)
