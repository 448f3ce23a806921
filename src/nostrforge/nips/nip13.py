"""NIP-13 proof of work.

The miner searches for a nonce such that the event id has at least the
requested number of leading zero bits, recording it in a
``["nonce", "<n>", "<difficulty>"]`` tag. The search is pure CPU work over a
fixed template (``created_at`` is never touched), so the same template and
difficulty always yield the same nonce.

[mine_async()][nostrforge.nips.nip13.mine_async] runs the search on a worker
thread; cancelling the awaiting task sets the cancellation flag and the
search stops without producing an event.

Examples:
    ```python
    template = build_issue(...)
    mined = mine(template, 16)
    count_leading_zero_bits(mined.id) >= 16   # True
    mined.tag_value("nonce")                    # e.g. '48213'
    ```
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import threading

from nostrforge.core.exceptions import MiningCancelled
from nostrforge.models.event import UnsignedEvent


logger = logging.getLogger(__name__)

NONCE_TAG = "nonce"
_CANCEL_CHECK_INTERVAL = 4096


def count_leading_zero_bits(hex_id: str) -> int:
    """Return the number of leading zero bits of a hex digest."""
    bits = 0
    for char in hex_id:
        nibble = int(char, 16)
        if nibble == 0:
            bits += 4
            continue
        bits += 4 - nibble.bit_length()
        break
    return bits


def _nonce_hasher(template: UnsignedEvent, difficulty: int) -> tuple[bytes, bytes]:
    """Split the canonical serialization around the nonce value.

    Returns the byte prefix and suffix such that
    ``prefix + str(nonce) + suffix`` is the serialization of the template
    carrying ``["nonce", str(nonce), str(difficulty)]`` as its last tag.
    """
    marker = "\x01nonce-placeholder\x01"
    tags = [list(t) for t in template.tags if t[0] != NONCE_TAG]
    tags.append([NONCE_TAG, marker, str(difficulty)])
    payload = [0, template.pubkey, template.created_at, template.kind, tags, template.content]
    serialized = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    encoded_marker = json.dumps(marker, ensure_ascii=False)[1:-1]
    prefix, suffix = serialized.split(encoded_marker, 1)
    return prefix.encode("utf-8"), suffix.encode("utf-8")


def find_nonce(
    template: UnsignedEvent,
    difficulty: int,
    cancel: threading.Event | None = None,
) -> int | None:
    """Search for the smallest nonce meeting *difficulty*, counting from 0.

    Args:
        template: Event template; an existing nonce tag is replaced.
        difficulty: Required leading zero bits of the id.
        cancel: Flag polled during the search.

    Returns:
        The nonce, or ``None`` when *difficulty* is 0 (no work needed).

    Raises:
        ValueError: If *difficulty* is negative or above 256.
        MiningCancelled: If *cancel* was set before a nonce was found.
    """
    if not 0 <= difficulty <= 256:  # noqa: PLR2004
        raise ValueError(f"difficulty must be in [0, 256], got {difficulty}")
    if difficulty == 0:
        return None

    prefix, suffix = _nonce_hasher(template, difficulty)
    full_bytes, rem_bits = divmod(difficulty, 8)
    mask = (0xFF << (8 - rem_bits)) & 0xFF

    nonce = 0
    while True:
        if nonce % _CANCEL_CHECK_INTERVAL == 0 and cancel is not None and cancel.is_set():
            raise MiningCancelled(f"Mining cancelled after {nonce} attempts")
        digest = hashlib.sha256(prefix + str(nonce).encode() + suffix).digest()
        if not any(digest[:full_bytes]) and (rem_bits == 0 or not digest[full_bytes] & mask):
            return nonce
        nonce += 1


def mine(
    template: UnsignedEvent,
    difficulty: int,
    cancel: threading.Event | None = None,
) -> UnsignedEvent:
    """Return *template* with a nonce tag meeting *difficulty*.

    A difficulty of 0 returns the template itself, untouched.
    """
    nonce = find_nonce(template, difficulty, cancel)
    if nonce is None:
        return template
    mined = template.replace_tag((NONCE_TAG, str(nonce), str(difficulty)))
    logger.debug("pow_mined kind=%s difficulty=%s nonce=%s id=%s", template.kind, difficulty, nonce, mined.id)
    return mined


async def mine_async(template: UnsignedEvent, difficulty: int) -> UnsignedEvent:
    """Run [mine()][nostrforge.nips.nip13.mine] on a worker thread.

    Cancelling the calling task stops the search.
    """
    if difficulty == 0:
        return template
    cancel = threading.Event()
    try:
        return await asyncio.to_thread(mine, template, difficulty, cancel)
    except asyncio.CancelledError:
        cancel.set()
        raise
