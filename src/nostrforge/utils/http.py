"""HTTP utilities.

Provides bounded JSON reading for HTTP responses so that a hostile or
misconfigured server cannot exhaust memory with an oversized document.

Note:
    This module sits in the ``utils`` layer and depends only on stdlib and
    ``aiohttp``. It is importable from both ``nips`` and ``signers``
    without violating the diamond DAG.

See Also:
    [lookup][nostrforge.nips.nip05.lookup]: NIP-05 document fetch that uses
        [read_bounded_json][nostrforge.utils.http.read_bounded_json].
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import aiohttp


if TYPE_CHECKING:
    from aiohttp import web


async def read_bounded(response: aiohttp.ClientResponse | web.Request, max_size: int) -> bytes:
    """Read an entire body with size enforcement.

    Accumulates chunks until EOF or the limit is exceeded, which also
    handles chunked transfer-encoding where a single read may return fewer
    bytes than requested. Works for client responses and for requests
    received by an ``aiohttp.web`` handler.

    Raises:
        ValueError: If the body exceeds *max_size*.
    """
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await response.content.read(max_size + 1 - total)
        if not chunk:
            break
        total += len(chunk)
        if total > max_size:
            raise ValueError(f"Body too large: >{max_size} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


async def read_bounded_json(response: aiohttp.ClientResponse | web.Request, max_size: int) -> Any:
    """Read and parse a JSON body with size enforcement.

    Raises:
        ValueError: If the body exceeds *max_size*.
        json.JSONDecodeError: If the body is not valid JSON (a ``ValueError``).
    """
    body = await read_bounded(response, max_size)
    return json.loads(body)
