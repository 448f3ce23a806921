"""NIP-05 identifier lookup for ``name@domain/repository`` references.

Fetches ``https://<domain>/.well-known/nostr.json?name=<name>`` and maps the
name to a public key and, when the document lists them, the relays that key
uses. A [DomainReference][nostrforge.models.references.DomainReference] then
becomes a [RepositoryCoordinate][nostrforge.models.coordinate.RepositoryCoordinate]
of kind 30617.

See Also:
    [read_bounded_json][nostrforge.utils.http.read_bounded_json]: Bounded body
        read protecting against oversized documents.
    [AddressResolver][nostrforge.services.resolver.AddressResolver]: The
        consumer of [resolve_domain()][nostrforge.nips.nip05.resolve_domain].
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any

import aiohttp

from nostrforge.core.exceptions import UnresolvedRepository
from nostrforge.models.coordinate import RepositoryCoordinate
from nostrforge.models.references import DomainReference
from nostrforge.models.relay import Relay
from nostrforge.utils.http import read_bounded_json


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
DEFAULT_MAX_SIZE = 64 * 1024

_HEX_KEY = re.compile(r"^[0-9a-f]{64}$")


@dataclass(frozen=True, slots=True)
class Nip05Identity:
    pubkey: str
    relays: tuple[str, ...] = ()


def well_known_url(reference: DomainReference) -> str:
    return f"https://{reference.domain}/.well-known/nostr.json"


async def _fetch_nostr_json(
    url: str,
    name: str,
    timeout: float,  # noqa: ASYNC109
    max_size: int,
) -> dict[str, Any]:
    """GET the ``nostr.json`` document and return it as a dict.

    Raises:
        ValueError: On a non-200 status, an oversized body, or a body that
            is not a JSON object.
        aiohttp.ClientError: On transport failures.
    """
    async with (
        aiohttp.ClientSession() as session,
        session.get(
            url,
            params={"name": name},
            headers={"Accept": "application/json"},
            timeout=aiohttp.ClientTimeout(total=timeout),
            allow_redirects=False,
        ) as resp,
    ):
        if resp.status != HTTPStatus.OK:
            raise ValueError(f"HTTP {resp.status}")
        data = await read_bounded_json(resp, max_size)
        if not isinstance(data, dict):
            raise ValueError(f"Expected dict, got {type(data).__name__}")
        return data


def parse_nostr_json(data: dict[str, Any], name: str) -> Nip05Identity:
    """Extract the identity of *name* from a ``nostr.json`` document.

    Relay URLs that fail validation are dropped.

    Raises:
        ValueError: If *name* is missing or maps to an invalid public key.
    """
    names = data.get("names")
    if not isinstance(names, dict) or name not in names:
        raise ValueError(f"Name {name!r} not found")
    pubkey = names[name]
    if not isinstance(pubkey, str) or not _HEX_KEY.match(pubkey):
        raise ValueError(f"Invalid public key for {name!r}")

    relays: list[str] = []
    relay_map = data.get("relays")
    if isinstance(relay_map, dict) and isinstance(relay_map.get(pubkey), list):
        for url in relay_map[pubkey]:
            try:
                relays.append(Relay(url).url)
            except (TypeError, ValueError):
                logger.debug("nip05_invalid_relay name=%s url=%s", name, url)
    return Nip05Identity(pubkey=pubkey, relays=tuple(dict.fromkeys(relays)))


async def lookup(
    reference: DomainReference,
    *,
    timeout: float = DEFAULT_TIMEOUT,  # noqa: ASYNC109
    max_size: int = DEFAULT_MAX_SIZE,
) -> Nip05Identity:
    """Resolve the NIP-05 identity behind *reference*.

    Raises:
        UnresolvedRepository: If the document cannot be fetched or does not
            contain the name.
    """
    url = well_known_url(reference)
    try:
        data = await _fetch_nostr_json(url, reference.name, timeout, max_size)
        identity = parse_nostr_json(data, reference.name)
    except (OSError, TimeoutError, aiohttp.ClientError, ValueError) as e:
        logger.debug("nip05_lookup_failed reference=%s error=%s", reference, e)
        raise UnresolvedRepository(f"NIP-05 lookup failed for {reference}: {e}") from e

    logger.debug("nip05_lookup_succeeded reference=%s pubkey=%s", reference, identity.pubkey)
    return identity


async def resolve_domain(
    reference: DomainReference,
    *,
    timeout: float = DEFAULT_TIMEOUT,  # noqa: ASYNC109
) -> RepositoryCoordinate:
    """Turn ``name@domain/repository`` into a repository coordinate."""
    identity = await lookup(reference, timeout=timeout)
    return RepositoryCoordinate(
        pubkey=identity.pubkey,
        identifier=reference.repository,
        relays=identity.relays,
    )
