"""
Validated relay URLs and access-annotated relay sets.

[Relay][nostrforge.models.relay.Relay] parses, normalizes, and validates a
WebSocket relay URL (``ws://`` or ``wss://``), detecting the network type and
enforcing TLS on the public internet. [RelaySet][nostrforge.models.relay.RelaySet]
is the ordered, deduplicated collection every publish and query operates on,
carrying the NIP-65 read/write role of each relay.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import StrEnum
from ipaddress import IPv4Network, IPv6Network, ip_address, ip_network
from typing import Any, ClassVar

from rfc3986 import uri_reference
from rfc3986.exceptions import UnpermittedComponentError, ValidationError
from rfc3986.validators import Validator

from .constants import NetworkType


@dataclass(frozen=True, slots=True)
class Relay:
    """Immutable representation of a Nostr relay URL.

    Validates and normalizes a WebSocket URL on construction, detecting the
    network type from the hostname. The scheme is enforced per network:

    * **clearnet** -- ``wss://`` (TLS required on the public internet)
    * **tor / i2p / loki** -- ``ws://`` (encryption handled by the overlay)
    * **local** -- scheme kept as given (a developer's own relay)

    Attributes:
        url: Fully normalized URL including scheme.
        network: Detected ``NetworkType`` enum value.
        scheme: URL scheme (``ws`` or ``wss``).
        host: Hostname or IP address (brackets stripped for IPv6).
        port: Explicit port number, or ``None`` when using the default.
        path: URL path component, or ``None``.

    Raises:
        ValueError: If the URL is malformed, uses an unsupported scheme,
            has an unclassifiable host, or contains null bytes.

    Examples:
        ```python
        relay = Relay("wss://Relay.Damus.io/")
        relay.url       # 'wss://relay.damus.io'
        relay.network   # NetworkType.CLEARNET

        Relay("ws://localhost:7777").url  # 'ws://localhost:7777'
        ```
    """

    raw_url: str = field(repr=False)

    url: str = field(init=False)
    network: NetworkType = field(init=False)
    scheme: str = field(init=False)
    host: str = field(init=False)
    port: int | None = field(init=False)
    path: str | None = field(init=False)

    _PORT_WS: ClassVar[int] = 80
    _PORT_WSS: ClassVar[int] = 443

    _NETWORK_TLDS: ClassVar[dict[str, NetworkType]] = {
        ".onion": NetworkType.TOR,
        ".i2p": NetworkType.I2P,
        ".loki": NetworkType.LOKI,
    }

    _LOCAL_NETWORKS: ClassVar[list[IPv4Network | IPv6Network]] = [
        ip_network("10.0.0.0/8"),
        ip_network("127.0.0.0/8"),
        ip_network("169.254.0.0/16"),
        ip_network("172.16.0.0/12"),
        ip_network("192.168.0.0/16"),
        ip_network("::1/128"),
        ip_network("fc00::/7"),
        ip_network("fe80::/10"),
    ]

    def __post_init__(self) -> None:
        if not isinstance(self.raw_url, str):
            raise TypeError(f"raw_url must be a str, got {type(self.raw_url).__name__}")
        if "\x00" in self.raw_url:
            raise ValueError("Relay URL contains null bytes")

        parsed = self._parse(self.raw_url)

        if parsed["network"] == NetworkType.UNKNOWN:
            raise ValueError(f"Invalid host: '{parsed['host']}'")

        object.__setattr__(self, "url", f"{parsed['scheme']}://{parsed['url_without_scheme']}")
        object.__setattr__(self, "network", parsed["network"])
        object.__setattr__(self, "scheme", parsed["scheme"])
        object.__setattr__(self, "host", parsed["host"])
        object.__setattr__(self, "port", parsed["port"])
        object.__setattr__(self, "path", parsed["path"])

    def __str__(self) -> str:
        return self.url

    @staticmethod
    def _detect_network(host: str) -> NetworkType:
        """Classify a hostname into a network type.

        Checks overlay network TLDs first, then loopback/private IPs, and
        finally validates standard domain name format.
        """
        if not host:
            return NetworkType.UNKNOWN

        host_bare = host.lower().strip("[]")

        for tld, network in Relay._NETWORK_TLDS.items():
            if host_bare.endswith(tld):
                return network

        if host_bare in ("localhost", "localhost.localdomain"):
            return NetworkType.LOCAL

        try:
            ip = ip_address(host_bare)
            is_local = any(ip in net for net in Relay._LOCAL_NETWORKS)
            return NetworkType.LOCAL if is_local else NetworkType.CLEARNET
        except ValueError:
            pass

        if "." not in host_bare:
            return NetworkType.UNKNOWN

        labels = host_bare.split(".")
        valid = all(
            label and not label.startswith("-") and not label.endswith("-") for label in labels
        )
        return NetworkType.CLEARNET if valid else NetworkType.UNKNOWN

    @staticmethod
    def _parse(raw: str) -> dict[str, Any]:
        """Parse and normalize a raw relay URL string.

        Raises:
            ValueError: If the scheme is not ``ws``/``wss`` or the URI is invalid.
        """
        uri = uri_reference(raw.strip()).normalize()

        validator = (
            Validator()
            .require_presence_of("scheme", "host")
            .allow_schemes("ws", "wss")
            .check_validity_of("scheme", "host", "port", "path")
        )

        try:
            validator.validate(uri)
        except UnpermittedComponentError:
            raise ValueError("Invalid scheme: must be ws or wss") from None
        except ValidationError as e:
            raise ValueError(f"Invalid URL: {e}") from None

        if uri.query:
            raise ValueError(f"Relay URL must not contain a query string: ?{uri.query}")
        if uri.fragment:
            raise ValueError(f"Relay URL must not contain a fragment: #{uri.fragment}")

        port = int(uri.port) if uri.port else None
        host = uri.host.strip("[]")

        # Collapse duplicate slashes and strip trailing slash
        path = uri.path or ""
        while "//" in path:
            path = path.replace("//", "/")
        path = path.rstrip("/") or None

        network = Relay._detect_network(host)
        if network == NetworkType.CLEARNET:
            scheme = "wss"
        elif network == NetworkType.LOCAL:
            scheme = uri.scheme
        else:
            scheme = "ws"

        formatted_host = f"[{host}]" if ":" in host else host

        default_port = Relay._PORT_WSS if scheme == "wss" else Relay._PORT_WS
        if port and port != default_port:
            url_without_scheme = f"{formatted_host}:{port}{path or ''}"
        else:
            url_without_scheme = f"{formatted_host}{path or ''}"

        return {
            "url_without_scheme": url_without_scheme,
            "scheme": scheme,
            "host": host,
            "port": port,
            "path": path,
            "network": network,
        }


class RelayAccess(StrEnum):
    """NIP-65 role of a relay for a given author.

    ``BOTH`` is also used for undifferentiated user input (relay hints,
    configured defaults) where no marker was given.
    """

    READ = "read"
    WRITE = "write"
    BOTH = "both"

    def union(self, other: RelayAccess) -> RelayAccess:
        return self if self == other else RelayAccess.BOTH

    @property
    def readable(self) -> bool:
        return self is not RelayAccess.WRITE

    @property
    def writable(self) -> bool:
        return self is not RelayAccess.READ


@dataclass(frozen=True, slots=True)
class RelaySet:
    """Ordered, deduplicated set of relays with their access roles.

    Insertion order is preserved; adding an already present URL unions its
    access role instead of duplicating the entry. Instances are immutable,
    every combinator returns a new set.

    Examples:
        ```python
        relays = RelaySet.from_urls(["wss://a.example", "wss://b.example"])
        merged = relays | RelaySet.from_urls(["wss://a.example/"])
        len(merged)   # 2
        ```
    """

    entries: tuple[tuple[Relay, RelayAccess], ...] = ()

    def __post_init__(self) -> None:
        merged: dict[str, tuple[Relay, RelayAccess]] = {}
        for relay, access in self.entries:
            if relay.url in merged:
                known, previous = merged[relay.url]
                merged[relay.url] = (known, previous.union(access))
            else:
                merged[relay.url] = (relay, RelayAccess(access))
        object.__setattr__(self, "entries", tuple(merged.values()))

    @classmethod
    def from_urls(
        cls, urls: Iterable[str | Relay], access: RelayAccess = RelayAccess.BOTH
    ) -> RelaySet:
        """Build a set from URLs, sharing one access role.

        Raises:
            ValueError: If any URL is not a valid relay URL.
        """
        return cls(tuple((u if isinstance(u, Relay) else Relay(u), access) for u in urls))

    def __iter__(self) -> Iterator[Relay]:
        return (relay for relay, _ in self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __bool__(self) -> bool:
        return bool(self.entries)

    def __contains__(self, item: object) -> bool:
        url = item.url if isinstance(item, Relay) else item
        return any(relay.url == url for relay, _ in self.entries)

    def __or__(self, other: RelaySet) -> RelaySet:
        return self.merge(other)

    def merge(self, *others: RelaySet) -> RelaySet:
        """Return the union of this set and *others*, first occurrence first."""
        entries = list(self.entries)
        for other in others:
            entries.extend(other.entries)
        return RelaySet(tuple(entries))

    @property
    def urls(self) -> list[str]:
        return [relay.url for relay, _ in self.entries]

    def access(self, url: str) -> RelayAccess | None:
        for relay, access in self.entries:
            if relay.url == url:
                return access
        return None

    def readable(self) -> RelaySet:
        """Relays an author reads from (their inbox)."""
        return RelaySet(tuple(e for e in self.entries if e[1].readable))

    def writable(self) -> RelaySet:
        """Relays an author writes to (their outbox)."""
        return RelaySet(tuple(e for e in self.entries if e[1].writable))

    def limit(self, count: int) -> RelaySet:
        return RelaySet(self.entries[:count])
