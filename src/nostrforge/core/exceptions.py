"""nostrforge exception hierarchy.

Provides typed exceptions for every stage of a collaboration operation so
callers can report which stage failed (resolution, signing, status, relay
delivery) and decide whether retrying against different relays makes sense.
Nothing here is retried automatically.

Exception hierarchy:

```text
ForgeError (base -- never raised directly)
├── ConfigurationError              -- bad YAML, missing env vars, bad set
├── MalformedIdentifier             -- undecodable naddr/nevent/note/NIP-05 text
├── UnresolvedRepository            -- no coordinates found by any input path
├── SignerError
│   ├── SignerUnavailable           -- no usable signer backend
│   │   └── AmbiguousSignerConfiguration  -- two backends configured at once
│   ├── SigningDenied               -- backend refused or returned a bad signature
│   └── SigningTimeout              -- backend never answered
├── InvalidStatusTransition         -- precondition of a status change failed
├── InvalidEventError               -- unknown root object or unexpected kind
├── MiningCancelled                 -- proof-of-work search aborted
├── ConnectivityError
│   └── RelayUnreachable            -- per relay, collected by the pool
└── PublishingError
    └── NoRelayAccepted             -- every relay failed
```

See Also:
    [RelayPool][nostrforge.utils.transport.RelayPool]: Collects
        [RelayUnreachable][nostrforge.core.exceptions.RelayUnreachable]
        per relay instead of raising.
    [CollaborationEngine][nostrforge.services.engine.CollaborationEngine]:
        Raises [NoRelayAccepted][nostrforge.core.exceptions.NoRelayAccepted]
        when no relay accepted an event.
"""

from __future__ import annotations

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from nostrforge.models.collaboration import Status, Transition
    from nostrforge.models.results import PublishReport


class ForgeError(Exception):
    """Base exception for all nostrforge errors.

    Never raised directly -- always use a specific subclass.
    """


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(ForgeError):
    """Invalid or missing configuration (YAML, env vars, repository sets).

    See Also:
        [load_yaml()][nostrforge.core.yaml.load_yaml]: YAML loading function
            that may trigger configuration errors.
    """


# ---------------------------------------------------------------------------
# Identifiers and resolution
# ---------------------------------------------------------------------------


class MalformedIdentifier(ForgeError):
    """An identifier string could not be decoded.

    Raised by [nostrforge.nips.nip19][] for bad checksums, unknown prefixes,
    truncated TLV data and wrong field lengths.
    """


class UnresolvedRepository(ForgeError):
    """No repository coordinate could be found for the given references."""


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------


class SignerError(ForgeError):
    """Base for all signer backend failures."""


class SignerUnavailable(SignerError):
    """No signer backend is configured or the configured one cannot be used."""


class AmbiguousSignerConfiguration(SignerUnavailable):
    """More than one signer backend is configured at the same time.

    Raised by [create_signer()][nostrforge.signers.create_signer] before any
    network or signing activity.
    """

    def __init__(self, backends: list[str]) -> None:
        self.backends = backends
        super().__init__(f"Only one signer may be configured, found: {', '.join(backends)}")


class SigningDenied(SignerError):
    """The signer refused the request or returned an invalid signature."""


class SigningTimeout(SignerError):
    """The signer did not answer within the allotted time."""


# ---------------------------------------------------------------------------
# Events and statuses
# ---------------------------------------------------------------------------


class InvalidStatusTransition(ForgeError):
    """A status change whose precondition does not hold.

    Attributes:
        current: Status the root object currently has.
        requested: The transition that was asked for.
    """

    def __init__(self, current: Status, requested: Transition, reason: str | None = None) -> None:
        self.current = current
        self.requested = requested
        message = f"Cannot {requested.value} an object whose status is {current.name.lower()}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InvalidEventError(ForgeError):
    """An event is missing, has an unexpected kind, or lacks required tags."""


class MiningCancelled(ForgeError):
    """The proof-of-work nonce search was cancelled before completing."""


# ---------------------------------------------------------------------------
# Connectivity
# ---------------------------------------------------------------------------


class ConnectivityError(ForgeError):
    """Base for relay connectivity failures."""


class RelayUnreachable(ConnectivityError):
    """A single relay could not be reached.

    Non-fatal: the pool records it as an ``unreachable`` outcome and goes on
    with the remaining relays.
    """

    def __init__(self, relay: str, reason: str) -> None:
        self.relay = relay
        self.reason = reason
        super().__init__(f"{relay}: {reason}")


# ---------------------------------------------------------------------------
# Publishing
# ---------------------------------------------------------------------------


class PublishingError(ForgeError):
    """Base for event publishing failures."""


class NoRelayAccepted(PublishingError):
    """Every relay rejected the event or was unreachable.

    Attributes:
        report: The [PublishReport][nostrforge.models.results.PublishReport]
            with the per-relay breakdown.
    """

    def __init__(self, report: PublishReport) -> None:
        self.report = report
        details = ", ".join(
            f"{url} {outcome.kind.value}: {outcome.reason}"
            for url, outcome in report.outcomes.items()
        )
        super().__init__(f"No relay accepted event {report.event_id}" + (f" ({details})" if details else ""))
