"""
Per-relay outcomes and publish reports.

Publishing never raises on a single relay's failure; each relay's result
is collected as a [RelayOutcome][nostrforge.models.results.RelayOutcome]
and the overall verdict is derived from the collection by
[PublishReport.status][nostrforge.models.results.PublishReport.status].
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType


class OutcomeKind(StrEnum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    UNREACHABLE = "unreachable"


class OperationStatus(StrEnum):
    """Overall verdict of a relay operation.

    Attributes:
        SUCCESS: Every relay accepted.
        PARTIAL: At least one relay accepted and at least one did not.
        FAILED: No relay accepted.
    """

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class RelayOutcome:
    relay: str
    kind: OutcomeKind
    reason: str | None = None

    @classmethod
    def accepted(cls, relay: str) -> RelayOutcome:
        return cls(relay, OutcomeKind.ACCEPTED)

    @classmethod
    def rejected(cls, relay: str, reason: str) -> RelayOutcome:
        return cls(relay, OutcomeKind.REJECTED, reason)

    @classmethod
    def unreachable(cls, relay: str, reason: str) -> RelayOutcome:
        return cls(relay, OutcomeKind.UNREACHABLE, reason)

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.ACCEPTED


@dataclass(frozen=True, slots=True)
class PublishReport:
    """Result of publishing one event to a relay set.

    Attributes:
        event_id: Id of the published event.
        outcomes: Read-only mapping of relay URL to its outcome.

    Examples:
        ```python
        report = await pool.publish(event, relays)
        report.status            # OperationStatus.PARTIAL
        report.unreachable       # ['wss://down.example']
        ```
    """

    event_id: str
    outcomes: Mapping[str, RelayOutcome] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "outcomes", MappingProxyType(dict(self.outcomes)))

    def _relays(self, kind: OutcomeKind) -> list[str]:
        return [url for url, outcome in self.outcomes.items() if outcome.kind is kind]

    @property
    def accepted(self) -> list[str]:
        return self._relays(OutcomeKind.ACCEPTED)

    @property
    def rejected(self) -> list[str]:
        return self._relays(OutcomeKind.REJECTED)

    @property
    def unreachable(self) -> list[str]:
        return self._relays(OutcomeKind.UNREACHABLE)

    @property
    def status(self) -> OperationStatus:
        accepted = len(self.accepted)
        if accepted == 0:
            return OperationStatus.FAILED
        if accepted == len(self.outcomes):
            return OperationStatus.SUCCESS
        return OperationStatus.PARTIAL

    @property
    def ok(self) -> bool:
        """``True`` when at least one relay accepted the event."""
        return self.status is not OperationStatus.FAILED
