"""
Shared fixtures for services tests.

Provides:
- FakeRelayPool: an in-memory relay network answering NIP-01 filters
- A configuration provider with one fallback relay
"""

import pytest

from nostrforge.core.config import ClientConfig, ClientConfigProvider
from nostrforge.models.event import Event
from nostrforge.models.relay import RelaySet
from nostrforge.models.results import PublishReport, RelayOutcome


FALLBACK = "wss://fallback.example"


def matches(event: Event, event_filter: dict) -> bool:
    """Apply the subset of NIP-01 filter semantics the services use."""
    if "ids" in event_filter and event.id not in event_filter["ids"]:
        return False
    if "kinds" in event_filter and event.kind not in event_filter["kinds"]:
        return False
    if "authors" in event_filter and event.pubkey not in event_filter["authors"]:
        return False
    for key, values in event_filter.items():
        if key.startswith("#") and not set(event.tag_values(key[1:])) & set(values):
            return False
    return True


class FakeRelayPool:
    """Stands in for RelayPool: events live on named relays or everywhere.

    Published events are stored on every relay that accepted them, so a
    later query sees them just like a real relay would.
    """

    def __init__(self) -> None:
        self.stored: list[tuple[Event, frozenset[str] | None]] = []
        self.queries: list[tuple[dict, list[str]]] = []
        self.published: list[tuple[Event, list[str]]] = []
        self.rejecting: set[str] = set()

    def add(self, event: Event, *urls: str) -> Event:
        self.stored.append((event, frozenset(urls) if urls else None))
        return event

    async def query(self, event_filter: dict, relays: RelaySet, timeout: float | None = None) -> list[Event]:
        urls = relays.urls
        self.queries.append((event_filter, urls))
        found: dict[str, Event] = {}
        for event, where in self.stored:
            if where is not None and where.isdisjoint(urls):
                continue
            if matches(event, event_filter):
                found[event.id] = event
        ordered = sorted(found.values(), key=lambda e: (-e.created_at, e.id))
        if "limit" in event_filter:
            ordered = ordered[: event_filter["limit"]]
        return ordered

    async def publish(self, event: Event, relays: RelaySet) -> PublishReport:
        urls = relays.urls
        self.published.append((event, urls))
        outcomes = {}
        for url in urls:
            if url in self.rejecting:
                outcomes[url] = RelayOutcome.rejected(url, "blocked: not allowed")
            else:
                outcomes[url] = RelayOutcome.accepted(url)
        accepted = [url for url, outcome in outcomes.items() if outcome.ok]
        if accepted:
            self.add(event, *accepted)
        return PublishReport(event_id=event.id, outcomes=outcomes)

    def published_kinds(self) -> list[int]:
        return [event.kind for event, _ in self.published]

    def event(self, event_id: str) -> Event:
        for event, _ in self.published:
            if event.id == event_id:
                return event
        raise KeyError(event_id)

    def published_to(self, event_id: str) -> list[str]:
        for event, urls in self.published:
            if event.id == event_id:
                return urls
        raise KeyError(event_id)


@pytest.fixture
def pool() -> FakeRelayPool:
    return FakeRelayPool()


@pytest.fixture
def provider() -> ClientConfigProvider:
    return ClientConfigProvider(ClientConfig(fallback_relays=[FALLBACK]))
