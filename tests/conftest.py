"""
Pytest configuration and shared fixtures for nostrforge tests.

Provides:
- Real nostr_sdk key pairs for owners, maintainers and contributors
- A factory signing arbitrary events with those keys
- Repository coordinates and relay sets used across layers
"""

import logging
from collections.abc import Callable, Sequence

import pytest
from nostr_sdk import Keys

from nostrforge.core.config import ENV_SECRET_KEY
from nostrforge.models.coordinate import RepositoryCoordinate
from nostrforge.models.event import Event, UnsignedEvent
from nostrforge.models.relay import RelaySet
from nostrforge.utils.keys import sign_with_keys


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


# ============================================================================
# Environment
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_secret_key_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's own NOSTR_SECRET_KEY out of signer selection."""
    monkeypatch.delenv(ENV_SECRET_KEY, raising=False)


# ============================================================================
# Keys
# ============================================================================


@pytest.fixture
def owner_keys() -> Keys:
    """Keys of a repository owner."""
    return Keys.generate()


@pytest.fixture
def maintainer_keys() -> Keys:
    """Keys of a maintainer listed in the announcement."""
    return Keys.generate()


@pytest.fixture
def contributor_keys() -> Keys:
    """Keys of an outside contributor."""
    return Keys.generate()


@pytest.fixture
def owner(owner_keys: Keys) -> str:
    return owner_keys.public_key().to_hex()


@pytest.fixture
def maintainer(maintainer_keys: Keys) -> str:
    return maintainer_keys.public_key().to_hex()


@pytest.fixture
def contributor(contributor_keys: Keys) -> str:
    return contributor_keys.public_key().to_hex()


# ============================================================================
# Events
# ============================================================================

SignFactory = Callable[..., Event]


@pytest.fixture
def sign() -> SignFactory:
    """Factory signing an event with real keys.

    Usage: ``sign(keys, kind, tags=..., content=..., created_at=...)``.
    """

    def _sign(
        keys: Keys,
        kind: int,
        tags: Sequence[Sequence[str]] = (),
        content: str = "",
        created_at: int = 1_700_000_000,
    ) -> Event:
        template = UnsignedEvent(
            pubkey=keys.public_key().to_hex(),
            kind=kind,
            tags=tuple(tuple(t) for t in tags),
            content=content,
            created_at=created_at,
        )
        return sign_with_keys(keys, template)

    return _sign


# ============================================================================
# Repositories and relays
# ============================================================================


@pytest.fixture
def coordinate(owner: str) -> RepositoryCoordinate:
    """Coordinate of the owner's ``forge`` repository."""
    return RepositoryCoordinate(pubkey=owner, identifier="forge")


@pytest.fixture
def relays() -> RelaySet:
    """Three clearnet relays."""
    return RelaySet.from_urls(
        ["wss://relay.one.example", "wss://relay.two.example", "wss://relay.three.example"]
    )
