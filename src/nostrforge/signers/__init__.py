"""Signer backends behind one contract.

| Backend      | Class                                                              | Key material                |
|--------------|--------------------------------------------------------------------|-----------------------------|
| secret_key   | [LocalKeySigner][nostrforge.signers.local.LocalKeySigner]          | in memory, from env         |
| keyring      | [KeyringSigner][nostrforge.signers.keyring.KeyringSigner]          | OS keyring, cached on open  |
| bunker       | [BunkerSigner][nostrforge.signers.bunker.BunkerSigner]             | remote, NIP-46              |
| browser      | [BrowserProxySigner][nostrforge.signers.browser.BrowserProxySigner] | browser extension, NIP-07   |

Exactly one backend is active per session;
[create_signer()][nostrforge.signers.create_signer] enforces this before any
network or signing activity.
"""

from __future__ import annotations

from nostrforge.core.config import DEFAULT_BROWSER_PROXY, SignerConfig
from nostrforge.core.exceptions import (
    AmbiguousSignerConfiguration,
    ConfigurationError,
    MalformedIdentifier,
    SignerUnavailable,
)
from nostrforge.nips.nip46 import BunkerUri
from nostrforge.utils.keys import ENV_SECRET_KEY, KeyringStore, load_keys_from_env, parse_keys

from .base import PendingRequests, Signer
from .browser import BrowserProxySigner
from .bunker import BunkerSigner, RelayChannel, WebSocketChannel
from .keyring import KeyringSigner
from .local import LocalKeySigner


__all__ = [
    "BrowserProxySigner",
    "BunkerSigner",
    "KeyringSigner",
    "LocalKeySigner",
    "PendingRequests",
    "RelayChannel",
    "Signer",
    "WebSocketChannel",
    "create_signer",
]


def create_signer(
    config: SignerConfig,
    *,
    store: KeyringStore | None = None,
    channel: RelayChannel | None = None,
) -> Signer:
    """Build the single signer *config* selects. Performs no I/O.

    Args:
        config: Signer section of the client configuration.
        store: Keyring store for the keyring backend and the bunker app keys.
        channel: Bunker transport override.

    Raises:
        AmbiguousSignerConfiguration: If more than one backend is configured.
        SignerUnavailable: If none is, or the configured one is unusable.
    """
    backends = config.configured_backends()
    if len(backends) > 1:
        raise AmbiguousSignerConfiguration(backends)
    if not backends:
        raise SignerUnavailable(
            "No signer configured: set a secret key, keyring, bunker_url or browser_proxy"
        )

    backend = backends[0]
    if backend == "secret_key":
        try:
            if config.secret_key is not None:
                keys = parse_keys(config.secret_key.get_secret_value())
            else:
                keys = load_keys_from_env(config.secret_key_env or ENV_SECRET_KEY)
        except ConfigurationError as e:
            raise SignerUnavailable(str(e)) from e
        return LocalKeySigner(keys)
    if backend == "keyring":
        return KeyringSigner(store)
    if backend == "bunker":
        assert config.bunker_url is not None  # noqa: S101  # implied by configured_backends
        try:
            uri = BunkerUri.parse(config.bunker_url)
        except MalformedIdentifier as e:
            raise SignerUnavailable(str(e)) from e
        return BunkerSigner(uri, channel=channel, store=store, timeout=config.timeout)
    return BrowserProxySigner(config.browser_proxy or DEFAULT_BROWSER_PROXY, timeout=config.timeout)
