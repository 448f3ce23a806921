r"""nostrforge -- Git collaboration over Nostr (NIP-34).

Repositories, issues, patches, pull requests, comments and status changes
are Nostr events. nostrforge builds them, mines proof-of-work where asked,
signs them with exactly one signer backend and publishes them to the relays
the repositories and their authors advertise.

Architecture follows a **diamond DAG** dependency structure where imports
flow strictly downward:

```text
                 services            Resolution and collaboration engine
            /    |     |    \
        core   nips  signers  utils  Config, protocol, signing, transport
            \    |     |    /
                 models              Pure frozen dataclasses (zero I/O)
```

Attributes:
    models: Pure frozen dataclasses. Zero I/O.
    core: Configuration, exceptions, logging, YAML.
    nips: NIP-05, NIP-13, NIP-19, NIP-22, NIP-34, NIP-46 and NIP-65.
    signers: Local key, OS keyring, NIP-46 bunker and browser proxy.
    utils: Relay transport, key management, bounded HTTP reads.
    services: Reference resolution and the collaboration engine.

Note:
    For lightweight usage, import directly from subpackages::

        from nostrforge.models import RelaySet
        from nostrforge.nips import nip19

    Top-level imports (``from nostrforge import CollaborationEngine``) use
    lazy loading and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("nostrforge")

__all__ = [
    "AddressResolver",
    "ClientConfig",
    "CollaborationEngine",
    "Event",
    "EventKind",
    "ForgeError",
    "Logger",
    "PublishReport",
    "RelayPool",
    "RelaySet",
    "RepositoryCoordinate",
    "SessionContext",
    "Signer",
    "Status",
    "Transition",
    "YamlConfigProvider",
    "create_signer",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "ClientConfig": ("nostrforge.core", "ClientConfig"),
    "ForgeError": ("nostrforge.core", "ForgeError"),
    "Logger": ("nostrforge.core", "Logger"),
    "YamlConfigProvider": ("nostrforge.core", "YamlConfigProvider"),
    "Event": ("nostrforge.models", "Event"),
    "EventKind": ("nostrforge.models", "EventKind"),
    "PublishReport": ("nostrforge.models", "PublishReport"),
    "RelaySet": ("nostrforge.models", "RelaySet"),
    "RepositoryCoordinate": ("nostrforge.models", "RepositoryCoordinate"),
    "Status": ("nostrforge.models", "Status"),
    "Transition": ("nostrforge.models", "Transition"),
    "Signer": ("nostrforge.signers", "Signer"),
    "create_signer": ("nostrforge.signers", "create_signer"),
    "RelayPool": ("nostrforge.utils.transport", "RelayPool"),
    "AddressResolver": ("nostrforge.services", "AddressResolver"),
    "CollaborationEngine": ("nostrforge.services", "CollaborationEngine"),
    "SessionContext": ("nostrforge.services", "SessionContext"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'nostrforge' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
