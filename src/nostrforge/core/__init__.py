"""Core layer: configuration, exceptions, logging and YAML.

Sits in the middle of the diamond DAG -- depends only on
``nostrforge.models`` and is depended upon by the protocol, signer and
service layers.

Attributes:
    ClientConfig: Pydantic model of the client configuration file.
        See [ClientConfig][nostrforge.core.config.ClientConfig].
    YamlConfigProvider: Loads and saves the configuration, including named
        repository sets. See
        [YamlConfigProvider][nostrforge.core.config.YamlConfigProvider].
    ForgeError: Root of the exception hierarchy.
        See [nostrforge.core.exceptions][nostrforge.core.exceptions].
    Logger: Structured logger supporting key=value and JSON output modes.
        See [Logger][nostrforge.core.logger.Logger].
    load_yaml: Safe YAML loading with ``yaml.safe_load()``.
        See [load_yaml()][nostrforge.core.yaml.load_yaml].

Examples:
    ```python
    from nostrforge.core import Logger, YamlConfigProvider

    provider = YamlConfigProvider.from_yaml()
    logger = Logger("nostrforge.cli")
    logger.info("config_loaded", sets=len(provider.sets()))
    ```
"""

from .config import (
    DEFAULT_BROWSER_PROXY,
    DEFAULT_CONFIG_PATH,
    ClientConfig,
    ClientConfigProvider,
    ConfigSource,
    RepositoryConfig,
    SetConfig,
    SignerConfig,
    TransportConfig,
    YamlConfigProvider,
)
from .exceptions import (
    AmbiguousSignerConfiguration,
    ConfigurationError,
    ConnectivityError,
    ForgeError,
    InvalidEventError,
    InvalidStatusTransition,
    MalformedIdentifier,
    MiningCancelled,
    NoRelayAccepted,
    PublishingError,
    RelayUnreachable,
    SignerError,
    SignerUnavailable,
    SigningDenied,
    SigningTimeout,
    UnresolvedRepository,
)
from .logger import Logger, StructuredFormatter, configure_logging, format_kv_pairs, mask_secrets
from .yaml import load_yaml, save_yaml


__all__ = [
    "DEFAULT_BROWSER_PROXY",
    "DEFAULT_CONFIG_PATH",
    "AmbiguousSignerConfiguration",
    "ClientConfig",
    "ClientConfigProvider",
    "ConfigSource",
    "ConfigurationError",
    "ConnectivityError",
    "ForgeError",
    "InvalidEventError",
    "InvalidStatusTransition",
    "Logger",
    "MalformedIdentifier",
    "MiningCancelled",
    "NoRelayAccepted",
    "PublishingError",
    "RelayUnreachable",
    "RepositoryConfig",
    "SetConfig",
    "SignerConfig",
    "SignerError",
    "SignerUnavailable",
    "SigningDenied",
    "SigningTimeout",
    "StructuredFormatter",
    "TransportConfig",
    "UnresolvedRepository",
    "YamlConfigProvider",
    "configure_logging",
    "format_kv_pairs",
    "load_yaml",
    "mask_secrets",
    "save_yaml",
]
