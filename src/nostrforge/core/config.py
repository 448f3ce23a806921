"""Client configuration and the config/sets provider.

Pydantic models validate the YAML configuration file; the
[ClientConfigProvider][nostrforge.core.config.ClientConfigProvider] exposes
the handful of accessors the engine needs (named repository sets, default
relays, proof-of-work difficulty, signer settings) so that nothing below it
ever touches the file.

Private keys never appear in the file: the signer section names an
environment variable instead (see [nostrforge.utils.keys][]).

Examples:
    ```yaml
    pow: 16
    fallback_relays:
      - wss://relay.damus.io
      - wss://nos.lol
    signer:
      bunker_url: bunker://<remote-pubkey>?relay=wss://relay.nsec.app
    sets:
      - name: forge
        repositories:
          - address: 30617:<pubkey>:nostrforge
            relays: [wss://git.example.com]
        relays: [wss://relay.example.com]
    ```
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Protocol

import yaml
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

from nostrforge.models.coordinate import RepositoryCoordinate
from nostrforge.models.references import RepositorySet
from nostrforge.models.relay import Relay, RelaySet

from .exceptions import ConfigurationError
from .yaml import load_yaml, save_yaml


DEFAULT_CONFIG_PATH = Path("~/.config/nostrforge/config.yaml")
ENV_SECRET_KEY = "NOSTR_SECRET_KEY"  # pragma: allowlist secret
DEFAULT_BROWSER_PROXY = "127.0.0.1:51034"
BUNKER_SCHEME = "bunker://"


# =============================================================================
# Configuration Models
# =============================================================================


class RepositoryConfig(BaseModel):
    """A repository coordinate inside a set, ``kind:pubkey:identifier``."""

    address: str
    relays: list[str] = Field(default_factory=list)

    @field_validator("relays")
    @classmethod
    def _normalize_relays(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(Relay(url).url for url in value))

    def to_coordinate(self) -> RepositoryCoordinate:
        return RepositoryCoordinate.parse(self.address, relays=tuple(self.relays))


class SetConfig(BaseModel):
    name: str = Field(min_length=1)
    repositories: list[RepositoryConfig] = Field(default_factory=list)
    relays: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_entries(self) -> SetConfig:
        for repository in self.repositories:
            repository.to_coordinate()
        for url in self.relays:
            Relay(url)
        return self

    def to_set(self) -> RepositorySet:
        return RepositorySet(
            name=self.name,
            coordinates=tuple(r.to_coordinate() for r in self.repositories),
            relays=tuple(self.relays),
        )

    @classmethod
    def from_set(cls, repository_set: RepositorySet) -> SetConfig:
        return cls(
            name=repository_set.name,
            repositories=[
                RepositoryConfig(address=c.address, relays=list(c.relays))
                for c in repository_set.coordinates
            ],
            relays=list(repository_set.relays),
        )


class SignerConfig(BaseModel):
    """Signer backend selection. Exactly one backend may be configured.

    Attributes:
        secret_key: Secret key given programmatically (never read from YAML).
        secret_key_env: Environment variable holding an ``nsec1``/hex key.
            Without it, a set ``NOSTR_SECRET_KEY`` enables this backend.
        keyring: Read the secret key from the operating system keyring.
        bunker_url: NIP-46 ``bunker://`` URI of a remote signer.
        browser_proxy: ``host:port`` to serve the NIP-07 browser proxy on.
        timeout: Seconds to wait for a remote signer (bunker or browser).
    """

    model_config = {"extra": "forbid"}

    secret_key: SecretStr | None = Field(default=None, exclude=True)
    secret_key_env: str | None = None
    keyring: bool = False
    bunker_url: str | None = None
    browser_proxy: str | None = None
    timeout: float = Field(default=180.0, gt=0.0, le=3600.0)

    @field_validator("bunker_url")
    @classmethod
    def _check_bunker_url(cls, value: str | None) -> str | None:
        if value is not None and not value.startswith(BUNKER_SCHEME):
            raise ValueError(f"bunker_url must start with {BUNKER_SCHEME}")
        return value

    @field_validator("browser_proxy")
    @classmethod
    def _check_proxy_address(cls, value: str | None) -> str | None:
        if value is None:
            return None
        host, sep, port = value.rpartition(":")
        if not sep or not host or not port.isdigit() or not 0 < int(port) < 65_536:
            raise ValueError(f"browser_proxy must be host:port, got {value!r}")
        return value

    def configured_backends(self) -> list[str]:
        """Names of the backends this configuration enables, in a fixed order."""
        backends = []
        if self.secret_key is not None or self.secret_key_env or os.environ.get(ENV_SECRET_KEY):
            backends.append("secret_key")
        if self.keyring:
            backends.append("keyring")
        if self.bunker_url:
            backends.append("bunker")
        if self.browser_proxy:
            backends.append("browser")
        return backends


class TransportConfig(BaseModel):
    """Relay connection settings.

    Attributes:
        connect_timeout: Seconds allowed to open one relay connection.
        publish_timeout: Seconds to wait for one relay's ``OK``.
        query_timeout: Default overall bound on a query fan-out.
        proxy_url: SOCKS5 proxy for Tor/I2P/Lokinet relays.
    """

    connect_timeout: float = Field(default=10.0, ge=0.5, le=120.0)
    publish_timeout: float = Field(default=15.0, ge=0.5, le=300.0)
    query_timeout: float = Field(default=10.0, ge=0.5, le=300.0)
    proxy_url: str | None = None


class ClientConfig(BaseModel):
    """Top-level client configuration."""

    pow: int = Field(default=0, ge=0, le=64, description="Proof-of-work difficulty")
    fallback_relays: list[str] = Field(default_factory=list)
    sets: list[SetConfig] = Field(default_factory=list)
    signer: SignerConfig = Field(default_factory=SignerConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    nip05_timeout: float = Field(default=10.0, ge=0.5, le=120.0)

    @field_validator("fallback_relays")
    @classmethod
    def _normalize_relays(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(Relay(url).url for url in value))

    @field_validator("sets")
    @classmethod
    def _unique_set_names(cls, value: list[SetConfig]) -> list[SetConfig]:
        names = [s.name for s in value]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate set names: {', '.join(duplicates)}")
        return value


# =============================================================================
# Provider
# =============================================================================


class ConfigSource(Protocol):
    """Accessors the engine and resolver consume."""

    def resolve_set(self, name: str) -> tuple[list[RepositoryCoordinate], RelaySet]: ...

    def default_relays(self) -> RelaySet: ...

    def default_difficulty(self) -> int: ...

    def active_signer_config(self) -> SignerConfig: ...


class ClientConfigProvider:
    """In-memory [ConfigSource][nostrforge.core.config.ConfigSource] over a
    [ClientConfig][nostrforge.core.config.ClientConfig].

    Set mutations replace the stored configuration with a new validated one;
    [YamlConfigProvider][nostrforge.core.config.YamlConfigProvider] writes
    them back to disk.
    """

    def __init__(self, config: ClientConfig | None = None) -> None:
        self._config = config or ClientConfig()

    @property
    def config(self) -> ClientConfig:
        return self._config

    def sets(self) -> list[RepositorySet]:
        return [s.to_set() for s in self._config.sets]

    def get_set(self, name: str) -> RepositorySet | None:
        for set_config in self._config.sets:
            if set_config.name == name:
                return set_config.to_set()
        return None

    def resolve_set(self, name: str) -> tuple[list[RepositoryCoordinate], RelaySet]:
        """Return the coordinates and relays of set *name*.

        Raises:
            ConfigurationError: If no set has that name.
        """
        repository_set = self.get_set(name)
        if repository_set is None:
            raise ConfigurationError(f"No set named {name!r}")
        return list(repository_set.coordinates), RelaySet.from_urls(repository_set.relays)

    def default_relays(self) -> RelaySet:
        return RelaySet.from_urls(self._config.fallback_relays)

    def default_difficulty(self) -> int:
        return self._config.pow

    def active_signer_config(self) -> SignerConfig:
        return self._config.signer

    def update_set(self, repository_set: RepositorySet) -> None:
        """Insert *repository_set*, replacing any set with the same name."""
        sets = [s for s in self._config.sets if s.name != repository_set.name]
        sets.append(SetConfig.from_set(repository_set))
        self._replace(sets=sets)

    def remove_set(self, name: str) -> None:
        """Raises ``ConfigurationError`` if no set has that name."""
        if self.get_set(name) is None:
            raise ConfigurationError(f"No set named {name!r}")
        self._replace(sets=[s for s in self._config.sets if s.name != name])

    def _replace(self, **changes: Any) -> None:
        self._config = self._config.model_copy(update=changes)


class YamlConfigProvider(ClientConfigProvider):
    """[ClientConfigProvider][nostrforge.core.config.ClientConfigProvider] backed by a YAML file."""

    def __init__(self, path: str | Path, config: ClientConfig | None = None) -> None:
        super().__init__(config)
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    @classmethod
    def from_yaml(cls, path: str | Path = DEFAULT_CONFIG_PATH) -> YamlConfigProvider:
        """Load the configuration, falling back to defaults when the file is absent.

        Raises:
            ConfigurationError: If the file is invalid YAML or fails validation.
        """
        try:
            data = load_yaml(path)
        except FileNotFoundError:
            return cls(path)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
        signer = data.get("signer")
        if isinstance(signer, dict) and "secret_key" in signer:
            raise ConfigurationError(
                f"{path} must not contain a secret key; use signer.secret_key_env or the keyring"
            )
        try:
            config = ClientConfig.model_validate(data)
        except ValueError as e:
            raise ConfigurationError(f"Invalid configuration in {path}: {e}") from e
        return cls(path, config)

    def save(self) -> None:
        save_yaml(self._path, self._config.model_dump(mode="json", exclude_defaults=True))

    def update_set(self, repository_set: RepositorySet) -> None:
        super().update_set(repository_set)
        self.save()

    def remove_set(self, name: str) -> None:
        super().remove_set(name)
        self.save()
