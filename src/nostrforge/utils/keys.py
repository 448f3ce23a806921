"""Nostr key loading, keyring storage and in-process signing.

Secret keys come from an environment variable or from the operating system
keyring, never from the configuration file. Both ``nsec1`` (bech32) and
64-char hex encodings are accepted.

Warning:
    The ``Keys`` objects returned here hold the secret key in memory for the
    lifetime of the process. Never log them or serialize them.

See Also:
    [LocalKeySigner][nostrforge.signers.local.LocalKeySigner]: Signs with
        keys loaded by [load_keys_from_env()][nostrforge.utils.keys.load_keys_from_env].
    [KeyringSigner][nostrforge.signers.keyring.KeyringSigner]: Signs with
        keys held by [KeyringStore][nostrforge.utils.keys.KeyringStore].

Examples:
    ```python
    import os

    os.environ["NOSTR_SECRET_KEY"] = "nsec1..."  # pragma: allowlist secret
    keys = load_keys_from_env()
    print(keys.public_key().to_hex())
    ```
"""

from __future__ import annotations

import logging
import os

import keyring
from keyring.errors import KeyringError, PasswordDeleteError
from nostr_sdk import Keys
from nostr_sdk import UnsignedEvent as NostrUnsignedEvent

from nostrforge.core.config import ENV_SECRET_KEY
from nostrforge.core.exceptions import ConfigurationError, SignerUnavailable
from nostrforge.models.event import Event, UnsignedEvent


KEYRING_SERVICE = "nostrforge"
USER_KEY_ENTRY = "user-secret-key"  # pragma: allowlist secret
APP_KEY_ENTRY = "bunker-app-secret-key"  # pragma: allowlist secret


logger = logging.getLogger(__name__)


def parse_keys(value: str) -> Keys:
    """Parse an ``nsec1`` or hex secret key.

    Raises:
        ConfigurationError: If *value* is not a valid secret key.
    """
    try:
        return Keys.parse(value.strip())
    except Exception as e:  # nostr_sdk raises its own NostrSdkError
        raise ConfigurationError("Invalid secret key") from e


def load_keys_from_env(env_var: str = ENV_SECRET_KEY) -> Keys:
    """Load Nostr keys from an environment variable.

    Raises:
        ConfigurationError: If the variable is unset, empty or malformed.
    """
    value = os.getenv(env_var)
    if not value:
        raise ConfigurationError(f"{env_var} environment variable is required")
    return parse_keys(value)


def sign_with_keys(keys: Keys, unsigned: UnsignedEvent) -> Event:
    """Sign *unsigned* in-process with *keys*.

    Raises:
        ValueError: If *unsigned* was built for another public key.
    """
    pubkey = keys.public_key().to_hex()
    if unsigned.pubkey != pubkey:
        raise ValueError(f"Event pubkey {unsigned.pubkey} does not match signing key {pubkey}")
    signed = NostrUnsignedEvent.from_json(unsigned.as_json()).sign_with_keys(keys)
    return Event.from_json(signed.as_json())


class KeyringStore:
    """Secret keys kept in the operating system keyring.

    All methods block on the platform backend; async callers run them in a
    worker thread.

    Attributes:
        service: Keyring service name under which entries are stored.
    """

    def __init__(self, service: str = KEYRING_SERVICE) -> None:
        self.service = service

    def _get(self, entry: str) -> str | None:
        try:
            return keyring.get_password(self.service, entry)
        except KeyringError as e:
            raise SignerUnavailable(f"Keyring is not available: {e}") from e

    def _set(self, entry: str, value: str) -> None:
        try:
            keyring.set_password(self.service, entry, value)
        except KeyringError as e:
            raise SignerUnavailable(f"Keyring is not available: {e}") from e

    def load_user_keys(self) -> Keys:
        """Return the stored user keys.

        Raises:
            SignerUnavailable: If no key is stored or the keyring is unusable.
        """
        value = self._get(USER_KEY_ENTRY)
        if not value:
            raise SignerUnavailable(f"No secret key stored in keyring service {self.service!r}")
        try:
            return parse_keys(value)
        except ConfigurationError as e:
            raise SignerUnavailable("Keyring holds an invalid secret key") from e

    def store_user_keys(self, keys: Keys) -> None:
        self._set(USER_KEY_ENTRY, keys.secret_key().to_hex())
        logger.info("keyring_user_key_stored pubkey=%s", keys.public_key().to_hex())

    def delete_user_keys(self) -> bool:
        """Remove the stored user keys. Returns ``False`` if none were stored."""
        try:
            keyring.delete_password(self.service, USER_KEY_ENTRY)
        except PasswordDeleteError:
            return False
        except KeyringError as e:
            raise SignerUnavailable(f"Keyring is not available: {e}") from e
        return True

    def load_or_create_app_keys(self) -> Keys:
        """Return the stable keypair identifying this client to a bunker.

        Generated and stored on first use so that the bunker's authorization
        of it survives across invocations.
        """
        value = self._get(APP_KEY_ENTRY)
        if value:
            try:
                return parse_keys(value)
            except ConfigurationError:
                logger.warning("keyring_app_key_invalid service=%s", self.service)
        keys = Keys.generate()
        self._set(APP_KEY_ENTRY, keys.secret_key().to_hex())
        logger.info("keyring_app_key_created pubkey=%s", keys.public_key().to_hex())
        return keys
