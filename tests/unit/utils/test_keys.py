"""
Unit tests for utils.keys module.

Tests:
- parse_keys() with hex and nsec encodings
- load_keys_from_env() presence and validation
- sign_with_keys() signature and pubkey mismatch
- KeyringStore user and app keys against a mocked keyring backend
"""

from collections.abc import Iterator
from unittest.mock import MagicMock, patch

import pytest
from keyring.errors import KeyringError, PasswordDeleteError
from nostr_sdk import Keys

from nostrforge.core.exceptions import ConfigurationError, SignerUnavailable
from nostrforge.models.event import UnsignedEvent
from nostrforge.utils.keys import (
    APP_KEY_ENTRY,
    USER_KEY_ENTRY,
    KeyringStore,
    load_keys_from_env,
    parse_keys,
    sign_with_keys,
)


# ============================================================================
# Parsing and loading
# ============================================================================


class TestParseKeys:
    """Tests for parse_keys()."""

    def test_hex(self, owner_keys: Keys, owner: str) -> None:
        keys = parse_keys(owner_keys.secret_key().to_hex())
        assert keys.public_key().to_hex() == owner

    def test_nsec_with_whitespace(self, owner_keys: Keys, owner: str) -> None:
        keys = parse_keys(f"  {owner_keys.secret_key().to_bech32()}\n")
        assert keys.public_key().to_hex() == owner

    def test_invalid(self) -> None:
        with pytest.raises(ConfigurationError, match="Invalid secret key"):
            parse_keys("not-a-key")


class TestLoadKeysFromEnv:
    """Tests for load_keys_from_env()."""

    def test_loads(self, monkeypatch: pytest.MonkeyPatch, owner_keys: Keys, owner: str) -> None:
        monkeypatch.setenv("FORGE_KEY", owner_keys.secret_key().to_hex())
        assert load_keys_from_env("FORGE_KEY").public_key().to_hex() == owner

    @pytest.mark.parametrize("value", [None, ""])
    def test_missing(self, monkeypatch: pytest.MonkeyPatch, value: str | None) -> None:
        if value is None:
            monkeypatch.delenv("FORGE_KEY", raising=False)
        else:
            monkeypatch.setenv("FORGE_KEY", value)
        with pytest.raises(ConfigurationError, match="FORGE_KEY"):
            load_keys_from_env("FORGE_KEY")

    def test_malformed_value_not_echoed(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FORGE_KEY", "secret-looking-garbage")
        with pytest.raises(ConfigurationError) as exc_info:
            load_keys_from_env("FORGE_KEY")
        assert "secret-looking-garbage" not in str(exc_info.value)


class TestSignWithKeys:
    """Tests for sign_with_keys()."""

    def test_signs(self, owner_keys: Keys, owner: str) -> None:
        template = UnsignedEvent(pubkey=owner, kind=1621, tags=(("subject", "x"),), content="y")
        event = sign_with_keys(owner_keys, template)
        assert event.id == template.id
        assert event.pubkey == owner
        assert event.verify()

    def test_pubkey_mismatch(self, owner_keys: Keys, contributor: str) -> None:
        template = UnsignedEvent(pubkey=contributor, kind=1621)
        with pytest.raises(ValueError, match="does not match"):
            sign_with_keys(owner_keys, template)


# ============================================================================
# Keyring
# ============================================================================


class TestKeyringStore:
    """Tests for KeyringStore."""

    @pytest.fixture
    def backend(self) -> Iterator[MagicMock]:
        storage: dict[tuple[str, str], str] = {}
        mock = MagicMock()
        mock.get_password.side_effect = lambda service, entry: storage.get((service, entry))
        mock.set_password.side_effect = lambda service, entry, value: storage.__setitem__(
            (service, entry), value
        )

        def _delete(service: str, entry: str) -> None:
            if (service, entry) not in storage:
                raise PasswordDeleteError("not found")
            del storage[(service, entry)]

        mock.delete_password.side_effect = _delete
        mock.storage = storage
        with patch("nostrforge.utils.keys.keyring", mock):
            yield mock

    def test_store_and_load_user_keys(self, backend: MagicMock, owner_keys: Keys, owner: str) -> None:
        store = KeyringStore("forge-test")
        store.store_user_keys(owner_keys)

        assert backend.storage[("forge-test", USER_KEY_ENTRY)] == owner_keys.secret_key().to_hex()
        assert store.load_user_keys().public_key().to_hex() == owner

    def test_load_missing_user_keys(self, backend: MagicMock) -> None:
        with pytest.raises(SignerUnavailable, match="No secret key stored"):
            KeyringStore().load_user_keys()

    def test_load_invalid_user_keys(self, backend: MagicMock) -> None:
        backend.storage[("nostrforge", USER_KEY_ENTRY)] = "garbage"
        with pytest.raises(SignerUnavailable, match="invalid secret key"):
            KeyringStore().load_user_keys()

    def test_delete_user_keys(self, backend: MagicMock, owner_keys: Keys) -> None:
        store = KeyringStore()
        store.store_user_keys(owner_keys)
        assert store.delete_user_keys() is True
        assert store.delete_user_keys() is False

    def test_app_keys_stable(self, backend: MagicMock) -> None:
        store = KeyringStore()
        first = store.load_or_create_app_keys()
        second = store.load_or_create_app_keys()

        assert first.public_key().to_hex() == second.public_key().to_hex()
        assert ("nostrforge", APP_KEY_ENTRY) in backend.storage
        backend.set_password.assert_called_once()

    def test_invalid_app_keys_regenerated(self, backend: MagicMock) -> None:
        backend.storage[("nostrforge", APP_KEY_ENTRY)] = "garbage"
        keys = KeyringStore().load_or_create_app_keys()
        assert backend.storage[("nostrforge", APP_KEY_ENTRY)] == keys.secret_key().to_hex()

    def test_backend_failure(self, backend: MagicMock) -> None:
        backend.get_password.side_effect = KeyringError("locked")
        with pytest.raises(SignerUnavailable, match="Keyring is not available: locked"):
            KeyringStore().load_user_keys()
