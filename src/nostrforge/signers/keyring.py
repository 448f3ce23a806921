"""Signing with a secret key kept in the operating system keyring."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from nostrforge.utils.keys import KeyringStore, sign_with_keys

from .base import Signer


if TYPE_CHECKING:
    from nostr_sdk import Keys

    from nostrforge.models.event import Event, UnsignedEvent


class KeyringSigner(Signer):
    """Local signing whose key is read from the keyring on open.

    The key is read once, in a worker thread since keyring backends block,
    and cached for the lifetime of the signer. Closing drops it.
    """

    BACKEND = "keyring"

    def __init__(self, store: KeyringStore | None = None) -> None:
        super().__init__()
        self._store = store or KeyringStore()
        self._keys: Keys | None = None

    async def _open(self) -> str:
        self._keys = await asyncio.to_thread(self._store.load_user_keys)
        return self._keys.public_key().to_hex()

    async def _sign(self, unsigned: UnsignedEvent) -> Event:
        assert self._keys is not None  # noqa: S101  # set by _open
        return sign_with_keys(self._keys, unsigned)

    async def _close(self) -> None:
        self._keys = None
