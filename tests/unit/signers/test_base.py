"""
Unit tests for signers.base module.

Tests:
- PendingRequests: out-of-order answers, unknown and duplicate ids, timeout,
  fail_all()
- Signer lifecycle through LocalKeySigner: open, identity, close
- Signer.sign() pubkey check and validation of the returned event
"""

import asyncio

import pytest
from nostr_sdk import Keys

from nostrforge.core.exceptions import SignerUnavailable, SigningDenied, SigningTimeout
from nostrforge.models.event import Event, UnsignedEvent
from nostrforge.signers.base import PendingRequests, Signer
from nostrforge.signers.local import LocalKeySigner
from nostrforge.utils.keys import sign_with_keys


# ============================================================================
# PendingRequests
# ============================================================================


class TestPendingRequests:
    """Tests for PendingRequests."""

    @pytest.mark.asyncio
    async def test_out_of_order_answers(self) -> None:
        pending: PendingRequests[str] = PendingRequests()
        pending.create("a")
        pending.create("b")

        waiter_a = asyncio.create_task(pending.wait("a", 1.0))
        waiter_b = asyncio.create_task(pending.wait("b", 1.0))
        await asyncio.sleep(0)
        assert pending.resolve("b", "second")
        assert pending.resolve("a", "first")

        assert await waiter_a == "first"
        assert await waiter_b == "second"
        assert len(pending) == 0

    @pytest.mark.asyncio
    async def test_answer_before_wait(self) -> None:
        pending: PendingRequests[str] = PendingRequests()
        pending.create("a")
        assert pending.resolve("a", "early")
        assert await pending.wait("a", 1.0) == "early"
        assert "a" not in pending

    @pytest.mark.asyncio
    async def test_unknown_and_duplicate_ids_ignored(self) -> None:
        pending: PendingRequests[str] = PendingRequests()
        assert not pending.resolve("nobody-asked", "x")

        pending.create("a")
        assert pending.resolve("a", "first")
        assert not pending.resolve("a", "again")
        assert await pending.wait("a", 1.0) == "first"

    @pytest.mark.asyncio
    async def test_create_twice(self) -> None:
        pending: PendingRequests[str] = PendingRequests()
        pending.create("a")
        with pytest.raises(ValueError, match="already pending"):
            pending.create("a")

    @pytest.mark.asyncio
    async def test_timeout_removes_request(self) -> None:
        pending: PendingRequests[str] = PendingRequests()
        pending.create("a")
        with pytest.raises(SigningTimeout, match="request a"):
            await pending.wait("a", 0.01)
        assert "a" not in pending
        assert not pending.resolve("a", "late")

    @pytest.mark.asyncio
    async def test_fail_all(self) -> None:
        pending: PendingRequests[str] = PendingRequests()
        future = pending.create("a")
        pending.create("b")

        assert pending.fail_all(SignerUnavailable("closed")) == 2
        assert len(pending) == 0
        with pytest.raises(SignerUnavailable):
            await future

    @pytest.mark.asyncio
    async def test_wait_unknown(self) -> None:
        pending: PendingRequests[str] = PendingRequests()
        with pytest.raises(KeyError):
            await pending.wait("missing", 0.1)


# ============================================================================
# Signer
# ============================================================================


class _ForgingSigner(Signer):
    """Returns whatever event it was handed at construction time."""

    BACKEND = "forging"

    def __init__(self, pubkey: str, result: Event) -> None:
        super().__init__()
        self._fixed_pubkey = pubkey
        self._result = result

    async def _open(self) -> str:
        return self._fixed_pubkey

    async def _sign(self, unsigned: UnsignedEvent) -> Event:
        return self._result


class TestLocalKeySigner:
    """Tests for the Signer lifecycle through LocalKeySigner."""

    def test_identity_requires_open(self, owner_keys: Keys) -> None:
        signer = LocalKeySigner(owner_keys)
        assert not signer.is_open
        with pytest.raises(SignerUnavailable, match="not been opened"):
            signer.identity()

    @pytest.mark.asyncio
    async def test_open_and_close(self, owner_keys: Keys, owner: str) -> None:
        async with LocalKeySigner(owner_keys) as signer:
            assert signer.identity() == owner
            assert await signer.open() == owner
        assert not signer.is_open

    @pytest.mark.asyncio
    async def test_sign(self, owner_keys: Keys, owner: str) -> None:
        template = UnsignedEvent(pubkey=owner, kind=1621, content="It crashes.")
        async with LocalKeySigner(owner_keys) as signer:
            event = await signer.sign(template)
        assert event.id == template.id
        assert event.verify()

    @pytest.mark.asyncio
    async def test_pubkey_mismatch(self, owner_keys: Keys, contributor: str) -> None:
        async with LocalKeySigner(owner_keys) as signer:
            with pytest.raises(SigningDenied, match="is not the signer's"):
                await signer.sign(UnsignedEvent(pubkey=contributor, kind=1621))

    @pytest.mark.asyncio
    async def test_sign_before_open(self, owner_keys: Keys, owner: str) -> None:
        with pytest.raises(SignerUnavailable):
            await LocalKeySigner(owner_keys).sign(UnsignedEvent(pubkey=owner, kind=1621))


class TestSignedEventChecks:
    """Tests for validation of events returned by a backend."""

    @pytest.mark.asyncio
    async def test_different_event_rejected(self, owner_keys: Keys, owner: str) -> None:
        other = sign_with_keys(owner_keys, UnsignedEvent(pubkey=owner, kind=1, content="other"))
        async with _ForgingSigner(owner, other) as signer:
            with pytest.raises(SigningDenied, match="differs from the request"):
                await signer.sign(UnsignedEvent(pubkey=owner, kind=1621, content="wanted"))

    @pytest.mark.asyncio
    async def test_bad_signature_rejected(self, owner_keys: Keys, owner: str) -> None:
        template = UnsignedEvent(pubkey=owner, kind=1621, content="wanted")
        unrelated = sign_with_keys(owner_keys, UnsignedEvent(pubkey=owner, kind=1, content="x"))
        forged = template.to_event(unrelated.sig)
        async with _ForgingSigner(owner, forged) as signer:
            with pytest.raises(SigningDenied, match="invalid signature"):
                await signer.sign(template)
