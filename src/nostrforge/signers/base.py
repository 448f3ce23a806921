"""Signer contract and the pending-request table shared by remote backends.

Every backend implements the same two-step lifecycle:

1. ``await signer.open()`` (or ``async with signer``) fetches the public
   key, which may need I/O (keyring read, bunker round trip, browser page).
2. [identity()][nostrforge.signers.base.Signer.identity] then answers
   synchronously, and [sign()][nostrforge.signers.base.Signer.sign] signs one
   event at a time behind an ``asyncio.Lock``.

Signed events are checked before they are returned: the id, the public key
and the Schnorr signature must all match the request, otherwise
[SigningDenied][nostrforge.core.exceptions.SigningDenied] is raised.

See Also:
    [create_signer()][nostrforge.signers.create_signer]: Selects the single
        configured backend.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, ClassVar, Generic, Self, TypeVar

from nostrforge.core.exceptions import SignerUnavailable, SigningDenied, SigningTimeout
from nostrforge.core.logger import Logger


if TYPE_CHECKING:
    from types import TracebackType

    from nostrforge.models.event import Event, UnsignedEvent


DEFAULT_SIGN_TIMEOUT = 180.0

T = TypeVar("T")


class PendingRequests(Generic[T]):
    """Futures of in-flight remote requests keyed by request id.

    Each request has a single owner: the first
    [resolve()][nostrforge.signers.base.PendingRequests.resolve] completes it,
    so a duplicate or late answer is ignored, and
    [wait()][nostrforge.signers.base.PendingRequests.wait] removes it. An
    answer may arrive before its waiter and in any order.
    """

    def __init__(self) -> None:
        self._futures: dict[str, asyncio.Future[T]] = {}

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._futures

    def __len__(self) -> int:
        return len(self._futures)

    def create(self, request_id: str) -> asyncio.Future[T]:
        """Register *request_id*. Raises ``ValueError`` if it is already pending."""
        if request_id in self._futures:
            raise ValueError(f"Request {request_id} is already pending")
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._futures[request_id] = future
        return future

    def resolve(self, request_id: str, value: T) -> bool:
        """Complete *request_id* with *value*.

        Returns:
            ``False`` when the id is unknown or already completed.
        """
        future = self._futures.get(request_id)
        if future is None or future.done():
            return False
        future.set_result(value)
        return True

    def fail_all(self, error: BaseException) -> int:
        """Fail every pending request with *error* and return how many there were."""
        futures = list(self._futures.values())
        self._futures.clear()
        for future in futures:
            if not future.done():
                future.set_exception(error)
        return len(futures)

    def discard(self, request_id: str) -> None:
        future = self._futures.pop(request_id, None)
        if future is not None and not future.done():
            future.cancel()

    async def wait(self, request_id: str, timeout: float) -> T:  # noqa: ASYNC109
        """Wait for the answer to *request_id*.

        Raises:
            SigningTimeout: If no answer arrives within *timeout* seconds.
            KeyError: If *request_id* was never created.
        """
        future = self._futures[request_id]
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=timeout)
        except TimeoutError:
            raise SigningTimeout(f"No answer to request {request_id} after {timeout}s") from None
        finally:
            self.discard(request_id)


class Signer(ABC):
    """Abstract signer backend.

    Subclasses set ``BACKEND`` and implement ``_open`` (returning the hex
    public key) and ``_sign``. ``_close`` releases remote resources.

    Attributes:
        BACKEND: Backend name used in logs and configuration errors.
    """

    BACKEND: ClassVar[str]

    def __init__(self, *, timeout: float = DEFAULT_SIGN_TIMEOUT) -> None:
        self._timeout = timeout
        self._lock = asyncio.Lock()
        self._pubkey: str | None = None
        self._logger = Logger(f"nostrforge.signers.{self.BACKEND}")

    @property
    def is_open(self) -> bool:
        return self._pubkey is not None

    def identity(self) -> str:
        """Hex public key of the signing identity.

        Raises:
            SignerUnavailable: If the signer has not been opened.
        """
        if self._pubkey is None:
            raise SignerUnavailable(f"{self.BACKEND} signer has not been opened")
        return self._pubkey

    async def open(self) -> str:
        """Prepare the backend and learn the public key. Idempotent."""
        if self._pubkey is None:
            self._pubkey = await self._open()
            self._logger.info("signer_opened", backend=self.BACKEND, pubkey=self._pubkey)
        return self._pubkey

    async def close(self) -> None:
        await self._close()
        self._pubkey = None

    async def sign(self, unsigned: UnsignedEvent) -> Event:
        """Sign *unsigned*, one request at a time.

        Raises:
            SigningDenied: If the backend refused, or returned an event that
                does not match the request.
            SigningTimeout: If a remote backend did not answer in time.
            SignerUnavailable: If the signer is not open or its backend
                went away.
        """
        pubkey = self.identity()
        if unsigned.pubkey != pubkey:
            raise SigningDenied(f"Event pubkey {unsigned.pubkey} is not the signer's {pubkey}")
        async with self._lock:
            event = await self._sign(unsigned)
        self._check_signed(unsigned, event)
        self._logger.debug("event_signed", backend=self.BACKEND, event=event.id, kind=event.kind)
        return event

    @staticmethod
    def _check_signed(unsigned: UnsignedEvent, event: Event) -> None:
        if event.id != unsigned.id or event.pubkey != unsigned.pubkey:
            raise SigningDenied("Signer returned an event that differs from the request")
        if not event.verify():
            raise SigningDenied(f"Signer returned an invalid signature for {event.id}")

    @abstractmethod
    async def _open(self) -> str: ...

    @abstractmethod
    async def _sign(self, unsigned: UnsignedEvent) -> Event: ...

    async def _close(self) -> None:
        return None

    async def __aenter__(self) -> Self:
        await self.open()
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
