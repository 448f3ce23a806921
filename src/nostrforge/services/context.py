"""Per-invocation session state passed explicitly through the call chain.

Nothing in nostrforge is module-global: the signer, the relay pool, the
resolver and the configuration of one session travel together in a
[SessionContext][nostrforge.services.context.SessionContext], so several
sessions (for example in tests) never interfere.

Examples:
    ```python
    provider = YamlConfigProvider.from_yaml()
    async with SessionContext.create(provider) as context:
        engine = CollaborationEngine(context)
        report = await engine.create_issue(["forge"], "Crash on start", "...")
    ```
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Self

from nostrforge.core.logger import Logger
from nostrforge.signers import create_signer
from nostrforge.utils.transport import RelayPool

from .resolver import AddressResolver


if TYPE_CHECKING:
    from types import TracebackType

    from nostrforge.core.config import ClientConfigProvider, ConfigSource
    from nostrforge.signers.base import Signer


@dataclass(slots=True)
class SessionContext:
    """Everything one invocation needs to build, sign, publish and query.

    Attributes:
        signer: The single active signer backend.
        pool: Relay fan-out transport.
        resolver: Reference and relay resolution.
        config: Sets, fallback relays and signer settings.
        difficulty: Proof-of-work difficulty for non-patch events.
        logger: Structured logger shared by the services of this session.
    """

    signer: Signer
    pool: RelayPool
    resolver: AddressResolver
    config: ConfigSource
    difficulty: int = 0
    logger: Logger = field(default_factory=lambda: Logger("nostrforge.services"))

    @classmethod
    def create(
        cls,
        provider: ClientConfigProvider,
        *,
        signer: Signer | None = None,
        pool: RelayPool | None = None,
    ) -> SessionContext:
        """Assemble a session from a configuration provider.

        Performs no I/O; the signer is opened by ``async with``.

        Raises:
            AmbiguousSignerConfiguration: If *signer* is not given and more
                than one backend is configured.
            SignerUnavailable: If *signer* is not given and none is.
        """
        config = provider.config
        pool = pool or RelayPool.from_config(config.transport)
        return cls(
            signer=signer or create_signer(provider.active_signer_config()),
            pool=pool,
            resolver=AddressResolver(pool, provider, nip05_timeout=config.nip05_timeout),
            config=provider,
            difficulty=provider.default_difficulty(),
        )

    async def __aenter__(self) -> Self:
        await self.signer.open()
        self.logger.info("session_started", signer=self.signer.BACKEND, difficulty=self.difficulty)
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        await self.signer.close()
        self.logger.info("session_stopped")
