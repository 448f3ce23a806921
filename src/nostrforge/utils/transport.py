"""Concurrent relay fan-out for publishing and querying.

[RelayPool][nostrforge.utils.transport.RelayPool] runs one task per relay on
top of the single-relay helpers in [nostrforge.utils.protocol][]. A relay
that rejects, fails or stays silent never cancels the others; its outcome is
recorded under its URL and the caller decides what a partial result means.

Note:
    Query results are merged first-seen-wins by event id, then ordered newest
    first with ties broken by id, so the output does not depend on which
    relay answered first.

See Also:
    [PublishReport][nostrforge.models.results.PublishReport]: Per-relay
        outcomes returned by [RelayPool.publish()][nostrforge.utils.transport.RelayPool.publish].
    [CollaborationEngine][nostrforge.services.engine.CollaborationEngine]:
        Turns a report without any acceptance into
        [NoRelayAccepted][nostrforge.core.exceptions.NoRelayAccepted].

Examples:
    ```python
    from contextlib import aclosing

    pool = RelayPool(publish_timeout=10.0)
    report = await pool.publish(event, relays)

    async with aclosing(pool.publish_iter(event, relays)) as outcomes:
        async for outcome in outcomes:
            if outcome.ok:
                break  # remaining relays are cancelled

    events = await pool.query({"kinds": [1621], "#a": [address]}, relays, timeout=5.0)
    ```
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from nostrforge.core.exceptions import RelayUnreachable
from nostrforge.models.results import PublishReport, RelayOutcome

from . import protocol


if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from nostrforge.core.config import TransportConfig
    from nostrforge.models.event import Event
    from nostrforge.models.relay import Relay, RelaySet


logger = logging.getLogger(__name__)

# Time left at the pool deadline for relays to convert and hand over events.
_COLLECT_MARGIN = 0.5


class RelayPool:
    """Publish and query over a set of relays concurrently.

    The pool holds no open connections between calls; every call opens one
    short-lived client per relay.
    """

    def __init__(
        self,
        *,
        proxy_url: str | None = None,
        connect_timeout: float = protocol.DEFAULT_TIMEOUT,
        publish_timeout: float = 15.0,
        query_timeout: float = protocol.DEFAULT_TIMEOUT,
    ) -> None:
        self.proxy_url = proxy_url
        self.connect_timeout = connect_timeout
        self.publish_timeout = publish_timeout
        self.query_timeout = query_timeout

    @classmethod
    def from_config(cls, config: TransportConfig) -> RelayPool:
        return cls(
            proxy_url=config.proxy_url,
            connect_timeout=config.connect_timeout,
            publish_timeout=config.publish_timeout,
            query_timeout=config.query_timeout,
        )

    async def _send(self, relay: Relay, event: Event) -> RelayOutcome:
        return await protocol.send_event(
            relay,
            event,
            proxy_url=self.proxy_url,
            timeout=self.connect_timeout + self.publish_timeout,
        )

    async def publish(self, event: Event, relays: RelaySet) -> PublishReport:
        """Send *event* to every relay in *relays* and wait for all of them.

        Returns:
            A report with exactly one outcome per relay.
        """
        targets = list(relays)
        outcomes = await asyncio.gather(*(self._send(relay, event) for relay in targets))
        report = PublishReport(
            event_id=event.id,
            outcomes={relay.url: outcome for relay, outcome in zip(targets, outcomes, strict=True)},
        )
        logger.info(
            "publish_completed event=%s kind=%s accepted=%s rejected=%s unreachable=%s",
            event.id,
            event.kind,
            len(report.accepted),
            len(report.rejected),
            len(report.unreachable),
        )
        return report

    async def publish_iter(self, event: Event, relays: RelaySet) -> AsyncIterator[RelayOutcome]:
        """Yield each relay's outcome as soon as it is known.

        Closing the iterator early (``break`` inside ``contextlib.aclosing``)
        cancels the relays that have not answered yet.
        """
        tasks = [asyncio.create_task(self._send(relay, event)) for relay in relays]
        try:
            for next_done in asyncio.as_completed(tasks):
                yield await next_done
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                logger.debug("publish_iter_cancelled event=%s pending=%s", event.id, len(pending))

    async def query(
        self,
        event_filter: dict[str, Any],
        relays: RelaySet,
        timeout: float | None = None,  # noqa: ASYNC109
    ) -> list[Event]:
        """Run *event_filter* on every relay and merge the results.

        Collection ends when every relay has finished or *timeout* elapsed,
        whichever comes first. Each relay stops fetching a short margin before
        *timeout* and hands over what it received by then; relays still
        running at *timeout* are cancelled and contribute nothing.

        Returns:
            Unique events, newest first, ties ordered by id.
        """
        timeout = self.query_timeout if timeout is None else timeout
        relay_timeout = timeout - min(_COLLECT_MARGIN, timeout / 4)
        merged: dict[str, Event] = {}

        async def collect(relay: Relay) -> int:
            events = await protocol.fetch_events(
                relay, event_filter, proxy_url=self.proxy_url, timeout=relay_timeout
            )
            for event in events:
                merged.setdefault(event.id, event)
            return len(events)

        tasks = {asyncio.create_task(collect(relay)): relay for relay in relays}
        if not tasks:
            return []
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
            logger.debug("query_relay_silent relay=%s", tasks[task].url)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        for task in done:
            error = task.exception()
            if error is None:
                continue
            if not isinstance(error, (RelayUnreachable, OSError, TimeoutError)):
                raise error
            logger.debug("query_relay_failed relay=%s error=%s", tasks[task].url, error)

        events = sorted(merged.values(), key=lambda e: (-e.created_at, e.id))
        logger.debug(
            "query_completed relays=%s answered=%s events=%s",
            len(tasks),
            len(done),
            len(events),
        )
        return events
