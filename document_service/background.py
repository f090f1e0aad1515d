"""Owner of the two background loops (inbox polling, search reconciliation)."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from document_service.ingestion.inbox import InboxProcessor
    from document_service.search.reconciler import ReconciliationService

logger = logging.getLogger(__name__)


async def sleep_or_stop(stop_event: asyncio.Event, seconds: float) -> bool:
    """Sleep up to ``seconds``; returns True if the stop event fired first."""
    if stop_event.is_set():
        return True
    if seconds <= 0:
        return False
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=seconds)
    except TimeoutError:
        return False
    return True


class BackgroundHost:
    def __init__(
        self,
        *,
        inbox: InboxProcessor | None = None,
        reconciler: ReconciliationService | None = None,
    ) -> None:
        self.inbox = inbox
        self.reconciler = reconciler
        self._stop = asyncio.Event()
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def start(self) -> None:
        if self._tasks:
            raise RuntimeError("Background host already started")
        self._stop.clear()
        if self.inbox is not None:
            self._tasks.append(asyncio.create_task(self.inbox.run_forever(self._stop), name="inbox-processor"))
        if self.reconciler is not None:
            self._tasks.append(
                asyncio.create_task(self.reconciler.run_forever(self._stop), name="search-reconciler")
            )
        logger.info("Started %d background task(s)", len(self._tasks))

    async def stop(self, timeout: float = 30.0) -> None:
        """Signal stop, let the current item/batch finish, cancel stragglers."""
        if not self._tasks:
            return
        self._stop.set()
        _, pending = await asyncio.wait(self._tasks, timeout=timeout)
        for t in pending:
            logger.warning("Task %s did not stop in %.0fs; cancelling", t.get_name(), timeout)
            t.cancel()
        for t in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await t
        for t in self._tasks:
            if not t.cancelled() and t.exception() is not None:
                logger.error("Task %s exited with error", t.get_name(), exc_info=t.exception())
        self._tasks.clear()
        logger.info("Background tasks stopped")

    async def wait(self) -> None:
        """Block until every loop has exited."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
