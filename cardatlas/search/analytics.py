"""
Search Analytics Recorder: fire-and-forget event capture.

The search path only ever enqueues. A background task drains the queue
into a sink (the database in production).

DELIVERY:
- At-most-once. A full queue, a failing sink, or a crash loses events.
- Sink failures are logged and the event is dropped; nothing is retried
  synchronously and nothing is surfaced to the caller.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cardatlas.db.operations import add_search_event
from cardatlas.models.search import SearchEvent

logger = logging.getLogger(__name__)

DEFAULT_MAX_QUEUE_SIZE = 1000
DEFAULT_DRAIN_TIMEOUT_SECONDS = 5.0


class SearchEventSink(Protocol):
    """Write-only destination for search events."""

    async def append(self, event: SearchEvent) -> None: ...


class DatabaseEventSink:
    """Persists each event as a SearchEventDB row in its own transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def append(self, event: SearchEvent) -> None:
        async with self._session_factory() as session:
            await add_search_event(session, event)
            await session.commit()


@dataclass(frozen=True)
class RecorderStats:
    recorded: int
    dropped: int
    failed: int
    pending: int
    running: bool


class SearchAnalyticsRecorder:
    """
    Bounded queue plus background worker for search events.

    Lifecycle: start() once the event loop is running, stop() at shutdown.
    Events recorded before start() wait in the queue.
    """

    def __init__(self, sink: SearchEventSink, max_queue_size: int = DEFAULT_MAX_QUEUE_SIZE):
        if max_queue_size < 1:
            raise ValueError("max_queue_size must be at least 1")
        self._sink = sink
        self._queue: asyncio.Queue[SearchEvent] = asyncio.Queue(maxsize=max_queue_size)
        self._worker: asyncio.Task[None] | None = None
        self._recorded = 0
        self._dropped = 0
        self._failed = 0

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def record(self, event: SearchEvent) -> bool:
        """
        Enqueue an event without waiting.

        Returns:
            True if queued, False if dropped because the queue is full.
        """
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._dropped += 1
            logger.warning(
                "SEARCH_EVENT_DROPPED",
                extra={"event_id": event.event_id, "reason": "queue_full"},
            )
            return False
        return True

    def start(self) -> None:
        """Start the background drain task. Idempotent."""
        if self.running:
            return
        self._worker = asyncio.create_task(self._drain(), name="search-analytics-recorder")
        logger.info("SEARCH_ANALYTICS_STARTED", extra={"max_queue_size": self._queue.maxsize})

    async def stop(self, drain_timeout: float = DEFAULT_DRAIN_TIMEOUT_SECONDS) -> None:
        """
        Drain what can be drained within drain_timeout, then stop the worker.

        Events still queued after the timeout are lost.
        """
        if self._worker is None:
            return

        if self.running:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
            except TimeoutError:
                logger.warning(
                    "SEARCH_ANALYTICS_DRAIN_TIMEOUT",
                    extra={"pending": self._queue.qsize(), "timeout": drain_timeout},
                )

        self._worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None
        logger.info("SEARCH_ANALYTICS_STOPPED", extra={"recorded": self._recorded})

    async def flush(self) -> None:
        """Wait until every queued event has been handed to the sink."""
        await self._queue.join()

    def stats(self) -> RecorderStats:
        return RecorderStats(
            recorded=self._recorded,
            dropped=self._dropped,
            failed=self._failed,
            pending=self._queue.qsize(),
            running=self.running,
        )

    async def _drain(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._sink.append(event)
                self._recorded += 1
            except asyncio.CancelledError:
                raise
            except Exception:
                self._failed += 1
                logger.warning(
                    "SEARCH_EVENT_SINK_FAILED",
                    exc_info=True,
                    extra={"event_id": event.event_id},
                )
            finally:
                self._queue.task_done()
