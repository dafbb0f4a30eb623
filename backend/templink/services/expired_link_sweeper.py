"""Expired link sweeper background worker.

asyncio background task started from the FastAPI lifespan. Deletes links
whose expiration_time has passed so stale rows do not block new links for
the same user.
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from templink.repositories.temporary_link_repository import TemporaryLinkRepository

logger = logging.getLogger(__name__)

# Default interval: 1 hour
DEFAULT_INTERVAL_SECONDS = 60 * 60


class ExpiredLinkSweeper:
    """Background worker that periodically deletes expired links.

    Lifecycle:
    - start() creates an asyncio task that runs the sweep loop.
    - stop() cancels the task and waits for graceful shutdown.
    - run_once() executes a single sweep (for testing).

    Args:
        session_factory: Async session factory for DB access.
        interval_seconds: Seconds between sweeps.
        clock: Returns the current timezone-aware time.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        interval_seconds: int = DEFAULT_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._session_factory = session_factory
        self._interval_seconds = interval_seconds
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._last_run_at: datetime | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        """Whether the background task is currently active."""
        return self._running and self._task is not None and not self._task.done()

    @property
    def last_run_at(self) -> datetime | None:
        """Timestamp of the most recent completed sweep."""
        return self._last_run_at

    def start(self) -> None:
        """Start the background sweep loop.

        Creates an asyncio task. No-op if already running.
        Must be called from an async context (running event loop).
        """
        if self.is_running:
            logger.warning("Expired link sweeper already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            "Expired link sweeper started (interval=%ds)", self._interval_seconds
        )

    async def stop(self) -> None:
        """Stop the background sweep loop.

        Cancels the task and waits for it to finish.
        """
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        logger.info("Expired link sweeper stopped")

    async def run_once(self) -> int:
        """Execute a single sweep.

        Returns:
            Number of expired links deleted.
        """
        now = self._clock()
        async with self._session_factory() as db:
            deleted = await TemporaryLinkRepository.delete_expired(db, now)
            await db.commit()
        self._last_run_at = now
        return deleted

    async def _run_loop(self) -> None:
        """Background loop: run_once → sleep → repeat."""
        try:
            while self._running:
                try:
                    deleted = await self.run_once()
                    if deleted:
                        logger.info("Deleted %d expired temporary links", deleted)
                except Exception:  # noqa: BLE001
                    logger.exception("Error in expired link sweep")
                await asyncio.sleep(self._interval_seconds)
        except asyncio.CancelledError:
            logger.debug("Expired link sweep loop cancelled")
            raise
