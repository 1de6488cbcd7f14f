"""
ARTMATCH Scheduler
==================
Runs an ingestion pass every night at local midnight.

Only one pass runs at a time: a trigger that arrives while a pass is in
flight is skipped, never queued.

Usage:
    python -m artmatch_etl.scheduler           # Run scheduler daemon
    python -m artmatch_etl.scheduler --once    # Run one pass and exit
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
import time
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, Optional

from .jobs.ingest_artworks import SourceTotals, log_run_summary, run_ingestion_pass
from .models import SourceId

logger = logging.getLogger(__name__)

PassRunner = Callable[[], Awaitable[Dict[SourceId, SourceTotals]]]


def seconds_until_next_midnight(now: datetime) -> float:
    """Seconds from now to the next local midnight (0 exactly at midnight)."""
    today_midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    next_midnight = today_midnight if now <= today_midnight else today_midnight + timedelta(days=1)
    return (next_midnight - now).total_seconds()


class IngestionScheduler:
    """Single-flight nightly ingestion."""

    def __init__(
        self,
        run_pass: Optional[PassRunner] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._run_pass = run_pass or run_ingestion_pass
        self._clock = clock
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self.last_run: Optional[datetime] = None
        self.last_totals: Optional[Dict[SourceId, SourceTotals]] = None

    @property
    def is_running(self) -> bool:
        """True while a pass is in flight."""
        return self._lock.locked()

    async def trigger(self) -> Optional[Dict[SourceId, SourceTotals]]:
        """
        Run one pass now unless one is already running.

        Returns:
            Per-source totals, or None when the trigger was skipped.

        Raises:
            ArtistListError: the pass was aborted before scraping anything.
        """
        if self._lock.locked():
            logger.warning("ingestion pass already running, skipping trigger")
            return None

        async with self._lock:
            logger.info("starting ingestion pass")
            start_time = time.time()
            totals = await self._run_pass()
            log_run_summary(totals, time.time() - start_time)
            self.last_run = self._clock()
            self.last_totals = totals
            return totals

    async def run_forever(self) -> None:
        logger.info("initialized background tasks!")
        while True:
            delay = seconds_until_next_midnight(self._clock())
            next_run = self._clock() + timedelta(seconds=delay)
            logger.info(f"next scraping task scheduled for: {next_run:%Y-%m-%d %H:%M:%S} (local time)")
            await asyncio.sleep(delay)

            try:
                await self.trigger()
            except Exception as e:
                logger.error(f"Ingestion pass failed: {e}", exc_info=True)

            # Step past midnight so a fast pass is not scheduled twice
            await asyncio.sleep(1)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_forever())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None


async def _serve(scheduler: IngestionScheduler) -> None:
    loop = asyncio.get_running_loop()
    shutdown = asyncio.Event()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, shutdown.set)

    logger.info("Starting ARTMATCH scheduler daemon...")
    scheduler.start()
    await shutdown.wait()
    logger.info("Received shutdown signal, stopping scheduler...")
    await scheduler.stop()
    logger.info("Scheduler stopped.")


async def _run(once: bool) -> None:
    from .db import dispose_engine

    scheduler = IngestionScheduler()
    try:
        if once:
            await scheduler.trigger()
        else:
            await _serve(scheduler)
    finally:
        await dispose_engine()


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    parser = argparse.ArgumentParser(description="ARTMATCH ingestion scheduler")
    parser.add_argument("--once", action="store_true", help="Run one pass and exit")
    args = parser.parse_args()

    asyncio.run(_run(args.once))


if __name__ == "__main__":
    main()
