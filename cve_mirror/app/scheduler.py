"""스케줄러 로직(Scheduler logic)."""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional, Set

from common_lib.logger import get_logger

from .sync import SyncController

logger = get_logger(__name__)


def seconds_until_next_run(now: datetime, hour: int, minute: int) -> float:
    """다음 실행까지 남은 초(Seconds from ``now`` until the next HH:MM tick, UTC)."""

    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)
    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


class RefreshScheduler:
    """일일 동기화 트리거(Daily sync trigger, plus one run at startup)."""

    def __init__(
        self,
        controller: SyncController,
        hour: int = 0,
        minute: int = 0,
        run_on_startup: bool = True,
    ) -> None:
        self._controller = controller
        self._hour = hour
        self._minute = minute
        self._run_on_startup = run_on_startup
        self._task: Optional[asyncio.Task] = None
        self._runs: Set[asyncio.Task] = set()

    @property
    def is_started(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """스케줄러 시작(Start the cadence loop)."""

        if self.is_started:
            return
        self._task = asyncio.create_task(self._loop(), name="cve-refresh-scheduler")
        logger.info("Refresh scheduler started (daily at %02d:%02d UTC).", self._hour, self._minute)

    async def stop(self) -> None:
        """스케줄러 중지(Stop the cadence loop and wait for in-flight runs).

        Runs are never cancelled; ``stop`` returns once they have finished so
        the caller can release the fetcher and the store afterwards.
        """

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Refresh scheduler stopped.")
        if self._runs:
            logger.info("Waiting for %d in-flight sync run(s) to finish.", len(self._runs))
            await asyncio.gather(*self._runs, return_exceptions=True)

    def trigger(self) -> asyncio.Task:
        """동기화 1회 트리거(Fire one sync run in the background)."""

        task = asyncio.create_task(self._run_sync())
        self._runs.add(task)
        task.add_done_callback(self._runs.discard)
        return task

    async def _loop(self) -> None:
        if self._run_on_startup:
            self.trigger()
        while True:
            delay = seconds_until_next_run(datetime.now(timezone.utc), self._hour, self._minute)
            logger.debug("Next scheduled sync in %.0f seconds.", delay)
            await asyncio.sleep(delay)
            self.trigger()

    async def _run_sync(self) -> None:
        try:
            await self._controller.run()
        except Exception:
            logger.exception("Scheduled sync run failed.")
