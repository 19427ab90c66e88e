"""CVE 동기화 컨트롤러(CVE sync controller)."""
from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Optional, Protocol

from common_lib.errors import TransportError, UpsertError
from common_lib.logger import get_logger
from common_lib.observability import sync_run_ctx

from .models import CVERecord, FeedPage, SyncReport, SyncState
from .normalizer import normalize_item

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 100


class PageFetcher(Protocol):
    async def fetch_page(self, offset: int, page_size: int) -> FeedPage: ...


class RecordStore(Protocol):
    async def upsert(self, record: CVERecord) -> None: ...


class SyncController:
    """피드 전체 동기화 실행기(Runs full pagination passes over the feed).

    Pages are fetched and upserted strictly one at a time. A transport
    failure ends the run in FAILED and keeps what was already written; a
    failed upsert only skips that record. Only one run may be active: a
    ``run()`` call while another run holds the guard is dropped.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        store: RecordStore,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: Optional[int] = None,
    ) -> None:
        if page_size < 1:
            raise ValueError(f"page_size must be positive, got {page_size}")
        if max_pages is not None and max_pages < 1:
            raise ValueError(f"max_pages must be positive, got {max_pages}")
        self._fetcher = fetcher
        self._store = store
        self._page_size = page_size
        self._max_pages = max_pages
        self._guard = asyncio.Lock()
        self._state = SyncState.IDLE
        self._last_report: Optional[SyncReport] = None

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._guard.locked()

    @property
    def last_report(self) -> Optional[SyncReport]:
        return self._last_report

    async def run(self) -> Optional[SyncReport]:
        """동기화 1회 실행(Run one sync pass; None if a run is already active)."""

        if self._guard.locked():
            logger.warning("Sync already in progress; dropping trigger.")
            return None

        async with self._guard:
            report = SyncReport(started_at=datetime.now(timezone.utc), run_id=uuid.uuid4().hex[:12])
            self._last_report = report
            token = sync_run_ctx.set(report.run_id)
            try:
                await self._run(report)
            except Exception as exc:
                self._finish(report, SyncState.FAILED, error=str(exc) or type(exc).__name__)
                logger.exception("Sync run aborted by unexpected error after %d pages.", report.pages_fetched)
                raise
            finally:
                sync_run_ctx.reset(token)
            return report

    async def _run(self, report: SyncReport) -> None:
        offset = 0
        logger.info("Sync run started (page_size=%d).", self._page_size)

        while True:
            if self._max_pages is not None and report.pages_fetched >= self._max_pages:
                report.truncated = True
                logger.warning("Sync stopped at safety ceiling of %d pages (offset=%d).", self._max_pages, offset)
                break

            self._state = report.state = SyncState.FETCHING_PAGE
            try:
                page = await self._fetcher.fetch_page(offset, self._page_size)
            except TransportError as exc:
                self._finish(report, SyncState.FAILED, error=str(exc))
                logger.error("Sync run failed fetching offset %d: %s", offset, exc)
                return

            report.pages_fetched += 1
            if page.total_results is not None:
                report.total_results = page.total_results

            self._state = report.state = SyncState.UPSERTING
            await self._apply_page(page, report)
            logger.info(
                "Synced page %d (offset=%d, items=%d, total=%s).",
                report.pages_fetched,
                offset,
                page.item_count,
                page.total_results if page.total_results is not None else "?",
            )

            if page.item_count < self._page_size:
                break
            offset += self._page_size
            report.next_offset = offset

        self._finish(report, SyncState.DONE)
        logger.info(
            "Sync run finished: %d pages, %d upserted, %d skipped, %d failed.",
            report.pages_fetched,
            report.upserted,
            report.skipped,
            report.failed,
        )

    async def _apply_page(self, page: FeedPage, report: SyncReport) -> None:
        for raw in page.items:
            report.items_seen += 1
            record = normalize_item(raw)
            if record is None:
                report.skipped += 1
                logger.debug("Skipping feed item without CVE id at offset %d.", page.start_index)
                continue
            try:
                await self._store.upsert(record)
            except UpsertError as exc:
                report.failed += 1
                logger.warning("%s", exc)
                continue
            report.upserted += 1

    def _finish(self, report: SyncReport, state: SyncState, error: Optional[str] = None) -> None:
        self._state = report.state = state
        report.error = error
        report.finished_at = datetime.now(timezone.utc)
