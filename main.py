"""CVE 미러 실행기(CVE mirror entry point)."""
from __future__ import annotations

import argparse
import asyncio
import json
from typing import Any, Dict, Iterable, Optional

from dotenv import load_dotenv

# Load .env file at startup
load_dotenv()

from common_lib.config import get_settings, load_environment  # noqa: E402
from common_lib.db import dispose_engine, get_engine, get_session_factory  # noqa: E402
from common_lib.logger import get_logger  # noqa: E402
from cve_mirror.app.fetcher import NvdPageFetcher  # noqa: E402
from cve_mirror.app.repository import CVERepository  # noqa: E402
from cve_mirror.app.sync import SyncController  # noqa: E402

logger = get_logger(__name__)


async def run_sync_once() -> Optional[Dict[str, Any]]:
    """동기화를 1회 실행하고 보고서 반환(Run one sync pass and return its report)."""

    settings = get_settings()
    repository = CVERepository(get_engine(), get_session_factory())
    fetcher = NvdPageFetcher()
    try:
        await repository.ensure_schema()
        controller = SyncController(fetcher, repository, page_size=settings.page_size, max_pages=settings.max_pages)
        report = await controller.run()
        if report is None:
            return None
        result = report.to_dict()
        result["stored_records"] = await repository.count()
        return result
    finally:
        await fetcher.aclose()
        await dispose_engine()


def serve() -> None:
    """API 서버와 스케줄러 실행(Run the read API with the refresh scheduler)."""

    import uvicorn

    settings = get_settings()
    logger.info("Server is running on http://%s:%d", settings.host, settings.port)
    uvicorn.run("cve_mirror.app.main:app", host=settings.host, port=settings.port, log_config=None)


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    """커맨드라인 인자 파싱(Parse CLI arguments)."""

    parser = argparse.ArgumentParser(description="NVD CVE 미러 서비스(NVD CVE mirror service)")
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("serve", help="조회 API와 일일 동기화 실행(Run read API with daily sync)")
    subparsers.add_parser("sync", help="동기화 1회 실행(Run a single sync pass)")
    args = parser.parse_args(list(argv) if argv is not None else None)
    if args.command is None:
        args.command = "serve"
    return args


def main(argv: Optional[Iterable[str]] = None) -> int:
    """CLI 진입점(CLI entry point)."""

    load_environment()
    args = parse_args(argv)
    if args.command == "sync":
        result = asyncio.run(run_sync_once())
        if result is None:
            logger.warning("Sync was not started.")
            return 1
        print(json.dumps(result, ensure_ascii=False, indent=2))
        return 0 if result["state"] == "done" else 1

    serve()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
