"""CVE 미러 FastAPI 애플리케이션(CVE mirror FastAPI application)."""

import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from common_lib.config import get_settings
from common_lib.db import dispose_engine, get_engine, get_session_factory
from common_lib.errors import AppException, StoreAccessError
from common_lib.logger import get_logger
from common_lib.observability import request_id_ctx

from .fetcher import NvdPageFetcher
from .filters import CVEFilter, build_constraints
from .models import CVERecord, SyncStatus
from .repository import CVERepository
from .scheduler import RefreshScheduler
from .sync import SyncController

logger = get_logger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """저장소, 동기화, 스케줄러 수명주기(Store, sync and scheduler lifecycle)."""

    repository = CVERepository(get_engine(), get_session_factory())
    await repository.ensure_schema()
    logger.info("Database synchronized.")

    fetcher = NvdPageFetcher()
    controller = SyncController(fetcher, repository, page_size=settings.page_size, max_pages=settings.max_pages)
    app.state.repository = repository
    app.state.controller = controller

    scheduler: Optional[RefreshScheduler] = None
    if settings.scheduler_enabled:
        hour, minute = settings.sync_hour_minute
        scheduler = RefreshScheduler(controller, hour, minute, run_on_startup=settings.sync_on_startup)
        scheduler.start()
    else:
        logger.info("Periodic sync disabled via configuration.")

    try:
        yield
    finally:
        if scheduler is not None:
            await scheduler.stop()
        await fetcher.aclose()
        await dispose_engine()


limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)

app = FastAPI(title="CVE Mirror", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """요청 ID 추적 미들웨어(Middleware for request ID tracking and correlation)."""

    async def dispatch(self, request: Request, call_next: Any) -> Any:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        token = request_id_ctx.set(request_id)
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            request_id_ctx.reset(token)


app.add_middleware(RequestIDMiddleware)


@app.exception_handler(StoreAccessError)
async def store_access_exception_handler(request: Request, exc: StoreAccessError) -> PlainTextResponse:
    """저장소 오류는 평문 500 응답(Store faults become a plain-text 500)."""
    logger.error("Error retrieving CVEs: %s", exc.message)
    return PlainTextResponse("Internal Server Error", status_code=500)


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle application exceptions with standardized error format."""
    logger.warning(
        "AppException: %s (code=%s)",
        exc.message,
        exc.error_code,
        extra={"details": exc.details},
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected errors."""
    logger.error(
        "Unexpected error: %s",
        str(exc),
        exc_info=exc,
        extra={"path": request.url.path, "method": request.method},
    )
    return JSONResponse(
        status_code=500,
        content={"error": {"code": "INTERNAL_ERROR", "message": "Unexpected server error"}},
    )


def get_repository(request: Request) -> CVERepository:
    return request.app.state.repository


def get_controller(request: Request) -> SyncController:
    return request.app.state.controller


@app.get("/cves", response_model=List[CVERecord], tags=["cves"])
@limiter.limit(settings.read_rate_limit)
async def list_cves(
    request: Request,
    cve_id: Optional[str] = Query(default=None, description="Exact CVE identifier"),
    year: Optional[str] = Query(default=None, description="4-digit year matched against last_modified"),
    score: Optional[str] = Query(default=None, description="Minimum CVSS base score"),
    days: Optional[str] = Query(default=None, description="Modified within the last N days"),
    repository: CVERepository = Depends(get_repository),
) -> List[CVERecord]:
    """필터 조건으로 CVE 조회(List CVEs matching all supplied filters).

    Query Parameters:
        cve_id: Exact match on the CVE identifier
        year: last_modified starts with "<year>-"
        score: score >= value; records without a score never match
        days: last_modified on or after today (UTC) minus N days
    """

    filters = CVEFilter.from_query(cve_id=cve_id, year=year, score=score, days=days)
    return await repository.find(build_constraints(filters))


@app.get("/sync/status", response_model=SyncStatus, tags=["sync"])
async def sync_status(controller: SyncController = Depends(get_controller)) -> SyncStatus:
    """동기화 상태 조회(Current sync state and the last run report)."""

    report = controller.last_report
    return SyncStatus(
        state=controller.state,
        running=controller.is_running,
        last_report=report.to_dict() if report is not None else None,
    )


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """헬스체크 엔드포인트(Health check endpoint)."""

    return {"status": "ok"}
