"""데이터베이스 엔진 및 세션(Database engine and sessions)."""
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from .config import get_settings
from .logger import get_logger

logger = get_logger(__name__)
_engine: AsyncEngine | None = None
_session_factory: sessionmaker | None = None


def create_engine(database_url: str) -> AsyncEngine:
    """URL로 비동기 엔진 생성(Create an async engine for a URL)."""

    return create_async_engine(database_url, future=True, echo=False)


def create_session_factory(engine: AsyncEngine) -> sessionmaker:
    """세션 팩토리 생성(Create a session factory bound to an engine)."""

    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def get_engine() -> AsyncEngine:
    """공유 비동기 엔진 제공(Provide the shared async engine)."""

    global _engine
    if _engine is None:
        settings = get_settings()
        logger.info("Initializing async engine for %s", settings.database_url.split("://", 1)[0])
        _engine = create_engine(settings.database_url)
    return _engine


def get_session_factory() -> sessionmaker:
    """공유 세션 팩토리 제공(Provide the shared session factory)."""

    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory(get_engine())
    return _session_factory


async def dispose_engine() -> None:
    """엔진 종료(Dispose the shared engine)."""

    global _engine, _session_factory
    if _engine is not None:
        logger.info("Disposing database engine.")
        await _engine.dispose()
    _engine = None
    _session_factory = None
