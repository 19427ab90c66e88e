"""CVE 데이터 저장소(CVE data repository)."""
from __future__ import annotations

from typing import Iterable, List

from sqlalchemy import Column, Float, Integer, MetaData, String, Table, Text, func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.orm import sessionmaker

from common_lib.errors import StoreAccessError, UpsertError
from common_lib.logger import get_logger

from .filters import Constraint, Operator
from .models import CVERecord

logger = get_logger(__name__)

metadata = MetaData()

cves_table = Table(
    "cves",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("cve_id", String(64), nullable=False, unique=True),
    Column("description", Text, nullable=False),
    Column("score", Float, nullable=True),
    Column("last_modified", String(64), nullable=True),
)

_UPSERT_SQL = text(
    """
    INSERT INTO cves (cve_id, description, score, last_modified)
    VALUES (:cve_id, :description, :score, :last_modified)
    ON CONFLICT (cve_id)
    DO UPDATE SET description = EXCLUDED.description, score = EXCLUDED.score, last_modified = EXCLUDED.last_modified
    """
)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def constraint_clause(constraint: Constraint):
    """조건을 SQL 표현식으로 변환(Render one constraint as a SQLAlchemy expression)."""

    column = cves_table.c[constraint.field.value]
    if constraint.operator is Operator.EQ:
        return column == constraint.value
    if constraint.operator is Operator.PREFIX:
        return column.like(f"{_escape_like(constraint.value)}%", escape="\\")
    if constraint.operator is Operator.GTE:
        return column >= constraint.value
    raise ValueError(f"Unsupported operator: {constraint.operator}")


class CVERepository:
    """CVE 레코드 저장 레이어(Storage layer for CVE records).

    Every write runs in its own transaction, so a record is either fully
    written or untouched and readers see committed rows only.
    """

    def __init__(self, engine: AsyncEngine, session_factory: sessionmaker) -> None:
        self._engine = engine
        self._session_factory = session_factory

    async def ensure_schema(self) -> None:
        """테이블이 없으면 생성(Create the cves table if absent)."""

        async with self._engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        logger.info("CVE table synchronized.")

    async def upsert(self, record: CVERecord) -> None:
        """CVE 레코드 저장 또는 전체 갱신(Insert or fully replace a record)."""

        params = {
            "cve_id": record.cve_id,
            "description": record.description,
            "score": record.score,
            "last_modified": record.last_modified,
        }
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(_UPSERT_SQL, params)
        except SQLAlchemyError as exc:
            raise UpsertError(record.cve_id, str(exc)) from exc

    async def find(self, constraints: Iterable[Constraint] = ()) -> List[CVERecord]:
        """조건에 맞는 레코드 조회(Fetch matching records in insertion order)."""

        query = select(
            cves_table.c.cve_id,
            cves_table.c.description,
            cves_table.c.score,
            cves_table.c.last_modified,
        ).order_by(cves_table.c.id)
        for constraint in constraints:
            query = query.where(constraint_clause(constraint))

        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                rows = result.fetchall()
        except SQLAlchemyError as exc:
            logger.error("Database error in find: %s", exc, exc_info=exc)
            raise StoreAccessError("failed to query CVE records") from exc

        return [
            CVERecord(
                cve_id=row.cve_id,
                description=row.description or "",
                score=float(row.score) if row.score is not None else None,
                last_modified=row.last_modified,
            )
            for row in rows
        ]

    async def count(self) -> int:
        """저장된 레코드 수(Number of stored records)."""

        try:
            async with self._session_factory() as session:
                result = await session.execute(select(func.count()).select_from(cves_table))
                return int(result.scalar_one())
        except SQLAlchemyError as exc:
            raise StoreAccessError("failed to count CVE records") from exc
