"""조회 필터 평가기(Read query filter evaluation).

Raw query strings are parsed into a ``CVEFilter`` and turned into a tuple of
named constraints. The constraints are plain data: the repository renders
them as a SQL ``WHERE`` conjunction and ``apply_constraints`` evaluates them
in memory.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Iterable, List, Optional, Tuple

from common_lib.errors import InvalidFilterError

from .models import CVERecord

_YEAR_PATTERN = re.compile(r"^\d{4}$")


class FilterField(str, Enum):
    CVE_ID = "cve_id"
    SCORE = "score"
    LAST_MODIFIED = "last_modified"


class Operator(str, Enum):
    EQ = "eq"
    PREFIX = "prefix"
    GTE = "gte"


@dataclass(frozen=True)
class Constraint:
    """단일 조건(One named predicate on a record field)."""

    field: FilterField
    operator: Operator
    value: Any

    def matches(self, record: CVERecord) -> bool:
        actual = getattr(record, self.field.value)
        if actual is None:
            return False
        if self.operator is Operator.EQ:
            return actual == self.value
        if self.operator is Operator.PREFIX:
            return str(actual).startswith(self.value)
        if self.operator is Operator.GTE:
            return actual >= self.value
        raise ValueError(f"Unsupported operator: {self.operator}")


@dataclass(frozen=True)
class CVEFilter:
    """조회 필터(Optional read filters; None means no constraint)."""

    cve_id: Optional[str] = None
    year: Optional[str] = None
    min_score: Optional[float] = None
    since_days: Optional[int] = None

    @classmethod
    def from_query(
        cls,
        cve_id: Optional[str] = None,
        year: Optional[str] = None,
        score: Optional[str] = None,
        days: Optional[str] = None,
    ) -> "CVEFilter":
        """쿼리 문자열 파싱(Parse raw query parameters).

        Empty strings count as absent. Malformed numbers raise
        ``InvalidFilterError``.
        """

        return cls(
            cve_id=_blank_to_none(cve_id),
            year=_parse_year(_blank_to_none(year)),
            min_score=_parse_score(_blank_to_none(score)),
            since_days=_parse_days(_blank_to_none(days)),
        )

    def is_empty(self) -> bool:
        return self.cve_id is None and self.year is None and self.min_score is None and self.since_days is None


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _parse_year(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    if not _YEAR_PATTERN.match(value):
        raise InvalidFilterError("year", value, "expected a 4-digit year")
    return value


def _parse_score(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        score = float(value)
    except ValueError:
        raise InvalidFilterError("score", value, "expected a number") from None
    if not math.isfinite(score):
        raise InvalidFilterError("score", value, "expected a finite number")
    return score


def _parse_days(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        days = int(value)
    except ValueError:
        raise InvalidFilterError("days", value, "expected an integer") from None
    if days < 0:
        raise InvalidFilterError("days", value, "expected a non-negative integer")
    return days


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def build_constraints(filters: CVEFilter, today: Optional[date] = None) -> Tuple[Constraint, ...]:
    """필터를 조건 결합으로 변환(Build the AND-conjunction for a filter set).

    ``year`` and ``since_days`` both constrain ``last_modified``; given
    together they intersect.
    """

    constraints: List[Constraint] = []
    if filters.cve_id is not None:
        constraints.append(Constraint(FilterField.CVE_ID, Operator.EQ, filters.cve_id))
    if filters.year is not None:
        constraints.append(Constraint(FilterField.LAST_MODIFIED, Operator.PREFIX, f"{filters.year}-"))
    if filters.min_score is not None:
        constraints.append(Constraint(FilterField.SCORE, Operator.GTE, filters.min_score))
    if filters.since_days is not None:
        base = today or utc_today()
        # windows reaching past the earliest representable date match everything
        if filters.since_days > (base - date.min).days:
            cutoff = date.min
        else:
            cutoff = base - timedelta(days=filters.since_days)
        constraints.append(Constraint(FilterField.LAST_MODIFIED, Operator.GTE, cutoff.isoformat()))
    return tuple(constraints)


def apply_constraints(records: Iterable[CVERecord], constraints: Iterable[Constraint]) -> List[CVERecord]:
    """메모리 내 조건 적용(Filter records in memory, preserving order)."""

    constraints = tuple(constraints)
    return [record for record in records if all(c.matches(record) for c in constraints)]
