"""CVE 미러 데이터 모델(CVE mirror data models).

Upstream NVD payloads are parsed into models whose fields are all optional.
A field that is present but malformed falls back to its default instead of
failing the whole item, so normalization never raises on bad upstream data.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, List, Optional, get_origin

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, ValidationInfo, field_validator


def _reject_bool(value: Any) -> Any:
    if isinstance(value, bool):
        raise ValueError("boolean is not a score")
    return value


Score = Annotated[float, BeforeValidator(_reject_bool)]


def _keep_valid_entries(items: List[Any], handler: Any) -> List[Any]:
    kept: List[Any] = []
    for item in items:
        try:
            kept.extend(handler([item]))
        except ValidationError:
            continue
    return kept


class _LenientModel(BaseModel):
    """잘못된 필드를 기본값으로 대체하는 모델(Model degrading malformed fields to defaults).

    For list fields only the malformed entries are dropped; the rest keep
    their order.
    """

    model_config = ConfigDict(extra="ignore")

    @field_validator("*", mode="wrap")
    @classmethod
    def degrade_malformed(cls, value: Any, handler: Any, info: ValidationInfo) -> Any:
        try:
            return handler(value)
        except ValidationError:
            field = cls.model_fields[info.field_name]
            if isinstance(value, list) and get_origin(field.annotation) is list:
                return _keep_valid_entries(value, handler)
            return field.get_default(call_default_factory=True)


class NvdCvssData(_LenientModel):
    baseScore: Optional[Score] = None


class NvdMetric(_LenientModel):
    cvssData: Optional[NvdCvssData] = None


class NvdMetrics(_LenientModel):
    """NVD 심각도 지표(NVD severity metrics), newest CVSS version first."""

    cvssMetricV40: List[NvdMetric] = Field(default_factory=list)
    cvssMetricV31: List[NvdMetric] = Field(default_factory=list)
    cvssMetricV30: List[NvdMetric] = Field(default_factory=list)
    cvssMetricV2: List[NvdMetric] = Field(default_factory=list)

    def sources(self) -> List[List[NvdMetric]]:
        return [self.cvssMetricV40, self.cvssMetricV31, self.cvssMetricV30, self.cvssMetricV2]


class NvdDescription(_LenientModel):
    lang: Optional[str] = None
    value: Optional[str] = None


class NvdCve(_LenientModel):
    id: Optional[str] = None
    descriptions: List[NvdDescription] = Field(default_factory=list)
    metrics: NvdMetrics = Field(default_factory=NvdMetrics)
    lastModified: Optional[str] = None


class NvdVulnerability(_LenientModel):
    """NVD 피드 항목(One entry of the feed's ``vulnerabilities`` list)."""

    cve: Optional[NvdCve] = None


class CVERecord(BaseModel):
    """CVE 레코드 모델(Canonical stored CVE record).

    Fields:
        cve_id: Business key (e.g. "CVE-2024-1234"), unique in the store.
        description: First upstream description, "" when none.
        score: First available CVSS base score (0.0-10.0), null when none.
        last_modified: Upstream lastModified timestamp, "" when none.
    """

    cve_id: str
    description: str = ""
    score: Optional[float] = None
    last_modified: Optional[str] = ""


@dataclass
class FeedPage:
    """피드 한 페이지(One page of upstream results)."""

    items: List[Any]
    start_index: int
    results_per_page: int
    total_results: Optional[int] = None

    @property
    def item_count(self) -> int:
        return len(self.items)


class SyncState(str, Enum):
    """동기화 상태(Sync controller state)."""

    IDLE = "idle"
    FETCHING_PAGE = "fetching_page"
    UPSERTING = "upserting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class SyncReport:
    """동기화 실행 결과(Outcome of one sync run)."""

    started_at: datetime
    state: SyncState = SyncState.IDLE
    finished_at: Optional[datetime] = None
    pages_fetched: int = 0
    items_seen: int = 0
    upserted: int = 0
    skipped: int = 0
    failed: int = 0
    next_offset: int = 0
    total_results: Optional[int] = None
    truncated: bool = False
    error: Optional[str] = None
    run_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "state": self.state.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "pages_fetched": self.pages_fetched,
            "items_seen": self.items_seen,
            "upserted": self.upserted,
            "skipped": self.skipped,
            "failed": self.failed,
            "next_offset": self.next_offset,
            "total_results": self.total_results,
            "truncated": self.truncated,
            "error": self.error,
        }


class SyncStatus(BaseModel):
    """동기화 상태 응답(Sync status response)."""

    state: SyncState
    running: bool
    last_report: Optional[dict[str, Any]] = None
