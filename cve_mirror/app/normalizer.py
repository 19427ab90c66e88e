"""NVD 항목 정규화(Normalization of NVD feed items)."""
from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any, Optional

from .models import CVERecord, NvdCve, NvdMetrics, NvdVulnerability

MIN_SCORE = 0.0
MAX_SCORE = 10.0


def extract_score(metrics: NvdMetrics) -> Optional[float]:
    """첫 번째 유효 기본 점수(First usable CVSS base score across metric sources)."""

    for source in metrics.sources():
        for metric in source:
            if metric.cvssData is None or metric.cvssData.baseScore is None:
                continue
            score = metric.cvssData.baseScore
            if math.isfinite(score) and MIN_SCORE <= score <= MAX_SCORE:
                return score
    return None


def extract_description(cve: NvdCve) -> str:
    if not cve.descriptions:
        return ""
    return cve.descriptions[0].value or ""


def normalize_item(raw: Any) -> Optional[CVERecord]:
    """NVD 항목을 CVE 레코드로 변환(Map one raw feed item to a record).

    Returns None when the item carries no CVE identifier; the caller counts
    it as skipped.
    """

    if not isinstance(raw, Mapping):
        return None
    cve = NvdVulnerability.model_validate(raw).cve
    if cve is None or not cve.id or not cve.id.strip():
        return None

    return CVERecord(
        cve_id=cve.id.strip(),
        description=extract_description(cve),
        score=extract_score(cve.metrics),
        last_modified=cve.lastModified or "",
    )
