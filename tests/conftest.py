"""Pytest configuration and shared fixtures."""
import os

# Settings are cached on first use; keep tests offline and unthrottled.
os.environ.setdefault("CVE_SCHEDULER_ENABLED", "false")
os.environ.setdefault("CVE_RATE_LIMIT_ENABLED", "false")

from typing import Any, Dict, Iterable, List, Optional, Union  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from common_lib.db import create_engine, create_session_factory  # noqa: E402
from common_lib.errors import UpsertError  # noqa: E402
from cve_mirror.app.filters import Constraint, apply_constraints  # noqa: E402
from cve_mirror.app.models import CVERecord, FeedPage  # noqa: E402
from cve_mirror.app.repository import CVERepository  # noqa: E402


def build_item(
    cve_id: Optional[str] = "CVE-2024-0001",
    description: Optional[str] = "Sample vulnerability",
    score: Optional[float] = 7.5,
    last_modified: Optional[str] = "2024-01-01T00:00:00.000",
) -> Dict[str, Any]:
    """Build one NVD CVE 2.0 feed item; None omits the field."""
    cve: Dict[str, Any] = {}
    if cve_id is not None:
        cve["id"] = cve_id
    if description is not None:
        cve["descriptions"] = [{"lang": "en", "value": description}]
    if score is not None:
        cve["metrics"] = {"cvssMetricV31": [{"source": "nvd@nist.gov", "cvssData": {"baseScore": score}}]}
    if last_modified is not None:
        cve["lastModified"] = last_modified
    return {"cve": cve}


class FakeFetcher:
    """Serves scripted pages and records every requested offset."""

    def __init__(self, pages: Iterable[Union[List[Any], Exception]]) -> None:
        self._pages = list(pages)
        self.calls: List[tuple] = []

    async def fetch_page(self, offset: int, page_size: int) -> FeedPage:
        self.calls.append((offset, page_size))
        index = len(self.calls) - 1
        page = self._pages[index] if index < len(self._pages) else []
        if isinstance(page, Exception):
            raise page
        return FeedPage(items=page, start_index=offset, results_per_page=page_size, total_results=None)

    @property
    def offsets(self) -> List[int]:
        return [offset for offset, _ in self.calls]


class InMemoryStore:
    """Dict-backed store with insertion-ordered, full-replace upserts."""

    def __init__(self, fail_ids: Iterable[str] = ()) -> None:
        self.records: Dict[str, CVERecord] = {}
        self.fail_ids = set(fail_ids)
        self.upsert_calls = 0

    async def upsert(self, record: CVERecord) -> None:
        self.upsert_calls += 1
        if record.cve_id in self.fail_ids:
            raise UpsertError(record.cve_id, "simulated write failure")
        self.records[record.cve_id] = record.model_copy()

    async def find(self, constraints: Iterable[Constraint] = ()) -> List[CVERecord]:
        return apply_constraints(self.records.values(), constraints)


@pytest.fixture
def make_item():
    """Factory for raw NVD feed items."""
    return build_item


@pytest.fixture
def fake_fetcher():
    """Factory for scripted page fetchers."""
    return FakeFetcher


@pytest.fixture
def memory_store():
    """Empty in-memory store."""
    return InMemoryStore()


@pytest.fixture
def sample_records() -> List[CVERecord]:
    """Fixed record set used by filter and API tests."""
    return [
        CVERecord(cve_id="CVE-2024-0001", description="a", score=9.8, last_modified="2024-01-01T10:00:00.000"),
        CVERecord(cve_id="CVE-2023-0002", description="b", score=5.0, last_modified="2023-05-05T08:30:00.000"),
        CVERecord(cve_id="CVE-2024-0003", description="c", score=None, last_modified="2024-06-15T12:00:00.000"),
        CVERecord(cve_id="CVE-2022-0004", description="d", score=7.5, last_modified="2022-12-31T23:59:59.000"),
        CVERecord(cve_id="CVE-2024-0005", description="e", score=7.4, last_modified=""),
    ]


@pytest_asyncio.fixture
async def repository(tmp_path):
    """SQLite-backed repository on a temporary database file."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'cves.db'}")
    repo = CVERepository(engine, create_session_factory(engine))
    await repo.ensure_schema()
    yield repo
    await engine.dispose()
