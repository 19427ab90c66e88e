"""NVD 피드 페이지 조회(NVD feed page fetcher)."""
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from common_lib.config import get_settings
from common_lib.errors import TransportError
from common_lib.logger import get_logger

from .models import FeedPage

logger = get_logger(__name__)


class NvdPageFetcher:
    """NVD CVE 2.0 피드 페이지 조회기(Fetches single pages of the NVD CVE 2.0 feed).

    One call to ``fetch_page`` is exactly one HTTP request. Failures are
    raised as ``TransportError`` and never retried here.
    """

    SERVICE_NAME = "NVD"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        settings = get_settings()
        self._base_url = base_url or settings.nvd_api_url
        self._timeout = timeout if timeout is not None else settings.request_timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"Accept": "application/json", "User-Agent": f"{get_settings().app_name}/0.1"},
            )
        return self._client

    async def aclose(self) -> None:
        """소유한 HTTP 클라이언트 종료(Close the owned HTTP client)."""

        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def fetch_page(self, offset: int, page_size: int) -> FeedPage:
        """한 페이지 조회(Fetch one page starting at ``offset``)."""

        if offset < 0:
            raise ValueError(f"offset must be non-negative, got {offset}")
        if page_size < 1:
            raise ValueError(f"page_size must be positive, got {page_size}")

        params = {"resultsPerPage": page_size, "startIndex": offset}
        logger.debug("Requesting NVD page startIndex=%d resultsPerPage=%d", offset, page_size)

        try:
            response = await self._get_client().get(self._base_url, params=params)
        except httpx.TimeoutException as exc:
            raise TransportError(self.SERVICE_NAME, message=f"timeout at startIndex={offset}") from exc
        except httpx.HTTPError as exc:
            raise TransportError(self.SERVICE_NAME, message=str(exc) or type(exc).__name__) from exc

        if response.status_code != 200:
            raise TransportError(
                self.SERVICE_NAME,
                status_code=response.status_code,
                message=f"unexpected response at startIndex={offset}",
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise TransportError(self.SERVICE_NAME, status_code=200, message="response body is not JSON") from exc

        if not isinstance(payload, dict):
            raise TransportError(self.SERVICE_NAME, status_code=200, message="response body is not a JSON object")

        return self._build_page(payload, offset, page_size)

    @staticmethod
    def _build_page(payload: Dict[str, Any], offset: int, page_size: int) -> FeedPage:
        items = payload.get("vulnerabilities")
        if not isinstance(items, list):
            items = []

        total = payload.get("totalResults")
        if isinstance(total, bool) or not isinstance(total, int):
            total = None

        return FeedPage(items=items, start_index=offset, results_per_page=page_size, total_results=total)
