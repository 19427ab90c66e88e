"""관찰성 및 구조화 로깅(Observability and structured logging)."""
from __future__ import annotations

import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

# Request ID of the HTTP request being served; "system" for scheduler/sync work
request_id_ctx: ContextVar[str] = ContextVar("request_id", default="system")
# ID of the sync run the current task belongs to, if any
sync_run_ctx: ContextVar[Optional[str]] = ContextVar("sync_run", default=None)


def get_request_id() -> str:
    """요청 ID 조회(Retrieve the current request ID)."""
    return request_id_ctx.get()


def get_sync_run_id() -> Optional[str]:
    return sync_run_ctx.get()


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """요청/동기화 ID를 포함하는 JSON 포매터(JSON formatter with request and sync run IDs).

    Every line carries ``request_id``. Lines logged while a sync run is
    active also carry ``sync_run`` so one pass over the feed can be followed
    across pages.
    """

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record.pop("asctime", None)
        log_record.setdefault("timestamp", datetime.fromtimestamp(record.created, timezone.utc).isoformat())
        log_record.setdefault("level", record.levelname)
        log_record.setdefault("name", record.name)
        log_record.setdefault("message", record.getMessage())
        log_record["request_id"] = get_request_id()

        sync_run = get_sync_run_id()
        if sync_run is not None:
            log_record["sync_run"] = sync_run
