"""공통 설정 모듈(Common configuration module)."""
from __future__ import annotations

import os
import re
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_SYNC_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class Settings(BaseSettings):
    """시스템 환경설정(System environment settings)."""

    model_config = SettingsConfigDict(
        env_prefix="CVE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = Field(default="cve-mirror", description="서비스 이름(Service name)")
    environment: str = Field(default="development", description="실행 환경(Runtime environment)")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./cve_data.db",
        description="데이터베이스 연결 URL(Database connection URL)",
    )
    nvd_api_url: str = Field(
        default="https://services.nvd.nist.gov/rest/json/cves/2.0",
        description="NVD CVE 피드 URL(NVD CVE feed URL)",
    )
    page_size: int = Field(default=100, ge=1, le=2000, description="페이지당 결과 수(Results per page)")
    request_timeout: float = Field(default=30.0, gt=0, description="HTTP 요청 타임아웃(HTTP request timeout in seconds)")
    max_pages: int | None = Field(
        default=None,
        ge=1,
        description="동기화당 최대 페이지 수(Optional safety ceiling on pages per sync run)",
    )

    scheduler_enabled: bool = Field(default=True, description="주기적 동기화 사용 여부(Enable periodic sync)")
    sync_on_startup: bool = Field(default=True, description="시작 시 동기화(Run one sync at startup)")
    sync_time: str = Field(default="00:00", description="일일 동기화 시각 UTC(Daily sync time, UTC HH:MM)")

    rate_limit_enabled: bool = Field(default=True, description="조회 API 속도 제한(Enable read API rate limiting)")
    read_rate_limit: str = Field(default="120/minute", description="클라이언트별 조회 한도(Per-client read limit)")

    host: str = Field(default="0.0.0.0", description="바인드 주소(Bind address)")
    port: int = Field(default=3000, description="바인드 포트(Bind port)")

    log_level: str = Field(default="INFO", description="로그 레벨(Log level)")
    log_json: bool = Field(default=False, description="JSON 로그 출력(Emit JSON log lines)")

    @field_validator("sync_time")
    @classmethod
    def validate_sync_time(cls, v: str) -> str:
        """HH:MM 형식 검증(Validate HH:MM format)."""
        v = v.strip()
        if not _SYNC_TIME_PATTERN.match(v):
            raise ValueError(f"sync_time must be HH:MM (24h), got {v!r}")
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.strip().upper()

    @property
    def sync_hour_minute(self) -> tuple[int, int]:
        hour, minute = self.sync_time.split(":")
        return int(hour), int(minute)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """설정 인스턴스 반환(Return a cached settings instance)."""

    return Settings()


def load_environment() -> None:
    """기본 환경변수를 로드(Load base environment variables)."""

    os.environ.setdefault("TZ", "UTC")
