"""Configuration models for the ingestion service."""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any, List, Literal, Optional, Set, Tuple

from pydantic import (
    BaseModel,
    Field,
    NonNegativeFloat,
    PositiveFloat,
    PositiveInt,
    SecretStr,
    ValidationError,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_RSS_FEEDS: List[str] = [
    "http://rss.cnn.com/rss/cnn_topstories.rss",
    "http://feeds.bbci.co.uk/news/rss.xml",
    "http://feeds.reuters.com/reuters/topNews",
]


class CollectionSchedule(BaseModel):
    """Represents a periodic headline collection job configuration."""

    country: str = Field(..., description="수집 대상 국가 코드 (소문자, 예: us).")
    category: Optional[str] = Field(None, description="NewsData 카테고리 (예: technology).")
    interval_minutes: PositiveInt = Field(..., description="수집 주기 (분 단위).")
    enabled: bool = Field(True, description="스케줄 사용 여부.")

    @field_validator("country")
    @classmethod
    def _country_to_lower(cls, value: str) -> str:
        country = value.strip().lower()
        if not country:
            raise ValueError("country는 공백일 수 없습니다.")
        return country

    @field_validator("category")
    @classmethod
    def _normalize_category(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        category = value.strip().lower()
        return category or None


class Settings(BaseSettings):
    """Ingestion용 환경 설정."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    redis_url: str = Field(
        "redis://localhost:6379/0",
        alias="INGESTION_REDIS_URL",
        description="Celery 브로커/백엔드 및 공유 중복 캐시 Redis DSN.",
    )

    newsdata_api_key: Optional[SecretStr] = Field(None, alias="NEWSDATA_API_KEY", description="NewsData.io 인증 키.")
    newsdata_endpoint: str = Field(
        "https://newsdata.io/api/1/news",
        alias="NEWSDATA_ENDPOINT",
        description="NewsData.io 엔드포인트",
    )
    newsdata_timeout_seconds: PositiveFloat = Field(10.0, alias="NEWSDATA_TIMEOUT_SECONDS", description="NewsData 타임아웃(초)")
    newsdata_max_retries: PositiveInt = Field(2, alias="NEWSDATA_MAX_RETRIES", description="NewsData 최대 시도 횟수")
    newsdata_page_size: PositiveInt = Field(5, alias="NEWSDATA_PAGE_SIZE", description="NewsData 페이지 크기(≤50)")
    newsdata_language: str = Field("en", alias="NEWSDATA_LANGUAGE", description="NewsData 언어 필터")
    default_country: str = Field("us", alias="DEFAULT_COUNTRY", description="기본 헤드라인 국가 코드")

    rss_feeds: List[str] = Field(
        default_factory=lambda: list(DEFAULT_RSS_FEEDS),
        alias="RSS_FEEDS",
        description="JSON 배열 형태의 RSS 피드 URL 목록.",
    )
    rss_items_per_feed: PositiveInt = Field(5, alias="RSS_ITEMS_PER_FEED", description="피드당 최대 수집 기사 수")

    blob_backend: Literal["memory", "http"] = Field("memory", alias="BLOB_BACKEND", description="Blob 저장소 구현체.")
    blob_api_url: str = Field(
        "https://blob.vercel-storage.com",
        alias="BLOB_API_URL",
        description="Blob REST API 베이스 URL.",
    )
    blob_read_write_token: Optional[SecretStr] = Field(
        None, alias="BLOB_READ_WRITE_TOKEN", description="Blob 저장소 읽기/쓰기 토큰."
    )
    blob_request_timeout_seconds: PositiveFloat = Field(
        5.0, alias="BLOB_REQUEST_TIMEOUT_SECONDS", description="Blob 요청당 타임아웃(초)"
    )
    blob_request_delay_seconds: NonNegativeFloat = Field(
        0.5, alias="BLOB_REQUEST_DELAY_SECONDS", description="순차 Blob 요청 사이 지연(초)"
    )
    blob_list_max_entries: PositiveInt = Field(50, alias="BLOB_LIST_MAX_ENTRIES", description="목록 조회 시 최대 항목 수")
    blob_scan_page_size: PositiveInt = Field(100, alias="BLOB_SCAN_PAGE_SIZE", description="중복 스캔 페이지 크기")
    blob_scan_max_pages: PositiveInt = Field(5, alias="BLOB_SCAN_MAX_PAGES", description="중복 스캔 최대 페이지 수")

    article_ttl_minutes: PositiveInt = Field(60, alias="ARTICLE_TTL_MINUTES", description="기사 보관 TTL(분)")
    enrichment_delay_seconds: NonNegativeFloat = Field(
        1.0, alias="ENRICHMENT_DELAY_SECONDS", description="AI 분석 호출 전 지연(초)"
    )

    dedup_backend: Literal["memory", "redis"] = Field("memory", alias="DEDUP_BACKEND", description="중복 추적 저장소.")
    dedup_redis_ttl_seconds: PositiveInt = Field(86_400, alias="DEDUP_REDIS_TTL_SECONDS", description="중복 캐시 TTL.")

    structlog_level: str = Field("INFO", alias="STRUCTLOG_LEVEL", description="구조화 로그 레벨.")
    log_json: bool = Field(False, alias="LOG_JSON", description="로그를 JSON 형식으로 출력할지 여부.")
    collection_schedules: List[CollectionSchedule] = Field(
        default_factory=list,
        alias="COLLECTION_SCHEDULES",
        description="JSON 배열 혹은 객체 리스트 형태의 수집 스케줄.",
    )
    cleanup_interval_minutes: PositiveInt = Field(
        30, alias="CLEANUP_INTERVAL_MINUTES", description="만료 기사 정리 주기(분)."
    )
    celery_worker_concurrency: PositiveInt = Field(
        4,
        alias="CELERY_WORKER_CONCURRENCY",
        description="Celery 워커 동시 실행 수.",
    )
    celery_task_soft_time_limit: PositiveInt = Field(
        300,
        alias="CELERY_TASK_SOFT_TIME_LIMIT",
        description="Celery 태스크 소프트 타임아웃 (초).",
    )

    @property
    def article_ttl_seconds(self) -> float:
        return float(self.article_ttl_minutes * 60)

    @field_validator("collection_schedules", "rss_feeds", mode="before")
    @classmethod
    def _parse_json_list(cls, value: Any) -> List[Any]:
        if value in (None, "", []):
            return []
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
            except json.JSONDecodeError as exc:
                raise ValueError("JSON 배열 형식이어야 합니다.") from exc
            if not isinstance(parsed, list):
                raise ValueError("JSON 배열 형식이어야 합니다.")
            return parsed
        if isinstance(value, list):
            return value
        raise ValueError("리스트 형태여야 합니다.")

    @field_validator("collection_schedules")
    @classmethod
    def _validate_unique_schedule(cls, value: List[CollectionSchedule]) -> List[CollectionSchedule]:
        seen: Set[Tuple[str, Optional[str]]] = set()
        for schedule in value:
            key = (schedule.country, schedule.category)
            if key in seen:
                raise ValueError(f"중복된 스케줄 항목이 존재합니다: {schedule.country}/{schedule.category or '*'}")
            seen.add(key)
        return value

    @field_validator("blob_api_url")
    @classmethod
    def _validate_blob_api_url(cls, value: str) -> str:
        if "://" not in value:
            raise ValueError("BLOB_API_URL은 유효한 URL이어야 합니다.")
        return value.rstrip("/")

    @field_validator("newsdata_page_size")
    @classmethod
    def _validate_page_size(cls, v: int) -> int:
        if v > 50:
            raise ValueError("NEWSDATA_PAGE_SIZE는 50 이하여야 합니다.")
        return v

    @field_validator("default_country")
    @classmethod
    def _lower_country(cls, value: str) -> str:
        return value.strip().lower() or "us"


@lru_cache()
def get_settings() -> Settings:
    """환경 변수를 기준으로 Settings 인스턴스를 반환한다."""
    try:
        return Settings()
    except ValidationError as exc:
        raise RuntimeError(f"환경 변수 검증에 실패했습니다: {exc}") from exc


def reset_settings_cache() -> None:
    """Settings LRU 캐시를 초기화한다 (테스트 용도)."""
    get_settings.cache_clear()  # type: ignore[attr-defined]
