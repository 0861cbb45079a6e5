"""DTO/스키마: 분석 입력/출력 정의.

Pydantic v2 기반의 명확한 스키마로 LLM 입/출력을 정규화한다.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from analysis.models.enums import LABEL_FIELDS, SCORE_DEFAULTS
from analysis.validation import complete_metrics, normalize_categories


class ArticleMetrics(BaseModel):
    """Editorial metrics attached to an article.

    Scores are ints in [0, 100]. Labels come from the closed enumerations in
    `analysis.models.enums`; the pending placeholder keeps them empty.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    clickbait_score: int = Field(0, ge=0, le=100)
    bias_score: int = Field(0, ge=0, le=100)
    sentiment_score: int = Field(0, ge=0, le=100)
    readability_score: int = Field(0, ge=0, le=100)
    engagement_score: int = Field(0, ge=0, le=100)
    target_generation: str = ""
    political_leaning: str = ""
    sentiment_tone: str = ""
    reading_level: str = ""
    emotional_tone: str = ""

    @classmethod
    def pending(cls) -> "ArticleMetrics":
        return cls()

    @property
    def is_populated(self) -> bool:
        if any(getattr(self, name) for name in SCORE_DEFAULTS):
            return True
        return any(getattr(self, name) for name in LABEL_FIELDS)

    def merged(self, update: Mapping[str, Any]) -> "ArticleMetrics":
        """Overlay `update` on these metrics.

        Fields absent from `update` keep their current value, zero scores
        included. An unpopulated placeholder contributes nothing, so its
        fields fall back to the defaults.
        """
        current = self.model_dump() if self.is_populated else {}
        return ArticleMetrics(**complete_metrics({**current, **dict(update)}))


class EnrichmentInput(BaseModel):
    """LLM 분석 입력: 단일 기사."""

    title: str = Field(..., max_length=1024)
    content: str = Field("")
    max_chars: int = Field(6000, ge=500, le=100_000, description="LLM 입력으로 사용할 최대 문자 수")

    @field_validator("title")
    @classmethod
    def _strip_title(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("빈 제목은 허용되지 않습니다.")
        return s

    @field_validator("content")
    @classmethod
    def _strip_content(cls, v: str) -> str:
        return (v or "").strip()


class EnrichmentResult(BaseModel):
    """LLM 분석 결과 표준 스키마."""

    metrics: Dict[str, Any] = Field(default_factory=dict, description="검증된 지표(응답에 존재한 필드만)")
    summary: str = ""
    ai_summary: str = ""
    categories: List[str] = Field(default_factory=lambda: ["other"])
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # LLM 메타
    llm_model: str
    llm_tokens_prompt: int = Field(..., ge=0)
    llm_tokens_completion: int = Field(..., ge=0)
    llm_cost: float = Field(..., ge=0.0)

    @field_validator("summary", "ai_summary", mode="before")
    @classmethod
    def _text_or_empty(cls, v: Any) -> str:
        return v.strip() if isinstance(v, str) else ""

    @field_validator("categories", mode="before")
    @classmethod
    def _categories_cleanup(cls, v: Any) -> List[str]:
        return normalize_categories(v)
