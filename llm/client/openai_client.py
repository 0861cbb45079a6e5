"""OpenAI LLM 클라이언트 래퍼.

특징
- 구조화(JSON) 출력 요청 및 응답 텍스트에서 첫 JSON 객체 추출 → 지표 검증
- 재시도/타임아웃/비용 상한(요청당) 적용
- Provider 주입으로 테스트 시 네트워크/실제 의존성 제거
"""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import openai
from openai import AsyncOpenAI

from analysis.models.domain import EnrichmentInput, EnrichmentResult
from analysis.prompts.templates import build_enrichment_messages
from analysis.validation import normalize_metrics
from ingestion.utils.logging import get_logger
from llm.settings import AnalysisSettings, get_analysis_settings

logger = get_logger(__name__)


class LLMError(Exception):
    """LLM 호출 관련 기본 오류."""


class TransientLLMError(LLMError):
    """일시 오류(재시도 대상)."""


class PermanentLLMError(LLMError):
    """영구 오류(재시도 불가)."""


class MissingCredentialsError(PermanentLLMError):
    """OPENAI_API_KEY 미설정."""


class InvalidCredentialsError(PermanentLLMError):
    """API 키 거부(401)."""


class LLMRateLimitError(TransientLLMError):
    """요청 한도 초과(429)."""


class LLMTimeoutError(TransientLLMError):
    """응답 시간 초과."""


ProviderFn = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]


_PRICE_PER_1K_TOKENS_USD: Dict[str, Dict[str, float]] = {
    "gpt-4o-mini": {"prompt": 0.00015, "completion": 0.0006},
    "gpt-4o": {"prompt": 0.0025, "completion": 0.0100},
    "gpt-4.1": {"prompt": 0.0020, "completion": 0.0080},
}

_FENCE_RE = re.compile(r"```(?:json|javascript)?", re.IGNORECASE)

PING_PROMPT = "Analyze this short text: 'Breaking news: Scientists discover revolutionary treatment.'"


def _estimate_cost_usd(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    price = _PRICE_PER_1K_TOKENS_USD.get(model, _PRICE_PER_1K_TOKENS_USD["gpt-4o"])
    return (
        (prompt_tokens / 1000.0) * price["prompt"]
        + (completion_tokens / 1000.0) * price["completion"]
    )


def extract_json_object(text: str) -> Dict[str, Any]:
    """Return the first well-formed JSON object embedded in `text`.

    Handles code fences and leading/trailing prose. Raises PermanentLLMError
    when no object can be decoded.
    """
    cleaned = _FENCE_RE.sub("", text or "").strip()
    decoder = json.JSONDecoder()
    start = cleaned.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(cleaned, start)
        except json.JSONDecodeError:
            start = cleaned.find("{", start + 1)
            continue
        if isinstance(obj, dict):
            return obj
        start = cleaned.find("{", start + 1)
    raise PermanentLLMError("LLM 응답에서 JSON 객체를 추출할 수 없습니다.")


@dataclass(frozen=True)
class OpenAIClient:
    settings: AnalysisSettings
    provider: Optional[ProviderFn] = None

    @classmethod
    def from_env(cls, provider: Optional[ProviderFn] = None) -> "OpenAIClient":
        return cls(get_analysis_settings(), provider=provider)

    def _get_provider(self) -> ProviderFn:
        if self.provider is not None:
            return self.provider
        if self.settings.openai_api_key is None:
            raise MissingCredentialsError(
                "OpenAI API key is missing. Please add OPENAI_API_KEY to your environment variables."
            )
        client = AsyncOpenAI(api_key=self.settings.openai_api_key.get_secret_value(), max_retries=0)

        async def _call(payload: Dict[str, Any]) -> Dict[str, Any]:  # pragma: no cover - 네트워크 미사용
            try:
                resp = await client.chat.completions.create(**payload)
            except openai.AuthenticationError as exc:
                raise InvalidCredentialsError(f"OpenAI 인증 실패: {exc}") from exc
            except openai.RateLimitError as exc:
                raise LLMRateLimitError(f"OpenAI 요청 한도 초과: {exc}") from exc
            except openai.APITimeoutError as exc:
                raise LLMTimeoutError(f"OpenAI 타임아웃: {exc}") from exc
            except (openai.APIConnectionError, openai.InternalServerError) as exc:
                raise TransientLLMError(f"OpenAI 일시 오류: {exc}") from exc
            except openai.APIError as exc:
                raise PermanentLLMError(f"OpenAI 오류: {exc}") from exc
            # 통일된 dict 형태로 변환
            return {
                "choices": [{"message": {"content": resp.choices[0].message.content}}],
                "usage": {
                    "prompt_tokens": getattr(resp.usage, "prompt_tokens", 0),
                    "completion_tokens": getattr(resp.usage, "completion_tokens", 0),
                },
                "model": resp.model,
            }

        return _call

    def _build_payload(self, inp: EnrichmentInput) -> Dict[str, Any]:
        return {
            "model": self.settings.analysis_model,
            "messages": build_enrichment_messages(inp),
            "temperature": float(self.settings.analysis_temperature),
            "max_tokens": int(self.settings.analysis_max_tokens),
            "response_format": {"type": "json_object"},
        }

    async def enrich(self, inp: EnrichmentInput) -> EnrichmentResult:
        payload = self._build_payload(inp)
        provider = self._get_provider()
        timeout = float(self.settings.analysis_request_timeout_seconds)
        max_attempts = int(self.settings.analysis_retry_max_attempts)

        last_exc: Optional[Exception] = None
        for attempt in range(1, max_attempts + 1):
            try:
                resp = await asyncio.wait_for(provider(payload), timeout=timeout)
            except asyncio.TimeoutError:
                last_exc = LLMTimeoutError("LLM 요청 타임아웃 초과")
            except TransientLLMError as exc:
                last_exc = exc
            else:
                return self._parse_response(resp)
            logger.warning(
                "llm.enrich.retry",
                extra={"attempt": attempt, "max_attempts": max_attempts, "error": str(last_exc)},
            )

        assert last_exc is not None
        raise TransientLLMError(f"LLM 호출 재시도 한도 초과: {last_exc}") from last_exc

    async def ping(self) -> str:
        """키 확인용 단일 호출(재시도 없음). 응답 텍스트 앞부분을 돌려준다."""
        provider = self._get_provider()
        payload = {
            "model": self.settings.analysis_model,
            "messages": [{"role": "user", "content": PING_PROMPT}],
            "temperature": 0.3,
            "max_tokens": 100,
        }
        try:
            resp = await asyncio.wait_for(
                provider(payload), timeout=float(self.settings.analysis_request_timeout_seconds)
            )
        except asyncio.TimeoutError as exc:
            raise LLMTimeoutError("LLM 요청 타임아웃 초과") from exc
        choices = resp.get("choices") or [{}]
        text = str((choices[0].get("message") or {}).get("content") or "")
        logger.info("llm.ping.ok", extra={"model": resp.get("model") or self.settings.analysis_model})
        return text[:100]

    def _parse_response(self, resp: Dict[str, Any]) -> EnrichmentResult:
        model = resp.get("model") or self.settings.analysis_model
        usage = resp.get("usage") or {}
        prompt_tokens = int(usage.get("prompt_tokens", 0) or 0)
        completion_tokens = int(usage.get("completion_tokens", 0) or 0)
        cost = _estimate_cost_usd(model, prompt_tokens, completion_tokens)
        if cost > float(self.settings.analysis_cost_limit_usd):
            raise PermanentLLMError("LLM 비용 상한 초과")

        choices = resp.get("choices") or [{}]
        content = (choices[0].get("message") or {}).get("content") or ""
        data = extract_json_object(content)
        metrics = normalize_metrics(data)
        if not metrics:
            raise PermanentLLMError("LLM 응답에 지표 필드가 없습니다.")
        return EnrichmentResult(
            metrics=metrics,
            summary=str(data.get("summary") or "")[:300],
            ai_summary=str(data.get("aiSummary") or data.get("ai_summary") or "")[:1000],
            categories=data.get("categories"),
            llm_model=model,
            llm_tokens_prompt=prompt_tokens,
            llm_tokens_completion=completion_tokens,
            llm_cost=cost,
        )
