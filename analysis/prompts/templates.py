"""프롬프트 템플릿/빌더.

LLM에게 구조화(JSON) 출력을 요청하는 시스템/유저 메시지를 생성한다.
기사 본문은 max_chars를 초과하지 않도록 잘라낸다.
"""

from __future__ import annotations

from typing import List

from analysis.models.domain import EnrichmentInput
from analysis.models.enums import (
    ArticleCategory,
    EmotionalTone,
    PoliticalLeaning,
    ReadingLevel,
    SentimentTone,
    TargetGeneration,
)


def _choices(enum_cls) -> str:
    return " | ".join(f'"{member.value}"' for member in enum_cls)


JSON_SCHEMA_SNIPPET = (
    "{"
    '"clickbaitScore": integer (0..100), '
    '"biasScore": integer (0..100), '
    '"sentimentScore": integer (0..100), '
    '"readabilityScore": integer (0..100), '
    '"engagementScore": integer (0..100), '
    f'"targetGeneration": {_choices(TargetGeneration)}, '
    f'"politicalLeaning": {_choices(PoliticalLeaning)}, '
    f'"sentimentTone": {_choices(SentimentTone)}, '
    f'"readingLevel": {_choices(ReadingLevel)}, '
    f'"emotionalTone": {_choices(EmotionalTone)}, '
    '"summary": string (<=300 chars), '
    '"aiSummary": string (<=500 chars), '
    f'"categories": array<{_choices(ArticleCategory)}> (1-3 unique)'
    "}"
)


def trim_content(content: str, max_chars: int) -> str:
    """Cut `content` at a word boundary so it fits in `max_chars`."""
    text = content.strip()
    if len(text) <= max_chars:
        return text
    cut = text[:max_chars]
    space = cut.rfind(" ")
    if space > max_chars // 2:
        cut = cut[:space]
    return cut.rstrip() + " …"


def build_enrichment_messages(inp: EnrichmentInput) -> List[dict]:
    """Build chat messages instructing the model to produce the metrics JSON.

    - System: role, scoring rules, JSON schema
    - User: title and trimmed content
    """
    system = (
        "Role: you are an editorial analyst who rates news articles for a media-literacy dashboard.\n"
        "Output: JSON ONLY (no prose, no code fences). Schema: "
        f"{JSON_SCHEMA_SNIPPET}.\n\n"
        "Rules:\n"
        "1) clickbaitScore: how sensational or misleading the headline/content is.\n"
        "2) biasScore: strength of political or ideological bias.\n"
        "3) sentimentScore: 0 very negative, 50 neutral, 100 very positive.\n"
        "4) readabilityScore: how easy the article is to read.\n"
        "5) engagementScore: how likely readers are to share or react.\n"
        "6) Labels must be chosen from the listed values exactly.\n"
        "7) summary: one neutral sentence. aiSummary: a factual paragraph; do not invent facts.\n"
        "8) categories: 1-3 values from the listed set; use \"other\" when nothing fits.\n"
    )
    content = trim_content(inp.content, inp.max_chars) if inp.content else "(no body text available)"
    user = "\n".join(
        [
            "[Instructions] Analyze the article below and return the JSON object only.",
            f"Title: {inp.title}",
            "Content:",
            content,
        ]
    )
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": user},
    ]
