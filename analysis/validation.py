"""Normalization of free-form enrichment output.

Two tiers:
- numbers: coerce to int, clamp into [0, 100], default when not numeric
- labels: case-fold exact match, then synonym table, then field default
"""

from __future__ import annotations

import math
import re
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Type

from analysis.models.enums import (
    CATEGORY_SYNONYMS,
    LABEL_FIELDS,
    MAX_CATEGORIES,
    SCORE_DEFAULTS,
    ArticleCategory,
)

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")
_LOOSE_LABEL_RE = re.compile(r"[\s_]+")


def clamp_score(value: Any, default: int) -> int:
    """Return `value` as an int in [0, 100]; `default` when it is not numeric."""
    if isinstance(value, bool):
        return default
    if isinstance(value, str):
        value = value.strip().rstrip("%")
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    if number < 0:
        return 0
    if number > 100:
        return 100
    return int(round(number))


def _fold(value: str) -> str:
    return _LOOSE_LABEL_RE.sub(" ", value.strip().lower())


def normalize_label(
    value: Any,
    enum_cls: Type[Enum],
    synonyms: Mapping[str, Enum],
    default: Enum,
) -> str:
    if not isinstance(value, str) or not value.strip():
        return default.value
    folded = _fold(value)
    for member in enum_cls:
        if _fold(member.value) == folded:
            return member.value
    match = synonyms.get(folded)
    if match is not None:
        return match.value
    # "Generation Z (1997-2012)" and similar decorated answers
    stripped = _fold(re.sub(r"\(.*?\)", "", value))
    for member in enum_cls:
        if _fold(member.value) == stripped:
            return member.value
    match = synonyms.get(stripped)
    return match.value if match is not None else default.value


def normalize_category(value: Any) -> Optional[ArticleCategory]:
    if not isinstance(value, str) or not value.strip():
        return None
    folded = _fold(value)
    try:
        return ArticleCategory(folded)
    except ValueError:
        return CATEGORY_SYNONYMS.get(folded)


def normalize_categories(values: Optional[Iterable[Any]], *, fallback: bool = True) -> List[str]:
    """Map raw labels onto the closed category set (unique, at most three).

    Unknown labels are dropped; an empty result becomes ``["other"]`` unless
    ``fallback`` is False.
    """
    result: List[str] = []
    if isinstance(values, str):
        values = [values]
    for raw in values or []:
        category = normalize_category(raw)
        if category is None or category.value in result:
            continue
        result.append(category.value)
        if len(result) >= MAX_CATEGORIES:
            break
    if not result and fallback:
        return [ArticleCategory.OTHER.value]
    return result


def _snake(key: str) -> str:
    return _CAMEL_RE.sub("_", key).lower()


def normalize_metrics(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Return normalized metrics (snake_case keys) from a raw payload.

    Accepts camelCase or snake_case keys. Only keys present in the payload are
    returned, so callers can merge the result over prior values.
    """
    raw: Dict[str, Any] = {_snake(str(k)): v for k, v in payload.items()}
    metrics: Dict[str, Any] = {}
    for field, default in SCORE_DEFAULTS.items():
        if field in raw:
            metrics[field] = clamp_score(raw[field], default)
    for field, (enum_cls, synonyms, default) in LABEL_FIELDS.items():
        if field in raw:
            metrics[field] = normalize_label(raw[field], enum_cls, synonyms, default)
    return metrics


def complete_metrics(partial: Mapping[str, Any]) -> Dict[str, Any]:
    """Fill fields missing from `partial` with their defaults."""
    metrics: Dict[str, Any] = dict(SCORE_DEFAULTS)
    metrics.update({field: entry[2].value for field, entry in LABEL_FIELDS.items()})
    metrics.update(partial)
    return metrics
