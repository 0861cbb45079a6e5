from __future__ import annotations

import pytest

from analysis.models.enums import POLITICAL_LEANING_SYNONYMS, PoliticalLeaning
from analysis.validation import (
    clamp_score,
    complete_metrics,
    normalize_categories,
    normalize_label,
    normalize_metrics,
)

PL = PoliticalLeaning


@pytest.mark.parametrize(
    "value,expected",
    [(150, 100), (-3, 0), (42.6, 43), ("77", 77), ("85%", 85), ("abc", 50), (None, 50), (True, 50), (float("nan"), 50)],
)
def test_clamp_score(value, expected):
    assert clamp_score(value, 50) == expected


def test_normalize_label_matches_case_insensitively_then_synonyms():
    assert normalize_label("center-LEFT", PoliticalLeaning, POLITICAL_LEANING_SYNONYMS, PL.NEUTRAL) == "Center-left"
    assert normalize_label("conservative", PoliticalLeaning, POLITICAL_LEANING_SYNONYMS, PL.NEUTRAL) == "Right"
    assert normalize_label("???", PoliticalLeaning, POLITICAL_LEANING_SYNONYMS, PL.NEUTRAL) == "Neutral"
    assert normalize_label(7, PoliticalLeaning, POLITICAL_LEANING_SYNONYMS, PL.NEUTRAL) == "Neutral"


def test_normalize_metrics_accepts_camel_and_snake_keys():
    metrics = normalize_metrics(
        {
            "clickbaitScore": "12",
            "bias_score": 130,
            "targetGeneration": "Generation Z (1997-2012)",
            "readingLevel": "university",
            "emotionalTone": "surprise",
            "unrelated": "ignored",
        }
    )
    assert metrics == {
        "clickbait_score": 12,
        "bias_score": 100,
        "target_generation": "Generation Z",
        "reading_level": "College",
        "emotional_tone": "Amazement",
    }


def test_complete_metrics_fills_every_field():
    full = complete_metrics({"clickbait_score": 5})
    assert full["clickbait_score"] == 5
    assert full["readability_score"] == 70
    assert full["sentiment_tone"] == "Neutral"
    assert len(full) == 10


def test_normalize_categories_is_closed_unique_and_capped():
    assert normalize_categories(["Sports", "sport", "finance", "Climate", "music"]) == ["sport", "economy", "environment"]
    assert normalize_categories(["astrology"]) == ["other"]
    assert normalize_categories(["astrology"], fallback=False) == []
    assert normalize_categories("tech") == ["technology"]
    assert normalize_categories(None) == ["other"]
