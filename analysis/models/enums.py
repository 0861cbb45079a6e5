"""Closed label sets for enrichment output and their synonym tables.

The enrichment model answers in free-form text, so every label is matched
case-insensitively against its enumeration first, then looked up in the
synonym table, and only then replaced by the field default.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Mapping, Type


class ArticleCategory(str, Enum):
    SPORT = "sport"
    ECONOMY = "economy"
    POLITICS = "politics"
    WAR = "war"
    TECHNOLOGY = "technology"
    RELIGION = "religion"
    WORK = "work"
    TRAVEL = "travel"
    HEALTH = "health"
    ENTERTAINMENT = "entertainment"
    SCIENCE = "science"
    EDUCATION = "education"
    ENVIRONMENT = "environment"
    FASHION = "fashion"
    FOOD = "food"
    LIFESTYLE = "lifestyle"
    OTHER = "other"


class TargetGeneration(str, Enum):
    BABY_BOOMERS = "Baby Boomers"
    GENERATION_X = "Generation X"
    MILLENNIALS = "Millennials"
    GENERATION_Z = "Generation Z"
    GENERATION_ALPHA = "Generation Alpha"


class PoliticalLeaning(str, Enum):
    LEFT = "Left"
    CENTER_LEFT = "Center-left"
    NEUTRAL = "Neutral"
    CENTER_RIGHT = "Center-right"
    RIGHT = "Right"


class SentimentTone(str, Enum):
    POSITIVE = "Positive"
    NEGATIVE = "Negative"
    NEUTRAL = "Neutral"
    ALARMING = "Alarming"
    HOPEFUL = "Hopeful"
    CONCERNED = "Concerned"
    INSPIRING = "Inspiring"


class ReadingLevel(str, Enum):
    ELEMENTARY = "Elementary"
    MIDDLE_SCHOOL = "Middle School"
    HIGH_SCHOOL = "High School"
    COLLEGE = "College"
    GRADUATE = "Graduate"


class EmotionalTone(str, Enum):
    NEUTRAL = "Neutral"
    OPTIMISTIC = "Optimistic"
    FEARFUL = "Fearful"
    ANALYTICAL = "Analytical"
    ANGRY = "Angry"
    SAD = "Sad"
    AMAZEMENT = "Amazement"
    WORRIED = "Worried"
    MOTIVATED = "Motivated"


CATEGORY_SYNONYMS: Dict[str, ArticleCategory] = {
    "sports": ArticleCategory.SPORT,
    "business": ArticleCategory.ECONOMY,
    "economics": ArticleCategory.ECONOMY,
    "finance": ArticleCategory.ECONOMY,
    "markets": ArticleCategory.ECONOMY,
    "conflict": ArticleCategory.WAR,
    "military": ArticleCategory.WAR,
    "tech": ArticleCategory.TECHNOLOGY,
    "faith": ArticleCategory.RELIGION,
    "jobs": ArticleCategory.WORK,
    "career": ArticleCategory.WORK,
    "tourism": ArticleCategory.TRAVEL,
    "medicine": ArticleCategory.HEALTH,
    "healthcare": ArticleCategory.HEALTH,
    "celebrities": ArticleCategory.ENTERTAINMENT,
    "movies": ArticleCategory.ENTERTAINMENT,
    "music": ArticleCategory.ENTERTAINMENT,
    "climate": ArticleCategory.ENVIRONMENT,
    "style": ArticleCategory.FASHION,
    "cooking": ArticleCategory.FOOD,
    "restaurants": ArticleCategory.FOOD,
    "top": ArticleCategory.OTHER,
    "world": ArticleCategory.OTHER,
    "domestic": ArticleCategory.OTHER,
}

TARGET_GENERATION_SYNONYMS: Dict[str, TargetGeneration] = {
    "boomers": TargetGeneration.BABY_BOOMERS,
    "baby boomer": TargetGeneration.BABY_BOOMERS,
    "gen x": TargetGeneration.GENERATION_X,
    "genx": TargetGeneration.GENERATION_X,
    "millennial": TargetGeneration.MILLENNIALS,
    "gen y": TargetGeneration.MILLENNIALS,
    "generation y": TargetGeneration.MILLENNIALS,
    "gen z": TargetGeneration.GENERATION_Z,
    "genz": TargetGeneration.GENERATION_Z,
    "zoomers": TargetGeneration.GENERATION_Z,
    "gen alpha": TargetGeneration.GENERATION_ALPHA,
}

POLITICAL_LEANING_SYNONYMS: Dict[str, PoliticalLeaning] = {
    "left-leaning": PoliticalLeaning.CENTER_LEFT,
    "left leaning": PoliticalLeaning.CENTER_LEFT,
    "center left": PoliticalLeaning.CENTER_LEFT,
    "centre-left": PoliticalLeaning.CENTER_LEFT,
    "liberal": PoliticalLeaning.LEFT,
    "progressive": PoliticalLeaning.LEFT,
    "center": PoliticalLeaning.NEUTRAL,
    "centre": PoliticalLeaning.NEUTRAL,
    "centrist": PoliticalLeaning.NEUTRAL,
    "balanced": PoliticalLeaning.NEUTRAL,
    "none": PoliticalLeaning.NEUTRAL,
    "right-leaning": PoliticalLeaning.CENTER_RIGHT,
    "right leaning": PoliticalLeaning.CENTER_RIGHT,
    "center right": PoliticalLeaning.CENTER_RIGHT,
    "centre-right": PoliticalLeaning.CENTER_RIGHT,
    "conservative": PoliticalLeaning.RIGHT,
}

SENTIMENT_TONE_SYNONYMS: Dict[str, SentimentTone] = {
    "optimistic": SentimentTone.HOPEFUL,
    "upbeat": SentimentTone.POSITIVE,
    "pessimistic": SentimentTone.NEGATIVE,
    "critical": SentimentTone.NEGATIVE,
    "worried": SentimentTone.CONCERNED,
    "cautious": SentimentTone.CONCERNED,
    "alarmist": SentimentTone.ALARMING,
    "sensational": SentimentTone.ALARMING,
    "objective": SentimentTone.NEUTRAL,
    "informative": SentimentTone.NEUTRAL,
    "mixed": SentimentTone.NEUTRAL,
    "uplifting": SentimentTone.INSPIRING,
}

READING_LEVEL_SYNONYMS: Dict[str, ReadingLevel] = {
    "elementary school": ReadingLevel.ELEMENTARY,
    "primary": ReadingLevel.ELEMENTARY,
    "basic": ReadingLevel.ELEMENTARY,
    "middle": ReadingLevel.MIDDLE_SCHOOL,
    "intermediate": ReadingLevel.HIGH_SCHOOL,
    "high": ReadingLevel.HIGH_SCHOOL,
    "secondary": ReadingLevel.HIGH_SCHOOL,
    "university": ReadingLevel.COLLEGE,
    "undergraduate": ReadingLevel.COLLEGE,
    "advanced": ReadingLevel.COLLEGE,
    "postgraduate": ReadingLevel.GRADUATE,
    "expert": ReadingLevel.GRADUATE,
    "professional": ReadingLevel.GRADUATE,
}

EMOTIONAL_TONE_SYNONYMS: Dict[str, EmotionalTone] = {
    "hopeful": EmotionalTone.OPTIMISTIC,
    "positive": EmotionalTone.OPTIMISTIC,
    "fear": EmotionalTone.FEARFUL,
    "anxious": EmotionalTone.WORRIED,
    "concerned": EmotionalTone.WORRIED,
    "concern": EmotionalTone.WORRIED,
    "informative": EmotionalTone.ANALYTICAL,
    "objective": EmotionalTone.ANALYTICAL,
    "outrage": EmotionalTone.ANGRY,
    "anger": EmotionalTone.ANGRY,
    "sadness": EmotionalTone.SAD,
    "somber": EmotionalTone.SAD,
    "surprise": EmotionalTone.AMAZEMENT,
    "awe": EmotionalTone.AMAZEMENT,
    "inspiring": EmotionalTone.MOTIVATED,
    "inspired": EmotionalTone.MOTIVATED,
}


# (enumeration, synonyms, default) per categorical metric field
LABEL_FIELDS: Mapping[str, tuple[Type[Enum], Mapping[str, Enum], Enum]] = {
    "target_generation": (TargetGeneration, TARGET_GENERATION_SYNONYMS, TargetGeneration.MILLENNIALS),
    "political_leaning": (PoliticalLeaning, POLITICAL_LEANING_SYNONYMS, PoliticalLeaning.NEUTRAL),
    "sentiment_tone": (SentimentTone, SENTIMENT_TONE_SYNONYMS, SentimentTone.NEUTRAL),
    "reading_level": (ReadingLevel, READING_LEVEL_SYNONYMS, ReadingLevel.HIGH_SCHOOL),
    "emotional_tone": (EmotionalTone, EMOTIONAL_TONE_SYNONYMS, EmotionalTone.NEUTRAL),
}

SCORE_DEFAULTS: Mapping[str, int] = {
    "clickbait_score": 50,
    "bias_score": 50,
    "sentiment_score": 50,
    "readability_score": 70,
    "engagement_score": 50,
}

MAX_CATEGORIES = 3
