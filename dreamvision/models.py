"""Pydantic schemas shared by the core, the service and the HTTP layer."""

from __future__ import annotations

import datetime as _dt
from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

ZodiacSign = Literal[
    "Aries",
    "Taurus",
    "Gemini",
    "Cancer",
    "Leo",
    "Virgo",
    "Libra",
    "Scorpio",
    "Sagittarius",
    "Capricorn",
    "Aquarius",
    "Pisces",
]
Sex = Literal["male", "female", "other"]


class PlanTier(str, Enum):
    trial = "trial"
    premium = "premium"


def _new_id() -> str:
    return uuid4().hex


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def sanitize_text(value: str) -> str:
    """Trim and drop angle brackets from user-supplied free text."""
    return value.strip().replace("<", "").replace(">", "")


def normalize_tags(tags: list[str]) -> list[str]:
    cleaned = [sanitize_text(str(tag)) for tag in tags]
    return list(dict.fromkeys(tag for tag in cleaned if tag))


# ------------------------------------------------------------------------------
# Core records
# ------------------------------------------------------------------------------
class UserProfile(BaseModel):
    user_id: str = Field(default_factory=_new_id)
    name: str = Field(..., min_length=1)
    surname: str = Field(..., min_length=1)
    email: Optional[str] = None
    age: int = Field(..., ge=1, le=120)
    sex: Sex
    zodiac_sign: ZodiacSign
    plan_tier: PlanTier = PlanTier.trial
    interpretations_used: int = Field(0, ge=0)
    interpretations_allowed: int = Field(3, ge=0)
    join_date: _dt.date = Field(default_factory=lambda: _utc_now().date())

    @property
    def is_premium(self) -> bool:
        return self.plan_tier == PlanTier.premium

    @model_validator(mode="after")
    def validate_counters(self) -> "UserProfile":
        if not self.is_premium and self.interpretations_used > self.interpretations_allowed:
            raise ValueError("interpretations_used must not exceed interpretations_allowed on the trial tier.")
        return self


class SymbolInterpretation(BaseModel):
    model_config = ConfigDict(frozen=True)

    symbol: str
    meaning: str
    personal_relevance: str = Field(
        ...,
        validation_alias=AliasChoices("personal_relevance", "personalRelevance"),
    )


class Interpretation(BaseModel):
    """Structured reading of one dream; both the remote and local paths produce this shape."""

    model_config = ConfigDict(frozen=True)

    overview: str = Field(..., min_length=1)
    symbols: list[SymbolInterpretation] = Field(default_factory=list)
    themes: list[str] = Field(default_factory=list)
    emotions: list[str] = Field(default_factory=list)
    personalized_insights: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("personalized_insights", "personalizedInsights"),
    )
    horoscope_connection: str = Field(
        ...,
        validation_alias=AliasChoices("horoscope_connection", "horoscopeConnection"),
    )
    recurring_patterns: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("recurring_patterns", "recurringPatterns"),
    )
    psychological_meaning: str = Field(
        ...,
        validation_alias=AliasChoices("psychological_meaning", "psychologicalMeaning"),
    )


class DreamEntry(BaseModel):
    dream_id: str = Field(default_factory=_new_id)
    user_id: str
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    date: _dt.date
    mood: int = Field(..., ge=1, le=5)
    lucidity: int = Field(..., ge=1, le=5)
    tags: list[str] = Field(default_factory=list)
    symbols: list[str] = Field(default_factory=list)
    themes: list[str] = Field(default_factory=list)
    interpretation: Optional[Interpretation] = None
    visualization_url: Optional[str] = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    def with_interpretation(self, interpretation: Interpretation) -> "DreamEntry":
        """Attach ``interpretation`` and overwrite the extracted symbol/theme sets from it."""
        return self.model_copy(
            update={
                "interpretation": interpretation,
                "symbols": [item.symbol for item in interpretation.symbols],
                "themes": list(interpretation.themes),
                "updated_at": _utc_now(),
            }
        )


class AggregateStats(BaseModel):
    total_entries: int = 0
    average_mood: float = 0.0
    average_lucidity: float = 0.0
    top_themes: list[str] = Field(default_factory=list)
    top_symbols: list[str] = Field(default_factory=list)
    monthly_histogram: list[int] = Field(default_factory=lambda: [0] * 12)
    streak: int = 0


# ------------------------------------------------------------------------------
# Request payloads
# ------------------------------------------------------------------------------
class _TextPayload(BaseModel):
    @field_validator("title", "content", "name", "surname", mode="before", check_fields=False)
    @classmethod
    def _sanitize(cls, value):
        if isinstance(value, str):
            return sanitize_text(value)
        return value


class RegisterUserRequest(_TextPayload):
    name: str = Field(..., min_length=1)
    surname: str = Field(..., min_length=1)
    email: Optional[str] = Field(None, pattern=r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
    age: int = Field(..., ge=1, le=120)
    sex: Sex
    zodiac_sign: ZodiacSign = Field(..., validation_alias=AliasChoices("zodiac_sign", "horoscope"))


class UpdateProfileRequest(RegisterUserRequest):
    pass


class DreamPayload(_TextPayload):
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    date: Optional[_dt.date] = Field(None, description="Occurrence date; defaults to today")
    mood: int = Field(..., ge=1, le=5)
    lucidity: int = Field(..., ge=1, le=5)
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, value: list[str]) -> list[str]:
        return normalize_tags(value)


class CreateDreamRequest(DreamPayload):
    request_interpretation: bool = Field(
        False,
        validation_alias=AliasChoices("request_interpretation", "requestAnalysis"),
    )


class VisualizationRequest(BaseModel):
    style: str = Field("dreamy", min_length=1, max_length=40)
