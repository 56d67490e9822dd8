"""Deterministic interpretation composer.

Turns extracted features plus the dreamer's profile into the narrative fields of
an :class:`Interpretation`. Every sentence comes from a fixed template, so the
same entry and profile always produce the same text.
"""

from __future__ import annotations

from typing import Optional

from dreamvision.feature_extractor import DreamFeatures, extract_features
from dreamvision.lexicon import DEFAULT_EMOTION, DEFAULT_THEME, SYMBOL_MEANINGS, traits_for_sign
from dreamvision.models import DreamEntry, Interpretation, SymbolInterpretation, UserProfile


def _joined_themes(themes) -> str:
    return ", ".join(themes) if themes else DEFAULT_THEME


def _joined_emotions(emotions) -> str:
    return ", ".join(emotions).lower() if emotions else DEFAULT_EMOTION.lower()


def personal_relevance(symbol: str, profile: UserProfile) -> str:
    sign = profile.zodiac_sign
    if symbol == "water" and sign == "Pisces":
        return "As a Pisces, water in your dreams represents your deep emotional nature and intuitive abilities."
    if symbol == "flying" and profile.age < 30:
        return (
            "Flying dreams often represent your desire for freedom and independence "
            "as you navigate life's challenges."
        )
    if symbol == "house" and profile.age > 40:
        return (
            "Houses in dreams often reflect your sense of self and security, "
            "particularly relevant during midlife transitions."
        )
    return f"This symbol resonates with your {sign} nature and current life stage."


def interpret_symbols(symbols, profile: UserProfile) -> list[SymbolInterpretation]:
    return [
        SymbolInterpretation(
            symbol=symbol,
            meaning=SYMBOL_MEANINGS[symbol],
            personal_relevance=personal_relevance(symbol, profile),
        )
        for symbol in symbols
    ]


def personalized_insights(features: DreamFeatures, profile: UserProfile, lucidity: int) -> list[str]:
    insights: list[str] = []
    if "Family & Relationships" in features.themes and profile.zodiac_sign == "Cancer":
        insights.append(
            "Your Cancer sign's deep connection to family is reflected in this dream, "
            "suggesting important familial bonds or concerns."
        )
    if "Fear" in features.emotions and profile.age < 25:
        insights.append(
            "Fear-based dreams are common during periods of transition and growth, "
            "which align with your current life stage."
        )
    if lucidity > 3 and profile.zodiac_sign == "Scorpio":
        insights.append(
            "Your Scorpio intensity may be contributing to increased dream lucidity "
            "and deeper psychological awareness."
        )
    if "Career & Achievement" in features.themes and profile.age > 30:
        insights.append(
            "Career themes in dreams often reflect professional ambitions "
            "and concerns about success and recognition."
        )
    insights.append(f"Your {profile.sex} perspective brings unique insights to the interpretation of these dream symbols.")
    return insights


def horoscope_connection(sign: str, themes) -> str:
    first, second, third, fourth = traits_for_sign(sign)
    return (
        f"As a {sign}, your dreams reflect your natural {first} and {second}. "
        f"The themes of {_joined_themes(themes)} align with your zodiac sign's focus on {third} and {fourth}."
    )


def overview(themes, emotions, sign: str) -> str:
    return (
        "This dream reveals important insights about your subconscious mind. "
        f"The primary themes of {_joined_themes(themes)} suggest you're processing "
        f"{_joined_emotions(emotions)} in your waking life. "
        f"Your {sign} nature influences how you interpret these experiences, "
        "bringing a unique perspective to your dream world."
    )


def psychological_meaning(themes, emotions) -> str:
    primary_theme = themes[0] if themes else DEFAULT_THEME
    primary_emotion = emotions[0] if emotions else DEFAULT_EMOTION
    return (
        "From a psychological perspective, this dream represents your mind's way of processing "
        f"{primary_theme.lower()} while experiencing {primary_emotion.lower()}. "
        "The dream serves as a safe space to explore these feelings and work through subconscious concerns."
    )


def compose_interpretation(
    entry: DreamEntry,
    profile: UserProfile,
    features: Optional[DreamFeatures] = None,
) -> Interpretation:
    feats = features if features is not None else extract_features(entry.content)
    sign = profile.zodiac_sign
    return Interpretation(
        overview=overview(feats.themes, feats.emotions, sign),
        symbols=interpret_symbols(feats.symbols, profile),
        themes=list(feats.themes),
        emotions=list(feats.emotions),
        personalized_insights=personalized_insights(feats, profile, entry.lucidity),
        horoscope_connection=horoscope_connection(sign, feats.themes),
        # Populated only once cross-entry correlation exists.
        recurring_patterns=[],
        psychological_meaning=psychological_meaning(feats.themes, feats.emotions),
    )
