"""Deterministic keyword extraction of symbols, themes and emotions from dream text."""

from __future__ import annotations

from dataclasses import dataclass

from dreamvision.lexicon import EMOTION_RULES, SYMBOL_TRIGGERS, THEME_RULES


@dataclass(frozen=True)
class DreamFeatures:
    symbols: tuple[str, ...] = ()
    themes: tuple[str, ...] = ()
    emotions: tuple[str, ...] = ()


def _contains_any(content: str, triggers: tuple[str, ...]) -> bool:
    return any(trigger in content for trigger in triggers)


def _apply_rules(content: str, rules: tuple[tuple[str, tuple[str, ...]], ...]) -> tuple[str, ...]:
    return tuple(label for label, triggers in rules if _contains_any(content, triggers))


def extract_symbols(content: str) -> tuple[str, ...]:
    text = (content or "").lower()
    return tuple(symbol for symbol, triggers in SYMBOL_TRIGGERS.items() if _contains_any(text, triggers))


def extract_themes(content: str) -> tuple[str, ...]:
    return _apply_rules((content or "").lower(), THEME_RULES)


def extract_emotions(content: str) -> tuple[str, ...]:
    return _apply_rules((content or "").lower(), EMOTION_RULES)


def extract_features(content: str) -> DreamFeatures:
    """Return the symbols, themes and emotions present in ``content``.

    Matching is plain case-insensitive substring containment, so "schoolyard"
    yields ``school``. Each label appears at most once and every list follows
    the lexicon's fixed order, never the order of discovery in the text.
    """
    return DreamFeatures(
        symbols=extract_symbols(content),
        themes=extract_themes(content),
        emotions=extract_emotions(content),
    )
