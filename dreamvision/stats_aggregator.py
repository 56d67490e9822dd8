"""Longitudinal metrics over a user's dream entries."""

from __future__ import annotations

import datetime as _dt
from collections import Counter
from typing import Iterable, Optional

import pytz

from dreamvision import config
from dreamvision.models import AggregateStats, DreamEntry

TOP_N = 5


def today_in_zone(tz_name: str = config.DREAM_TIMEZONE) -> _dt.date:
    try:
        tz = pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        tz = pytz.utc
    return _dt.datetime.now(tz).date()


def top_frequent(groups: Iterable[Iterable[str]], limit: int = TOP_N) -> list[str]:
    """Most frequent values, count descending; ties keep first-seen order."""
    counts: Counter[str] = Counter()
    for values in groups:
        counts.update(values)
    # Counter keeps insertion order and sorted() is stable.
    ranked = sorted(counts.items(), key=lambda item: -item[1])
    return [value for value, _count in ranked[:limit]]


def monthly_histogram(entries: list[DreamEntry]) -> list[int]:
    buckets = [0] * 12
    for entry in entries:
        buckets[entry.date.month - 1] += 1
    return buckets


def dreaming_streak(entries: list[DreamEntry], today: _dt.date) -> int:
    streak = 0
    cursor = today
    for entry in sorted(entries, key=lambda e: e.date, reverse=True):
        if entry.date == cursor:
            streak += 1
            cursor -= _dt.timedelta(days=1)
        elif entry.date < cursor:
            break
    return streak


def aggregate_stats(entries: Iterable[DreamEntry], today: Optional[_dt.date] = None) -> AggregateStats:
    items = list(entries)
    if not items:
        return AggregateStats()

    total = len(items)
    return AggregateStats(
        total_entries=total,
        average_mood=sum(e.mood for e in items) / total,
        average_lucidity=sum(e.lucidity for e in items) / total,
        top_themes=top_frequent(e.themes for e in items),
        top_symbols=top_frequent(e.symbols for e in items),
        monthly_histogram=monthly_histogram(items),
        streak=dreaming_streak(items, today if today is not None else today_in_zone()),
    )
