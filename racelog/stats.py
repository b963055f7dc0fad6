"""Statistics over a record snapshot.

Everything here is a pure function of its arguments: grouping training
attempts into per-day stats, scoring their stability, choosing the default
training type, and shaping chart and upcoming-race views. Callers recompute
from the current snapshot after every refresh.
"""

import math
from datetime import date, datetime
from typing import Iterable, Sequence

from racelog.models import (
    RACE,
    TRAINING,
    CategoryLookupItem,
    ChartPoint,
    DayStat,
    RawRecord,
    RecordId,
    UpcomingRaces,
)
from racelog.preferences import DEFAULT_TRAINING_TYPE_KEY, PreferenceStore

STABILITY_CV_MULTIPLIER = 350.0
DEFAULT_UPCOMING_LIMIT = 2
DEFAULT_CHART_WINDOW = 5
SCORE_DECIMALS = 4


def format_score(value: float | str) -> str:
    return f"{float(value):.{SCORE_DECIMALS}f}"


def parse_score(text: str) -> float:
    return float(text)


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def stability_score(values: Sequence[float]) -> float:
    """Score relative spread of repeated attempts on a 0-100 scale.

    Uses the coefficient of variation (population std dev over mean), so the
    score is comparable across exercises with different time scales. A
    spread of about 28.6% of the mean scores 0.
    """
    avg = _mean(values)
    variance = _mean([(v - avg) ** 2 for v in values])
    std_dev = math.sqrt(variance)
    cv = std_dev / avg if avg > 0 else 0.0
    return round(max(0.0, 100.0 - cv * STABILITY_CV_MULTIPLIER), 1)


def aggregate(records: Iterable[RawRecord]) -> list[DayStat]:
    """Group training attempts by (date, category) into DayStats, newest day first."""
    groups: dict[tuple[str, str], list[tuple[RecordId | None, float]]] = {}
    for record in records:
        if record.kind != TRAINING:
            continue
        key = (record.date, record.category_name)
        groups.setdefault(key, []).append((record.id, parse_score(record.value)))

    result: list[DayStat] = []
    for (day, name), rows in groups.items():
        values = [v for _, v in rows]
        result.append(
            DayStat(
                date=day,
                category_name=name,
                average=round(_mean(values), SCORE_DECIMALS),
                best=min(values),
                count=len(values),
                records=tuple(rows),
                stability_score=stability_score(values),
            )
        )
    # sorted() is stable, so groups sharing a date keep first-seen order.
    return sorted(result, key=lambda s: s.date, reverse=True)


def list_categories(day_stats: Iterable[DayStat]) -> list[str]:
    """Distinct category names in order of first appearance."""
    seen: dict[str, None] = {}
    for stat in day_stats:
        seen.setdefault(stat.category_name, None)
    return list(seen)


def find_day_stat(day_stats: Iterable[DayStat], day: str, category: str) -> DayStat | None:
    return next((s for s in day_stats if s.date == day and s.category_name == category), None)


def resolve_default_category(
    categories: Sequence[CategoryLookupItem], persisted_choice: str | None
) -> str:
    """Pick the active training type: server default, then saved choice, then first item."""
    flagged = next((c for c in categories if c.is_default), None)
    if flagged is not None:
        return flagged.name
    if persisted_choice and any(c.name == persisted_choice for c in categories):
        return persisted_choice
    if categories:
        return categories[0].name
    return ""


def resolve_default_from_preferences(
    categories: Sequence[CategoryLookupItem], preferences: PreferenceStore
) -> str:
    return resolve_default_category(categories, preferences.get(DEFAULT_TRAINING_TYPE_KEY))


def _day_string(today: date | str) -> str:
    if isinstance(today, datetime):
        return today.date().isoformat()
    if isinstance(today, date):
        return today.isoformat()
    return str(today)


def select_upcoming(
    records: Iterable[RawRecord], today: date | str, limit: int = DEFAULT_UPCOMING_LIMIT
) -> UpcomingRaces:
    today_str = _day_string(today)
    races = sorted(
        (r for r in records if r.kind == RACE and r.date >= today_str),
        key=lambda r: r.date,
    )
    return UpcomingRaces(items=tuple(races[:limit]), has_more=len(races) > limit)


def project_series(
    day_stats: Iterable[DayStat], category: str, window_size: int = DEFAULT_CHART_WINDOW
) -> list[ChartPoint]:
    """Most recent `window_size` stats for a category, oldest first."""
    if window_size <= 0:
        raise ValueError(f"window_size must be positive, got {window_size}")
    if not category:
        return []
    recent = [s for s in day_stats if s.category_name == category][:window_size]
    return [
        ChartPoint(
            date=date.fromisoformat(s.date).strftime("%m/%d"),
            average=s.average,
            best=s.best,
        )
        for s in reversed(recent)
    ]


def filter_races(
    records: Iterable[RawRecord],
    today: date | str,
    search: str = "",
    series: str = "",
    when: str = "all",
) -> list[RawRecord]:
    """Race list filtered by text, series and past/future, newest first."""
    today_str = _day_string(today)
    needle = search.strip().lower()
    out = [r for r in records if r.kind == RACE]
    if needle:
        out = [r for r in out if needle in r.category_name.lower() or needle in r.series_name.lower()]
    if series:
        out = [r for r in out if r.series_name == series]
    if when == "future":
        out = [r for r in out if r.date >= today_str]
    elif when == "past":
        out = [r for r in out if r.date < today_str]
    return sorted(out, key=lambda r: r.date, reverse=True)


def _numeric_id(record_id: RecordId | None) -> float:
    try:
        return float(record_id)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0


def latest_attempts(
    records: Iterable[RawRecord], day: date | str, category: str, limit: int = 5
) -> list[RawRecord]:
    """Training attempts logged on `day` for `category`, most recently created first."""
    day_str = _day_string(day)
    rows = [r for r in records if r.kind == TRAINING and r.date == day_str and r.category_name == category]
    return sorted(rows, key=lambda r: _numeric_id(r.id), reverse=True)[:limit]
