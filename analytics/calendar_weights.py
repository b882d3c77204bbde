# =============================================================================
# MATERIAL VARIANCE ENGINE - CALENDAR WEIGHT BUILDER
# =============================================================================
# Turns a working calendar into per-day weights for one month.
#
# FORMULA:
# raw[d]    = working_time[d] + over_time[d]        (0 for missing days)
# weight[d] = raw[d] / SUM(raw)
#
# FALLBACK:
# SUM(raw) == 0  ->  weight[d] = 1 / days_in_month  (uniform)
# =============================================================================

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping

from .periods import month_dates, month_of, format_month
from .references import CALENDAR_IDS, clean_text, to_float

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalendarDay:
    """Working capacity of one calendar date."""
    date: str
    weight: float = 0.0


@dataclass
class CalendarWeights:
    """Normalised weights for every day of a month."""
    calendar_id: int
    month: str
    dates: List[str] = field(default_factory=list)
    weights: List[float] = field(default_factory=list)
    raw_total: float = 0.0
    uniform: bool = False

    def weight_for(self, iso_date: str) -> float:
        try:
            return self.weights[self.dates.index(iso_date)]
        except ValueError:
            return 0.0


def calendar_days_from_rows(rows: Iterable[Mapping]) -> List[CalendarDay]:
    """
    Convert raw calendar rows into CalendarDay entries.

    Args:
        rows: Rows with `date`, `working_time`, `over_time`

    Returns:
        List of CalendarDay (rows without a date are skipped)
    """
    days = []
    for row in rows:
        iso_date = clean_text(row.get("date"))
        if iso_date is None:
            continue
        weight = to_float(row.get("working_time")) + to_float(row.get("over_time"))
        days.append(CalendarDay(date=iso_date[:10], weight=weight))
    return days


def build_weights(
    calendar_id: int,
    year: int,
    month: int,
    calendar_days: Iterable[CalendarDay]
) -> CalendarWeights:
    """
    Build normalised per-day weights for one calendar and month.

    Args:
        calendar_id: Calendar the days belong to (1 or 2)
        year: Calendar year
        month: Calendar month 1..12
        calendar_days: CalendarDay entries (any range; others are ignored)

    Returns:
        CalendarWeights whose weights sum to 1

    Notes:
        - Missing days weigh 0 before normalisation
        - Duplicate dates are summed into one bucket
        - Negative raw weights are clamped to 0
        - All-zero months fall back to uniform weights
    """
    label = format_month(year, month)
    dates = month_dates(year, month)

    raw: Dict[str, float] = defaultdict(float)
    for day in calendar_days:
        if month_of(day.date) != label:
            continue
        raw[day.date] += max(0.0, day.weight)

    raw_weights = [raw.get(d, 0.0) for d in dates]
    total = sum(raw_weights)

    if total > 0:
        weights = [w / total for w in raw_weights]
        uniform = False
    else:
        logger.debug(
            "Calendar %s has no working time in %s, using uniform weights",
            calendar_id, label
        )
        weights = [1.0 / len(dates)] * len(dates)
        uniform = True

    return CalendarWeights(
        calendar_id=calendar_id,
        month=label,
        dates=dates,
        weights=weights,
        raw_total=total,
        uniform=uniform,
    )


def build_weights_for_month(
    calendar_rows_by_id: Mapping[int, Iterable[Mapping]],
    year: int,
    month: int
) -> Dict[int, CalendarWeights]:
    """
    Build weights for every known calendar.

    Args:
        calendar_rows_by_id: Raw calendar rows keyed by calendar id
        year: Calendar year
        month: Calendar month 1..12

    Returns:
        Dict[calendar_id, CalendarWeights] for calendars 1 and 2
    """
    result: Dict[int, CalendarWeights] = {}
    for calendar_id in CALENDAR_IDS:
        rows = calendar_rows_by_id.get(calendar_id, [])
        days = calendar_days_from_rows(rows)
        result[calendar_id] = build_weights(calendar_id, year, month, days)
    return result


# =============================================================================
# END OF CALENDAR WEIGHT BUILDER
# =============================================================================
