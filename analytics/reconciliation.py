# =============================================================================
# MATERIAL VARIANCE ENGINE - PERIOD RECONCILER
# =============================================================================
# Buckets actual transactions into daily value series for the period and
# joins them with the forecast's period totals.
#
# FORMULAS:
# actual[d]     = SUM(quantity * unit_value for transactions posted on d)
# cum_actual[d] = SUM(actual[k] for k <= d)
# totals[dept, material] = {actual, forecast} over the whole period
# =============================================================================

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from .redistribution import ForecastSeries, Key, PeriodTotal
from .references import MaterialRef, clean_text, lookup_material, to_float

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActualTransaction:
    """One recorded material movement."""
    material_id: str
    department: Optional[str]
    quantity: float
    posting_date: str
    document_date: Optional[str] = None


@dataclass(frozen=True)
class DailySeriesPoint:
    """One day of the combined actual/forecast series."""
    date: str
    actual_value: float
    forecast_value: float
    cumulative_actual: float
    cumulative_forecast: float
    cumulative_forecast_lower: float
    cumulative_forecast_upper: float


@dataclass
class ReconciliationOutput:
    """Output structure for the period reconciler."""
    dates: List[str] = field(default_factory=list)
    daily: List[float] = field(default_factory=list)
    cumulative: List[float] = field(default_factory=list)

    # Merged actual + forecast aggregates by (department, material_id)
    totals: Dict[Key, PeriodTotal] = field(default_factory=dict)

    out_of_period: int = 0


def transaction_from_row(row: Mapping) -> Optional[ActualTransaction]:
    """Build an ActualTransaction from a normalised row; None without material or posting date."""
    material_id = clean_text(row.get("material_id"))
    posting_date = clean_text(row.get("posting_date"))
    if material_id is None or posting_date is None:
        return None
    document_date = clean_text(row.get("document_date"))
    return ActualTransaction(
        material_id=material_id,
        department=clean_text(row.get("department")),
        quantity=to_float(row.get("quantity")),
        posting_date=posting_date[:10],
        document_date=document_date[:10] if document_date else None,
    )


def reconcile_actuals(
    transactions: Iterable[ActualTransaction],
    material_refs: Mapping[str, MaterialRef],
    dates: List[str],
    forecast: Optional[ForecastSeries] = None,
    line_filter: Optional[Callable[[ActualTransaction], bool]] = None
) -> ReconciliationOutput:
    """
    Reconcile actual transactions against the period's days.

    Args:
        transactions: Actual transactions (may include other months)
        material_refs: Material lookup map
        dates: ISO dates of the period, in order
        forecast: Redistributor output whose totals are merged in
        line_filter: Optional predicate; transactions failing it are excluded

    Returns:
        ReconciliationOutput with daily/cumulative actual series and
        totals by (department, material_id)

    Notes:
        - Days with no transactions have value 0
        - Transactions posted outside `dates` are ignored
    """
    output = ReconciliationOutput(dates=list(dates))
    index = {d: i for i, d in enumerate(dates)}
    daily = [0.0] * len(dates)
    totals: Dict[Key, PeriodTotal] = defaultdict(PeriodTotal)

    for transaction in transactions:
        if line_filter is not None and not line_filter(transaction):
            continue
        day = index.get(transaction.posting_date)
        if day is None:
            output.out_of_period += 1
            continue

        unit_value = lookup_material(material_refs, transaction.material_id).unit_value
        value = transaction.quantity * unit_value
        daily[day] += value

        total = totals[(transaction.department, transaction.material_id)]
        total.actual_value += value
        total.actual_quantity += transaction.quantity

    if output.out_of_period:
        logger.debug("Ignored %d transactions outside the period", output.out_of_period)

    if forecast is not None:
        for key, forecast_total in forecast.totals.items():
            total = totals[key]
            total.forecast_value += forecast_total.forecast_value
            total.forecast_quantity += forecast_total.forecast_quantity

    running = 0.0
    for value in daily:
        running += value
        output.cumulative.append(running)

    output.daily = daily
    output.totals = dict(totals)
    return output


def build_daily_series(
    forecast: ForecastSeries,
    actual: ReconciliationOutput
) -> List[DailySeriesPoint]:
    """Zip forecast and actual series into DailySeriesPoint rows (same dates)."""
    if forecast.dates != actual.dates:
        raise ValueError("Forecast and actual series cover different dates")

    points = []
    for day, date in enumerate(forecast.dates):
        points.append(DailySeriesPoint(
            date=date,
            actual_value=actual.daily[day],
            forecast_value=forecast.daily[day],
            cumulative_actual=actual.cumulative[day],
            cumulative_forecast=forecast.cumulative[day],
            cumulative_forecast_lower=forecast.cumulative_lower[day],
            cumulative_forecast_upper=forecast.cumulative_upper[day],
        ))
    return points


def summarize_totals(totals: Mapping[Key, PeriodTotal]) -> PeriodTotal:
    """Collapse key-level totals into one scalar PeriodTotal."""
    result = PeriodTotal()
    for total in totals.values():
        result.actual_value += total.actual_value
        result.forecast_value += total.forecast_value
        result.actual_quantity += total.actual_quantity
        result.forecast_quantity += total.forecast_quantity
    return result


# =============================================================================
# END OF PERIOD RECONCILER
# =============================================================================
