# =============================================================================
# MATERIAL VARIANCE ENGINE - AGGREGATION FACADE
# =============================================================================
# Orchestrates the full pipeline for one period and filter set.
#
# EXECUTION ORDER (for each month of the 3-month window):
# 1. Resolve material and department references
# 2. Build the department x material filter
# 3. Build calendar weights for the month
# 4. Redistribute forecast lines into daily values
# 5. Reconcile actual transactions against the same days
# Then, for the current month:
# 6. Assemble the daily series and period totals
# 7. Detect over/under, continuous over/under and delayed postings
# 8. Roll up per department
#
# KEY PRINCIPLES:
# - Pure functions, no state kept between calls
# - Same filter applied to forecast, actual and delays
# - Deterministic: same inputs -> same outputs
# =============================================================================

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

from .anomalies import (
    CONTINUOUS_WINDOW_MONTHS,
    ContinuousVarianceRecord,
    DelayRecord,
    VarianceRecord,
    detect_continuous_variance,
    detect_delays,
    detect_over_usage,
    detect_under_usage,
    usage_ratio,
)
from .calendar_weights import CalendarWeights, build_weights_for_month
from .filters import DepartmentFilter, LineFilter
from .periods import format_month, month_of, parse_month
from .reconciliation import (
    DailySeriesPoint,
    ReconciliationOutput,
    build_daily_series,
    reconcile_actuals,
    summarize_totals,
)
from .redistribution import ForecastSeries, Key, PeriodTotal, redistribute
from .references import resolve_references
from .sources import AnalyticsSource, PeriodInputs, fetch_period_inputs, window_months

logger = logging.getLogger(__name__)


@dataclass
class PeriodSummary:
    """Scalar totals for the filtered period."""
    actual_value: float = 0.0
    forecast_value: float = 0.0
    actual_quantity: float = 0.0
    forecast_quantity: float = 0.0
    variance_value: float = 0.0
    usage_pct: Optional[float] = None


@dataclass
class DepartmentSummary:
    department: Optional[str]
    forecast_value: float = 0.0
    actual_value: float = 0.0
    variance_value: float = 0.0
    usage_pct: Optional[float] = None


@dataclass
class MonthResult:
    """Intermediate outputs for one month of the window."""
    month: str
    weights: Dict[int, CalendarWeights]
    forecast: ForecastSeries
    actual: ReconciliationOutput


@dataclass
class PeriodView:
    """Complete result bundle for one period and filter set."""
    period: str
    department_filter: DepartmentFilter = field(default_factory=DepartmentFilter)
    material_filter: str = "all"

    daily_series: List[DailySeriesPoint] = field(default_factory=list)
    period_totals: PeriodSummary = field(default_factory=PeriodSummary)
    over_usage: List[VarianceRecord] = field(default_factory=list)
    under_usage: List[VarianceRecord] = field(default_factory=list)
    continuous_over: List[ContinuousVarianceRecord] = field(default_factory=list)
    continuous_under: List[ContinuousVarianceRecord] = field(default_factory=list)
    delays: List[DelayRecord] = field(default_factory=list)
    department_summary: List[DepartmentSummary] = field(default_factory=list)

    missing_materials: List[str] = field(default_factory=list)
    weights: Dict[int, CalendarWeights] = field(default_factory=dict)

    # Intermediate outputs (for validation/debugging, not serialised)
    months: List[MonthResult] = field(default_factory=list, repr=False)

    @property
    def current(self) -> Optional[MonthResult]:
        return self.months[-1] if self.months else None

    def to_dict(self) -> Dict:
        """Plain JSON-serialisable bundle."""
        return {
            "period": self.period,
            "filters": {
                "department_mode": self.department_filter.mode,
                "department": self.department_filter.name,
                "material": self.material_filter,
            },
            "daily_series": [asdict(point) for point in self.daily_series],
            "period_totals": asdict(self.period_totals),
            "over_usage": [asdict(r) for r in self.over_usage],
            "under_usage": [asdict(r) for r in self.under_usage],
            "continuous_over": [asdict(r) for r in self.continuous_over],
            "continuous_under": [asdict(r) for r in self.continuous_under],
            "delays": [asdict(r) for r in self.delays],
            "department_summary": [asdict(r) for r in self.department_summary],
            "missing_materials": list(self.missing_materials),
            "weights": {
                str(calendar_id): {
                    "dates": list(w.dates),
                    "weights": list(w.weights),
                    "uniform": w.uniform,
                }
                for calendar_id, w in self.weights.items()
            },
        }


def summarize_departments(totals: Dict[Key, PeriodTotal]) -> List[DepartmentSummary]:
    """Per-department roll-up of period totals, ordered by department name."""
    by_department: Dict[Optional[str], DepartmentSummary] = {}
    for (department, _), total in totals.items():
        row = by_department.setdefault(department, DepartmentSummary(department=department))
        row.forecast_value += total.forecast_value
        row.actual_value += total.actual_value

    rows = sorted(by_department.values(), key=lambda r: (r.department is None, r.department or ""))
    for row in rows:
        row.variance_value = row.actual_value - row.forecast_value
        row.usage_pct = usage_ratio(row.actual_value, row.forecast_value)
    return rows


def compute_period_view(
    period: str,
    department_filter,
    material_filter,
    inputs: PeriodInputs
) -> PeriodView:
    """
    Compute the full analytics view for one period.

    Args:
        period: Month "YYYY-MM"
        department_filter: DepartmentFilter, or a mode string ("all", "unassigned")
        material_filter: "all", "Direct", "Indirect" or "Unassigned"
        inputs: Collections for the 3-month window ending at `period`

    Returns:
        PeriodView

    Raises:
        ValueError: invalid period
        FilterError: invalid filter modes
    """
    period = format_month(*parse_month(period))
    materials, departments = resolve_references(inputs.material_rows, inputs.department_rows)
    line_filter = LineFilter(department_filter, material_filter, materials, departments.keys())

    view = PeriodView(
        period=period,
        department_filter=line_filter.department_filter,
        material_filter=line_filter.material_filter,
    )

    months = inputs.months or window_months(period)
    if months[-1] != period:
        raise ValueError(f"Input window {months} does not end at {period}")

    for month in months:
        year, mon = parse_month(month)
        weights = build_weights_for_month(inputs.calendar_rows, year, mon)
        forecast = redistribute(
            inputs.forecast_lines, weights, materials, departments, line_filter
        )
        actual = reconcile_actuals(
            inputs.transactions, materials, forecast.dates, forecast, line_filter
        )
        view.months.append(MonthResult(month=month, weights=weights, forecast=forecast, actual=actual))

    current = view.current
    view.weights = current.weights
    view.daily_series = build_daily_series(current.forecast, current.actual)

    summary = summarize_totals(current.actual.totals)
    view.period_totals = PeriodSummary(
        actual_value=summary.actual_value,
        forecast_value=summary.forecast_value,
        actual_quantity=summary.actual_quantity,
        forecast_quantity=summary.forecast_quantity,
        variance_value=summary.delta_value,
        usage_pct=usage_ratio(summary.actual_value, summary.forecast_value),
    )

    view.over_usage = detect_over_usage(current.actual.totals)
    view.under_usage = detect_under_usage(current.actual.totals)
    window = view.months[-CONTINUOUS_WINDOW_MONTHS:]
    if len(window) == CONTINUOUS_WINDOW_MONTHS:
        view.continuous_over, view.continuous_under = detect_continuous_variance(
            [result.actual.totals for result in window]
        )

    period_transactions = [t for t in inputs.transactions if month_of(t.posting_date) == period]
    view.delays = detect_delays(period_transactions, line_filter)
    view.department_summary = summarize_departments(current.actual.totals)

    referenced = {
        line.material_id for line in inputs.forecast_lines
        if line.period_month == period and line_filter(line)
    }
    referenced.update(t.material_id for t in period_transactions if line_filter(t))
    view.missing_materials = sorted(m for m in referenced if m not in materials)

    logger.debug(
        "Computed view for %s (%s): %d over, %d under, %d delays",
        period, line_filter.describe(), len(view.over_usage),
        len(view.under_usage), len(view.delays)
    )
    return view


def load_period_view(
    source: AnalyticsSource,
    period: str,
    department_filter=None,
    material_filter="all"
) -> PeriodView:
    """
    Fetch inputs from `source` and compute the view.

    Raises:
        DataFetchError: if any collaborator read fails
    """
    inputs = asyncio.run(fetch_period_inputs(source, period))
    return compute_period_view(period, department_filter, material_filter, inputs)


# =============================================================================
# END OF AGGREGATION FACADE
# =============================================================================
