# =============================================================================
# MATERIAL VARIANCE ENGINE - FORECAST REDISTRIBUTOR
# =============================================================================
# Spreads each monthly forecast line across the days of its month in
# proportion to calendar weight and values it with pack-rounded bounds.
#
# FORMULAS (per line, per day d):
# cum_units[d] = SUM(monthly_quantity * weight[k] for k <= d)   (unrounded)
# mid[d]       = cum_units[d] * unit_value
# lower[d]     = floor(cum_units[d] / pack) * pack * unit_value
# upper[d]     = ceil(cum_units[d] / pack)  * pack * unit_value
# daily[d]     = mid[d] - mid[d-1]
#
# Lines superpose additively; only the cumulative quantity is rounded.
# =============================================================================

import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .calendar_weights import CalendarWeights
from .periods import format_month, parse_month
from .references import (
    DEFAULT_CALENDAR_ID,
    DepartmentRef,
    MaterialRef,
    calendar_for_department,
    clean_text,
    lookup_material,
    to_float,
)

logger = logging.getLogger(__name__)

PACK_SNAP_TOLERANCE = 1e-9

Key = Tuple[Optional[str], str]


@dataclass(frozen=True)
class ForecastLine:
    """One externally supplied monthly plan row."""
    material_id: str
    department: Optional[str]
    monthly_quantity: float
    period_month: str


@dataclass
class PeriodTotal:
    """Period aggregate for one (department, material) key."""
    actual_value: float = 0.0
    forecast_value: float = 0.0
    actual_quantity: float = 0.0
    forecast_quantity: float = 0.0

    @property
    def delta_value(self) -> float:
        return self.actual_value - self.forecast_value


@dataclass
class LineAllocation:
    """Expected vs distributed value of one forecast line."""
    material_id: str
    department: Optional[str]
    calendar_id: int
    expected_value: float
    distributed_value: float


@dataclass
class ForecastSeries:
    """Output structure for the redistributor."""
    month: str = ""
    dates: List[str] = field(default_factory=list)

    # Daily and cumulative value series (one entry per date)
    daily: List[float] = field(default_factory=list)
    cumulative: List[float] = field(default_factory=list)
    cumulative_lower: List[float] = field(default_factory=list)
    cumulative_upper: List[float] = field(default_factory=list)

    # Period aggregates by (department, material_id)
    totals: Dict[Key, PeriodTotal] = field(default_factory=dict)

    allocations: List[LineAllocation] = field(default_factory=list)
    skipped_lines: int = 0


def forecast_line_from_row(row: Mapping) -> Optional[ForecastLine]:
    """Build a ForecastLine from a normalised row; None without material id."""
    material_id = clean_text(row.get("material_id"))
    if material_id is None:
        return None
    return ForecastLine(
        material_id=material_id,
        department=clean_text(row.get("department")),
        monthly_quantity=to_float(row.get("monthly_quantity")),
        period_month=_normalize_period_month(row.get("period_month")),
    )


def _normalize_period_month(value) -> str:
    """"YYYY-MM" for a month or date value; "" when it cannot be parsed."""
    text = clean_text(value)
    if text is None:
        return ""
    try:
        return format_month(*parse_month(text[:10]))
    except ValueError:
        return ""


def pack_bounds(cum_units: float, pack_size: int) -> Tuple[float, float]:
    """
    Lower/upper pack-aligned quantities around a cumulative quantity.

    Pack counts within PACK_SNAP_TOLERANCE of a whole number are treated as
    exact, so an exact multiple returns (cum_units, cum_units).
    """
    pack = max(1, int(pack_size))
    packs = cum_units / pack
    nearest = round(packs)
    if abs(packs - nearest) < PACK_SNAP_TOLERANCE:
        packs = float(nearest)
    return math.floor(packs) * pack, math.ceil(packs) * pack


def redistribute(
    forecast_lines: Iterable[ForecastLine],
    weights_by_calendar: Mapping[int, CalendarWeights],
    material_refs: Mapping[str, MaterialRef],
    department_refs: Mapping[str, DepartmentRef],
    line_filter: Optional[Callable[[ForecastLine], bool]] = None
) -> ForecastSeries:
    """
    Redistribute monthly forecast lines into daily value series.

    Args:
        forecast_lines: Monthly forecast lines
        weights_by_calendar: CalendarWeights for the month, keyed by calendar id
        material_refs: Material lookup map
        department_refs: Department lookup map
        line_filter: Optional predicate; lines failing it are excluded

    Returns:
        ForecastSeries with daily, cumulative and bound series plus
        period totals by (department, material_id)

    Notes:
        - Lines for a month other than the weights' month are skipped
        - Unknown materials contribute quantity but no value
    """
    if not weights_by_calendar:
        raise ValueError("redistribute needs weights for at least one calendar")
    base = weights_by_calendar.get(DEFAULT_CALENDAR_ID)
    if base is None:
        base = next(iter(weights_by_calendar.values()))

    output = ForecastSeries(month=base.month, dates=list(base.dates))
    n_days = len(output.dates)

    cum_mid = [0.0] * n_days
    cum_lower = [0.0] * n_days
    cum_upper = [0.0] * n_days
    totals: Dict[Key, PeriodTotal] = defaultdict(PeriodTotal)

    for line in forecast_lines:
        if line.period_month != output.month:
            output.skipped_lines += 1
            continue
        if line_filter is not None and not line_filter(line):
            continue

        calendar_id = calendar_for_department(department_refs, line.department)
        weights = weights_by_calendar.get(calendar_id, base)
        material = lookup_material(material_refs, line.material_id)
        unit_value = material.unit_value

        cum_units = 0.0
        for day, weight in enumerate(weights.weights):
            cum_units += line.monthly_quantity * weight
            lower_units, upper_units = pack_bounds(cum_units, material.pack_size)
            mid_value = cum_units * unit_value
            # snapped bounds are exact multiples; mid keeps its float noise
            cum_mid[day] += mid_value
            cum_lower[day] += min(lower_units * unit_value, mid_value)
            cum_upper[day] += max(upper_units * unit_value, mid_value)

        expected = line.monthly_quantity * unit_value
        total = totals[(line.department, line.material_id)]
        total.forecast_value += expected
        total.forecast_quantity += line.monthly_quantity

        output.allocations.append(LineAllocation(
            material_id=line.material_id,
            department=line.department,
            calendar_id=calendar_id,
            expected_value=expected,
            distributed_value=cum_units * unit_value,
        ))

    if output.skipped_lines:
        logger.debug(
            "Skipped %d forecast lines outside %s", output.skipped_lines, output.month
        )

    previous = 0.0
    for value in cum_mid:
        output.daily.append(value - previous)
        previous = value

    output.cumulative = cum_mid
    output.cumulative_lower = cum_lower
    output.cumulative_upper = cum_upper
    output.totals = dict(totals)

    return output


def validate_forecast_series(series: ForecastSeries, tolerance: float = 1e-6) -> List[str]:
    """
    Validate redistributor output.

    Validations:
        - lower <= mid <= upper on every day
        - Distributed value equals monthly value for every line
        - Daily values sum to the final cumulative value
    """
    errors = []

    for day, date in enumerate(series.dates):
        lower = series.cumulative_lower[day]
        mid = series.cumulative[day]
        upper = series.cumulative_upper[day]
        scale = max(1.0, abs(lower), abs(mid), abs(upper))
        if lower - mid > tolerance * scale or mid - upper > tolerance * scale:
            errors.append(
                f"Bound violation on {date}: {lower} <= {mid} <= {upper} is not satisfied"
            )

    for allocation in series.allocations:
        scale = max(1.0, abs(allocation.expected_value))
        if abs(allocation.distributed_value - allocation.expected_value) > tolerance * scale:
            errors.append(
                f"Value not conserved for {allocation.material_id}/{allocation.department}: "
                f"{allocation.distributed_value} != {allocation.expected_value}"
            )

    if series.cumulative:
        total = sum(series.daily)
        scale = max(1.0, abs(series.cumulative[-1]))
        if abs(total - series.cumulative[-1]) > tolerance * scale:
            errors.append(
                f"Daily forecast sum {total} != cumulative {series.cumulative[-1]}"
            )

    return errors


# =============================================================================
# END OF FORECAST REDISTRIBUTOR
# =============================================================================
