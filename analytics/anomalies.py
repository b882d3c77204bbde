# =============================================================================
# MATERIAL VARIANCE ENGINE - ANOMALY DETECTOR
# =============================================================================
# Flags usage anomalies from (department, material) period totals.
#
# RULES:
# - Over usage:        delta = actual - forecast > 0  (largest first)
# - Under usage:       delta < 0                      (largest shortfall first)
# - Continuous over:   delta > 0 in each of the last 3 months
# - Continuous under:  delta < 0 in each of the last 3 months
# - Delayed posting:   posting_date < document_date
#
# usage_ratio = SUM(actual) / SUM(forecast) * 100 over the window
# (None when SUM(forecast) == 0)
# =============================================================================

import math
from dataclasses import dataclass
from typing import Callable, Iterable, List, Mapping, Optional, Sequence, Tuple

from .periods import days_between
from .reconciliation import ActualTransaction
from .redistribution import Key, PeriodTotal

CONTINUOUS_WINDOW_MONTHS = 3


@dataclass(frozen=True)
class VarianceRecord:
    department: Optional[str]
    material_id: str
    delta_value: float
    actual_value: float = 0.0
    forecast_value: float = 0.0


@dataclass(frozen=True)
class ContinuousVarianceRecord:
    """Deltas ordered oldest (month1) to current (month3)."""
    department: Optional[str]
    material_id: str
    delta_month1: float
    delta_month2: float
    delta_month3: float
    three_month_usage_ratio: Optional[float]


@dataclass(frozen=True)
class DelayRecord:
    material_id: str
    department: Optional[str]
    quantity: float
    delay_days: int
    posting_date: str
    document_date: str


def usage_ratio(actual: float, forecast: float) -> Optional[float]:
    """Actual as a percentage of forecast; None when forecast is zero."""
    if forecast == 0:
        return None
    return actual / forecast * 100.0


def _key_order(department: Optional[str], material_id: str) -> Tuple[str, str]:
    return (department or "", material_id)


def _variance_records(totals: Mapping[Key, PeriodTotal]) -> List[VarianceRecord]:
    return [
        VarianceRecord(
            department=department,
            material_id=material_id,
            delta_value=total.delta_value,
            actual_value=total.actual_value,
            forecast_value=total.forecast_value,
        )
        for (department, material_id), total in totals.items()
    ]


def detect_over_usage(totals: Mapping[Key, PeriodTotal]) -> List[VarianceRecord]:
    """Keys whose actual value exceeds forecast, largest excess first."""
    records = [r for r in _variance_records(totals) if r.delta_value > 0]
    records.sort(key=lambda r: (-r.delta_value, _key_order(r.department, r.material_id)))
    return records


def detect_under_usage(totals: Mapping[Key, PeriodTotal]) -> List[VarianceRecord]:
    """Keys whose actual value falls short of forecast, largest shortfall first."""
    records = [r for r in _variance_records(totals) if r.delta_value < 0]
    records.sort(key=lambda r: (r.delta_value, _key_order(r.department, r.material_id)))
    return records


def detect_continuous_variance(
    totals_by_month: Sequence[Mapping[Key, PeriodTotal]]
) -> Tuple[List[ContinuousVarianceRecord], List[ContinuousVarianceRecord]]:
    """
    Find keys with the same variance direction in every month of the window.

    Args:
        totals_by_month: Period totals for the last CONTINUOUS_WINDOW_MONTHS
                         months, ordered oldest -> current

    Returns:
        (continuous_over, continuous_under)

    Notes:
        - Only keys present in the current month are considered
        - A key missing from an earlier month has delta 0 there and
          cannot qualify
        - Over sorts by current delta desc, then ratio desc
        - Under sorts by |current delta| desc, then ratio asc
        - None ratios sort last
    """
    if len(totals_by_month) != CONTINUOUS_WINDOW_MONTHS:
        raise ValueError(
            f"Continuous variance needs {CONTINUOUS_WINDOW_MONTHS} months, "
            f"got {len(totals_by_month)}"
        )

    empty = PeriodTotal()
    current = totals_by_month[-1]
    over: List[ContinuousVarianceRecord] = []
    under: List[ContinuousVarianceRecord] = []

    for key in current:
        window = [month.get(key, empty) for month in totals_by_month]
        deltas = [total.delta_value for total in window]

        if all(d > 0 for d in deltas):
            target = over
        elif all(d < 0 for d in deltas):
            target = under
        else:
            continue

        ratio = usage_ratio(
            sum(total.actual_value for total in window),
            sum(total.forecast_value for total in window),
        )
        target.append(ContinuousVarianceRecord(
            department=key[0],
            material_id=key[1],
            delta_month1=deltas[0],
            delta_month2=deltas[1],
            delta_month3=deltas[2],
            three_month_usage_ratio=ratio,
        ))

    over.sort(key=lambda r: (
        -r.delta_month3,
        r.three_month_usage_ratio is None,
        -(r.three_month_usage_ratio or 0.0),
        _key_order(r.department, r.material_id),
    ))
    under.sort(key=lambda r: (
        -abs(r.delta_month3),
        r.three_month_usage_ratio is None,
        r.three_month_usage_ratio or 0.0,
        _key_order(r.department, r.material_id),
    ))
    return over, under


def detect_delays(
    transactions: Iterable[ActualTransaction],
    line_filter: Optional[Callable[[ActualTransaction], bool]] = None
) -> List[DelayRecord]:
    """
    Transactions posted before their document date, longest delay first.

    delay_days = ceil(document_date - posting_date) in days.
    """
    records = []
    for transaction in transactions:
        if not transaction.posting_date or not transaction.document_date:
            continue
        if line_filter is not None and not line_filter(transaction):
            continue
        elapsed = days_between(transaction.posting_date, transaction.document_date)
        if elapsed <= 0:
            continue
        records.append(DelayRecord(
            material_id=transaction.material_id,
            department=transaction.department,
            quantity=transaction.quantity,
            delay_days=int(math.ceil(elapsed)),
            posting_date=transaction.posting_date,
            document_date=transaction.document_date,
        ))

    records.sort(key=lambda r: (
        -r.delay_days,
        r.posting_date,
        _key_order(r.department, r.material_id),
    ))
    return records


# =============================================================================
# END OF ANOMALY DETECTOR
# =============================================================================
