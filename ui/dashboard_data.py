"""Transform a period view into dashboard-ready DataFrames."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import List

import pandas as pd


DAILY_COLUMNS = [
    "date",
    "day",
    "actual_value",
    "forecast_value",
    "cumulative_actual",
    "cumulative_forecast",
    "cumulative_forecast_lower",
    "cumulative_forecast_upper",
]

VARIANCE_COLUMNS = ["department", "material_id", "actual_value", "forecast_value", "delta_value"]
CONTINUOUS_COLUMNS = [
    "department",
    "material_id",
    "delta_month1",
    "delta_month2",
    "delta_month3",
    "three_month_usage_ratio",
]
DELAY_COLUMNS = ["material_id", "department", "quantity", "posting_date", "document_date", "delay_days"]
DEPARTMENT_COLUMNS = ["department", "forecast_value", "actual_value", "variance_value", "usage_pct"]


@dataclass
class DashboardSnapshot:
    daily: pd.DataFrame
    department_summary: pd.DataFrame
    over_usage: pd.DataFrame
    under_usage: pd.DataFrame
    continuous_over: pd.DataFrame
    continuous_under: pd.DataFrame
    delays: pd.DataFrame
    missing_materials: pd.DataFrame
    kpis: dict


def _records_df(records, columns: List[str]) -> pd.DataFrame:
    rows = [asdict(record) for record in records]
    if not rows:
        return pd.DataFrame(columns=columns)
    return pd.DataFrame(rows)[columns]


def _to_daily_df(view) -> pd.DataFrame:
    if not view.daily_series:
        return pd.DataFrame(columns=DAILY_COLUMNS)
    data = pd.DataFrame([asdict(point) for point in view.daily_series])
    data["day"] = data["date"].str.slice(8, 10)
    return data[DAILY_COLUMNS]


def _kpis(view) -> dict:
    totals = view.period_totals
    return {
        "actual_value": float(totals.actual_value),
        "forecast_value": float(totals.forecast_value),
        "variance_value": float(totals.variance_value),
        "usage_pct": totals.usage_pct,
        "over_count": len(view.over_usage),
        "under_count": len(view.under_usage),
        "continuous_over_count": len(view.continuous_over),
        "continuous_under_count": len(view.continuous_under),
        "delay_count": len(view.delays),
        "missing_count": len(view.missing_materials),
    }


def build_snapshot(view) -> DashboardSnapshot:
    return DashboardSnapshot(
        daily=_to_daily_df(view),
        department_summary=_records_df(view.department_summary, DEPARTMENT_COLUMNS),
        over_usage=_records_df(view.over_usage, VARIANCE_COLUMNS),
        under_usage=_records_df(view.under_usage, VARIANCE_COLUMNS),
        continuous_over=_records_df(view.continuous_over, CONTINUOUS_COLUMNS),
        continuous_under=_records_df(view.continuous_under, CONTINUOUS_COLUMNS),
        delays=_records_df(view.delays, DELAY_COLUMNS),
        missing_materials=pd.DataFrame({"material_id": list(view.missing_materials)}),
        kpis=_kpis(view),
    )
