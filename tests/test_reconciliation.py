# =============================================================================
# MATERIAL VARIANCE ENGINE - PERIOD RECONCILER TESTS
# =============================================================================

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from analytics.calendar_weights import build_weights_for_month
from analytics.periods import month_dates
from analytics.reconciliation import (
    ActualTransaction,
    build_daily_series,
    reconcile_actuals,
    summarize_totals,
    transaction_from_row,
)
from analytics.redistribution import ForecastLine, PeriodTotal, redistribute
from analytics.references import resolve_references


JUNE = month_dates(2025, 6)


@pytest.fixture
def materials(material_rows):
    return resolve_references(material_rows, [])[0]


class TestTransactionFromRow:
    """Tests for transaction_from_row."""

    def test_row(self):
        t = transaction_from_row({
            "material_id": "M1", "department": " Press Shop ", "quantity": "12",
            "posting_date": "2025-06-12T08:30:00", "document_date": "2025-06-15",
        })
        assert t == ActualTransaction("M1", "Press Shop", 12.0, "2025-06-12", "2025-06-15")

    def test_missing_document_date(self):
        t = transaction_from_row({"material_id": "M1", "quantity": 1, "posting_date": "2025-06-12",
                                  "document_date": ""})
        assert t.document_date is None
        assert t.department is None

    def test_missing_posting_date(self):
        assert transaction_from_row({"material_id": "M1", "posting_date": ""}) is None


class TestReconcileActuals:
    """Tests for reconcile_actuals."""

    def test_daily_buckets_and_running_sum(self, materials):
        transactions = [
            ActualTransaction("M1", "Press Shop", 10, "2025-06-02"),
            ActualTransaction("M1", "Press Shop", 5, "2025-06-02"),
            ActualTransaction("M2", "Welding", 2, "2025-06-04"),
        ]
        output = reconcile_actuals(transactions, materials, JUNE)

        assert output.daily[1] == pytest.approx(150.0)
        assert output.daily[3] == pytest.approx(100.0)
        assert output.daily[0] == 0.0
        assert output.cumulative[1] == pytest.approx(150.0)
        assert output.cumulative[-1] == pytest.approx(250.0)

        totals = output.totals[("Press Shop", "M1")]
        assert totals.actual_value == pytest.approx(150.0)
        assert totals.actual_quantity == pytest.approx(15.0)

    def test_out_of_period_ignored(self, materials):
        transactions = [
            ActualTransaction("M1", "Press Shop", 10, "2025-05-31"),
            ActualTransaction("M1", "Press Shop", 10, "2025-07-01"),
        ]
        output = reconcile_actuals(transactions, materials, JUNE)
        assert output.out_of_period == 2
        assert output.cumulative[-1] == 0.0
        assert output.totals == {}

    def test_unknown_material_counted_by_quantity(self, materials):
        output = reconcile_actuals(
            [ActualTransaction("M9", "ZZZ", 15, "2025-06-11")], materials, JUNE
        )
        assert output.totals[("ZZZ", "M9")].actual_quantity == pytest.approx(15.0)
        assert output.totals[("ZZZ", "M9")].actual_value == 0.0

    def test_forecast_totals_merged(self, materials, department_rows, june_calendar_rows):
        _, departments = resolve_references([], department_rows)
        weights = build_weights_for_month(june_calendar_rows, 2025, 6)
        forecast = redistribute(
            [ForecastLine("M1", "Press Shop", 100, "2025-06"),
             ForecastLine("M1", "Body Line", 10, "2025-06")],
            weights, materials, departments,
        )
        output = reconcile_actuals(
            [ActualTransaction("M1", "Press Shop", 120, "2025-06-10")],
            materials, forecast.dates, forecast,
        )
        press = output.totals[("Press Shop", "M1")]
        assert press.forecast_value == pytest.approx(1000.0)
        assert press.actual_value == pytest.approx(1200.0)
        assert press.delta_value == pytest.approx(200.0)

        body = output.totals[("Body Line", "M1")]
        assert body.actual_value == 0.0
        assert body.delta_value == pytest.approx(-100.0)

    def test_line_filter(self, materials):
        output = reconcile_actuals(
            [ActualTransaction("M1", "Press Shop", 1, "2025-06-02"),
             ActualTransaction("M1", "ZZZ", 1, "2025-06-02")],
            materials, JUNE,
            line_filter=lambda t: t.department == "ZZZ",
        )
        assert list(output.totals) == [("ZZZ", "M1")]


class TestDailySeries:
    """Tests for build_daily_series and summarize_totals."""

    def test_zip(self, materials, june_calendar_rows):
        weights = build_weights_for_month(june_calendar_rows, 2025, 6)
        forecast = redistribute(
            [ForecastLine("M1", "Press Shop", 100, "2025-06")], weights, materials, {}
        )
        actual = reconcile_actuals(
            [ActualTransaction("M1", "Press Shop", 30, "2025-06-02")],
            materials, forecast.dates, forecast,
        )
        points = build_daily_series(forecast, actual)
        assert len(points) == 30
        assert points[1].date == "2025-06-02"
        assert points[1].actual_value == pytest.approx(300.0)
        assert points[1].forecast_value == pytest.approx(500.0)
        assert points[1].cumulative_forecast_lower == pytest.approx(400.0)
        assert points[1].cumulative_forecast_upper == pytest.approx(600.0)
        assert points[-1].cumulative_actual == pytest.approx(300.0)

    def test_mismatched_dates(self, materials):
        weights = build_weights_for_month({}, 2025, 6)
        forecast = redistribute([], weights, materials, {})
        actual = reconcile_actuals([], materials, month_dates(2025, 5))
        with pytest.raises(ValueError):
            build_daily_series(forecast, actual)

    def test_summarize(self):
        total = summarize_totals({
            ("A", "M1"): PeriodTotal(actual_value=10, forecast_value=4),
            ("B", "M2"): PeriodTotal(actual_value=1, forecast_value=8, actual_quantity=2),
        })
        assert total.actual_value == pytest.approx(11.0)
        assert total.forecast_value == pytest.approx(12.0)
        assert total.actual_quantity == pytest.approx(2.0)
        assert total.delta_value == pytest.approx(-1.0)
