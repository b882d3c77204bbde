# =============================================================================
# MATERIAL VARIANCE ENGINE - DATA SOURCE TESTS
# =============================================================================
# Tests for the row store, the CSV-backed source and the concurrent fetch.
# =============================================================================

import asyncio
import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pandas as pd

from analytics.sources import (
    AnalyticsSource,
    DataFetchError,
    StoreSource,
    TableStore,
    fetch_period_inputs,
    normalize_dates,
    window_months,
)


class TestTableStore:
    """Tests for TableStore.select."""

    @pytest.fixture
    def store(self):
        return TableStore({
            "calendar": [
                {"date": "2025-05-31", "working_time": "8"},
                {"date": "2025-06-01", "working_time": "0"},
                {"date": "2025-06-30", "working_time": "8"},
                {"date": "2025-07-01", "working_time": "8"},
                {"date": "", "working_time": "8"},
            ],
        })

    def test_half_open_range(self, store):
        rows = store.select("calendar", gte={"date": "2025-06-01"}, lt={"date": "2025-07-01"})
        assert [r["date"] for r in rows] == ["2025-06-01", "2025-06-30"]

    def test_inclusive_range(self, store):
        rows = store.select("calendar", gte={"date": "2025-06-01"}, lte={"date": "2025-07-01"})
        assert [r["date"] for r in rows] == ["2025-06-01", "2025-06-30", "2025-07-01"]

    def test_eq_and_projection(self, store):
        rows = store.select("calendar", columns=["date"], eq={"working_time": 0})
        assert rows == [{"date": "2025-06-01"}]

    def test_unknown_table(self, store):
        with pytest.raises(KeyError):
            store.select("missing")

    def test_insert(self, store):
        assert store.insert("other", [{"a": 1}, {"a": 2}]) == 2
        assert store.select("other", eq={"a": 2}) == [{"a": 2}]


class TestNormalizeDates:
    """Tests for normalize_dates."""

    def test_formats(self):
        values = pd.Series(["2025-06-01 00:00:00", "2025-06-02", "", "not a date"])
        assert list(normalize_dates(values)) == ["2025-06-01", "2025-06-02", "", ""]


class TestStoreSource:
    """Tests for the CSV-backed StoreSource."""

    def test_missing_dir(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            StoreSource.from_csv_dir(tmp_path / "nope")

    def test_reference_mapping(self, sample_source):
        materials = sample_source.get_reference("material")
        assert len(materials) == 5
        m1 = next(r for r in materials if r["material_id"] == "M1")
        assert m1["price"] == "200"
        assert m1["quantity"] == "20"
        assert m1["category"] == "Direct Material"

        departments = sample_source.get_reference("department")
        assert {"name": "Painting", "calendar_id": "2"} in departments

    def test_unknown_reference_kind(self, sample_source):
        with pytest.raises(ValueError):
            sample_source.get_reference("supplier")

    def test_calendar_range(self, sample_source):
        rows = sample_source.get_calendar(1, "2025-06-01", "2025-07-01")
        assert len(rows) == 30
        assert rows[0]["date"] == "2025-06-01"
        assert set(rows[0]) == {"date", "working_time", "over_time"}

    def test_unknown_calendar(self, sample_source):
        with pytest.raises(ValueError):
            sample_source.get_calendar(3, "2025-06-01", "2025-07-01")

    def test_forecast_lines(self, sample_source):
        rows = sample_source.get_forecast_lines("2025-06-01", "2025-07-01")
        assert len(rows) == 6
        assert all(r["period_month"] == "2025-06" for r in rows)
        assert {"material_id": "M1", "department": "Body Line",
                "monthly_quantity": "100", "period_month": "2025-06"} in rows

    def test_actual_inclusive_end(self, sample_source):
        rows = sample_source.get_actual_transactions("2025-06-01", "2025-06-30")
        assert len(rows) == 11
        assert any(r["posting_date"] == "2025-06-26" for r in rows)

    def test_custom_table_names(self, tmp_path):
        (tmp_path / "items.csv").write_text("no_mat,price,quantity,category\nX1,10,1,Direct\n")
        source = StoreSource.from_csv_dir(tmp_path, {"material": "items"})
        assert source.get_reference("material")[0]["material_id"] == "X1"


class FailingSource(AnalyticsSource):
    """Source whose calendar and actual reads fail."""

    def __init__(self, inner):
        self.inner = inner

    def get_reference(self, kind):
        return self.inner.get_reference(kind)

    def get_calendar(self, calendar_id, start, end):
        raise ConnectionError("calendar unavailable")

    def get_forecast_lines(self, month_start, month_end_exclusive):
        return self.inner.get_forecast_lines(month_start, month_end_exclusive)

    def get_actual_transactions(self, start, end):
        raise TimeoutError("actual timed out")


class TestFetchPeriodInputs:
    """Tests for fetch_period_inputs."""

    def test_window_months(self):
        assert window_months("2025-01") == ["2024-11", "2024-12", "2025-01"]
        assert window_months("2025-6") == ["2025-04", "2025-05", "2025-06"]

    def test_fetch(self, sample_source):
        inputs = asyncio.run(fetch_period_inputs(sample_source, "2025-06"))
        assert inputs.months == ["2025-04", "2025-05", "2025-06"]
        assert len(inputs.material_rows) == 5
        assert len(inputs.department_rows) == 4
        assert len(inputs.calendar_rows[1]) == 91
        assert len(inputs.forecast_lines) == 14
        assert len(inputs.transactions) == 25

    def test_failure_is_all_or_nothing(self, sample_source):
        with pytest.raises(DataFetchError) as excinfo:
            asyncio.run(fetch_period_inputs(FailingSource(sample_source), "2025-06"))
        error = excinfo.value
        assert set(error.failures) == {"calendar_1", "calendar_2", "actual"}
        assert isinstance(error.failures["actual"], TimeoutError)
        assert "calendar_1" in str(error)

    def test_invalid_period(self, sample_source):
        with pytest.raises(ValueError):
            asyncio.run(fetch_period_inputs(sample_source, "2025-13"))
