# =============================================================================
# MATERIAL VARIANCE ENGINE - CALENDAR WEIGHT TESTS
# =============================================================================

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from analytics.calendar_weights import (
    CalendarDay,
    build_weights,
    build_weights_for_month,
    calendar_days_from_rows,
)


class TestCalendarDays:
    """Tests for calendar_days_from_rows."""

    def test_working_plus_overtime(self):
        days = calendar_days_from_rows([
            {"date": "2025-06-07", "working_time": "0", "over_time": "2"},
            {"date": "2025-06-09", "working_time": 8, "over_time": 1.5},
        ])
        assert days == [CalendarDay("2025-06-07", 2.0), CalendarDay("2025-06-09", 9.5)]

    def test_rows_without_date_skipped(self):
        days = calendar_days_from_rows([{"date": "", "working_time": 8}])
        assert days == []

    def test_datetime_text_truncated(self):
        days = calendar_days_from_rows([{"date": "2025-06-02 00:00:00", "working_time": 8}])
        assert days[0].date == "2025-06-02"


class TestBuildWeights:
    """Tests for build_weights."""

    def test_two_working_days(self):
        """8h on 06-02 and 06-03 gives 0.5 each and 0 elsewhere."""
        weights = build_weights(1, 2025, 6, [
            CalendarDay("2025-06-02", 8),
            CalendarDay("2025-06-03", 8),
        ])
        assert len(weights.dates) == 30
        assert weights.weight_for("2025-06-02") == pytest.approx(0.5)
        assert weights.weight_for("2025-06-03") == pytest.approx(0.5)
        assert weights.weight_for("2025-06-01") == 0.0
        assert weights.uniform is False
        assert weights.raw_total == pytest.approx(16.0)

    def test_sum_to_one(self):
        days = [CalendarDay(f"2025-06-{d:02d}", d % 7) for d in range(1, 31)]
        weights = build_weights(2, 2025, 6, days)
        assert sum(weights.weights) == pytest.approx(1.0)
        assert all(w >= 0 for w in weights.weights)

    def test_uniform_fallback(self):
        """A month with no working time spreads evenly."""
        weights = build_weights(1, 2025, 2, [])
        assert weights.uniform is True
        assert len(weights.weights) == 28
        assert all(w == pytest.approx(1 / 28) for w in weights.weights)
        assert sum(weights.weights) == pytest.approx(1.0)

    def test_other_months_ignored(self):
        weights = build_weights(1, 2025, 6, [
            CalendarDay("2025-05-31", 8),
            CalendarDay("2025-06-10", 4),
        ])
        assert weights.weight_for("2025-06-10") == pytest.approx(1.0)

    def test_duplicates_summed(self):
        weights = build_weights(1, 2025, 6, [
            CalendarDay("2025-06-02", 4),
            CalendarDay("2025-06-02", 4),
            CalendarDay("2025-06-03", 8),
        ])
        assert weights.weight_for("2025-06-02") == pytest.approx(0.5)

    def test_negative_clamped(self):
        weights = build_weights(1, 2025, 6, [
            CalendarDay("2025-06-02", -8),
            CalendarDay("2025-06-03", 8),
        ])
        assert weights.weight_for("2025-06-02") == 0.0
        assert weights.weight_for("2025-06-03") == pytest.approx(1.0)

    def test_all_negative_falls_back(self):
        weights = build_weights(1, 2025, 6, [CalendarDay("2025-06-02", -8)])
        assert weights.uniform is True


class TestBuildWeightsForMonth:
    """Tests for build_weights_for_month."""

    def test_both_calendars(self, june_calendar_rows):
        result = build_weights_for_month(june_calendar_rows, 2025, 6)
        assert set(result) == {1, 2}
        assert result[1].uniform is False
        assert result[2].uniform is True
        assert result[2].month == "2025-06"

    def test_missing_calendar_key(self):
        result = build_weights_for_month({}, 2025, 6)
        assert result[1].uniform and result[2].uniform
