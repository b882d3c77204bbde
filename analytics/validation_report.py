# =============================================================================
# MATERIAL VARIANCE ENGINE - VALIDATION REPORT GENERATOR
# =============================================================================
# Self-checks a computed PeriodView and formats the result as text.
# =============================================================================

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from .redistribution import validate_forecast_series

TOLERANCE = 1e-6


@dataclass
class CheckResult:
    """Result of a single check."""
    name: str
    passed: bool
    message: str = ""
    variance: Optional[float] = None


@dataclass
class ValidationReport:
    """Complete validation report."""
    timestamp: str = ""
    period: str = ""
    filters: str = ""

    # Check results by component
    component_checks: Dict[str, List[CheckResult]] = field(default_factory=dict)
    integration_checks: List[CheckResult] = field(default_factory=list)

    # Summary
    total_passed: int = 0
    total_failed: int = 0
    overall_passed: bool = False


def _close(a: float, b: float, tolerance: float = TOLERANCE) -> bool:
    return abs(a - b) <= tolerance * max(1.0, abs(a), abs(b))


def validate_weights(weights_by_calendar) -> List[CheckResult]:
    """Weights are non-negative and sum to 1 for every calendar."""
    results = []
    for calendar_id, weights in sorted(weights_by_calendar.items()):
        total = sum(weights.weights)
        passed = _close(total, 1.0) and all(w >= 0 for w in weights.weights)
        results.append(CheckResult(
            f"calendar_{calendar_id}_normalised", passed,
            "" if passed else f"Weights sum to {total}",
            variance=abs(total - 1.0),
        ))
    return results


def validate_forecast(forecast) -> List[CheckResult]:
    """Bounds, value conservation and daily sums of the forecast series."""
    errors = validate_forecast_series(forecast)
    bound_errors = [e for e in errors if e.startswith("Bound")]
    other_errors = [e for e in errors if not e.startswith("Bound")]
    return [
        CheckResult(
            "bounds_ordered", not bound_errors,
            "" if not bound_errors else bound_errors[0]
        ),
        CheckResult(
            "value_conserved", not other_errors,
            "" if not other_errors else other_errors[0]
        ),
    ]


def validate_actual(actual) -> List[CheckResult]:
    """Cumulative actual is the running sum and matches the key totals."""
    results = []

    running = 0.0
    for day, value in enumerate(actual.daily):
        running += value
        if not _close(running, actual.cumulative[day]):
            results.append(CheckResult(
                "cumulative_running_sum", False,
                f"Cumulative mismatch on {actual.dates[day]}"
            ))
            break
    else:
        results.append(CheckResult("cumulative_running_sum", True))

    key_total = sum(t.actual_value for t in actual.totals.values())
    passed = _close(key_total, running)
    results.append(CheckResult(
        "totals_match_series", passed,
        "" if passed else f"Key totals {key_total} != series total {running}",
        variance=abs(key_total - running),
    ))
    return results


def validate_anomalies(view) -> List[CheckResult]:
    """Anomaly lists carry the right sign and are ordered."""
    over = [r.delta_value for r in view.over_usage]
    under = [abs(r.delta_value) for r in view.under_usage]
    delays = [r.delay_days for r in view.delays]

    over_ok = all(d > 0 for d in over) and over == sorted(over, reverse=True)
    under_ok = all(r.delta_value < 0 for r in view.under_usage) and under == sorted(under, reverse=True)
    delays_ok = all(d > 0 for d in delays) and delays == sorted(delays, reverse=True)
    continuous_ok = (
        all(min(r.delta_month1, r.delta_month2, r.delta_month3) > 0 for r in view.continuous_over)
        and all(max(r.delta_month1, r.delta_month2, r.delta_month3) < 0 for r in view.continuous_under)
    )

    return [
        CheckResult("over_usage_ordered", over_ok, "" if over_ok else "Over usage not ordered"),
        CheckResult("under_usage_ordered", under_ok, "" if under_ok else "Under usage not ordered"),
        CheckResult("continuous_signs", continuous_ok, "" if continuous_ok else "Mixed-sign continuous record"),
        CheckResult("delays_ordered", delays_ok, "" if delays_ok else "Delays not ordered"),
    ]


def validate_department_summary(view) -> CheckResult:
    """Department roll-up adds back up to the period totals."""
    forecast = sum(r.forecast_value for r in view.department_summary)
    actual = sum(r.actual_value for r in view.department_summary)
    passed = (
        _close(forecast, view.period_totals.forecast_value)
        and _close(actual, view.period_totals.actual_value)
    )
    return CheckResult(
        "department_summary_balances", passed,
        "" if passed else "Department summary does not add up to period totals"
    )


def generate_validation_report(view) -> ValidationReport:
    """
    Generate a validation report for a computed PeriodView.

    Args:
        view: PeriodView from compute_period_view

    Returns:
        ValidationReport with all check results
    """
    report = ValidationReport(
        timestamp=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        period=view.period,
        filters=(
            f"Dept: {view.department_filter.mode}"
            + (f" -> {view.department_filter.name}" if view.department_filter.name else "")
            + f" | Material: {view.material_filter}"
        ),
    )

    current = view.current
    report.component_checks["Calendar Weights"] = validate_weights(view.weights)
    if current is not None:
        report.component_checks["Forecast Redistributor"] = validate_forecast(current.forecast)
        report.component_checks["Period Reconciler"] = validate_actual(current.actual)
    report.component_checks["Anomaly Detector"] = validate_anomalies(view)
    report.integration_checks.append(validate_department_summary(view))

    all_checks = []
    for checks in report.component_checks.values():
        all_checks.extend(checks)
    all_checks.extend(report.integration_checks)

    report.total_passed = sum(1 for c in all_checks if c.passed)
    report.total_failed = sum(1 for c in all_checks if not c.passed)
    report.overall_passed = report.total_failed == 0

    return report


def format_report(report: ValidationReport) -> str:
    """Format validation report as text."""
    lines = [
        "=" * 60,
        "VALIDATION REPORT",
        "=" * 60,
        f"Date: {report.timestamp}",
        f"Period: {report.period}",
        f"Filters: {report.filters}",
        "",
        "COMPONENT CHECKS",
        "-" * 40
    ]

    for component, checks in report.component_checks.items():
        passed = sum(1 for c in checks if c.passed)
        total = len(checks)
        status = "PASSED" if passed == total else "FAILED"
        lines.append(f"{component}: {passed}/{total} {status}")
        for check in checks:
            if not check.passed:
                lines.append(f"  - {check.name}: {check.message}")

    if report.integration_checks:
        lines.extend([
            "",
            "INTEGRATION CHECKS",
            "-" * 40
        ])
        for check in report.integration_checks:
            status = "PASSED" if check.passed else "FAILED"
            lines.append(f"{check.name}: {status}")

    lines.extend([
        "",
        "=" * 60,
        f"OVERALL: {'PASSED' if report.overall_passed else 'FAILED'}",
        f"Total: {report.total_passed} passed, {report.total_failed} failed",
        "=" * 60
    ])

    return "\n".join(lines)


# =============================================================================
# END OF VALIDATION REPORT GENERATOR
# =============================================================================
