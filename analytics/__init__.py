# =============================================================================
# MATERIAL VARIANCE ENGINE - ANALYTICS PACKAGE
# =============================================================================
# Forecast allocation and variance analytics for the material dashboard.
#
# Modules:
# - references: Material and department lookup maps
# - periods: Month and date helpers
# - calendar_weights: Per-day calendar weights for a month
# - filters: Department and material filter predicates
# - redistribution: Monthly forecast -> daily value series with pack bounds
# - reconciliation: Actual transactions -> daily series and period totals
# - anomalies: Over/under usage, continuous variance, delayed postings
# - facade: Period view orchestration
# - sources: Read-only collaborator interface and CSV row store
# - settings: YAML configuration
# - validation_report: Self-checks over a computed view
# =============================================================================

__version__ = "0.1.0"
