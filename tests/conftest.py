# =============================================================================
# MATERIAL VARIANCE ENGINE - PYTEST CONFIGURATION
# =============================================================================
# Shared fixtures and configuration for all tests.
# =============================================================================

import pytest
import sys
import os
from pathlib import Path

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


@pytest.fixture
def project_root():
    """Get project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def data_dir(project_root):
    """Get sample data directory."""
    return project_root / "data"


@pytest.fixture
def material_rows():
    """Material reference rows (engine field names)."""
    return [
        {"material_id": "M1", "price": 200, "quantity": 20, "category": "Direct Material"},
        {"material_id": "M2", "price": 50, "quantity": 1, "pack_size": 10, "category": "im"},
        {"material_id": "M3", "price": 10, "quantity": 1, "pack_size": 1, "category": "Consumable"},
    ]


@pytest.fixture
def department_rows():
    """Department reference rows (engine field names)."""
    return [
        {"name": "Press Shop", "calendar_id": 1},
        {"name": "Painting", "calendar_id": 2},
    ]


@pytest.fixture
def june_calendar_rows():
    """Calendar 1 with 8h on 2025-06-02 and 2025-06-03 only."""
    return {
        1: [
            {"date": "2025-06-02", "working_time": 8, "over_time": 0},
            {"date": "2025-06-03", "working_time": 8, "over_time": 0},
        ],
        2: [],
    }


@pytest.fixture
def make_inputs():
    """Factory for PeriodInputs from raw engine-named rows."""
    from analytics.sources import build_period_inputs

    def _make(period, materials=(), departments=(), calendars=None,
              forecast=(), actual=()):
        return build_period_inputs(
            period,
            material_rows=list(materials),
            department_rows=list(departments),
            calendar_rows=calendars or {1: [], 2: []},
            forecast_rows=list(forecast),
            actual_rows=list(actual),
        )

    return _make


@pytest.fixture
def sample_source(data_dir):
    """StoreSource over the sample CSV dataset."""
    from analytics.sources import StoreSource
    return StoreSource.from_csv_dir(data_dir)


@pytest.fixture
def june_view(sample_source):
    """Period view for 2025-06 over the sample dataset."""
    from analytics.facade import load_period_view
    return load_period_view(sample_source, "2025-06")
