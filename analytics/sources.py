"""
Read-only collaborator boundary.

The engine reads four kinds of collections for a period: reference tables,
working calendars, forecast lines and actual transactions. `AnalyticsSource`
is that contract; `TableStore` is a generic in-memory row store (loaded from
CSV with pandas) and `StoreSource` maps its table/column names onto the
engine's model. `fetch_period_inputs` issues every read concurrently and
waits for all of them before anything is aggregated.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from .periods import generate_months, month_end, month_start, next_month_start, shift_month
from .reconciliation import ActualTransaction, transaction_from_row
from .redistribution import ForecastLine, forecast_line_from_row

logger = logging.getLogger(__name__)

REFERENCE_KINDS = ("material", "department")

# Prior months fetched alongside the requested one (3-month window).
LOOKBACK_MONTHS = 2

DEFAULT_TABLES = {
    "material": "master",
    "department": "shop",
    "calendar_1": "calender1",
    "calendar_2": "calender2",
    "forecast": "forecast",
    "actual": "actual",
}

# Columns holding dates, normalised to YYYY-MM-DD when a CSV table is loaded.
DATE_COLUMNS = {
    "calendar_1": ["date"],
    "calendar_2": ["date"],
    "forecast": ["month"],
    "actual": ["posting_date", "document_date"],
}


class DataFetchError(RuntimeError):
    """One or more collaborator reads failed; no partial result is produced."""

    def __init__(self, message: str, failures: Optional[Dict[str, BaseException]] = None):
        super().__init__(message)
        self.failures = failures or {}


class AnalyticsSource(ABC):
    """Read-only collections the engine consumes."""

    @abstractmethod
    def get_reference(self, kind: str) -> List[Dict[str, Any]]:
        """Material rows (material_id, price, quantity, pack_size, category)
        or department rows (name, calendar_id)."""

    @abstractmethod
    def get_calendar(self, calendar_id: int, start: str, end: str) -> List[Dict[str, Any]]:
        """Calendar rows (date, working_time, over_time) for [start, end)."""

    @abstractmethod
    def get_forecast_lines(self, month_start: str, month_end_exclusive: str) -> List[Dict[str, Any]]:
        """Forecast rows (material_id, department, monthly_quantity, period_month)
        for [month_start, month_end_exclusive)."""

    @abstractmethod
    def get_actual_transactions(self, start: str, end: str) -> List[Dict[str, Any]]:
        """Actual rows (material_id, department, quantity, posting_date,
        document_date) posted within [start, end]."""


class TableStore:
    """
    Generic in-memory row store with equality and range filters.

    Range filters compare values as strings, so date columns must hold
    ISO-8601 text (CSV loading normalises them).
    """

    def __init__(self, tables: Optional[Mapping[str, Iterable[Mapping]]] = None):
        self._tables: Dict[str, List[Dict[str, Any]]] = {}
        for name, rows in (tables or {}).items():
            self.insert(name, rows)

    @classmethod
    def from_csv_dir(
        cls,
        data_dir: Path,
        date_columns: Optional[Mapping[str, Sequence[str]]] = None
    ) -> "TableStore":
        """Load every `<table>.csv` in `data_dir` as a table."""
        data_dir = Path(data_dir)
        if not data_dir.is_dir():
            raise FileNotFoundError(f"Data directory not found: {data_dir}")

        date_columns = date_columns or {}
        store = cls()
        for path in sorted(data_dir.glob("*.csv")):
            frame = pd.read_csv(path, dtype=str, keep_default_na=False)
            for column in date_columns.get(path.stem, []):
                if column in frame.columns:
                    frame[column] = normalize_dates(frame[column])
            store.insert(path.stem, frame.to_dict(orient="records"))
            logger.debug("Loaded %d rows into table %s", len(frame), path.stem)
        return store

    def insert(self, table: str, rows: Iterable[Mapping]) -> int:
        bucket = self._tables.setdefault(table, [])
        count = 0
        for row in rows:
            bucket.append(dict(row))
            count += 1
        return count

    def select(
        self,
        table: str,
        columns: Optional[Sequence[str]] = None,
        eq: Optional[Mapping[str, Any]] = None,
        gte: Optional[Mapping[str, Any]] = None,
        lt: Optional[Mapping[str, Any]] = None,
        lte: Optional[Mapping[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """Rows of `table` matching every filter, projected onto `columns`."""
        if table not in self._tables:
            raise KeyError(f"Unknown table: {table}")

        checks: List[Callable[[Dict[str, Any]], bool]] = []
        for column, value in (eq or {}).items():
            checks.append(lambda row, c=column, v=value: str(row.get(c, "")) == str(v))
        for column, value in (gte or {}).items():
            checks.append(lambda row, c=column, v=value: _present(row, c) and str(row[c]) >= str(v))
        for column, value in (lt or {}).items():
            checks.append(lambda row, c=column, v=value: _present(row, c) and str(row[c]) < str(v))
        for column, value in (lte or {}).items():
            checks.append(lambda row, c=column, v=value: _present(row, c) and str(row[c]) <= str(v))

        result = []
        for row in self._tables[table]:
            if all(check(row) for check in checks):
                if columns:
                    result.append({c: row.get(c) for c in columns})
                else:
                    result.append(dict(row))
        return result


def _present(row: Mapping, column: str) -> bool:
    value = row.get(column)
    return value is not None and str(value) != ""


def normalize_dates(values: pd.Series) -> pd.Series:
    """Parse heterogeneous date text into YYYY-MM-DD; unparseable -> ""."""
    parsed = pd.to_datetime(
        values.where(values.str.strip() != ""), format="mixed", errors="coerce"
    )
    return parsed.dt.strftime("%Y-%m-%d").fillna("")


class StoreSource(AnalyticsSource):
    """AnalyticsSource over a TableStore using the dashboard's table layout."""

    def __init__(self, store: TableStore, tables: Optional[Mapping[str, str]] = None):
        self.store = store
        self.tables = dict(DEFAULT_TABLES)
        self.tables.update(tables or {})

    @classmethod
    def from_csv_dir(cls, data_dir: Path, tables: Optional[Mapping[str, str]] = None) -> "StoreSource":
        names = dict(DEFAULT_TABLES)
        names.update(tables or {})
        date_columns = {names[kind]: columns for kind, columns in DATE_COLUMNS.items()}
        return cls(TableStore.from_csv_dir(data_dir, date_columns), names)

    def get_reference(self, kind: str) -> List[Dict[str, Any]]:
        if kind not in REFERENCE_KINDS:
            raise ValueError(f"Unknown reference kind: {kind}")
        rows = self.store.select(self.tables[kind])
        if kind == "material":
            return [
                {
                    "material_id": row.get("no_mat"),
                    "price": row.get("price"),
                    "quantity": row.get("quantity"),
                    "pack_size": row.get("pack_size"),
                    "category": row.get("category"),
                }
                for row in rows
            ]
        return [{"name": row.get("dept"), "calendar_id": row.get("loc")} for row in rows]

    def get_calendar(self, calendar_id: int, start: str, end: str) -> List[Dict[str, Any]]:
        table = self.tables.get(f"calendar_{calendar_id}")
        if table is None:
            raise ValueError(f"Unknown calendar id: {calendar_id}")
        return self.store.select(
            table,
            columns=["date", "working_time", "over_time"],
            gte={"date": start},
            lt={"date": end},
        )

    def get_forecast_lines(self, month_start: str, month_end_exclusive: str) -> List[Dict[str, Any]]:
        rows = self.store.select(
            self.tables["forecast"],
            gte={"month": month_start},
            lt={"month": month_end_exclusive},
        )
        return [
            {
                "material_id": row.get("no_mat"),
                "department": row.get("shop"),
                "monthly_quantity": row.get("usage"),
                "period_month": str(row.get("month") or "")[:7],
            }
            for row in rows
        ]

    def get_actual_transactions(self, start: str, end: str) -> List[Dict[str, Any]]:
        rows = self.store.select(
            self.tables["actual"],
            gte={"posting_date": start},
            lte={"posting_date": end},
        )
        return [
            {
                "material_id": row.get("no_mat"),
                "department": row.get("dept"),
                "quantity": row.get("quantity"),
                "posting_date": row.get("posting_date"),
                "document_date": row.get("document_date") or None,
            }
            for row in rows
        ]


@dataclass
class PeriodInputs:
    """Everything the engine needs for one period, read in one barrier."""
    period: str
    months: List[str] = field(default_factory=list)  # oldest -> current
    material_rows: List[Dict[str, Any]] = field(default_factory=list)
    department_rows: List[Dict[str, Any]] = field(default_factory=list)
    calendar_rows: Dict[int, List[Dict[str, Any]]] = field(default_factory=dict)
    forecast_lines: List[ForecastLine] = field(default_factory=list)
    transactions: List[ActualTransaction] = field(default_factory=list)


def window_months(period: str) -> List[str]:
    """The analysis window ending at `period`, oldest first."""
    return generate_months(shift_month(period, -LOOKBACK_MONTHS), period)


def build_period_inputs(
    period: str,
    material_rows: Iterable[Mapping],
    department_rows: Iterable[Mapping],
    calendar_rows: Mapping[int, Iterable[Mapping]],
    forecast_rows: Iterable[Mapping],
    actual_rows: Iterable[Mapping]
) -> PeriodInputs:
    """Assemble PeriodInputs from raw, engine-named rows."""
    forecast_lines = [line for line in map(forecast_line_from_row, forecast_rows) if line]
    transactions = [t for t in map(transaction_from_row, actual_rows) if t]
    return PeriodInputs(
        period=period,
        months=window_months(period),
        material_rows=list(material_rows),
        department_rows=list(department_rows),
        calendar_rows={cid: list(rows) for cid, rows in calendar_rows.items()},
        forecast_lines=forecast_lines,
        transactions=transactions,
    )


async def fetch_period_inputs(source: AnalyticsSource, period: str) -> PeriodInputs:
    """
    Read every collection for the window ending at `period` concurrently.

    Raises:
        DataFetchError: if any read fails (naming every failed read)
    """
    months = window_months(period)
    start = month_start(months[0])
    end_exclusive = next_month_start(period)
    end_inclusive = month_end(period)

    reads = {
        "material": (source.get_reference, "material"),
        "department": (source.get_reference, "department"),
        "calendar_1": (source.get_calendar, 1, start, end_exclusive),
        "calendar_2": (source.get_calendar, 2, start, end_exclusive),
        "forecast": (source.get_forecast_lines, start, end_exclusive),
        "actual": (source.get_actual_transactions, start, end_inclusive),
    }

    logger.info("Fetching inputs for %s (%s .. %s)", period, start, end_inclusive)
    results = await asyncio.gather(
        *(asyncio.to_thread(call[0], *call[1:]) for call in reads.values()),
        return_exceptions=True,
    )

    data: Dict[str, Any] = {}
    failures: Dict[str, BaseException] = {}
    for name, result in zip(reads, results):
        if isinstance(result, BaseException):
            failures[name] = result
        else:
            data[name] = result

    if failures:
        names = ", ".join(sorted(failures))
        logger.error("Input fetch for %s failed: %s", period, names)
        first = next(iter(failures.values()))
        raise DataFetchError(f"Failed to read {names} for {period}", failures) from first

    inputs = build_period_inputs(
        period,
        material_rows=data["material"],
        department_rows=data["department"],
        calendar_rows={1: data["calendar_1"], 2: data["calendar_2"]},
        forecast_rows=data["forecast"],
        actual_rows=data["actual"],
    )
    logger.info(
        "Fetched %d forecast lines and %d transactions for %s",
        len(inputs.forecast_lines), len(inputs.transactions), period
    )
    return inputs
