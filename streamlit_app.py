from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional

import plotly.graph_objects as go
import streamlit as st

from analytics.facade import PeriodView, load_period_view
from analytics.filters import DEPT_ALL, DEPT_LIST, DEPT_UNASSIGNED, DepartmentFilter, MATERIAL_MODES
from analytics.periods import format_month
from analytics.references import clean_text
from analytics.settings import configure_logging, load_settings, resolve_data_dir
from analytics.sources import DataFetchError, StoreSource
from ui.dashboard_data import DashboardSnapshot, build_snapshot


st.set_page_config(
    page_title="Material Monitoring",
    page_icon="M",
    layout="wide",
    initial_sidebar_state="expanded",
)


THEMES: Dict[str, Dict[str, str]] = {
    "light": {
        "bg": "#F4F7FB",
        "surface": "#FFFFFF",
        "surface_alt": "#EEF3F9",
        "text": "#101828",
        "text_muted": "#475467",
        "border": "#D4DCE7",
        "success": "#117A37",
        "warning": "#B54708",
        "critical": "#B42318",
        "grid": "#DFE6F0",
    },
    "dark": {
        "bg": "#061529",
        "surface": "#0E223E",
        "surface_alt": "#132A4A",
        "text": "#E7EEF8",
        "text_muted": "#A3B4CC",
        "border": "#2A4265",
        "success": "#2FC277",
        "warning": "#F0A646",
        "critical": "#FF6B6B",
        "grid": "#2D4469",
    },
}

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]
GRAPH_MODES = ["Combination", "Daily Control", "Accumulative Control"]

# Cached CSV tables are re-read after this long, or on "Reload data".
DATA_TTL_SECONDS = 300


def _fmt_value(value: float, currency: str) -> str:
    return f"{currency} {value:,.0f}"


def _fmt_pct(value: Optional[float]) -> str:
    return "n/a" if value is None else f"{value:.1f}%"


def _apply_theme(theme: str) -> None:
    t = THEMES[theme]
    st.markdown(
        f"""
<style>
:root {{
  --success: {t["success"]};
  --warning: {t["warning"]};
  --critical: {t["critical"]};
  --text-muted: {t["text_muted"]};
}}
.stApp {{ background: {t["bg"]}; color: {t["text"]}; }}
.mon-kpi {{
  background: {t["surface"]};
  border: 1px solid {t["border"]};
  border-radius: 12px;
  padding: 14px 16px;
}}
.mon-kpi-title {{ color: {t["text_muted"]}; font-size: 0.8rem; text-transform: uppercase; }}
.mon-kpi-value {{ font-size: 1.45rem; font-weight: 700; }}
.mon-kpi-delta {{ font-size: 0.8rem; }}
.mon-panel-title {{ font-weight: 600; margin: 12px 0 6px 0; }}
</style>
""",
        unsafe_allow_html=True,
    )


def _chart_palette(theme: str) -> List[str]:
    if theme == "dark":
        return ["#4A9EFF", "#2FC277", "#F0A646", "#FF6B6B", "#79D3FF", "#C7A7FF"]
    return ["#165DFF", "#1F9F5A", "#C68A00", "#D64545", "#0F766E", "#7C3AED"]


def _style_figure(fig, theme: str, height: int = 420):
    t = THEMES[theme]
    fig.update_layout(
        height=height,
        margin=dict(l=14, r=14, t=18, b=14),
        paper_bgcolor=t["surface"],
        plot_bgcolor=t["surface_alt"],
        font=dict(color=t["text"]),
        legend=dict(bgcolor="rgba(0,0,0,0)", font=dict(color=t["text"]), orientation="h"),
    )
    fig.update_xaxes(showgrid=True, gridcolor=t["grid"], tickfont=dict(color=t["text_muted"]))
    fig.update_yaxes(showgrid=True, gridcolor=t["grid"], tickfont=dict(color=t["text_muted"]))
    return fig


def _kpi_tile(title: str, value: str, delta: str, tone: str = "neutral") -> None:
    tone_color = {
        "good": "var(--success)",
        "warn": "var(--warning)",
        "bad": "var(--critical)",
        "neutral": "var(--text-muted)",
    }
    st.markdown(
        f"""
<div class="mon-kpi">
  <div class="mon-kpi-title">{title}</div>
  <div class="mon-kpi-value">{value}</div>
  <div class="mon-kpi-delta" style="color:{tone_color.get(tone, tone_color['neutral'])};">{delta}</div>
</div>
""",
        unsafe_allow_html=True,
    )


@st.cache_resource(show_spinner=False, ttl=DATA_TTL_SECONDS)
def _source(data_dir: str, tables_json: str) -> StoreSource:
    return StoreSource.from_csv_dir(Path(data_dir), json.loads(tables_json))


@st.cache_data(show_spinner=False, ttl=DATA_TTL_SECONDS)
def _department_options(data_dir: str, tables_json: str) -> List[str]:
    rows = _source(data_dir, tables_json).get_reference("department")
    return sorted({name for name in (clean_text(r.get("name")) for r in rows) if name})


def _compute_view(
    data_dir: str,
    tables_json: str,
    period: str,
    dept_mode: str,
    dept: Optional[str],
    material: str
) -> PeriodView:
    source = _source(data_dir, tables_json)
    return load_period_view(source, period, DepartmentFilter(mode=dept_mode, name=dept), material)


def _graph(snapshot: DashboardSnapshot, mode: str, theme: str) -> go.Figure:
    daily = snapshot.daily
    palette = _chart_palette(theme)
    fig = go.Figure()

    if mode in ("Combination", "Daily Control"):
        fig.add_trace(go.Bar(x=daily["day"], y=daily["actual_value"], name="Actual (Daily)", marker_color=palette[0]))
        fig.add_trace(go.Bar(x=daily["day"], y=daily["forecast_value"], name="Forecast (Daily)", marker_color=palette[2]))

    if mode in ("Combination", "Accumulative Control"):
        axis = "y2" if mode == "Combination" else "y"
        fig.add_trace(go.Scatter(
            x=daily["day"], y=daily["cumulative_forecast_upper"], mode="lines",
            name="Cum Forecast (Upper)", line=dict(color=palette[2], width=0), yaxis=axis,
        ))
        fig.add_trace(go.Scatter(
            x=daily["day"], y=daily["cumulative_forecast_lower"], mode="lines",
            name="Cum Forecast (Lower)", line=dict(color=palette[2], width=0),
            fill="tonexty", opacity=0.25, yaxis=axis,
        ))
        fig.add_trace(go.Scatter(
            x=daily["day"], y=daily["cumulative_forecast"], mode="lines",
            name="Cum Forecast", line=dict(color=palette[2], width=3, dash="dash"), yaxis=axis,
        ))
        fig.add_trace(go.Scatter(
            x=daily["day"], y=daily["cumulative_actual"], mode="lines",
            name="Cum Actual", line=dict(color=palette[0], width=3), yaxis=axis,
        ))

    if mode == "Combination":
        fig.update_layout(barmode="group", yaxis2=dict(overlaying="y", side="right", showgrid=False))
    elif mode == "Daily Control":
        fig.update_layout(barmode="group")
    return _style_figure(fig, theme, height=460 if mode == "Combination" else 420)


def _render_monitoring(snapshot: DashboardSnapshot, currency: str, theme: str) -> None:
    kpis = snapshot.kpis
    usage = kpis["usage_pct"]
    kpi_cols = st.columns(4)
    with kpi_cols[0]:
        _kpi_tile("Forecast", _fmt_value(kpis["forecast_value"], currency), "Calendar-weighted plan")
    with kpi_cols[1]:
        _kpi_tile("Actual", _fmt_value(kpis["actual_value"], currency), "Posted in period")
    with kpi_cols[2]:
        variance = kpis["variance_value"]
        _kpi_tile("Variance", _fmt_value(variance, currency), "Actual - Forecast", "bad" if variance > 0 else "good")
    with kpi_cols[3]:
        tone = "neutral" if usage is None else ("bad" if usage > 100 else "good")
        _kpi_tile("Usage", _fmt_pct(usage), f"{kpis['delay_count']} delayed postings", tone)

    mode = st.selectbox("Graph", GRAPH_MODES, index=0)
    if snapshot.daily.empty:
        st.warning("No daily data for the selected filters.")
    else:
        st.plotly_chart(_graph(snapshot, mode, theme), width="stretch")

    st.markdown('<div class="mon-panel-title">Department Summary</div>', unsafe_allow_html=True)
    st.dataframe(snapshot.department_summary, width="stretch", hide_index=True)


def _render_anomalies(snapshot: DashboardSnapshot) -> None:
    tabs = st.tabs(["Over Usage", "Under Usage", "Continuous Over", "Continuous Under", "Delayed Postings", "Missing in Master"])
    frames = [
        snapshot.over_usage,
        snapshot.under_usage,
        snapshot.continuous_over,
        snapshot.continuous_under,
        snapshot.delays,
        snapshot.missing_materials,
    ]
    for tab, frame in zip(tabs, frames):
        with tab:
            if frame.empty:
                st.info("Nothing to show for the selected filters.")
            else:
                st.dataframe(frame, width="stretch", hide_index=True)


def _render_data_room(snapshot: DashboardSnapshot, view: PeriodView) -> None:
    st.dataframe(snapshot.daily, width="stretch", hide_index=True)
    st.download_button(
        "Download daily CSV", snapshot.daily.to_csv(index=False),
        file_name=f"monitoring_{view.period}.csv", mime="text/csv",
    )
    st.download_button(
        "Download JSON bundle", json.dumps(view.to_dict(), indent=2),
        file_name=f"monitoring_{view.period}.json", mime="application/json",
    )


def main() -> None:
    settings = load_settings()
    configure_logging(settings)
    currency = settings.get("currency_label", "")
    tables_json = json.dumps(settings.get("tables", {}), sort_keys=True)
    sections = ["Monitoring", "Anomalies", "Data Room"]
    today = date.today()

    with st.sidebar:
        st.markdown("## Material Monitoring")
        section = st.radio("Navigation", sections, index=0)
        dark_mode = st.toggle("Dark mode", value=False)
        data_dir = st.text_input("Data directory", value=str(resolve_data_dir(settings)))
        if st.button("Reload data"):
            _source.clear()
            _department_options.clear()
        month = st.selectbox("Month", list(range(1, 13)), index=today.month - 1,
                             format_func=lambda m: MONTH_NAMES[m - 1])
        years = list(range(today.year - 3, today.year + 4))
        year = st.selectbox("Year", years, index=years.index(today.year))
        dept_mode = st.selectbox("Department", [DEPT_ALL, DEPT_LIST, DEPT_UNASSIGNED], index=0)

        dept = None
        if dept_mode == DEPT_LIST:
            try:
                options = _department_options(data_dir, tables_json)
            except (OSError, KeyError) as exc:
                st.error(f"Failed to load departments: {exc}")
                options = []
            if not options:
                st.warning("No departments available.")
                return
            dept = st.selectbox("Select department", options)
        material = st.selectbox("Material", list(MATERIAL_MODES), index=0)

    theme = "dark" if dark_mode else "light"
    _apply_theme(theme)

    period = format_month(year, month)
    try:
        view = _compute_view(data_dir, tables_json, period, dept_mode, dept, material)
    except DataFetchError as exc:
        st.error(f"Failed to load data for {period}: {exc}")
        return
    except (OSError, KeyError, ValueError) as exc:
        st.error(f"Failed to compute view: {type(exc).__name__}: {exc}")
        return

    snapshot = build_snapshot(view)
    st.markdown(f"### {MONTH_NAMES[month - 1]} {year}")
    st.caption(
        f"Dept: {view.department_filter.mode}"
        + (f" -> {view.department_filter.name}" if view.department_filter.name else "")
        + f" | Material: {view.material_filter}"
    )

    if section == "Monitoring":
        _render_monitoring(snapshot, currency, theme)
    elif section == "Anomalies":
        _render_anomalies(snapshot)
    else:
        _render_data_room(snapshot, view)


if __name__ == "__main__":
    main()
