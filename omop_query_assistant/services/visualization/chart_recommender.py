"""Pick a chart for a query result and render it with Plotly.

Only the result columns are used: names hint at time axes and OMOP
identifiers, dtypes separate measures from categories.
"""
from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional

import pandas as pd
from pandas.api import types as pdt
import plotly.express as px
import plotly.io as pio

from omop_query_assistant.models.chart_spec import ChartSpec, ChartSuggestion
from omop_query_assistant.utils.logging import log_event


BAR_MAX_CATEGORIES = 30
_BAR_OTHER_LABEL = "Other"
_TIME_TOKENS = frozenset(
    {"date", "datetime", "time", "timestamp", "month", "year", "day", "week", "quarter"}
)
_NAME_SPLIT_RE = re.compile(r"[^a-z0-9]+")
# OMOP keys are numeric but never measures
_IDENTIFIER_SUFFIXES = ("_id", "_source_value")
_PREFERRED_NUMERIC_Y = (
    "count",
    "patient_count",
    "value_as_number",
    "value",
    "average",
    "avg",
    "total",
    "rate",
    "days",
)


def _is_identifier_col(col: str) -> bool:
    lower = col.lower()
    return lower == "id" or lower.endswith(_IDENTIFIER_SUFFIXES)


def _is_time_col(col: str, series: pd.Series) -> bool:
    if pdt.is_datetime64_any_dtype(series):
        return True
    # whole name parts only: days_supply is a measure, not an axis
    parts = _NAME_SPLIT_RE.split(col.lower())
    return any(part in _TIME_TOKENS for part in parts) and not _is_identifier_col(col)


def _numeric_cols(df: pd.DataFrame, exclude: List[str]) -> List[str]:
    cols = [
        c
        for c in df.columns
        if c not in exclude
        and pdt.is_numeric_dtype(df[c])
        and not pdt.is_bool_dtype(df[c])
        and not _is_identifier_col(c)
    ]
    cols.sort(
        key=lambda c: next(
            (idx for idx, token in enumerate(_PREFERRED_NUMERIC_Y) if token in c.lower()),
            999,
        )
    )
    return cols


def infer_chart_spec(df: pd.DataFrame) -> Optional[Dict[str, Any]]:
    """Infer a chart spec using only result columns."""
    if len(df) < 2:
        return None
    cols = [str(c) for c in df.columns]
    time_cols = [c for c in cols if _is_time_col(c, df[c])]
    numeric_cols = _numeric_cols(df, exclude=time_cols)
    categorical_cols = [
        c
        for c in cols
        if c not in time_cols
        and not _is_identifier_col(c)
        and (df[c].dtype == "object" or isinstance(df[c].dtype, pd.CategoricalDtype) or pdt.is_bool_dtype(df[c]))
    ]

    if time_cols and numeric_cols:
        return {
            "chart_spec": {"chart_type": "line", "x": time_cols[0], "y": numeric_cols[0]},
            "reason": "Detected time-like and numeric columns for a trend chart.",
        }
    if len(numeric_cols) >= 2:
        return {
            "chart_spec": {"chart_type": "scatter", "x": numeric_cols[0], "y": numeric_cols[1]},
            "reason": "Detected multiple numeric columns for correlation.",
        }
    if categorical_cols and numeric_cols:
        return {
            "chart_spec": {"chart_type": "bar", "x": categorical_cols[0], "y": numeric_cols[0]},
            "reason": "Detected category + numeric for comparison.",
        }
    if len(numeric_cols) == 1:
        return {
            "chart_spec": {"chart_type": "hist", "x": numeric_cols[0]},
            "reason": "Detected a single numeric column for distribution.",
        }
    return None


def limit_bar_categories(
    df: pd.DataFrame,
    category_col: str,
    value_col: str,
    top_n: int = BAR_MAX_CATEGORIES,
) -> pd.DataFrame:
    """Keep the ``top_n`` categories by total value and roll the rest into "Other"."""
    chart_df = df[[category_col, value_col]].copy()
    chart_df[category_col] = chart_df[category_col].astype(str)
    chart_df[value_col] = pd.to_numeric(chart_df[value_col], errors="coerce").fillna(0.0)
    totals = (
        chart_df.groupby(category_col, dropna=False, sort=False)[value_col]
        .sum()
        .sort_values(ascending=False, kind="stable")
    )
    if len(totals) <= top_n:
        return totals.reset_index()

    kept = totals.head(top_n)
    other = float(totals.iloc[top_n:].sum())
    limited = pd.concat(
        [kept, pd.Series({_BAR_OTHER_LABEL: other}, name=value_col)]
    ).rename_axis(category_col)
    log_event(
        "chart.bar.capped_categories",
        {"category_col": category_col, "before": len(totals), "after": top_n + 1},
    )
    return limited.reset_index()


def build_figure(chart_spec: Dict[str, Any], df: pd.DataFrame) -> Optional[Dict[str, Any]]:
    chart_type = chart_spec.get("chart_type")
    x = chart_spec.get("x")
    y = chart_spec.get("y")
    fig = None
    if chart_type == "line" and x and y:
        fig = px.line(df.sort_values(x, kind="stable"), x=x, y=y, markers=True)
    elif chart_type == "scatter" and x and y:
        fig = px.scatter(df, x=x, y=y)
    elif chart_type == "bar" and x and y:
        fig = px.bar(limit_bar_categories(df, x, y), x=x, y=y)
    elif chart_type == "hist" and x:
        fig = px.histogram(df, x=x)
    if fig is None:
        return None
    # Numpy types in figure JSON can break Pydantic serialization
    return json.loads(pio.to_json(fig))


def recommend_chart(
    rows: List[Dict[str, Any]],
    columns: Optional[List[str]] = None,
) -> Optional[Dict[str, Any]]:
    if not rows:
        return None
    df = pd.DataFrame(rows)
    if columns:
        df = df[[c for c in dict.fromkeys(columns) if c in df.columns]]
    plan = infer_chart_spec(df)
    if plan is None:
        log_event("chart.none", {"columns": list(map(str, df.columns)), "rows": len(df)})
        return None
    spec = plan["chart_spec"]
    suggestion = ChartSuggestion(
        chart_spec=ChartSpec(**spec),
        reason=plan["reason"],
        figure_json=build_figure(spec, df),
    )
    log_event("chart.suggested", {"chart_type": spec["chart_type"], "x": spec.get("x"), "y": spec.get("y")})
    return suggestion.model_dump()
