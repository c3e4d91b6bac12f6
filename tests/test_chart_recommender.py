from __future__ import annotations

import pandas as pd

from omop_query_assistant.services.visualization.chart_recommender import (
    infer_chart_spec,
    limit_bar_categories,
    recommend_chart,
)


def test_category_and_count_makes_bar() -> None:
    rows = [
        {"gender_concept_id": 8507, "gender": "Male", "count": 357},
        {"gender_concept_id": 8532, "gender": "Female", "count": 392},
    ]

    suggestion = recommend_chart(rows, ["gender_concept_id", "gender", "count"])

    assert suggestion["chart_spec"] == {"chart_type": "bar", "x": "gender", "y": "count"}
    assert suggestion["figure_json"]["data"][0]["type"] == "bar"


def test_time_column_makes_line() -> None:
    df = pd.DataFrame(
        {"visit_month": ["2024-01", "2024-02", "2024-03"], "patient_count": [5, 7, 9]}
    )

    spec = infer_chart_spec(df)["chart_spec"]

    assert spec == {"chart_type": "line", "x": "visit_month", "y": "patient_count"}


def test_identifiers_are_not_measures() -> None:
    df = pd.DataFrame({"person_id": [1, 2, 3], "condition_concept_id": [10, 20, 30], "value": [1.5, 2.5, 0.5]})

    spec = infer_chart_spec(df)["chart_spec"]

    assert spec == {"chart_type": "hist", "x": "value"}


def test_single_row_has_no_chart() -> None:
    assert recommend_chart([{"patient_count": 87, "average_age": 62.5}]) is None


def test_bar_keeps_top_categories() -> None:
    df = pd.DataFrame({"drug": [f"d{i}" for i in range(40)], "n": list(range(40))})

    limited = limit_bar_categories(df, "drug", "n", top_n=30)

    assert len(limited) == 31
    assert limited["drug"].iloc[0] == "d39"
    assert limited["drug"].iloc[-1] == "Other"
    assert limited["n"].iloc[-1] == sum(range(10))


def test_days_supply_is_a_measure_not_an_axis() -> None:
    df = pd.DataFrame(
        {"drug_concept_name": ["Metformin", "Lisinopril", "Atorvastatin"], "days_supply": [30, 90, 60]}
    )

    spec = infer_chart_spec(df)["chart_spec"]

    assert spec == {"chart_type": "bar", "x": "drug_concept_name", "y": "days_supply"}


def test_repeated_columns_do_not_break_charting() -> None:
    rows = [{"concept_name": "A", "n": 2}, {"concept_name": "B", "n": 1}]

    suggestion = recommend_chart(rows, ["concept_name", "concept_name", "n"])

    assert suggestion["chart_spec"]["chart_type"] == "bar"
