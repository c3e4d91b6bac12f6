"""Canned OMOP-looking result sets for running without a database.

The rows are picked by keyword matching on the SQL text so the UI shows
plausible results for the common example questions.
"""
from __future__ import annotations

from datetime import date, timedelta
import random
import re
from typing import Any, Dict, List


_SELECT_LIST_RE = re.compile(r"select\s+(.+?)\s+from", re.IGNORECASE | re.DOTALL)
_ALIAS_RE = re.compile(r"as\s+(\w+)", re.IGNORECASE)
_GREEK = ("Alpha", "Beta", "Gamma", "Delta", "Epsilon")
_GENDERS = ("Male", "Female", "Other", "Male", "Female")
_MOCK_ROW_COUNT = 5

GENDER_ROWS: List[Dict[str, Any]] = [
    {"gender_concept_id": 8507, "gender": "Male", "count": 357},
    {"gender_concept_id": 8532, "gender": "Female", "count": 392},
    {"gender_concept_id": 8521, "gender": "Other", "count": 12},
]
AGE_GROUP_ROWS: List[Dict[str, Any]] = [
    {"age_group": "0-17", "count": 120},
    {"age_group": "18-34", "count": 210},
    {"age_group": "35-49", "count": 185},
    {"age_group": "50-64", "count": 156},
    {"age_group": "65+", "count": 90},
]
DIAGNOSIS_ROWS: List[Dict[str, Any]] = [
    {"diagnosis": "Essential hypertension", "count": 125},
    {"diagnosis": "Hyperlipidemia", "count": 98},
    {"diagnosis": "Type 2 diabetes mellitus", "count": 87},
    {"diagnosis": "Acute bronchitis", "count": 76},
    {"diagnosis": "Low back pain", "count": 72},
    {"diagnosis": "Anxiety disorder", "count": 68},
    {"diagnosis": "Major depressive disorder", "count": 56},
    {"diagnosis": "Acute upper respiratory infection", "count": 52},
    {"diagnosis": "Gastroesophageal reflux disease", "count": 49},
    {"diagnosis": "Osteoarthritis", "count": 43},
]
DIABETES_ROWS: List[Dict[str, Any]] = [
    {"patient_count": 87, "average_age": 62.5, "male_count": 41, "female_count": 46},
]
MEDICATION_ROWS: List[Dict[str, Any]] = [
    {"medication_name": "Lisinopril", "patient_count": 78},
    {"medication_name": "Atorvastatin", "patient_count": 65},
    {"medication_name": "Metformin", "patient_count": 59},
    {"medication_name": "Amlodipine", "patient_count": 52},
    {"medication_name": "Omeprazole", "patient_count": 48},
    {"medication_name": "Levothyroxine", "patient_count": 45},
    {"medication_name": "Simvastatin", "patient_count": 41},
    {"medication_name": "Metoprolol", "patient_count": 39},
    {"medication_name": "Hydrochlorothiazide", "patient_count": 35},
    {"medication_name": "Ibuprofen", "patient_count": 32},
]
PROCEDURE_ROWS: List[Dict[str, Any]] = [
    {"procedure_name": "Routine physical examination", "count": 145},
    {"procedure_name": "Blood test", "count": 132},
    {"procedure_name": "Vaccination", "count": 98},
    {"procedure_name": "Cardiac evaluation", "count": 76},
    {"procedure_name": "X-ray imaging", "count": 67},
]
MEASUREMENT_ROWS: List[Dict[str, Any]] = [
    {"measurement_name": "Blood pressure reading", "count": 210},
    {"measurement_name": "HbA1c test", "count": 145},
    {"measurement_name": "Cholesterol test", "count": 132},
    {"measurement_name": "Renal function test", "count": 98},
    {"measurement_name": "Liver function test", "count": 87},
]
VISIT_ROWS: List[Dict[str, Any]] = [
    {"visit_type": "Outpatient", "count": 450},
    {"visit_type": "Emergency", "count": 120},
    {"visit_type": "Inpatient", "count": 75},
    {"visit_type": "Pharmacy", "count": 210},
    {"visit_type": "Telehealth", "count": 95},
]


def _any(sql: str, *words: str) -> bool:
    return any(word in sql for word in words)


def _canned_rows(sql: str) -> List[Dict[str, Any]] | None:
    # Order matters: the first matching rule wins.
    if "person" in sql and "gender" in sql:
        return GENDER_ROWS
    if "age" in sql or ("person" in sql and "year_of_birth" in sql):
        return AGE_GROUP_ROWS
    if _any(sql, "condition_occurrence", "diagnoses", "conditions"):
        return DIAGNOSIS_ROWS
    if "diabetes" in sql:
        return DIABETES_ROWS
    if _any(sql, "drug_exposure", "medications", "drugs"):
        return MEDICATION_ROWS
    if _any(sql, "procedure_occurrence", "procedures"):
        return PROCEDURE_ROWS
    if _any(sql, "measurement", "lab"):
        return MEASUREMENT_ROWS
    if _any(sql, "visit_occurrence", "visits"):
        return VISIT_ROWS
    return None


def select_list_columns(sql: str) -> List[str] | None:
    """Column names from the first ``SELECT ... FROM`` list, or None."""
    match = _SELECT_LIST_RE.search(sql)
    if not match:
        return None
    columns: List[str] = []
    for raw in match.group(1).split(","):
        col = raw.strip().split(" as ")[-1].strip()
        if col == "*" or not col:
            continue
        if "(" in col and ")" in col:
            alias = _ALIAS_RE.search(col)
            col = alias.group(1) if alias else "value"
        elif "." in col:
            col = col.rsplit(".", 1)[-1]
        if col == "*":
            continue
        columns.append(col)
    return columns


def _mock_value(column: str, index: int, rng: random.Random) -> Any:
    if "id" in column:
        return 1000 + index
    if "date" in column or "time" in column:
        return (date.today() - timedelta(days=30 * index)).isoformat()
    if "count" in column or "number" in column:
        return rng.randint(1, 100)
    if "name" in column:
        return _GREEK[index]
    if "gender" in column:
        return _GENDERS[index]
    if "concept" in column:
        return 8000 + index * 100
    return f"Value {index + 1}"


def generate_mock_rows(sql: str, rng: random.Random | None = None) -> List[Dict[str, Any]]:
    rng = rng or random.Random()
    text = (sql or "").lower()
    canned = _canned_rows(text)
    if canned is not None:
        return [dict(row) for row in canned]

    columns = select_list_columns(text)
    if columns:
        return [
            {column: _mock_value(column, i, rng) for column in columns}
            for i in range(_MOCK_ROW_COUNT)
        ]
    return [
        {"id": 1000 + i, "value": f"Result {i + 1}", "count": rng.randint(1, 100)}
        for i in range(_MOCK_ROW_COUNT)
    ]
