from __future__ import annotations

from fastapi import APIRouter

from omop_query_assistant.services.omop.schema import OMOP_CORE_TABLES, OMOP_TABLES_INFO

router = APIRouter()


@router.get("/tables")
def tables() -> dict:
    return {
        "version": "5.4",
        "tables": [
            {"name": name, "description": description}
            for name, description in OMOP_TABLES_INFO.items()
        ],
        "coreTables": OMOP_CORE_TABLES,
    }
