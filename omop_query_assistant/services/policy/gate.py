from __future__ import annotations

import re
from fastapi import HTTPException

from omop_query_assistant.core.config import get_settings
from omop_query_assistant.services.omop.schema import OMOP_TABLES_INFO


_WRITE_KEYWORDS = re.compile(
    r"\b(delete|update|insert|merge|drop|alter|truncate|create|grant|revoke)\b",
    re.IGNORECASE,
)
_TABLE_REF = re.compile(r"\b(from|join)\s+([A-Za-z0-9_.$#\"]+)", re.IGNORECASE)
_CTE_REF = re.compile(r"(?:with|,)\s*([A-Za-z0-9_]+)\s+as\s*\(", re.IGNORECASE)
_STRING_LITERAL = re.compile(r"'(?:[^']|'')*'")
_LINE_COMMENT = re.compile(r"--[^\n]*")


def _check(name: str, passed: bool, message: str) -> dict[str, str | bool]:
    return {"name": name, "passed": passed, "message": message}


def _strip_literals(sql: str) -> str:
    # Keywords inside quoted values or comments must not trip the checks.
    return _LINE_COMMENT.sub(" ", _STRING_LITERAL.sub("''", sql))


def _extract_table_names(sql: str) -> list[str]:
    tables: list[str] = []
    for _, raw in _TABLE_REF.findall(sql):
        name = raw.strip().strip('"').strip()
        name = re.sub(r"[(),]", "", name)
        if "." in name:
            name = name.split(".")[-1]
        if name:
            tables.append(name)
    return tables


def _statement_count(sql: str) -> int:
    return len([part for part in sql.split(";") if part.strip()])


def precheck_sql(sql: str) -> dict[str, object]:
    """Reject anything that is not a single read-only SELECT/WITH statement."""
    text = (sql or "").strip()
    if not text:
        raise HTTPException(status_code=400, detail="Empty SQL")
    body = _strip_literals(text)
    checks: list[dict[str, str | bool]] = []

    if _WRITE_KEYWORDS.search(body):
        checks.append(_check("Read-only", False, "Write keyword detected"))
        raise HTTPException(status_code=403, detail="Write operations are not allowed")
    checks.append(_check("Read-only", True, "No write keyword detected"))

    statement_ok = bool(re.match(r"^\s*(select|with)\b", body, re.IGNORECASE))
    checks.append(_check("Statement type", statement_ok, "SELECT/CTE only"))
    if not statement_ok:
        raise HTTPException(status_code=400, detail="Only SELECT queries are allowed")
    if re.match(r"^\s*with\b", body, re.IGNORECASE):
        cte_has_select = bool(re.search(r"\bselect\b", body, re.IGNORECASE))
        checks.append(_check("CTE", cte_has_select, "WITH clause includes SELECT"))
        if not cte_has_select:
            raise HTTPException(status_code=400, detail="CTE query must include SELECT")

    statements = _statement_count(body)
    single_ok = statements <= 1
    checks.append(_check("Single statement", single_ok, f"{statements} statement(s)"))
    if not single_ok:
        raise HTTPException(status_code=400, detail="Multiple SQL statements are not allowed")

    settings = get_settings()
    join_count = len(re.findall(r"\bjoin\b", body, re.IGNORECASE))
    join_ok = join_count <= settings.max_db_joins
    checks.append(_check("Join limit", join_ok, f"{join_count}/{settings.max_db_joins} joins"))
    if not join_ok:
        raise HTTPException(status_code=400, detail="Join limit exceeded")

    cte_names = {name.lower() for name in _CTE_REF.findall(body)}
    found = [t for t in _extract_table_names(body) if t.lower() not in cte_names]
    unknown = sorted({t for t in found if t.lower() not in OMOP_TABLES_INFO})
    if unknown:
        # Sites often add their own tables, so this is reported but not enforced.
        checks.append(_check("OMOP tables", True, f"Non-CDM tables: {', '.join(unknown)}"))
    else:
        checks.append(_check("OMOP tables", True, f"{len(found)} CDM table references"))

    return {"passed": True, "checks": checks}
