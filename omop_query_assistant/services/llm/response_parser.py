"""Split a free-text LLM completion into a SQL statement and an explanation."""
from __future__ import annotations

from dataclasses import dataclass
import html
import re


NO_SQL_PLACEHOLDER = "-- Could not extract SQL query from AI response"
NO_EXPLANATION = "No detailed explanation provided."

_SQL_BLOCK_RE = re.compile(r"```sql\s+(.*?)\s+```", re.IGNORECASE | re.DOTALL)
_SQL_BLOCK_START_RE = re.compile(r"```sql", re.IGNORECASE)
_SQL_MARKER_RE = re.compile(r"SQL:\s*(.*?)(?=\n\n|\Z)", re.IGNORECASE | re.DOTALL)
_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")
_STATEMENT_START_RE = re.compile(r"(SELECT|WITH)\b")
# Keywords in capitals, as a model writes them in a bare statement.
_SQL_SHAPE_RE = re.compile(r"^(?:SELECT\b[\s\S]*\b(?i:FROM)\b|WITH\b[\s\S]*\bSELECT\b)")


@dataclass(frozen=True)
class ParsedResponse:
    sql: str
    explanation: str
    sql_found: bool
    # "block", "marker", "lines" or "none"
    source: str = "none"


def _from_sql_block(content: str, match: re.Match[str]) -> tuple[str, str]:
    sql = match.group(1).strip()
    explanation = ""
    last_fence = content.rfind("```")
    if last_fence != -1 and last_fence + 3 < len(content):
        explanation = content[last_fence + 3:].strip()
    if not explanation:
        first_block = _SQL_BLOCK_START_RE.search(content)
        if first_block and first_block.start() > 0:
            explanation = content[: first_block.start()].strip()
    return sql, explanation


def _from_sql_marker(content: str, sql: str) -> str:
    parts = _PARAGRAPH_SPLIT_RE.split(content)
    for idx, part in enumerate(parts):
        if sql in part:
            explanation = "\n\n".join(parts[idx + 1:]).strip()
            if explanation:
                return explanation
            break
    if not parts:
        return ""
    if "sql:" in parts[0].lower():
        return NO_EXPLANATION
    return parts[0].strip()


def _from_line_scan(content: str) -> tuple[str, str]:
    sql_lines: list[str] = []
    explanation_lines: list[str] = []
    in_sql = False
    for line in content.split("\n"):
        stripped = line.strip()
        upper = stripped.upper()
        if not in_sql and _STATEMENT_START_RE.match(upper):
            in_sql = True
        if in_sql:
            sql_lines.append(line)
            # A terminating semicolon or a LIMIT clause closes the statement.
            if stripped.endswith(";") or "limit " in stripped.lower():
                in_sql = False
        else:
            explanation_lines.append(line)
    return "\n".join(sql_lines).strip(), "\n".join(explanation_lines).strip()


def looks_like_sql(text: str) -> bool:
    return bool(_SQL_SHAPE_RE.match((text or "").strip()))


def format_explanation(text: str) -> str:
    """Render plain/markdown-ish explanation text as a small HTML fragment."""
    if not text or not text.strip():
        return ""
    escaped = html.escape(text.strip(), quote=False)
    formatted = "<p>" + escaped.replace("\n\n", "</p><p>").replace("\n", "<br>") + "</p>"
    formatted = re.sub(r"<p>\s*[-*]\s+(.*?)</p>", r"<ul><li>\1</li></ul>", formatted)
    formatted = re.sub(r"<br>\s*[-*]\s+", "</li><li>", formatted)
    formatted = re.sub(r"`(.*?)`", r"<code>\1</code>", formatted)
    return formatted


def parse_ai_response(content: str) -> ParsedResponse:
    text = content or ""
    sql_found = True
    source = "lines"

    block = _SQL_BLOCK_RE.search(text)
    marker = None if block else _SQL_MARKER_RE.search(text)
    if block:
        sql, explanation = _from_sql_block(text, block)
        source = "block"
    elif marker and marker.group(1).strip():
        sql = marker.group(1).strip()
        explanation = _from_sql_marker(text, sql)
        source = "marker"
    else:
        sql, explanation = _from_line_scan(text)
        if not sql:
            sql = NO_SQL_PLACEHOLDER
            explanation = text
            sql_found = False
            source = "none"

    return ParsedResponse(
        sql=sql,
        explanation=format_explanation(explanation),
        sql_found=sql_found,
        source=source,
    )
