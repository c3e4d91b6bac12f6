from __future__ import annotations

from omop_query_assistant.services.llm.response_parser import (
    NO_EXPLANATION,
    NO_SQL_PLACEHOLDER,
    format_explanation,
    parse_ai_response,
)


def test_sql_block_with_trailing_explanation() -> None:
    content = (
        "```sql\nSELECT COUNT(*) FROM person\n```\n"
        "This counts every person in the CDM."
    )
    parsed = parse_ai_response(content)

    assert parsed.sql_found
    assert parsed.sql == "SELECT COUNT(*) FROM person"
    assert parsed.explanation == "<p>This counts every person in the CDM.</p>"


def test_sql_block_uses_leading_text_when_nothing_follows() -> None:
    content = "Here is the query:\n```sql\nSELECT person_id FROM person\n```"
    parsed = parse_ai_response(content)

    assert parsed.sql == "SELECT person_id FROM person"
    assert parsed.explanation == "<p>Here is the query:</p>"


def test_sql_marker_takes_following_paragraphs() -> None:
    content = "SQL: SELECT gender_concept_id FROM person\n\nGroups people by gender."
    parsed = parse_ai_response(content)

    assert parsed.sql == "SELECT gender_concept_id FROM person"
    assert parsed.explanation == "<p>Groups people by gender.</p>"


def test_sql_marker_without_explanation() -> None:
    parsed = parse_ai_response("SQL: SELECT 1")

    assert parsed.sql == "SELECT 1"
    assert parsed.explanation == f"<p>{NO_EXPLANATION}</p>"


def test_line_scan_stops_at_semicolon() -> None:
    content = "Try this:\nSELECT *\nFROM death;\nIt lists deaths."
    parsed = parse_ai_response(content)

    assert parsed.sql == "SELECT *\nFROM death;"
    assert parsed.explanation == "<p>Try this:<br>It lists deaths.</p>"


def test_no_sql_returns_placeholder() -> None:
    parsed = parse_ai_response("I cannot answer that question.")

    assert not parsed.sql_found
    assert parsed.sql == NO_SQL_PLACEHOLDER
    assert parsed.explanation == "<p>I cannot answer that question.</p>"


def test_format_explanation_lists_and_code() -> None:
    html = format_explanation("Steps:\n\n- join `person`\n- filter <b>rows</b>")

    assert html.startswith("<p>Steps:</p>")
    assert "<ul><li>join <code>person</code></li><li>filter &lt;b&gt;rows&lt;/b&gt;</li></ul>" in html


def test_format_explanation_empty() -> None:
    assert format_explanation("   ") == ""


def test_line_scan_needs_whole_keyword() -> None:
    parsed = parse_ai_response("Without a doubt, the person table holds demographics.")

    assert not parsed.sql_found
    assert parsed.source == "none"
