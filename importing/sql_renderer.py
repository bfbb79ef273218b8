"""Render normalized records as PostgreSQL statements for the backend store."""
import json
from typing import Any, Dict, Iterable, List, Optional

QUESTION_COLUMNS = [
    "epic_id", "kanda", "sarga", "category", "difficulty", "question_text",
    "options", "correct_answer_id", "basic_explanation",
    "original_quote", "quote_translation", "tags", "cross_epic_tags", "source_reference",
]

SUMMARY_COLUMNS = [
    "epic_id", "kanda", "sarga", "title", "key_events", "main_characters",
    "themes", "cultural_significance", "narrative_summary", "source_reference",
]


def escape_sql_string(text: Any) -> str:
    """Double embedded single quotes, the store's string-escaping convention."""
    return str(text).replace("'", "''")


def sql_literal(value: Optional[Any]) -> str:
    if value is None:
        return "''"
    return f"'{escape_sql_string(value)}'"


def array_literal(items: Optional[Iterable[Any]]) -> str:
    """Render a list as ``ARRAY['a', 'b']``; an empty list is typed so Postgres accepts it."""
    values = [sql_literal(str(item)) for item in items or []]
    if not values:
        return "ARRAY[]::text[]"
    return f"ARRAY[{', '.join(values)}]"


def jsonb_literal(value: Any) -> str:
    return f"{sql_literal(json.dumps(value, ensure_ascii=False))}::jsonb"


def _insert(table: str, columns: List[str], values: List[str]) -> str:
    return (
        f"INSERT INTO {table} (\n  {', '.join(columns)}\n) VALUES (\n  "
        + ",\n  ".join(values)
        + "\n);"
    )


def render_question_insert(
    question: Dict[str, Any],
    epic_id: str,
    kanda: str,
    sarga: int,
    source_reference: str
) -> str:
    """INSERT statement for one normalized question."""
    values = [
        sql_literal(epic_id),
        sql_literal(kanda),
        str(int(sarga)),
        sql_literal(question["category"]),
        sql_literal(question["difficulty"]),
        sql_literal(question["question_text"]),
        jsonb_literal(question["options"]),
        str(int(question["correct_answer_id"])),
        sql_literal(question.get("basic_explanation")),
        sql_literal(question.get("original_quote")),
        sql_literal(question.get("quote_translation")),
        array_literal(question.get("tags")),
        array_literal(question.get("cross_epic_tags")),
        sql_literal(source_reference),
    ]
    return _insert("questions", QUESTION_COLUMNS, values)


def render_summary_insert(
    summary: Dict[str, Any],
    epic_id: str,
    kanda: str,
    sarga: int,
    source_reference: str
) -> str:
    """INSERT statement for one chapter summary."""
    values = [
        sql_literal(epic_id),
        sql_literal(kanda),
        str(int(sarga)),
        sql_literal(summary.get("title") or "Untitled"),
        array_literal(summary.get("key_events")),
        array_literal(summary.get("main_characters")),
        array_literal(summary.get("themes")),
        sql_literal(summary.get("cultural_significance")),
        sql_literal(summary.get("narrative_summary")),
        sql_literal(source_reference),
    ]
    return _insert("chapter_summaries", SUMMARY_COLUMNS, values)


def render_count_query(table: str, epic_id: str, kanda: str, sarga: int) -> str:
    return (
        f"SELECT COUNT(*) AS count FROM {table} "
        f"WHERE epic_id = {sql_literal(epic_id)} AND kanda = {sql_literal(kanda)} AND sarga = {int(sarga)};"
    )


def render_script(statements: List[str], header: str = "") -> str:
    """Join statements into one script, each statement run on its own."""
    lines = []
    if header:
        lines.append("\n".join(f"-- {line}" for line in header.splitlines()))
    lines.extend(statements)
    return "\n\n".join(lines) + "\n"
