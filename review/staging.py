"""Review surface: generated content waits here for a human decision before import."""
import csv
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from utils.logger import setup_logger
from extraction.models import ChapterSummary, QuestionRecord
from storage.database import Database

logger = setup_logger(__name__)

REVIEW_STATUSES = ("needs_review", "approved", "rejected")
LIST_SEPARATOR = "; "
OPTION_COLUMNS = ["option_a", "option_b", "option_c", "option_d"]
SUMMARY_LIST_FIELDS = ["key_events", "main_characters", "themes"]

CSV_COLUMNS = [
    "row_id", "kind", "chapter_key", "status", "reviewer_notes",
    "category", "difficulty", "question_text", *OPTION_COLUMNS, "correct_answer_id",
    "basic_explanation", "original_quote", "quote_translation", "tags",
    "title", *SUMMARY_LIST_FIELDS, "cultural_significance", "narrative_summary",
    "source_reference",
]


def flatten_list(items: Optional[List[Any]]) -> str:
    return LIST_SEPARATOR.join(str(item) for item in items or [])


def split_list(text: Optional[str]) -> List[str]:
    return [item.strip() for item in (text or "").split(";") if item.strip()]


def _question_cells(payload: Dict[str, Any]) -> Dict[str, Any]:
    options = list(payload.get("options") or [])
    cells = {
        "category": payload.get("category", ""),
        "difficulty": payload.get("difficulty", ""),
        "question_text": payload.get("question_text", ""),
        "correct_answer_id": payload.get("correct_answer_id", ""),
        "basic_explanation": payload.get("basic_explanation", ""),
        "original_quote": payload.get("original_quote", ""),
        "quote_translation": payload.get("quote_translation", ""),
        "tags": flatten_list(payload.get("tags")),
    }
    for index, column in enumerate(OPTION_COLUMNS):
        cells[column] = options[index] if index < len(options) else ""
    return cells


def _summary_cells(payload: Dict[str, Any]) -> Dict[str, Any]:
    cells = {
        "title": payload.get("title", ""),
        "cultural_significance": payload.get("cultural_significance", ""),
        "narrative_summary": payload.get("narrative_summary", ""),
    }
    for field in SUMMARY_LIST_FIELDS:
        cells[field] = flatten_list(payload.get(field))
    return cells


def _question_from_cells(row: Dict[str, str], payload: Dict[str, Any]) -> Dict[str, Any]:
    updated = dict(payload)
    for field in ("category", "difficulty", "question_text", "basic_explanation",
                  "original_quote", "quote_translation"):
        if field in row:
            updated[field] = row[field]
    if all(column in row for column in OPTION_COLUMNS):
        updated["options"] = [row[column] for column in OPTION_COLUMNS if row[column] != ""]
    answer = (row.get("correct_answer_id") or "").strip()
    if answer.lstrip("-").isdigit():
        updated["correct_answer_id"] = int(answer)
    if "tags" in row:
        updated["tags"] = split_list(row["tags"])
    return updated


def _summary_from_cells(row: Dict[str, str], payload: Dict[str, Any]) -> Dict[str, Any]:
    updated = dict(payload)
    for field in ("title", "cultural_significance", "narrative_summary"):
        if field in row:
            updated[field] = row[field]
    for field in SUMMARY_LIST_FIELDS:
        if field in row:
            updated[field] = split_list(row[field])
    return updated


class ReviewSheet:
    """Rows of staged content with an approval status per row."""

    def __init__(self, db: Database):
        self.db = db

    def stage_questions(
        self,
        chapter_key: str,
        questions: List[Union[QuestionRecord, Dict[str, Any]]],
        source_reference: str = ""
    ) -> int:
        """Append one row per question, each waiting for review.

        Returns:
            Number of rows staged
        """
        for question in questions:
            payload = question.model_dump(exclude_none=True) if isinstance(question, QuestionRecord) else dict(question)
            payload.setdefault("source_reference", source_reference)
            self.db.insert_review_row("question", chapter_key, payload)
        logger.info(f"Staged {len(questions)} questions for {chapter_key}")
        return len(questions)

    def stage_summary(
        self,
        chapter_key: str,
        summary: Union[ChapterSummary, Dict[str, Any]],
        source_reference: str = ""
    ) -> str:
        payload = summary.model_dump() if isinstance(summary, ChapterSummary) else dict(summary)
        if not payload.get("source_reference"):
            payload["source_reference"] = source_reference
        row_id = self.db.insert_review_row("summary", chapter_key, payload)
        logger.info(f"Staged summary for {chapter_key}")
        return row_id

    def set_status(self, row_id: str, status: str, notes: str = "") -> None:
        """Record a reviewer decision.

        Raises:
            ValueError: If ``status`` is not a review status
            KeyError: If no row has ``row_id``
        """
        if status not in REVIEW_STATUSES:
            raise ValueError(f"status must be one of {REVIEW_STATUSES}, got {status!r}")
        if not self.db.update_review_status(row_id, status, notes):
            raise KeyError(row_id)

    def rows(self, chapter_key: Optional[str] = None, kind: Optional[str] = None) -> List[Dict[str, Any]]:
        return self.db.get_review_rows(chapter_key=chapter_key, kind=kind)

    def approved_rows(self, chapter_key: str, kind: str = "question") -> List[Dict[str, Any]]:
        """Payloads of approved rows, in staging order."""
        rows = self.db.get_review_rows(chapter_key=chapter_key, kind=kind, status="approved")
        return [row["payload"] for row in rows]

    def stats(self) -> Dict[str, int]:
        counts = self.db.review_status_counts()
        stats = {status: counts.get(status, 0) for status in REVIEW_STATUSES}
        stats["total"] = sum(stats.values())
        return stats

    # ---- spreadsheet round trip ---------------------------------------

    def export_csv(self, path: Path, chapter_key: Optional[str] = None) -> int:
        """Write staged rows to a CSV a reviewer can edit in any spreadsheet tool.

        Returns:
            Number of rows written
        """
        rows = self.db.get_review_rows(chapter_key=chapter_key)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w', encoding='utf-8', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS, extrasaction='ignore')
            writer.writeheader()
            for row in rows:
                payload = row["payload"]
                cells = {
                    "row_id": row["id"],
                    "kind": row["kind"],
                    "chapter_key": row["chapter_key"],
                    "status": row["status"],
                    "reviewer_notes": row["reviewer_notes"] or "",
                    "source_reference": payload.get("source_reference", ""),
                }
                if row["kind"] == "question":
                    cells.update(_question_cells(payload))
                else:
                    cells.update(_summary_cells(payload))
                writer.writerow(cells)

        logger.info(f"Exported {len(rows)} review rows to {path}")
        return len(rows)

    def import_csv(self, path: Path) -> Dict[str, int]:
        """Apply statuses, notes and content edits from a reviewed CSV.

        Rows with an unknown id or status are skipped and counted.
        """
        counts = {"updated": 0, "skipped": 0}

        with open(path, 'r', encoding='utf-8', newline='') as f:
            for line_number, row in enumerate(csv.DictReader(f), start=2):
                row_id = (row.get("row_id") or "").strip()
                status = (row.get("status") or "").strip().lower()

                existing = self.db.get_review_row(row_id) if row_id else None
                if existing is None:
                    logger.warning(f"Line {line_number}: unknown row id {row_id!r}, skipping")
                    counts["skipped"] += 1
                    continue
                if status not in REVIEW_STATUSES:
                    logger.warning(f"Line {line_number}: unknown status {status!r}, skipping")
                    counts["skipped"] += 1
                    continue

                if existing["kind"] == "question":
                    payload = _question_from_cells(row, existing["payload"])
                else:
                    payload = _summary_from_cells(row, existing["payload"])

                self.db.update_review_status(row_id, status, row.get("reviewer_notes") or "", payload)
                counts["updated"] += 1

        logger.info(f"Applied {counts['updated']} review decisions from {path} ({counts['skipped']} skipped)")
        return counts
