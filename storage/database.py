"""SQLite stand-in for the backend content store."""
import hashlib
import json
import re
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from utils.logger import setup_logger
import config

logger = setup_logger(__name__)

QUESTION_JSON_FIELDS = ("options", "tags", "cross_epic_tags")
SUMMARY_JSON_FIELDS = ("key_events", "main_characters", "themes")


class DuplicateContentError(Exception):
    """Raised when a row would repeat content already in the store."""
    pass


def normalize_text(text: str) -> str:
    return re.sub(r'\s+', ' ', text.strip().lower())


def content_hash(epic_id: str, kanda: str, sarga: int, question_text: str) -> str:
    """Hash of the chapter key and normalized question text, unique per store."""
    key = f"{epic_id}|{kanda}|{sarga}|{normalize_text(question_text)}"
    return hashlib.sha256(key.encode('utf-8')).hexdigest()


def _decode(row: sqlite3.Row, json_fields) -> Dict[str, Any]:
    record = dict(row)
    for field in json_fields:
        if record.get(field) is not None:
            record[field] = json.loads(record[field])
    return record


class Database:
    """Manages SQLite database operations."""

    def __init__(self, db_path: Path = config.DB_PATH):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._initialize_schema()

    def _initialize_schema(self):
        """Create tables if they don't exist."""
        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path, 'r') as f:
            schema_sql = f.read()

        with self._get_connection() as conn:
            conn.executescript(schema_sql)
            conn.commit()

        logger.debug(f"Database initialized at {self.db_path}")

    @contextmanager
    def _get_connection(self):
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    # ---- questions ----------------------------------------------------

    def insert_question(
        self,
        question: Dict[str, Any],
        epic_id: str,
        kanda: str,
        sarga: int,
        source_reference: str,
        batch_id: Optional[str] = None
    ) -> str:
        """Insert one normalized question.

        Args:
            question: Canonical, validated question dict
            epic_id: Epic identifier
            kanda: Book identifier
            sarga: Chapter number
            source_reference: Source URL of the chapter
            batch_id: Import batch the row belongs to

        Returns:
            Question UUID

        Raises:
            DuplicateContentError: If the same question text already exists
                for this chapter
        """
        question_id = str(uuid.uuid4())
        digest = content_hash(epic_id, kanda, sarga, question["question_text"])

        with self._get_connection() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO questions (
                        id, epic_id, kanda, sarga, category, difficulty, question_text,
                        options, correct_answer_id, basic_explanation, original_quote,
                        quote_translation, tags, cross_epic_tags, source_reference,
                        content_hash, import_batch_id, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        question_id, epic_id, kanda, sarga,
                        question["category"], question["difficulty"], question["question_text"],
                        json.dumps(question["options"], ensure_ascii=False),
                        question["correct_answer_id"],
                        question.get("basic_explanation", ""),
                        question.get("original_quote", ""),
                        question.get("quote_translation", ""),
                        json.dumps(question.get("tags", []), ensure_ascii=False),
                        json.dumps(question.get("cross_epic_tags", []), ensure_ascii=False),
                        source_reference, digest, batch_id,
                        datetime.utcnow().isoformat()
                    )
                )
                conn.commit()
            except sqlite3.IntegrityError as e:
                if "content_hash" in str(e):
                    raise DuplicateContentError(
                        f"Question already imported for {kanda} sarga {sarga}: "
                        f"{question['question_text'][:60]}"
                    ) from e
                raise

        return question_id

    def count_questions(self, epic_id: str, kanda: str, sarga: int) -> int:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS count FROM questions WHERE epic_id = ? AND kanda = ? AND sarga = ?",
                (epic_id, kanda, sarga)
            ).fetchone()
            return row['count']

    def difficulty_breakdown(self, epic_id: str, kanda: str, sarga: int) -> Dict[str, int]:
        """Question counts per difficulty plus the number of distinct categories."""
        with self._get_connection() as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS total,
                    SUM(CASE WHEN difficulty = 'easy' THEN 1 ELSE 0 END) AS easy,
                    SUM(CASE WHEN difficulty = 'medium' THEN 1 ELSE 0 END) AS medium,
                    SUM(CASE WHEN difficulty = 'hard' THEN 1 ELSE 0 END) AS hard,
                    COUNT(DISTINCT category) AS categories
                FROM questions
                WHERE epic_id = ? AND kanda = ? AND sarga = ?
                """,
                (epic_id, kanda, sarga)
            ).fetchone()
            return {key: (row[key] or 0) for key in row.keys()}

    def get_questions(
        self,
        epic_id: str,
        kanda: Optional[str] = None,
        sarga: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Questions in insertion order, optionally scoped to a book or chapter."""
        query = "SELECT * FROM questions WHERE epic_id = ?"
        params: List[Any] = [epic_id]
        if kanda is not None:
            query += " AND kanda = ?"
            params.append(kanda)
        if sarga is not None:
            query += " AND sarga = ?"
            params.append(sarga)
        query += " ORDER BY created_at, rowid"

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
            return [_decode(row, QUESTION_JSON_FIELDS) for row in rows]

    def delete_questions(self, question_ids: List[str]) -> int:
        if not question_ids:
            return 0
        placeholders = ", ".join("?" for _ in question_ids)
        with self._get_connection() as conn:
            cursor = conn.execute(f"DELETE FROM questions WHERE id IN ({placeholders})", question_ids)
            conn.commit()
            return cursor.rowcount

    # ---- summaries ----------------------------------------------------

    def insert_summary(
        self,
        summary: Dict[str, Any],
        epic_id: str,
        kanda: str,
        sarga: int,
        source_reference: str,
        batch_id: Optional[str] = None
    ) -> str:
        """Insert a chapter summary.

        Raises:
            DuplicateContentError: If the chapter already has a summary
        """
        summary_id = str(uuid.uuid4())

        with self._get_connection() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO chapter_summaries (
                        id, epic_id, kanda, sarga, title, key_events, main_characters, themes,
                        cultural_significance, narrative_summary, source_reference,
                        import_batch_id, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        summary_id, epic_id, kanda, sarga,
                        summary.get("title") or "Untitled",
                        json.dumps(summary.get("key_events", []), ensure_ascii=False),
                        json.dumps(summary.get("main_characters", []), ensure_ascii=False),
                        json.dumps(summary.get("themes", []), ensure_ascii=False),
                        summary.get("cultural_significance", ""),
                        summary.get("narrative_summary", ""),
                        source_reference, batch_id,
                        datetime.utcnow().isoformat()
                    )
                )
                conn.commit()
            except sqlite3.IntegrityError as e:
                raise DuplicateContentError(f"Summary already imported for {kanda} sarga {sarga}") from e

        return summary_id

    def count_summaries(self, epic_id: str, kanda: str, sarga: int) -> int:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS count FROM chapter_summaries WHERE epic_id = ? AND kanda = ? AND sarga = ?",
                (epic_id, kanda, sarga)
            ).fetchone()
            return row['count']

    def get_summary(self, epic_id: str, kanda: str, sarga: int) -> Optional[Dict[str, Any]]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM chapter_summaries WHERE epic_id = ? AND kanda = ? AND sarga = ?",
                (epic_id, kanda, sarga)
            ).fetchone()
            return _decode(row, SUMMARY_JSON_FIELDS) if row else None

    # ---- import batches -----------------------------------------------

    def insert_import_batch(self, batch_id: str, epic_id: str, kanda: str, sarga: int, source: str) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO import_batches (id, epic_id, kanda, sarga, source, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (batch_id, epic_id, kanda, sarga, source, datetime.utcnow().isoformat())
            )
            conn.commit()

    def update_import_batch(
        self,
        batch_id: str,
        attempted: int,
        imported: int,
        failed: int,
        skipped_duplicates: int,
        verified: Optional[bool]
    ) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                UPDATE import_batches
                SET attempted = ?, imported = ?, failed = ?, skipped_duplicates = ?, verified = ?
                WHERE id = ?
                """,
                (attempted, imported, failed, skipped_duplicates,
                 None if verified is None else int(verified), batch_id)
            )
            conn.commit()

    def get_import_batches(self, kanda: str, sarga: int) -> List[Dict[str, Any]]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM import_batches WHERE kanda = ? AND sarga = ? ORDER BY created_at",
                (kanda, sarga)
            ).fetchall()
            return [dict(row) for row in rows]

    # ---- review rows --------------------------------------------------

    def insert_review_row(self, kind: str, chapter_key: str, payload: Dict[str, Any]) -> str:
        row_id = str(uuid.uuid4())
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO review_rows (id, kind, chapter_key, payload, staged_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (row_id, kind, chapter_key, json.dumps(payload, ensure_ascii=False),
                 datetime.utcnow().isoformat())
            )
            conn.commit()
        return row_id

    def update_review_status(
        self,
        row_id: str,
        status: str,
        notes: str = "",
        payload: Optional[Dict[str, Any]] = None
    ) -> bool:
        """Record a reviewer decision, optionally replacing the row's content."""
        query = "UPDATE review_rows SET status = ?, reviewer_notes = ?, reviewed_at = ?"
        params: List[Any] = [status, notes, datetime.utcnow().isoformat()]
        if payload is not None:
            query += ", payload = ?"
            params.append(json.dumps(payload, ensure_ascii=False))
        query += " WHERE id = ?"
        params.append(row_id)

        with self._get_connection() as conn:
            cursor = conn.execute(query, params)
            conn.commit()
            return cursor.rowcount == 1

    def get_review_row(self, row_id: str) -> Optional[Dict[str, Any]]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM review_rows WHERE id = ?", (row_id,)).fetchone()
            return _decode(row, ("payload",)) if row else None

    def get_review_rows(
        self,
        chapter_key: Optional[str] = None,
        kind: Optional[str] = None,
        status: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        query = "SELECT * FROM review_rows WHERE 1 = 1"
        params: List[Any] = []
        for column, value in (("chapter_key", chapter_key), ("kind", kind), ("status", status)):
            if value is not None:
                query += f" AND {column} = ?"
                params.append(value)
        query += " ORDER BY staged_at, rowid"

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
            return [_decode(row, ("payload",)) for row in rows]

    def review_status_counts(self) -> Dict[str, int]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS count FROM review_rows WHERE kind = 'question' GROUP BY status"
            ).fetchall()
            return {row['status']: row['count'] for row in rows}
