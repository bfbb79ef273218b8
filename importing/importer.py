"""Import generated or reviewed content into the backend store."""
import json
import sqlite3
import time
import uuid
import warnings
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from utils.logger import setup_logger
from execution.retry_handler import RetryHandler
from importing.errors import RecordImportError, ValidationError, VerificationWarning
from importing.normalizer import normalize_question
from importing import sql_renderer
from storage.database import Database, DuplicateContentError
import config

logger = setup_logger(__name__)


class ImportBatch(BaseModel):
    """Soft grouping of the records submitted in one import run."""
    batch_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    created_at: str = Field(default_factory=lambda: datetime.utcnow().isoformat())
    source: str = "generated"


class ChapterContent(BaseModel):
    """Questions and summary destined for one chapter key."""
    epic_id: str = config.EPIC_ID
    kanda: str
    sarga: int
    source_reference: str = ""
    questions: List[Dict[str, Any]] = Field(default_factory=list)
    summary: Optional[Dict[str, Any]] = None
    source: str = "generated"

    @property
    def chapter_key(self) -> str:
        return f"{self.kanda}_sarga_{self.sarga}"


class ImportReport(BaseModel):
    """Outcome of one import or render run."""
    batch_id: str
    chapter_key: str
    dry_run: bool = False
    attempted: int = 0
    imported: int = 0
    failed: int = 0
    skipped_duplicates: int = 0
    errors: List[str] = Field(default_factory=list)
    summary_imported: Optional[bool] = None
    expected_count: Optional[int] = None
    actual_count: Optional[int] = None
    verified: Optional[bool] = None
    sql_path: Optional[str] = None

    def counts(self) -> Dict[str, int]:
        return {
            "attempted": self.attempted,
            "imported": self.imported,
            "failed": self.failed,
            "skipped_duplicates": self.skipped_duplicates,
        }


def split_chapter_key(chapter_key: str) -> Tuple[str, int]:
    """``"bala_kanda_sarga_7"`` -> ``("bala_kanda", 7)``."""
    kanda, separator, sarga = chapter_key.rpartition("_sarga_")
    if not separator or not sarga.isdigit():
        raise ValueError(f"Not a chapter key: {chapter_key!r}")
    return kanda, int(sarga)


def _read_json(path: Path) -> Any:
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


class ContentImporter:
    """Validates records and writes them to the store one at a time.

    A record that fails validation or exhausts its write retries is counted
    and reported; the rest of the batch carries on. Nothing is rolled back.
    """

    def __init__(
        self,
        db: Database,
        retry_on_failure: bool = True,
        dry_run: bool = False,
        max_retries: int = config.MAX_RETRIES,
        questions_dir: Path = config.QUESTIONS_DIR,
        summaries_dir: Path = config.SUMMARIES_DIR,
        sql_dir: Path = config.SQL_DIR,
        sleep: Optional[Callable[[float], None]] = None
    ):
        """Initialize importer.

        Args:
            db: Backend store
            retry_on_failure: Retry failed writes with exponential backoff
            dry_run: Validate and count without writing anything
            max_retries: Attempts per record write when retrying
            questions_dir: Where generated question files are read from
            summaries_dir: Where generated summary files are read from
            sql_dir: Where rendered SQL scripts are written
            sleep: Sleep function for retry backoff, replaceable in tests
        """
        self.db = db
        self.dry_run = dry_run
        self.questions_dir = questions_dir
        self.summaries_dir = summaries_dir
        self.sql_dir = sql_dir
        self.retry_handler = RetryHandler(
            max_retries=max_retries if retry_on_failure else 1,
            retry_on=(sqlite3.OperationalError,),
            sleep=sleep
        )

    # ---- loading ------------------------------------------------------

    def load_generated(self, kanda: str, sarga: int) -> ChapterContent:
        """Read the standard, hard addon and summary files for a chapter.

        Raises:
            FileNotFoundError: If none of the chapter's files exist
        """
        chapter_key = f"{kanda}_sarga_{sarga}"
        paths = [
            self.questions_dir / f"{chapter_key}_questions.json",
            self.questions_dir / f"{chapter_key}_hard_questions_addon.json",
        ]
        summary_path = self.summaries_dir / f"{chapter_key}_summary.json"

        if not any(path.exists() for path in paths + [summary_path]):
            raise FileNotFoundError(f"No generated content found for {chapter_key}")

        content = ChapterContent(kanda=kanda, sarga=sarga)
        for path in paths:
            if not path.exists():
                continue
            data = _read_json(path)
            # Older files are a bare list of questions without an envelope
            if isinstance(data, list):
                questions = data
            else:
                questions = data.get("questions", [])
                content.source_reference = content.source_reference or data.get("source_url", "")
                content.epic_id = data.get("epic_id", content.epic_id)
            content.questions.extend(questions)
            logger.info(f"Loaded {len(questions)} questions from {path.name}")

        if summary_path.exists():
            content.summary = _read_json(summary_path)
            content.source_reference = (
                content.source_reference
                or content.summary.get("source_reference")
                or content.summary.get("source_url", "")
            )

        return content

    def load_approved(self, review_sheet, chapter_key: str) -> ChapterContent:
        """Content for a chapter built only from rows a reviewer approved."""
        kanda, sarga = split_chapter_key(chapter_key)
        questions = review_sheet.approved_rows(chapter_key, kind="question")
        summaries = review_sheet.approved_rows(chapter_key, kind="summary")

        source_reference = ""
        for payload in questions + summaries:
            source_reference = payload.get("source_reference", "")
            if source_reference:
                break

        logger.info(f"{chapter_key}: {len(questions)} approved questions, {len(summaries)} approved summaries")
        return ChapterContent(
            kanda=kanda,
            sarga=sarga,
            source_reference=source_reference,
            questions=questions,
            summary=summaries[0] if summaries else None,
            source="review"
        )

    # ---- writing ------------------------------------------------------

    def _write(self, func: Callable, *args, **kwargs) -> Any:
        try:
            return self.retry_handler.call(func, *args, **kwargs)
        except sqlite3.Error as e:
            raise RecordImportError(str(e)) from e

    def import_questions(
        self,
        questions: List[Dict[str, Any]],
        content: ChapterContent,
        report: ImportReport
    ) -> ImportReport:
        """Validate and write each question, recording the outcome in ``report``."""
        for index, raw in enumerate(questions, start=1):
            report.attempted += 1

            try:
                question = normalize_question(raw)
            except ValidationError as e:
                report.failed += 1
                report.errors.append(f"Question {index}: {e}")
                logger.warning(f"Question {index} rejected: {e}")
                continue

            if self.dry_run:
                report.imported += 1
                continue

            try:
                self._write(
                    self.db.insert_question,
                    question,
                    content.epic_id,
                    content.kanda,
                    content.sarga,
                    content.source_reference,
                    report.batch_id
                )
            except DuplicateContentError as e:
                report.skipped_duplicates += 1
                logger.info(f"Question {index} skipped: {e}")
                continue
            except RecordImportError as e:
                report.failed += 1
                report.errors.append(f"Question {index}: write failed: {e}")
                logger.error(f"Question {index} failed after retries: {e}")
                continue

            report.imported += 1

        return report

    def import_summary(self, summary: Dict[str, Any], content: ChapterContent, report: ImportReport) -> bool:
        """Write the chapter summary; an existing summary is left as it is."""
        if self.dry_run:
            report.summary_imported = True
            return True

        try:
            self._write(
                self.db.insert_summary,
                summary,
                content.epic_id,
                content.kanda,
                content.sarga,
                summary.get("source_reference") or content.source_reference,
                report.batch_id
            )
        except DuplicateContentError as e:
            logger.info(f"Summary skipped: {e}")
            report.summary_imported = False
            return False
        except RecordImportError as e:
            report.errors.append(f"Summary: write failed: {e}")
            logger.error(f"Summary failed after retries: {e}")
            report.summary_imported = False
            return False

        report.summary_imported = True
        return True

    def import_chapter(self, content: ChapterContent, verify: bool = True) -> ImportReport:
        """Import a chapter's questions and summary, then verify the row count.

        Args:
            content: Questions and summary for one chapter
            verify: Compare the stored row count with the expected count

        Returns:
            Import report for the batch
        """
        batch = ImportBatch(source=content.source)
        report = ImportReport(batch_id=batch.batch_id, chapter_key=content.chapter_key, dry_run=self.dry_run)
        logger.info(
            f"Importing {len(content.questions)} questions for {content.chapter_key} "
            f"(batch {batch.batch_id[:8]}{', dry run' if self.dry_run else ''})"
        )

        before = 0
        if not self.dry_run:
            self.db.insert_import_batch(batch.batch_id, content.epic_id, content.kanda, content.sarga, batch.source)
            before = self.db.count_questions(content.epic_id, content.kanda, content.sarga)

        self.import_questions(content.questions, content, report)
        if content.summary:
            self.import_summary(content.summary, content, report)

        if verify and not self.dry_run:
            self.verify(content, report, before + report.imported)

        if not self.dry_run:
            self.db.update_import_batch(
                batch.batch_id,
                report.attempted,
                report.imported,
                report.failed,
                report.skipped_duplicates,
                report.verified
            )

        return report

    def verify(self, content: ChapterContent, report: ImportReport, expected: int) -> bool:
        """Compare the chapter's stored question count with ``expected``.

        A mismatch is reported as a ``VerificationWarning``; nothing is undone.
        """
        actual = self.db.count_questions(content.epic_id, content.kanda, content.sarga)
        report.expected_count = expected
        report.actual_count = actual
        report.verified = actual == expected

        if report.verified:
            logger.info(f"Verified {actual} questions stored for {content.chapter_key}")
        else:
            message = f"{content.chapter_key}: expected {expected} questions in store, found {actual}"
            logger.warning(message)
            warnings.warn(message, VerificationWarning)
        return report.verified

    # ---- SQL ----------------------------------------------------------

    def render_sql(self, content: ChapterContent, output_dir: Optional[Path] = None) -> ImportReport:
        """Write INSERT statements for the chapter to a SQL file.

        Invalid records are left out and reported; a count query closes the
        script so the operator can verify the result after running it.
        """
        output_dir = output_dir or self.sql_dir
        output_dir.mkdir(parents=True, exist_ok=True)
        report = ImportReport(batch_id=str(uuid.uuid4()), chapter_key=content.chapter_key, dry_run=True)

        statements = []
        for index, raw in enumerate(content.questions, start=1):
            report.attempted += 1
            try:
                question = normalize_question(raw)
            except ValidationError as e:
                report.failed += 1
                report.errors.append(f"Question {index}: {e}")
                continue
            statements.append(sql_renderer.render_question_insert(
                question, content.epic_id, content.kanda, content.sarga, content.source_reference
            ))
            report.imported += 1

        if content.summary:
            statements.append(sql_renderer.render_summary_insert(
                content.summary,
                content.epic_id,
                content.kanda,
                content.sarga,
                content.summary.get("source_reference") or content.source_reference
            ))
            report.summary_imported = True

        report.expected_count = report.imported
        statements.append(sql_renderer.render_count_query(
            "questions", content.epic_id, content.kanda, content.sarga
        ))

        header = (
            f"{content.chapter_key}: {report.imported} questions"
            f"{' + summary' if content.summary else ''}\n"
            f"Generated {datetime.utcnow().isoformat()}"
        )
        path = output_dir / f"{content.chapter_key}_import.sql"
        with open(path, 'w', encoding='utf-8') as f:
            f.write(sql_renderer.render_script(statements, header=header))

        report.sql_path = str(path)
        logger.info(f"Wrote {len(statements)} statements to {path}")
        return report
