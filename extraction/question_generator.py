"""Summary and quiz question generation using an LLM."""
import json
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from utils.logger import setup_logger
from ingestion.models import ChapterSource, ThematicPass
from ingestion.segmenter import segment_passes
from extraction.llm_client import GenerationError, LLMClient
from extraction.models import (
    ChapterSummary,
    ChapterThemes,
    GeneratedChapter,
    PassInfo,
    QuestionRecord,
    ThemeInfo,
)
from extraction import prompts
from importing.normalizer import coerce_category, parse_question
import config

logger = setup_logger(__name__)

GENERATOR_NAME = "anthropic-multipass"


def question_signature(question: QuestionRecord, prefix: int = config.DEDUP_PREFIX_LENGTH) -> str:
    return f"{question.category.lower()}:{question.question_text.strip().lower()[:prefix]}"


def deduplicate_questions(
    questions: List[QuestionRecord],
    prefix: int = config.DEDUP_PREFIX_LENGTH
) -> List[QuestionRecord]:
    """Drop questions whose category and opening text repeat an earlier one.

    Args:
        questions: Questions in generation order
        prefix: Number of leading question characters compared

    Returns:
        First occurrence of each signature, original order preserved
    """
    seen = set()
    unique = []
    for question in questions:
        signature = question_signature(question, prefix)
        if signature not in seen:
            seen.add(signature)
            unique.append(question)
    return unique


def validate_batch(
    items: Any,
    label: str,
    expected_count: Optional[int] = None,
    **extra: Any
) -> List[QuestionRecord]:
    """Turn a parsed reply into question records, excluding invalid items.

    Args:
        items: Parsed JSON reply: a list of questions, a single question, or
            an object with a "questions" list
        label: Name used in log messages
        expected_count: Item count the prompt asked for, if any
        extra: Fields set on every record (pass_info, theme_info)

    Returns:
        Valid records in reply order
    """
    if isinstance(items, dict):
        items = items.get("questions", [items])
    if not isinstance(items, list):
        logger.warning(f"{label}: expected a list of questions, got {type(items).__name__}")
        return []

    if expected_count is not None and len(items) != expected_count:
        logger.warning(f"{label}: expected {expected_count} questions, got {len(items)}")

    records = []
    for index, item in enumerate(items, start=1):
        try:
            data = parse_question(item)
            data["category"] = coerce_category(data.get("category"))
            data.update(extra)
            records.append(QuestionRecord(**data))
        except (ValidationError, ValueError, TypeError) as e:
            logger.warning(f"{label}: excluding question {index}: {e}")

    return records


class QuestionGenerator:
    """Generates chapter summaries and quiz questions."""

    def __init__(
        self,
        llm: LLMClient,
        summaries_dir: Path = config.SUMMARIES_DIR,
        questions_dir: Path = config.QUESTIONS_DIR,
        call_delay: float = config.API_CALL_DELAY,
        sleep: Callable[[float], None] = time.sleep
    ):
        """Initialize generator.

        Args:
            llm: Completion client
            summaries_dir: Output directory for summary files
            questions_dir: Output directory for question files
            call_delay: Seconds to wait between consecutive provider calls
            sleep: Sleep function, replaceable in tests
        """
        self.llm = llm
        self.summaries_dir = summaries_dir
        self.questions_dir = questions_dir
        self.call_delay = call_delay
        self.sleep = sleep

        self.summaries_dir.mkdir(parents=True, exist_ok=True)
        self.questions_dir.mkdir(parents=True, exist_ok=True)

    # ---- single calls -------------------------------------------------

    def generate_summary(self, source: ChapterSource) -> ChapterSummary:
        self._require_verses(source)
        data = self.llm.complete_json(
            prompts.summary_prompt(source),
            max_tokens=config.SUMMARY_MAX_TOKENS,
            label=f"{source.chapter_key}_summary",
            temperature=0.3
        )
        return self._to_summary(data, source)

    def generate_standard(self, source: ChapterSource) -> List[QuestionRecord]:
        """Single-call generation of one question per category."""
        self._require_verses(source)
        label = f"{source.chapter_key}_standard"
        data = self.llm.complete_json(
            prompts.standard_questions_prompt(source, config.STANDARD_QUESTION_COUNT),
            max_tokens=config.QUESTIONS_MAX_TOKENS,
            label=label
        )
        questions = validate_batch(data, label, expected_count=config.STANDARD_QUESTION_COUNT)
        logger.info(f"Generated {len(questions)} questions (standard method)")
        return questions

    def generate_for_pass(self, source: ChapterSource, thematic_pass: ThematicPass) -> List[QuestionRecord]:
        """Generate the questions for one pass and tag them with it.

        Raises:
            GenerationError: On provider failure or an unparseable reply
        """
        verses = thematic_pass.select(source.verses)
        start, end = thematic_pass.resolve(len(source.verses))
        label = f"{source.chapter_key}_pass_{thematic_pass.pass_number}"

        if not any(verse.is_usable for verse in verses):
            logger.info(f"{label}: verses {start}-{end} hold no usable content, skipping")
            return []

        data = self.llm.complete_json(
            prompts.pass_questions_prompt(source, thematic_pass, verses, config.QUESTIONS_PER_PASS),
            max_tokens=config.QUESTIONS_MAX_TOKENS,
            label=label
        )
        pass_info = PassInfo(
            pass_number=thematic_pass.pass_number,
            pass_name=thematic_pass.name,
            verse_range=(start, end)
        )
        return validate_batch(data, label, expected_count=config.QUESTIONS_PER_PASS, pass_info=pass_info)

    # ---- orchestration ------------------------------------------------

    def generate_multipass(self, source: ChapterSource) -> Tuple[List[QuestionRecord], List[str]]:
        """Generate questions pass by pass.

        A failing pass is logged and skipped; the remaining passes still run.

        Returns:
            Deduplicated questions and the names of passes that failed

        Raises:
            GenerationError: If every pass failed
        """
        self._require_verses(source)
        passes = segment_passes(source, config.PASS_COUNT)

        all_questions: List[QuestionRecord] = []
        failed: List[str] = []

        for index, thematic_pass in enumerate(passes):
            if index > 0:
                self.sleep(self.call_delay)

            start, end = thematic_pass.resolve(len(source.verses))
            logger.info(f"Pass {thematic_pass.pass_number}: {thematic_pass.name} (verses {start}-{end})")

            try:
                questions = self.generate_for_pass(source, thematic_pass)
            except GenerationError as e:
                logger.error(f"Pass {thematic_pass.pass_number} failed: {e}")
                failed.append(thematic_pass.name)
                continue

            logger.info(f"Pass {thematic_pass.pass_number} produced {len(questions)} questions")
            all_questions.extend(questions)

        if len(failed) == len(passes):
            raise GenerationError(f"All {len(passes)} passes failed for {source.chapter_key}")

        unique = deduplicate_questions(all_questions)
        if len(unique) < len(all_questions):
            logger.info(f"Removed {len(all_questions) - len(unique)} duplicate questions")
        return unique, failed

    def generate_hard_addon(self, source: ChapterSource, chapter_themes: ChapterThemes) -> List[QuestionRecord]:
        """One hard question per configured theme; failing themes are skipped."""
        self._require_verses(source)
        questions: List[QuestionRecord] = []

        for number, theme in enumerate(chapter_themes.themes, start=1):
            if number > 1:
                self.sleep(self.call_delay)

            total = len(source.verses)
            end = total if theme.end is None else min(theme.end, total)
            verses = source.verses[theme.start - 1:end]
            label = f"{source.chapter_key}_hard_{number}"

            if not verses:
                logger.info(f"{label}: theme '{theme.name}' covers no verses, skipping")
                continue

            try:
                data = self.llm.complete_json(
                    prompts.hard_question_prompt(source, theme, verses),
                    max_tokens=config.HARD_QUESTION_MAX_TOKENS,
                    label=label,
                    temperature=config.HARD_QUESTION_TEMPERATURE
                )
            except GenerationError as e:
                logger.error(f"Hard question for theme {number} failed: {e}")
                continue

            theme_info = ThemeInfo(
                theme_number=number,
                theme_name=theme.name,
                verse_range=(theme.start, end),
                complexity_focus=theme.complexity
            )
            records = validate_batch(data, label, expected_count=1, theme_info=theme_info)
            for record in records:
                if record.difficulty != "hard":
                    logger.warning(f"{label}: reply marked difficulty '{record.difficulty}', forcing 'hard'")
                    record.difficulty = "hard"
            questions.extend(records)

        logger.info(f"Generated {len(questions)} hard questions")
        return deduplicate_questions(questions)

    def generate_chapter(self, source: ChapterSource, multipass: bool = False) -> GeneratedChapter:
        """Summary plus questions for one chapter.

        The standard path asks for both in one call. If that reply cannot be
        parsed, summary and questions are requested again as two separate calls.
        """
        self._require_verses(source)

        if multipass:
            summary = self.generate_summary(source)
            self.sleep(self.call_delay)
            questions, failed = self.generate_multipass(source)
            return GeneratedChapter(summary=summary, questions=questions, failed_passes=failed)

        label = f"{source.chapter_key}_combined"
        try:
            data = self.llm.complete_json(
                prompts.combined_prompt(source, config.STANDARD_QUESTION_COUNT),
                max_tokens=config.COMBINED_MAX_TOKENS,
                label=label
            )
        except GenerationError as e:
            if e.raw_path is None:
                raise
            logger.warning(f"Combined reply unparseable, falling back to separate calls: {e}")
            summary = self.generate_summary(source)
            self.sleep(self.call_delay)
            questions = self.generate_standard(source)
            return GeneratedChapter(summary=summary, questions=questions)

        if not isinstance(data, dict):
            raise GenerationError(f"{label}: expected an object with summary and questions")

        summary = self._to_summary(data.get("summary") or {}, source)
        questions = validate_batch(
            data.get("questions", []), label, expected_count=config.STANDARD_QUESTION_COUNT
        )
        return GeneratedChapter(summary=summary, questions=deduplicate_questions(questions))

    # ---- files --------------------------------------------------------

    def save_summary(self, source: ChapterSource, summary: ChapterSummary) -> Path:
        path = self.summaries_dir / f"{source.chapter_key}_summary.json"
        payload = {**self._envelope(source), **summary.model_dump()}
        self._write(path, payload)
        logger.info(f"Summary saved to {path}")
        return path

    def save_questions(self, source: ChapterSource, questions: List[QuestionRecord], kind: str = "questions") -> Path:
        """Write a questions file; ``kind`` is "questions" or "hard_questions_addon"."""
        path = self.questions_dir / f"{source.chapter_key}_{kind}.json"
        payload = {
            **self._envelope(source),
            "total_questions": len(questions),
            "questions": [question.model_dump(exclude_none=True) for question in questions],
        }
        self._write(path, payload)
        logger.info(f"{len(questions)} questions saved to {path}")
        return path

    # ---- helpers ------------------------------------------------------

    @staticmethod
    def _require_verses(source: ChapterSource) -> None:
        if not source.usable_verses:
            raise GenerationError(f"{source.chapter_key} has no usable verses; fetch it again before generating")

    @staticmethod
    def _to_summary(data: Any, source: ChapterSource) -> ChapterSummary:
        if not isinstance(data, dict):
            raise GenerationError(f"{source.chapter_key}: summary reply is not an object")
        try:
            summary = ChapterSummary(**data)
        except ValidationError as e:
            raise GenerationError(f"{source.chapter_key}: summary reply failed validation: {e}") from e
        if not summary.source_reference:
            summary.source_reference = source.source_url
        return summary

    @staticmethod
    def _envelope(source: ChapterSource) -> Dict[str, Any]:
        return {
            "epic_id": source.epic_id,
            "kanda": source.kanda,
            "sarga": source.sarga,
            "source_url": source.source_url,
            "generation_date": datetime.utcnow().isoformat(),
            "generator": GENERATOR_NAME,
        }

    @staticmethod
    def _write(path: Path, payload: Dict[str, Any]) -> None:
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
