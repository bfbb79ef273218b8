"""Normalization, category coercion and validation of question records."""
import re
from typing import Any, Dict, List

from extraction.models import CATEGORIES, DIFFICULTIES, OPTION_COUNT, LegacyQuestion
from importing.errors import ValidationError
import config

REQUIRED_FIELDS = ("question_text", "options", "correct_answer_id", "basic_explanation")
TEXT_FIELDS = ("question_text", "basic_explanation", "difficulty", "original_quote", "quote_translation")


def is_legacy(raw: Dict[str, Any]) -> bool:
    """Legacy records carry ``question`` and ``answers`` instead of ``question_text`` and ``options``."""
    return "answers" in raw and "options" not in raw


def parse_question(raw: Any) -> Dict[str, Any]:
    """Return a record in the canonical shape, upgrading the legacy format.

    The format is decided once here; callers only ever see canonical fields.

    Args:
        raw: Question as read from a generator reply or file

    Returns:
        Canonical question dict (a copy; ``raw`` is not modified)

    Raises:
        ValueError: If ``raw`` is not an object or a legacy record cannot be
            upgraded
    """
    if not isinstance(raw, dict):
        raise ValueError(f"question must be an object, got {type(raw).__name__}")

    if is_legacy(raw):
        return LegacyQuestion(**raw).upgrade()

    data = dict(raw)
    if "question_text" not in data and "question" in data:
        data["question_text"] = data.pop("question")
    return data


def coerce_category(value: Any) -> str:
    """Reduce a category to one allowed value.

    Multi-valued categories such as "themes|culture" keep their first token.
    Anything still outside the allowed set becomes the default category.
    """
    if not value or not isinstance(value, str):
        return config.DEFAULT_CATEGORY

    first = re.split(r'[|,\s]+', value.strip())[0].lower()
    if first in CATEGORIES:
        return first
    return config.DEFAULT_CATEGORY


def answer_index(value: Any) -> int:
    """Integer answer index, or -1 when ``value`` is not a whole number.

    Digit strings are accepted since CSV cells come back as text; floats and
    booleans are rejected rather than truncated.
    """
    if isinstance(value, bool):
        return -1
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return -1


def question_errors(question: Dict[str, Any]) -> List[str]:
    """Check a canonical question against the store's constraints.

    Category is checked after coercion, so only a missing or unusable value
    that coercion cannot repair shows up here.
    """
    errors = []

    for field in REQUIRED_FIELDS:
        value = question.get(field)
        if value is None or (value == "" and field != "correct_answer_id"):
            errors.append(f"Missing required field: {field}")

    for field in TEXT_FIELDS:
        value = question.get(field)
        if value is not None and not isinstance(value, str):
            errors.append(f"Field {field} must be text, got {type(value).__name__}")

    category = coerce_category(question.get("category"))
    if category not in CATEGORIES:
        errors.append(f"Invalid category: {question.get('category')}")

    if question.get("difficulty") not in DIFFICULTIES:
        errors.append(f"Invalid difficulty: {question.get('difficulty')}")

    options = question.get("options")
    if not isinstance(options, list) or len(options) != OPTION_COUNT:
        count = len(options) if isinstance(options, list) else 0
        errors.append(f"Options must be array of exactly {OPTION_COUNT} items, got {count}")
    elif any(not isinstance(option, str) or not option.strip() for option in options):
        errors.append("Options must be non-empty strings")

    answer = question.get("correct_answer_id")
    if not 0 <= answer_index(answer) < OPTION_COUNT:
        errors.append(f"Correct answer ID must be 0-{OPTION_COUNT - 1}, got {answer!r}")

    return errors


def normalize_question(raw: Any) -> Dict[str, Any]:
    """Canonical, category-coerced question ready for import.

    Raises:
        ValidationError: If the record cannot be imported
    """
    try:
        question = parse_question(raw)
    except ValueError as e:
        raise ValidationError([str(e)]) from e

    errors = question_errors(question)
    if errors:
        raise ValidationError(errors)

    question["category"] = coerce_category(question.get("category"))
    question["correct_answer_id"] = answer_index(question["correct_answer_id"])
    question["tags"] = [str(tag) for tag in question.get("tags") or []]
    question["cross_epic_tags"] = [str(tag) for tag in question.get("cross_epic_tags") or []]
    question["original_quote"] = question.get("original_quote") or ""
    question["quote_translation"] = question.get("quote_translation") or ""
    return question


def validate_question(raw: Any) -> List[str]:
    """Errors that would keep ``raw`` out of the store; empty when it is importable."""
    try:
        return question_errors(parse_question(raw))
    except ValueError as e:
        return [str(e)]
