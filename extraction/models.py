"""Pydantic models for generated quiz content."""
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

CATEGORIES = ("characters", "events", "themes", "culture")
DIFFICULTIES = ("easy", "medium", "hard")
OPTION_COUNT = 4


class PassInfo(BaseModel):
    """Which thematic pass produced a question."""
    pass_number: int
    pass_name: str
    verse_range: Tuple[int, int]


class ThemeInfo(BaseModel):
    """Which hard-question theme produced a question."""
    theme_number: int
    theme_name: str
    verse_range: Tuple[int, int]
    complexity_focus: str = ""


class QuestionRecord(BaseModel):
    """One multiple-choice quiz question in the canonical shape."""
    category: str
    difficulty: str
    question_text: str = Field(min_length=1)
    options: List[str]
    correct_answer_id: int
    basic_explanation: str = ""
    original_quote: str = ""
    quote_translation: str = ""
    tags: List[str] = Field(default_factory=list)
    cross_epic_tags: List[str] = Field(default_factory=list)
    pass_info: Optional[PassInfo] = None
    theme_info: Optional[ThemeInfo] = None

    @field_validator("category")
    @classmethod
    def _known_category(cls, value: str) -> str:
        if value not in CATEGORIES:
            raise ValueError(f"category must be one of {CATEGORIES}, got {value!r}")
        return value

    @field_validator("difficulty")
    @classmethod
    def _known_difficulty(cls, value: str) -> str:
        if value not in DIFFICULTIES:
            raise ValueError(f"difficulty must be one of {DIFFICULTIES}, got {value!r}")
        return value

    @field_validator("original_quote", "quote_translation", "basic_explanation", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @model_validator(mode="after")
    def _answer_in_options(self) -> "QuestionRecord":
        if len(self.options) != OPTION_COUNT:
            raise ValueError(f"options must have exactly {OPTION_COUNT} entries, got {len(self.options)}")
        if not 0 <= self.correct_answer_id < len(self.options):
            raise ValueError(f"correct_answer_id {self.correct_answer_id} out of range")
        return self

    @property
    def correct_option(self) -> str:
        return self.options[self.correct_answer_id]


class LegacyAnswer(BaseModel):
    answer: str
    isCorrect: bool = False


class LegacyQuestion(BaseModel):
    """Older generator output: answers carry their own correctness flag."""
    category: str = ""
    difficulty: str = ""
    question: str
    answers: List[LegacyAnswer]
    basic_explanation: Optional[str] = None
    explanation: Optional[str] = None
    original_quote: Optional[str] = None
    quote_translation: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    cross_epic_tags: List[str] = Field(default_factory=list)

    def upgrade(self) -> Dict[str, Any]:
        """Convert to the canonical question dict.

        Raises:
            ValueError: If not exactly one answer is flagged correct
        """
        correct = [index for index, answer in enumerate(self.answers) if answer.isCorrect]
        if len(correct) != 1:
            raise ValueError(f"legacy question must flag exactly one correct answer, found {len(correct)}")

        return {
            "category": self.category,
            "difficulty": self.difficulty,
            "question_text": self.question,
            "options": [answer.answer for answer in self.answers],
            "correct_answer_id": correct[0],
            "basic_explanation": self.basic_explanation or self.explanation or "",
            "original_quote": self.original_quote or "",
            "quote_translation": self.quote_translation or "",
            "tags": self.tags,
            "cross_epic_tags": self.cross_epic_tags,
        }


class ChapterSummary(BaseModel):
    """Narrative summary of one chapter."""
    title: str = "Untitled"
    key_events: List[str] = Field(default_factory=list)
    main_characters: List[str] = Field(default_factory=list)
    themes: List[str] = Field(default_factory=list)
    cultural_significance: str = ""
    narrative_summary: str = ""
    source_reference: str = ""

    @field_validator("key_events", "main_characters", "themes", mode="before")
    @classmethod
    def _stringify_items(cls, value: Any) -> Any:
        # Character entries sometimes come back as {"name": ..., "description": ...}
        if not isinstance(value, list):
            return value
        items = []
        for item in value:
            if isinstance(item, dict):
                items.append(" - ".join(str(v) for v in item.values()))
            else:
                items.append(str(item))
        return items


class HardTheme(BaseModel):
    """Thematic focus for one hard addon question."""
    name: str
    start: int = Field(ge=1)
    end: Optional[int] = None
    focus: str
    complexity: str

    @property
    def verse_range(self) -> Tuple[int, int]:
        return (self.start, -1 if self.end is None else self.end)


class ChapterThemes(BaseModel):
    """Hard-question themes configured for a chapter."""
    kanda: str = "bala_kanda"
    sarga: int
    version: int = 1
    generated: bool = False
    themes: List[HardTheme] = Field(default_factory=list)
    updated_at: str = Field(default_factory=lambda: datetime.utcnow().isoformat())

    @property
    def chapter_key(self) -> str:
        return f"{self.kanda}_sarga_{self.sarga}"


class GeneratedChapter(BaseModel):
    """Summary and questions produced for one chapter in one run."""
    summary: Optional[ChapterSummary] = None
    questions: List[QuestionRecord] = Field(default_factory=list)
    failed_passes: List[str] = Field(default_factory=list)
