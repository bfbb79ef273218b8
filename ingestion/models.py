"""Pydantic models for ingestion module."""
from datetime import datetime
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field, model_validator

import config


class Verse(BaseModel):
    """One numbered verse: original Sanskrit text plus its translation."""
    number: int = Field(ge=1)
    sanskrit: str = ""
    translation: str = ""

    @property
    def is_usable(self) -> bool:
        """Both text fields must be present for downstream stages."""
        return bool(self.sanskrit.strip()) and bool(self.translation.strip())


class ChapterSource(BaseModel):
    """Represents one scraped chapter (sarga)."""
    epic_id: str = config.EPIC_ID
    kanda: str
    sarga: int = Field(ge=1)
    title: str = ""
    verses: List[Verse] = Field(default_factory=list)
    source_url: str
    extraction_date: str = Field(default_factory=lambda: datetime.utcnow().isoformat())
    total_verses: int = 0

    @model_validator(mode="after")
    def _count_verses(self) -> "ChapterSource":
        self.total_verses = len(self.verses)
        return self

    @property
    def chapter_key(self) -> str:
        return f"{self.kanda}_sarga_{self.sarga}"

    @property
    def usable_verses(self) -> List[Verse]:
        return [verse for verse in self.verses if verse.is_usable]


class ThematicPass(BaseModel):
    """A verse-range slice of a chapter used to bound one generation request.

    Ranges are 1-based and inclusive. ``end`` of ``None`` means the pass runs
    to the last verse of the chapter.
    """
    pass_number: int
    name: str
    start: int = Field(ge=1)
    end: Optional[int] = None
    focus: str
    categories: List[str] = Field(default_factory=list)

    def resolve(self, total_verses: int) -> Tuple[int, int]:
        """Concrete inclusive (start, end) for a chapter of ``total_verses``."""
        end = total_verses if self.end is None else min(self.end, total_verses)
        return self.start, end

    def select(self, verses: List[Verse]) -> List[Verse]:
        """Verses that fall inside this pass, by position."""
        start, end = self.resolve(len(verses))
        return verses[start - 1:end]

    @property
    def verse_range(self) -> Tuple[int, int]:
        return (self.start, -1 if self.end is None else self.end)
