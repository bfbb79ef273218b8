"""Per-chapter hard-question theme configuration."""
import json
from pathlib import Path
from typing import Dict, List, Optional

from utils.logger import setup_logger
from ingestion.segmenter import segment_passes
from extraction.models import ChapterThemes, HardTheme
import config

logger = setup_logger(__name__)

GENERIC_COMPLEXITY = [
    "Analyze how the characters' choices reflect dharma and the duties of their roles",
    "Examine the causes and consequences of the chapter's pivotal events",
    "Evaluate the philosophical and spiritual teaching the chapter conveys",
]


def auto_themes(kanda: str, sarga: int, total_verses: int) -> ChapterThemes:
    """Derive generic hard-question themes from the segmenter ranges.

    Pure function: nothing is persisted until the caller saves the result.

    Args:
        kanda: Book identifier
        sarga: Chapter number
        total_verses: Verse count of the chapter

    Returns:
        Generated theme configuration
    """
    themes = [
        HardTheme(
            name=f"{thematic_pass.name} (advanced)",
            start=thematic_pass.start,
            end=thematic_pass.end,
            focus=thematic_pass.focus,
            complexity=complexity
        )
        for thematic_pass, complexity in zip(segment_passes(total_verses), GENERIC_COMPLEXITY)
    ]
    return ChapterThemes(kanda=kanda, sarga=sarga, generated=True, themes=themes)


class ThemeStore:
    """JSON file of theme configurations keyed by chapter key.

    The file is read once when the store is created; entries are only written
    back through ``save``.
    """

    def __init__(self, path: Path = config.THEMES_PATH):
        self.path = path
        self._entries: Dict[str, ChapterThemes] = self._load()

    def _load(self) -> Dict[str, ChapterThemes]:
        if not self.path.exists():
            return {}
        with open(self.path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        # Entries written before kandas were recorded fall back to the model's default kanda
        entries = {}
        for value in data.get("chapters", {}).values():
            entry = ChapterThemes(**value)
            entries[entry.chapter_key] = entry
        logger.info(f"Loaded hard-question themes for {len(entries)} chapters from {self.path}")
        return entries

    def get(self, kanda: str, sarga: int) -> Optional[ChapterThemes]:
        return self._entries.get(f"{kanda}_sarga_{sarga}")

    def chapters(self) -> List[str]:
        return sorted(self._entries)

    def save(self, entry: ChapterThemes) -> None:
        """Store an entry, bumping its version when it replaces an existing one."""
        existing = self._entries.get(entry.chapter_key)
        if existing is not None:
            entry = entry.model_copy(update={"version": existing.version + 1})
        self._entries[entry.chapter_key] = entry

        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"chapters": {key: value.model_dump() for key, value in sorted(self._entries.items())}}
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
        logger.info(f"Saved hard-question themes for {entry.chapter_key} (version {entry.version})")

    def ensure(self, kanda: str, sarga: int, total_verses: int, persist: bool = True) -> ChapterThemes:
        """Configured themes for a chapter, or generated ones as a fallback.

        Args:
            kanda: Book identifier
            sarga: Chapter number
            total_verses: Verse count used when generating a fallback
            persist: Whether a generated fallback is written to the store
        """
        entry = self.get(kanda, sarga)
        if entry is not None:
            return entry

        entry = auto_themes(kanda, sarga, total_verses)
        logger.info(f"No themes configured for {entry.chapter_key}; using generic themes")
        if persist:
            self.save(entry)
        return entry
