"""LLM prompt templates for chapter summaries and quiz questions."""
from typing import List

from ingestion.cleaner import clean_translation
from ingestion.models import ChapterSource, ThematicPass, Verse
from extraction.models import HardTheme

SYSTEM_PROMPT = (
    "You are an expert Sanskrit scholar and educator specializing in the Valmiki Ramayana. "
    "You create culturally accurate, educationally valuable content that respects Hindu "
    "traditions and helps modern learners understand classical literature."
)

QUESTION_SCHEMA = """{
    "category": "characters|events|themes|culture",
    "difficulty": "easy|medium|hard",
    "question_text": "Self-contained question with full narrative context",
    "options": ["Option A", "Option B", "Option C", "Option D"],
    "correct_answer_id": 0,
    "basic_explanation": "Educational explanation connecting to the story",
    "original_quote": "Sanskrit quote from the verses",
    "quote_translation": "English translation of the Sanskrit quote",
    "tags": ["relevant", "tags"],
    "cross_epic_tags": ["universal", "themes"]
  }"""

SUMMARY_SCHEMA = """{
  "title": "Descriptive title for this Sarga",
  "key_events": ["Event 1 description", "Event 2 description", "Event 3 description"],
  "main_characters": ["Character name with brief description"],
  "themes": ["Theme 1", "Theme 2"],
  "cultural_significance": "Paragraph explaining religious, philosophical, or cultural importance",
  "narrative_summary": "2-3 paragraph prose summary of the complete story"
}"""

CLARITY_RULES = """QUESTION CLARITY REQUIREMENTS:
- Every question must be self-contained and make sense without seeing the source verses
- Name characters explicitly with their titles and relationships
- Never use vague references such as "in the verses", "this passage" or "the sage" without a name
- Do not open every question the same way; avoid starting with "In the Ramayana"
- Exactly four options per question and exactly one correct option"""


def format_verses(
    verses: List[Verse],
    max_verses: int,
    sanskrit_limit: int = 200,
    translation_limit: int = 300
) -> str:
    """Render verses for a prompt, capped in count and per-field length.

    Args:
        verses: Verses to include
        max_verses: Maximum number of verses
        sanskrit_limit: Character cap for the Sanskrit field
        translation_limit: Character cap for the translation field

    Returns:
        Verse block text
    """
    usable = [verse for verse in verses if verse.is_usable][:max_verses]
    return "\n\n".join(
        f"Verse {verse.number}:\n"
        f"Sanskrit: {verse.sanskrit[:sanskrit_limit]}\n"
        f"Translation: {clean_translation(verse.translation)[:translation_limit]}"
        for verse in usable
    )


def _chapter_label(source: ChapterSource) -> str:
    return f"Valmiki Ramayana {source.kanda} Sarga {source.sarga}"


def standard_questions_prompt(source: ChapterSource, question_count: int = 4) -> str:
    """Single-call question prompt: one question per category."""
    verses_text = format_verses(source.verses, max_verses=8, sanskrit_limit=150, translation_limit=250)

    return f"""Generate exactly {question_count} quiz questions from {_chapter_label(source)}:

- 1 CHARACTERS question (easy)
- 1 EVENTS question (easy)
- 1 THEMES question (medium)
- 1 CULTURE question (medium)

Content:
{verses_text}

{CLARITY_RULES}

Return ONLY a valid JSON array of {question_count} objects, each matching:
{QUESTION_SCHEMA}"""


def pass_questions_prompt(
    source: ChapterSource,
    thematic_pass: ThematicPass,
    verses: List[Verse],
    question_count: int = 4
) -> str:
    """Question prompt scoped to one thematic pass."""
    verses_text = format_verses(verses, max_verses=15)
    categories = ", ".join(thematic_pass.categories)

    return f"""Generate exactly {question_count} quiz questions from {_chapter_label(source)} - {thematic_pass.name}:

THEMATIC FOCUS: {thematic_pass.focus}
PREFERRED CATEGORIES: {categories}

Content from this thematic section:
{verses_text}

DIFFICULTY DISTRIBUTION:
- 1 EASY question (basic character/event identification with full context)
- 2 MEDIUM questions (cultural concepts/story connections with rich background)
- 1 HARD question (themes/philosophy/deeper meaning with complete setup)

{CLARITY_RULES}

Return ONLY a valid JSON array of {question_count} objects, each matching:
{QUESTION_SCHEMA}"""


def hard_question_prompt(source: ChapterSource, theme: HardTheme, verses: List[Verse]) -> str:
    """Prompt for a single hard addon question on one theme."""
    verses_text = format_verses(verses, max_verses=6)

    return f"""Generate exactly 1 HARD difficulty quiz question from {_chapter_label(source)}.

THEMATIC FOCUS: {theme.name}
COMPLEXITY REQUIREMENT: {theme.complexity}
CONTENT FOCUS: {theme.focus}

Content from this thematic section:
{verses_text}

Create a HARD question that requires:
- Advanced understanding of Hindu philosophy and Sanskrit literary theory
- Complex synthesis of multiple concepts rather than simple recall
- A Sanskrit quote that is integral to the concept being tested

{CLARITY_RULES}

Return ONLY a valid JSON object matching:
{QUESTION_SCHEMA}"""


def representative_verses(verses: List[Verse]) -> List[Verse]:
    """Beginning, middle and end samples used for summaries."""
    total = len(verses)
    middle = total // 3
    picked = verses[:3] + verses[middle:middle + 3] + verses[-3:]

    seen = set()
    unique = []
    for verse in picked:
        if verse.number not in seen:
            seen.add(verse.number)
            unique.append(verse)
    return unique


def summary_prompt(source: ChapterSource) -> str:
    """Prompt for the chapter summary."""
    verses_text = format_verses(representative_verses(source.verses), max_verses=9)

    return f"""Based on the following representative Sanskrit verses and translations from {source.kanda} Sarga {source.sarga} of the Valmiki Ramayana:

{verses_text}

Generate a comprehensive chapter summary with the following structure. Return ONLY valid JSON:

{SUMMARY_SCHEMA}

Requirements:
- Maintain cultural sensitivity and accuracy to Hindu traditions
- Use proper Sanskrit terms with brief explanations where needed
- Connect to the broader Ramayana narrative arc"""


def combined_prompt(source: ChapterSource, question_count: int = 4) -> str:
    """Summary and questions requested in one call."""
    verses_text = format_verses(source.verses, max_verses=10)

    return f"""From {_chapter_label(source)}, produce a chapter summary and exactly {question_count} quiz questions.

Content:
{verses_text}

{CLARITY_RULES}

Return ONLY a valid JSON object of the form:
{{
  "summary": {SUMMARY_SCHEMA},
  "questions": [
    {QUESTION_SCHEMA}
  ]
}}"""
