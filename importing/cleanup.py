"""Corrective pass that removes near-duplicate questions already in the store."""
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from utils.logger import setup_logger
from storage.database import Database, normalize_text
import config

logger = setup_logger(__name__)


def levenshtein(a: str, b: str) -> int:
    """Edit distance between two strings."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (char_a != char_b)
            ))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """1.0 for identical strings, falling towards 0.0 as edits accumulate."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return (longest - levenshtein(a, b)) / longest


def find_duplicate_groups(
    rows: List[Dict[str, Any]],
    threshold: float = config.DUPLICATE_SIMILARITY_THRESHOLD
) -> List[List[Dict[str, Any]]]:
    """Group rows whose question texts are more similar than ``threshold``.

    Each group starts with its earliest row; rows are compared on lower-cased,
    whitespace-collapsed text. Rows without a near-duplicate are not returned.
    """
    texts = [normalize_text(row.get("question_text", "")) for row in rows]
    assigned = set()
    groups = []

    for i, row in enumerate(rows):
        if i in assigned:
            continue
        group = [row]
        for j in range(i + 1, len(rows)):
            if j not in assigned and similarity(texts[i], texts[j]) > threshold:
                group.append(rows[j])
                assigned.add(j)
        if len(group) > 1:
            assigned.add(i)
            groups.append(group)

    return groups


class CleanupReport(BaseModel):
    chapter_key: str
    scanned: int = 0
    groups: int = 0
    deleted: int = 0
    deleted_ids: List[str] = Field(default_factory=list)
    dry_run: bool = False


class DuplicateCleanup:
    """Keeps the first row of each near-duplicate group and deletes the rest."""

    def __init__(
        self,
        threshold: float = config.DUPLICATE_SIMILARITY_THRESHOLD,
        epic_id: str = config.EPIC_ID
    ):
        self.threshold = threshold
        self.epic_id = epic_id

    def run(self, db: Database, kanda: str, sarga: int, dry_run: bool = False) -> CleanupReport:
        rows = db.get_questions(self.epic_id, kanda, sarga)
        report = CleanupReport(chapter_key=f"{kanda}_sarga_{sarga}", scanned=len(rows), dry_run=dry_run)

        for group in find_duplicate_groups(rows, self.threshold):
            keep, *extra = group
            report.groups += 1
            report.deleted_ids.extend(row["id"] for row in extra)
            logger.info(
                f"Keeping '{keep['question_text'][:60]}' and dropping {len(extra)} near-duplicate(s)"
            )

        if report.deleted_ids and not dry_run:
            report.deleted = db.delete_questions(report.deleted_ids)
        elif dry_run:
            logger.info(f"Dry run: {len(report.deleted_ids)} rows would be deleted")

        return report
