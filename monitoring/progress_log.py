"""Per-chapter record of which pipeline steps have run."""
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from utils.logger import setup_logger
import config

logger = setup_logger(__name__)

STEPS = ("fetch", "generate", "hard", "stage", "import")
STEP_STATUSES = ("started", "completed", "failed")


class ChapterProgressLog:
    """JSON file tracking step status, timestamps and metrics per chapter."""

    def __init__(self, path: Path = config.PROGRESS_LOG_PATH):
        """Initialize progress log.

        Args:
            path: JSON file holding the log
        """
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._data = self._load()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {"chapters": {}}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load progress log, starting fresh: {e}")
            return {"chapters": {}}

    def _save(self) -> None:
        try:
            with open(self.path, 'w', encoding='utf-8') as f:
                json.dump(self._data, f, indent=2, ensure_ascii=False)
        except OSError as e:
            logger.warning(f"Failed to save progress log: {e}")

    def record(self, chapter_key: str, step: str, status: str, **metrics: Any) -> None:
        """Record the outcome of one step for a chapter.

        Args:
            chapter_key: Chapter identifier such as "bala_kanda_sarga_3"
            step: One of STEPS
            status: One of STEP_STATUSES
            metrics: Counts worth keeping (questions, imported, failed, ...)
        """
        if step not in STEPS:
            raise ValueError(f"step must be one of {STEPS}, got {step!r}")
        if status not in STEP_STATUSES:
            raise ValueError(f"status must be one of {STEP_STATUSES}, got {status!r}")

        now = datetime.utcnow().isoformat()
        chapter = self._data["chapters"].setdefault(chapter_key, {"steps": {}})
        chapter["steps"][step] = {"status": status, "at": now, "metrics": metrics}
        chapter["updated_at"] = now
        self._save()

    def get(self, chapter_key: str) -> Optional[Dict[str, Any]]:
        return self._data["chapters"].get(chapter_key)

    def step_status(self, chapter_key: str, step: str) -> Optional[str]:
        chapter = self.get(chapter_key) or {}
        return chapter.get("steps", {}).get(step, {}).get("status")

    def is_completed(self, chapter_key: str, step: str) -> bool:
        return self.step_status(chapter_key, step) == "completed"

    def chapters(self) -> List[str]:
        return sorted(self._data["chapters"])

    def summary(self) -> Dict[str, Dict[str, int]]:
        """Chapter counts per step and status."""
        counts = {step: {status: 0 for status in STEP_STATUSES} for step in STEPS}
        for chapter in self._data["chapters"].values():
            for step, entry in chapter.get("steps", {}).items():
                if step in counts and entry.get("status") in counts[step]:
                    counts[step][entry["status"]] += 1
        return counts
