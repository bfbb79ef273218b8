"""Splits a chapter's verses into thematic passes."""
import math
from typing import List, Union

from ingestion.models import ChapterSource, ThematicPass

# Positional templates: the first range always gets the first template
PASS_TEMPLATES = [
    {
        "name": "Characters & Setting",
        "focus": "main characters, their relationships, setting and context",
        "categories": ["characters", "culture"],
    },
    {
        "name": "Events & Actions",
        "focus": "key events, actions taken, plot developments",
        "categories": ["events", "themes"],
    },
    {
        "name": "Themes & Philosophy",
        "focus": "deeper themes, philosophical insights, spiritual significance",
        "categories": ["themes", "culture"],
    },
]


def segment_passes(source: Union[ChapterSource, int], pass_count: int = 3) -> List[ThematicPass]:
    """Partition a chapter into three contiguous, non-overlapping passes.

    The first two ranges end at ceil(N/3) and ceil(2N/3); the third runs to the
    end. For chapters shorter than three verses the trailing passes are empty
    (start > end) so the union of all ranges is still exactly [1, N].

    Args:
        source: Chapter or its verse count
        pass_count: Number of passes, only 3 is supported

    Returns:
        Passes in verse order

    Raises:
        ValueError: If the chapter has no verses or pass_count is not 3
    """
    if pass_count != len(PASS_TEMPLATES):
        raise ValueError(f"Only {len(PASS_TEMPLATES)} passes are supported, got {pass_count}")

    total = source if isinstance(source, int) else len(source.verses)
    if total < 1:
        raise ValueError("Cannot segment a chapter with no verses")

    third = math.ceil(total / 3)
    two_thirds = math.ceil(total * 2 / 3)
    bounds = [(1, third), (third + 1, two_thirds), (two_thirds + 1, None)]

    return [
        ThematicPass(pass_number=index + 1, start=start, end=end, **template)
        for index, ((start, end), template) in enumerate(zip(bounds, PASS_TEMPLATES))
    ]
