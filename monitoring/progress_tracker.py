from typing import Iterable, Iterator, Optional

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, MofNCompleteColumn, TimeRemainingColumn

from utils.logger import console as default_console


class ProgressTracker:
    """Progress bar for runs over a range of chapters."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or default_console

    def create_progress(self) -> Progress:
        return Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeRemainingColumn(),
            console=self.console
        )

    def track_chapters(self, sargas: Iterable[int], kanda: str) -> Iterator[int]:
        """Yield each sarga while advancing a bar labelled with the current chapter."""
        sargas = list(sargas)
        with self.create_progress() as progress:
            task = progress.add_task(f"{kanda}", total=len(sargas))
            for sarga in sargas:
                progress.update(task, description=f"{kanda} sarga {sarga}")
                yield sarga
                progress.advance(task)
