"""Logging and stage-report utilities for the pipeline."""
import logging
import os
from typing import Dict, List, Optional

from rich.logging import RichHandler
from rich.console import Console
from rich.table import Table

console = Console()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def setup_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """Set up a logger with rich formatting.

    Args:
        name: Logger name
        level: Logging level, defaults to the LOG_LEVEL environment setting

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level if level is not None else getattr(logging, LOG_LEVEL, logging.INFO))

    # Avoid adding multiple handlers
    if not logger.handlers:
        handler = RichHandler(
            rich_tracebacks=True,
            console=console,
            show_time=True,
            show_path=False
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)

    return logger


def print_stage_report(
    title: str,
    counts: Dict[str, int],
    errors: Optional[List[str]] = None,
    max_errors: int = 5
) -> None:
    """Print the end-of-stage summary an operator uses to decide the next step.

    Args:
        title: Stage name shown as the table title
        counts: Ordered mapping of metric name to value (attempted, succeeded, ...)
        errors: Error messages collected during the stage
        max_errors: How many sample errors to print
    """
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Metric")
    table.add_column("Count", justify="right")

    for metric, value in counts.items():
        table.add_row(metric, str(value))

    console.print(table)

    if errors:
        console.print(f"[yellow]Sample errors ({min(len(errors), max_errors)} of {len(errors)}):[/yellow]")
        for message in errors[:max_errors]:
            console.print(f"  [red]•[/red] {message}")
