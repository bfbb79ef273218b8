"""Text cleaning utilities for scraped chapter pages."""
import re
from typing import List

DEVANAGARI = re.compile(r"[\u0900-\u097F]")

# Substrings marking site chrome rather than verse content
NAVIGATION_MARKERS = ('www.', 'copyright', '©', 'Click', 'Next', 'Previous', 'Home', 'Index')


def strip_non_content_blocks(html: str) -> str:
    """Remove comments, script blocks and style blocks from an HTML page.

    Args:
        html: Raw page HTML

    Returns:
        HTML with non-content blocks removed
    """
    html = re.sub(r'<!--.*?-->', '', html, flags=re.DOTALL)
    html = re.sub(r'<script\b[^>]*>.*?</script>', '', html, flags=re.DOTALL | re.IGNORECASE)
    html = re.sub(r'<style\b[^>]*>.*?</style>', '', html, flags=re.DOTALL | re.IGNORECASE)
    return html


def strip_markup(line: str) -> str:
    """Strip tags and HTML entities from a single line."""
    line = re.sub(r'<[^>]+>', ' ', line)
    line = re.sub(r'&[^;\s]+;', ' ', line)
    line = re.sub(r'[ \t]+', ' ', line)
    return line.strip()


def content_lines(html: str) -> List[str]:
    """Split a cleaned page into plain-text lines worth scanning.

    Args:
        html: Raw page HTML

    Returns:
        Lines with markup removed, short lines and site navigation dropped
    """
    lines = []
    for raw_line in re.split(r'\r?\n', strip_non_content_blocks(html)):
        line = strip_markup(raw_line)
        if len(line) < 3:
            continue
        if is_navigation(line):
            continue
        lines.append(line)
    return lines


def is_navigation(line: str) -> bool:
    if any(marker in line for marker in NAVIGATION_MARKERS):
        return True
    return 'menu' in line.lower()


def has_devanagari(text: str) -> bool:
    return bool(DEVANAGARI.search(text))


def extract_title(html: str) -> str:
    match = re.search(r'<title>(.*?)</title>', html, flags=re.IGNORECASE | re.DOTALL)
    if not match:
        return ""
    return strip_markup(match.group(1))


def clean_translation(text: str, limit: int = 500) -> str:
    """Normalize a translation for prompt embedding.

    Args:
        text: Translation text, possibly with leftover markup
        limit: Maximum length of the returned text

    Returns:
        Single-line text without tags or entities
    """
    text = re.sub(r'<[^>]*>', ' ', text)
    text = re.sub(r'&[^;\s]+;', ' ', text)
    text = re.sub(r'\s+', ' ', text)
    return text.strip()[:limit]
