"""Chapter fetching and verse extraction from the source site."""
import json
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import httpx

from utils.logger import setup_logger
from ingestion.cleaner import content_lines, extract_title, has_devanagari
from ingestion.models import ChapterSource, Verse
import config

logger = setup_logger(__name__)


class FetchError(Exception):
    """Raised when a chapter cannot be fetched."""
    pass


# kanda id -> (directory slug, file prefix)
KANDA_PATHS: Dict[str, Tuple[str, str]] = {
    'bala_kanda': ('baala', 'bala'),
    'ayodhya_kanda': ('ayodhya', 'ayodhya'),
    'aranya_kanda': ('aranya', 'aranya'),
    'kishkindha_kanda': ('kishkindha', 'kishkindha'),
    'sundara_kanda': ('sundara', 'sundara'),
    'yuddha_kanda': ('yuddha', 'yuddha'),
    'uttara_kanda': ('uttara', 'uttara'),
}

KANDA_TITLES: Dict[str, str] = {
    'bala_kanda': 'The Beginning',
    'ayodhya_kanda': 'The Royal Court',
    'aranya_kanda': 'Forest Life',
    'kishkindha_kanda': 'The Monkey Kingdom',
    'sundara_kanda': 'The Beautiful',
    'yuddha_kanda': 'The War',
    'uttara_kanda': 'The Final Chapter',
}

VERSE_NUMBER = re.compile(r'^(\d+)[.\s]')
FRAME_SRC = re.compile(r'<frame[^>]+src=["\']([^"\']+)["\'][^>]*>', re.IGNORECASE)

MIN_SANSKRIT_LENGTH = 10
MIN_TRANSLATION_LENGTH = 15


def build_source_url(kanda: str, sarga: int) -> str:
    """Build the page URL for a chapter.

    Args:
        kanda: Book identifier, e.g. "bala_kanda"
        sarga: 1-based chapter number

    Returns:
        Absolute URL of the chapter's frame page

    Raises:
        FetchError: If the kanda is not in the lookup table
    """
    if kanda not in KANDA_PATHS:
        raise FetchError(f"Unknown kanda: {kanda}")
    slug, prefix = KANDA_PATHS[kanda]
    return (
        f"https://{config.SOURCE_HOST}/{config.SOURCE_ENCODING}/"
        f"{slug}/sarga{sarga}/{prefix}_{sarga}_frame.htm"
    )


def chapter_filename(kanda: str, sarga: int) -> str:
    return f"{kanda}_sarga_{sarga}.json"


def parse_verses(html: str) -> List[Verse]:
    """Line-scan a chapter page into verses.

    A line opening with a number and a delimiter starts a new verse. Lines with
    Devanagari text accumulate into the Sanskrit field, other long lines into
    the translation. Verses missing either field are dropped.

    Args:
        html: Chapter page HTML

    Returns:
        Usable verses in page order
    """
    drafts = []
    current = {'number': 0, 'sanskrit': '', 'translation': ''}

    for line in content_lines(html):
        sanskrit_line = has_devanagari(line)

        number_match = VERSE_NUMBER.match(line)
        if number_match:
            if current['sanskrit'] or current['translation']:
                drafts.append(current)
            current = {'number': int(number_match.group(1)), 'sanskrit': '', 'translation': ''}
            line = re.sub(r'^\d+[.\s]*', '', line).strip()

        if sanskrit_line and len(line) > MIN_SANSKRIT_LENGTH:
            current['sanskrit'] = f"{current['sanskrit']} {line}".strip()
        elif (
            not sanskrit_line
            and len(line) > MIN_TRANSLATION_LENGTH
            and not re.fullmatch(r'[0-9\s.\-]+', line)
        ):
            current['translation'] = f"{current['translation']} {line}".strip()

    if current['sanskrit'] or current['translation']:
        drafts.append(current)

    complete = [draft for draft in drafts if draft['sanskrit'] and draft['translation']]
    return [
        Verse(
            number=draft['number'] or index + 1,
            sanskrit=draft['sanskrit'],
            translation=draft['translation']
        )
        for index, draft in enumerate(complete)
    ]


def load_chapter(path: Path) -> ChapterSource:
    """Load a previously scraped chapter file."""
    with open(path, 'r', encoding='utf-8') as f:
        return ChapterSource(**json.load(f))


def load_chapter_for(kanda: str, sarga: int, scraped_dir: Path = config.SCRAPED_DIR) -> ChapterSource:
    path = scraped_dir / chapter_filename(kanda, sarga)
    if not path.exists():
        raise FileNotFoundError(f"No scraped chapter at {path}; run fetch first")
    return load_chapter(path)


class ChapterFetcher:
    """Fetches chapter pages and writes them as ChapterSource files."""

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        output_dir: Path = config.SCRAPED_DIR
    ):
        """Initialize fetcher.

        Args:
            client: HTTP client, a default one is created when omitted
            output_dir: Directory for scraped chapter files
        """
        self.client = client or httpx.Client(
            headers={
                'User-Agent': config.USER_AGENT,
                'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
                'Accept-Language': 'en-US,en;q=0.5',
            },
            timeout=config.HTTP_TIMEOUT,
            follow_redirects=True
        )
        self.output_dir = output_dir
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def fetch(self, kanda: str, sarga: int) -> ChapterSource:
        """Fetch and parse one chapter.

        Args:
            kanda: Book identifier
            sarga: Chapter number

        Returns:
            Parsed chapter

        Raises:
            FetchError: On network failure or a non-2xx response
        """
        url = build_source_url(kanda, sarga)
        logger.info(f"Fetching {url}")

        html = self._get(url)
        logger.info(f"Fetched HTML ({len(html)} characters)")

        if '<frame' in html.lower():
            frame_url = self._frame_url(html, url)
            if frame_url:
                logger.info(f"Detected frameset, fetching frame content from {frame_url}")
                html = self._get(frame_url)
            else:
                logger.warning("Frameset page without a usable frame src")

        verses = parse_verses(html)
        title = extract_title(html) or f"{KANDA_TITLES.get(kanda, kanda)} - Sarga {sarga}"

        if not verses:
            logger.warning(f"No verses extracted for {kanda} sarga {sarga}; page layout may have changed")
        else:
            logger.info(f"Extracted {len(verses)} verses")

        return ChapterSource(
            kanda=kanda,
            sarga=sarga,
            title=title,
            verses=verses,
            source_url=url
        )

    def save(self, source: ChapterSource) -> Path:
        """Write a chapter file, replacing any previous one for the same key."""
        path = self.output_dir / chapter_filename(source.kanda, source.sarga)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(source.model_dump(), f, indent=2, ensure_ascii=False)
        logger.info(f"Chapter saved to {path}")
        return path

    def fetch_and_save(self, kanda: str, sarga: int) -> ChapterSource:
        source = self.fetch(kanda, sarga)
        self.save(source)
        return source

    def close(self) -> None:
        self.client.close()

    def _get(self, url: str) -> str:
        try:
            response = self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FetchError(f"HTTP {e.response.status_code} fetching {url}") from e
        except httpx.HTTPError as e:
            raise FetchError(f"Network error fetching {url}: {e}") from e
        return response.text

    @staticmethod
    def _frame_url(html: str, page_url: str) -> Optional[str]:
        match = FRAME_SRC.search(html)
        if not match:
            return None
        return str(httpx.URL(page_url).join(match.group(1)))
