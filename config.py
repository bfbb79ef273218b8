"""Configuration module for the epic content pipeline."""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Epic identity
EPIC_ID = os.getenv("EPIC_ID", "ramayana")
DEFAULT_KANDA = os.getenv("DEFAULT_KANDA", "bala_kanda")

# Source site
SOURCE_HOST = os.getenv("SOURCE_HOST", "www.valmikiramayan.net")
SOURCE_ENCODING = "utf8"
USER_AGENT = "Epic Quiz App Content Generator - Educational Use Only"
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "30"))

# API Configuration
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-opus-4-5-20251101")
ANTHROPIC_BASE_URL = os.getenv("ANTHROPIC_BASE_URL", "https://api.anthropic.com")
LLM_TEMPERATURE = 0.2  # Low randomness keeps replies close to the JSON schema
HARD_QUESTION_TEMPERATURE = 0.1

# Output token limits per call type
SUMMARY_MAX_TOKENS = 1000
QUESTIONS_MAX_TOKENS = 1800
HARD_QUESTION_MAX_TOKENS = 800
COMBINED_MAX_TOKENS = 4000

# Generation shape
PASS_COUNT = 3
QUESTIONS_PER_PASS = 4
STANDARD_QUESTION_COUNT = 4
DEDUP_PREFIX_LENGTH = 40

# Rate Limiting
API_CALL_DELAY = float(os.getenv("API_CALL_DELAY", "1.5"))  # Seconds between API calls
CHAPTER_DELAY = float(os.getenv("CHAPTER_DELAY", "5.0"))  # Seconds between chapters in batch runs
MAX_RETRIES = 3
RETRY_BACKOFF_MULTIPLIER = 2
PROBE_CONCURRENCY = 3

# Import / cleanup
DEFAULT_CATEGORY = "themes"
DUPLICATE_SIMILARITY_THRESHOLD = 0.9

# Storage Configuration
DB_PATH = Path(os.getenv("DB_PATH", "./output/pipeline.db"))

# Ensure output directories exist
DB_PATH.parent.mkdir(parents=True, exist_ok=True)

# Output Paths
OUTPUT_DIR = Path(os.getenv("OUTPUT_DIR", "./output"))
SCRAPED_DIR = OUTPUT_DIR / "scraped"
SUMMARIES_DIR = OUTPUT_DIR / "summaries"
QUESTIONS_DIR = OUTPUT_DIR / "questions"
DEBUG_DIR = OUTPUT_DIR / "debug"
SQL_DIR = OUTPUT_DIR / "sql"
THEMES_PATH = Path(os.getenv("THEMES_PATH", str(OUTPUT_DIR / "hard_question_themes.json")))
PROGRESS_LOG_PATH = OUTPUT_DIR / "logs" / "chapter_progress.json"

# Ensure output directories exist
for _directory in (SCRAPED_DIR, SUMMARIES_DIR, QUESTIONS_DIR, DEBUG_DIR, SQL_DIR, PROGRESS_LOG_PATH.parent):
    _directory.mkdir(parents=True, exist_ok=True)
