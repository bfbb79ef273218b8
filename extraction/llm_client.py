"""Text-generation client with JSON reply handling."""
import json
import time
from pathlib import Path
from typing import Any, Optional

import anthropic
from anthropic import Anthropic

from utils.logger import setup_logger
from execution.retry_handler import RetryHandler
from extraction import prompts
import config

logger = setup_logger(__name__)

TRANSIENT_ERRORS = (
    anthropic.RateLimitError,
    anthropic.InternalServerError,
    anthropic.APIConnectionError,
)


class GenerationError(Exception):
    """Raised when the provider fails or its reply cannot be used."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        payload: Any = None,
        raw_path: Optional[Path] = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload
        self.raw_path = raw_path


def extract_json_text(response_text: str) -> Optional[str]:
    """Find a JSON document in a model reply.

    Tries the reply as-is, then a fenced code block, then the span between the
    first opening and last matching closing bracket.

    Returns:
        The JSON text, or None when nothing parses
    """
    candidates = [response_text.strip()]

    if "```json" in response_text:
        candidates.append(response_text.split("```json", 1)[1].split("```", 1)[0].strip())
    elif "```" in response_text:
        parts = response_text.split("```")
        if len(parts) >= 3:
            candidates.append(parts[1].strip())

    start_arr = response_text.find('[')
    start_obj = response_text.find('{')
    starts = [s for s in (start_arr, start_obj) if s != -1]
    if starts:
        start = min(starts)
        end_char = ']' if start == start_arr else '}'
        end = response_text.rfind(end_char)
        if end > start:
            candidates.append(response_text[start:end + 1])

    for candidate in candidates:
        try:
            json.loads(candidate)
            return candidate
        except json.JSONDecodeError:
            continue
    return None


def save_raw_reply(response_text: str, label: str, debug_dir: Path = config.DEBUG_DIR) -> Path:
    """Persist an unparseable reply so the prompt can be fixed offline."""
    debug_dir.mkdir(parents=True, exist_ok=True)
    path = debug_dir / f"{label}_{int(time.time() * 1000)}.txt"
    path.write_text(response_text, encoding='utf-8')
    return path


def parse_json_reply(response_text: str, label: str, debug_dir: Path = config.DEBUG_DIR) -> Any:
    """Parse a model reply as JSON.

    Raises:
        GenerationError: If no JSON can be parsed; the raw reply is written to
            ``debug_dir`` first and its path attached to the error
    """
    extracted = extract_json_text(response_text)
    if extracted is None:
        raw_path = save_raw_reply(response_text, label, debug_dir)
        logger.error(f"Could not parse JSON reply for {label}. Raw reply saved to {raw_path}")
        raise GenerationError(
            f"Reply for {label} is not valid JSON",
            payload=response_text[:500],
            raw_path=raw_path
        )
    return json.loads(extracted)


class LLMClient:
    """Chat-style completion calls against the Anthropic API."""

    def __init__(
        self,
        anthropic_client: Anthropic,
        model: str = config.ANTHROPIC_MODEL,
        retry_handler: Optional[RetryHandler] = None,
        debug_dir: Path = config.DEBUG_DIR
    ):
        """Initialize client.

        Args:
            anthropic_client: Anthropic API client
            model: Model name to use
            retry_handler: Retry policy for transient provider errors
            debug_dir: Where unparseable replies are written
        """
        self.client = anthropic_client
        self.model = model
        self.retry_handler = retry_handler or RetryHandler(retry_on=TRANSIENT_ERRORS)
        self.debug_dir = debug_dir
        self.total_tokens_used = 0

    def complete(self, prompt: str, max_tokens: int, temperature: float = config.LLM_TEMPERATURE) -> str:
        """Send one prompt and return the reply text.

        Raises:
            GenerationError: On a non-success status or connection failure
                once retries are exhausted
        """
        try:
            message = self.retry_handler.call(
                self.client.messages.create,
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=prompts.SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}]
            )
        except anthropic.APIStatusError as e:
            raise GenerationError(
                f"Provider returned HTTP {e.status_code}",
                status_code=e.status_code,
                payload=e.body
            ) from e
        except anthropic.APIConnectionError as e:
            raise GenerationError(f"Could not reach provider: {e}") from e

        usage = getattr(message, "usage", None)
        if usage is not None:
            self.total_tokens_used += usage.input_tokens + usage.output_tokens

        if not message.content:
            raise GenerationError("Provider returned an empty reply")
        return message.content[0].text.strip()

    def complete_json(
        self,
        prompt: str,
        max_tokens: int,
        label: str,
        temperature: float = config.LLM_TEMPERATURE
    ) -> Any:
        response_text = self.complete(prompt, max_tokens=max_tokens, temperature=temperature)
        return parse_json_reply(response_text, label, self.debug_dir)
