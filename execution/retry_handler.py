import asyncio
import time
from typing import Callable, Any, Optional, Tuple, Type

from tenacity import AsyncRetrying, Retrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from utils.logger import setup_logger
import config

logger = setup_logger(__name__)


class RetryHandler:
    """Bounded retry with exponential backoff for provider calls and store writes."""

    def __init__(
        self,
        max_retries: int = config.MAX_RETRIES,
        multiplier: float = config.RETRY_BACKOFF_MULTIPLIER,
        min_wait: float = 1.0,
        max_wait: float = 60.0,
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
        sleep: Optional[Callable[[float], None]] = None,
        async_sleep: Optional[Callable[[float], Any]] = None
    ):
        self.max_retries = max(1, max_retries)
        self.multiplier = multiplier
        self.min_wait = min_wait
        self.max_wait = max_wait
        self.retry_on = retry_on
        self.sleep = sleep or time.sleep
        self.async_sleep = async_sleep or asyncio.sleep

    def call(self, func: Callable, *args, **kwargs) -> Any:
        """Run ``func`` until it succeeds or attempts run out; the last error is re-raised."""
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.multiplier, min=self.min_wait, max=self.max_wait),
            retry=retry_if_exception_type(self.retry_on),
            sleep=self.sleep,
            before_sleep=self._log_attempt,
            reraise=True
        )
        return retrying(func, *args, **kwargs)

    def _log_attempt(self, retry_state) -> None:
        error = retry_state.outcome.exception()
        logger.warning(
            f"Attempt {retry_state.attempt_number}/{self.max_retries} failed: {error}. "
            f"Retrying in {retry_state.next_action.sleep:.1f}s"
        )

    async def execute_with_retry(self, func: Callable, *args, **kwargs) -> Any:
        """Async variant of ``call`` for coroutine functions."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.multiplier, min=self.min_wait, max=self.max_wait),
            retry=retry_if_exception_type(self.retry_on),
            sleep=self.async_sleep,
            before_sleep=self._log_attempt,
            reraise=True
        )
        async for attempt in retrying:
            with attempt:
                return await func(*args, **kwargs)
