from __future__ import annotations

from dataclasses import dataclass

from loguru import logger
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_random

from swe_agent_loop.inference.errors import InferenceError


def _is_throttled(ex: BaseException) -> bool:
    return isinstance(ex, InferenceError) and ex.is_throttled


@dataclass(frozen=True)
class RetryPolicy:
    """Retry schedule for throttled inference calls. Anything else is not retried."""

    max_attempts: int = 100
    min_wait: float = 1.0
    max_wait: float = 5.0

    def retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            retry=retry_if_exception(_is_throttled),
            wait=wait_random(min=self.min_wait, max=self.max_wait),
            stop=stop_after_attempt(max(1, self.max_attempts)),
            before_sleep=self._on_retry,
            reraise=True,
        )

    def _on_retry(self, retry_state: RetryCallState) -> None:
        attempt = retry_state.attempt_number
        wait = retry_state.next_action.sleep if retry_state.next_action else 0
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(f"Throttled ({exc}). Retrying in {wait:.1f}s (attempt {attempt}/{self.max_attempts})...")
