"""
Job Retry Policy

Whole-job retry: a fixed number of attempts with exponentially growing delay.
The job queue uses it to schedule the next attempt; `run` applies the same
policy to a coroutine executed inline.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_seconds: int = 15
    max_seconds: int = 1800

    def delay_seconds(self, attempt: int) -> int:
        """Delay before the attempt following `attempt` (1-based)."""
        raw = self.base_seconds * (2 ** (attempt - 1))
        return min(raw, self.max_seconds)

    async def run(
        self, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any
    ) -> Any:
        """Run func, retrying on any exception; the last error is re-raised."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.base_seconds, min=0, max=self.max_seconds
            ),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await func(*args, **kwargs)
