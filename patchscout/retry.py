"""
Retry executor: bounded retries with exponential backoff and jitter.

Every fetcher attempt goes through RetryExecutor.execute(). Attempts return
FetchAttemptResult objects instead of raising; the executor classifies the
failure and decides whether another attempt can change the outcome.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Type

from patchscout.errors import (
    AntiBotBlocked,
    CapabilityUnavailable,
    FatalInputError,
    PatchScoutError,
    TransientNetworkError,
)
from patchscout.models import ErrorKind, FetchAttemptResult, FetchOutcome
from patchscout.sessions import DomainSession

logger = logging.getLogger(__name__)

AttemptFn = Callable[[int], Awaitable[FetchAttemptResult]]

# ErrorKind -> taxonomy class. Only TransientNetworkError kinds are retried.
_ERROR_CLASSES: Dict[ErrorKind, Type[PatchScoutError]] = {
    ErrorKind.CONNECTION: TransientNetworkError,
    ErrorKind.TIMEOUT: TransientNetworkError,
    ErrorKind.SERVER_ERROR: TransientNetworkError,
    ErrorKind.RATE_LIMITED: TransientNetworkError,
    ErrorKind.BLOCKED: AntiBotBlocked,
    ErrorKind.UNAVAILABLE: CapabilityUnavailable,
    ErrorKind.INVALID_INPUT: FatalInputError,
}


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 8000
    jitter_ms: int = 500

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            base_delay_ms=settings.base_delay_ms,
            max_delay_ms=settings.max_delay_ms,
            jitter_ms=settings.jitter_ms,
        )


def classify(result: FetchAttemptResult) -> Optional[Type[PatchScoutError]]:
    """Map a failed attempt onto the error taxonomy (None for success)."""
    if result.outcome == FetchOutcome.SUCCESS:
        return None
    if result.outcome == FetchOutcome.BLOCKED:
        return AntiBotBlocked
    if result.outcome == FetchOutcome.UNAVAILABLE:
        return CapabilityUnavailable
    return _ERROR_CLASSES.get(result.error_kind, PatchScoutError)


def is_retryable(result: FetchAttemptResult) -> bool:
    """Connection failures, timeouts, 5xx and 429 are worth another try."""
    error_class = classify(result)
    return error_class is not None and issubclass(error_class, TransientNetworkError)


def backoff_delay_ms(attempt: int, policy: RetryPolicy, rng: Optional[random.Random] = None) -> float:
    """
    Delay to wait before `attempt` (2 for the first retry).

    min(base * 2^(attempt-1), max) + uniform(0, jitter)
    """
    rng = rng or random
    base = min(policy.base_delay_ms * (2 ** (attempt - 1)), policy.max_delay_ms)
    jitter = rng.uniform(0, policy.jitter_ms) if policy.jitter_ms > 0 else 0.0
    return base + jitter


class RetryExecutor:
    """
    Runs an attempt function until it succeeds, fails terminally, or the
    policy's attempt budget is exhausted.
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._rng = rng or random.Random()

    async def execute(
        self,
        attempt_fn: AttemptFn,
        policy: Optional[RetryPolicy] = None,
        session: Optional[DomainSession] = None,
    ) -> FetchAttemptResult:
        policy = policy or self.policy
        max_attempts = max(1, policy.max_attempts)
        start_time = time.time()
        result: Optional[FetchAttemptResult] = None

        for attempt in range(1, max_attempts + 1):
            if attempt > 1:
                delay = self._delay_for(attempt, policy, result)
                logger.debug("Retrying %s in %.0fms (attempt %d/%d)", result.url, delay, attempt, max_attempts)
                await self._sleep(delay / 1000)

            result = await attempt_fn(attempt)
            result.attempts = attempt

            if result.success:
                if session is not None:
                    session.last_request_ts = time.time()
                    if result.cookies:
                        session.absorb_cookies(result.cookies)
                break

            if not is_retryable(result):
                break

            logger.info("Attempt %d/%d for %s failed: %s", attempt, max_attempts, result.url, result.error)

        result.duration_ms = (time.time() - start_time) * 1000
        if not result.success and is_retryable(result) and result.attempts >= max_attempts:
            result.error = f"{result.error or 'Max retries exceeded'} (gave up after {result.attempts} attempts)"
        return result

    def _delay_for(self, attempt: int, policy: RetryPolicy, previous: Optional[FetchAttemptResult]) -> float:
        delay = backoff_delay_ms(attempt, policy, self._rng)
        if previous is not None and previous.retry_after_ms:
            ceiling = policy.max_delay_ms + policy.jitter_ms
            delay = max(delay, min(float(previous.retry_after_ms), ceiling))
        return delay
