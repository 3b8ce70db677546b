"""Retry with backoff and model failover for generative-AI requests."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from ..config import RetryConfig

logger = logging.getLogger(__name__)

_QUOTA_MARKERS = ("quota", "429", "too many", "rate limit", "rate-limit", "resource_exhausted")


class AIRequestError(RuntimeError):
    """The AI endpoint didn't return usable text.

    ``retryable`` is False for answers that repeating the same request
    won't fix (safety blocks, odd finish reasons); those skip straight to
    the next model.
    """

    is_quota = False

    def __init__(
        self, message: str, *, status: int | None = None, retryable: bool = True
    ) -> None:
        super().__init__(message)
        self.status = status
        self.retryable = retryable


class AIQuotaError(AIRequestError):
    """Quota exhausted or rate limited."""

    is_quota = True


def is_quota_signal(message: str | None, status: int | None = None) -> bool:
    if status == 429:
        return True
    text = (message or "").lower()
    return any(marker in text for marker in _QUOTA_MARKERS)


def classify_error(
    message: str, *, status: int | None = None, api_status: str | None = None
) -> AIRequestError:
    """Build the right error type for a failed response."""
    if is_quota_signal(message, status) or api_status == "RESOURCE_EXHAUSTED":
        return AIQuotaError(message, status=status)
    return AIRequestError(message, status=status)


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    backoff: str = "exponential"  # exponential | fixed
    base_delay: float = 1.0
    quota_delay: float = 5.0

    @classmethod
    def from_config(cls, cfg: RetryConfig) -> RetryPolicy:
        return cls(
            attempts=max(1, cfg.attempts),
            backoff=cfg.backoff,
            base_delay=cfg.base_delay,
            quota_delay=cfg.quota_delay,
        )

    def delay(self, attempt: int, quota: bool = False) -> float:
        """Seconds to wait after the given 1-based failed attempt."""
        base = self.quota_delay if quota else self.base_delay
        if self.backoff == "exponential":
            return base * 2 ** (attempt - 1)
        return base


async def request_with_retry(
    call: Callable[[str], Awaitable[str]],
    models: Sequence[str],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> str:
    """Run ``call(model)`` until it returns text.

    Each model gets ``policy.attempts`` tries; after that the next model is
    used. When every model is exhausted the last error is raised.

    Raises:
        ValueError: If *models* is empty.
        AIRequestError: The last failure.
    """
    if not models:
        raise ValueError("Není nastaven žádný AI model")

    last_error: AIRequestError | None = None
    for model in models:
        for attempt in range(1, policy.attempts + 1):
            try:
                return await call(model)
            except AIRequestError as e:
                last_error = e
                if not e.retryable:
                    logger.warning("%s: non-retryable failure: %s", model, e)
                    break
                if attempt < policy.attempts:
                    delay = policy.delay(attempt, quota=e.is_quota)
                    logger.warning(
                        "%s: attempt %d/%d failed (%s), retrying in %.1fs",
                        model, attempt, policy.attempts, e, delay,
                    )
                    await sleep(delay)
                else:
                    logger.warning("%s: giving up after %d attempts: %s", model, attempt, e)
        if model != models[-1]:
            logger.info("Failing over from model %s", model)

    assert last_error is not None
    raise last_error
