"""Retry policy for per-segment work."""

from dataclasses import dataclass
from typing import Tuple, Type

from .errors import RETRYABLE_ERRORS
from .models import DEFAULT_MAX_ATTEMPTS, DEFAULT_RETRY_DELAY


@dataclass(frozen=True)
class RetryPolicy:
    """Decides whether a failed attempt is tried again and after how long.

    Attempts are numbered from 1. Delays grow exponentially from
    ``base_delay`` and are capped at ``max_delay``.
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_RETRY_DELAY
    max_delay: float = 8.0
    retryable: Tuple[Type[BaseException], ...] = RETRYABLE_ERRORS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must not be negative")

    def is_retryable(self, error: BaseException) -> bool:
        return isinstance(error, self.retryable)

    def should_retry(self, attempt: int, error: BaseException) -> bool:
        return attempt < self.max_attempts and self.is_retryable(error)

    def delay(self, attempt: int) -> float:
        """Seconds to wait after failed *attempt* before the next one."""
        if self.base_delay <= 0:
            return 0.0
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)


NO_DELAY = RetryPolicy(base_delay=0.0)
