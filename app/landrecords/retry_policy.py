from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from . import config
from .logging_utils import _scraper_event


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt count and delay schedule for the initial search submission.

    ``backoff_factor`` of 1.0 keeps the delay fixed; larger values grow it
    geometrically per attempt, capped at ``max_delay_seconds``.
    """

    max_attempts: int = 3
    delay_seconds: float = 5.0
    backoff_factor: float = 1.0
    max_delay_seconds: float = 60.0

    @classmethod
    def from_config(cls) -> "RetryPolicy":
        return cls(
            max_attempts=config.SEARCH_MAX_ATTEMPTS,
            delay_seconds=config.SEARCH_RETRY_DELAY_SECONDS,
        )

    def delay_for(self, attempt_index: int) -> float:
        """Return the delay to wait after the given failed attempt (1-based)."""

        return compute_backoff_seconds(
            attempt_index,
            base=self.delay_seconds,
            factor=self.backoff_factor,
            cap=self.max_delay_seconds,
        )


def compute_backoff_seconds(
    attempt_index: int, *, base: float = 1.0, factor: float = 2.0, cap: float = 30.0
) -> float:
    """Return a capped backoff for the given attempt (1-based)."""

    exponent = max(0, attempt_index - 1)
    return float(max(0.0, min(base * (factor**exponent), cap)))


def decide_retry(
    attempt_index: int,
    max_attempts: int,
    error: BaseException | None = None,
    *,
    operation: Optional[str] = None,
) -> bool:
    """Decide whether a failed attempt should be retried."""

    will_retry = attempt_index < max_attempts
    _scraper_event(
        "state",
        phase="retry_decision",
        kind="retryable" if will_retry else "capped",
        operation=operation,
        attempt=attempt_index,
        max_attempts=max_attempts,
        will_retry=will_retry,
        error_repr=repr(error) if error is not None else None,
    )
    return will_retry


__all__ = ["RetryPolicy", "decide_retry", "compute_backoff_seconds"]
