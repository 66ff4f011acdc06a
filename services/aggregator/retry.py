"""Retry logic for provider page fetches.

Every adapter wraps its page fetch in ``call_with_retry`` with an explicit,
finite ``RetryPolicy``. Two strategies exist:

- ``abort``: a rate-limited page ends the source's run right away
  (one attempt, no sleep).
- ``wait_and_retry``: sleep ``backoff_seconds`` and retry the same page,
  up to ``max_attempts`` attempts in total.

Only errors accepted by ``is_retryable`` are retried (``RateLimited`` by
default). Anything else propagates on the first failure.
"""

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from .errors import RateLimited

T = TypeVar("T")
F = TypeVar("F", bound=Callable[..., Any])

logger = logging.getLogger(__name__)

STRATEGY_ABORT = "abort"
STRATEGY_WAIT_AND_RETRY = "wait_and_retry"
VALID_STRATEGIES = {STRATEGY_ABORT, STRATEGY_WAIT_AND_RETRY}

# Hard ceiling so that no configuration can block a worker indefinitely
MAX_ATTEMPTS_LIMIT = 10

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_SECONDS = 60.0


def is_rate_limited(error: BaseException) -> bool:
    """Default retry predicate: only rate-limit errors are retried."""
    return isinstance(error, RateLimited)


@dataclass(frozen=True)
class RetryPolicy:
    """Finite retry policy for a single page fetch.

    Attributes:
        max_attempts: Total number of attempts, including the first one.
        backoff_seconds: Sleep before the first retry.
        backoff_factor: Multiplier applied to the sleep after each retry
            (1.0 keeps a fixed backoff).
        is_retryable: Predicate deciding whether an error is worth retrying.
        strategy: Name of the strategy the policy was built from.
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff_seconds: float = DEFAULT_BACKOFF_SECONDS
    backoff_factor: float = 1.0
    is_retryable: Callable[[BaseException], bool] = is_rate_limited
    strategy: str = STRATEGY_WAIT_AND_RETRY

    def __post_init__(self) -> None:
        if not isinstance(self.max_attempts, int) or isinstance(self.max_attempts, bool):
            raise ValueError("max_attempts must be an integer")
        if not 1 <= self.max_attempts <= MAX_ATTEMPTS_LIMIT:
            raise ValueError(
                f"max_attempts must be between 1 and {MAX_ATTEMPTS_LIMIT}, got {self.max_attempts}"
            )
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds must not be negative")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be >= 1")
        if self.strategy not in VALID_STRATEGIES:
            raise ValueError(f"Unknown retry strategy: {self.strategy}")

    @classmethod
    def abort(cls) -> "RetryPolicy":
        """Policy that gives up on the first rate-limit response."""
        return cls(max_attempts=1, backoff_seconds=0.0, strategy=STRATEGY_ABORT)

    @classmethod
    def wait_and_retry(
        cls,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        backoff_factor: float = 1.0,
    ) -> "RetryPolicy":
        """Policy that sleeps and retries the same page a bounded number of times."""
        return cls(
            max_attempts=max_attempts,
            backoff_seconds=float(backoff_seconds),
            backoff_factor=float(backoff_factor),
            strategy=STRATEGY_WAIT_AND_RETRY,
        )

    @classmethod
    def from_config(cls, data: Optional[Mapping[str, Any]]) -> "RetryPolicy":
        """Build a policy from the ``retry`` block of a provider configuration.

        Example YAML:
            retry:
              strategy: wait_and_retry
              max_attempts: 3
              backoff_seconds: 60

        Raises:
            ValueError: If the block is malformed or names an unknown strategy.
        """
        if not data:
            return cls.wait_and_retry()
        if not isinstance(data, Mapping):
            raise ValueError("`retry` must be a mapping")

        strategy = data.get("strategy", STRATEGY_WAIT_AND_RETRY)
        if strategy == STRATEGY_ABORT:
            return cls.abort()
        if strategy != STRATEGY_WAIT_AND_RETRY:
            raise ValueError(f"Unknown retry strategy: {strategy}")

        try:
            return cls.wait_and_retry(
                max_attempts=int(data.get("max_attempts", DEFAULT_MAX_ATTEMPTS)),
                backoff_seconds=float(data.get("backoff_seconds", DEFAULT_BACKOFF_SECONDS)),
                backoff_factor=float(data.get("backoff_factor", 1.0)),
            )
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid retry configuration: {exc}") from exc

    def delay_for(self, attempt: int) -> float:
        """Return the sleep before retrying after ``attempt`` failed (1-based)."""
        return self.backoff_seconds * (self.backoff_factor ** (attempt - 1))


def call_with_retry(
    func: Callable[..., T], policy: RetryPolicy, *args: Any, **kwargs: Any
) -> T:
    """Call ``func`` under ``policy``.

    Example (wait_and_retry, max_attempts=3, backoff_seconds=60):
        Attempt 1: immediate
        Attempt 2: after 60 seconds
        Attempt 3: after 60 seconds
        Still rate limited: the RateLimited error is raised to the caller

    Returns:
        Whatever ``func`` returns on the first successful attempt.

    Raises:
        The last retryable error once attempts are exhausted, or any
        non-retryable error immediately.
    """
    name = getattr(func, "__name__", repr(func))

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            if not policy.is_retryable(e):
                raise

            if attempt >= policy.max_attempts:
                logger.error(
                    "Function %s still failing after %d attempts",
                    name,
                    attempt,
                    extra={
                        "function": name,
                        "total_attempts": attempt,
                        "strategy": policy.strategy,
                        "exception_type": type(e).__name__,
                    },
                )
                raise

            delay = policy.delay_for(attempt)
            logger.warning(
                "Function %s failed (attempt %d/%d): %s. Retrying in %.1f seconds...",
                name,
                attempt,
                policy.max_attempts,
                e,
                delay,
                extra={
                    "function": name,
                    "retry_attempt": attempt,
                    "max_attempts": policy.max_attempts,
                    "delay_seconds": delay,
                    "exception_type": type(e).__name__,
                },
            )
            if delay > 0:
                time.sleep(delay)

    # max_attempts >= 1, so the loop always returns or raises
    raise AssertionError("unreachable")


def retry_with_backoff(policy: RetryPolicy) -> Callable[[F], F]:
    """Decorator form of ``call_with_retry``.

    Example:
        @retry_with_backoff(RetryPolicy.wait_and_retry(max_attempts=3, backoff_seconds=60))
        def fetch_page(page):
            return request_json(url, params={"page": page})
    """

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            return call_with_retry(func, policy, *args, **kwargs)

        return wrapper  # type: ignore

    return decorator
