"""Uniform retry/timeout policy applied to every remote call.

Every client funnels its remote work through do_resilient_invoke() so that the
retry count, backoff curve and per-attempt timeout are identical at every
external boundary. Only transient failures are retried. Authorization failures
and plain request errors propagate on the first attempt.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

import httpx
from pydantic import BaseModel, Field, ValidationError

from shared.exceptions import ConfigurationError, TransientRemoteError
from shared.helper.HelperConfig import HelperConfig

T = TypeVar("T")

_RETRYABLE = (TransientRemoteError, asyncio.TimeoutError, httpx.TransportError)


class ResiliencePolicy(BaseModel):
    """Retry and timeout settings for remote calls.

    Attributes:
        max_attempts: Total attempts including the first one.
        base_delay:   Backoff base in seconds; doubled per attempt.
        max_delay:    Upper bound for a single backoff wait in seconds.
        timeout:      Per-attempt timeout in seconds.
    """

    max_attempts: int = Field(default=5, ge=1)
    base_delay: float = Field(default=1.0, ge=0.0)
    max_delay: float = Field(default=30.0, ge=0.0)
    timeout: float = Field(default=30.0, gt=0.0)

    @classmethod
    def from_config(cls, helper_config: HelperConfig) -> "ResiliencePolicy":
        """Build the policy from RETRY_* environment variables."""
        try:
            return cls(
                max_attempts=int(helper_config.get_number_val("RETRY_MAX_ATTEMPTS", default=5)),
                base_delay=float(helper_config.get_number_val("RETRY_BASE_DELAY", default=1.0)),
                max_delay=float(helper_config.get_number_val("RETRY_MAX_DELAY", default=30.0)),
                timeout=float(helper_config.get_number_val("RETRY_TIMEOUT", default=30.0)),
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid retry settings: {e}") from e


def compute_backoff(attempt: int, policy: ResiliencePolicy) -> float:
    """Exponential backoff with full jitter for the given (1-based) attempt."""
    ceiling = min(policy.max_delay, policy.base_delay * (2 ** (attempt - 1)))
    return random.uniform(0, ceiling)


async def do_resilient_invoke(
    func: Callable[[], Awaitable[T]],
    policy: ResiliencePolicy,
    logger: logging.Logger,
    description: str = "remote call",
) -> T:
    """Run an async remote call with per-attempt timeout and bounded retries.

    Args:
        func: Zero-argument coroutine factory. Called once per attempt.
        policy: The retry/timeout policy.
        logger: Logger used for retry warnings.
        description: Human readable name of the call for log messages.

    Returns:
        T: Whatever func returns on the first successful attempt.

    Raises:
        TransientRemoteError: If every attempt failed with a transient error.
        Exception: Any non-transient error raised by func, unchanged.
    """
    last_exc: BaseException | None = None
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await asyncio.wait_for(func(), timeout=policy.timeout)
        except _RETRYABLE as exc:
            last_exc = exc
            if attempt < policy.max_attempts:
                wait = compute_backoff(attempt, policy)
                logger.warning(
                    "Retry %d/%d for %s in %.2fs: %s",
                    attempt, policy.max_attempts, description, wait, exc or type(exc).__name__,
                )
                await asyncio.sleep(wait)

    raise TransientRemoteError(
        f"{description} failed after {policy.max_attempts} attempts: {last_exc or type(last_exc).__name__}"
    ) from last_exc
