"""Unit tests for the resilient invoke helper."""

import asyncio
import logging

import httpx
import pytest

from shared.exceptions import AuthorizationError, ConfigurationError, RemoteRequestError, TransientRemoteError
from shared.helper.resilience import ResiliencePolicy, compute_backoff, do_resilient_invoke

logger = logging.getLogger("index_sync.tests")
FAST = ResiliencePolicy(max_attempts=3, base_delay=0.0, max_delay=0.0, timeout=1.0)


class Flaky:
    """Raises the given errors in order, then returns "ok"."""

    def __init__(self, *errors: Exception):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


def test_transient_errors_are_retried_until_success() -> None:
    func = Flaky(TransientRemoteError("503"), httpx.ConnectError("refused"))
    assert asyncio.run(do_resilient_invoke(func, FAST, logger)) == "ok"
    assert func.calls == 3


def test_exhausted_retries_raise_transient_error() -> None:
    func = Flaky(*[TransientRemoteError("503")] * 5)
    with pytest.raises(TransientRemoteError):
        asyncio.run(do_resilient_invoke(func, FAST, logger))
    assert func.calls == 3


@pytest.mark.parametrize("error", [
    AuthorizationError("denied", engine="qdrant", status_code=401),
    RemoteRequestError("bad request", status_code=400),
    ValueError("broken payload"),
])
def test_non_transient_errors_are_not_retried(error: Exception) -> None:
    func = Flaky(error)
    with pytest.raises(type(error)):
        asyncio.run(do_resilient_invoke(func, FAST, logger))
    assert func.calls == 1


def test_per_attempt_timeout_counts_as_transient() -> None:
    calls = 0

    async def slow() -> str:
        nonlocal calls
        calls += 1
        await asyncio.sleep(1)
        return "late"

    policy = ResiliencePolicy(max_attempts=2, base_delay=0.0, max_delay=0.0, timeout=0.01)
    with pytest.raises(TransientRemoteError):
        asyncio.run(do_resilient_invoke(slow, policy, logger))
    assert calls == 2


def test_backoff_is_bounded_by_exponential_ceiling() -> None:
    policy = ResiliencePolicy(max_attempts=10, base_delay=0.5, max_delay=4.0, timeout=1.0)
    for attempt in range(1, 10):
        wait = compute_backoff(attempt, policy)
        assert 0.0 <= wait <= min(4.0, 0.5 * 2 ** (attempt - 1))


def test_policy_from_invalid_config_fails_fast(helper_config, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RETRY_MAX_ATTEMPTS", "0")
    with pytest.raises(ConfigurationError):
        ResiliencePolicy.from_config(helper_config)
