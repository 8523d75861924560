from __future__ import annotations

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import pytest

from nextstep.core.errors import StoreUnavailableError
from nextstep.utils.retry import RetryConfig, retry_operation


def test_backoff_doubles_after_first_retry() -> None:
    config = RetryConfig(attempts=4, backoff_seconds=1.0)

    assert [config.delay_before(n) for n in range(1, 5)] == [0.0, 1.0, 2.0, 4.0]


@pytest.mark.asyncio
async def test_retry_succeeds_after_transient_failures() -> None:
    attempts = []

    async def flaky() -> str:
        attempts.append(len(attempts) + 1)
        if len(attempts) < 3:
            raise StoreUnavailableError("offline")
        return "ok"

    outcome = await retry_operation(flaky, RetryConfig(attempts=3, backoff_seconds=0))

    assert outcome.success is True
    assert outcome.result == "ok"
    assert outcome.attempts == 3


@pytest.mark.asyncio
async def test_retry_returns_last_error_instead_of_raising() -> None:
    async def always_fails() -> None:
        raise StoreUnavailableError("still offline")

    outcome = await retry_operation(always_fails, RetryConfig(attempts=2, backoff_seconds=0))

    assert outcome.success is False
    assert isinstance(outcome.error, StoreUnavailableError)
    assert outcome.attempts == 2
