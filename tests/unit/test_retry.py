"""Unit tests for the retry policy."""

from __future__ import annotations

import pytest

from agent_workflow_orchestrator.core.retry import RetryPolicy


class Flaky:
    def __init__(self, failures: int, error: type[Exception] = ConnectionError) -> None:
        self.failures = failures
        self.error = error
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error(f"failure {self.calls}")
        return "ok"


def test_schedule_doubles_and_caps() -> None:
    policy = RetryPolicy(max_retries=6, initial_delay=1.0, max_delay=8.0)

    assert policy.schedule() == [1.0, 2.0, 4.0, 8.0, 8.0, 8.0]


def test_jitter_stays_within_spread() -> None:
    policy = RetryPolicy(initial_delay=10.0, jitter_percent=0.2)

    assert policy.delay_for(0, rng=lambda: 0.0) == pytest.approx(8.0)
    assert policy.delay_for(0, rng=lambda: 1.0) == pytest.approx(12.0)
    assert policy.delay_for(0, rng=lambda: 0.5) == pytest.approx(10.0)


def test_call_retries_until_success() -> None:
    delays: list[float] = []
    retried: list[int] = []
    operation = Flaky(failures=2)
    policy = RetryPolicy(max_retries=3, initial_delay=1.0, jitter_percent=0.0)

    result, attempts = policy.call(
        operation,
        retry_on=(ConnectionError,),
        sleep=delays.append,
        on_retry=lambda _exc, attempt, _delay: retried.append(attempt),
    )

    assert result == "ok"
    assert attempts == 3
    assert delays == [1.0, 2.0]
    assert retried == [1, 2]


def test_call_reraises_after_budget_is_spent() -> None:
    operation = Flaky(failures=10)
    policy = RetryPolicy(max_retries=2, initial_delay=0.0, jitter_percent=0.0)

    with pytest.raises(ConnectionError, match="failure 3"):
        policy.call(operation, retry_on=(ConnectionError,), sleep=lambda _d: None)

    assert operation.calls == 3


def test_non_retryable_errors_propagate_immediately() -> None:
    operation = Flaky(failures=1, error=ValueError)
    policy = RetryPolicy(max_retries=5, initial_delay=0.0)

    with pytest.raises(ValueError):
        policy.call(operation, retry_on=(ConnectionError,), sleep=lambda _d: None)

    assert operation.calls == 1
