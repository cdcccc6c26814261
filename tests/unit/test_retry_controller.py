"""
Tests for the classification-aware retry controller.
"""

import asyncio

import httpx
import pytest

from deferred_attribution.services.link_api_client import LinkApiError
from deferred_attribution.services.retry_controller import (
    RETRYABLE,
    TERMINAL,
    RetryController,
    RetryStatus,
    classify_failure,
)


class ScriptedOperation:
    def __init__(self, *steps):
        self.steps = list(steps)
        self.calls = 0

    async def __call__(self):
        step = self.steps[min(self.calls, len(self.steps) - 1)]
        self.calls += 1
        if isinstance(step, BaseException):
            raise step
        return step


@pytest.mark.parametrize(
    "error, expected",
    [
        (LinkApiError("Not found", status_code=404), TERMINAL),
        (LinkApiError("Bad request", status_code=400), TERMINAL),
        (LinkApiError("Server error", status_code=500), RETRYABLE),
        (LinkApiError("Unavailable", status_code=503), RETRYABLE),
        (LinkApiError("Network error"), RETRYABLE),
        (TimeoutError(), RETRYABLE),
        (httpx.ConnectError("refused"), RETRYABLE),
        (RuntimeError("boom"), RETRYABLE),
    ],
)
def test_classify_failure(error, expected):
    assert classify_failure(error) == expected


def test_backoff_schedule():
    controller = RetryController()

    assert controller.backoff_delay(1) == 0.0
    assert controller.backoff_delay(2) == 2.0
    assert controller.backoff_delay(3) == 4.0


def test_jitter_stays_within_bounds():
    controller = RetryController(jitter=0.5)

    for _ in range(20):
        assert 2.0 <= controller.backoff_delay(2) <= 3.0


def test_rejects_zero_attempts():
    with pytest.raises(ValueError):
        RetryController(max_attempts=0)


@pytest.mark.asyncio
async def test_success_on_first_attempt(retry_controller, recording_sleep):
    operation = ScriptedOperation({"success": True})

    outcome = await retry_controller.run(operation)

    assert outcome.status == RetryStatus.SUCCESS
    assert outcome.value == {"success": True}
    assert outcome.attempts == 1
    assert operation.calls == 1
    assert recording_sleep.delays == []


@pytest.mark.asyncio
async def test_404_is_terminal_after_one_call(retry_controller, recording_sleep):
    operation = ScriptedOperation(LinkApiError("Not found", status_code=404))

    outcome = await retry_controller.run(operation)

    assert outcome.status == RetryStatus.TERMINAL
    assert outcome.status_code == 404
    assert operation.calls == 1
    assert recording_sleep.delays == []


@pytest.mark.asyncio
async def test_500_then_200_retries_once_with_backoff(retry_controller, recording_sleep):
    operation = ScriptedOperation(
        LinkApiError("Server error", status_code=500),
        {"found": True},
    )

    outcome = await retry_controller.run(operation)

    assert outcome.succeeded
    assert outcome.attempts == 2
    assert operation.calls == 2
    assert recording_sleep.delays == [2.0]
    assert all(delay >= 2.0 for delay in recording_sleep.delays)


@pytest.mark.asyncio
async def test_three_timeouts_exhaust(retry_controller, recording_sleep):
    operation = ScriptedOperation(TimeoutError())

    outcome = await retry_controller.run(operation)

    assert outcome.status == RetryStatus.EXHAUSTED
    assert outcome.exhausted
    assert outcome.attempts == 3
    assert isinstance(outcome.error, TimeoutError)
    assert operation.calls == 3
    assert recording_sleep.delays == [2.0, 4.0]


@pytest.mark.asyncio
async def test_per_attempt_timeout_is_enforced(recording_sleep):
    controller = RetryController(attempt_timeout=0.01, sleep=recording_sleep)
    calls = {"count": 0}

    async def slow_operation():
        calls["count"] += 1
        await asyncio.sleep(1)

    outcome = await controller.run(slow_operation)

    assert outcome.exhausted
    assert calls["count"] == 3


@pytest.mark.asyncio
async def test_terminal_after_retryable_stops_immediately(retry_controller, recording_sleep):
    operation = ScriptedOperation(
        httpx.ConnectError("refused"),
        LinkApiError("Not found", status_code=404),
    )

    outcome = await retry_controller.run(operation)

    assert outcome.status == RetryStatus.TERMINAL
    assert operation.calls == 2
    assert recording_sleep.delays == [2.0]


@pytest.mark.asyncio
async def test_cancellation_during_backoff_aborts_remaining_attempts():
    entered_backoff = asyncio.Event()

    async def blocking_sleep(delay: float) -> None:
        entered_backoff.set()
        await asyncio.Event().wait()

    controller = RetryController(attempt_timeout=1.0, sleep=blocking_sleep)
    operation = ScriptedOperation(LinkApiError("Server error", status_code=502))

    task = asyncio.create_task(controller.run(operation))
    await entered_backoff.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert operation.calls == 1
