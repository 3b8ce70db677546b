"""Tests for retry/backoff and model failover."""

import pytest

from inventar.config import RetryConfig
from inventar.vision.retry import (
    AIQuotaError,
    AIRequestError,
    RetryPolicy,
    classify_error,
    is_quota_signal,
    request_with_retry,
)


class FakeSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def scripted(outcomes):
    """Build a call that pops one outcome per attempt and records the model."""
    calls = []

    async def call(model):
        calls.append(model)
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return call, calls


class TestQuotaSignal:
    @pytest.mark.parametrize(
        "message,status",
        [
            ("", 429),
            ("Quota exceeded for metric", None),
            ("RESOURCE_EXHAUSTED", 400),
            ("Too Many Requests", None),
            ("rate limit reached", 503),
        ],
    )
    def test_quota(self, message, status):
        assert is_quota_signal(message, status)

    def test_generic(self):
        assert not is_quota_signal("Internal error", 500)

    def test_classify(self):
        assert isinstance(classify_error("x", status=429), AIQuotaError)
        assert isinstance(classify_error("x", api_status="RESOURCE_EXHAUSTED"), AIQuotaError)
        err = classify_error("boom", status=500)
        assert type(err) is AIRequestError
        assert err.status == 500
        assert not err.is_quota


class TestRetryPolicy:
    def test_exponential(self):
        policy = RetryPolicy(base_delay=1.0, quota_delay=5.0)
        assert [policy.delay(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]
        assert policy.delay(2, quota=True) == 10.0

    def test_fixed(self):
        policy = RetryPolicy(backoff="fixed", base_delay=0.5)
        assert policy.delay(1) == policy.delay(3) == 0.5

    def test_from_config_keeps_at_least_one_attempt(self):
        policy = RetryPolicy.from_config(RetryConfig(attempts=0))
        assert policy.attempts == 1


@pytest.mark.asyncio
async def test_success_first_try():
    sleep = FakeSleep()
    call, calls = scripted(["ok"])
    assert await request_with_retry(call, ["m1"], RetryPolicy(), sleep=sleep) == "ok"
    assert calls == ["m1"]
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_retries_then_succeeds():
    sleep = FakeSleep()
    call, calls = scripted([AIRequestError("e1"), AIRequestError("e2"), "ok"])
    result = await request_with_retry(
        call, ["m1"], RetryPolicy(attempts=3, base_delay=1.0), sleep=sleep
    )
    assert result == "ok"
    assert calls == ["m1", "m1", "m1"]
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_quota_uses_longer_delay():
    sleep = FakeSleep()
    call, _ = scripted([AIQuotaError("quota"), "ok"])
    await request_with_retry(
        call, ["m1"], RetryPolicy(base_delay=1.0, quota_delay=5.0), sleep=sleep
    )
    assert sleep.delays == [5.0]


@pytest.mark.asyncio
async def test_fails_over_to_next_model():
    sleep = FakeSleep()
    call, calls = scripted([AIRequestError("a"), AIRequestError("b"), "from m2"])
    result = await request_with_retry(
        call, ["m1", "m2"], RetryPolicy(attempts=2), sleep=sleep
    )
    assert result == "from m2"
    assert calls == ["m1", "m1", "m2"]
    # no wait after the last attempt on a model
    assert len(sleep.delays) == 1


@pytest.mark.asyncio
async def test_non_retryable_skips_to_next_model():
    sleep = FakeSleep()
    call, calls = scripted([AIRequestError("blocked", retryable=False), "ok"])
    result = await request_with_retry(
        call, ["m1", "m2"], RetryPolicy(attempts=3), sleep=sleep
    )
    assert result == "ok"
    assert calls == ["m1", "m2"]
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_raises_last_error_when_exhausted():
    sleep = FakeSleep()
    call, calls = scripted(
        [AIRequestError("a"), AIRequestError("b"), AIQuotaError("quota")]
    )
    with pytest.raises(AIQuotaError, match="quota"):
        await request_with_retry(
            call, ["m1", "m2", "m3"], RetryPolicy(attempts=1), sleep=sleep
        )
    assert calls == ["m1", "m2", "m3"]


@pytest.mark.asyncio
async def test_no_models_rejected():
    call, _ = scripted([])
    with pytest.raises(ValueError):
        await request_with_retry(call, [], RetryPolicy())
