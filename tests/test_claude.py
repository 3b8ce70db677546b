"""Tests for the Claude backend with a stubbed anthropic module."""

import sys
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from inventar.vision import AIQuotaError, AIRequestError, ImagePayload, RetryPolicy
from inventar.vision.claude import ClaudeVisionBackend


class FakeAPIStatusError(Exception):
    def __init__(self, message, status_code):
        super().__init__(message)
        self.status_code = status_code


class FakeRateLimitError(FakeAPIStatusError):
    pass


class FakeAPIConnectionError(Exception):
    pass


async def no_sleep(_):
    return None


def fake_anthropic(create):
    client = MagicMock()
    client.messages.create = create
    module = MagicMock()
    module.AsyncAnthropic.return_value = client
    module.RateLimitError = FakeRateLimitError
    module.APIStatusError = FakeAPIStatusError
    module.APIConnectionError = FakeAPIConnectionError
    return module


def message(text, stop_reason="end_turn"):
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=text)],
        stop_reason=stop_reason,
    )


def make_backend(models=("c1",), attempts=1):
    return ClaudeVisionBackend(
        api_key="test-key",
        models=models,
        retry=RetryPolicy(attempts=attempts),
        sleep=no_sleep,
    )


@pytest.mark.asyncio
async def test_requires_api_key():
    backend = ClaudeVisionBackend(api_key="")
    with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
        await backend.generate("prompt")


@pytest.mark.asyncio
async def test_analyze_image_sends_image_block():
    create = AsyncMock(
        return_value=message('[{"name": "Jogurt", "amount": 4, "unit": "ks", "emoji": "🥣"}]')
    )
    mock_anthropic = fake_anthropic(create)

    with patch.dict(sys.modules, {"anthropic": mock_anthropic}):
        backend = make_backend()
        candidates = await backend.analyze_image(ImagePayload(b"jpeg-bytes"), "fridge")

    assert [c.name for c in candidates] == ["Jogurt"]
    assert candidates[0].amount == 4
    kwargs = create.call_args.kwargs
    assert kwargs["model"] == "c1"
    content = kwargs["messages"][0]["content"]
    assert content[0]["type"] == "image"
    assert content[0]["source"]["media_type"] == "image/jpeg"
    assert content[1]["type"] == "text"
    mock_anthropic.AsyncAnthropic.assert_called_once_with(api_key="test-key", max_retries=0)


@pytest.mark.asyncio
async def test_rate_limit_is_quota_error():
    create = AsyncMock(side_effect=FakeRateLimitError("slow down", 429))
    with patch.dict(sys.modules, {"anthropic": fake_anthropic(create)}):
        with pytest.raises(AIQuotaError):
            await make_backend().generate("prompt")


@pytest.mark.asyncio
async def test_status_error_fails_over():
    create = AsyncMock(
        side_effect=[FakeAPIStatusError("overloaded", 529), message("ok")]
    )
    with patch.dict(sys.modules, {"anthropic": fake_anthropic(create)}):
        result = await make_backend(models=("c1", "c2")).generate("prompt")
    assert result == "ok"
    assert [c.kwargs["model"] for c in create.call_args_list] == ["c1", "c2"]


@pytest.mark.asyncio
async def test_connection_error():
    create = AsyncMock(side_effect=FakeAPIConnectionError("no route"))
    with patch.dict(sys.modules, {"anthropic": fake_anthropic(create)}):
        with pytest.raises(AIRequestError, match="Síťová chyba"):
            await make_backend().generate("prompt")


@pytest.mark.asyncio
async def test_refusal_is_not_retried():
    create = AsyncMock(return_value=message("", stop_reason="refusal"))
    with patch.dict(sys.modules, {"anthropic": fake_anthropic(create)}):
        with pytest.raises(AIRequestError) as exc:
            await make_backend(attempts=3).generate("prompt")
    assert exc.value.retryable is False
    assert create.await_count == 1


@pytest.mark.asyncio
async def test_empty_text_is_error():
    create = AsyncMock(return_value=message(""))
    with patch.dict(sys.modules, {"anthropic": fake_anthropic(create)}):
        with pytest.raises(AIRequestError, match="Prázdná"):
            await make_backend().generate("prompt")
