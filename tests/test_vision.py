"""Tests for vision backends (mocked API calls)."""

import base64
import json
from dataclasses import replace

import httpx
import pytest

from inventar.config import AIConfig, InventarConfig, load_config
from inventar.models import PLACEHOLDER_NAME
from inventar.vision import (
    AIQuotaError,
    AIRequestError,
    ImagePayload,
    RetryPolicy,
    create_backend,
)
from inventar.vision.claude import ClaudeVisionBackend
from inventar.vision.gemini import GeminiVisionBackend, parse_generate_response

PNG = b"\x89PNG\r\n\x1a\nfake"


async def no_sleep(_):
    return None


def gemini_text(text, finish="STOP"):
    return {
        "candidates": [
            {"content": {"parts": [{"text": text}]}, "finishReason": finish}
        ]
    }


def make_gemini(handler, models=("m1",), attempts=1, api_key="test-key"):
    return GeminiVisionBackend(
        api_key=api_key,
        models=models,
        retry=RetryPolicy(attempts=attempts),
        transport=httpx.MockTransport(handler),
        sleep=no_sleep,
    )


class TestImagePayload:
    def test_png_passes_through_others_become_jpeg(self):
        assert ImagePayload.from_bytes(PNG, "image/png").mime_type == "image/png"
        assert ImagePayload.from_bytes(b"x", "image/heic").mime_type == "image/jpeg"
        assert ImagePayload.from_bytes(b"x").mime_type == "image/jpeg"

    def test_from_base64_data_url(self):
        encoded = base64.b64encode(PNG).decode()
        image = ImagePayload.from_base64(f"data:image/png;base64,{encoded}", "image/png")
        assert image.data == PNG
        assert image.b64() == encoded

    def test_from_base64_invalid(self):
        with pytest.raises(ValueError, match="obrázek"):
            ImagePayload.from_base64("***not base64***")
        with pytest.raises(ValueError):
            ImagePayload.from_base64("")

    def test_from_path(self, tmp_path):
        path = tmp_path / "receipt.png"
        path.write_bytes(PNG)
        image = ImagePayload.from_path(path)
        assert image.mime_type == "image/png"
        assert image.data == PNG


class TestCreateBackend:
    def test_create_gemini_backend(self):
        backend = create_backend(load_config())
        assert isinstance(backend, GeminiVisionBackend)
        assert backend.models == ("gemini-2.0-flash", "gemini-1.5-flash")

    def test_create_claude_backend(self):
        config = InventarConfig(ai=AIConfig(backend="claude"))
        assert isinstance(create_backend(config), ClaudeVisionBackend)

    def test_create_unknown_backend(self):
        config = InventarConfig(ai=AIConfig(backend="unknown"))
        with pytest.raises(ValueError, match="Neznámý AI backend"):
            create_backend(config)


class TestGeminiParseResponse:
    def test_text(self):
        assert parse_generate_response(200, gemini_text("[]")) == "[]"

    def test_http_429_is_quota(self):
        with pytest.raises(AIQuotaError):
            parse_generate_response(
                429, {"error": {"code": 429, "message": "Resource has been exhausted", "status": "RESOURCE_EXHAUSTED"}}
            )

    def test_http_500_is_generic(self):
        with pytest.raises(AIRequestError) as exc:
            parse_generate_response(500, {})
        assert not exc.value.is_quota
        assert "HTTP 500" in str(exc.value)

    def test_error_payload_with_200(self):
        with pytest.raises(AIQuotaError):
            parse_generate_response(200, {"error": {"message": "quota exceeded"}})

    def test_block_reason_not_retryable(self):
        with pytest.raises(AIRequestError) as exc:
            parse_generate_response(200, {"promptFeedback": {"blockReason": "SAFETY"}})
        assert exc.value.retryable is False

    def test_bad_finish_reason(self):
        with pytest.raises(AIRequestError) as exc:
            parse_generate_response(200, gemini_text("partial", finish="RECITATION"))
        assert exc.value.retryable is False

    def test_max_tokens_is_accepted(self):
        assert parse_generate_response(200, gemini_text("cut", finish="MAX_TOKENS")) == "cut"

    def test_empty_text(self):
        with pytest.raises(AIRequestError, match="Prázdná"):
            parse_generate_response(200, {"candidates": [{"content": {"parts": []}}]})


class TestGeminiBackend:
    def test_payload(self):
        backend = GeminiVisionBackend(api_key="k", temperature=0.2, max_output_tokens=1024)
        payload = backend.build_payload("prompt", ImagePayload(PNG, "image/png"))
        parts = payload["contents"][0]["parts"]
        assert parts[0] == {"text": "prompt"}
        assert parts[1]["inline_data"]["mime_type"] == "image/png"
        assert payload["generationConfig"] == {"temperature": 0.2, "maxOutputTokens": 1024}

    @pytest.mark.asyncio
    async def test_generate_sends_key_and_model(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=gemini_text("ahoj"))

        backend = make_gemini(handler)
        assert await backend.generate("prompt") == "ahoj"
        assert seen[0].url.params["key"] == "test-key"
        assert seen[0].url.path.endswith("/models/m1:generateContent")

    @pytest.mark.asyncio
    async def test_missing_key_raises_value_error(self):
        backend = make_gemini(lambda r: httpx.Response(200, json=gemini_text("x")), api_key="")
        with pytest.raises(ValueError, match="GEMINI_API_KEY"):
            await backend.generate("prompt")

    @pytest.mark.asyncio
    async def test_quota_fails_over_to_second_model(self):
        def handler(request):
            if "/models/m1:" in request.url.path:
                return httpx.Response(429, json={"error": {"message": "quota"}})
            return httpx.Response(200, json=gemini_text("ok"))

        backend = make_gemini(handler, models=("m1", "m2"), attempts=2)
        assert await backend.generate("prompt") == "ok"

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        backend = make_gemini(handler)
        with pytest.raises(AIRequestError, match="Síťová chyba"):
            await backend.generate("prompt")

    @pytest.mark.asyncio
    async def test_analyze_image_fills_missing_emoji(self):
        rows = [
            {"name": "Mléko", "amount": 2, "unit": "l", "category": "Chlazené", "emoji": ""},
            {"name": "Chléb", "amount": 1, "unit": "ks", "category": "Pečivo", "emoji": "🍞"},
        ]

        def handler(request):
            prompt = json.loads(request.content)["contents"][0]["parts"][0]["text"]
            if "JEDNO emoji" in prompt:
                return httpx.Response(200, json=gemini_text("🥛 mléko"))
            return httpx.Response(200, json=gemini_text(json.dumps(rows, ensure_ascii=False)))

        backend = make_gemini(handler)
        candidates = await backend.analyze_image(ImagePayload(PNG, "image/png"), "receipt")
        assert [c.name for c in candidates] == ["Mléko", "Chléb"]
        assert candidates[0].emoji == "🥛"
        assert candidates[1].emoji == "🍞"

    @pytest.mark.asyncio
    async def test_analyze_unparseable_text_gives_placeholder(self):
        backend = make_gemini(lambda r: httpx.Response(200, json=gemini_text("Nic tu není.")))
        candidates = await backend.analyze_image(ImagePayload(PNG), "fridge")
        assert len(candidates) == 1
        assert candidates[0].name == PLACEHOLDER_NAME

    @pytest.mark.asyncio
    async def test_emoji_falls_back_on_failure(self):
        backend = make_gemini(lambda r: httpx.Response(500, json={}))
        assert await backend.suggest_emoji("Mléko", "Chlazené") == "🥛"

    @pytest.mark.asyncio
    async def test_suggest_recipes(self):
        recipes = [{"title": "Omeleta", "why": "vejce", "ingredientsUsed": ["Vejce"], "steps": ["Usmažit"]}]
        seen = []

        def handler(request):
            seen.append(json.loads(request.content)["contents"][0]["parts"][0]["text"])
            return httpx.Response(200, json=gemini_text(json.dumps(recipes)))

        backend = make_gemini(handler)
        result = await backend.suggest_recipes(["Vejce", "", "Sýr"])
        assert [r.title for r in result] == ["Omeleta"]
        assert "Vejce, Sýr" in seen[0]

    def test_backend_catalog_is_passed(self):
        config = load_config()
        catalog = replace(config.catalog, default_location="Lednice")
        backend = GeminiVisionBackend(api_key="k", catalog=catalog)
        assert backend.catalog.default_location == "Lednice"
