"""Gemini REST backend (generativelanguage.googleapis.com)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from ..config import CatalogConfig
from . import ImagePayload, Sleep, VisionBackend
from .retry import AIRequestError, RetryPolicy, classify_error

logger = logging.getLogger(__name__)

API_BASE = "https://generativelanguage.googleapis.com/v1beta"

_OK_FINISH_REASONS = frozenset({"STOP", "MAX_TOKENS"})


class GeminiVisionBackend(VisionBackend):
    """Call Gemini's ``generateContent`` endpoint with an inlined photo."""

    def __init__(
        self,
        api_key: str = "",
        models: tuple[str, ...] = ("gemini-2.0-flash",),
        catalog: CatalogConfig | None = None,
        retry: RetryPolicy | None = None,
        temperature: float = 0.2,
        max_output_tokens: int = 1024,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        super().__init__(models, catalog=catalog, retry=retry, sleep=sleep)
        self._api_key = api_key
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens
        self._timeout = timeout
        self._transport = transport

    def _check_ready(self) -> None:
        if not self._api_key:
            raise ValueError(
                "Chybí API klíč pro Gemini. "
                "Zkontrolujte konfiguraci nebo proměnnou GEMINI_API_KEY."
            )

    def build_payload(self, prompt: str, image: ImagePayload | None) -> dict[str, Any]:
        parts: list[dict[str, Any]] = [{"text": prompt}]
        if image is not None:
            parts.append(
                {"inline_data": {"mime_type": image.mime_type, "data": image.b64()}}
            )
        return {
            "contents": [{"parts": parts}],
            "generationConfig": {
                "temperature": self._temperature,
                "maxOutputTokens": self._max_output_tokens,
            },
        }

    async def _generate_once(
        self, model: str, prompt: str, image: ImagePayload | None
    ) -> str:
        url = f"{API_BASE}/models/{model}:generateContent"
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            try:
                res = await client.post(
                    url,
                    params={"key": self._api_key},
                    json=self.build_payload(prompt, image),
                )
            except httpx.HTTPError as e:
                raise AIRequestError(f"Síťová chyba: {e.__class__.__name__}") from e

        logger.debug("%s responded HTTP %d", model, res.status_code)
        return parse_generate_response(res.status_code, _json_or_empty(res))


def _json_or_empty(res: httpx.Response) -> dict[str, Any]:
    try:
        data = res.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def parse_generate_response(status_code: int, data: dict[str, Any]) -> str:
    """Pull the answer text out of a generateContent response.

    Raises:
        AIQuotaError: On HTTP 429 / RESOURCE_EXHAUSTED / quota messages.
        AIRequestError: On any other error, safety block, unexpected finish
            reason, or empty text.
    """
    error = data.get("error") if isinstance(data.get("error"), dict) else {}
    if not 200 <= status_code < 300:
        message = error.get("message") or f"HTTP {status_code}"
        raise classify_error(message, status=status_code, api_status=error.get("status"))
    if error:
        raise classify_error(
            error.get("message") or "Chyba AI služby",
            status=error.get("code"),
            api_status=error.get("status"),
        )

    block_reason = (data.get("promptFeedback") or {}).get("blockReason")
    if block_reason:
        raise AIRequestError(f"Požadavek zablokován ({block_reason})", retryable=False)

    candidates = data.get("candidates") or []
    first = candidates[0] if candidates and isinstance(candidates[0], dict) else {}
    finish_reason = first.get("finishReason")
    if finish_reason and finish_reason not in _OK_FINISH_REASONS:
        raise AIRequestError(
            f"Odpověď AI byla přerušena ({finish_reason})", retryable=False
        )

    parts = (first.get("content") or {}).get("parts") or []
    text = "\n".join(
        p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str) and p["text"]
    )
    if not text:
        raise AIRequestError("Prázdná odpověď od AI.")
    return text
