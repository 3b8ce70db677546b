"""Claude API backend."""

from __future__ import annotations

import asyncio

from ..config import CatalogConfig
from . import ImagePayload, Sleep, VisionBackend
from .retry import AIQuotaError, AIRequestError, RetryPolicy, classify_error


class ClaudeVisionBackend(VisionBackend):
    """Analyze photos using Claude's vision capability."""

    def __init__(
        self,
        api_key: str = "",
        models: tuple[str, ...] = ("claude-sonnet-4-5-20250929",),
        catalog: CatalogConfig | None = None,
        retry: RetryPolicy | None = None,
        max_tokens: int = 1024,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        super().__init__(models, catalog=catalog, retry=retry, sleep=sleep)
        self._api_key = api_key
        self._max_tokens = max_tokens
        self._client = None

    def _check_ready(self) -> None:
        if not self._api_key:
            raise ValueError(
                "Chybí API klíč pro Anthropic. "
                "Zkontrolujte konfiguraci nebo proměnnou ANTHROPIC_API_KEY."
            )

    async def _generate_once(
        self, model: str, prompt: str, image: ImagePayload | None
    ) -> str:
        import anthropic

        content: list[dict] = []
        if image is not None:
            content.append(
                {
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": image.mime_type,
                        "data": image.b64(),
                    },
                }
            )
        content.append({"type": "text", "text": prompt})

        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=self._api_key, max_retries=0)
        try:
            response = await self._client.messages.create(
                model=model,
                max_tokens=self._max_tokens,
                messages=[{"role": "user", "content": content}],
            )
        except anthropic.RateLimitError as e:
            raise AIQuotaError(str(e), status=429) from e
        except anthropic.APIStatusError as e:
            raise classify_error(str(e), status=e.status_code) from e
        except anthropic.APIConnectionError as e:
            raise AIRequestError(f"Síťová chyba: {e.__class__.__name__}") from e

        if response.stop_reason == "refusal":
            raise AIRequestError("Požadavek zablokován (refusal)", retryable=False)
        text = "\n".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text" and block.text
        )
        if not text:
            raise AIRequestError("Prázdná odpověď od AI.")
        return text
