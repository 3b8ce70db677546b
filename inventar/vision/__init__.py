"""Vision backend base class, data types, and factory."""

from __future__ import annotations

import asyncio
import base64
import logging
import mimetypes
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from ..config import CatalogConfig
from ..models import Recipe, ReviewCandidate
from ..normalize import guess_emoji, sanitize_emoji
from .parser import extract_candidates, extract_recipes
from .prompts import analyze_prompt, emoji_prompt, recipes_prompt
from .retry import AIQuotaError, AIRequestError, RetryPolicy, request_with_retry

if TYPE_CHECKING:
    from ..config import InventarConfig

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[object]]


@dataclass(frozen=True)
class ImagePayload:
    """A captured photo ready to be inlined into a request."""

    data: bytes
    mime_type: str = "image/jpeg"

    @classmethod
    def from_bytes(cls, data: bytes, content_type: str | None = None) -> ImagePayload:
        # Only PNG is passed through; everything else is sent as JPEG
        mime = "image/png" if content_type == "image/png" else "image/jpeg"
        return cls(data=data, mime_type=mime)

    @classmethod
    def from_base64(cls, text: str, content_type: str | None = None) -> ImagePayload:
        """Decode base64 text; a ``data:`` URL prefix is accepted.

        Raises:
            ValueError: If the text is empty or not valid base64.
        """
        raw = text.split(",", 1)[1] if text.startswith("data:") and "," in text else text
        raw = "".join(raw.split())
        if not raw:
            raise ValueError("Nepodařilo se načíst obrázek.")
        try:
            data = base64.b64decode(raw, validate=True)
        except ValueError as e:
            raise ValueError("Nepodařilo se načíst obrázek.") from e
        return cls.from_bytes(data, content_type)

    @classmethod
    def from_path(cls, path: str | Path) -> ImagePayload:
        data = Path(path).read_bytes()
        return cls.from_bytes(data, mimetypes.guess_type(str(path))[0])

    def b64(self) -> str:
        return base64.standard_b64encode(self.data).decode()


class VisionBackend(ABC):
    """Abstract base for generative-AI backends.

    Subclasses implement a single request against one model; retry,
    backoff and model failover are handled here.
    """

    def __init__(
        self,
        models: tuple[str, ...],
        catalog: CatalogConfig | None = None,
        retry: RetryPolicy | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.models = models
        self.catalog = catalog or CatalogConfig()
        self.retry = retry or RetryPolicy()
        self._sleep = sleep

    @abstractmethod
    async def _generate_once(
        self, model: str, prompt: str, image: ImagePayload | None
    ) -> str:
        """Send one request and return the model text.

        Raises:
            AIRequestError: On any unusable answer.
        """
        ...

    def _check_ready(self) -> None:
        """Raise ValueError when the backend can't make requests."""

    async def generate(self, prompt: str, image: ImagePayload | None = None) -> str:
        self._check_ready()
        return await request_with_retry(
            lambda model: self._generate_once(model, prompt, image),
            self.models,
            self.retry,
            sleep=self._sleep,
        )

    async def analyze_image(
        self, image: ImagePayload, mode: str = "fridge"
    ) -> list[ReviewCandidate]:
        """Extract reviewable item candidates from a receipt or fridge photo."""
        text = await self.generate(analyze_prompt(mode, self.catalog), image)
        strategy, candidates = extract_candidates(text, self.catalog)
        logger.info("Parsed %d candidates (%s)", len(candidates), strategy.value)
        missing = [c for c in candidates if not c.emoji]
        emojis = await asyncio.gather(
            *(self.suggest_emoji(c.name, c.category) for c in missing)
        )
        for c, emoji in zip(missing, emojis):
            c.emoji = emoji
        return candidates

    async def suggest_emoji(self, name: str | None, category: str | None) -> str:
        """Ask the model for one emoji; falls back to the keyword table on any failure."""
        fallback = guess_emoji(name, category)
        try:
            text = await self.generate(emoji_prompt(name, category))
        except (AIRequestError, ValueError) as e:
            logger.debug("Emoji suggestion failed, using fallback: %s", e)
            return fallback
        return sanitize_emoji(text) or fallback

    async def suggest_recipes(self, names: list[str]) -> list[Recipe]:
        names = [n for n in names if n][:60]
        text = await self.generate(recipes_prompt(names))
        return extract_recipes(text)


def create_backend(config: InventarConfig, sleep: Sleep = asyncio.sleep) -> VisionBackend:
    """Create an AI backend based on configuration."""
    backend_name = config.ai.backend
    retry = RetryPolicy.from_config(config.ai.retry)

    match backend_name:
        case "gemini":
            from .gemini import GeminiVisionBackend

            cfg = config.ai.gemini
            return GeminiVisionBackend(
                api_key=cfg.api_key,
                models=cfg.models,
                catalog=config.catalog,
                retry=retry,
                temperature=cfg.temperature,
                max_output_tokens=cfg.max_output_tokens,
                timeout=cfg.timeout,
                sleep=sleep,
            )
        case "claude":
            from .claude import ClaudeVisionBackend

            cfg = config.ai.claude
            return ClaudeVisionBackend(
                api_key=cfg.api_key,
                models=cfg.models,
                catalog=config.catalog,
                retry=retry,
                max_tokens=cfg.max_tokens,
                sleep=sleep,
            )
        case _:
            raise ValueError(
                f"Neznámý AI backend: {backend_name!r}  (gemini / claude)"
            )


__all__ = [
    "AIQuotaError",
    "AIRequestError",
    "ImagePayload",
    "RetryPolicy",
    "VisionBackend",
    "create_backend",
]
