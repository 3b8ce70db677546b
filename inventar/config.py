"""TOML configuration loader for the inventory service."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

DEFAULT_APP_ID = "domaci-inventar-v1"
DEFAULT_DB_PATH = "~/.config/inventar/inventar.db"


@dataclass(frozen=True)
class AppConfig:
    app_id: str = DEFAULT_APP_ID
    db_path: str = DEFAULT_DB_PATH


@dataclass(frozen=True)
class CatalogConfig:
    """Allowed enumerations and the defaults substituted for invalid values."""

    units: tuple[str, ...] = ("ks", "g", "kg", "ml", "l")
    categories: tuple[str, ...] = (
        "Chlazené",
        "Pečivo",
        "Ovoce & Zelenina",
        "Maso",
        "Drogerie",
        "Ostatní",
    )
    locations: tuple[str, ...] = ("Lednice", "Mrazák", "Spíž")
    default_unit: str = "ks"
    default_category: str = "Ostatní"
    default_location: str = "Spíž"
    review_location: str = "Lednice"  # výchozí lokace pro uložení z AI


@dataclass(frozen=True)
class RetryConfig:
    attempts: int = 3
    backoff: str = "exponential"  # exponential | fixed
    base_delay: float = 1.0
    quota_delay: float = 5.0


@dataclass(frozen=True)
class GeminiConfig:
    api_key: str = ""
    models: tuple[str, ...] = ("gemini-2.0-flash", "gemini-1.5-flash")
    temperature: float = 0.2
    max_output_tokens: int = 1024
    timeout: float = 60.0


@dataclass(frozen=True)
class ClaudeConfig:
    api_key: str = ""
    models: tuple[str, ...] = ("claude-sonnet-4-5-20250929",)
    max_tokens: int = 1024


@dataclass(frozen=True)
class AIConfig:
    backend: str = "gemini"
    retry: RetryConfig = field(default_factory=RetryConfig)
    gemini: GeminiConfig = field(default_factory=GeminiConfig)
    claude: ClaudeConfig = field(default_factory=ClaudeConfig)


@dataclass(frozen=True)
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8000
    static_dir: str = ""


@dataclass(frozen=True)
class InventarConfig:
    app: AppConfig = field(default_factory=AppConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    ai: AIConfig = field(default_factory=AIConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


def _validate_catalog(catalog: CatalogConfig) -> None:
    if not 4 <= len(catalog.categories) <= 6:
        raise ValueError(
            f"Počet kategorií musí být 4 až 6, nastaveno: {len(catalog.categories)}"
        )
    pairs = [
        ("default_unit", catalog.default_unit, catalog.units),
        ("default_category", catalog.default_category, catalog.categories),
        ("default_location", catalog.default_location, catalog.locations),
        ("review_location", catalog.review_location, catalog.locations),
    ]
    for name, value, allowed in pairs:
        if value not in allowed:
            raise ValueError(f"{name}={value!r} není v povolených hodnotách {allowed}")


def load_config(path: str | Path | None = None) -> InventarConfig:
    """Load configuration from a TOML file.

    Falls back to defaults if no path is given or the file doesn't exist.
    Secrets and the tenant id can be supplied via environment variables
    (a ``.env`` file in the working directory is honoured).
    """
    load_dotenv()
    raw: dict = {}

    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    app = raw.get("app", {})
    cat = raw.get("catalog", {})
    ai = raw.get("ai", {})
    srv = raw.get("server", {})

    retry_cfg = ai.get("retry", {})
    gemini_cfg = ai.get("gemini", {})
    claude_cfg = ai.get("claude", {})

    # Resolve secrets: config file → environment variable
    gemini_api_key = gemini_cfg.get("api_key", "") or os.environ.get(
        "GEMINI_API_KEY", ""
    )
    claude_api_key = claude_cfg.get("api_key", "") or os.environ.get(
        "ANTHROPIC_API_KEY", ""
    )
    app_id = app.get("app_id", "") or os.environ.get("INVENTAR_APP_ID", "") or DEFAULT_APP_ID
    db_path = app.get("db_path", "") or os.environ.get("INVENTAR_DB_PATH", "") or DEFAULT_DB_PATH

    defaults = CatalogConfig()
    catalog = CatalogConfig(
        units=tuple(cat.get("units", defaults.units)),
        categories=tuple(cat.get("categories", defaults.categories)),
        locations=tuple(cat.get("locations", defaults.locations)),
        default_unit=cat.get("default_unit", defaults.default_unit),
        default_category=cat.get("default_category", defaults.default_category),
        default_location=cat.get("default_location", defaults.default_location),
        review_location=cat.get("review_location", defaults.review_location),
    )
    _validate_catalog(catalog)

    backoff = retry_cfg.get("backoff", "exponential")
    if backoff not in ("exponential", "fixed"):
        raise ValueError(f"Neznámý backoff: {backoff!r} (exponential / fixed)")

    return InventarConfig(
        app=AppConfig(app_id=app_id, db_path=db_path),
        catalog=catalog,
        ai=AIConfig(
            backend=ai.get("backend", "gemini"),
            retry=RetryConfig(
                attempts=retry_cfg.get("attempts", 3),
                backoff=backoff,
                base_delay=retry_cfg.get("base_delay", 1.0),
                quota_delay=retry_cfg.get("quota_delay", 5.0),
            ),
            gemini=GeminiConfig(
                api_key=gemini_api_key,
                models=tuple(gemini_cfg.get("models", GeminiConfig.models)),
                temperature=gemini_cfg.get("temperature", 0.2),
                max_output_tokens=gemini_cfg.get("max_output_tokens", 1024),
                timeout=gemini_cfg.get("timeout", 60.0),
            ),
            claude=ClaudeConfig(
                api_key=claude_api_key,
                models=tuple(claude_cfg.get("models", ClaudeConfig.models)),
                max_tokens=claude_cfg.get("max_tokens", 1024),
            ),
        ),
        server=ServerConfig(
            host=srv.get("host", "127.0.0.1"),
            port=srv.get("port", 8000),
            static_dir=srv.get("static_dir", ""),
        ),
    )
