"""Centralised settings for the AI crawler.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (one level up from this package)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)

_DEFAULT_STRICT_DOMAINS = "wikipedia.org,amazon.com,linkedin.com,facebook.com,twitter.com"


def _split_csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def _optional_int(name: str) -> int | None:
    raw = os.environ.get(name, "").strip()
    return int(raw) if raw else None


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Crawl defaults
    # ------------------------------------------------------------------
    crawl_depth: int = field(
        default_factory=lambda: int(os.environ.get("CRAWL_DEPTH", "3"))
    )
    crawl_timeout: float = field(
        default_factory=lambda: float(os.environ.get("CRAWL_TIMEOUT", "30"))
    )
    crawl_concurrency: int = field(
        default_factory=lambda: int(os.environ.get("CRAWL_CONCURRENCY", "3"))
    )
    crawl_max_clusters: int = field(
        default_factory=lambda: int(
            os.environ.get("CRAWL_MAX_CLUSTERS", str(min(os.cpu_count() or 1, 4)))
        )
    )
    crawl_global_concurrency: int | None = field(
        default_factory=lambda: _optional_int("CRAWL_GLOBAL_CONCURRENCY")
    )

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------
    rate_limit_delay: float = field(
        default_factory=lambda: float(os.environ.get("RATE_LIMIT_DELAY", "2.0"))
    )
    strict_rate_limit_delay: float = field(
        default_factory=lambda: float(os.environ.get("STRICT_RATE_LIMIT_DELAY", "5.0"))
    )
    strict_rate_limit_domains: list[str] = field(
        default_factory=lambda: _split_csv(
            os.environ.get("STRICT_RATE_LIMIT_DOMAINS", _DEFAULT_STRICT_DOMAINS)
        )
    )

    # ------------------------------------------------------------------
    # Browser
    # ------------------------------------------------------------------
    browser_headless: bool = field(
        default_factory=lambda: os.environ.get("BROWSER_HEADLESS", "true").lower()
        not in ("0", "false", "no")
    )
    browser_user_agent: str = field(
        default_factory=lambda: os.environ.get(
            "BROWSER_USER_AGENT",
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/122.0.0.0 Safari/537.36",
        )
    )
    screenshot_dir: Path = field(
        default_factory=lambda: Path(os.environ.get("SCREENSHOT_DIR", "."))
    )

    # ------------------------------------------------------------------
    # Markdown formatter (OpenAI-compatible chat completions)
    # ------------------------------------------------------------------
    formatter_api_key: str = field(
        default_factory=lambda: os.environ.get(
            "OPENROUTER_API_KEY", os.environ.get("OPENAI_API_KEY", "")
        )
    )
    formatter_model: str = field(
        default_factory=lambda: os.environ.get("OPENAI_MODEL", "gpt-3.5-turbo")
    )
    formatter_base_url: str = field(
        default_factory=lambda: os.environ.get(
            "OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"
        )
    )
    formatter_timeout: float = field(
        default_factory=lambda: float(os.environ.get("FORMATTER_TIMEOUT", "60.0"))
    )

    # ------------------------------------------------------------------
    # Search providers
    # ------------------------------------------------------------------
    brave_api_key: str = field(
        default_factory=lambda: os.environ.get("BRAVE_API_KEY", "")
    )
    search_max_results: int = field(
        default_factory=lambda: int(os.environ.get("SEARCH_MAX_RESULTS", "10"))
    )
    search_provider_timeout: float = field(
        default_factory=lambda: float(os.environ.get("SEARCH_PROVIDER_TIMEOUT", "10.0"))
    )
    search_retry_max: int = field(
        default_factory=lambda: int(os.environ.get("SEARCH_RETRY_MAX", "3"))
    )
    search_retry_base_delay: float = field(
        default_factory=lambda: float(os.environ.get("SEARCH_RETRY_BASE_DELAY", "2.0"))
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = field(
        default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO")
    )

    @property
    def strict_rate_limit_rules(self) -> dict[str, float]:
        """Pattern → delay mapping for origins known to rate-limit aggressively."""
        return {
            domain: self.strict_rate_limit_delay
            for domain in self.strict_rate_limit_domains
        }


# Module-level singleton; import this everywhere:
#   from aicrawler.config import settings
settings = Settings()
