"""Ranked web search with automatic failover.

Provider priority (highest to lowest):
  1. Brave Search — REST API, deterministic; requires BRAVE_API_KEY.
  2. DuckDuckGo — free, scraping-based; retried with exponential backoff.

All providers share a common interface:
``search(query, max_results) -> list[SearchResult]``, best result first.
The ``SearchProviderChain`` tries each provider in order and returns the first
non-empty result list.  If every provider fails the chain returns ``[]``.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Any, Iterable

import httpx
import structlog
from duckduckgo_search import DDGS
from duckduckgo_search.exceptions import DuckDuckGoSearchException, RatelimitException

from aicrawler.config import settings
from aicrawler.crawler.models import SearchResult

logger = structlog.get_logger(__name__)

_BRAVE_ENDPOINT = "https://api.search.brave.com/res/v1/web/search"


def _normalise_query(query: str) -> str:
    """Strip surrounding double-quotes; some engines refuse quoted queries."""
    q = query.strip()
    if q.startswith('"') and q.endswith('"') and len(q) > 2:
        q = q[1:-1].strip()
    return q


def _ranked(items: Iterable[dict[str, Any]], url_key: str, text_key: str) -> list[SearchResult]:
    """Turn raw provider hits into :class:`SearchResult` values ranked by position.

    Relevance decays by 0.1 per position; duplicates and hits without a URL
    are dropped.
    """
    results: list[SearchResult] = []
    seen: set[str] = set()
    for item in items:
        url = item.get(url_key)
        if not url or url in seen:
            continue
        seen.add(url)
        results.append(
            SearchResult(
                url=url,
                title=item.get("title") or "",
                description=item.get(text_key) or "",
                relevance=round(1 - len(results) * 0.1, 2),
            )
        )
    return results


# ---------------------------------------------------------------------------
# Abstract base
# ---------------------------------------------------------------------------

class SearchProvider(ABC):
    """Abstract base class for a single search provider."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name."""

    @abstractmethod
    def search(self, query: str, max_results: int = 10) -> list[SearchResult]:
        """Return ranked results.  Must return ``[]`` (not raise) on failure."""


# ---------------------------------------------------------------------------
# Brave Search provider (preferred: deterministic REST API)
# ---------------------------------------------------------------------------

class BraveSearchProvider(SearchProvider):
    """Brave Search REST API.

    Skipped (returns ``[]``) if no API key is configured.
    """

    def __init__(self, api_key: str | None = None) -> None:
        self._api_key = settings.brave_api_key if api_key is None else api_key

    @property
    def name(self) -> str:
        return "Brave"

    def search(self, query: str, max_results: int = 10) -> list[SearchResult]:
        if not self._api_key:
            return []

        query = _normalise_query(query)
        try:
            with httpx.Client(timeout=settings.search_provider_timeout) as client:
                resp = client.get(
                    _BRAVE_ENDPOINT,
                    params={"q": query, "count": max_results, "search_lang": "en"},
                    headers={
                        "Accept": "application/json",
                        "Accept-Encoding": "gzip",
                        "X-Subscription-Token": self._api_key,
                    },
                )
                resp.raise_for_status()
                data = resp.json()
        except Exception as exc:
            logger.warning("search_failed", provider=self.name, error=str(exc))
            return []

        results = _ranked(data.get("web", {}).get("results", []), "url", "description")
        results = results[:max_results]
        if results:
            logger.debug("search_succeeded", provider=self.name, results=len(results))
        return results


# ---------------------------------------------------------------------------
# DuckDuckGo provider (with exponential backoff)
# ---------------------------------------------------------------------------

def _is_rate_limit(exc: Exception) -> bool:
    """True for DuckDuckGo throttling, including older releases that raise a
    bare exception mentioning HTTP 202 or "ratelimit"."""
    if isinstance(exc, RatelimitException):
        return True
    if isinstance(exc, DuckDuckGoSearchException):
        return False
    msg = str(exc)
    return "202" in msg or "ratelimit" in msg.lower()


class DuckDuckGoProvider(SearchProvider):
    """Wrapper around ``duckduckgo_search.DDGS`` with retry on rate-limit."""

    @property
    def name(self) -> str:
        return "DuckDuckGo"

    def search(self, query: str, max_results: int = 10) -> list[SearchResult]:
        query = _normalise_query(query)
        max_retries = settings.search_retry_max

        for attempt in range(max_retries + 1):
            try:
                return self._query(query, max_results)
            except Exception as exc:
                if not _is_rate_limit(exc):
                    logger.warning("search_failed", provider=self.name, error=str(exc))
                    return []
                if attempt == max_retries:
                    break
                self._back_off(attempt)

        logger.warning("search_retries_exhausted", provider=self.name)
        return []

    def _query(self, query: str, max_results: int) -> list[SearchResult]:
        with DDGS() as ddgs:
            hits = ddgs.text(query, max_results=max_results) or []
        results = _ranked(hits, "href", "body")[:max_results]
        if results:
            logger.debug("search_succeeded", provider=self.name, results=len(results))
        return results

    def _back_off(self, attempt: int) -> None:
        delay = settings.search_retry_base_delay * (2 ** attempt)
        logger.warning(
            "search_rate_limited", provider=self.name, attempt=attempt + 1, retry_in=delay
        )
        time.sleep(delay)


# ---------------------------------------------------------------------------
# Provider chain
# ---------------------------------------------------------------------------

class SearchProviderChain:
    """Try providers in order; return the first non-empty result list."""

    def __init__(self, providers: list[SearchProvider]) -> None:
        self._providers = providers

    @property
    def providers(self) -> list[SearchProvider]:
        return list(self._providers)

    def search(self, query: str, max_results: int = 10) -> list[SearchResult]:
        for provider in self._providers:
            results = provider.search(query, max_results=max_results)
            if results:
                return results
        logger.warning("search_chain_empty", query=query)
        return []


def build_default_chain() -> SearchProviderChain:
    """Brave (if key) → DuckDuckGo."""
    providers: list[SearchProvider] = []
    if settings.brave_api_key:
        providers.append(BraveSearchProvider())
    providers.append(DuckDuckGoProvider())
    return SearchProviderChain(providers)
