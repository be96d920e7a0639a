"""Search package — ranked URL providers feeding the crawler."""

from aicrawler.search.providers import (
    BraveSearchProvider,
    DuckDuckGoProvider,
    SearchProvider,
    SearchProviderChain,
    build_default_chain,
)

__all__ = [
    "SearchProvider",
    "BraveSearchProvider",
    "DuckDuckGoProvider",
    "SearchProviderChain",
    "build_default_chain",
]
