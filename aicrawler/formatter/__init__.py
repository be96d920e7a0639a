"""Formatter package — markdown normalisation of crawled pages."""

from aicrawler.formatter.markdown import (
    MAX_FORMATTER_CHARS,
    MarkdownFormatter,
    OpenRouterFormatter,
    build_formatter,
    fallback_markdown,
    truncate_content,
)

__all__ = [
    "MAX_FORMATTER_CHARS",
    "MarkdownFormatter",
    "OpenRouterFormatter",
    "build_formatter",
    "fallback_markdown",
    "truncate_content",
]
