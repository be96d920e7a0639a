"""Single-page fetcher: one URL, one borrowed browser page, one CrawlResult.

Every stage of a fetch produces a :class:`StageResult`; a failed stage yields
its fallback value and the fetch moves on.  ``PageFetcher.fetch`` therefore
always returns a result and never raises (cancellation excepted).

Stages, in order::

    PENDING → NAVIGATING → PARTIAL_NAVIGATION | NAVIGATED
            → EXTRACTING → EXTRACT_FAILED | EXTRACTED
            → FORMATTING → FALLBACK_MARKDOWN | AI_FORMATTED → DONE
"""

from __future__ import annotations

import asyncio
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar
from urllib.parse import urlsplit

import structlog
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from aicrawler.crawler.browser import BrowserPage, BrowserSession
from aicrawler.crawler.extractor import extract_text
from aicrawler.crawler.models import CrawlResult, FailureKind, FetchState, StageResult
from aicrawler.formatter.markdown import (
    MarkdownFormatter,
    fallback_markdown,
    truncate_content,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

#: Upper bound (seconds) for the secondary ``<body>`` wait.
SELECTOR_WAIT_CAP = 5.0

_TIMEOUT_ERRORS = (PlaywrightTimeoutError, asyncio.TimeoutError)


def _host_or_url(url: str) -> str:
    try:
        return urlsplit(url).hostname or url
    except ValueError:
        return url


def extraction_placeholder(url: str) -> str:
    return (
        f"Failed to extract content from {url}. The page might be using "
        "advanced JavaScript or have anti-scraping measures."
    )


def html_placeholder(url: str) -> str:
    return f"<html><body><p>Failed to extract HTML from {url}</p></body></html>"


class PageFetcher:
    """Fetch one URL at a time inside pages borrowed from a browser session.

    Args:
        formatter: Optional AI markdown formatter.  ``None`` means every
            result uses the deterministic fallback markdown.
        timeout: Navigation timeout in seconds.
        verbose: Also capture a screenshot of every page.
        screenshot_dir: Where screenshots go (defaults to
            ``settings.screenshot_dir``).
    """

    def __init__(
        self,
        formatter: Optional[MarkdownFormatter] = None,
        *,
        timeout: float = 30.0,
        verbose: bool = False,
        screenshot_dir: Optional[Path | str] = None,
    ) -> None:
        if screenshot_dir is None:
            from aicrawler.config import settings

            screenshot_dir = settings.screenshot_dir
        self._formatter = formatter
        self._timeout_ms = timeout * 1000
        self._selector_timeout_ms = min(timeout, SELECTOR_WAIT_CAP) * 1000
        self._verbose = verbose
        self._screenshot_dir = Path(screenshot_dir)

    async def fetch(self, session: BrowserSession, url: str) -> CrawlResult:
        """Produce the :class:`CrawlResult` for *url*.

        The page is opened from *session* and closed again before returning,
        whatever happened in between.
        """
        log = logger.bind(url=url)
        self._advance(log, FetchState.NAVIGATING)

        opened = await self._stage(log, FailureKind.PAGE_UNAVAILABLE, None, session.new_page)
        page: Optional[BrowserPage] = opened.value
        try:
            navigation = await self._navigate(log, page, url)
            self._advance(
                log, FetchState.NAVIGATED if navigation.ok else FetchState.PARTIAL_NAVIGATION
            )

            self._advance(log, FetchState.EXTRACTING)
            title = await self._read_title(log, page, url)
            content = await self._extract_content(log, page, url)
            self._advance(
                log, FetchState.EXTRACTED if content.ok else FetchState.EXTRACT_FAILED
            )
            html = await self._snapshot_html(log, page, url)
            if self._verbose:
                await self._take_screenshot(log, page, url)
        finally:
            if page is not None:
                await self._close_page(log, page)

        self._advance(log, FetchState.FORMATTING)
        markdown = await self._format_markdown(log, title.value, url, content.value)
        self._advance(
            log, FetchState.AI_FORMATTED if markdown.ok else FetchState.FALLBACK_MARKDOWN
        )

        result = CrawlResult(
            url=url,
            title=title.value,
            content=content.value,
            html=html.value,
            markdown=markdown.value,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        self._advance(log, FetchState.DONE)
        return result

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _navigate(
        self, log: Any, page: Optional[BrowserPage], url: str
    ) -> StageResult[None]:
        if page is None:
            return StageResult.fallback(None, FailureKind.PAGE_UNAVAILABLE)

        navigation = await self._stage(
            log,
            FailureKind.NAVIGATION_ERROR,
            None,
            lambda: page.goto(url, wait_until="domcontentloaded", timeout=self._timeout_ms),
            timeout_failure=FailureKind.NAVIGATION_TIMEOUT,
        )
        # A missing <body> only means less content; its outcome does not
        # change the navigation state.
        await self._stage(
            log,
            FailureKind.SELECTOR_TIMEOUT,
            None,
            lambda: page.wait_for_selector("body", timeout=self._selector_timeout_ms),
        )
        return navigation

    async def _read_title(
        self, log: Any, page: Optional[BrowserPage], url: str
    ) -> StageResult[str]:
        host = _host_or_url(url)
        if page is None:
            return StageResult.fallback(host, FailureKind.PAGE_UNAVAILABLE)

        title = await self._stage(log, FailureKind.TITLE_FAILURE, host, page.title)
        if title.ok and not (title.value or "").strip():
            return StageResult.success(host)
        return title

    async def _extract_content(
        self, log: Any, page: Optional[BrowserPage], url: str
    ) -> StageResult[str]:
        placeholder = extraction_placeholder(url)
        if page is None:
            return StageResult.fallback(placeholder, FailureKind.PAGE_UNAVAILABLE)

        async def extract() -> str:
            return extract_text(await page.content())

        return await self._stage(log, FailureKind.EXTRACTION_FAILURE, placeholder, extract)

    async def _snapshot_html(
        self, log: Any, page: Optional[BrowserPage], url: str
    ) -> StageResult[str]:
        placeholder = html_placeholder(url)
        if page is None:
            return StageResult.fallback(placeholder, FailureKind.PAGE_UNAVAILABLE)
        return await self._stage(log, FailureKind.HTML_FAILURE, placeholder, page.content)

    async def _take_screenshot(
        self, log: Any, page: Optional[BrowserPage], url: str
    ) -> StageResult[Optional[Path]]:
        if page is None:
            return StageResult.fallback(None, FailureKind.PAGE_UNAVAILABLE)

        name = re.sub(r"[^A-Za-z0-9.-]", "_", _host_or_url(url))
        path = self._screenshot_dir / f"screenshot-{name}.png"

        async def capture() -> Path:
            await page.screenshot(path=str(path))
            return path

        shot = await self._stage(log, FailureKind.SCREENSHOT_FAILURE, None, capture)
        if shot.ok:
            log.info("screenshot_saved", path=str(path))
        return shot

    async def _format_markdown(
        self, log: Any, title: str, url: str, content: str
    ) -> StageResult[str]:
        fallback = fallback_markdown(title, content, url)
        if self._formatter is None:
            return StageResult.fallback(fallback, FailureKind.FORMATTER_UNAVAILABLE)

        formatter = self._formatter
        return await self._stage(
            log,
            FailureKind.MARKDOWN_FORMATTING_FAILURE,
            fallback,
            lambda: formatter.format(title, url, truncate_content(content)),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _stage(
        self,
        log: Any,
        failure: FailureKind,
        fallback: T,
        action: Callable[[], Awaitable[T]],
        *,
        timeout_failure: Optional[FailureKind] = None,
    ) -> StageResult[T]:
        """Run *action*; on any error log it and return *fallback* instead."""
        try:
            return StageResult.success(await action())
        except Exception as exc:
            kind = failure
            if timeout_failure is not None and isinstance(exc, _TIMEOUT_ERRORS):
                kind = timeout_failure
            outcome = StageResult.fallback(fallback, kind, exc)
            log.warning(kind.value, error=outcome.error)
            return outcome

    async def _close_page(self, log: Any, page: BrowserPage) -> None:
        try:
            await page.close()
        except Exception as exc:
            log.warning("page_close_failed", error=str(exc))

    @staticmethod
    def _advance(log: Any, state: FetchState) -> None:
        log.debug("fetch_state", state=state.value)
