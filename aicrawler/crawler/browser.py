"""Browser sessions backed by headless Chromium via Playwright.

The scheduler only sees the three small protocols below.  A
:class:`PlaywrightEngine` is opened once per crawl run and handed to the
scheduler explicitly; every cluster task asks it for its own session, which is
a separately launched browser that no other cluster touches.

Install the browser binary once with::

    playwright install chromium
"""

from __future__ import annotations

from typing import Any, Optional, Protocol

import structlog
from playwright.async_api import Browser, BrowserContext, Playwright, async_playwright

logger = structlog.get_logger(__name__)

_LAUNCH_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]


class BrowserPage(Protocol):
    """The subset of ``playwright.async_api.Page`` the fetcher relies on."""

    async def goto(self, url: str, *, timeout: float, wait_until: str) -> Any: ...

    async def wait_for_selector(self, selector: str, *, timeout: float) -> Any: ...

    async def title(self) -> str: ...

    async def content(self) -> str: ...

    async def screenshot(self, *, path: str) -> bytes: ...

    async def close(self) -> None: ...


class BrowserSession(Protocol):
    async def new_page(self) -> BrowserPage: ...

    async def close(self) -> None: ...


class BrowserEngine(Protocol):
    async def new_session(self) -> BrowserSession: ...


class PlaywrightSession:
    """One Chromium instance plus its browsing context."""

    def __init__(self, browser: Browser, context: BrowserContext) -> None:
        self._browser = browser
        self._context = context

    async def new_page(self) -> BrowserPage:
        return await self._context.new_page()

    async def close(self) -> None:
        try:
            await self._context.close()
        finally:
            await self._browser.close()


class PlaywrightEngine:
    """Per-run owner of the Playwright driver.

    Use as an async context manager::

        async with PlaywrightEngine() as engine:
            session = await engine.new_session()
            ...
            await session.close()
    """

    def __init__(
        self,
        *,
        headless: Optional[bool] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        from aicrawler.config import settings

        self._headless = settings.browser_headless if headless is None else headless
        self._user_agent = user_agent or settings.browser_user_agent
        self._playwright: Optional[Playwright] = None

    async def __aenter__(self) -> "PlaywrightEngine":
        self._playwright = await async_playwright().start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def new_session(self) -> PlaywrightSession:
        """Launch a fresh browser for one cluster.

        Raises:
            RuntimeError: If the engine has not been entered.
            playwright.async_api.Error: If Chromium cannot be launched.
        """
        if self._playwright is None:
            raise RuntimeError("PlaywrightEngine must be entered before creating sessions")

        browser = await self._playwright.chromium.launch(
            headless=self._headless, args=_LAUNCH_ARGS
        )
        try:
            context = await browser.new_context(user_agent=self._user_agent)
        except BaseException:
            await browser.close()
            raise
        logger.debug("browser_session_opened", headless=self._headless)
        return PlaywrightSession(browser, context)
