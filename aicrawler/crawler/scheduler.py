"""Clustered, batch-bounded crawl scheduling.

Each cluster gets its own asyncio task and its own browser session.  Inside a
cluster, URLs are fetched in batches of ``concurrency``: a batch fans out, all
of it completes, the cluster sleeps for its rate-limit delay, then the next
batch starts.  Clusters run side by side with no ordering between them, so the
number of simultaneous fetches is ``concurrency`` per cluster unless a
``global_concurrency`` cap is set.

Failure isolation:

* a page that fails still yields a degraded :class:`CrawlResult`;
* a cluster whose session cannot be opened yields nothing, and its siblings
  carry on;
* nothing raised inside a cluster task escapes it.
"""

from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack
from typing import Awaitable, Callable, Iterable, Mapping, Optional, Sequence

import structlog

from aicrawler.crawler.aggregator import aggregate
from aicrawler.crawler.browser import BrowserEngine, BrowserSession, PlaywrightEngine
from aicrawler.crawler.clustering import partition_urls
from aicrawler.crawler.fetcher import PageFetcher
from aicrawler.crawler.models import (
    ClusterOutcome,
    CrawlOptions,
    CrawlResult,
    FailureKind,
    SearchResult,
    describe_error,
)
from aicrawler.crawler.rate_limit import RateLimitPolicy
from aicrawler.crawler.robots import AllowAllRobotsPolicy, RobotsPolicy
from aicrawler.formatter.markdown import MarkdownFormatter, build_formatter

logger = structlog.get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def split_batches(urls: Sequence[str], size: int) -> list[list[str]]:
    """Split *urls* into consecutive batches of at most *size* items."""
    if size < 1:
        raise ValueError("batch size must be at least 1")
    return [list(urls[i : i + size]) for i in range(0, len(urls), size)]


class CrawlScheduler:
    """Run every cluster's crawl to completion, concurrently.

    Args:
        engine: Source of browser sessions, one per cluster task.
        fetcher: Produces one result per URL.
        rate_limits: Inter-batch delay per cluster key.
        concurrency: Batch size inside a cluster.
        global_concurrency: Optional cap on fetches in flight across all
            clusters of one run.
        robots: Consulted before each fetch; refused URLs are skipped.
        sleep: Coroutine used for the inter-batch pause.
    """

    def __init__(
        self,
        engine: BrowserEngine,
        fetcher: PageFetcher,
        rate_limits: Optional[RateLimitPolicy] = None,
        *,
        concurrency: int = 3,
        global_concurrency: Optional[int] = None,
        robots: Optional[RobotsPolicy] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if global_concurrency is not None and global_concurrency < 1:
            raise ValueError("global_concurrency must be at least 1")
        self._engine = engine
        self._fetcher = fetcher
        self._rate_limits = rate_limits or RateLimitPolicy()
        self._concurrency = concurrency
        self._global_concurrency = global_concurrency
        self._robots = robots or AllowAllRobotsPolicy()
        self._sleep = sleep

    async def run(self, clusters: Mapping[str, Sequence[str]]) -> list[CrawlResult]:
        """Crawl all *clusters* and return their aggregated results."""
        outcomes = await self.run_clusters(clusters)
        return aggregate(outcomes)

    async def run_clusters(
        self, clusters: Mapping[str, Sequence[str]]
    ) -> list[ClusterOutcome]:
        """Crawl all *clusters*, returning one outcome per cluster in key order."""
        limit = (
            asyncio.Semaphore(self._global_concurrency)
            if self._global_concurrency is not None
            else None
        )
        return list(
            await asyncio.gather(
                *(
                    self._crawl_cluster(key, list(urls), limit)
                    for key, urls in clusters.items()
                )
            )
        )

    async def _crawl_cluster(
        self, key: str, urls: list[str], limit: Optional[asyncio.Semaphore]
    ) -> ClusterOutcome:
        log = logger.bind(cluster=key)
        try:
            session = await self._engine.new_session()
        except Exception as exc:
            log.error("cluster_session_failed", urls=len(urls), error=describe_error(exc))
            return ClusterOutcome(
                key, failure=FailureKind.CLUSTER_RESOURCE_FAILURE, error=describe_error(exc)
            )

        outcome = ClusterOutcome(key)
        batches = split_batches(urls, self._concurrency)
        log.debug("cluster_started", urls=len(urls), batches=len(batches))
        try:
            for index, batch in enumerate(batches):
                if index:
                    await self._sleep(self._rate_limits.delay(key))
                log.debug("batch_started", batch=index + 1, total=len(batches), size=len(batch))
                outcome.results.extend(await self._run_batch(log, session, batch, limit))
        except Exception as exc:
            # Keep whatever the earlier batches produced.
            outcome.error = describe_error(exc)
            log.error("cluster_task_failed", completed=len(outcome.results), error=outcome.error)
        finally:
            try:
                await session.close()
            except Exception as exc:
                log.warning("cluster_session_close_failed", error=describe_error(exc))

        log.debug("cluster_finished", results=len(outcome.results))
        return outcome

    async def _run_batch(
        self,
        log: structlog.stdlib.BoundLogger,
        session: BrowserSession,
        batch: list[str],
        limit: Optional[asyncio.Semaphore],
    ) -> list[CrawlResult]:
        settled = await asyncio.gather(
            *(self._fetch_one(log, session, url, limit) for url in batch),
            return_exceptions=True,
        )
        results: list[CrawlResult] = []
        for url, item in zip(batch, settled):
            if isinstance(item, BaseException):
                if not isinstance(item, Exception):
                    raise item
                log.error("fetch_crashed", url=url, error=describe_error(item))
            elif item is not None:
                results.append(item)
        return results

    async def _fetch_one(
        self,
        log: structlog.stdlib.BoundLogger,
        session: BrowserSession,
        url: str,
        limit: Optional[asyncio.Semaphore],
    ) -> Optional[CrawlResult]:
        if not await self._robots.is_allowed(url):
            log.info("robots_disallowed", url=url)
            return None
        if limit is None:
            return await self._fetcher.fetch(session, url)
        async with limit:
            return await self._fetcher.fetch(session, url)


async def crawl(
    search_results: Iterable[SearchResult],
    options: Optional[CrawlOptions] = None,
    *,
    engine: Optional[BrowserEngine] = None,
    formatter: Optional[MarkdownFormatter] = None,
    rate_limits: Optional[RateLimitPolicy] = None,
    robots: Optional[RobotsPolicy] = None,
    custom_cluster_fn: Optional[Callable[[str], str]] = None,
    sleep: Sleep = asyncio.sleep,
) -> list[CrawlResult]:
    """Crawl the top ``options.depth`` search results.

    Results come back grouped by cluster, in no particular cluster order.
    URLs of a cluster whose browser could not be started are absent; every
    other attempted URL has a result.  Failures are reported through logging
    only, and this coroutine does not raise for them.

    Without *options* the ``CRAWL_*`` settings apply (see
    :meth:`CrawlOptions.from_settings`).  When *engine* is ``None`` a
    :class:`PlaywrightEngine` is started for the run and stopped afterwards.
    When *formatter* is ``None`` one is built from settings if an API key is
    configured.
    """
    options = options or CrawlOptions.from_settings()
    targets = list(search_results)[: options.depth]
    if not targets:
        logger.info("crawl_skipped", reason="no search results")
        return []

    clusters = partition_urls(targets, options.cluster_config(custom_cluster_fn))
    logger.debug(
        "crawl_started",
        urls=len(targets),
        clusters={key: len(urls) for key, urls in clusters.items()},
        concurrency=options.concurrency,
    )

    async with AsyncExitStack() as stack:
        if formatter is None:
            built = build_formatter()
            if built is not None:
                formatter = await stack.enter_async_context(built)
        if engine is None:
            try:
                engine = await stack.enter_async_context(PlaywrightEngine())
            except Exception as exc:
                logger.error("browser_engine_failed", error=describe_error(exc))
                return []

        fetcher = PageFetcher(
            formatter,
            timeout=options.timeout,
            verbose=options.verbose,
            screenshot_dir=options.screenshot_dir,
        )
        scheduler = CrawlScheduler(
            engine,
            fetcher,
            rate_limits or RateLimitPolicy.from_settings(),
            concurrency=options.concurrency,
            global_concurrency=options.global_concurrency,
            robots=robots,
            sleep=sleep,
        )
        results = await scheduler.run(clusters)

    logger.info("crawl_finished", results=len(results), clusters=len(clusters))
    return results
