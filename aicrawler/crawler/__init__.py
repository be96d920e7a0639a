"""Crawler package — clustered, batch-bounded page fetching."""

from aicrawler.crawler.aggregator import aggregate
from aicrawler.crawler.clustering import merge_small_clusters, partition_urls
from aicrawler.crawler.fetcher import PageFetcher
from aicrawler.crawler.models import (
    ClusterBy,
    ClusterConfig,
    CrawlOptions,
    CrawlResult,
    SearchResult,
)
from aicrawler.crawler.rate_limit import RateLimitPolicy
from aicrawler.crawler.scheduler import CrawlScheduler, crawl

__all__ = [
    "crawl",
    "CrawlScheduler",
    "PageFetcher",
    "RateLimitPolicy",
    "aggregate",
    "merge_small_clusters",
    "partition_urls",
    "ClusterBy",
    "ClusterConfig",
    "CrawlOptions",
    "CrawlResult",
    "SearchResult",
]
