"""Flatten per-cluster outcomes into the final result list."""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable

from aicrawler.crawler.models import ClusterOutcome, CrawlResult


def aggregate(outcomes: Iterable[ClusterOutcome]) -> list[CrawlResult]:
    """Concatenate cluster results in outcome order, tagged with their cluster.

    Clusters whose browser session could not be created contribute nothing.
    """
    results: list[CrawlResult] = []
    for outcome in outcomes:
        if outcome.failed:
            continue
        results.extend(replace(result, cluster=outcome.key) for result in outcome.results)
    return results
