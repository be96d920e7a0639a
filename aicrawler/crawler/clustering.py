"""Group ranked URLs into politeness clusters.

A cluster is the unit of browser-session ownership and rate limiting: every
URL lands in exactly one cluster, and the number of clusters is capped by
merging the smallest ones into :data:`MERGED_CLUSTER`.
"""

from __future__ import annotations

from typing import Iterable
from urllib.parse import urlsplit

import structlog

from aicrawler.crawler.models import (
    DEFAULT_CLUSTER,
    INVALID_URLS_CLUSTER,
    MERGED_CLUSTER,
    ClusterBy,
    ClusterConfig,
    SearchResult,
)

logger = structlog.get_logger(__name__)


def _hostname(url: str) -> str:
    """Return the lower-cased hostname of *url*.

    Raises:
        ValueError: If *url* has no scheme or no hostname, or cannot be parsed.
    """
    parts = urlsplit(url.strip())
    host = parts.hostname
    if not parts.scheme or not host:
        raise ValueError(f"not an absolute URL: {url!r}")
    return host


def cluster_key(url: str, config: ClusterConfig) -> str:
    """Return the cluster *url* belongs to under *config*.

    Malformed URLs, and URLs a custom function fails on, go to
    :data:`INVALID_URLS_CLUSTER` instead of raising.
    """
    if not config.enabled:
        return DEFAULT_CLUSTER

    try:
        if config.cluster_by is ClusterBy.CUSTOM:
            if config.custom_cluster_fn is None:
                return DEFAULT_CLUSTER
            return str(config.custom_cluster_fn(url))

        host = _hostname(url)
        if config.cluster_by is ClusterBy.TLD:
            return host.rsplit(".", 1)[-1] if "." in host else host
        return host
    except Exception as exc:
        logger.debug("cluster_key_invalid", url=url, error=str(exc))
        return INVALID_URLS_CLUSTER


def merge_small_clusters(
    clusters: dict[str, list[str]], max_clusters: int
) -> dict[str, list[str]]:
    """Fold the smallest clusters together until at most *max_clusters* remain.

    Clusters are ranked by size, largest first.  Ties keep their first-seen
    order (``sorted`` is stable and dicts preserve insertion order).  The
    largest ``max_clusters - 1`` survive untouched; everything else is
    concatenated, in ranked order, into :data:`MERGED_CLUSTER`.
    """
    if len(clusters) <= max_clusters:
        return clusters

    ranked = sorted(clusters.items(), key=lambda item: len(item[1]), reverse=True)
    keep = max(max_clusters - 1, 0)

    merged: dict[str, list[str]] = {key: urls for key, urls in ranked[:keep]}
    overflow = [url for _, urls in ranked[keep:] for url in urls]
    if overflow:
        merged[MERGED_CLUSTER] = merged.get(MERGED_CLUSTER, []) + overflow

    logger.debug(
        "clusters_merged",
        before=len(clusters),
        after=len(merged),
        merged_keys=[key for key, _ in ranked[keep:]],
    )
    return merged


def partition_urls(
    results: Iterable[SearchResult], config: ClusterConfig
) -> dict[str, list[str]]:
    """Partition *results* into ``{cluster_key: [url, ...]}``.

    URL order inside each cluster follows the input order.
    """
    clusters: dict[str, list[str]] = {}
    for result in results:
        clusters.setdefault(cluster_key(result.url, config), []).append(result.url)

    if len(clusters) > config.max_clusters:
        return merge_small_clusters(clusters, config.max_clusters)
    return clusters
