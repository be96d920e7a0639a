"""Data models for the crawl pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")

INVALID_URLS_CLUSTER = "invalid-urls"
MERGED_CLUSTER = "merged-small-clusters"
DEFAULT_CLUSTER = "default"


@dataclass(frozen=True)
class SearchResult:
    """One ranked hit handed over by a search provider."""

    url: str
    title: str = ""
    description: str = ""
    relevance: float = 0.0


@dataclass(frozen=True)
class CrawlResult:
    """Everything captured for a single attempted URL.

    Fields hold fallback values when a stage failed; a result is never
    modified once built (cluster tagging makes a copy).
    """

    url: str
    title: str
    content: str
    html: str
    markdown: str
    timestamp: str
    cluster: Optional[str] = None


class ClusterBy(str, Enum):
    DOMAIN = "domain"
    TLD = "tld"
    CUSTOM = "custom"


@dataclass(frozen=True)
class ClusterConfig:
    """How a run groups its URLs into politeness clusters."""

    enabled: bool = True
    max_clusters: int = field(default_factory=lambda: min(os.cpu_count() or 1, 4))
    cluster_by: ClusterBy = ClusterBy.DOMAIN
    custom_cluster_fn: Optional[Callable[[str], str]] = None

    def __post_init__(self) -> None:
        if self.max_clusters < 1:
            raise ValueError("max_clusters must be at least 1")


class CrawlOptions(BaseModel):
    """Per-call options for :func:`aicrawler.crawler.crawl`."""

    depth: int = Field(3, ge=1, description="Crawl at most this many search results.")
    timeout: float = Field(30.0, gt=0, description="Navigation timeout in seconds.")
    concurrency: int = Field(3, ge=1, description="Batch size inside one cluster.")
    cluster_by: ClusterBy = ClusterBy.DOMAIN
    max_clusters: int = Field(
        default_factory=lambda: min(os.cpu_count() or 1, 4), ge=1
    )
    verbose: bool = False
    global_concurrency: Optional[int] = Field(
        None, ge=1, description="Optional cap on simultaneous fetches across all clusters."
    )
    screenshot_dir: Optional[str] = None

    @classmethod
    def from_settings(cls, **overrides: object) -> "CrawlOptions":
        """Build options from ``CRAWL_*`` settings; *overrides* win."""
        from aicrawler.config import settings

        values: dict[str, object] = {
            "depth": settings.crawl_depth,
            "timeout": settings.crawl_timeout,
            "concurrency": settings.crawl_concurrency,
            "max_clusters": settings.crawl_max_clusters,
            "global_concurrency": settings.crawl_global_concurrency,
            "screenshot_dir": str(settings.screenshot_dir),
        }
        values.update(overrides)
        return cls(**values)

    def cluster_config(
        self, custom_cluster_fn: Optional[Callable[[str], str]] = None
    ) -> ClusterConfig:
        return ClusterConfig(
            enabled=True,
            max_clusters=self.max_clusters,
            cluster_by=self.cluster_by,
            custom_cluster_fn=custom_cluster_fn,
        )


# ---------------------------------------------------------------------------
# Page fetch stages
# ---------------------------------------------------------------------------

class FetchState(str, Enum):
    PENDING = "pending"
    NAVIGATING = "navigating"
    PARTIAL_NAVIGATION = "partial_navigation"
    NAVIGATED = "navigated"
    EXTRACTING = "extracting"
    EXTRACT_FAILED = "extract_failed"
    EXTRACTED = "extracted"
    FORMATTING = "formatting"
    FALLBACK_MARKDOWN = "fallback_markdown"
    AI_FORMATTED = "ai_formatted"
    DONE = "done"


class FailureKind(str, Enum):
    PAGE_UNAVAILABLE = "page_unavailable"
    NAVIGATION_TIMEOUT = "navigation_timeout"
    NAVIGATION_ERROR = "navigation_error"
    SELECTOR_TIMEOUT = "selector_timeout"
    TITLE_FAILURE = "title_failure"
    EXTRACTION_FAILURE = "extraction_failure"
    HTML_FAILURE = "html_failure"
    SCREENSHOT_FAILURE = "screenshot_failure"
    FORMATTER_UNAVAILABLE = "formatter_unavailable"
    MARKDOWN_FORMATTING_FAILURE = "markdown_formatting_failure"
    CLUSTER_RESOURCE_FAILURE = "cluster_resource_failure"


class StageStatus(str, Enum):
    OK = "ok"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class StageResult(Generic[T]):
    """Outcome of one fetch stage: the produced value, or the fallback used."""

    status: StageStatus
    value: T
    failure: Optional[FailureKind] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is StageStatus.OK

    @classmethod
    def success(cls, value: T) -> "StageResult[T]":
        return cls(StageStatus.OK, value)

    @classmethod
    def fallback(
        cls, value: T, failure: FailureKind, error: BaseException | str | None = None
    ) -> "StageResult[T]":
        message = error if isinstance(error, str) or error is None else describe_error(error)
        return cls(StageStatus.FALLBACK, value, failure, message)


@dataclass
class ClusterOutcome:
    """What one cluster task hands over to the aggregator."""

    key: str
    results: list[CrawlResult] = field(default_factory=list)
    failure: Optional[FailureKind] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.failure is FailureKind.CLUSTER_RESOURCE_FAILURE


def describe_error(exc: BaseException) -> str:
    text = str(exc).strip()
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__
