"""AI crawler CLI — entry-point for searching and crawling.

Usage:
    python cli/main.py --help

Commands:
    crawl   → search the web for a query, then crawl the top results
    fetch   → crawl an explicit list of URLs
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from aicrawler.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import asyncio
import json
from dataclasses import asdict
from typing import List, Optional

import typer

from aicrawler.config import settings
from aicrawler.crawler import ClusterBy, CrawlOptions, CrawlResult, SearchResult, crawl
from aicrawler.logging_config import configure_logging

app = typer.Typer(
    name="aicrawler",
    help="Search the web and crawl the results into clean markdown.",
    no_args_is_help=True,
)


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def _build_options(
    depth: int,
    timeout: float,
    concurrency: int,
    cluster_by: ClusterBy,
    max_clusters: Optional[int],
    global_concurrency: Optional[int],
    verbose: bool,
) -> CrawlOptions:
    if cluster_by is ClusterBy.CUSTOM:
        # A custom cluster function can only be passed through the Python API.
        raise typer.BadParameter(
            "'custom' needs a cluster function; use 'domain' or 'tld'.",
            param_hint="'--cluster-by'",
        )
    try:
        return CrawlOptions.from_settings(
            depth=depth,
            timeout=timeout,
            concurrency=concurrency,
            cluster_by=cluster_by,
            max_clusters=settings.crawl_max_clusters if max_clusters is None else max_clusters,
            global_concurrency=global_concurrency,
            verbose=verbose,
        )
    except ValueError as exc:
        typer.echo(f"[options] Invalid crawl options: {exc}", err=True)
        raise typer.Exit(2)


def _render(results: List[CrawlResult], as_json: bool) -> str:
    if as_json:
        return json.dumps([asdict(r) for r in results], indent=2, ensure_ascii=False)
    return "\n\n---\n\n".join(r.markdown for r in results)


def _run_and_emit(
    targets: List[SearchResult],
    options: CrawlOptions,
    output: Optional[Path],
    as_json: bool,
) -> None:
    results = asyncio.run(crawl(targets, options))
    if not results:
        typer.echo("[crawl] No pages could be crawled.", err=True)
        raise typer.Exit(1)

    clusters = sorted({r.cluster or "" for r in results})
    typer.echo(
        f"[crawl] {len(results)} page(s) from {len(clusters)} cluster(s): {', '.join(clusters)}",
        err=True,
    )

    rendered = _render(results, as_json)
    typer.echo(rendered)
    if output is not None:
        output.write_text(rendered, encoding="utf-8")
        typer.echo(f"[crawl] Results saved to {output}", err=True)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command("crawl")
def crawl_cmd(
    query: str = typer.Argument(..., help="What to search for."),
    depth: int = typer.Option(settings.crawl_depth, "--depth", "-d", help="Crawl at most this many results."),
    timeout: float = typer.Option(settings.crawl_timeout, "--timeout", "-t", help="Navigation timeout in seconds."),
    concurrency: int = typer.Option(settings.crawl_concurrency, "--concurrency", "-c", help="Pages fetched at once per cluster."),
    cluster_by: ClusterBy = typer.Option(ClusterBy.DOMAIN, "--cluster-by", help="Cluster URLs by domain or tld (custom is Python-API only)."),
    max_clusters: Optional[int] = typer.Option(None, "--max-clusters", help="Upper bound on clusters (default: min(cpus, 4))."),
    global_concurrency: Optional[int] = typer.Option(settings.crawl_global_concurrency, "--global-concurrency", help="Cap on pages fetched at once across all clusters."),
    max_results: int = typer.Option(settings.search_max_results, "--max-results", help="Search results to request."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging and page screenshots."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Also write the results to this file."),
    as_json: bool = typer.Option(False, "--json", help="Emit results as JSON instead of markdown."),
) -> None:
    """Search the web for QUERY and crawl the best results."""
    from aicrawler.search import build_default_chain

    configure_logging("DEBUG" if verbose else settings.log_level)
    options = _build_options(depth, timeout, concurrency, cluster_by, max_clusters, global_concurrency, verbose)

    typer.echo(f"[crawl] Searching for {query!r} …", err=True)
    targets = build_default_chain().search(query, max_results=max_results)
    if not targets:
        typer.echo("[crawl] The search returned no results.", err=True)
        raise typer.Exit(1)

    _run_and_emit(targets, options, output, as_json)


@app.command("fetch")
def fetch_cmd(
    urls: List[str] = typer.Option(..., "--url", "-u", help="URL to crawl (repeatable)."),
    timeout: float = typer.Option(settings.crawl_timeout, "--timeout", "-t", help="Navigation timeout in seconds."),
    concurrency: int = typer.Option(settings.crawl_concurrency, "--concurrency", "-c", help="Pages fetched at once per cluster."),
    cluster_by: ClusterBy = typer.Option(ClusterBy.DOMAIN, "--cluster-by", help="Cluster URLs by domain or tld (custom is Python-API only)."),
    max_clusters: Optional[int] = typer.Option(None, "--max-clusters", help="Upper bound on clusters (default: min(cpus, 4))."),
    global_concurrency: Optional[int] = typer.Option(settings.crawl_global_concurrency, "--global-concurrency", help="Cap on pages fetched at once across all clusters."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging and page screenshots."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Also write the results to this file."),
    as_json: bool = typer.Option(False, "--json", help="Emit results as JSON instead of markdown."),
) -> None:
    """Crawl the given URLs directly, without searching."""
    configure_logging("DEBUG" if verbose else settings.log_level)
    options = _build_options(
        len(urls), timeout, concurrency, cluster_by, max_clusters, global_concurrency, verbose
    )
    targets = [SearchResult(url=u, relevance=round(1 - i * 0.1, 2)) for i, u in enumerate(urls)]
    _run_and_emit(targets, options, output, as_json)


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
