"""Unit tests for aicrawler.search.providers.

All network calls are mocked via ``unittest.mock``.  No real HTTP connections
are made; the tests validate provider-level parsing and ranking, retry logic,
and chain-level failover behaviour.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from aicrawler.crawler.models import SearchResult


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _mock_httpx_response(json_data: dict, status_code: int = 200) -> MagicMock:
    """Build a mock httpx.Response-like object."""
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = json_data
    resp.raise_for_status = MagicMock()  # no-op by default
    return resp


def _context(mock_cls: MagicMock) -> MagicMock:
    ctx = MagicMock()
    ctx.__enter__ = MagicMock(return_value=ctx)
    ctx.__exit__ = MagicMock(return_value=False)
    mock_cls.return_value = ctx
    return ctx


def _urls(results: list[SearchResult]) -> list[str]:
    return [r.url for r in results]


# ===========================================================================
# Ranking helpers
# ===========================================================================

class TestRanking:
    def test_relevance_decays_by_position(self):
        from aicrawler.search.providers import _ranked

        hits = [{"url": f"https://r.com/{i}", "title": f"R{i}"} for i in range(3)]
        results = _ranked(hits, "url", "description")

        assert [r.relevance for r in results] == [1.0, 0.9, 0.8]
        assert results[0].title == "R0"

    def test_skips_duplicates_and_missing_urls(self):
        from aicrawler.search.providers import _ranked

        hits = [{"url": "https://a.com"}, {"title": "no url"}, {"url": "https://a.com"}, {"url": "https://b.com"}]
        results = _ranked(hits, "url", "description")

        assert _urls(results) == ["https://a.com", "https://b.com"]
        assert results[1].relevance == 0.9

    def test_normalise_query_strips_quotes(self):
        from aicrawler.search.providers import _normalise_query

        assert _normalise_query('  "solid state batteries"  ') == "solid state batteries"
        assert _normalise_query('""') == '""'


# ===========================================================================
# DuckDuckGoProvider
# ===========================================================================

class TestDuckDuckGoProvider:
    def test_returns_results_on_success(self):
        from aicrawler.search.providers import DuckDuckGoProvider

        fake_results = [
            {"href": "https://a.com", "title": "A", "body": "About A"},
            {"href": "https://b.com", "title": "B", "body": "About B"},
        ]
        with patch("aicrawler.search.providers.DDGS") as mock_ddgs_cls:
            ctx = _context(mock_ddgs_cls)
            ctx.text = MagicMock(return_value=fake_results)

            result = DuckDuckGoProvider().search("query", max_results=5)

        assert result == [
            SearchResult(url="https://a.com", title="A", description="About A", relevance=1.0),
            SearchResult(url="https://b.com", title="B", description="About B", relevance=0.9),
        ]
        ctx.text.assert_called_once_with("query", max_results=5)

    def test_retries_on_ratelimit_then_succeeds(self):
        from aicrawler.search.providers import DuckDuckGoProvider
        from duckduckgo_search.exceptions import RatelimitException

        fake_results = [{"href": "https://ok.com"}]

        call_count = 0
        def _side_effect(*args, **kwargs):
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                raise RatelimitException("rate limited")
            return fake_results

        with patch("aicrawler.search.providers.DDGS") as mock_ddgs_cls, \
             patch("aicrawler.search.providers.time.sleep") as mock_sleep:
            ctx = _context(mock_ddgs_cls)
            ctx.text = MagicMock(side_effect=_side_effect)

            result = DuckDuckGoProvider().search("query")

        assert _urls(result) == ["https://ok.com"]
        assert call_count == 2
        mock_sleep.assert_called_once()

    def test_backoff_doubles(self):
        from aicrawler.search.providers import DuckDuckGoProvider
        from duckduckgo_search.exceptions import RatelimitException

        with patch("aicrawler.search.providers.DDGS") as mock_ddgs_cls, \
             patch("aicrawler.search.providers.time.sleep") as mock_sleep, \
             patch("aicrawler.search.providers.settings") as mock_settings:
            mock_settings.search_retry_max = 3
            mock_settings.search_retry_base_delay = 1.5

            ctx = _context(mock_ddgs_cls)
            ctx.text = MagicMock(side_effect=RatelimitException("always rate limited"))

            result = DuckDuckGoProvider().search("query")

        assert result == []
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1.5, 3.0, 6.0]

    def test_returns_empty_after_exhausting_retries(self):
        from aicrawler.search.providers import DuckDuckGoProvider
        from duckduckgo_search.exceptions import RatelimitException

        with patch("aicrawler.search.providers.DDGS") as mock_ddgs_cls, \
             patch("aicrawler.search.providers.time.sleep"), \
             patch("aicrawler.search.providers.settings") as mock_settings:
            mock_settings.search_retry_max = 2
            mock_settings.search_retry_base_delay = 0.0

            ctx = _context(mock_ddgs_cls)
            ctx.text = MagicMock(side_effect=RatelimitException("always rate limited"))

            result = DuckDuckGoProvider().search("query")

        assert result == []
        assert ctx.text.call_count == 3

    def test_ratelimit_in_exception_message_is_retried(self):
        """Older duckduckgo_search versions surface rate-limits as generic RuntimeError."""
        from aicrawler.search.providers import DuckDuckGoProvider

        with patch("aicrawler.search.providers.DDGS") as mock_ddgs_cls, \
             patch("aicrawler.search.providers.time.sleep"), \
             patch("aicrawler.search.providers.settings") as mock_settings:
            mock_settings.search_retry_max = 1
            mock_settings.search_retry_base_delay = 0.0

            ctx = _context(mock_ddgs_cls)
            ctx.text = MagicMock(side_effect=RuntimeError("https://html.duckduckgo.com/html 202 Ratelimit"))

            result = DuckDuckGoProvider().search("query")

        assert result == []
        assert ctx.text.call_count == 2

    def test_other_errors_are_not_retried(self):
        from aicrawler.search.providers import DuckDuckGoProvider

        with patch("aicrawler.search.providers.DDGS") as mock_ddgs_cls, \
             patch("aicrawler.search.providers.time.sleep") as mock_sleep:
            ctx = _context(mock_ddgs_cls)
            ctx.text = MagicMock(side_effect=RuntimeError("connection reset"))

            result = DuckDuckGoProvider().search("query")

        assert result == []
        mock_sleep.assert_not_called()

    def test_library_error_is_not_retried(self):
        from aicrawler.search.providers import DuckDuckGoProvider
        from duckduckgo_search.exceptions import DuckDuckGoSearchException

        with patch("aicrawler.search.providers.DDGS") as mock_ddgs_cls, \
             patch("aicrawler.search.providers.time.sleep") as mock_sleep:
            ctx = _context(mock_ddgs_cls)
            ctx.text = MagicMock(side_effect=DuckDuckGoSearchException("bad response 202"))

            result = DuckDuckGoProvider().search("query")

        assert result == []
        assert ctx.text.call_count == 1
        mock_sleep.assert_not_called()

    def test_exhausted_retries_are_logged(self):
        from aicrawler.search.providers import DuckDuckGoProvider
        from duckduckgo_search.exceptions import RatelimitException
        from structlog.testing import capture_logs

        with patch("aicrawler.search.providers.DDGS") as mock_ddgs_cls, \
             patch("aicrawler.search.providers.time.sleep"), \
             patch("aicrawler.search.providers.settings") as mock_settings, \
             capture_logs() as logs:
            mock_settings.search_retry_max = 1
            mock_settings.search_retry_base_delay = 0.0

            ctx = _context(mock_ddgs_cls)
            ctx.text = MagicMock(side_effect=RatelimitException("rate limited"))

            DuckDuckGoProvider().search("query")

        events = [e["event"] for e in logs]
        assert events == ["search_rate_limited", "search_retries_exhausted"]


# ===========================================================================
# BraveSearchProvider
# ===========================================================================

class TestBraveSearchProvider:
    def test_skipped_without_api_key(self):
        from aicrawler.search.providers import BraveSearchProvider

        with patch("aicrawler.search.providers.httpx.Client") as mock_client_cls:
            result = BraveSearchProvider(api_key="").search("test")

        assert result == []
        mock_client_cls.assert_not_called()

    def test_parses_response_correctly(self):
        from aicrawler.search.providers import BraveSearchProvider

        json_data = {
            "web": {
                "results": [
                    {"url": "https://brave-result.com/1", "title": "One", "description": "First"},
                    {"url": "https://brave-result.com/2", "title": "Two"},
                ]
            }
        }
        mock_resp = _mock_httpx_response(json_data)

        with patch("aicrawler.search.providers.settings") as mock_settings, \
             patch("aicrawler.search.providers.httpx.Client") as mock_client_cls:
            mock_settings.brave_api_key = "test-key-abc"
            mock_settings.search_provider_timeout = 10.0

            ctx = _context(mock_client_cls)
            ctx.get.return_value = mock_resp

            result = BraveSearchProvider().search('"test query"', max_results=5)

        assert _urls(result) == ["https://brave-result.com/1", "https://brave-result.com/2"]
        assert result[0].description == "First"
        assert result[1].description == ""
        kwargs = ctx.get.call_args.kwargs
        assert kwargs["params"] == {"q": "test query", "count": 5, "search_lang": "en"}
        assert kwargs["headers"]["X-Subscription-Token"] == "test-key-abc"

    def test_returns_empty_on_network_error(self):
        from aicrawler.search.providers import BraveSearchProvider
        import httpx

        with patch("aicrawler.search.providers.settings") as mock_settings, \
             patch("aicrawler.search.providers.httpx.Client") as mock_client_cls:
            mock_settings.brave_api_key = "test-key"
            mock_settings.search_provider_timeout = 10.0

            ctx = _context(mock_client_cls)
            ctx.get.side_effect = httpx.TimeoutException("timed out")

            result = BraveSearchProvider().search("test query")

        assert result == []


# ===========================================================================
# SearchProviderChain
# ===========================================================================

class TestSearchProviderChain:
    def _make_provider(self, name: str, returns: list[str]) -> MagicMock:
        p = MagicMock()
        p.name = name
        p.search.return_value = [SearchResult(url=u) for u in returns]
        return p

    def test_returns_first_successful_result(self):
        from aicrawler.search.providers import SearchProviderChain

        p1 = self._make_provider("P1", ["https://p1.com"])
        p2 = self._make_provider("P2", ["https://p2.com"])
        chain = SearchProviderChain([p1, p2])

        result = chain.search("query")

        assert _urls(result) == ["https://p1.com"]
        p2.search.assert_not_called()

    def test_falls_through_to_second_on_empty_first(self):
        from aicrawler.search.providers import SearchProviderChain

        p1 = self._make_provider("P1", [])
        p2 = self._make_provider("P2", ["https://p2.com"])
        chain = SearchProviderChain([p1, p2])

        result = chain.search("query")

        assert _urls(result) == ["https://p2.com"]
        p1.search.assert_called_once()
        p2.search.assert_called_once()

    def test_passes_max_results_to_provider(self):
        from aicrawler.search.providers import SearchProviderChain

        p1 = self._make_provider("P1", ["https://result.com"])
        SearchProviderChain([p1]).search("query", max_results=7)

        p1.search.assert_called_once_with("query", max_results=7)

    def test_empty_chain_returns_empty(self):
        from aicrawler.search.providers import SearchProviderChain

        assert SearchProviderChain([]).search("query") == []


# ===========================================================================
# build_default_chain
# ===========================================================================

class TestBuildDefaultChain:
    def test_ddg_only_without_brave_key(self):
        from aicrawler.search.providers import SearchProviderChain, build_default_chain

        with patch("aicrawler.search.providers.settings") as mock_settings:
            mock_settings.brave_api_key = ""
            chain = build_default_chain()

        assert isinstance(chain, SearchProviderChain)
        assert [p.name for p in chain.providers] == ["DuckDuckGo"]

    def test_brave_first_when_key_configured(self):
        from aicrawler.search.providers import build_default_chain

        with patch("aicrawler.search.providers.settings") as mock_settings:
            mock_settings.brave_api_key = "my-brave-key"
            chain = build_default_chain()

        assert [p.name for p in chain.providers] == ["Brave", "DuckDuckGo"]
