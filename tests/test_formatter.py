"""Tests for aicrawler.formatter.markdown.

- ``respx`` patches ``httpx`` at the transport layer so no real network calls
  reach OpenRouter.
- The deterministic helpers are tested directly.
"""

from __future__ import annotations

import json

import httpx
import pytest
import respx

from aicrawler.formatter.markdown import (
    MAX_FORMATTER_CHARS,
    OpenRouterFormatter,
    build_formatter,
    fallback_markdown,
    truncate_content,
)

_ENDPOINT = "https://openrouter.ai/api/v1/chat/completions"


def _completion(text: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": text}}]}


# ---------------------------------------------------------------------------
# Deterministic helpers
# ---------------------------------------------------------------------------

class TestHelpers:
    def test_fallback_markdown_layout(self) -> None:
        assert fallback_markdown("Title", "Body text", "https://a.com/") == (
            "# Title\n\nBody text\n\n[Source](https://a.com/)"
        )

    def test_short_content_untouched(self) -> None:
        assert truncate_content("abc") == "abc"
        assert truncate_content("x" * MAX_FORMATTER_CHARS) == "x" * MAX_FORMATTER_CHARS

    def test_long_content_is_cut_and_marked(self) -> None:
        assert truncate_content("abcdef", limit=3) == "abc..."


# ---------------------------------------------------------------------------
# OpenRouterFormatter
# ---------------------------------------------------------------------------

class TestOpenRouterFormatter:
    async def test_returns_stripped_completion(self) -> None:
        with respx.mock:
            route = respx.post(_ENDPOINT).mock(
                return_value=httpx.Response(200, json=_completion("\n# Clean page\n\nText\n"))
            )
            async with OpenRouterFormatter("sk-test", model="test/model") as formatter:
                markdown = await formatter.format("Page", "https://a.com/", "Raw text")

        assert markdown == "# Clean page\n\nText"
        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["model"] == "test/model"
        assert body["temperature"] == 0.3
        assert body["max_tokens"] == 2000
        user_prompt = body["messages"][1]["content"]
        assert "Page Title: Page" in user_prompt
        assert "Page URL: https://a.com/" in user_prompt
        assert "Raw text" in user_prompt

    async def test_custom_base_url(self) -> None:
        with respx.mock:
            route = respx.post("http://localhost:8080/v1/chat/completions").mock(
                return_value=httpx.Response(200, json=_completion("ok"))
            )
            async with OpenRouterFormatter("k", base_url="http://localhost:8080/v1/") as formatter:
                assert await formatter.format("t", "u", "c") == "ok"

        assert route.called

    async def test_http_error_raises(self) -> None:
        with respx.mock:
            respx.post(_ENDPOINT).mock(return_value=httpx.Response(429, text="slow down"))
            async with OpenRouterFormatter("sk-test") as formatter:
                with pytest.raises(httpx.HTTPStatusError):
                    await formatter.format("t", "u", "c")

    @pytest.mark.parametrize(
        "payload",
        [{}, {"choices": []}, {"choices": [{"message": {}}]}, _completion("   ")],
    )
    async def test_malformed_response_raises(self, payload: dict) -> None:
        with respx.mock:
            respx.post(_ENDPOINT).mock(return_value=httpx.Response(200, json=payload))
            async with OpenRouterFormatter("sk-test") as formatter:
                with pytest.raises(ValueError):
                    await formatter.format("t", "u", "c")

    def test_requires_api_key(self) -> None:
        with pytest.raises(ValueError):
            OpenRouterFormatter("")

    async def test_shared_client_is_not_closed(self) -> None:
        client = httpx.AsyncClient()
        async with OpenRouterFormatter("k", client=client):
            pass
        assert not client.is_closed
        await client.aclose()


# ---------------------------------------------------------------------------
# build_formatter
# ---------------------------------------------------------------------------

class TestBuildFormatter:
    def test_none_without_key(self) -> None:
        assert build_formatter() is None

    async def test_uses_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("aicrawler.config.settings.formatter_api_key", "sk-env")
        monkeypatch.setattr("aicrawler.config.settings.formatter_model", "env/model")

        formatter = build_formatter()
        assert isinstance(formatter, OpenRouterFormatter)

        with respx.mock:
            route = respx.post(_ENDPOINT).mock(
                return_value=httpx.Response(200, json=_completion("done"))
            )
            async with formatter:
                await formatter.format("t", "u", "c")

        body = json.loads(route.calls.last.request.content)
        assert body["model"] == "env/model"
