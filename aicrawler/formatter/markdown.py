"""Markdown normalisation of crawled page text.

The AI formatter is optional.  ``OpenRouterFormatter`` talks to any
OpenAI-compatible ``/chat/completions`` endpoint (OpenRouter by default) and
raises on every failure; the page fetcher catches that and falls back to
:func:`fallback_markdown`, which is fully deterministic.

Set ``OPENROUTER_API_KEY`` (or ``OPENAI_API_KEY``) in your ``.env`` to enable
the AI path; without a key :func:`build_formatter` returns ``None``.
"""

from __future__ import annotations

from typing import Optional, Protocol

import httpx

#: Content longer than this is cut before it is sent to the model.
MAX_FORMATTER_CHARS = 8000

_SYSTEM_PROMPT = (
    "You are a helpful assistant that converts web content into clean, "
    "well-formatted markdown."
)

_USER_PROMPT = """\
I need you to convert the following web page content into clean, well-formatted markdown.

Page Title: {title}
Page URL: {url}

Content:
{content}

Please format this into clean markdown that:
1. Has a proper heading structure
2. Preserves the important information
3. Removes any noise or irrelevant content
4. Is well-organized and easy to read
5. Includes the source URL at the bottom

Return ONLY the markdown content, nothing else."""


class MarkdownFormatter(Protocol):
    async def format(self, title: str, url: str, content: str) -> str:
        """Return *content* rewritten as markdown.  May raise on any failure."""


def truncate_content(content: str, limit: int = MAX_FORMATTER_CHARS) -> str:
    """Cut *content* to *limit* characters, marking the cut with ``...``."""
    if len(content) <= limit:
        return content
    return content[:limit] + "..."


def fallback_markdown(title: str, content: str, url: str) -> str:
    """The markdown used when no AI formatter is available or it fails."""
    return f"# {title}\n\n{content}\n\n[Source]({url})"


class OpenRouterFormatter:
    """Chat-completions client producing markdown for one page at a time.

    One instance (and its ``httpx.AsyncClient``) serves a whole crawl run and
    is safe to call from concurrent fetches.  Close it with :meth:`aclose` or
    use it as an async context manager.
    """

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "gpt-3.5-turbo",
        base_url: str = "https://openrouter.ai/api/v1",
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not api_key:
            raise ValueError("an API key is required for the markdown formatter")
        self._model = model
        self._endpoint = f"{base_url.rstrip('/')}/chat/completions"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
            "X-Title": "AI Web Crawler",
        }

    async def format(self, title: str, url: str, content: str) -> str:
        """Ask the model to rewrite *content* as markdown.

        Raises:
            httpx.HTTPError: On transport failures or a non-2xx response.
            ValueError: If the response carries no completion text.
        """
        payload = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": _USER_PROMPT.format(title=title, url=url, content=content),
                },
            ],
            "temperature": 0.3,
            "max_tokens": 2000,
        }
        response = await self._client.post(self._endpoint, json=payload, headers=self._headers)
        response.raise_for_status()

        data = response.json()
        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ValueError("unexpected response format from the formatter API") from exc
        if not isinstance(text, str) or not text.strip():
            raise ValueError("formatter API returned an empty completion")
        return text.strip()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "OpenRouterFormatter":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def build_formatter() -> Optional[OpenRouterFormatter]:
    """Return a formatter configured from ``settings``, or ``None`` without a key."""
    from aicrawler.config import settings

    if not settings.formatter_api_key:
        return None
    return OpenRouterFormatter(
        settings.formatter_api_key,
        model=settings.formatter_model,
        base_url=settings.formatter_base_url,
        timeout=settings.formatter_timeout,
    )
