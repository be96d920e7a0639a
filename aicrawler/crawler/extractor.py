"""Readable-text extraction from a rendered DOM snapshot."""

from __future__ import annotations

from bs4 import BeautifulSoup

# Elements whose text is collected from the chosen container.
_TEXT_TAGS = ["p", "h1", "h2", "h3", "h4", "h5", "h6", "li", "span", "div"]


def extract_text(html: str) -> str:
    """Extract readable text from *html* using a ``<main>``/``<article>`` heuristic.

    ``<script>`` and ``<style>`` nodes are dropped first.  The container is
    the first ``<main>``, else the first ``<article>``, else ``<body>``; the
    non-empty text of each text-bearing descendant is joined with blank lines.
    Nested containers repeat their children's text, which is accepted: this is
    a heuristic, not a content model.
    """
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()

    container = soup.find("main") or soup.find("article") or soup.body
    if container is None:
        return ""

    texts = (el.get_text(" ", strip=True) for el in container.find_all(_TEXT_TAGS))
    return "\n\n".join(text for text in texts if text)
