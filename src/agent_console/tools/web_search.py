"""Web search tool — DuckDuckGo's HTML endpoint, parsed into plain text."""

import html
import logging
import re

import httpx

from agent_console.tools.registry import ToolDeclaration, ToolError, ToolParameter

logger = logging.getLogger(__name__)

SEARCH_URL = "https://html.duckduckgo.com/html/"
_TIMEOUT_SECONDS = 10.0
_USER_AGENT = "Mozilla/5.0 (compatible; agent-console/0.1)"

_TITLE_RE = re.compile(r'class="result__a"[^>]*>(.*?)</a>', re.S)
_SNIPPET_RE = re.compile(r'class="result__snippet"[^>]*>(.*?)</a>', re.S)
_URL_RE = re.compile(r'class="result__url"[^>]*>(.*?)</a>', re.S)
_TAG_RE = re.compile(r"<[^>]+>")


def _clean(fragment: str) -> str:
    return html.unescape(_TAG_RE.sub("", fragment)).strip()


def parse_results(page: str, max_results: int) -> list[tuple[str, str, str]]:
    """Extract (title, url, snippet) triples from a DuckDuckGo results page."""
    titles = _TITLE_RE.findall(page)
    snippets = _SNIPPET_RE.findall(page)
    urls = _URL_RE.findall(page)
    results: list[tuple[str, str, str]] = []
    for i, title in enumerate(titles[:max_results]):
        url = _clean(urls[i]) if i < len(urls) else ""
        snippet = _clean(snippets[i]) if i < len(snippets) else ""
        results.append((_clean(title), url, snippet))
    return results


class WebSearch:
    """Callable search tool; the HTTP client is created on first use (injectable for tests)."""

    def __init__(self, http: httpx.AsyncClient | None = None) -> None:
        self._http = http

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=_TIMEOUT_SECONDS,
                headers={"User-Agent": _USER_AGENT},
                follow_redirects=True,
            )
        return self._http

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def __call__(self, query: str, maxResults: int = 5) -> str:
        if not query.strip():
            raise ToolError("Search query required")
        max_results = max(1, min(maxResults, 20))
        try:
            response = await self._client().post(SEARCH_URL, data={"q": query})
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Web search failed for %r: %s", query, exc)
            raise ToolError(f"Web search failed: {exc}") from exc

        results = parse_results(response.text, max_results)
        if not results:
            return "No results found"

        lines = [f"Results for '{query}':"]
        for i, (title, url, snippet) in enumerate(results, start=1):
            lines.append(f"{i}. {title}")
            if url:
                lines.append(f"   URL: {url}")
            if snippet:
                lines.append(f"   {snippet}")
        return "\n".join(lines)


def web_search_tool(search: WebSearch) -> ToolDeclaration:
    return ToolDeclaration(
        name="WebSearch",
        description="Searches the web and returns the top results (title, URL, snippet).",
        handler=search,
        parameters=(
            ToolParameter("query", "string", "Search terms."),
            ToolParameter("maxResults", "integer", "Number of results (1-20).", required=False, default=5),
        ),
    )
