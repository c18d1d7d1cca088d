"""
Web search backends for business research.

Both backends expose ``search(query, max_results=5, fetch_content=True)
-> SearchResponse`` and raise ``SearchError`` on failure:

  - DuckDuckGoSearch: free, scrapes the HTML results page and optionally
    fetches the top result pages for richer content
  - TavilySearch: paid structured API, returns extracted content directly

``search_multiple`` fans several queries out over a small thread pool and
isolates per-query failures.
"""

import logging
import random
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from typing import List, Optional
from urllib.parse import parse_qs, urlparse

import httpx
from bs4 import BeautifulSoup
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    before_sleep_log,
)

from directory.enrichment.config import PipelineConfig
from directory.enrichment.errors import SearchError

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
SEARCH_TIMEOUT = 15
FETCH_TIMEOUT = 10
FETCH_LIMIT = 3
FETCH_MAX_CHARS = 5000
_STRIP_TAGS = ("script", "style", "nav", "footer", "header", "aside")


@dataclass
class SearchResult:
    title: str
    url: str
    content: str = ''
    score: Optional[float] = None
    raw_content: Optional[str] = None


@dataclass
class SearchResponse:
    query: str
    answer: Optional[str] = None
    results: List[SearchResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class MultiSearchResult:
    total_queries: int
    successful: int
    failed: int
    # [{"query": str, "data": SearchResponse}] for successful queries only
    results: list = field(default_factory=list)


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, SearchError):
        return exc.transient
    return False


class Searcher:
    """Interface shared by the search backends."""

    name = ''

    def search(self, query: str, max_results: int = 5, fetch_content: bool = True) -> SearchResponse:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# DuckDuckGo (free HTML endpoint)
# ---------------------------------------------------------------------------

class DuckDuckGoSearch(Searcher):
    """Free web search via DuckDuckGo's HTML results page."""

    name = 'duckduckgo'
    SEARCH_URL = "https://html.duckduckgo.com/html/"

    def search(self, query, max_results=5, fetch_content=True) -> SearchResponse:
        logger.info("DuckDuckGo search: %s", query)
        try:
            html = self._post_search(query)
        except httpx.TimeoutException as exc:
            raise SearchError('timeout', f"DuckDuckGo timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise SearchError('network_error', f"DuckDuckGo request failed: {exc}") from exc
        except httpx.HTTPError as exc:
            raise SearchError('http_error', f"DuckDuckGo response unreadable: {exc}") from exc

        results = parse_results(html, max_results)
        logger.info("DuckDuckGo found %d results for: %s", len(results), query)
        if fetch_content:
            for result in results[:FETCH_LIMIT]:
                result.raw_content = fetch_page_text(result.url)
        return SearchResponse(query=query, answer=None, results=results)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        retry=retry_if_exception(_is_retryable),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    def _post_search(self, query: str) -> str:
        resp = httpx.post(
            self.SEARCH_URL,
            data={"q": query},
            headers={
                "User-Agent": USER_AGENT,
                "Accept": "text/html,application/xhtml+xml",
                "Accept-Language": "en-US,en;q=0.9",
            },
            timeout=SEARCH_TIMEOUT,
            follow_redirects=True,
        )
        # DDG sometimes answers 202 with a full result page
        if resp.status_code not in (200, 202):
            logger.warning("DuckDuckGo returned status %s for: %s", resp.status_code, query)
            raise SearchError('http_error', f"DuckDuckGo returned {resp.status_code}", status=resp.status_code)
        return resp.text


def extract_real_url(href: Optional[str]) -> Optional[str]:
    """Resolve DuckDuckGo's ``/l/?uddg=`` redirect links to the target URL."""
    if not href:
        return None
    if "uddg=" in href:
        target = parse_qs(urlparse(href).query).get("uddg")
        if target:
            return target[0]
        return href if href.startswith("http") else None
    if href.startswith("//"):
        return "https:" + href
    if href.startswith("http"):
        return href
    return None


def parse_results(html: str, max_results: int) -> List[SearchResult]:
    soup = BeautifulSoup(html, "html.parser")
    results = []
    for element in soup.select(".result")[:max_results]:
        link = element.select_one(".result__a")
        if link is None:
            continue
        title = link.get_text().strip()
        url = extract_real_url(link.get("href"))
        snippet_el = element.select_one(".result__snippet")
        snippet = snippet_el.get_text().strip() if snippet_el else ""
        if url and title:
            results.append(SearchResult(title=title, url=url, content=snippet))
    return results


def html_to_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for el in soup(list(_STRIP_TAGS)):
        el.decompose()
    return " ".join(soup.get_text(separator=" ").split())


def fetch_page_text(url: str) -> Optional[str]:
    """Fetch a result page and return its visible text, or None on failure."""
    try:
        resp = httpx.get(
            url,
            headers={"User-Agent": USER_AGENT},
            timeout=FETCH_TIMEOUT,
            follow_redirects=True,
        )
    except httpx.HTTPError as exc:
        logger.debug("Fetch failed for %s: %s", url, exc)
        return None
    if resp.status_code != 200:
        return None
    return html_to_text(resp.text)[:FETCH_MAX_CHARS]


# ---------------------------------------------------------------------------
# Tavily (paid structured API)
# ---------------------------------------------------------------------------

class TavilySearch(Searcher):
    """AI-optimized search via the Tavily API."""

    name = 'tavily'
    API_URL = "https://api.tavily.com/search"
    TIMEOUT = 30

    def __init__(self, api_key: str = '', production: bool = False):
        self.api_key = api_key
        self.production = production

    def search(self, query, max_results=5, fetch_content=True, search_depth='basic') -> SearchResponse:
        if not self.api_key:
            if self.production:
                raise SearchError('not_configured', 'TAVILY_API_KEY not set')
            logger.warning("TAVILY_API_KEY not set, returning mock results")
            return self._mock_response(query)

        try:
            data = self._post(query, max_results, fetch_content, search_depth)
        except httpx.TimeoutException as exc:
            raise SearchError('timeout', f"Tavily timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise SearchError('network_error', f"Tavily request failed: {exc}") from exc
        except httpx.HTTPError as exc:
            raise SearchError('http_error', f"Tavily response unreadable: {exc}") from exc
        except ValueError as exc:
            raise SearchError('unexpected_response', f"Tavily returned invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise SearchError('unexpected_response', f"Tavily returned {type(data).__name__}, expected an object")

        results = [
            SearchResult(
                title=item.get("title") or "",
                url=item.get("url") or "",
                content=item.get("content") or "",
                score=item.get("score"),
                raw_content=item.get("raw_content"),
            )
            for item in data.get("results") or []
            if isinstance(item, dict)
        ]
        logger.info("Tavily: %d results for '%s'", len(results), query[:60])
        return SearchResponse(query=data.get("query") or query, answer=data.get("answer"), results=results)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        retry=retry_if_exception(_is_retryable),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    def _post(self, query: str, max_results: int, include_raw_content: bool, search_depth: str) -> dict:
        resp = httpx.post(
            self.API_URL,
            json={
                "api_key": self.api_key,
                "query": query,
                "max_results": max_results,
                "search_depth": search_depth,
                "include_answer": False,
                "include_raw_content": include_raw_content,
            },
            timeout=self.TIMEOUT,
        )
        if resp.status_code != 200:
            logger.error("Tavily API error: %s - %s", resp.status_code, resp.text[:500])
            raise SearchError('api_error', f"Tavily returned {resp.status_code}", status=resp.status_code, body=resp.text)
        return resp.json()

    @staticmethod
    def _mock_response(query: str) -> SearchResponse:
        return SearchResponse(
            query=query,
            results=[SearchResult(
                title=f"Mock result for: {query}",
                url="https://example.com/mock",
                content="This is a mock result. Set TAVILY_API_KEY for real results.",
                score=0.5,
            )],
        )


# ---------------------------------------------------------------------------
# Fan-out
# ---------------------------------------------------------------------------

def search_multiple(
    searcher: Searcher,
    queries: List[str],
    max_results: int = 5,
    fetch_content: bool = True,
    stagger: float = 1.0,
) -> MultiSearchResult:
    """Run ``queries`` concurrently; a failed query is counted, not raised."""

    def _one(query: str):
        if stagger:
            # Spread requests out to stay under DDG's rate limit
            time.sleep(random.uniform(0, stagger))
        try:
            return query, searcher.search(query, max_results=max_results, fetch_content=fetch_content), None
        except SearchError as exc:
            return query, None, exc

    if not queries:
        return MultiSearchResult(total_queries=0, successful=0, failed=0)

    with ThreadPoolExecutor(max_workers=min(len(queries), 4)) as pool:
        outcomes = list(pool.map(_one, queries))

    successful = [{"query": q, "data": data} for q, data, err in outcomes if err is None]
    failed = [(q, err) for q, _, err in outcomes if err is not None]
    for query, err in failed:
        logger.warning("Search failed for %r: %s", query, err)

    return MultiSearchResult(
        total_queries=len(queries),
        successful=len(successful),
        failed=len(failed),
        results=successful,
    )


def build_searcher(config: Optional[PipelineConfig] = None) -> Searcher:
    config = config or PipelineConfig.from_settings()
    if config.search_backend == 'tavily':
        return TavilySearch(config.tavily_api_key, production=config.is_production)
    return DuckDuckGoSearch()
