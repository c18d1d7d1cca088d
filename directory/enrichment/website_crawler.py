"""
Business website crawler.

Fetches a business homepage plus up to ``max_pages - 1`` same-host pages
linked from it and reduces each page to plain text, headings and language.
The result is the ``website`` research bundle consumed by the enrichment
prompt:

    {
        "crawled_at": iso8601,
        "pages_crawled": int,
        "has_english_version": bool,
        "total_content_length": int,
        "metadata": {"title", "description", "languages_detected"},
        "structured_data": [ {schema.org fields}, ... ],
        "social_proof": {"testimonials": [...], "awards": [...]},
        "pages": [{url, title, description, language, content_length, headings, content}],
    }
"""

import json
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; LocalDirectoryBot/1.0)"
REQUEST_TIMEOUT = 15
MAX_PAGES = 20
MAX_HEADINGS = 20
MAX_STORED_CONTENT = 10_000
MAX_TESTIMONIALS = 10

ENGLISH_PATTERNS = ("/en/", "/en-", "/english/", "?lang=en", "&lang=en", "/en.html")
SKIP_EXTENSIONS = (".pdf", ".jpg", ".jpeg", ".png", ".gif", ".svg", ".css", ".js", ".ico")
# Whole path segments only: "/carta" (a menu) is not "/cart"
SKIP_SEGMENTS = frozenset({
    "wp-admin", "wp-login", "admin", "login", "cart", "checkout",
    "error", "404", "500",
})
_STRIP_TAGS = ("script", "style", "nav", "footer", "header", "aside", "noscript")

# schema.org keys worth showing the model
_SCHEMA_KEYS = (
    "@type", "name", "description", "telephone", "email", "priceRange",
    "servesCuisine", "openingHours", "paymentAccepted", "currenciesAccepted",
    "address", "aggregateRating", "award", "knowsLanguage", "areaServed",
)
_TESTIMONIAL_RE = re.compile(r"testimonial|review|opinion|quote", re.I)
_AWARD_RE = re.compile(r"award|certif|premio|badge|accredit", re.I)


class CrawlFailed(Exception):
    """The start page could not be fetched."""


@dataclass
class Page:
    url: str
    title: str = ''
    description: Optional[str] = None
    language: Optional[str] = None
    content: str = ''
    headings: List[str] = field(default_factory=list)
    links: List[str] = field(default_factory=list)
    structured_data: List[dict] = field(default_factory=list)
    testimonials: List[str] = field(default_factory=list)
    awards: List[str] = field(default_factory=list)

    @property
    def content_length(self) -> int:
        return len(self.content)

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "title": self.title,
            "description": self.description,
            "language": self.language,
            "content_length": self.content_length,
            "headings": self.headings,
            "content": self.content[:MAX_STORED_CONTENT],
        }


def normalize_url(url: str) -> str:
    url = url.strip()
    if url.startswith(("http://", "https://")):
        return url
    return "https://" + url


def _dedup_key(url: str) -> str:
    return url.split("#", 1)[0].rstrip("/")


def skip_url(url: str) -> bool:
    path = urlparse(url.lower()).path
    if path.endswith(SKIP_EXTENSIONS):
        return True
    segments = {segment.split(".", 1)[0] for segment in path.split("/") if segment}
    return not segments.isdisjoint(SKIP_SEGMENTS)


def is_english_url(url: str) -> bool:
    return any(pattern in url for pattern in ENGLISH_PATTERNS)


def _normalize_link(href: Optional[str], page_url: str) -> Optional[str]:
    if not href:
        return None
    href = href.strip()
    if not href or href.startswith(("#", "javascript:", "mailto:", "tel:")):
        return None
    if href.startswith("//"):
        return "https:" + href
    if href.startswith("http"):
        return href
    if href.startswith("/"):
        return urljoin(page_url, href)
    return None


def _schema_items(raw) -> List[dict]:
    """Flatten a JSON-LD payload (object, list or @graph) into item dicts."""
    if isinstance(raw, list):
        return [item for entry in raw for item in _schema_items(entry)]
    if not isinstance(raw, dict):
        return []
    if "@graph" in raw:
        return _schema_items(raw["@graph"])
    item = {key: raw[key] for key in _SCHEMA_KEYS if raw.get(key) not in (None, "", [])}
    return [item] if len(item) > 1 else []


def extract_structured_data(soup: BeautifulSoup) -> List[dict]:
    items = []
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        try:
            raw = json.loads(script.string or script.get_text() or "")
        except (json.JSONDecodeError, ValueError):
            continue
        items.extend(_schema_items(raw))
    return items


def extract_social_proof(soup: BeautifulSoup):
    testimonials, awards = [], []
    for el in soup.find_all(True):
        marker = " ".join(el.get("class") or []) + " " + (el.get("id") or "")
        if not marker.strip():
            continue
        text = " ".join(el.get_text(separator=" ").split())
        if not text or len(text) < 20:
            continue
        if _TESTIMONIAL_RE.search(marker) and el.name in ("blockquote", "div", "p", "li", "article", "section"):
            # Keep the innermost match; containers repeat their children's text
            if not el.find(class_=_TESTIMONIAL_RE) and text not in testimonials:
                testimonials.append(text[:500])
        elif _AWARD_RE.search(marker) and text not in awards:
            awards.append(text[:200])
    for quote in soup.find_all("blockquote"):
        text = " ".join(quote.get_text(separator=" ").split())
        if len(text) >= 20 and text[:500] not in testimonials:
            testimonials.append(text[:500])
    return testimonials[:MAX_TESTIMONIALS], awards[:MAX_TESTIMONIALS]


def parse_page(url: str, html: str) -> Page:
    soup = BeautifulSoup(html, "html.parser")

    title = soup.title.get_text().strip() if soup.title else ''
    meta = soup.find("meta", attrs={"name": "description"})
    description = meta.get("content") if meta else None
    html_tag = soup.find("html")
    language = html_tag.get("lang") if html_tag else None

    structured_data = extract_structured_data(soup)
    links = []
    for a in soup.find_all("a", href=True):
        link = _normalize_link(a["href"], url)
        if link and not skip_url(link) and link not in links:
            links.append(link)

    headings = []
    for h in soup.find_all(["h1", "h2", "h3"]):
        text = h.get_text().strip()
        if text:
            headings.append(text)
    headings = headings[:MAX_HEADINGS]

    testimonials, awards = extract_social_proof(soup)

    for el in soup(list(_STRIP_TAGS)):
        el.decompose()
    content = " ".join(soup.get_text(separator=" ").split())

    return Page(
        url=url,
        title=title,
        description=description,
        language=language,
        content=content,
        headings=headings,
        links=links,
        structured_data=structured_data,
        testimonials=testimonials,
        awards=awards,
    )


def fetch_page(url: str, session: Optional[requests.Session] = None) -> Optional[Page]:
    """Fetch and parse one page, or None on any HTTP failure."""
    http = session or requests
    try:
        resp = http.get(
            url,
            headers={"User-Agent": USER_AGENT},
            timeout=REQUEST_TIMEOUT,
            allow_redirects=True,
        )
    except requests.RequestException as exc:
        logger.debug("Fetch failed for %s: %s", url, exc)
        return None
    if resp.status_code != 200:
        logger.debug("Fetch of %s returned %s", url, resp.status_code)
        return None
    return parse_page(resp.url or url, resp.text)


def crawl_website(
    website: str,
    max_pages: int = MAX_PAGES,
    delay: float = 0.5,
    session: Optional[requests.Session] = None,
) -> dict:
    """Crawl a business website and return the research bundle.

    Raises CrawlFailed when the start page itself cannot be fetched.
    Failures on secondary pages are skipped.
    """
    start_url = normalize_url(website)
    host = urlparse(start_url).hostname
    logger.info("Crawling website: %s", start_url)

    main = fetch_page(start_url, session=session)
    if main is None:
        raise CrawlFailed(f"Could not fetch {start_url}")

    seen = {_dedup_key(start_url), _dedup_key(main.url)}
    to_visit = []
    for link in main.links:
        key = _dedup_key(link)
        if urlparse(link).hostname != host or key in seen:
            continue
        seen.add(key)
        to_visit.append(key)
    to_visit = to_visit[:max(max_pages - 1, 0)]

    pages = [main]
    for link in to_visit:
        if delay:
            time.sleep(delay)
        page = fetch_page(link, session=session)
        if page is not None:
            pages.append(page)

    return build_bundle(pages)


def build_bundle(pages: List[Page]) -> dict:
    main = pages[0] if pages else None
    languages = []
    for page in pages:
        if page.language and page.language not in languages:
            languages.append(page.language)

    structured, testimonials, awards = [], [], []
    for page in pages:
        structured.extend(item for item in page.structured_data if item not in structured)
        testimonials.extend(t for t in page.testimonials if t not in testimonials)
        awards.extend(a for a in page.awards if a not in awards)

    has_english = any(
        is_english_url(page.url) or (page.language or "").lower().startswith("en")
        for page in pages
    )

    return {
        "crawled_at": datetime.now(timezone.utc).isoformat(),
        "pages_crawled": len(pages),
        "has_english_version": has_english,
        "total_content_length": sum(page.content_length for page in pages),
        "metadata": {
            "title": main.title if main else None,
            "description": main.description if main else None,
            "languages_detected": languages,
        },
        "structured_data": structured,
        "social_proof": {
            "testimonials": testimonials[:MAX_TESTIMONIALS],
            "awards": awards[:MAX_TESTIMONIALS],
        },
        "pages": [page.to_dict() for page in pages],
    }


def empty_bundle(reason: str) -> dict:
    """Bundle persisted when the site could not be crawled at all."""
    return {
        "crawled_at": datetime.now(timezone.utc).isoformat(),
        "pages_crawled": 0,
        "has_english_version": False,
        "total_content_length": 0,
        "metadata": {"title": None, "description": None, "languages_detected": []},
        "structured_data": [],
        "social_proof": {"testimonials": [], "awards": []},
        "pages": [],
        "error": reason,
    }
