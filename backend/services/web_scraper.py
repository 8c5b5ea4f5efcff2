"""
services/web_scraper.py — Fetch a web page and reduce it to readable text.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup

from config import Config
from logging_config import get_logger

logger = get_logger(__name__)

_STRIP_SELECTORS = "script, style, nav, footer, aside, .advertisement"

# First match wins; body is the catch-all
CONTENT_SELECTORS = (
    "article",
    "main",
    '[role="main"]',
    ".content",
    ".post-content",
    ".entry-content",
    ".article-content",
    ".story-body",
    "body",
)

_WHITESPACE = re.compile(r"\s+")


class ScrapeError(Exception):
    pass


@dataclass
class ScrapedPage:
    url: str
    title: str
    text: str
    metadata: dict = field(default_factory=dict)


def validate_url(url: str) -> bool:
    """True for absolute URLs with a scheme and a host."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return bool(parsed.scheme) and bool(parsed.netloc)


def _meta(soup: BeautifulSoup, **attrs) -> str:
    tag = soup.find("meta", attrs=attrs)
    return (tag.get("content") or "").strip() if tag else ""


def _normalize(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def _title(soup: BeautifulSoup, url: str) -> str:
    if soup.title and soup.title.get_text().strip():
        return soup.title.get_text().strip()
    h1 = soup.find("h1")
    if h1 and h1.get_text().strip():
        return h1.get_text().strip()
    last_segment = urlparse(url).path.split("/")[-1]
    return last_segment or "Untitled Document"


def parse_html(html: str, url: str) -> ScrapedPage:
    """Pure parsing half of scrape(); no network access."""
    soup = BeautifulSoup(html, "html.parser")
    title = _title(soup, url)

    for el in soup.select(_STRIP_SELECTORS):
        el.decompose()

    content = None
    for selector in CONTENT_SELECTORS:
        content = soup.select_one(selector)
        if content is not None:
            break
    text = _normalize(content.get_text(" ")) if content is not None else _normalize(soup.get_text(" "))

    metadata = {
        "originalUrl": url,
        "scrapedAt": datetime.now(timezone.utc).isoformat(),
        "description": _meta(soup, name="description"),
        "author": _meta(soup, name="author"),
        "publishedTime": _meta(soup, property="article:published_time") or _meta(soup, name="publishedDate"),
        "keywords": _meta(soup, name="keywords"),
        "wordCount": len(text.split()),
    }
    return ScrapedPage(url=url, title=title, text=text, metadata=metadata)


def scrape(url: str) -> ScrapedPage:
    """Sync: download *url* and parse it.  Raises ScrapeError on any failure."""
    try:
        resp = requests.get(
            url,
            headers={"User-Agent": Config.SCRAPER_USER_AGENT},
            timeout=Config.URL_FETCH_TIMEOUT,
        )
    except requests.RequestException as exc:
        raise ScrapeError(str(exc)) from exc

    if not resp.ok:
        raise ScrapeError(f"HTTP {resp.status_code}: {resp.reason}")

    page = parse_html(resp.text, url)
    logger.info("scrape.ok", url=url, chars=len(page.text))
    return page
