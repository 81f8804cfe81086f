"""Feed fetching, discovery and jf2 conversion helpers."""

from __future__ import annotations

import concurrent.futures
import hashlib
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urljoin

import feedparser
import requests
from bs4 import BeautifulSoup

from .models import FeedEntry, ParsedFeed

logger = logging.getLogger(__name__)

FEED_CONTENT_TYPES = (
    "application/rss+xml",
    "application/atom+xml",
    "application/feed+json",
    "application/json",
    "application/xml",
    "text/xml",
)
USER_AGENT = "microsub-server (+https://indieweb.org/Microsub)"


def to_datetime(value: Optional[time.struct_time]) -> Optional[datetime]:
    """Convert feedparser timestamps to timezone-aware datetimes."""
    if value is None:
        return None
    return datetime(*value[:6], tzinfo=timezone.utc)


def _download(url: str, timeout: float = 10.0) -> Optional[Tuple[bytes, str, str]]:
    """Return ``(content, content_type, final_url)`` or None on failure."""
    try:
        response = requests.get(
            url, timeout=timeout, headers={"User-Agent": USER_AGENT}
        )
        response.raise_for_status()
    except requests.RequestException as exc:
        logger.warning("Failed to fetch %s: %s", url, exc)
        return None

    content_type = response.headers.get("Content-Type", "") if response.headers else ""
    final_url = getattr(response, "url", None) or url
    return response.content, content_type, final_url


def parse_feed(content: bytes, url: str) -> Optional[ParsedFeed]:
    """Parse feed bytes; return None if the document is not a feed."""
    parsed = feedparser.parse(content)
    if not parsed.get("version") and not parsed.entries:
        return None

    feed_info = parsed.get("feed", {}) or {}
    image = feed_info.get("image") or {}
    photo = image.get("href") if isinstance(image, dict) else None

    entries: List[FeedEntry] = []
    for entry in parsed.entries:
        item = _entry_from(entry, url)
        if item is not None:
            entries.append(item)

    logger.info("Collected %d entries from feed '%s'", len(entries), url)
    return ParsedFeed(
        url=url,
        title=feed_info.get("title") or None,
        entries=entries,
        photo=photo,
    )


def fetch_feed(url: str, timeout: float = 10.0) -> Optional[ParsedFeed]:
    """Fetch and parse a single feed URL."""
    logger.info("Fetching feed %s", url)
    downloaded = _download(url, timeout=timeout)
    if downloaded is None:
        return None
    content, _, _ = downloaded
    return parse_feed(content, url)


def _entry_from(entry: Any, feed_url: str) -> Optional[FeedEntry]:
    link = entry.get("link")
    title = entry.get("title")

    if not link:
        logger.debug("Skipping entry without link in feed '%s'", feed_url)
        return None

    content_html = None
    content = entry.get("content")
    if content:
        try:
            content_html = content[0].get("value")
        except (TypeError, KeyError, IndexError, AttributeError):
            content_html = None

    summary = entry.get("summary")
    if not summary:
        summary_detail = entry.get("summary_detail")
        if summary_detail:
            summary = summary_detail.get("value")
    if not content_html and summary:
        content_html = summary
    if summary:
        summary = _strip_html(summary)

    published = None
    for attr in ("published_parsed", "updated_parsed", "created_parsed"):
        published = entry.get(attr)
        if published:
            break

    author = None
    detail = entry.get("author_detail") or {}
    if entry.get("author") or detail:
        author = {
            key: value
            for key, value in (
                ("name", detail.get("name") or entry.get("author")),
                ("url", detail.get("href")),
            )
            if value
        }

    photos = [
        media.get("url")
        for media in entry.get("media_content", []) or []
        if media.get("url") and str(media.get("medium", "image")) == "image"
    ]

    return FeedEntry(
        link=link,
        title=title or link,
        published=to_datetime(published) or datetime.min.replace(tzinfo=timezone.utc),
        summary=summary,
        content_html=content_html,
        author=author or None,
        photos=photos,
        feed_url=feed_url,
    )


def _strip_html(raw_value: str) -> str:
    """Return text content extracted from HTML fragments."""
    soup = BeautifulSoup(raw_value, "html.parser")
    text = soup.get_text(separator=" ", strip=True)
    text = re.sub(r"\s+([.,;:!?])", r"\1", text)
    text = re.sub(r"\s{2,}", " ", text)
    return text.strip()


def find_feed_links(html: bytes, base_url: str) -> List[Dict[str, str]]:
    """Return feeds advertised by ``<link rel="alternate">`` in an HTML page."""
    soup = BeautifulSoup(html, "html.parser")
    found: List[Dict[str, str]] = []
    seen = set()

    for link in soup.find_all("link", href=True):
        rel = link.get("rel") or []
        if isinstance(rel, str):
            rel = rel.split()
        if "alternate" not in [value.lower() for value in rel]:
            continue
        link_type = (link.get("type") or "").split(";")[0].strip().lower()
        if link_type not in FEED_CONTENT_TYPES:
            continue

        href = urljoin(base_url, link["href"])
        if href in seen:
            continue
        seen.add(href)

        item = {"type": "feed", "url": href}
        if link.get("title"):
            item["name"] = link["title"]
        found.append(item)

    return found


def discover_feeds(url: str, timeout: float = 10.0) -> List[Dict[str, str]]:
    """Return the feeds reachable from ``url``.

    If ``url`` is itself a feed it is the only result; otherwise the page's
    advertised alternate feeds are returned.
    """
    downloaded = _download(url, timeout=timeout)
    if downloaded is None:
        return []
    content, _, final_url = downloaded

    feed = parse_feed(content, url)
    if feed is not None:
        item = {"type": "feed", "url": url}
        if feed.title:
            item["name"] = feed.title
        if feed.photo:
            item["photo"] = feed.photo
        return [item]

    links = find_feed_links(content, final_url)
    logger.info("Discovered %d feeds on %s", len(links), url)
    return links


def resolve_feed(url: str, timeout: float = 10.0) -> Optional[ParsedFeed]:
    """Return the feed at ``url`` or the first feed the page advertises."""
    downloaded = _download(url, timeout=timeout)
    if downloaded is None:
        return None
    content, _, final_url = downloaded

    feed = parse_feed(content, url)
    if feed is not None:
        return feed

    for link in find_feed_links(content, final_url):
        feed = fetch_feed(link["url"], timeout=timeout)
        if feed is not None:
            return feed
    return None


def fetch_many(urls: Iterable[str], concurrency: int = 10) -> List[ParsedFeed]:
    """Fetch several feeds in parallel; failures are logged and skipped."""
    unique_urls = list(dict.fromkeys(urls))
    if not unique_urls:
        return []

    def process_feed(url: str) -> Optional[ParsedFeed]:
        try:
            return fetch_feed(url)
        except Exception:
            logger.exception("Failed to process feed %s", url)
            return None

    feeds: Dict[str, ParsedFeed] = {}
    with concurrent.futures.ThreadPoolExecutor(
        max_workers=max(1, min(concurrency, len(unique_urls)))
    ) as executor:
        future_to_url = {executor.submit(process_feed, url): url for url in unique_urls}
        for future in concurrent.futures.as_completed(future_to_url):
            feed = future.result()
            if feed is not None:
                feeds[future_to_url[future]] = feed

    # Keep the caller's ordering regardless of completion order.
    return [feeds[url] for url in unique_urls if url in feeds]


def entry_id(prefix: str, link: str) -> str:
    return f"{prefix}-{hashlib.sha1(link.encode('utf-8')).hexdigest()}"


def entry_to_item(entry: FeedEntry, prefix: str) -> Dict[str, Any]:
    """Flatten a feed entry into the mapping expected by ``Adapter.to_jf2``."""
    item: Dict[str, Any] = {
        "id": entry_id(prefix, entry.link),
        "url": entry.link,
        "name": entry.title if entry.title != entry.link else None,
    }
    if entry.published.year > 1:
        item["published"] = entry.published.isoformat()
    if entry.content_html or entry.summary:
        item["content"] = {
            key: value
            for key, value in (
                ("html", entry.content_html),
                ("text", entry.summary or _strip_html(entry.content_html or "")),
            )
            if value
        }
    if entry.author:
        item["author"] = entry.author
    if entry.photos:
        item["photo"] = list(entry.photos)
    return item
