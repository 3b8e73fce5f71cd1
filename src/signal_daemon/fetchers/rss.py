"""RSS content fetcher for the configured news sources."""

import html
import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import feedparser
import httpx

from ..config import Config
from ..models import Article
from ..observability import log as obs_log

logger = logging.getLogger(__name__)

SUMMARY_CHARS = 300
ORIGINAL_CONTENT_CHARS = 500

TAG_RE = re.compile(r"<[^>]*>")
YOUTUBE_ID_PATTERNS = [
    re.compile(
        r"(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/shorts/)([a-zA-Z0-9_-]{11})"
    ),
    re.compile(r"youtube\.com/v/([a-zA-Z0-9_-]{11})"),
]
YTIMG_RE = re.compile(r"https?://i[1-4]\.ytimg\.com/vi/([a-zA-Z0-9_-]+)/([^/]+\.jpg)")


def strip_html(text: Optional[str]) -> str:
    """Remove tags and decode HTML entities."""
    return html.unescape(TAG_RE.sub("", text or ""))


def youtube_video_id(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    for pattern in YOUTUBE_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def normalize_youtube_thumbnail(url: Optional[str]) -> Optional[str]:
    """Rewrite i1-i4.ytimg.com thumbnail hosts to img.youtube.com."""
    if not url:
        return url
    match = YTIMG_RE.match(url)
    if match:
        return f"https://img.youtube.com/vi/{match.group(1)}/{match.group(2)}"
    return url


class RSSFetcher:
    """Fetches the configured RSS sources and converts items to Articles.

    Sources are fetched in parallel (bounded by fetch_concurrency). Each source
    is retried with exponential backoff; a source that keeps failing
    contributes no articles but never aborts the batch.
    """

    def __init__(
        self,
        config: Config,
        client: Optional[httpx.Client] = None,
        sleep=time.sleep,
    ):
        """Initialize the RSS fetcher.

        Args:
            config: Config with sources and fetch settings
            client: HTTP client (created from config.fetch_timeout if None)
            sleep: Delay function used between retries (injectable for tests)
        """
        self.config = config
        self.max_items = config.max_items_per_feed
        self.max_retries = config.max_retries
        self.concurrency = config.fetch_concurrency
        self.client = client or httpx.Client(
            timeout=config.fetch_timeout,
            follow_redirects=True,
            headers={"User-Agent": "signal-daemon/1.0"},
        )
        self.sleep = sleep

    def list_sources(self) -> List[Dict[str, str]]:
        """Configured sources as {name, category, rss} dicts."""
        return [
            {
                "name": source.get("name", ""),
                "category": source.get("category", ""),
                "rss": source.get("rss", ""),
            }
            for source in self.config.sources
        ]

    def fetch_all(self) -> List[Article]:
        """Fetch every configured source.

        Returns:
            Articles from all sources that could be fetched, in source order
        """
        sources = self.list_sources()
        if not sources:
            logger.info("No sources configured")
            return []

        start_time = time.time()
        logger.info(
            f"Fetching from {len(sources)} sources (max {self.concurrency} concurrent)"
        )

        with ThreadPoolExecutor(max_workers=self.concurrency) as executor:
            results = list(executor.map(self.fetch_source, sources))

        articles = [article for batch in results for article in batch]
        logger.info(
            f"Fetched {len(articles)} articles in {time.time() - start_time:.1f}s"
        )
        return articles

    def fetch_source(self, source: Dict[str, str]) -> List[Article]:
        """Fetch one source with retries.

        Returns:
            Parsed articles, or an empty list if every attempt failed
        """
        name = source.get("name", "")
        url = source.get("rss", "")
        start_time = time.time()
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_retries + 1):
            try:
                suffix = f" (attempt {attempt}/{self.max_retries})" if attempt > 1 else ""
                logger.info(f"Fetching RSS from {name}{suffix}")

                response = self.client.get(url)
                response.raise_for_status()
                feed = feedparser.parse(response.content)

                if feed.bozo and not feed.entries:
                    raise ValueError(f"Unparseable feed: {feed.bozo_exception}")
                if feed.bozo:
                    logger.warning(f"Feed parsing issues for {url}: {feed.bozo_exception}")

                articles = self._parse_entries(feed.entries, source)

                obs_log(
                    "fetcher.complete",
                    fetcher_type="rss",
                    source=name,
                    source_url=url,
                    items_count=len(articles),
                    attempts=attempt,
                    duration_ms=int((time.time() - start_time) * 1000),
                    status="success",
                )
                return articles

            except (httpx.HTTPError, ValueError) as e:
                last_error = e
                logger.error(
                    f"Error fetching RSS from {name} (attempt {attempt}/{self.max_retries}): {e}"
                )
                if attempt < self.max_retries:
                    delay = 2 ** (attempt - 1)
                    logger.info(f"Retrying {name} in {delay}s")
                    self.sleep(delay)

        logger.error(f"Failed to fetch RSS from {name} after {self.max_retries} attempts")
        obs_log(
            "fetcher.error",
            fetcher_type="rss",
            source=name,
            source_url=url,
            error=str(last_error),
            attempts=self.max_retries,
            duration_ms=int((time.time() - start_time) * 1000),
            status="error",
        )
        return []

    def _parse_entries(
        self, entries: List[Any], source: Dict[str, str]
    ) -> List[Article]:
        articles = []
        for entry in entries[: self.max_items]:
            try:
                link = entry.get("link", "")
                if not link:
                    logger.warning(
                        f"Skipping entry without link: {entry.get('title', 'Untitled')}"
                    )
                    continue

                clean_content = strip_html(self._entry_content(entry))
                now = datetime.now(timezone.utc)

                articles.append(
                    Article(
                        title=html.unescape(entry.get("title", "") or ""),
                        link=link,
                        source=source.get("name", ""),
                        category=source.get("category", ""),
                        summary=clean_content[:SUMMARY_CHARS].strip() + "...",
                        original_content=clean_content[:ORIGINAL_CONTENT_CHARS],
                        image_url=self._extract_image_url(entry),
                        pub_date=self._parse_published_date(entry) or now,
                        saved_at=now,
                    )
                )
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.error(
                    f"Error processing entry '{entry.get('title', 'Unknown')}': {e}"
                )
        return articles

    @staticmethod
    def _entry_content(entry: Any) -> str:
        """Full content when the feed has it, else the description/summary."""
        content = entry.get("content")
        if isinstance(content, list) and content:
            value = content[0].get("value", "")
            if value:
                return value
        return entry.get("summary", "") or entry.get("description", "") or ""

    @staticmethod
    def _parse_published_date(entry: Any) -> Optional[datetime]:
        for key in ("published_parsed", "updated_parsed"):
            parsed = entry.get(key)
            if parsed:
                try:
                    return datetime(*parsed[:6], tzinfo=timezone.utc)
                except (TypeError, ValueError) as e:
                    logger.debug(f"Could not parse {key}: {e}")
        return None

    @staticmethod
    def _extract_image_url(entry: Any) -> Optional[str]:
        """Image from media thumbnails, media content, enclosures or itunes art.

        Falls back to the YouTube thumbnail for video links.
        """
        image_url = None

        for key in ("media_thumbnail", "media_content"):
            media = entry.get(key)
            if isinstance(media, list) and media and media[0].get("url"):
                image_url = media[0]["url"]
                break

        if not image_url:
            for enclosure in entry.get("enclosures", []) or []:
                href = enclosure.get("href") or enclosure.get("url")
                if href:
                    image_url = href
                    break

        if not image_url:
            image = entry.get("image")
            if isinstance(image, dict) and image.get("href"):
                image_url = image["href"]
            elif isinstance(image, str) and image:
                image_url = image

        if not image_url:
            video_id = youtube_video_id(entry.get("link"))
            if video_id:
                image_url = f"https://img.youtube.com/vi/{video_id}/hqdefault.jpg"

        return normalize_youtube_thumbnail(image_url)

    def close(self) -> None:
        self.client.close()
