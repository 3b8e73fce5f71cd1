"""Two-tier insight cache: process memory backed by the persistent archive."""

import logging
import sqlite3
import threading
from dataclasses import replace
from datetime import datetime, timedelta, tzinfo
from typing import Callable, Dict, Optional, Sequence, Tuple, Union
from zoneinfo import ZoneInfo

from .dates import parse_timestamp, same_day, start_of_day
from .insights import ArticleInput, InsightGenerator, utc_now
from .models import Article, Category, InsightSet
from .observability import log as obs_log
from .storage import Storage

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "America/New_York"
DEFAULT_DEDUP_WINDOW = timedelta(minutes=60)


class InsightCache:
    """Serves today's insights per category, generating on a miss.

    Lookup order is memory, then the archive (records generated today in the
    reference timezone), then the generator. Successful generations go to
    both tiers; the archive write is skipped when the category's newest
    record is younger than the dedup window.

    Concurrent misses for the same category are collapsed by a per-category
    lock, so only one of them calls the model. Other categories never wait.
    """

    def __init__(
        self,
        storage: Storage,
        generator: InsightGenerator,
        tz: Union[tzinfo, str] = DEFAULT_TIMEZONE,
        dedup_window: timedelta = DEFAULT_DEDUP_WINDOW,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the cache.

        Args:
            storage: Storage holding the insight archive
            generator: Generator invoked on cache misses
            tz: Reference timezone for "today" (tzinfo or IANA name)
            dedup_window: Minimum age of the newest archive record before
                          another generation for the category is archived
            clock: Returns the current aware datetime (injectable for tests)
        """
        self.storage = storage
        self.generator = generator
        self.tz = ZoneInfo(tz) if isinstance(tz, str) else tz
        self.dedup_window = dedup_window
        self.clock = clock or utc_now

        self._memory: Dict[str, InsightSet] = {}
        self._memory_lock = threading.Lock()
        self._archive_lock = threading.Lock()
        self._inflight: Dict[str, threading.Lock] = {}
        self._inflight_guard = threading.Lock()

    def get_todays_insights(
        self, category: Union[Category, str]
    ) -> Optional[InsightSet]:
        """Get insights generated today for a category without generating.

        Args:
            category: Category value (must be in the closed enumeration)

        Returns:
            Today's insight set, or None if neither tier has one

        Raises:
            ValueError: If category is not a known category
        """
        key = Category.parse(category).value
        insight_set, tier = self._lookup(key)
        obs_log("insights.cache", category=key, outcome=tier or "miss")
        return insight_set

    def save_insights(
        self,
        insight_set: InsightSet,
        category: Union[Category, str],
        date_range_start: Optional[datetime] = None,
        date_range_end: Optional[datetime] = None,
    ) -> InsightSet:
        """Store a generated insight set in memory and, unless deduped, the archive.

        Archive failures are logged and the set is still cached and returned.

        Args:
            insight_set: Successfully generated insights
            category: Category the insights were generated for
            date_range_start: Oldest pub_date among the input articles
            date_range_end: Newest pub_date among the input articles

        Returns:
            The cached insight set; its id is set only if it was archived
        """
        key = Category.parse(category).value
        if not insight_set.success:
            logger.debug(f"Not caching unsuccessful insights for {key}")
            return insight_set

        now = self.clock()
        record = replace(
            insight_set,
            category=key,
            date_range_start=date_range_start or insight_set.date_range_start,
            date_range_end=date_range_end or insight_set.date_range_end,
            generated_at=insight_set.generated_at or now,
            id=None,
        )

        with self._archive_lock:
            latest = self.storage.get_latest_insight_record(key)
            if (
                latest is not None
                and latest.generated_at is not None
                and now - latest.generated_at < self.dedup_window
            ):
                logger.info(
                    f"Insights for {key} archived at {latest.generated_at.isoformat()}, "
                    f"skipping archive (within {self.dedup_window})"
                )
                obs_log("insights.cache", category=key, outcome="dedup")
            else:
                try:
                    record.id = self.storage.save_insight_record(record)
                    obs_log(
                        "insights.cache",
                        category=key,
                        outcome="archived",
                        record_id=record.id,
                    )
                except (sqlite3.Error, ValueError) as e:
                    logger.error(f"Failed to archive insights for {key}: {e}")
                    obs_log(
                        "insights.cache",
                        category=key,
                        outcome="archive-error",
                        error=str(e),
                    )

        with self._memory_lock:
            self._memory[key] = record

        return record

    def clear_insights(self) -> None:
        """Drop the in-memory tier. The archive is untouched."""
        with self._memory_lock:
            count = len(self._memory)
            self._memory.clear()
        logger.info(f"Cleared {count} cached insight set(s) from memory")

    def get_or_generate(
        self,
        category: Union[Category, str],
        articles: Sequence[ArticleInput],
        force: bool = False,
    ) -> InsightSet:
        """Return today's insights for a category, generating them on a miss.

        Args:
            category: Category value (must be in the closed enumeration)
            articles: Articles to generate from when nothing fresh is cached
            force: Skip the freshness check and always generate

        Returns:
            Cached or newly generated insight set (never raises for model or
            archive failures)

        Raises:
            ValueError: If category is not a known category
        """
        key = Category.parse(category).value

        if not force:
            cached = self.get_todays_insights(key)
            if cached is not None:
                return cached

        with self._inflight_lock(key):
            if not force:
                # Another request may have generated while we waited
                cached, _ = self._lookup(key)
                if cached is not None:
                    return cached

            insight_set = self.generator.generate(articles, category=key)
            if not insight_set.success:
                return insight_set

            start, end = self._date_range(articles)
            return self.save_insights(insight_set, key, start, end)

    def _lookup(self, key: str) -> Tuple[Optional[InsightSet], Optional[str]]:
        """Find today's insights, returning the set and the tier that had it."""
        now = self.clock()

        with self._memory_lock:
            cached = self._memory.get(key)
        if (
            cached is not None
            and cached.generated_at is not None
            and same_day(cached.generated_at, now, self.tz)
        ):
            return cached, "hit-memory"

        record = self.storage.get_latest_insight_record(
            key, since=start_of_day(now, self.tz)
        )
        if record is not None:
            with self._memory_lock:
                self._memory[key] = record
            return record, "hit-archive"

        return None, None

    def _inflight_lock(self, key: str) -> threading.Lock:
        with self._inflight_guard:
            return self._inflight.setdefault(key, threading.Lock())

    @staticmethod
    def _date_range(
        articles: Sequence[ArticleInput],
    ) -> Tuple[Optional[datetime], Optional[datetime]]:
        dates = []
        for item in articles or []:
            if isinstance(item, Article):
                pub_date = parse_timestamp(item.pub_date)
            else:
                pub_date = parse_timestamp(item.get("pub_date", item.get("pubDate")))
            if pub_date is not None:
                dates.append(pub_date)
        if not dates:
            return None, None
        return min(dates), max(dates)
