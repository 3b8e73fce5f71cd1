"""Repository pattern storage layer for Signal daemon."""

import json
import logging
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Dict, Any, Optional, Union, Tuple

from .database import get_db_connection
from .dates import DateLike, parse_date_bound, parse_timestamp
from .models import Article, Category, InsightSet, Theme

logger = logging.getLogger(__name__)

DEFAULT_MAX_SUMMARY_CHARS = 1000
DEFAULT_MAX_CONTENT_CHARS = 5000
DEFAULT_QUERY_LIMIT = 100
DEFAULT_BROWSE_LIMIT = 50

# Single fixed UTC format so stored timestamps compare correctly as strings
DB_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f+00:00"


def to_db_timestamp(value: datetime) -> str:
    """Format an aware (or UTC-naive) datetime for storage."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(DB_TIMESTAMP_FORMAT)


def _truncate(text: Optional[str], limit: int) -> Optional[str]:
    if text is None:
        return None
    return text if len(text) <= limit else text[:limit]


class Storage:
    """Repository for all database operations.

    Implements the repository pattern - all SQL stays in this class.
    Uses connection reuse pattern; the connection is guarded by a lock so one
    Storage can be shared by the API threadpool and the scheduler workers.
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        max_summary_chars: int = DEFAULT_MAX_SUMMARY_CHARS,
        max_content_chars: int = DEFAULT_MAX_CONTENT_CHARS,
        query_limit: int = DEFAULT_QUERY_LIMIT,
    ):
        """Initialize storage with database connection.

        Args:
            db_path: Optional custom database path for testing.
                     Defaults to $XDG_DATA_HOME/signal/signal.db
            max_summary_chars: Summaries are truncated to this length on upsert
            max_content_chars: Original content is truncated to this length
            query_limit: Maximum number of articles returned by a query
        """
        self.db_path = db_path
        self.max_summary_chars = max_summary_chars
        self.max_content_chars = max_content_chars
        self.query_limit = query_limit
        self._conn = None  # Lazy connection initialization
        self._lock = threading.RLock()
        # Test that we can create a connection
        test_conn = get_db_connection(self.db_path)
        test_conn.close()

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create database connection with lazy initialization."""
        if self._conn is None:
            self._conn = get_db_connection(self.db_path)
        return self._conn

    def close(self) -> None:
        """Close the database connection if open."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    def __enter__(self):
        """Context manager entry - returns self for use in with statements."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - ensures connection is closed."""
        self.close()

    # ------------------------------------------------------------------
    # Articles
    # ------------------------------------------------------------------

    def upsert_article(self, article: Union[Article, Dict[str, Any]]) -> Tuple[str, bool]:
        """Insert a new article or update the existing one with the same link.

        Re-fetching a link refreshes its mutable fields (title, summary,
        content, image, saved_at); link, source, category and pub_date are
        kept from the first save. Summary and content are size-capped.

        Args:
            article: Article to store, or dict using Article or API field names

        Returns:
            Tuple of (link, is_new)

        Raises:
            ValueError: If the article has no link
            sqlite3.Error: If database operation fails
        """
        if isinstance(article, dict):
            article = Article.from_dict(article)

        link = (article.link or "").strip()
        if not link:
            raise ValueError("Article link is required")

        now = datetime.now(timezone.utc)
        pub_date = parse_timestamp(article.pub_date) or now
        summary = _truncate(article.summary, self.max_summary_chars)
        content = _truncate(article.original_content, self.max_content_chars)

        with self._lock:
            try:
                cursor = self.conn.execute(
                    "SELECT link FROM articles WHERE link = ?", (link,)
                )
                existing = cursor.fetchone()

                if existing:
                    self.conn.execute(
                        """
                        UPDATE articles
                        SET title = ?, summary = ?, original_content = ?,
                            image_url = COALESCE(?, image_url), saved_at = ?,
                            updated_at = CURRENT_TIMESTAMP
                        WHERE link = ?
                        """,
                        (
                            article.title or "",
                            summary,
                            content,
                            article.image_url,
                            to_db_timestamp(now),
                            link,
                        ),
                    )
                    self.conn.commit()
                    return link, False

                self.conn.execute(
                    """
                    INSERT INTO articles (
                        link, title, source, category, summary,
                        original_content, image_url, pub_date, saved_at,
                        created_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?,
                            CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)
                    """,
                    (
                        link,
                        article.title or "",
                        article.source or "",
                        article.category or "",
                        summary,
                        content,
                        article.image_url,
                        to_db_timestamp(pub_date),
                        to_db_timestamp(now),
                    ),
                )
                self.conn.commit()
                return link, True

            except sqlite3.Error as e:
                self.conn.rollback()
                raise sqlite3.Error(f"Failed to upsert article {link}: {e}")

    def get_article(self, link: str) -> Optional[Article]:
        """Get a single article by link, or None if missing or unreadable."""
        try:
            with self._lock:
                cursor = self.conn.execute(
                    "SELECT * FROM articles WHERE link = ?", (link,)
                )
                row = cursor.fetchone()
            return self._row_to_article(row) if row else None
        except sqlite3.Error as e:
            logger.error(f"Failed to get article {link}: {e}")
            return None

    def query_articles(
        self,
        source: Optional[str] = None,
        category: Optional[str] = None,
        start_date: DateLike = None,
        end_date: DateLike = None,
        keyword: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Article]:
        """Get articles matching all supplied filters, newest first.

        Args:
            source: Exact source name
            category: Category value; "all" means unfiltered
            start_date: Inclusive lower bound on pub_date
            end_date: Inclusive upper bound on pub_date, widened to end of day
            keyword: Case-insensitive substring of title or summary
            limit: Result cap (defaults to the storage query limit)

        Returns:
            List of Article objects. Empty on database errors - callers such
            as insight generation degrade instead of aborting.
        """
        query = "SELECT * FROM articles WHERE 1 = 1"
        params: List[Any] = []

        if source:
            query += " AND source = ?"
            params.append(source)

        if category and category != Category.ALL.value:
            query += " AND category = ?"
            params.append(category)

        start = parse_date_bound(start_date)
        if start is not None:
            query += " AND pub_date >= ?"
            params.append(to_db_timestamp(start))

        end = parse_date_bound(end_date, end_of_day=True)
        if end is not None:
            query += " AND pub_date <= ?"
            params.append(to_db_timestamp(end))

        if keyword:
            pattern = f"%{self._escape_like(keyword.casefold())}%"
            query += (
                " AND (CASEFOLD(title) LIKE ? ESCAPE '\\'"
                " OR CASEFOLD(COALESCE(summary, '')) LIKE ? ESCAPE '\\')"
            )
            params.extend([pattern, pattern])

        query += " ORDER BY pub_date DESC LIMIT ?"
        params.append(limit or self.query_limit)

        try:
            with self._lock:
                cursor = self.conn.execute(query, tuple(params))
                rows = cursor.fetchall()
            return [self._row_to_article(row) for row in rows]
        except sqlite3.Error as e:
            logger.error(f"Failed to query articles: {e}")
            return []

    def count_articles(self) -> int:
        """Count stored articles (0 if the store is unreadable)."""
        try:
            with self._lock:
                cursor = self.conn.execute("SELECT COUNT(*) FROM articles")
                return cursor.fetchone()[0]
        except sqlite3.Error as e:
            logger.error(f"Failed to count articles: {e}")
            return 0

    def purge_articles_older_than(self, cutoff: datetime) -> int:
        """Delete articles published before cutoff.

        Args:
            cutoff: Articles with pub_date strictly before this are removed

        Returns:
            Number of articles removed

        Raises:
            sqlite3.Error: If database operation fails
        """
        with self._lock:
            try:
                cursor = self.conn.execute(
                    "DELETE FROM articles WHERE pub_date < ?",
                    (to_db_timestamp(cutoff),),
                )
                self.conn.commit()
                return cursor.rowcount
            except sqlite3.Error as e:
                self.conn.rollback()
                raise sqlite3.Error(f"Failed to purge old articles: {e}")

    # ------------------------------------------------------------------
    # Insight archive
    # ------------------------------------------------------------------

    def save_insight_record(self, insight_set: InsightSet) -> str:
        """Append an insight set to the archive.

        Args:
            insight_set: Generated insights; category and generated_at required

        Returns:
            The UUID of the new archive record

        Raises:
            ValueError: If category or generated_at is missing
            sqlite3.Error: If database operation fails
        """
        if not insight_set.category:
            raise ValueError("Insight set has no category")
        if insight_set.generated_at is None:
            raise ValueError("Insight set has no generated_at")

        record_id = str(uuid.uuid4())
        with self._lock:
            try:
                self.conn.execute(
                    """
                    INSERT INTO insight_archive (
                        id, category, recommended_actions, themes,
                        article_count, date_range_start, date_range_end,
                        generated_at, fallback
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record_id,
                        insight_set.category,
                        json.dumps(insight_set.recommended_actions, ensure_ascii=False),
                        json.dumps(
                            [theme.to_dict() for theme in insight_set.themes],
                            ensure_ascii=False,
                        ),
                        insight_set.article_count,
                        to_db_timestamp(insight_set.date_range_start)
                        if insight_set.date_range_start
                        else None,
                        to_db_timestamp(insight_set.date_range_end)
                        if insight_set.date_range_end
                        else None,
                        to_db_timestamp(insight_set.generated_at),
                        insight_set.fallback,
                    ),
                )
                self.conn.commit()
                return record_id
            except sqlite3.Error as e:
                self.conn.rollback()
                raise sqlite3.Error(f"Failed to archive insights: {e}")

    def get_latest_insight_record(
        self, category: str, since: Optional[datetime] = None
    ) -> Optional[InsightSet]:
        """Get the most recent archive record for a category.

        Args:
            category: Category value
            since: Only consider records generated at or after this instant

        Returns:
            Newest matching record, or None if there is none or the read fails
        """
        query = "SELECT * FROM insight_archive WHERE category = ?"
        params: List[Any] = [category]
        if since is not None:
            query += " AND generated_at >= ?"
            params.append(to_db_timestamp(since))
        query += " ORDER BY generated_at DESC LIMIT 1"

        try:
            with self._lock:
                cursor = self.conn.execute(query, tuple(params))
                row = cursor.fetchone()
            return self._row_to_insight_set(row) if row else None
        except sqlite3.Error as e:
            logger.error(f"Failed to get latest insights for {category}: {e}")
            return None

    def get_insight_record(self, record_id: str) -> Optional[InsightSet]:
        """Get one archive record by id, or None."""
        try:
            with self._lock:
                cursor = self.conn.execute(
                    "SELECT * FROM insight_archive WHERE id = ?", (record_id,)
                )
                row = cursor.fetchone()
            return self._row_to_insight_set(row) if row else None
        except sqlite3.Error as e:
            logger.error(f"Failed to get insight record {record_id}: {e}")
            return None

    def list_insight_records(
        self,
        category: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = DEFAULT_BROWSE_LIMIT,
    ) -> List[InsightSet]:
        """List archive records newest first.

        Args:
            category: Optional category filter
            start: Inclusive lower bound on generated_at
            end: Inclusive upper bound on generated_at
            limit: Maximum records, or None for all

        Returns:
            List of records (empty if none match or the read fails)
        """
        query = "SELECT * FROM insight_archive WHERE 1 = 1"
        params: List[Any] = []

        if category:
            query += " AND category = ?"
            params.append(category)
        if start is not None:
            query += " AND generated_at >= ?"
            params.append(to_db_timestamp(start))
        if end is not None:
            query += " AND generated_at <= ?"
            params.append(to_db_timestamp(end))

        query += " ORDER BY generated_at DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        try:
            with self._lock:
                cursor = self.conn.execute(query, tuple(params))
                rows = cursor.fetchall()
            return [self._row_to_insight_set(row) for row in rows]
        except sqlite3.Error as e:
            logger.error(f"Failed to list insight records: {e}")
            return []

    def count_insight_records(self, category: Optional[str] = None) -> int:
        """Count archive records, optionally for one category."""
        try:
            with self._lock:
                if category:
                    cursor = self.conn.execute(
                        "SELECT COUNT(*) FROM insight_archive WHERE category = ?",
                        (category,),
                    )
                else:
                    cursor = self.conn.execute("SELECT COUNT(*) FROM insight_archive")
                return cursor.fetchone()[0]
        except sqlite3.Error as e:
            logger.error(f"Failed to count insight records: {e}")
            return 0

    # ------------------------------------------------------------------
    # Row conversion helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _escape_like(text: str) -> str:
        return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")

    @staticmethod
    def _row_to_article(row: sqlite3.Row) -> Article:
        return Article(
            title=row["title"],
            link=row["link"],
            source=row["source"],
            category=row["category"],
            summary=row["summary"],
            original_content=row["original_content"],
            image_url=row["image_url"],
            pub_date=parse_timestamp(row["pub_date"]),
            saved_at=parse_timestamp(row["saved_at"]),
        )

    @staticmethod
    def _row_to_insight_set(row: sqlite3.Row) -> InsightSet:
        try:
            themes = json.loads(row["themes"]) if row["themes"] else []
        except json.JSONDecodeError:
            logger.warning(f"Corrupt themes JSON in insight record {row['id']}")
            themes = []
        try:
            actions = (
                json.loads(row["recommended_actions"])
                if row["recommended_actions"]
                else []
            )
        except json.JSONDecodeError:
            actions = []

        return InsightSet(
            id=row["id"],
            success=True,
            category=row["category"],
            recommended_actions=actions,
            themes=[Theme.from_dict(theme) for theme in themes],
            article_count=row["article_count"],
            date_range_start=parse_timestamp(row["date_range_start"]),
            date_range_end=parse_timestamp(row["date_range_end"]),
            generated_at=parse_timestamp(row["generated_at"]),
            fallback=bool(row["fallback"]),
        )
