"""Daemon orchestration logic, separated from entry point for testability."""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from rich.console import Console

from .insight_cache import InsightCache
from .models import Category
from .observability import get_logger as get_obs_logger
from .observability import log as obs_log
from .storage import Storage

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 90
OBSERVABILITY_RETENTION_DAYS = 30


class SignalOrchestrator:
    """Orchestrates the fetch-store-generate pipeline with injected dependencies."""

    def __init__(
        self,
        storage: Storage,
        fetcher,
        insight_cache: InsightCache,
        console: Optional[Console] = None,
    ):
        """Initialize orchestrator with dependencies.

        Args:
            storage: Storage instance for database operations
            fetcher: Fetcher with fetch_all() returning Articles
            insight_cache: Cache used to serve or generate insights
            console: Optional Rich console for output
        """
        self.storage = storage
        self.fetcher = fetcher
        self.insight_cache = insight_cache
        self.console = console or Console()
        self.last_run: Optional[Dict[str, Any]] = None

    def fetch_and_store(self) -> Dict[str, Any]:
        """Fetch all feeds and upsert every article.

        Returns:
            Dict with stats: fetched, new, updated, errors
        """
        stats: Dict[str, Any] = {"fetched": 0, "new": 0, "updated": 0, "errors": []}

        articles = self.fetcher.fetch_all()
        stats["fetched"] = len(articles)
        self.console.print(f"📰 Fetched {len(articles)} articles")

        for article in articles:
            try:
                _, is_new = self.storage.upsert_article(article)
                stats["new" if is_new else "updated"] += 1
            except Exception as e:
                error_msg = f"Failed to store '{article.title}': {e}"
                self.console.print(f"  [red]{error_msg}[/red]")
                stats["errors"].append(error_msg)

        self.console.print(
            f"💾 Stored articles: {stats['new']} new, {stats['updated']} updated"
        )
        return stats

    def generate_category_insights(
        self, category: Category, force: bool = False
    ) -> Dict[str, Any]:
        """Serve or generate insights for one category from its stored articles.

        Returns:
            Dict with category, status (generated, cached, skipped, failed),
            fallback flag, article count and error if any
        """
        result: Dict[str, Any] = {"category": category.value, "status": "skipped"}

        articles = self.storage.query_articles(category=category.value)
        result["articles"] = len(articles)
        if not articles:
            self.console.print(f"  ⏭️  No articles for {category.value}, skipping")
            return result

        try:
            before = self.storage.count_insight_records(category.value)
            insight_set = self.insight_cache.get_or_generate(
                category, articles, force=force
            )
            archived = self.storage.count_insight_records(category.value) > before
        except Exception as e:
            logger.error(f"Insights failed for {category.value}: {e}", exc_info=True)
            result.update(status="failed", error=str(e))
            return result

        if not insight_set.success:
            result.update(status="failed", error=insight_set.message)
        elif archived or force:
            result["status"] = "generated"
        else:
            result["status"] = "cached"
        result["fallback"] = insight_set.fallback

        self.console.print(
            f"  🧠 {category.value}: {result['status']}"
            f"{' (fallback)' if insight_set.fallback else ''}"
            f" from {len(articles)} articles"
        )
        return result

    def run_once(self, force: bool = False) -> Dict[str, Any]:
        """Run one fetch-store-generate cycle.

        Insights for the three categories are produced concurrently; each
        category only waits on its own generation.

        Args:
            force: Regenerate insights even if today's are cached

        Returns:
            Dict with stats: fetched, new, updated, categories, errors,
            elapsed_seconds
        """
        start_time = time.time()
        self.console.print("📡 Fetching feeds...")

        stats = self.fetch_and_store()

        categories = Category.generated()
        self.console.print(
            f"🧠 Generating insights for {len(categories)} categories (parallel)..."
        )
        with ThreadPoolExecutor(max_workers=len(categories)) as executor:
            results = list(
                executor.map(
                    lambda category: self.generate_category_insights(category, force),
                    categories,
                )
            )

        stats["categories"] = {result["category"]: result for result in results}
        stats["errors"].extend(
            f"{result['category']}: {result['error']}"
            for result in results
            if result.get("error")
        )
        stats["elapsed_seconds"] = round(time.time() - start_time, 1)
        stats["completed_at"] = datetime.now(timezone.utc).isoformat()

        self.console.print("\n[bold green]✅ Cycle complete[/bold green]")
        self.console.print(f"📊 Articles fetched: {stats['fetched']}")
        self.console.print(f"🆕 New articles: {stats['new']}")
        self.console.print(f"🔄 Updated articles: {stats['updated']}")
        self.console.print(f"⏱️  Elapsed: {stats['elapsed_seconds']}s")
        if stats["errors"]:
            self.console.print(f"[yellow]⚠️  {len(stats['errors'])} error(s)[/yellow]")

        self.last_run = stats
        return stats

    def run_cleanup(self, retention_days: int = DEFAULT_RETENTION_DAYS) -> int:
        """Purge articles older than the retention window.

        Args:
            retention_days: Articles published before now minus this many
                            days are removed

        Returns:
            Number of articles removed

        Raises:
            sqlite3.Error: If the purge fails
        """
        cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
        removed = self.storage.purge_articles_older_than(cutoff)

        obs_log(
            "articles.purge",
            cutoff=cutoff.isoformat(),
            retention_days=retention_days,
            removed=removed,
        )
        self.console.print(f"🧹 Removed {removed} articles older than {retention_days} days")

        deleted_files = get_obs_logger().cleanup_old_files(OBSERVABILITY_RETENTION_DAYS)
        if deleted_files:
            logger.info(f"Removed {deleted_files} old observability log file(s)")

        return removed
