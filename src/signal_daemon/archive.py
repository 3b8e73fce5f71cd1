"""Read-only access to archived insight records."""

import logging
from datetime import tzinfo
from typing import List, Optional, Union
from zoneinfo import ZoneInfo

from .dates import DateLike, parse_local_date_bound
from .insight_cache import DEFAULT_TIMEZONE
from .models import Category, InsightSet
from .storage import DEFAULT_BROWSE_LIMIT, Storage

logger = logging.getLogger(__name__)


class InsightArchive:
    """Browse, fetch and search past insight generations.

    Never raises for storage problems; callers get an empty result instead.
    Bare dates in filters are calendar days in the reference timezone, the
    same days the insight cache treats as "today".
    """

    def __init__(self, storage: Storage, tz: Union[tzinfo, str] = DEFAULT_TIMEZONE):
        self.storage = storage
        self.tz = ZoneInfo(tz) if isinstance(tz, str) else tz

    def browse(
        self,
        category: Optional[str] = None,
        start_date: DateLike = None,
        end_date: DateLike = None,
        limit: int = DEFAULT_BROWSE_LIMIT,
    ) -> List[InsightSet]:
        """List archived records newest first.

        Args:
            category: Only records for this category (None for all)
            start_date: Earliest generation date (inclusive)
            end_date: Latest generation date (inclusive, whole day)
            limit: Maximum records returned

        Returns:
            Matching records ordered by generated_at descending

        Raises:
            ValueError: If category is not a known category
        """
        key = Category.parse(category).value if category else None
        return self.storage.list_insight_records(
            category=key,
            start=parse_local_date_bound(start_date, self.tz),
            end=parse_local_date_bound(end_date, self.tz, end_of_day=True),
            limit=limit,
        )

    def get_by_id(self, record_id: str) -> Optional[InsightSet]:
        """Fetch a single archived record, or None if absent."""
        if not record_id:
            return None
        return self.storage.get_insight_record(record_id)

    def search(
        self,
        keyword: str,
        category: Optional[str] = None,
        limit: int = DEFAULT_BROWSE_LIMIT,
    ) -> List[InsightSet]:
        """Case-insensitive substring search over archived insight content.

        Matches theme names, insight text, theme action text and recommended
        action text. A blank keyword matches nothing.

        Args:
            keyword: Text to look for
            category: Restrict to one category (None for all)
            limit: Maximum records returned

        Returns:
            Matching records ordered by generated_at descending
        """
        needle = (keyword or "").strip().casefold()
        if not needle:
            return []

        key = Category.parse(category).value if category else None
        records = self.storage.list_insight_records(category=key, limit=None)
        matches = [record for record in records if _matches(record, needle)]
        logger.debug(
            f"Archive search '{keyword}' matched {len(matches)} of {len(records)} records"
        )
        return matches[:limit]


def _matches(record: InsightSet, needle: str) -> bool:
    for theme in record.themes:
        if needle in (theme.name or "").casefold():
            return True
        for insight in theme.insights:
            if needle in (insight.text or "").casefold():
                return True
        for action in theme.actions:
            if needle in str(action.get("action", "")).casefold():
                return True
    for action in record.recommended_actions:
        if needle in str(action.get("action", "")).casefold():
            return True
    return False
