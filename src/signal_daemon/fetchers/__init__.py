"""Content fetchers for different source types."""

from .rss import RSSFetcher

__all__ = ["RSSFetcher"]
