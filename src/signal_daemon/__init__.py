"""Signal daemon - categorized news aggregation with cached AI insights."""

__version__ = "1.0.0"
