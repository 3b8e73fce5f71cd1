"""Pydantic models for REST API responses."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .models import Article


class APIResponse(BaseModel):
    """Standard API response format."""

    success: bool = Field(..., description="Whether the operation succeeded")
    message: str = Field(..., description="Human-readable message")
    data: Optional[Dict[str, Any]] = Field(None, description="Response data if any")


class SourceResponse(BaseModel):
    """A configured feed source."""

    name: str = Field(..., description="Display name, also the article source")
    category: str = Field(..., description="Category articles are filed under")
    rss: str = Field(..., description="Feed URL")


class ArticleResponse(BaseModel):
    """An article as served by the API (camelCase field names)."""

    title: str
    link: str
    source: str
    category: str = ""
    summary: Optional[str] = None
    originalContent: Optional[str] = None
    imageUrl: Optional[str] = None
    pubDate: Optional[datetime] = None
    savedAt: Optional[datetime] = None

    @classmethod
    def from_article(cls, article: Article) -> "ArticleResponse":
        return cls(
            title=article.title,
            link=article.link,
            source=article.source,
            category=article.category,
            summary=article.summary,
            originalContent=article.original_content,
            imageUrl=article.image_url,
            pubDate=article.pub_date,
            savedAt=article.saved_at,
        )


class ArticleListResponse(BaseModel):
    """Articles matching a query plus the filters that produced them."""

    items: List[ArticleResponse] = Field(..., description="Matching articles")
    total: int = Field(..., description="Number of articles returned")
    filters_applied: Dict[str, Any] = Field(default_factory=dict)
