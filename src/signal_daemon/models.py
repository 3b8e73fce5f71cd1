"""Data models for Signal daemon."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List

from .dates import parse_timestamp


class Category(str, Enum):
    """Closed set of content domains articles and insights are partitioned by."""

    MORTGAGE = "mortgage"
    PRODUCT_MANAGEMENT = "product-management"
    COMPETITOR_INTEL = "competitor-intel"
    ALL = "all"  # Unfiltered - insights across every category

    @classmethod
    def parse(cls, value: str) -> "Category":
        """Parse a category name, rejecting anything outside the enumeration.

        Raises:
            ValueError: If value is not a known category
        """
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            valid = ", ".join(c.value for c in cls)
            raise ValueError(f"Unknown category '{value}'. Expected one of: {valid}")

    @classmethod
    def generated(cls) -> List["Category"]:
        """Categories the scheduler pre-generates insights for."""
        return [cls.MORTGAGE, cls.PRODUCT_MANAGEMENT, cls.COMPETITOR_INTEL]


class ThemeKind(str, Enum):
    """Where a theme came from."""

    GENERATED = "generated"  # Produced by the model or the fallback grouping
    COVERAGE = "synthesized-coverage"  # Catch-all commentary theme coverage repair appends to


@dataclass
class Article:
    """A fetched article. Identity is the link.

    Matches the articles table schema for easy storage/retrieval.
    """

    title: str
    link: str
    source: str
    category: str = ""
    summary: Optional[str] = None
    original_content: Optional[str] = None
    image_url: Optional[str] = None
    pub_date: Optional[datetime] = None
    saved_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        """Convert to dictionary using the API field names."""
        return {
            "title": self.title,
            "link": self.link,
            "source": self.source,
            "category": self.category,
            "summary": self.summary,
            "originalContent": self.original_content,
            "imageUrl": self.image_url,
            "pubDate": self.pub_date.isoformat() if self.pub_date else None,
            "savedAt": self.saved_at.isoformat() if self.saved_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Article":
        """Build an Article from a dict with snake_case or API (camelCase) keys."""
        return cls(
            title=data.get("title", "") or "",
            link=data.get("link", "") or "",
            source=data.get("source", "") or "",
            category=data.get("category", "") or "",
            summary=data.get("summary"),
            original_content=data.get("original_content", data.get("originalContent")),
            image_url=data.get("image_url", data.get("imageUrl")),
            pub_date=parse_timestamp(data.get("pub_date", data.get("pubDate"))),
            saved_at=parse_timestamp(data.get("saved_at", data.get("savedAt"))),
        )


@dataclass
class Insight:
    """One observation with the article summaries that support it.

    Articles are embedded by value since the source window moves on.
    """

    text: str
    articles: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"text": self.text, "articles": list(self.articles)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Insight":
        return cls(text=data.get("text", ""), articles=list(data.get("articles") or []))


@dataclass
class Theme:
    """A group of related insights plus follow-up actions."""

    name: str
    icon: str = "📰"
    insights: List[Insight] = field(default_factory=list)
    actions: List[Dict[str, Any]] = field(default_factory=list)
    kind: ThemeKind = ThemeKind.GENERATED

    def sources(self) -> set:
        """Distinct article sources referenced by this theme's insights."""
        return {
            article.get("source")
            for insight in self.insights
            for article in insight.articles
            if article and article.get("source")
        }

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "icon": self.icon,
            "insights": [insight.to_dict() for insight in self.insights],
            "actions": list(self.actions),
            "kind": self.kind.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Theme":
        try:
            kind = ThemeKind(data.get("kind", ThemeKind.GENERATED.value))
        except ValueError:
            kind = ThemeKind.GENERATED
        return cls(
            name=data.get("name", ""),
            icon=data.get("icon") or "📰",
            insights=[Insight.from_dict(i) for i in data.get("insights") or []],
            actions=list(data.get("actions") or []),
            kind=kind,
        )


@dataclass
class InsightSet:
    """Result of one insights generation for a category.

    Once archived, `id` is set and the record is never edited again; a newer
    generation for the same category supersedes it.
    """

    success: bool
    themes: List[Theme] = field(default_factory=list)
    recommended_actions: List[Dict[str, Any]] = field(default_factory=list)
    article_count: int = 0
    generated_at: Optional[datetime] = None
    category: Optional[str] = None
    date_range_start: Optional[datetime] = None
    date_range_end: Optional[datetime] = None
    fallback: bool = False
    message: Optional[str] = None
    id: Optional[str] = None  # Archive record id, None until archived

    def to_dict(self) -> dict:
        """Convert to the JSON shape served by the API."""
        data = {
            "id": self.id,
            "success": self.success,
            "category": self.category,
            "recommendedActions": list(self.recommended_actions),
            "themes": [theme.to_dict() for theme in self.themes],
            "articleCount": self.article_count,
            "dateRangeStart": self.date_range_start.isoformat()
            if self.date_range_start
            else None,
            "dateRangeEnd": self.date_range_end.isoformat()
            if self.date_range_end
            else None,
            "generatedAt": self.generated_at.isoformat()
            if self.generated_at
            else None,
            "fallback": self.fallback,
        }
        if self.message:
            data["message"] = self.message
        return data
