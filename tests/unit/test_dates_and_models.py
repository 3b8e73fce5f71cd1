"""Unit tests for timestamp helpers and model serialization."""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from signal_daemon.dates import (
    parse_date_bound,
    parse_local_date_bound,
    parse_timestamp,
    same_day,
    start_of_day,
)
from signal_daemon.models import Article, Category, InsightSet, Theme, ThemeKind

NEW_YORK = ZoneInfo("America/New_York")


@pytest.mark.parametrize(
    "value",
    [
        "2025-03-12T15:00:00Z",
        "2025-03-12T11:00:00-04:00",
        "2025-03-12 15:00:00",
        "Wed, 12 Mar 2025 15:00:00 GMT",
        datetime(2025, 3, 12, 15, 0),
    ],
)
def test_parse_timestamp_formats(value) -> None:
    """Test ISO, RFC 822 and naive inputs all normalize to aware UTC."""
    assert parse_timestamp(value) == datetime(2025, 3, 12, 15, 0, tzinfo=timezone.utc)


def test_parse_timestamp_empty_and_garbage() -> None:
    assert parse_timestamp(None) is None
    assert parse_timestamp("") is None
    assert parse_timestamp("last tuesday") is None


def test_end_bound_covers_whole_day() -> None:
    """Test a date-only end bound includes the entire day."""
    end = parse_date_bound("2025-01-31", end_of_day=True)

    assert end.date() == date(2025, 1, 31)
    assert end > datetime(2025, 1, 31, 23, 59, 59, tzinfo=timezone.utc)


def test_day_boundary_uses_reference_timezone() -> None:
    """
    INVARIANT: "Today" is the calendar day in the reference timezone
    BREAKS: Insights expire at UTC midnight (8 PM Eastern)
    """
    # 02:00 UTC on the 13th is still the 12th in New York
    now = datetime(2025, 3, 13, 2, 0, tzinfo=timezone.utc)
    morning = datetime(2025, 3, 12, 14, 0, tzinfo=timezone.utc)

    assert same_day(morning, now, NEW_YORK)
    assert start_of_day(now, NEW_YORK) == datetime(2025, 3, 12, 4, 0, tzinfo=timezone.utc)
    assert not same_day(morning, now, timezone.utc)


def test_local_date_bounds() -> None:
    """Test bare dates become local-day bounds and timestamps keep their instant."""
    start = parse_local_date_bound("2025-03-12", NEW_YORK)
    end = parse_local_date_bound(date(2025, 3, 12), NEW_YORK, end_of_day=True)
    instant = parse_local_date_bound("2025-03-12T15:00:00Z", NEW_YORK)

    assert start == datetime(2025, 3, 12, 4, 0, tzinfo=timezone.utc)
    assert end.astimezone(NEW_YORK).date() == date(2025, 3, 12)
    assert end > datetime(2025, 3, 13, 3, 59, 59, tzinfo=timezone.utc)
    assert instant == datetime(2025, 3, 12, 15, 0, tzinfo=timezone.utc)
    assert parse_local_date_bound("", NEW_YORK) is None
    assert parse_local_date_bound("soon", NEW_YORK) is None


def test_category_parse() -> None:
    assert Category.parse("Mortgage") == Category.MORTGAGE
    assert Category.parse(" product-management ") == Category.PRODUCT_MANAGEMENT
    assert Category.generated() == [
        Category.MORTGAGE,
        Category.PRODUCT_MANAGEMENT,
        Category.COMPETITOR_INTEL,
    ]
    with pytest.raises(ValueError, match="Unknown category"):
        Category.parse("sports")


def test_article_from_camel_case_dict() -> None:
    """Test API-shaped dicts round into Articles."""
    article = Article.from_dict(
        {
            "title": "Rates fall",
            "link": "https://example.com/a",
            "source": "HousingWire",
            "category": "mortgage",
            "originalContent": "body",
            "imageUrl": "https://example.com/a.jpg",
            "pubDate": "2025-03-12T15:00:00Z",
        }
    )

    assert article.original_content == "body"
    assert article.image_url == "https://example.com/a.jpg"
    assert article.pub_date == datetime(2025, 3, 12, 15, 0, tzinfo=timezone.utc)
    assert article.to_dict()["pubDate"] == "2025-03-12T15:00:00+00:00"


def test_insight_set_api_shape() -> None:
    """Test the served JSON uses the camelCase field names."""
    insight_set = InsightSet(
        success=True,
        themes=[Theme(name="Commentary", kind=ThemeKind.COVERAGE)],
        article_count=3,
        generated_at=datetime(2025, 3, 12, 15, 0, tzinfo=timezone.utc),
        category="mortgage",
    )

    data = insight_set.to_dict()

    assert data["articleCount"] == 3
    assert data["recommendedActions"] == []
    assert data["generatedAt"] == "2025-03-12T15:00:00+00:00"
    assert data["themes"][0]["kind"] == "synthesized-coverage"
    assert data["id"] is None
    assert "message" not in data
    assert Theme.from_dict(data["themes"][0]).kind == ThemeKind.COVERAGE
