"""Integration tests for SignalOrchestrator with a fake fetcher."""

from datetime import datetime, timedelta, timezone
from io import StringIO

import pytest
from rich.console import Console

from signal_daemon.insight_cache import InsightCache
from signal_daemon.insights import InsightGenerator
from signal_daemon.orchestrator import SignalOrchestrator
from signal_daemon.storage import Storage

from conftest import FakeLLMClient


class FakeFetcher:
    def __init__(self, articles):
        self.articles = articles
        self.calls = 0

    def fetch_all(self):
        self.calls += 1
        return list(self.articles)

    def list_sources(self):
        return []


@pytest.fixture
def quiet_console() -> Console:
    return Console(file=StringIO())


def build(storage: Storage, clock, articles, llm, console) -> SignalOrchestrator:
    cache = InsightCache(storage, InsightGenerator(llm_client=llm, clock=clock), clock=clock)
    return SignalOrchestrator(storage, FakeFetcher(articles), cache, console=console)


def test_run_once_stores_and_generates_per_category(
    storage, clock, make_article, quiet_console
) -> None:
    """Test one cycle upserts articles and generates each populated category."""
    articles = [
        make_article(source="HousingWire", category="mortgage"),
        make_article(source="Mind the Product", category="product-management"),
    ]
    llm = FakeLLMClient()
    orchestrator = build(storage, clock, articles, llm, quiet_console)

    stats = orchestrator.run_once()

    assert stats["fetched"] == 2
    assert stats["new"] == 2
    assert stats["updated"] == 0
    assert stats["categories"]["mortgage"]["status"] == "generated"
    assert stats["categories"]["product-management"]["status"] == "generated"
    assert stats["categories"]["competitor-intel"]["status"] == "skipped"
    assert len(llm.calls) == 2
    assert storage.count_insight_records() == 2
    assert orchestrator.last_run is stats


def test_second_run_serves_cached_insights(
    storage, clock, make_article, quiet_console
) -> None:
    """Test a second cycle on the same day reuses today's insights."""
    articles = [make_article(category="mortgage")]
    llm = FakeLLMClient()
    orchestrator = build(storage, clock, articles, llm, quiet_console)

    orchestrator.run_once()
    stats = orchestrator.run_once()

    assert stats["new"] == 0
    assert stats["updated"] == 1
    assert stats["categories"]["mortgage"]["status"] == "cached"
    assert len(llm.calls) == 1


def test_forced_run_regenerates(storage, clock, make_article, quiet_console) -> None:
    articles = [make_article(category="mortgage")]
    llm = FakeLLMClient()
    orchestrator = build(storage, clock, articles, llm, quiet_console)

    orchestrator.run_once()
    stats = orchestrator.run_once(force=True)

    assert stats["categories"]["mortgage"]["status"] == "generated"
    assert len(llm.calls) == 2


def test_model_failure_still_completes_cycle(
    storage, clock, make_article, quiet_console
) -> None:
    """Test fallback insights are produced when the model errors."""
    articles = [make_article(category="competitor-intel")]
    llm = FakeLLMClient(error=RuntimeError("upstream down"))
    orchestrator = build(storage, clock, articles, llm, quiet_console)

    stats = orchestrator.run_once()

    result = stats["categories"]["competitor-intel"]
    assert result["status"] == "generated"
    assert result["fallback"] is True
    assert storage.get_latest_insight_record("competitor-intel").fallback is True


def test_run_cleanup_purges_old_articles(
    storage, clock, make_article, quiet_console
) -> None:
    now = datetime.now(timezone.utc)
    storage.upsert_article(make_article(pub_date=now - timedelta(days=120)))
    storage.upsert_article(make_article(pub_date=now - timedelta(days=10)))
    orchestrator = build(storage, clock, [], None, quiet_console)

    removed = orchestrator.run_cleanup(retention_days=90)

    assert removed == 1
    assert storage.count_articles() == 1
