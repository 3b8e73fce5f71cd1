"""Integration tests for the two-tier insight cache over a real archive."""

import json
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from signal_daemon.insight_cache import InsightCache
from signal_daemon.insights import InsightGenerator
from signal_daemon.models import InsightSet, Theme
from signal_daemon.storage import Storage

from conftest import FakeLLMClient


def make_cache(storage: Storage, clock, llm=None) -> InsightCache:
    generator = InsightGenerator(llm_client=llm, clock=clock)
    return InsightCache(storage, generator, tz="America/New_York", clock=clock)


def generated_set(clock, category: str = "mortgage") -> InsightSet:
    return InsightSet(
        success=True,
        themes=[Theme(name="Market Trends")],
        article_count=2,
        generated_at=clock.now,
        category=category,
    )


def test_archived_record_from_today_short_circuits_llm(storage, clock) -> None:
    """
    INVARIANT: An archive hit for today returns that record with zero model calls
    BREAKS: Every dashboard load after a restart pays for a new generation
    """
    archived = generated_set(clock)
    record_id = storage.save_insight_record(archived)
    clock.advance(hours=3)

    llm = FakeLLMClient()
    cache = make_cache(storage, clock, llm)

    result = cache.get_todays_insights("mortgage")

    assert result.id == record_id
    assert result.generated_at == archived.generated_at
    assert llm.calls == []

    # get_or_generate serves the same record and still makes no calls
    assert cache.get_or_generate("mortgage", []).id == record_id
    assert llm.calls == []


def test_yesterdays_record_is_not_served(storage, clock, make_article) -> None:
    """Test a record from the previous local day is a miss."""
    storage.save_insight_record(generated_set(clock))
    clock.advance(days=1)
    llm = FakeLLMClient()
    cache = make_cache(storage, clock, llm)

    assert cache.get_todays_insights("mortgage") is None

    result = cache.get_or_generate("mortgage", [make_article()])
    assert len(llm.calls) == 1
    assert result.generated_at == clock.now


def test_dedup_window_archives_once_but_updates_memory_twice(storage, clock) -> None:
    """
    INVARIANT: Two saves within 60 minutes give one archive row, two memory updates
    BREAKS: Archive fills with near-identical records on repeated refreshes
    """
    cache = make_cache(storage, clock)

    first = cache.save_insights(generated_set(clock), "mortgage")
    clock.advance(minutes=30)
    second_set = generated_set(clock)
    second_set.article_count = 9
    second = cache.save_insights(second_set, "mortgage")

    assert storage.count_insight_records("mortgage") == 1
    assert first.id is not None
    assert second.id is None
    assert cache.get_todays_insights("mortgage").article_count == 9


def test_save_after_window_archives_again(storage, clock) -> None:
    cache = make_cache(storage, clock)

    cache.save_insights(generated_set(clock), "mortgage")
    clock.advance(minutes=61)
    cache.save_insights(generated_set(clock), "mortgage")

    assert storage.count_insight_records("mortgage") == 2


def test_dedup_is_per_category(storage, clock) -> None:
    cache = make_cache(storage, clock)

    cache.save_insights(generated_set(clock), "mortgage")
    cache.save_insights(generated_set(clock, "competitor-intel"), "competitor-intel")

    assert storage.count_insight_records() == 2


def test_clear_insights_only_drops_memory(storage, clock) -> None:
    """Test clearing memory falls through to the archive, not to a miss."""
    cache = make_cache(storage, clock)
    saved = cache.save_insights(generated_set(clock), "mortgage")

    cache.clear_insights()

    assert cache.get_todays_insights("mortgage").id == saved.id
    assert storage.count_insight_records() == 1


def test_archive_failure_still_returns_insights(
    storage, clock, make_article, isolated_observability
) -> None:
    """
    INVARIANT: A failed archive write still serves the computed insights
    BREAKS: A full disk turns every request into an error
    """
    storage.conn.execute("DROP TABLE insight_archive")
    llm = FakeLLMClient()
    cache = make_cache(storage, clock, llm)

    result = cache.get_or_generate("mortgage", [make_article()])

    assert result.success is True
    assert result.id is None
    # Served from memory on the next call
    assert cache.get_or_generate("mortgage", [make_article()]) is result
    assert len(llm.calls) == 1

    events = [
        json.loads(line)
        for path in isolated_observability.glob("*.jsonl")
        for line in path.read_text().splitlines()
    ]
    outcomes = [e["outcome"] for e in events if e["event"] == "insights.cache"]
    assert "archive-error" in outcomes
    assert "archived" not in outcomes


def test_generation_records_date_range(storage, clock, make_article) -> None:
    articles = [make_article(), make_article(), make_article()]
    cache = make_cache(storage, clock, FakeLLMClient())

    result = cache.get_or_generate("mortgage", articles)

    assert result.date_range_start == min(a.pub_date for a in articles)
    assert result.date_range_end == max(a.pub_date for a in articles)
    assert storage.get_insight_record(result.id).date_range_end == result.date_range_end


def test_empty_generation_is_not_cached(storage, clock) -> None:
    llm = FakeLLMClient()
    cache = make_cache(storage, clock, llm)

    result = cache.get_or_generate("mortgage", [])

    assert result.success is False
    assert storage.count_insight_records() == 0
    assert cache.get_todays_insights("mortgage") is None


def test_force_regenerates_even_when_cached(storage, clock, make_article) -> None:
    llm = FakeLLMClient()
    cache = make_cache(storage, clock, llm)

    cache.get_or_generate("mortgage", [make_article()])
    cache.get_or_generate("mortgage", [make_article()], force=True)

    assert len(llm.calls) == 2
    # Still within the dedup window
    assert storage.count_insight_records("mortgage") == 1


def test_unknown_category_rejected_before_cache(storage, clock) -> None:
    llm = FakeLLMClient()
    cache = make_cache(storage, clock, llm)

    with pytest.raises(ValueError):
        cache.get_or_generate("sports", [])
    with pytest.raises(ValueError):
        cache.get_todays_insights("sports")
    assert llm.calls == []


def test_concurrent_misses_generate_once(storage, clock, make_article) -> None:
    """
    INVARIANT: Concurrent misses for one category make a single model call
    BREAKS: A burst of dashboard loads multiplies LLM spend
    """
    llm = FakeLLMClient(delay=0.2)
    cache = make_cache(storage, clock, llm)
    articles = [make_article()]
    start = threading.Barrier(4)

    def request():
        start.wait()
        return cache.get_or_generate("mortgage", articles)

    with ThreadPoolExecutor(max_workers=4) as executor:
        results = list(executor.map(lambda _: request(), range(4)))

    assert len(llm.calls) == 1
    assert len({result.id for result in results}) == 1
    assert storage.count_insight_records() == 1


def test_categories_generate_independently(storage, clock, make_article) -> None:
    """Test different categories each get their own generation."""
    llm = FakeLLMClient(delay=0.1)
    cache = make_cache(storage, clock, llm)

    with ThreadPoolExecutor(max_workers=3) as executor:
        results = list(
            executor.map(
                lambda category: cache.get_or_generate(
                    category, [make_article(category=category)]
                ),
                ["mortgage", "product-management", "competitor-intel"],
            )
        )

    assert len(llm.calls) == 3
    assert [r.category for r in results] == [
        "mortgage",
        "product-management",
        "competitor-intel",
    ]
    assert storage.count_insight_records() == 3


def test_dedup_window_configurable(storage, clock) -> None:
    generator = InsightGenerator(clock=clock)
    cache = InsightCache(
        storage, generator, dedup_window=timedelta(minutes=5), clock=clock
    )

    cache.save_insights(generated_set(clock), "mortgage")
    clock.advance(minutes=10)
    cache.save_insights(generated_set(clock), "mortgage")

    assert storage.count_insight_records() == 2
