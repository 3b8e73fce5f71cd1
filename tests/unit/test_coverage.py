"""Unit tests for source coverage repair."""

import pytest

from signal_daemon.coverage import (
    COVERAGE_THEME_NAME,
    ensure_source_coverage,
    missing_sources,
    theme_kind_for_name,
)
from signal_daemon.models import Insight, Theme, ThemeKind


def summary(index: int, source: str, title: str = "") -> dict:
    return {
        "id": index,
        "title": title or f"{source} story {index}",
        "summary": "...",
        "source": source,
        "link": f"https://example.com/{index}",
    }


SUMMARIES = [
    summary(0, "HousingWire"),
    summary(1, "HousingWire"),
    summary(2, "Mortgage News Daily"),
    summary(3, "Lenny's Newsletter"),
    summary(4, "Lenny's Newsletter"),
]


def themes_citing(*indexes: int) -> list:
    return [
        Theme(
            name="Market Trends",
            insights=[
                Insight(text="Rates fell", articles=[SUMMARIES[i] for i in indexes])
            ],
        )
    ]


def test_every_input_source_is_covered() -> None:
    """
    INVARIANT: After repair, every input source appears in some insight
    BREAKS: Smaller publishers silently vanish from the briefing
    """
    themes = ensure_source_coverage(themes_citing(0), SUMMARIES)

    assert missing_sources(themes, SUMMARIES) == []
    covered = set()
    for theme in themes:
        covered |= theme.sources()
    assert covered == {"HousingWire", "Mortgage News Daily", "Lenny's Newsletter"}


def test_missing_sources_go_to_one_coverage_theme() -> None:
    """Test the catch-all theme gets one insight per missing source."""
    themes = ensure_source_coverage(themes_citing(0), SUMMARIES)

    assert len(themes) == 2
    coverage = themes[-1]
    assert coverage.kind == ThemeKind.COVERAGE
    assert coverage.name == COVERAGE_THEME_NAME
    assert coverage.icon == "💬"
    assert [i.articles[0]["source"] for i in coverage.insights] == [
        "Mortgage News Daily",
        "Lenny's Newsletter",
    ]


def test_coverage_text_single_and_multiple_articles() -> None:
    """Test the synthesized text for one and for several articles."""
    themes = ensure_source_coverage(themes_citing(0), SUMMARIES)
    single, multiple = themes[-1].insights

    assert single.text == "Mortgage News Daily provides commentary: Mortgage News Daily story 2"
    assert multiple.text.startswith("Lenny's Newsletter covers 2 topics including ")
    assert "Lenny's Newsletter story 3; Lenny's Newsletter story 4" in multiple.text
    assert len(multiple.articles) == 2


def test_coverage_caps_articles_and_title_text() -> None:
    """Test at most 5 articles are attached and long title lists are cut."""
    many = [summary(i, "Big Source", title="T" * 80) for i in range(8)]

    themes = ensure_source_coverage([], many)
    insight = themes[0].insights[0]

    assert len(insight.articles) == 5
    assert insight.text.startswith("Big Source covers 8 topics including ")
    assert insight.text.endswith("...")


def test_already_covered_returns_input_unchanged() -> None:
    """Test no coverage theme is added when nothing is missing."""
    themes = themes_citing(0, 2, 3)

    repaired = ensure_source_coverage(themes, SUMMARIES)

    assert repaired is themes
    assert len(repaired) == 1


def test_repair_is_idempotent() -> None:
    """
    INVARIANT: Repairing already-repaired themes changes nothing
    BREAKS: Re-processing archived insights would duplicate coverage entries
    """
    once = ensure_source_coverage(themes_citing(0), SUMMARIES)
    twice = ensure_source_coverage(once, SUMMARIES)

    assert twice == once


def test_does_not_mutate_input_themes() -> None:
    """Test an existing coverage theme is copied, not appended to in place."""
    existing = Theme(
        name="Commentary (model-named)",
        icon="💬",
        kind=ThemeKind.COVERAGE,
        insights=[Insight(text="HousingWire notes", articles=[SUMMARIES[0]])],
    )
    themes = [existing]

    repaired = ensure_source_coverage(themes, SUMMARIES)

    assert len(existing.insights) == 1
    assert len(repaired) == 1
    assert repaired[0].name == "Commentary (model-named)"
    assert len(repaired[0].insights) == 3


def test_model_commentary_theme_receives_missing_sources() -> None:
    """
    INVARIANT: Missing sources merge into the model's own commentary theme
    BREAKS: Two near-identical commentary themes in one result
    """
    name = "Industry Commentary & Roundups"
    model_theme = Theme(
        name=name,
        kind=theme_kind_for_name(name),
        insights=[Insight(text="x", articles=[SUMMARIES[0]])],
    )

    repaired = ensure_source_coverage([model_theme], SUMMARIES)

    assert len(repaired) == 1
    assert repaired[0].name == name
    assert len(repaired[0].insights) == 3


def test_generated_theme_is_never_the_catch_all() -> None:
    """Test a theme tagged generated is left alone even if it looks like one."""
    model_theme = Theme(
        name=COVERAGE_THEME_NAME,
        kind=ThemeKind.GENERATED,
        insights=[Insight(text="x", articles=[SUMMARIES[0]])],
    )

    repaired = ensure_source_coverage([model_theme], SUMMARIES)

    assert len(repaired) == 2
    assert repaired[0].insights == model_theme.insights
    assert repaired[1].kind == ThemeKind.COVERAGE


@pytest.mark.parametrize(
    "name,kind",
    [
        ("Industry Commentary/Roundups", ThemeKind.COVERAGE),
        ("Weekly ROUNDUP", ThemeKind.COVERAGE),
        ("Industry News & Notes", ThemeKind.COVERAGE),
        ("Market Trends", ThemeKind.GENERATED),
        ("", ThemeKind.GENERATED),
    ],
)
def test_theme_kind_for_name(name: str, kind: ThemeKind) -> None:
    assert theme_kind_for_name(name) == kind
