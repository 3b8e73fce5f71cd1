"""Post-processing that guarantees every input source appears in the insights."""

import logging
from dataclasses import replace
from typing import Any, Dict, List

from .models import Insight, Theme, ThemeKind

logger = logging.getLogger(__name__)

COVERAGE_THEME_NAME = "Industry Commentary & Updates"
COVERAGE_THEME_ICON = "💬"
MAX_ARTICLES_PER_INSIGHT = 5
MAX_TITLES_IN_TEXT = 3
MAX_TITLE_TEXT_CHARS = 150
CATCH_ALL_KEYWORDS = ("commentary", "roundup", "industry news")


def theme_kind_for_name(name: str) -> ThemeKind:
    """Kind to tag a model-produced theme with when it is created.

    A model theme named like a catch-all ("Industry Commentary/Roundups")
    becomes the coverage theme, so missing sources merge into it.
    """
    folded = (name or "").casefold()
    if any(keyword in folded for keyword in CATCH_ALL_KEYWORDS):
        return ThemeKind.COVERAGE
    return ThemeKind.GENERATED


def referenced_sources(themes: List[Theme]) -> set:
    """Sources referenced by any insight article across all themes."""
    sources = set()
    for theme in themes:
        sources |= theme.sources()
    return sources


def missing_sources(
    themes: List[Theme], article_summaries: List[Dict[str, Any]]
) -> List[str]:
    """Sources present in the input but not referenced by any insight.

    Order follows first appearance in article_summaries.
    """
    covered = referenced_sources(themes)
    missing = []
    for article in article_summaries:
        source = article.get("source")
        if source and source not in covered and source not in missing:
            missing.append(source)
    return missing


def _coverage_insight_text(source: str, articles: List[Dict[str, Any]]) -> str:
    if len(articles) == 1:
        return f"{source} provides commentary: {articles[0].get('title', '')}"

    titles = "; ".join(
        article.get("title", "") for article in articles[:MAX_TITLES_IN_TEXT]
    )
    if len(titles) > MAX_TITLE_TEXT_CHARS:
        titles = titles[:MAX_TITLE_TEXT_CHARS] + "..."
    return f"{source} covers {len(articles)} topics including {titles}"


def ensure_source_coverage(
    themes: List[Theme], article_summaries: List[Dict[str, Any]]
) -> List[Theme]:
    """Add a synthesized insight for every source no insight references.

    Missing sources are appended to the catch-all coverage theme, which is
    found by its kind or created at the end of the list. Names only matter
    when a theme is created (see theme_kind_for_name).
    Input themes are not mutated. Re-running on covered themes is a no-op.

    Args:
        themes: Themes resolved from the model (or fallback grouping)
        article_summaries: The article summaries used as generation input

    Returns:
        Themes in which every input source appears at least once
    """
    missing = missing_sources(themes, article_summaries)
    if not missing:
        return themes

    logger.info(
        f"Adding coverage for {len(missing)} missing source(s): {', '.join(missing)}"
    )

    repaired = list(themes)
    coverage_index = next(
        (i for i, theme in enumerate(repaired) if theme.kind == ThemeKind.COVERAGE),
        None,
    )
    if coverage_index is None:
        coverage_theme = Theme(
            name=COVERAGE_THEME_NAME,
            icon=COVERAGE_THEME_ICON,
            kind=ThemeKind.COVERAGE,
        )
        repaired.append(coverage_theme)
    else:
        existing = repaired[coverage_index]
        coverage_theme = replace(existing, insights=list(existing.insights))
        repaired[coverage_index] = coverage_theme

    for source in missing:
        source_articles = [a for a in article_summaries if a.get("source") == source]
        coverage_theme.insights.append(
            Insight(
                text=_coverage_insight_text(source, source_articles),
                articles=source_articles[:MAX_ARTICLES_PER_INSIGHT],
            )
        )

    return repaired
