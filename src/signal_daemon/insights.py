"""Thematic insight generation across a set of articles using an LLM."""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from .coverage import ensure_source_coverage, theme_kind_for_name
from .insight_parser import InsightParseError, InsightsResponse, parse_insights_response
from .llm_client import LLMClient
from .models import Article, Category, Insight, InsightSet, Theme
from .observability import log as obs_log

logger = logging.getLogger(__name__)

DEFAULT_MAX_ARTICLES = 50
SUMMARY_CHARS = 300
CONTENT_SUMMARY_CHARS = 200
FALLBACK_ARTICLES_PER_SOURCE = 5
DEFAULT_THEME_ICON = "📊"
DEFAULT_AUDIENCE = (
    "a Product Manager responsible for a mortgage lender's digital experience"
)

# (domain described in the prompt, example theme names)
CATEGORY_FOCUS = {
    Category.MORTGAGE.value: (
        "mortgage and real estate industry",
        "Market Trends, Technology & Innovation, Policy & Regulation, Lending "
        "Practices, Housing Affordability, Customer Experience, Competitive Landscape",
    ),
    Category.PRODUCT_MANAGEMENT.value: (
        "product management",
        "Product Strategy, Discovery & Research, Metrics & Experimentation, AI in "
        "Products, Design & UX, Team & Process",
    ),
    Category.COMPETITOR_INTEL.value: (
        "competitor and lender",
        "Competitor Moves, Product Launches, Pricing & Rates, Partnerships & M&A, "
        "Digital Experience, Customer Experience",
    ),
    Category.ALL.value: (
        "mortgage industry, product management and competitor",
        "Market Trends, Technology & Innovation, Policy & Regulation, Competitive "
        "Landscape, Product Strategy, Customer Experience",
    ),
}

ArticleInput = Union[Article, Dict[str, Any]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InsightGenerator:
    """Turns a batch of articles into themed insights and recommended actions.

    Never raises to the caller: without an LLM client, or when the model call
    or its output fails, it returns deterministic fallback insights instead.
    """

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        max_articles: int = DEFAULT_MAX_ARTICLES,
        audience: str = DEFAULT_AUDIENCE,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the generator.

        Args:
            llm_client: Client with a complete(prompt) method. None means no
                        credential is configured and fallback insights are used.
            max_articles: Maximum articles included in the prompt
            audience: Who the analysis is written for
            clock: Returns the current aware datetime (injectable for tests)
        """
        self.llm_client = llm_client
        self.max_articles = max_articles
        self.audience = audience
        self.clock = clock or utc_now

    def generate(
        self, articles: Sequence[ArticleInput], category: Optional[str] = None
    ) -> InsightSet:
        """Generate themed insights for a set of articles.

        Args:
            articles: Articles (or article dicts) to analyze
            category: Category the articles belong to, used to focus the prompt

        Returns:
            InsightSet - success=False with no themes for empty input,
            fallback=True when the model was unavailable or unusable
        """
        articles = self._dedupe(articles)

        if not articles:
            return InsightSet(
                success=False,
                message="No articles to analyze",
                category=category,
                generated_at=self.clock(),
            )

        if self.llm_client is None:
            logger.info("LLM not configured, returning fallback insights")
            return self.fallback_insights(articles, category, "LLM not configured")

        start_time = time.time()
        try:
            summaries = self._build_article_summaries(articles)
            prompt = self._build_prompt(summaries[: self.max_articles], category)
            response_text = self.llm_client.complete(prompt)

            try:
                response = parse_insights_response(response_text)
            except InsightParseError as e:
                logger.error(f"Error parsing model response: {e}")
                return self.fallback_insights(articles, category, str(e))

            themes = self._resolve_themes(response, summaries[: self.max_articles])
            themes = ensure_source_coverage(themes, summaries)

        except Exception as e:
            logger.error(f"Error generating insights: {e}", exc_info=True)
            return self.fallback_insights(articles, category, str(e))

        logger.info(
            f"Generated {len(themes)} themes from {len(articles)} articles"
            f"{f' for {category}' if category else ''}"
        )
        obs_log(
            "insights.generate",
            category=category,
            article_count=len(articles),
            theme_count=len(themes),
            fallback=False,
            duration_ms=int((time.time() - start_time) * 1000),
            status="success",
        )

        return InsightSet(
            success=True,
            themes=themes,
            recommended_actions=[
                action.model_dump(exclude_none=True)
                for action in response.recommended_actions
            ],
            article_count=len(articles),
            generated_at=self.clock(),
            category=category,
        )

    def fallback_insights(
        self,
        articles: Sequence[ArticleInput],
        category: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> InsightSet:
        """Group articles by source, one theme per source.

        Deterministic and model-free, so every source is always covered.
        """
        articles = self._dedupe(articles)

        groups: Dict[str, List[Dict[str, Any]]] = {}
        for article in articles:
            groups.setdefault(article.source, []).append(
                {
                    "id": article.link,
                    "title": article.title,
                    "summary": article.summary,
                    "source": article.source,
                    "link": article.link,
                    "pubDate": article.pub_date.isoformat()
                    if article.pub_date
                    else None,
                }
            )

        themes = []
        for source, source_articles in groups.items():
            count = len(source_articles)
            themes.append(
                Theme(
                    name=f"{source} Updates",
                    icon="📰",
                    insights=[
                        Insight(
                            text=f"{count} recent article{'s' if count > 1 else ''} from {source}",
                            articles=source_articles[:FALLBACK_ARTICLES_PER_SOURCE],
                        )
                    ],
                )
            )

        obs_log(
            "insights.generate",
            category=category,
            article_count=len(articles),
            theme_count=len(themes),
            fallback=True,
            reason=reason,
            status="fallback",
        )

        return InsightSet(
            success=True,
            themes=themes,
            article_count=len(articles),
            generated_at=self.clock(),
            category=category,
            fallback=True,
            message=f"Fallback insights: {reason}" if reason else None,
        )

    def _dedupe(self, articles: Optional[Sequence[ArticleInput]]) -> List[Article]:
        """Normalize input to Articles, dropping repeats and link-less items."""
        seen = set()
        unique = []
        for item in articles or []:
            article = Article.from_dict(item) if isinstance(item, dict) else item
            if not article.link or article.link in seen:
                continue
            seen.add(article.link)
            unique.append(article)
        return unique

    def _build_article_summaries(self, articles: List[Article]) -> List[Dict[str, Any]]:
        """Compact per-article view; the list index is the id the model cites."""
        summaries = []
        for index, article in enumerate(articles):
            summary = article.summary or (article.original_content or "")[
                :CONTENT_SUMMARY_CHARS
            ]
            summaries.append(
                {
                    "id": index,
                    "title": article.title,
                    "summary": summary[:SUMMARY_CHARS],
                    "source": article.source,
                    "link": article.link,
                    "pubDate": article.pub_date.isoformat()
                    if article.pub_date
                    else None,
                }
            )
        return summaries

    def _build_prompt(
        self, article_summaries: List[Dict[str, Any]], category: Optional[str] = None
    ) -> str:
        """Build the single-turn insights prompt.

        Args:
            article_summaries: Summaries to analyze (ids are list indexes)
            category: Category used to pick the domain focus

        Returns:
            Prompt text asking for JSON recommended actions and themes
        """
        domain, theme_examples = CATEGORY_FOCUS.get(
            category or Category.ALL.value, CATEGORY_FOCUS[Category.ALL.value]
        )

        return f"""You are analyzing {domain} articles for {self.audience}. Your analysis should focus on actionable insights and strategic recommendations.

Articles:
{json.dumps(article_summaries, indent=2, ensure_ascii=False)}

Please provide a comprehensive analysis with:

1. **Recommended Actions** (5-7 high-priority actions):
   - Focus on: product features, competitive intelligence, customer experience insights, technology & innovation
   - Each action should be specific, strategic, and tied to market trends/opportunities

2. **Thematic Insights** (5-7 major themes):
   - Common themes: {theme_examples}, Industry Commentary/Roundups
   - IMPORTANT: Ensure each source represented in the articles appears in at least one insight for balanced coverage
   - For each theme provide:
     * A clear theme name with relevant icon
     * 2-4 key insights (each 3-5 sentences with specific details, data points, context)
     * 2-3 specific recommended actions related to this theme
     * Article IDs that support each insight

Return your response as a JSON object with this structure:
{{
  "recommendedActions": [
    {{
      "action": "Clear, specific action statement",
      "rationale": "Why this matters (1-2 sentences)",
      "category": "Product Features" or "Competitive Intelligence" or "Customer Experience" or "Technology & Innovation"
    }}
  ],
  "themes": [
    {{
      "name": "Theme Name",
      "icon": "📊" or "💻" or "📜" or "🏠" or "💬" or "🎯" or "⚡" etc,
      "insights": [
        {{
          "text": "Key insight text with specific details and context...",
          "articleIds": [0, 3, 7]
        }}
      ],
      "actions": [
        {{
          "action": "Specific action related to this theme",
          "impact": "Expected impact"
        }}
      ]
    }}
  ]
}}

Provide detailed analysis including specific metrics, trends, implications, and actionable takeaways. Only cite article IDs from the list above."""

    def _resolve_themes(
        self, response: InsightsResponse, article_summaries: List[Dict[str, Any]]
    ) -> List[Theme]:
        """Replace cited article ids with the summaries they refer to.

        Ids that are not whole numbers or fall outside the list are dropped.
        """
        themes = []
        for response_theme in response.themes:
            insights = []
            for response_insight in response_theme.insights:
                articles = []
                for article_id in response_insight.article_ids:
                    index = _article_index(article_id)
                    if index is not None and index < len(article_summaries):
                        articles.append(article_summaries[index])
                insights.append(Insight(text=response_insight.text, articles=articles))

            themes.append(
                Theme(
                    name=response_theme.name,
                    icon=response_theme.icon or DEFAULT_THEME_ICON,
                    kind=theme_kind_for_name(response_theme.name),
                    insights=insights,
                    actions=[
                        action.model_dump(exclude_none=True)
                        for action in response_theme.actions
                    ],
                )
            )
        return themes


def _article_index(article_id: Any) -> Optional[int]:
    """Index for a cited id: an int (not bool) or a string of digits."""
    if isinstance(article_id, bool):
        return None
    if isinstance(article_id, int):
        return article_id if article_id >= 0 else None
    if isinstance(article_id, str) and article_id.strip().isdecimal():
        return int(article_id.strip())
    return None
