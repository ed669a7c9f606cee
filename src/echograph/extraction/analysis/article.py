# ABOUTME: DSPy module extracting the body text, date and byline of an article page
# ABOUTME: Normalizes the model's date answer to a date or None

from datetime import date
from typing import cast

import dspy

from echograph.extraction.base import ArticleContent


class ArticleContentSignature(dspy.Signature):
    """Extract the main content of a news article page.

    Keep the full article body including every quotation verbatim. Drop
    navigation, related links, comments, captions and advertising. Determine
    the publication date from the page, or from the article URL when the page
    does not show it.
    """

    page_markdown: str = dspy.InputField(description="Markdown rendering of the article page")
    article_url: str = dspy.InputField(description="URL of the article")
    headline: str = dspy.InputField(description="Headline the article was linked with, may be empty")

    article_text: str = dspy.OutputField(description="Article body text")
    article_date: str = dspy.OutputField(description="Publication date as YYYY-MM-DD, or 'unknown'")
    author: str = dspy.OutputField(description="Author byline, or 'unknown'")


def parse_article_date(value: str | None) -> date | None:
    """Parse a YYYY-MM-DD answer, returning None for anything else."""
    if not value:
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def _clean_author(value: str | None) -> str | None:
    if not value or value.strip().lower() in ("unknown", "none", "n/a", ""):
        return None
    return value.strip()


class ArticleContentExtractor(dspy.Module):
    def __init__(self):
        super().__init__()
        self.extract_content = dspy.Predict(ArticleContentSignature)

    async def aforward(self, page_markdown: str, article_url: str, headline: str = "") -> ArticleContent:
        result = await self.extract_content.acall(
            page_markdown=page_markdown, article_url=article_url, headline=headline
        )
        result = cast("ArticleContentSignature", result)

        return ArticleContent(
            article_text=(result.article_text or "").strip(),
            article_date=parse_article_date(result.article_date),
            author=_clean_author(result.author),
        )

    def forward(self, page_markdown: str, article_url: str, headline: str = "") -> ArticleContent:
        """Sync wrapper around aforward()."""
        import anyio

        return anyio.run(self.aforward, page_markdown, article_url, headline)
