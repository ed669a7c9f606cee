# ABOUTME: DSPy module extracting attributed quotes from article text
# ABOUTME: Merges quotes split across the article and writes a first-person summary for each

from typing import cast

import dspy

from echograph.core.models import RawQuote
from echograph.extraction.base import QuoteList


class QuoteExtractionSignature(dspy.Signature):
    """Extract every quotation from a news article together with its speaker.

    Only text between quotation marks counts, and only words spoken by the
    speaker, never text written by the article author. Quotes from multiple
    speakers must all be extracted. A quote broken up across the article is
    merged into one contiguous quote unless the parts discuss different
    topics. When a quote needs context to make sense, add it briefly in
    square brackets at the start. For each quote also write a succinct
    summary phrased as if the speaker said it. Skip quotes whose speaker is
    not named.
    """

    article_text: str = dspy.InputField(description="Article body text")
    article_url: str = dspy.InputField(description="URL of the article")
    author: str = dspy.InputField(description="Author of the article, whose own words are never quotes")

    quotes: list[RawQuote] = dspy.OutputField(
        description="Quotes with 'speaker', 'quote_raw' and 'quote_summary'; empty if there are none"
    )


class QuoteExtractor(dspy.Module):
    def __init__(self):
        super().__init__()
        self.extract_quotes = dspy.ChainOfThought(QuoteExtractionSignature)

    async def aforward(self, article_text: str, article_url: str, author: str | None = None) -> QuoteList:
        """Extract quotes from one article.

        Args:
            article_text: Article body
            article_url: Article URL, passed for date and context hints
            author: Byline, or None if unknown

        Returns:
            QuoteList in article order
        """
        result = await self.extract_quotes.acall(
            article_text=article_text, article_url=article_url, author=author or "unknown"
        )
        result = cast("QuoteExtractionSignature", result)

        return QuoteList(quotes=list(result.quotes or []))

    def forward(self, article_text: str, article_url: str, author: str | None = None) -> QuoteList:
        """Sync wrapper around aforward()."""
        import anyio

        return anyio.run(self.aforward, article_text, article_url, author)
