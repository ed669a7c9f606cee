# ABOUTME: DSPy module flagging invalid quotes and scoring the quality of valid ones
# ABOUTME: Returns one verdict per input quote in input order

from typing import cast

import dspy

from echograph.core.models import RawQuote
from echograph.extraction.base import QuoteValidationResult, QuoteVerdict


class QuoteValidationSignature(dspy.Signature):
    """Review extracted quotes and flag the invalid ones.

    A quote is invalid when its text contains words written by the article
    author rather than spoken by the speaker, when the speaker is anonymous
    or a member of the public rather than a named public figure, or when the
    text is not actually a quotation. Give each valid quote a quality score
    from 0.0 to 1.0 reflecting how self-contained, substantive and
    newsworthy it is. Return exactly one verdict per quote, in the same order.
    """

    quotes: list[RawQuote] = dspy.InputField(description="Quotes to review")
    headline: str = dspy.InputField(description="Headline of the article the quotes come from")

    verdicts: list[QuoteVerdict] = dspy.OutputField(
        description="One verdict per quote with 'is_valid', 'invalid_reason' and 'quality_score'"
    )


class QuoteValidator(dspy.Module):
    def __init__(self):
        super().__init__()
        self.validate_quotes = dspy.ChainOfThought(QuoteValidationSignature)

    async def aforward(self, quotes: list[RawQuote], headline: str = "") -> QuoteValidationResult:
        result = await self.validate_quotes.acall(quotes=quotes, headline=headline)
        result = cast("QuoteValidationSignature", result)

        return QuoteValidationResult(verdicts=list(result.verdicts or []))

    def forward(self, quotes: list[RawQuote], headline: str = "") -> QuoteValidationResult:
        """Sync wrapper around aforward()."""
        import anyio

        return anyio.run(self.aforward, quotes, headline)

