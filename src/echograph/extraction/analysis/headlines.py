# ABOUTME: DSPy module extracting news article links and headlines from a source page
# ABOUTME: Returns raw candidates; URL resolution and filtering happen in the discovery stage

from typing import cast

import dspy

from echograph.extraction.base import HeadlineCandidate, HeadlineList


class HeadlineExtractionSignature(dspy.Signature):
    """Find every news article headline on a section or front page.

    Return the link target and headline text of each news article. Ignore
    navigation, advertising, video-only, live blog index and author pages.
    Return an empty list if no headlines are found.
    """

    page_markdown: str = dspy.InputField(description="Markdown rendering of the source page")
    source_url: str = dspy.InputField(description="URL of the source page, used to resolve relative links")

    headlines: list[HeadlineCandidate] = dspy.OutputField(
        description="Article links with 'article_url' and 'headline' in page order"
    )


class HeadlineExtractor(dspy.Module):
    def __init__(self):
        super().__init__()
        self.extract_headlines = dspy.Predict(HeadlineExtractionSignature)

    async def aforward(self, page_markdown: str, source_url: str) -> HeadlineList:
        result = await self.extract_headlines.acall(page_markdown=page_markdown, source_url=source_url)
        result = cast("HeadlineExtractionSignature", result)

        return HeadlineList(headlines=list(result.headlines or []))

    def forward(self, page_markdown: str, source_url: str) -> HeadlineList:
        """Sync wrapper around aforward()."""
        import anyio

        return anyio.run(self.aforward, page_markdown, source_url)
