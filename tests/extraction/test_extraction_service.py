# ABOUTME: Tests for the DSPy-backed Extraction Service and its modules
# ABOUTME: DSPy module calls are patched so no language model is contacted

from datetime import date
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from echograph.core.models import RawQuote
from echograph.errors import ErrorKind, FatalServiceError, RateLimitedError, TransientServiceError
from echograph.extraction.analysis import DSPyExtractionService
from echograph.extraction.analysis.article import ArticleContentExtractor, parse_article_date
from echograph.extraction.base import (
    ArticleContent,
    HeadlineCandidate,
    HeadlineList,
    QuoteList,
    QuoteValidationResult,
    QuoteVerdict,
)


@pytest.fixture
def service() -> DSPyExtractionService:
    return DSPyExtractionService(configure_lm=False)


class TestDSPyExtractionService:
    """Test schema dispatch and error conversion."""

    @pytest.mark.asyncio
    async def test_headlines(self, service):
        expected = HeadlineList(headlines=[HeadlineCandidate(article_url="/a", headline="A")])

        with patch.object(service.headline_extractor, "aforward", new=AsyncMock(return_value=expected)) as forward:
            result = await service.extract("# Front page", HeadlineList, context={"source_url": "https://x.example.com"})

        assert result == expected
        forward.assert_awaited_once_with(page_markdown="# Front page", source_url="https://x.example.com")

    @pytest.mark.asyncio
    async def test_article_content(self, service):
        expected = ArticleContent(article_text="Body", article_date=date(2026, 10, 1))

        with patch.object(service.article_extractor, "aforward", new=AsyncMock(return_value=expected)) as forward:
            result = await service.extract("# Story", ArticleContent, context={"article_url": "https://x.example.com/a"})

        assert result == expected
        forward.assert_awaited_once_with(page_markdown="# Story", article_url="https://x.example.com/a", headline="")

    @pytest.mark.asyncio
    async def test_quotes_and_validation(self, service):
        quotes = QuoteList(quotes=[RawQuote(speaker="Jane Doe", quote_raw="one")])
        verdicts = QuoteValidationResult(verdicts=[QuoteVerdict(is_valid=True, quality_score=0.5)])

        with (
            patch.object(service.quote_extractor, "aforward", new=AsyncMock(return_value=quotes)) as extract,
            patch.object(service.quote_validator, "aforward", new=AsyncMock(return_value=verdicts)) as validate,
        ):
            extracted = await service.extract(
                "Body", QuoteList, context={"article_url": "https://x.example.com/a", "author": "Sam Writer"}
            )
            validated = await service.extract(
                "1. Jane Doe", QuoteValidationResult, context={"quotes": extracted.quotes, "headline": "A"}
            )

        assert extracted.quotes[0].quote_raw == "one"
        assert validated.verdicts[0].quality_score == 0.5
        extract.assert_awaited_once_with(article_text="Body", article_url="https://x.example.com/a", author="Sam Writer")
        assert validate.await_args.kwargs["headline"] == "A"

    @pytest.mark.asyncio
    async def test_unsupported_schema(self, service):
        with pytest.raises(FatalServiceError, match="Unsupported"):
            await service.extract("text", QuoteVerdict, context={})

    @pytest.mark.asyncio
    async def test_missing_context_is_fatal(self, service):
        with pytest.raises(FatalServiceError):
            await service.extract("text", HeadlineList, context={})

    @pytest.mark.asyncio
    async def test_provider_errors_are_classified(self, service):
        class ProviderRateLimit(Exception):
            status_code = 429

        failing = AsyncMock(side_effect=ProviderRateLimit("slow down"))
        with patch.object(service.headline_extractor, "aforward", new=failing):
            with pytest.raises(RateLimitedError) as exc_info:
                await service.extract("text", HeadlineList, context={"source_url": "https://x.example.com"})

        assert exc_info.value.kind is ErrorKind.RATE_LIMITED

    @pytest.mark.asyncio
    async def test_connection_errors_are_transient(self, service):
        failing = AsyncMock(side_effect=ConnectionError("reset"))
        with patch.object(service.article_extractor, "aforward", new=failing):
            with pytest.raises(TransientServiceError):
                await service.extract("text", ArticleContent, context={"article_url": "https://x.example.com/a"})


class TestArticleContentExtractor:
    def test_parse_article_date(self):
        assert parse_article_date("2026-10-05") == date(2026, 10, 5)
        assert parse_article_date("2026-10-05T08:30:00Z") == date(2026, 10, 5)
        assert parse_article_date("unknown") is None
        assert parse_article_date(None) is None

    @pytest.mark.asyncio
    async def test_prediction_is_normalized(self):
        extractor = ArticleContentExtractor()
        prediction = SimpleNamespace(article_text="  Body text ", article_date="2026-10-05", author="unknown")

        with patch.object(extractor.extract_content, "acall", new=AsyncMock(return_value=prediction)):
            content = await extractor.aforward(page_markdown="# Story", article_url="https://x.example.com/a")

        assert content == ArticleContent(article_text="Body text", article_date=date(2026, 10, 5), author=None)
