# ABOUTME: Tests for the article extraction stage
# ABOUTME: Validates date fallback, dropped empty articles and failure handling

from datetime import date

import pytest
from fakes import FakeExtractionService, FakeFetcher

from echograph.core.models import ArticleRef
from echograph.errors import ErrorKind, FatalServiceError, FetchError
from echograph.extraction.base import ArticleContent
from echograph.stages import ArticleExtractionStage

REF = ArticleRef(
    parent_url="https://news.example.com/politics",
    article_url="https://news.example.com/2026/10/budget",
    headline="Budget passes",
)


def _extraction(content: ArticleContent | Exception) -> FakeExtractionService:
    def handler(text, context):
        if isinstance(content, Exception):
            raise content
        return content

    return FakeExtractionService({ArticleContent: handler})


class TestArticleExtractionStage:
    @pytest.mark.asyncio
    async def test_article_is_built_from_ref_and_content(self, state, limiter):
        extraction = _extraction(
            ArticleContent(article_text="  The council voted.  ", article_date=date(2026, 10, 1), author="Sam Writer")
        )
        stage = ArticleExtractionStage(FakeFetcher({REF.article_url: "# Budget"}), extraction, limiter)

        update = await stage(state, REF)

        [article] = update["articles"]
        assert article.article_text == "The council voted."
        assert article.article_date == date(2026, 10, 1)
        assert article.author == "Sam Writer"
        assert article.headline == "Budget passes"
        assert article.parent_url == REF.parent_url
        assert extraction.calls[0][1] == "# Budget"
        assert extraction.calls[0][2] == {"article_url": REF.article_url, "headline": "Budget passes"}

    @pytest.mark.asyncio
    async def test_missing_date_falls_back_to_run_date(self, state, limiter):
        extraction = _extraction(ArticleContent(article_text="Body", article_date=None))
        stage = ArticleExtractionStage(FakeFetcher({REF.article_url: "# Budget"}), extraction, limiter)

        update = await stage(state, REF)

        assert update["articles"][0].article_date == state.config.run_date

    @pytest.mark.asyncio
    async def test_empty_article_is_dropped(self, state, limiter):
        stage = ArticleExtractionStage(
            FakeFetcher({REF.article_url: "# Budget"}), _extraction(ArticleContent(article_text="   ")), limiter
        )
        assert await stage(state, REF) == {"articles": []}

    @pytest.mark.asyncio
    async def test_fetch_failure_drops_the_article(self, state, limiter):
        fetcher = FakeFetcher({REF.article_url: FetchError("403", kind=ErrorKind.FATAL)})
        extraction = _extraction(ArticleContent(article_text="Body"))

        assert await ArticleExtractionStage(fetcher, extraction, limiter)(state, REF) == {"articles": []}
        assert extraction.calls == []

    @pytest.mark.asyncio
    async def test_extraction_failure_drops_the_article(self, state, limiter):
        stage = ArticleExtractionStage(
            FakeFetcher({REF.article_url: "# Budget"}), _extraction(FatalServiceError("bad output")), limiter
        )
        assert await stage(state, REF) == {"articles": []}
