# ABOUTME: Extraction Service backed by DSPy modules, dispatching on the requested response schema
# ABOUTME: Converts language model client failures to typed extraction errors

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import dspy
from pydantic import BaseModel, ValidationError

from echograph.config import Config, get_config
from echograph.errors import ExtractionServiceError, FatalServiceError
from echograph.extraction.analysis.article import ArticleContentExtractor
from echograph.extraction.analysis.headlines import HeadlineExtractor
from echograph.extraction.analysis.quotes import QuoteExtractor
from echograph.extraction.analysis.validation import QuoteValidator
from echograph.extraction.base import ArticleContent, HeadlineList, QuoteList, QuoteValidationResult
from echograph.utils.logging import get_logger, log_api_call
from echograph.utils.retry import convert_exception

T = TypeVar("T", bound=BaseModel)


def configure_language_model(config: Config | None = None) -> bool:
    """Configure DSPy global state with the extraction language model.

    DSPy modules read the globally configured LM, so this modifies global
    state. Returns False when no API key is configured.
    """
    logger = get_logger(__name__)
    config = config or get_config()

    if not config.llm_api_key:
        logger.warning("No LLM API key configured - extraction calls may fail")
        return False

    lm = dspy.LM(config.llm_model, api_key=config.llm_api_key)
    dspy.configure(lm=lm)
    logger.info("Configured DSPy language model", model=config.llm_model)
    return True


class DSPyExtractionService:
    """Structured extraction through DSPy signatures.

    ``extract`` picks the module for the requested schema and feeds it the
    document text plus the schema's context keys:

    - ``HeadlineList``: ``source_url``
    - ``ArticleContent``: ``article_url``, optional ``headline``
    - ``QuoteList``: ``article_url``, optional ``author``
    - ``QuoteValidationResult``: ``quotes``, optional ``headline``
    """

    def __init__(self, configure_lm: bool = True):
        self.logger = get_logger(__name__)
        if configure_lm:
            configure_language_model()

        self.headline_extractor = HeadlineExtractor()
        self.article_extractor = ArticleContentExtractor()
        self.quote_extractor = QuoteExtractor()
        self.quote_validator = QuoteValidator()

        self._handlers: dict[type[BaseModel], Callable[[str, dict[str, Any]], Awaitable[BaseModel]]] = {
            HeadlineList: self._extract_headlines,
            ArticleContent: self._extract_article,
            QuoteList: self._extract_quotes,
            QuoteValidationResult: self._validate_quotes,
        }

    @log_api_call("extraction_service")
    async def extract(self, document_text: str, schema: type[T], *, context: dict[str, Any]) -> T:
        handler = self._handlers.get(schema)
        if handler is None:
            raise FatalServiceError(f"Unsupported extraction schema: {schema.__name__}")

        try:
            result = await handler(document_text, context)
        except ExtractionServiceError:
            raise
        except (ValidationError, ValueError, KeyError) as e:
            # Malformed model output or missing context
            raise FatalServiceError(f"Could not build {schema.__name__}: {e}") from e
        except Exception as e:
            raise convert_exception(e) from e

        return schema.model_validate(result.model_dump())

    async def _extract_headlines(self, document_text: str, context: dict[str, Any]) -> HeadlineList:
        return await self.headline_extractor.aforward(page_markdown=document_text, source_url=context["source_url"])

    async def _extract_article(self, document_text: str, context: dict[str, Any]) -> ArticleContent:
        return await self.article_extractor.aforward(
            page_markdown=document_text, article_url=context["article_url"], headline=context.get("headline", "")
        )

    async def _extract_quotes(self, document_text: str, context: dict[str, Any]) -> QuoteList:
        return await self.quote_extractor.aforward(
            article_text=document_text, article_url=context["article_url"], author=context.get("author")
        )

    async def _validate_quotes(self, document_text: str, context: dict[str, Any]) -> QuoteValidationResult:
        return await self.quote_validator.aforward(quotes=list(context["quotes"]), headline=context.get("headline", ""))
