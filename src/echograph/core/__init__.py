# ABOUTME: Business logic and orchestration layer
# ABOUTME: Domain models, pipeline state, the workflow graph executor and the pipeline service

"""
Core Layer: Business logic and workflow orchestration

This layer handles:
- Domain models for sources, articles, quotes and runs
- Pipeline state with declared reducers
- The workflow graph executor and the quote extraction workflow
- The pipeline service API

Data Flow: RunRequest → workflow graph → RunSnapshot
"""

from .models import (
    Article,
    ArticleMetadata,
    ArticleRef,
    RawQuote,
    RunConfig,
    RunRequest,
    RunSnapshot,
    RunStats,
    Source,
    UniqueQuote,
    ValidatedQuote,
    ValidatedQuoteSet,
)

# Import the service on-demand to avoid circular imports
# Use: from echograph.core.pipeline import QuotePipelineService

__all__ = [
    "Article",
    "ArticleMetadata",
    "ArticleRef",
    "RawQuote",
    "RunConfig",
    "RunRequest",
    "RunSnapshot",
    "RunStats",
    "Source",
    "UniqueQuote",
    "ValidatedQuote",
    "ValidatedQuoteSet",
]
