# ABOUTME: Pipeline service that runs the quote extraction workflow for one trigger request
# ABOUTME: Builds the per-run limiter, retry policy and stages around injected collaborators

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from echograph.config import Config, get_config
from echograph.core.graph import CompiledGraph
from echograph.core.models import RunRequest, RunSnapshot
from echograph.core.state import PipelineState
from echograph.core.workflow import WorkflowStages, build_workflow
from echograph.extraction.base import ContentFetcher, EmbeddingService, ExtractionService, Persistence
from echograph.persistence import DatabaseManager
from echograph.stages import (
    ArticleExtractionStage,
    ArticleSelectionStage,
    DeduplicationStage,
    ExportStage,
    HeadlineDiscoveryStage,
    QuoteExtractionStage,
    QuoteValidationStage,
    SourceLoadingStage,
    StorageStage,
)
from echograph.stages.export import build_snapshot
from echograph.utils.concurrency import ConcurrencyLimiter, LimiterStats
from echograph.utils.logging import get_logger, with_run_context
from echograph.utils.retry import RetryEvent, RetryPolicy


@dataclass
class RunResult:
    """Outcome of one pipeline run."""

    state: PipelineState
    snapshot: RunSnapshot
    snapshot_path: Path | None
    limiter_stats: LimiterStats


class QuotePipelineService:
    """Run the quote extraction workflow.

    Collaborators default to the configured production implementations; tests
    inject fakes. A fresh limiter and retry policy are built for every run so
    counters never leak between runs.
    """

    def __init__(
        self,
        fetcher: ContentFetcher | None = None,
        extraction: ExtractionService | None = None,
        embeddings: EmbeddingService | None = None,
        persistence: Persistence | None = None,
        config: Config | None = None,
        output_dir: Path | None = None,
        on_retry: Callable[[RetryEvent], None] | None = None,
        retry_sleep: Callable[[float], Any] | None = None,
    ):
        """Initialize the pipeline service.

        Args:
            fetcher: Content fetcher (defaults to the configured backend)
            extraction: Extraction Service (defaults to DSPy modules)
            embeddings: Embedding Service (defaults to dspy.Embedder)
            persistence: Persistence (defaults to a DatabaseManager on the configured URL)
            config: Application configuration (defaults to the global config)
            output_dir: Directory for run snapshots (defaults to config.output_dir)
            on_retry: Callback receiving every scheduled retry
            retry_sleep: Replacement for asyncio.sleep in retry backoff
        """
        self.config = config or get_config()
        self.logger = get_logger(__name__)
        self.output_dir = Path(output_dir or self.config.output_dir)
        self.on_retry = on_retry
        self.retry_sleep = retry_sleep

        if fetcher is None:
            from echograph.extraction.web import create_fetcher

            if self.config.fetch_backend == "jina":
                fetcher = create_fetcher("jina", base_url=self.config.jina_base_url, timeout=self.config.http_timeout)
            else:
                fetcher = create_fetcher(self.config.fetch_backend, page_timeout=self.config.http_timeout)
        if extraction is None:
            from echograph.extraction.analysis import DSPyExtractionService

            extraction = DSPyExtractionService()
        if embeddings is None:
            from echograph.extraction.analysis import DSPyEmbeddingService

            embeddings = DSPyEmbeddingService()

        self.fetcher = fetcher
        self.extraction = extraction
        self.embeddings = embeddings
        self.persistence = persistence or DatabaseManager(self.config.database_url)

    def _retry_policy(self, request: RunRequest) -> RetryPolicy:
        run_config = request.config
        policy = RetryPolicy(
            max_retries=run_config.max_retries,
            initial_delay=run_config.retry_initial_delay,
            max_delay=run_config.retry_max_delay,
            attempt_timeout=run_config.call_timeout,
            on_retry=self.on_retry,
        )
        if self.retry_sleep is not None:
            policy.sleep = self.retry_sleep
        return policy

    def build_stages(self, request: RunRequest, limiter: ConcurrencyLimiter) -> WorkflowStages:
        return WorkflowStages(
            load_sources=SourceLoadingStage(self.persistence, limiter, requested=request.sources),
            discover_headlines=HeadlineDiscoveryStage(self.fetcher, self.extraction, limiter),
            select_articles=ArticleSelectionStage(self.persistence, limiter),
            extract_article=ArticleExtractionStage(self.fetcher, self.extraction, limiter),
            extract_quotes=QuoteExtractionStage(self.extraction, limiter),
            validate_quotes=QuoteValidationStage(self.extraction, limiter),
            deduplicate=DeduplicationStage(self.embeddings, limiter),
            store_quotes=StorageStage(self.persistence, limiter),
            export=ExportStage(self.output_dir, limiter),
        )

    async def run(self, request: RunRequest) -> RunResult:
        """Run the workflow for one request.

        Per-item failures only shrink the result. The run itself fails when
        its sources cannot be obtained.

        Raises:
            SourceLoadError: If no sources were requested and monitored URLs cannot be loaded
        """
        run_config = request.config
        with with_run_context(run_config.run_id):
            if isinstance(self.persistence, DatabaseManager):
                await self.persistence.create_tables()

            limiter = ConcurrencyLimiter(run_config.max_concurrent, self._retry_policy(request))
            stages = self.build_stages(request, limiter)
            graph: CompiledGraph = build_workflow(stages, stage_deadline=run_config.stage_deadline)

            self.logger.info(
                "Starting pipeline run",
                sources=len(request.sources),
                max_concurrent=run_config.max_concurrent,
                similarity_threshold=run_config.similarity_threshold,
            )
            try:
                state = await graph.invoke(PipelineState(config=run_config))
            finally:
                await limiter.aclose(cancel_pending=True)

            snapshot = stages.export.snapshot or build_snapshot(state, limiter.stats.as_dict())
            self.logger.info("Pipeline run complete", **snapshot.stats.model_dump(exclude={"limiter"}))

            return RunResult(
                state=state,
                snapshot=snapshot,
                snapshot_path=stages.export.path,
                limiter_stats=limiter.stats,
            )

    async def run_payload(self, payload: dict[str, Any]) -> RunResult:
        """Validate a camelCase trigger payload and run it.

        Raises:
            ConfigError: If the payload is invalid, before any stage runs
        """
        return await self.run(RunRequest.from_payload(payload))

    async def close(self) -> None:
        await self.fetcher.close()
        if isinstance(self.persistence, DatabaseManager):
            await self.persistence.close()
