# ABOUTME: Terminal stage computing run statistics and writing the run snapshot as JSON
# ABOUTME: One file per run named after the run id

from collections import Counter
from pathlib import Path

import anyio

from echograph.core.models import RunSnapshot, RunStats, SourceStats
from echograph.core.state import PipelineState
from echograph.stages.headlines import dedupe_by_article_url
from echograph.utils.concurrency import ConcurrencyLimiter
from echograph.utils.logging import get_logger, log_stage


def build_source_stats(state: PipelineState) -> list[SourceStats]:
    headlines = Counter(ref.parent_url for ref in dedupe_by_article_url(state.discovered))
    articles = Counter(article.parent_url for article in state.articles)
    quotes = Counter(quote.article_metadata.parent_url for quote in state.unique_quotes)

    return [
        SourceStats(
            parent_url=source.url,
            headlines=headlines[source.url],
            articles=articles[source.url],
            quotes=quotes[source.url],
        )
        for source in state.sources
    ]


def build_run_stats(state: PipelineState, limiter: dict[str, int] | None = None) -> RunStats:
    validated = [quote for quote_set in state.validated for quote in quote_set.quotes]
    return RunStats(
        sources=len(state.sources),
        headlines=len(dedupe_by_article_url(state.discovered)),
        headlines_selected=len(state.headlines),
        articles=len(state.articles),
        quotes_extracted=sum(len(draft.quotes) for draft in state.quote_drafts),
        quotes_valid=sum(1 for quote in validated if quote.is_valid),
        quotes_invalid=sum(1 for quote in validated if quote.is_valid is False),
        unique_quotes=len(state.unique_quotes),
        quotes_stored=sum(report.inserted for report in state.storage_reports),
        quotes_lost=sum(report.lost for report in state.storage_reports),
        limiter=dict(limiter or {}),
    )


def build_snapshot(state: PipelineState, limiter: dict[str, int] | None = None) -> RunSnapshot:
    return RunSnapshot(
        run_id=state.config.run_id,
        config=state.config,
        sources=state.sources,
        # Every discovered article, including ones skipped as already stored
        headlines=dedupe_by_article_url(state.discovered),
        articles=state.articles,
        quotes=state.unique_quotes,
        source_stats=build_source_stats(state),
        stats=build_run_stats(state, limiter),
    )


class ExportStage:
    """Write the run snapshot once the graph reaches its terminal node.

    The written snapshot and its path are kept on the stage for the caller.
    A write failure is logged and leaves ``path`` unset.
    """

    def __init__(self, output_dir: Path, limiter: ConcurrencyLimiter | None = None):
        self.output_dir = Path(output_dir)
        self.limiter = limiter
        self.logger = get_logger(__name__)

        self.snapshot: RunSnapshot | None = None
        self.path: Path | None = None

    @log_stage("export")
    async def __call__(self, state: PipelineState, payload: object = None) -> dict:
        limiter_stats = self.limiter.stats.as_dict() if self.limiter is not None else {}
        self.snapshot = build_snapshot(state, limiter_stats)

        path = self.output_dir / f"{self.snapshot.run_id}.json"
        try:
            await anyio.Path(self.output_dir).mkdir(parents=True, exist_ok=True)
            await anyio.Path(path).write_text(self.snapshot.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            self.logger.error("Failed to write run snapshot", path=str(path), error=str(e))
            return {}

        self.path = path
        self.logger.info("Exported run snapshot", path=str(path), **self.snapshot.stats.model_dump(exclude={"limiter"}))
        return {}
