# ABOUTME: Entry stage resolving which sources a run crawls
# ABOUTME: Uses the trigger's sources, or the active monitored URLs when the trigger lists none

from echograph.core.models import Source
from echograph.core.state import PipelineState
from echograph.errors import PipelineError, SourceLoadError
from echograph.extraction.base import Persistence
from echograph.utils.concurrency import ConcurrencyLimiter
from echograph.utils.logging import get_logger, log_stage


class SourceLoadingStage:
    def __init__(self, persistence: Persistence, limiter: ConcurrencyLimiter, requested: list[str] | None = None):
        self.persistence = persistence
        self.limiter = limiter
        self.requested = list(requested or [])
        self.logger = get_logger(__name__)

    @log_stage("load_sources")
    async def __call__(self, state: PipelineState, payload: object = None) -> dict:
        """Resolve the run's sources.

        Raises:
            SourceLoadError: If monitored URLs are needed and cannot be loaded
        """
        urls = self.requested
        if not urls:
            try:
                urls = await self.limiter.run(self.persistence.list_sources, label="list_sources")
            except PipelineError as e:
                raise SourceLoadError(f"Could not load monitored sources: {e}") from e

        sources = [Source(url=url.strip()) for url in dict.fromkeys(urls) if url.strip()]
        self.logger.info(
            "Resolved sources", count=len(sources), origin="request" if self.requested else "monitored_urls"
        )
        return {"sources": sources}
