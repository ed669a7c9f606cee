# ABOUTME: Storage stage persisting unique quotes in batches through the limiter
# ABOUTME: Batches that still fail after retries are logged and reported as lost

import asyncio

from echograph.core.models import StorageReport, UniqueQuote
from echograph.core.state import PipelineState
from echograph.errors import PipelineError
from echograph.extraction.base import Persistence
from echograph.utils.concurrency import ConcurrencyLimiter
from echograph.utils.logging import get_logger, log_stage


class StorageStage:
    def __init__(self, persistence: Persistence, limiter: ConcurrencyLimiter):
        self.persistence = persistence
        self.limiter = limiter
        self.logger = get_logger(__name__)

    async def _store_batch(self, index: int, batch: list[UniqueQuote], run_id: str) -> StorageReport:
        try:
            inserted = await self.limiter.run(
                lambda: self.persistence.insert_quotes(batch, run_id=run_id), label=f"insert_quotes#{index}"
            )
        except PipelineError as e:
            self.logger.error(
                "Quote batch lost", batch_index=index, quotes=len(batch), error=str(e), kind=e.kind.value
            )
            return StorageReport(batch_index=index, attempted=len(batch), error=str(e))

        return StorageReport(batch_index=index, attempted=len(batch), inserted=inserted)

    @log_stage("storage")
    async def __call__(self, state: PipelineState, payload: object = None) -> dict:
        size = state.config.storage_batch_size
        quotes = state.unique_quotes
        batches = [quotes[start : start + size] for start in range(0, len(quotes), size)]

        reports = await asyncio.gather(
            *(self._store_batch(index, batch, state.config.run_id) for index, batch in enumerate(batches))
        )

        self.logger.info(
            "Stored quotes",
            stored=sum(report.inserted for report in reports),
            lost=sum(report.lost for report in reports),
            batches=len(reports),
        )
        return {"storage_reports": list(reports)}
