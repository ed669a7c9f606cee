# ABOUTME: Database manager implementing the pipeline's persistence operations
# ABOUTME: Async SQLModel access to monitored sources and staged quotes

from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager

from sqlalchemy import update
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlmodel import SQLModel, col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from echograph.core.models import UniqueQuote, utcnow
from echograph.errors import ErrorKind, StorageError
from echograph.persistence.models import MonitoredUrl, StagedQuote
from echograph.utils.logging import get_logger


def _storage_error(action: str, e: SQLAlchemyError) -> StorageError:
    # Locked or dropped connections clear up on retry; constraint violations do not
    kind = ErrorKind.TRANSIENT if isinstance(e, OperationalError) else ErrorKind.FATAL
    return StorageError(f"Failed to {action}: {e}", kind=kind)


class DatabaseManager:
    """Manages async database operations for sources and staged quotes."""

    def __init__(self, database_url: str = "sqlite+aiosqlite:///./echograph.db", **engine_kwargs):
        """Initialize the database manager.

        Args:
            database_url: SQLAlchemy async database URL (e.g. sqlite+aiosqlite:///./db.db)
            **engine_kwargs: Extra arguments for ``create_async_engine``
        """
        self.database_url = database_url
        self.logger = get_logger(__name__)
        self.engine = create_async_engine(database_url, echo=False, **engine_kwargs)
        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,  # Allow access to attributes after commit
        )

    async def create_tables(self) -> None:
        """Create all database tables if they don't exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    # --- Monitored sources -----------------------------------------------------------
    async def add_source(self, url: str) -> MonitoredUrl:
        """Add a monitored URL, reactivating it if it already exists."""
        async with self.session() as session:
            result = await session.exec(select(MonitoredUrl).where(MonitoredUrl.url == url))
            source = result.first()
            if source:
                source.active = True
            else:
                source = MonitoredUrl(url=url)
            session.add(source)
            await session.flush()
            await session.refresh(source)

        self.logger.info("Monitored URL saved", url=url, source_id=source.id)
        return source

    async def deactivate_source(self, url: str) -> bool:
        """Stop crawling a monitored URL without deleting its history.

        Returns:
            False if the URL was never monitored
        """
        async with self.session() as session:
            result = await session.exec(select(MonitoredUrl).where(MonitoredUrl.url == url))
            source = result.first()
            if source is None:
                return False
            source.active = False
            session.add(source)

        self.logger.info("Monitored URL deactivated", url=url, source_id=source.id)
        return True

    async def all_sources(self) -> list[MonitoredUrl]:
        """Return every monitored URL, active or not."""
        async with self.async_session() as session:
            result = await session.exec(select(MonitoredUrl).order_by(col(MonitoredUrl.id)))
            return list(result.all())

    async def list_sources(self) -> list[str]:
        """Return the URLs of all active monitored sources.

        Raises:
            StorageError: If the query fails
        """
        try:
            async with self.async_session() as session:
                statement = select(MonitoredUrl.url).where(col(MonitoredUrl.active)).order_by(col(MonitoredUrl.id))
                result = await session.exec(statement)
                return list(result.all())
        except SQLAlchemyError as e:
            raise _storage_error("list monitored sources", e) from e

    async def mark_crawled(self, urls: Sequence[str]) -> None:
        """Set ``last_crawled_at`` to now for the given monitored URLs."""
        if not urls:
            return
        try:
            async with self.async_session() as session:
                statement = (
                    update(MonitoredUrl).where(col(MonitoredUrl.url).in_(list(urls))).values(last_crawled_at=utcnow())
                )
                # Use execute() for UPDATE statements (exec() is only for SELECT)
                await (await session.connection()).execute(statement)
                await session.commit()
        except SQLAlchemyError as e:
            raise _storage_error("mark sources crawled", e) from e

    # --- Staged quotes ---------------------------------------------------------------
    async def known_article_urls(self, urls: Sequence[str]) -> set[str]:
        """Return the subset of ``urls`` that already have staged quotes."""
        if not urls:
            return set()
        try:
            async with self.async_session() as session:
                statement = select(StagedQuote.article_url).where(col(StagedQuote.article_url).in_(list(urls)))
                result = await session.exec(statement)
                return set(result.all())
        except SQLAlchemyError as e:
            raise _storage_error("look up known articles", e) from e

    async def insert_quotes(self, records: Sequence[UniqueQuote], *, run_id: str) -> int:
        """Insert quote records in one transaction.

        Inserts are not idempotent: retrying a batch that committed writes it twice.

        Raises:
            StorageError: TRANSIENT for lock and connection failures, FATAL otherwise
        """
        if not records:
            return 0
        rows = [StagedQuote.from_unique_quote(record, run_id) for record in records]
        try:
            async with self.async_session() as session:
                session.add_all(rows)
                await session.commit()
        except SQLAlchemyError as e:
            raise _storage_error(f"insert {len(rows)} quotes", e) from e

        self.logger.debug("Inserted staged quotes", count=len(rows), run_id=run_id)
        return len(rows)

    async def list_staged_quotes(self, run_id: str | None = None, limit: int | None = None) -> list[StagedQuote]:
        async with self.async_session() as session:
            statement = select(StagedQuote).order_by(col(StagedQuote.id))
            if run_id is not None:
                statement = statement.where(StagedQuote.run_id == run_id)
            if limit is not None:
                statement = statement.limit(limit)
            result = await session.exec(statement)
            return list(result.all())

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get an async database session that commits on success.

        Usage:
            async with db.session() as session:
                # Use session here
        """
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        """Close the database connection."""
        await self.engine.dispose()
