# ABOUTME: Shared pytest fixtures for run configs, pipeline state, limiters and an in-memory database
# ABOUTME: Collaborator fakes and model factories live in fakes.py

import pytest
import pytest_asyncio
from fakes import no_sleep
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel.ext.asyncio.session import AsyncSession

from echograph.core.models import RunConfig
from echograph.core.state import PipelineState
from echograph.persistence import DatabaseManager
from echograph.utils.concurrency import ConcurrencyLimiter
from echograph.utils.retry import RetryPolicy


@pytest.fixture
def run_config() -> RunConfig:
    return RunConfig(run_id="run-test", retry_initial_delay=0.0)


@pytest.fixture
def state(run_config) -> PipelineState:
    return PipelineState(config=run_config)


@pytest_asyncio.fixture
async def limiter():
    """Limiter with a fast retry policy (three retries, no sleeping)."""
    policy = RetryPolicy(max_retries=3, initial_delay=0.0, sleep=no_sleep)
    limiter = ConcurrencyLimiter(4, policy)
    yield limiter
    await limiter.aclose(cancel_pending=True)


@pytest_asyncio.fixture
async def temp_db() -> DatabaseManager:
    """Provide an in-memory database manager for async tests."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    db = DatabaseManager("sqlite+aiosqlite:///:memory:")
    db.engine = engine
    db.async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await db.create_tables()
    yield db
    await db.close()
