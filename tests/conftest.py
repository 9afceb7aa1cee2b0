from __future__ import annotations

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from src.db import Base
from src.engine import SessionOrchestrator


@pytest_asyncio.fixture
async def session_factory() -> async_sessionmaker:
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False)
    try:
        yield factory
    finally:
        await engine.dispose()


@pytest.fixture
def now() -> datetime:
    return datetime(2025, 3, 14, 9, 30, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def orchestrator(session_factory) -> SessionOrchestrator:
    engine = SessionOrchestrator(session_factory, word_time_limit=30.0)
    await engine.achievements.seed_catalog()
    return engine
