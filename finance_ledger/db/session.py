"""Async engine, session factory and declarative base for the ledger schema."""
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from finance_ledger.core.config import settings

# Every ledger table lives in the `app` schema
Base = declarative_base()


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    """
    Session factory used by the API and the tests.

    Objects stay loaded after commit: services return ORM rows they have
    just committed, and the transfer write reads generated ids after flush.
    """
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = create_async_engine(
    settings.async_database_url,
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    pool_pre_ping=True,
    echo=settings.debug,
    connect_args={"server_settings": {"search_path": "app, public"}}
)

AsyncSessionLocal = make_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session.

    Services commit their own units of work; anything left pending when a
    request fails is rolled back here.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
