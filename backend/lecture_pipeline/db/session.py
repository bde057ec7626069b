from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from lecture_pipeline.core.settings import Settings


def create_engine(settings: Settings) -> AsyncEngine:
    # Engines are created by the application factory, which runs inside the
    # serving event loop; asyncpg connections must not cross loops.
    return create_async_engine(
        settings.database_url,
        pool_pre_ping=True,
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        expire_on_commit=False,
        autoflush=False,
        autocommit=False,
    )


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    SessionLocal = request.app.state.services.session_maker
    async with SessionLocal() as session:
        yield session
