from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from clubauth.core.config import settings


def build_engine(url: str, **kwargs) -> AsyncEngine:
    return create_async_engine(url, future=True, pool_pre_ping=True, **kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.DATABASE_URL)
AsyncSessionLocal = build_session_factory(engine)


async def init_db(bind: AsyncEngine = engine) -> None:
    # importing the models registers their tables on SQLModel.metadata
    from clubauth.db import models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
