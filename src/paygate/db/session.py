# src/paygate/db/session.py
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    if not database_url:
        raise RuntimeError("DATABASE_URL not set")
    return create_async_engine(database_url, echo=echo, pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


async def init_models(engine: AsyncEngine) -> None:
    """
    Create missing tables. Schema changes beyond that are out of band.
    """
    from . import models  # noqa: F401  register tables on Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
