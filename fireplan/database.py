from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel
from fireplan.core.config import settings


def build_engine(url: str, **kwargs):
    # echo=True will log SQL queries for debugging
    if not url.startswith("sqlite"):
        kwargs.setdefault("pool_size", 20)
        kwargs.setdefault("max_overflow", 0)
    return create_async_engine(url, echo=False, future=True, **kwargs)


def build_session_maker(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# Create async engine
engine = build_engine(settings.DATABASE_URL)

# Async session factory
async_session_maker = build_session_maker(engine)


async def init_db(db_engine=None):
    # Import models so their tables are registered on the metadata
    from fireplan.models import ScenarioRecord  # noqa: F401

    async with (db_engine or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
