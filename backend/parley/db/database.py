"""
Database engine, session factory and table creation using SQLAlchemy async.
"""
from typing import Optional
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool
from parley.core.config import settings


# Base class for all models
Base = declarative_base()


def create_engine_for(url: str, echo: bool = False) -> AsyncEngine:
    """
    Build an async engine for a database URL.

    In-memory SQLite keeps a single shared connection so every session sees the
    same tables; server databases get a pool that verifies connections first.
    """
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database in (None, "", ":memory:"):
        return create_async_engine(
            url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(url, echo=echo, pool_pre_ping=True)


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = create_engine_for(settings.DATABASE_URL, echo=settings.DEBUG)
AsyncSessionLocal = create_session_factory(engine)


async def get_db() -> AsyncSession:
    """
    Dependency function yielding one request-scoped session.

    Usage in FastAPI endpoints:
        @router.get("/summary")
        async def get_user_summary(store: ExchangeStore = Depends(get_exchange_store)):
            ...
    """
    async with AsyncSessionLocal() as session:
        yield session


async def create_tables(bind: Optional[AsyncEngine] = None) -> None:
    """Create the chat_history and user_summaries tables if missing"""
    # Registers the models on Base.metadata
    from parley.models import exchange, user_summary  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db():
    """
    Initialize database - create all tables.
    This should be called on application startup.
    """
    await create_tables(engine)
