"""Database engine, session factory, and table creation."""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import HawkeyeConfig
from .models.base import Base
from .utils.logging import get_logger

logger = get_logger("hawkeye.database")


def create_engine(config: HawkeyeConfig) -> AsyncEngine:
    """Create the async database engine for the configured URL."""
    connect_args = {}
    if config.database_url.startswith("sqlite"):
        connect_args = {"timeout": 30}
    engine = create_async_engine(
        config.database_url,
        echo=config.debug,
        pool_pre_ping=True,
        connect_args=connect_args,
    )
    if engine.dialect.name == "sqlite":
        _enable_sqlite_foreign_keys(engine)
    return engine


def _enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _set_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the async session factory bound to an engine."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create all database tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database_tables_ready", dialect=engine.dialect.name)
