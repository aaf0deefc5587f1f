"""Database engine, session factory and declarative base"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (AsyncEngine, AsyncSession,
                                    async_sessionmaker, create_async_engine)
from sqlalchemy.orm import declarative_base

from app.config import Settings

# Base class for models
Base = declarative_base()


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """
    Create the async engine described by settings.

    PostgreSQL engines get a connection pool and the configured isolation
    level so every engine transaction reads from a single snapshot.

    Args:
        settings: Application settings

    Returns:
        AsyncEngine
    """
    if settings.is_sqlite:
        engine = create_async_engine(settings.database_url, echo=settings.debug)

        # Let SQLAlchemy emit BEGIN itself so SAVEPOINTs nest correctly
        @event.listens_for(engine.sync_engine, "connect")
        def _disable_driver_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

        return engine

    options = {
        "echo": settings.debug,
        "pool_size": 20,
        "max_overflow": 10,
        "pool_pre_ping": True,
    }
    if settings.db_isolation_level:
        options["isolation_level"] = settings.db_isolation_level
    return create_async_engine(settings.database_url, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create async session factory bound to engine"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_all(engine: AsyncEngine) -> None:
    """Create all tables (development and tests)"""
    # Register every model on Base.metadata
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
