"""SQLAlchemy database configuration and connection management.

This module is responsible for:
- Engine creation and configuration
- Session factory singletons
- Schema creation
"""

from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from podtrack.config import get_logger, settings
from podtrack.infrastructure.persistence.database.db_models import PodtrackDBBase

logger = get_logger(__name__)


def _is_memory_database(db_url: str) -> bool:
    database = make_url(db_url).database
    return database in (None, "", ":memory:")


def create_db_engine(connection_string: str | None = None) -> AsyncEngine:
    """Create async SQLAlchemy engine with SQLite concurrency settings."""
    db_url = connection_string or settings.database.url
    is_sqlite = db_url.startswith("sqlite")

    engine_kwargs: dict = {"echo": settings.database.echo}
    if is_sqlite:
        engine_kwargs["connect_args"] = {
            "check_same_thread": False,
            "timeout": settings.database.busy_timeout_ms / 1000,
        }
        if _is_memory_database(db_url):
            # One shared connection, otherwise every session sees an empty database
            engine_kwargs["poolclass"] = StaticPool
        else:
            database = make_url(db_url).database
            if database:
                Path(database).parent.mkdir(parents=True, exist_ok=True)
            engine_kwargs.update(
                pool_size=1,
                max_overflow=2,
                pool_timeout=settings.database.pool_timeout,
                pool_recycle=3600,
                pool_pre_ping=True,
            )

    engine = create_async_engine(db_url, **engine_kwargs)

    if is_sqlite:
        busy_timeout = settings.database.busy_timeout_ms

        @event.listens_for(engine.sync_engine, "connect")  # type: ignore
        def _set_sqlite_pragma(dbapi_connection, _):  # type: ignore # pragma: no cover
            """Set SQLite PRAGMAs on connection creation."""
            cursor = dbapi_connection.cursor()
            cursor.execute(f"PRAGMA busy_timeout = {busy_timeout}")
            cursor.execute("PRAGMA journal_mode = WAL")
            cursor.execute("PRAGMA synchronous = NORMAL")
            cursor.execute("PRAGMA foreign_keys = ON")
            cursor.close()

    logger.debug("Created database engine", url=make_url(db_url).render_as_string())
    return engine


# Global engine singleton
_engine: AsyncEngine | None = None


def get_engine() -> AsyncEngine:
    """Get or create the global database engine singleton."""
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


def create_session_factory(engine: AsyncEngine | None = None) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory for the given engine."""
    return async_sessionmaker(
        bind=engine or get_engine(),
        expire_on_commit=False,
        autoflush=True,
    )


# Global session factory singleton
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the global session factory singleton."""
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory()
    return _session_factory


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create all tables that do not exist yet."""
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(PodtrackDBBase.metadata.create_all)
    logger.debug("Database schema ready")


async def dispose_engine() -> None:
    """Close pooled connections and reset the singletons."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
