import logging

from sqlalchemy import event, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

# registers every table on SQLModel.metadata
from interview_prep import models  # noqa: F401

logger = logging.getLogger(__name__)


def _configure_sqlite(engine: AsyncEngine) -> None:
    """Turn on foreign keys and real SAVEPOINT support for SQLite connections.

    aiosqlite emits its own BEGIN lazily, which breaks nested transactions,
    so BEGIN is emitted explicitly instead.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def is_memory_database(database_url: str) -> bool:
    url = make_url(database_url)
    return url.get_backend_name() == "sqlite" and (
        url.database in (None, "", ":memory:") or url.query.get("mode") == "memory"
    )


def make_engine(database_url: str) -> AsyncEngine:
    """Create the async engine for a database URL.

    :param database_url: SQLAlchemy async URL, e.g. postgresql+asyncpg://... or sqlite+aiosqlite:///./app.db
    :raises ValueError: For an in-memory SQLite URL, whose data would not be
        shared between pooled connections.
    :returns: configured AsyncEngine.
    """
    if is_memory_database(database_url):
        raise ValueError(
            "In-memory SQLite cannot serve concurrent requests, use a file database"
        )
    if database_url.startswith("sqlite"):
        engine = create_async_engine(
            database_url, connect_args={"check_same_thread": False}
        )
        _configure_sqlite(engine)
        return engine

    return create_async_engine(database_url, pool_pre_ping=True)


def make_memory_engine() -> AsyncEngine:
    """Engine on a private in-memory SQLite database.

    Every session shares the one connection, so only one transaction can be
    open at a time. Used by the test suite.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _configure_sqlite(engine)
    return engine


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet.

    Production databases are managed with the Alembic migrations; this is
    used by the test suite and by CREATE_TABLES_ON_STARTUP.
    """
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("Database tables ensured")
