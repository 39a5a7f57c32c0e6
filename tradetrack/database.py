"""
TradeTrack — Async SQLAlchemy database setup (sql record store backend).
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from tradetrack.config import settings


def serialize_sqlite_writes(engine: AsyncEngine) -> None:
    """
    Make every SQLite transaction take the database write lock at BEGIN.

    The sqlite driver defers BEGIN until the first write, which leaves the
    read half of a read-then-write transaction unlocked.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


engine = create_async_engine(
    settings.database_url,
    echo=False,
    # pool settings only for postgres
    **(
        {}
        if "sqlite" in settings.database_url
        else {
            "pool_size": 5,
            "max_overflow": 10,
            "pool_pre_ping": True,       # test connections before use (survives sleep/wake)
            "pool_recycle": 300,          # recycle connections every 5 min to avoid stale FDs
        }
    ),
)
if engine.dialect.name == "sqlite":
    serialize_sqlite_writes(engine)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def init_db() -> None:
    """Create all tables (used in lifespan and tests)."""
    # register models on Base.metadata
    import tradetrack.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
