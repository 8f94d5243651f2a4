"""
Database engine setup and schema bootstrap.

Provides the SQLAlchemy async engine factory used by the composition root,
plus helpers to create the schema and check connectivity.
"""

from pathlib import Path
from typing import Any, Dict

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from mealdesk.core.logging_config import get_logger
from mealdesk.models.schema import metadata

logger = get_logger(__name__)


def _is_memory_sqlite(database_url: str) -> bool:
    return ":memory:" in database_url or "mode=memory" in database_url


def _ensure_sqlite_directory(database: str | None) -> None:
    # SQLite creates the file but not its directory
    if not database or database == ":memory:" or database.startswith("file:"):
        return
    Path(database).parent.mkdir(parents=True, exist_ok=True)


def get_async_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Build the async engine for `database_url`.

    SQLite engines additionally get:
    - StaticPool for in-memory databases so every caller shares one
      connection; file databases keep the default pool so concurrent
      transactions get separate connections
    - check_same_thread=False, since aiosqlite runs the connection in a worker thread
    - foreign key enforcement
    - an explicit BEGIN, so reads run inside the transaction instead
      of in the driver's autocommit mode

    Args:
        database_url: SQLAlchemy URL (sqlite+aiosqlite:// or mysql+aiomysql://)
        echo: Log every statement

    """
    is_sqlite = database_url.startswith("sqlite")

    connect_args: Dict[str, Any] = {"check_same_thread": False} if is_sqlite else {}

    engine_kwargs: Dict[str, Any] = {
        "echo": echo,
        "connect_args": connect_args,
    }

    if is_sqlite and _is_memory_sqlite(database_url):
        engine_kwargs["poolclass"] = StaticPool

    engine = create_async_engine(database_url, **engine_kwargs)

    if is_sqlite:
        _ensure_sqlite_directory(engine.url.database)

        @event.listens_for(engine.sync_engine, "connect")
        def _set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ANN001
            # Take BEGIN away from the driver; the "begin" hook below emits it
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine.sync_engine, "begin")
        def _do_begin(conn):  # noqa: ANN001
            conn.exec_driver_sql("BEGIN")

    logger.debug(
        "Database engine created",
        extra={"dialect": engine.dialect.name, "pool": type(engine.pool).__name__},
    )
    return engine


async def init_db(engine: AsyncEngine) -> None:
    """
    Create every table of the schema that does not exist yet.

    Schema migration is out of scope; this only bootstraps an empty store.
    """
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    logger.info("Database schema ready", extra={"tables": sorted(metadata.tables)})


async def close_db(engine: AsyncEngine) -> None:
    """
    Close all pooled connections.

    Should be called at shutdown.
    """
    await engine.dispose()


class DatabaseHealthCheck:
    """Connectivity check the CLI runs before every command."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    async def check_connection(self) -> bool:
        """Run `SELECT 1`; False (and a warning) when the store is unreachable."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
                return True
        except Exception:
            logger.warning("Database health check failed", exc_info=True)
            return False

    def get_database_info(self) -> dict:
        """URL (password hidden) and dialect of the engine."""
        return {
            "url": self.engine.url.render_as_string(hide_password=True),
            "dialect": self.engine.dialect.name,
            "database": self.engine.url.database,
            "async": True,
        }
