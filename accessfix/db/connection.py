"""Database connection and initialization for AccessFix."""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional, Union

import aiosqlite
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..config import get_settings
from ..logging import get_logger

logger = get_logger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schema.sql"


class Database:
    """An async SQLite database holding jobs, plans and reports.

    Every transaction opened through :meth:`transaction` starts with
    ``BEGIN IMMEDIATE`` so the write lock is taken before the first read and
    read-modify-write sequences are serialized across connections.
    """

    def __init__(self, db_path: Union[str, Path], busy_timeout: float = 30.0):
        self.db_path = Path(db_path)
        self.busy_timeout = busy_timeout
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    async def init(self) -> None:
        """Create the engine and the schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._engine = create_async_engine(
            f"sqlite+aiosqlite:///{self.db_path}",
            echo=False,  # Set to True for SQL debugging
            connect_args={"timeout": self.busy_timeout},
        )

        # Let SQLAlchemy emit BEGIN itself instead of pysqlite's deferred BEGIN
        @event.listens_for(self._engine.sync_engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(self._engine.sync_engine, "begin")
        def _on_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        await self._create_tables()

        logger.info("Database initialized", db_path=str(self.db_path))

    async def _create_tables(self) -> None:
        """Create database tables from schema."""
        schema_sql = SCHEMA_PATH.read_text()

        async with aiosqlite.connect(self.db_path) as db:
            await db.executescript(schema_sql)
            await db.commit()

        logger.debug("Database tables created")

    def session(self) -> AsyncSession:
        """Open a new session; the caller owns closing it."""
        if self._session_factory is None:
            raise RuntimeError("Database not initialized; call init() first")
        return self._session_factory()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """A session inside one committed-or-rolled-back transaction."""
        async with self.session() as session:
            async with session.begin():
                yield session

    async def close(self) -> None:
        """Close database connections."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None

        logger.info("Database connections closed", db_path=str(self.db_path))


# Global database instance
_database: Optional[Database] = None


async def init_database(db_path: Optional[Union[str, Path]] = None) -> Database:
    """Initialize the global database (settings path unless given)."""
    global _database

    if _database is not None:
        await _database.close()

    _database = Database(db_path or get_settings().db_path)
    await _database.init()
    return _database


async def get_database() -> Database:
    """Get the global database, initializing it on first use."""
    if _database is None:
        await init_database()

    assert _database is not None
    return _database


async def close_database() -> None:
    """Close the global database."""
    global _database

    if _database is not None:
        await _database.close()
        _database = None
