"""
Database layer for the taskboard engine.

Provides SQLAlchemy ORM models, async engine/session management, and database
initialization. Entities reference each other by id only; navigation between
boards, columns and tasks always goes through the stores.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import AsyncGenerator, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from taskboard.config import DEFAULT_DATABASE_URL, Config
from taskboard.logging_config import get_logger
from taskboard.models import TaskStatus

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class BoardORM(Base):
    """
    SQLAlchemy ORM model for boards.

    A board is the container whose columns are kept in contiguous order.
    """
    __tablename__ = "boards"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def __repr__(self) -> str:
        return f"<BoardORM(id={self.id}, name={self.name})>"


class ColumnORM(Base):
    """
    SQLAlchemy ORM model for board columns (lanes).

    Position is the zero-based rank among the columns of the same board.
    No unique constraint on (board_id, position):
    bulk shifts move positions through values already held by neighbours.
    """
    __tablename__ = "board_columns"
    __table_args__ = (
        Index("ix_board_columns_board_position", "board_id", "position"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    board_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_terminal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    capacity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ColumnORM(id={self.id}, name={self.name}, position={self.position}, "
            f"is_terminal={self.is_terminal})>"
        )


class TaskORM(Base):
    """
    SQLAlchemy ORM model for tasks.

    Position is the zero-based rank among the tasks of the same column.
    Hierarchy is expressed only through the parent_id foreign key.
    """
    __tablename__ = "tasks"
    __table_args__ = (
        Index("ix_tasks_column_position", "column_id", "position"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)

    column_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("board_columns.id"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TaskStatus.TODO.value
    )
    completion_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Hierarchy
    parent_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<TaskORM(id={self.id}, title={self.title}, column_id={self.column_id}, "
            f"position={self.position}, status={self.status})>"
        )


def _serialize_sqlite_writers(engine: AsyncEngine) -> None:
    """
    Make every SQLite transaction start with BEGIN IMMEDIATE.

    SQLite has no row locks and the driver defers BEGIN until the first
    write, so the reads of a move could predate a concurrent commit.
    Taking the write lock at BEGIN serializes whole transactions instead.
    """
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class DatabaseManager:
    """
    Manages database connections and session lifecycle.

    Handles async engine creation, session management, and database
    initialization for both production and testing scenarios.
    """

    def __init__(self, database_url: str = DEFAULT_DATABASE_URL):
        """
        Initialize database manager with connection URL.

        Args:
            database_url: SQLAlchemy database URL (default: local SQLite file)
        """
        self.database_url = database_url
        self.engine: Optional[AsyncEngine] = None
        self.session_maker: Optional[async_sessionmaker[AsyncSession]] = None

    async def initialize(self) -> None:
        """
        Initialize the database engine and create tables.

        Creates the async engine, session maker, and all tables defined
        in the Base metadata.
        """
        try:
            logger.info(f"Initializing database: {self.database_url}")
            if self.database_url.startswith("sqlite") and ":memory:" not in self.database_url:
                db_path = self.database_url.split(":///", 1)[-1]
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)

            self.engine = create_async_engine(
                self.database_url,
                echo=False,  # Set to True for SQL query logging
            )
            if self.engine.dialect.name == "sqlite":
                _serialize_sqlite_writers(self.engine)

            self.session_maker = async_sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}", exc_info=True)
            raise

    async def close(self) -> None:
        """
        Close the database engine and cleanup resources.
        """
        if self.engine:
            logger.info("Closing database connection")
            try:
                await self.engine.dispose()
                self.engine = None
                self.session_maker = None
                logger.info("Database connection closed successfully")
            except Exception as e:
                logger.error(f"Error closing database connection: {e}", exc_info=True)
                raise

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get an async database session with automatic transaction management.

        The session commits when the block exits normally and rolls back
        when it raises, so one block is one atomic transaction.

        Yields:
            AsyncSession for database operations

        Example:
            async with db_manager.get_session() as session:
                result = await session.execute(select(TaskORM))
                tasks = result.scalars().all()
        """
        if not self.session_maker:
            raise RuntimeError("DatabaseManager not initialized. Call initialize() first.")

        async with self.session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception as e:
                logger.debug(f"Database session error, rolling back: {e}")
                await session.rollback()
                raise


# Global database manager instance
_db_manager: Optional[DatabaseManager] = None


def get_database_manager(database_url: Optional[str] = None) -> DatabaseManager:
    """
    Get or create the global database manager instance.

    Args:
        database_url: SQLAlchemy database URL; None reads [database] url
                      from config (TASKBOARD_DATABASE_URL overrides it)

    Returns:
        DatabaseManager instance
    """
    global _db_manager
    if _db_manager is None:
        if database_url is None:
            database_url = Config().get_database_config()['url']
        _db_manager = DatabaseManager(database_url)
    return _db_manager


async def init_database(database_url: Optional[str] = None) -> DatabaseManager:
    """
    Initialize the database and return the manager instance.

    Convenience function for service startup.

    Args:
        database_url: SQLAlchemy database URL (default: from config)

    Returns:
        Initialized DatabaseManager instance
    """
    db_manager = get_database_manager(database_url)
    await db_manager.initialize()
    return db_manager
