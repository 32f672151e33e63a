import asyncio

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlmodel import SQLModel

from alembic import command
from alembic.config import Config

from .base import Settings, get_settings

_engine: AsyncEngine | None = None


def get_database_url(settings: Settings, is_async=False) -> str:
    """Construct the database URL based on environment settings.

    Parameters
    ----------
    settings: Settings
        Application settings object.
    is_async: bool, default=False
        Boolean indicating whether to return an asynchronous URL.

    Returns
    -------
    str
        String representing the database connection URL.
    """
    if settings.database_url:
        if is_async:
            return settings.database_url
        return settings.database_url.replace("+aiosqlite", "")

    if is_async:
        return f"sqlite+aiosqlite:///{settings.base_dir}/db.sqlite3"
    else:
        return f"sqlite:///{settings.base_dir}/db.sqlite3"


def enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    """Turn on foreign key enforcement for every new SQLite connection.

    Rule and recipient rows depend on `ON DELETE CASCADE`, which SQLite
    ignores unless the pragma is set per connection.

    Parameters
    ----------
    engine: AsyncEngine
        Engine whose connections should enforce foreign keys.
    """
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def build_database_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an asynchronous engine with the project's connection defaults.

    Parameters
    ----------
    database_url: str
        Async SQLAlchemy URL.
    echo: bool, default=False
        Log emitted SQL statements.

    Returns
    -------
    AsyncEngine
        Configured engine.
    """
    engine = create_async_engine(database_url, echo=echo)
    enable_sqlite_foreign_keys(engine)
    return engine


async def get_database_engine():
    """Provide a singleton asynchronous SQLAlchemy database engine.

    Returns
    -------
    _engine
        Asynchronous SQLAlchemy engine instance.
    """
    global _engine

    if _engine is None:
        settings = get_settings()
        database_url = get_database_url(settings, is_async=True)
        _engine = build_database_engine(database_url)

    return _engine


async def close_database_engine():
    """Dispose of existing database engine."""
    global _engine

    if _engine:
        await _engine.dispose()
        _engine = None


async def get_database_session():
    """Provide an asynchronous SQLAlchemy session.

    Yields
    ------
    session
        Asynchronous SQLAlchemy session instance.
    """
    engine = await get_database_engine()
    async with AsyncSession(bind=engine, expire_on_commit=False) as session:
        try:
            yield session
        finally:
            await session.close()


async def create_tables(engine: AsyncEngine | None = None):
    """Asynchronously create all database tables defined in SQLModel metadata.

    Parameters
    ----------
    engine: AsyncEngine | None, optional
        Engine to create tables on. Defaults to the application engine.
    """
    engine = engine or await get_database_engine()
    async with engine.begin() as connection:
        await connection.run_sync(SQLModel.metadata.create_all)


async def run_migrations():
    """Apply all pending database migrations.

    Executes unapplied migrations in chronological order to bring database schema
    up to date with current model definitions. Alembic drives its own event
    loop, so the upgrade runs in a worker thread.

    Raises
    ------
    AlembicError
        If migration conflicts exist or database connection fails.
    """
    settings = get_settings()
    database_url = get_database_url(settings, is_async=True)

    alembic_cfg = Config(str(settings.base_dir / "alembic.ini"))
    alembic_cfg.set_main_option("sqlalchemy.url", str(database_url))
    await asyncio.to_thread(command.upgrade, alembic_cfg, "head")
