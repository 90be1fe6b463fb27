"""SQLAlchemy engine factory for StackSave.

Provides a process-level engine singleton shared by all request threads
within a single process. Each separate process (the API server, the earnings
job) creates its own engine via get_engine().
"""
import sqlalchemy as sa
from sqlalchemy import event

_engines = {}


def _install_sqlite_locking(engine: sa.Engine) -> None:
    """Make every SQLite transaction take the write lock up front.

    pysqlite's deferred BEGIN lets two transactions read the same balance and
    then race for the write lock. BEGIN IMMEDIATE serialises them instead,
    which is the SQLite counterpart of SELECT ... FOR UPDATE on the user row.
    """
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine(url: str, pool_size: int = 10, max_overflow: int = 20) -> sa.Engine:
    """Build a new engine for `url` without touching the singleton cache."""
    if url.startswith('sqlite'):
        engine = sa.create_engine(
            url,
            connect_args={'check_same_thread': False, 'timeout': 30},
            echo=False,
        )
        _install_sqlite_locking(engine)
        return engine

    return sa.create_engine(
        url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=30,
        pool_recycle=1800,
        pool_pre_ping=True,
        echo=False,
    )


def get_engine(url: str = None, pool_size: int = 10, max_overflow: int = 20) -> sa.Engine:
    """Get or create a process-level engine singleton.

    Args:
        url: Database URL. If None, reads from config.DATABASE_URL.
        pool_size: Number of persistent connections in the pool.
        max_overflow: Additional connections allowed on burst.

    Returns:
        SQLAlchemy Engine.
    """
    if url is None:
        from stacksave.config import DATABASE_URL
        url = DATABASE_URL

    if url not in _engines:
        _engines[url] = create_engine(url, pool_size=pool_size, max_overflow=max_overflow)
    return _engines[url]


def dispose_engines() -> None:
    """Dispose and forget every cached engine."""
    for engine in _engines.values():
        engine.dispose()
    _engines.clear()
