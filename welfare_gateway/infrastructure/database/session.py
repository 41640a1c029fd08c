"""Engine and session factory (pooled Postgres in production, SQLite in tests)"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from welfare_gateway.config import settings


def configure_sqlite_locking(engine: Engine) -> Engine:
    """Make every SQLite transaction take the write lock up front.

    SQLite ignores SELECT ... FOR UPDATE; BEGIN IMMEDIATE is its equivalent,
    so balance recomputation and state compare-and-swap stay serialized.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def build_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        engine = create_engine(database_url, connect_args={"check_same_thread": False, "timeout": 30})
        return configure_sqlite_locking(engine)
    # Up to 20 connections; recycled hourly
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=10,
        pool_recycle=3600,
    )


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Session:
    """One session per HTTP request, closed when the response is done"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
