import logging

from config import Settings
from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool

logger = logging.getLogger("urlshort.db")

Base = declarative_base()


def create_db_engine(settings: Settings) -> Engine:
    """Build the pooled engine.

    The pool is bounded (pool_size + max_overflow); once every connection is
    checked out, callers block for up to pool_timeout seconds.
    """
    is_sqlite = settings.database_url.startswith("sqlite")
    if is_sqlite:
        connect_args = {
            "check_same_thread": False,  # needed for SQLite + FastAPI
            "timeout": settings.db_connect_timeout,
        }
    else:
        connect_args = {"connect_timeout": settings.db_connect_timeout}

    engine = create_engine(
        settings.database_url,
        poolclass=QueuePool,
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
        connect_args=connect_args,
    )

    if is_sqlite:
        # SQLite ignores foreign keys (and so ON DELETE CASCADE) unless asked
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    logger.info(
        "Database engine ready: %s (pool_size=%d, max_overflow=%d)",
        engine.url.render_as_string(hide_password=True),
        settings.db_pool_size,
        settings.db_max_overflow,
    )
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
