from typing import Iterator

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from inkwell.core.logging_config import get_logger

logger = get_logger(__name__)


def build_engine(database_url: str) -> Engine:
    """Create the store engine. SQLite gets a thread-tolerant single-file setup."""
    if database_url.startswith("sqlite"):
        kwargs = {}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise each checkout sees an empty database
            kwargs["poolclass"] = StaticPool
        engine = create_engine(
            database_url,
            echo=False,
            connect_args={"check_same_thread": False},
            **kwargs,
        )
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_engine(
        database_url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=300,
        pool_timeout=30,
    )


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


def create_db_and_tables(engine: Engine) -> None:
    # Import models so their tables are registered on the metadata
    from inkwell import models  # noqa: F401

    SQLModel.metadata.create_all(engine)
    logger.info("Database tables ensured", url=str(engine.url.render_as_string(hide_password=True)))


def get_session(request: Request) -> Iterator[Session]:
    with Session(request.app.state.engine) as session:
        yield session
