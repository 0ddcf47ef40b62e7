"""Database engine and helpers.

This module configures the SQLModel/SQLAlchemy engine (a local SQLite
file by default, see `settings.DATABASE_URL`) and provides small helpers
used by the application, the seed script and tests.
"""

from sqlmodel import SQLModel, create_engine, Session
from sqlalchemy.engine import Engine

from .config import settings


def build_engine(url: str) -> Engine:
    """Create an engine for `url`.

    SQLite connections are shared across request threads and wait on the
    database lock instead of failing immediately when another writer holds it.
    """
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 15}
    return create_engine(url, echo=False, connect_args=connect_args)


engine = build_engine(settings.DATABASE_URL)


def create_db_and_tables(bind: Engine = None):
    """Create database tables using SQLModel metadata.

    This function is intended for local development and lightweight
    scripts; production deployments should rely on a proper migration
    tool (alembic) instead.
    """
    # models must be imported so their tables are registered on the metadata
    from . import models  # noqa: F401
    SQLModel.metadata.create_all(bind or engine)


def get_session():
    """Yield a database `Session` for FastAPI dependency injection.

    The generator yields a session and ensures it is closed when the
    request scope finishes.
    """
    with Session(engine) as session:
        yield session
