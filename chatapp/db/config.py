"""Database configuration for the chat backend."""
from typing import Generator
import logging
import os

from dotenv import load_dotenv
from sqlalchemy import event
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine, Session

# Load environment variables but prioritize local development
load_dotenv()

logger = logging.getLogger(__name__)

# Use the DATABASE_URL from environment variable, with fallback to SQLite for local dev
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./chat_app.db")

# Railway/Heroku style URLs use the old postgres:// scheme
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)


def build_engine(database_url: str):
    """Create an engine for the given URL, handling SQLite specifics."""
    if not database_url.startswith("sqlite"):
        logger.info("[DB CONFIG] Using PostgreSQL database")
        return create_engine(database_url, echo=False, pool_pre_ping=True)

    logger.info(f"[DB CONFIG] Using SQLite database: {database_url}")
    kwargs = {"connect_args": {"check_same_thread": False}}
    # In-memory databases live on a single connection
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool

    sqlite_engine = create_engine(database_url, echo=False, **kwargs)

    @event.listens_for(sqlite_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return sqlite_engine


engine = build_engine(DATABASE_URL)


def get_session() -> Generator[Session, None, None]:
    """Dependency for getting database sessions."""
    with Session(engine) as session:
        yield session
