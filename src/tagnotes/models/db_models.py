"""SQLAlchemy database models for the sqlite storage backend."""
import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, String, Text, create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from tagnotes.config import config

# Create base class for SQLAlchemy models
Base = declarative_base()


class DBEntry(Base):
    """One persisted key-value pair (``notes`` or ``tags``)."""
    __tablename__ = "kv_entries"
    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(
        DateTime,
        default=lambda: datetime.datetime.now(datetime.timezone.utc),
        nullable=False,
    )

    def __repr__(self) -> str:
        """Return string representation of entry."""
        return f"<Entry(key='{self.key}', size={len(self.value or '')})>"


def init_db(db_url: Optional[str] = None):
    """Create the engine and schema for the key-value table.

    Applies SQLite settings for crash resilience:
    - WAL (Write-Ahead Logging) mode for atomic writes
    - NORMAL synchronous mode (good balance of safety vs speed)

    Args:
        db_url: SQLAlchemy URL. Defaults to the configured database path.

    Returns:
        The SQLAlchemy engine.
    """
    engine = create_engine(db_url or config.get_db_url())

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine=None):
    """Get a session factory for the database."""
    if engine is None:
        engine = init_db()
    return sessionmaker(bind=engine)
