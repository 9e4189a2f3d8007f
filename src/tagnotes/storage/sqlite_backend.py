"""Key-value backend on a SQLite table."""
import datetime
import logging
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from tagnotes.exceptions import ErrorCode, StorageError
from tagnotes.models.db_models import DBEntry, get_session_factory, init_db
from tagnotes.storage.base import KeyValueBackend

logger = logging.getLogger(__name__)


class SqliteBackend(KeyValueBackend):
    """Stores each key as a row of the ``kv_entries`` table."""

    def __init__(self, engine=None, db_url: Optional[str] = None):
        """Initialize the backend.

        Args:
            engine: Pre-configured SQLAlchemy engine. When None, one is
                created from ``db_url`` (or the configured database path).
            db_url: SQLAlchemy URL, used only when ``engine`` is None.
        """
        self.engine = engine or init_db(db_url)
        self.session_factory = get_session_factory(self.engine)
        logger.info(f"SqliteBackend initialized ({self.engine.url})")

    def load(self, key: str) -> Optional[str]:
        try:
            with self.session_factory() as session:
                return session.scalar(select(DBEntry.value).where(DBEntry.key == key))
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to read '{key}'",
                operation="load",
                key=key,
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            ) from e

    def save(self, key: str, value: str) -> None:
        try:
            with self.session_factory() as session:
                entry = session.get(DBEntry, key)
                now = datetime.datetime.now(datetime.timezone.utc)
                if entry is None:
                    session.add(DBEntry(key=key, value=value, updated_at=now))
                else:
                    entry.value = value
                    entry.updated_at = now
                session.commit()
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to write '{key}'",
                operation="save",
                key=key,
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e
        logger.debug(f"Saved {key} ({len(value)} chars)")

    def delete(self, key: str) -> bool:
        try:
            with self.session_factory() as session:
                result = session.execute(delete(DBEntry).where(DBEntry.key == key))
                session.commit()
                return result.rowcount > 0
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to delete '{key}'",
                operation="delete",
                key=key,
                code=ErrorCode.STORAGE_DELETE_FAILED,
                original_error=e,
            ) from e

    def keys(self) -> List[str]:
        with self.session_factory() as session:
            return list(session.scalars(select(DBEntry.key).order_by(DBEntry.key)))

    def close(self) -> None:
        self.engine.dispose()
