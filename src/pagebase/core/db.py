"""Engine, session and transaction handling for the SQLite store.

The engine is pinned to a single pooled connection, so at most one
transaction is in flight per process. Callers that need the store while
another operation holds the connection wait up to ``pool_timeout``.
"""

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import ColumnElement, create_engine, event, literal_column, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from pagebase.core.errors import ConflictError, InternalError
from pagebase.core.tables import Base

logger = logging.getLogger(__name__)

MEMORY = ":memory:"
# SQLite reports primary key collisions with the same message.
UNIQUE_FAILURE = "UNIQUE constraint failed"


def new_id() -> str:
    """Return a fresh opaque entity id."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Return the current UTC time."""
    return datetime.now(timezone.utc)


def is_uniqueness_violation(exc: IntegrityError) -> bool:
    """True for UNIQUE and PRIMARY KEY violations, False for FK, NOT NULL or CHECK."""
    return UNIQUE_FAILURE in str(exc.orig)


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    """Turn on SQLite foreign key enforcement for a new connection."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Datastore:
    """Owns the engine and hands out transactional sessions."""

    def __init__(self, path: Path | str, pool_timeout: float = 30.0, echo: bool = False):
        self.path = path
        if str(path) == MEMORY:
            url = "sqlite://"
        else:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
            url = f"sqlite:///{path}"

        self.engine = create_engine(
            url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=1,
            max_overflow=0,
            pool_timeout=pool_timeout,
            connect_args={"check_same_thread": False},
        )
        event.listen(self.engine, "connect", _enable_foreign_keys)
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)
        Base.metadata.create_all(self.engine, checkfirst=True)
        logger.info("Store opened at %s", path)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Run the enclosed block in one transaction.

        Commits on normal exit. Any exception, cancellation included,
        rolls the whole transaction back before propagating.
        """
        session = self._sessions()
        try:
            with session.begin():
                yield session
        except IntegrityError as exc:
            if not is_uniqueness_violation(exc):
                logger.exception("Integrity failure")
                raise InternalError("internal storage error") from exc
            logger.warning("Uniqueness violation: %s", exc.orig)
            raise ConflictError("write conflicts with existing data") from exc
        except SQLAlchemyError as exc:
            logger.exception("Storage failure")
            raise InternalError("internal storage error") from exc
        finally:
            session.close()

    def ping(self) -> None:
        """Check that the store answers a trivial query."""
        with self.transaction() as session:
            session.execute(text("SELECT 1"))

    def close(self) -> None:
        """Release the pooled connection."""
        self.engine.dispose()


def rowid(model) -> ColumnElement:
    """SQLite rowid of ``model``'s table, the tie-breaker for creation order."""
    return literal_column(f"{model.__tablename__}.rowid")
