"""Saved view definitions.

Views reference properties by id or slug. Those references are not
checked on write; the resolver treats dangling ones as absent.
"""

import logging

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from pagebase.core.db import Datastore, new_id, rowid, utcnow
from pagebase.core.errors import NotFoundError, ViewNotFoundError
from pagebase.core.models import View, ViewInput, ViewUpdate
from pagebase.core.tables import DatabaseRow, ViewRow

logger = logging.getLogger(__name__)


def insert_view(session: Session, database_id: str, data: ViewInput) -> ViewRow:
    """Insert a view row inside the caller's transaction."""
    now = utcnow()
    row = ViewRow(
        id=new_id(),
        database_id=database_id,
        name=data.name,
        type=data.type.value,
        filters=data.filters,
        sorts=[s.model_dump() for s in data.sorts],
        grouping=data.grouping,
        display_properties=list(data.display_properties),
        layout_options=data.layout_options,
        created_at=now,
        updated_at=now,
    )
    session.add(row)
    return row


def load_view_rows(session: Session, database_id: str) -> list[ViewRow]:
    """Views of a database in creation order."""
    stmt = (
        select(ViewRow)
        .where(ViewRow.database_id == database_id)
        .order_by(ViewRow.created_at, rowid(ViewRow))
    )
    return list(session.scalars(stmt))


def get_view_row(session: Session, database_id: str, view_id: str) -> ViewRow:
    """Look up a view scoped to its database.

    A view id that belongs to another database is reported exactly like
    one that does not exist.
    """
    row = session.scalars(
        select(ViewRow).where(ViewRow.id == view_id, ViewRow.database_id == database_id)
    ).first()
    if row is None:
        raise ViewNotFoundError(f"view {view_id} not found")
    return row


def _require_database(session: Session, database_id: str) -> None:
    """Raise NotFoundError unless the database exists."""
    if session.get(DatabaseRow, database_id) is None:
        raise NotFoundError(f"database {database_id} not found")


class ViewStore:
    """Saved views of a database, always looked up through their database."""

    def __init__(self, db: Datastore):
        self._db = db

    async def create_view(self, database_id: str, data: ViewInput) -> View:
        """Add a saved view to a database."""
        with self._db.transaction() as session:
            _require_database(session, database_id)
            row = insert_view(session, database_id, data)
            session.flush()
            logger.info("Created %s view %s on database %s", row.type, row.id, database_id)
            return View.model_validate(row)

    async def get_view(self, database_id: str, view_id: str) -> View:
        """Return one view of a database."""
        with self._db.transaction() as session:
            _require_database(session, database_id)
            return View.model_validate(get_view_row(session, database_id, view_id))

    async def list_views(self, database_id: str) -> list[View]:
        """List the views of a database in creation order."""
        with self._db.transaction() as session:
            _require_database(session, database_id)
            return [View.model_validate(r) for r in load_view_rows(session, database_id)]

    async def update_view(self, database_id: str, view_id: str, update: ViewUpdate) -> View:
        """Apply a partial update to a view."""
        with self._db.transaction() as session:
            _require_database(session, database_id)
            row = get_view_row(session, database_id, view_id)
            changes = update.model_dump(exclude_unset=True)
            for field, value in changes.items():
                if value is None:
                    continue
                if field == "type":
                    value = update.type.value
                setattr(row, field, value)
            row.updated_at = utcnow()
            session.flush()
            return View.model_validate(row)

    async def delete_view(self, database_id: str, view_id: str) -> None:
        """Delete a view; blocks embedding it lose their association."""
        with self._db.transaction() as session:
            _require_database(session, database_id)
            get_view_row(session, database_id, view_id)
            session.execute(delete(ViewRow).where(ViewRow.id == view_id))
        logger.info("Deleted view %s", view_id)
