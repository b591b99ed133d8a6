"""Database schemas: databases and their typed property definitions."""

import logging
from collections.abc import Iterable
from typing import TypeVar

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from pagebase.core.db import Datastore, new_id, rowid, utcnow
from pagebase.core.errors import ConflictError, NotFoundError
from pagebase.core.models import (
    Database,
    DatabaseCreate,
    DatabaseUpdate,
    Property,
    PropertyInput,
    PropertyUpdate,
    View,
    ViewInput,
    ViewType,
    slugify,
)
from pagebase.core.tables import DatabaseRow, ItemRow, PageRow, PropertyRow
from pagebase.core.views import insert_view, load_view_rows

logger = logging.getLogger(__name__)

DEFAULT_VIEW = ViewInput(name="Table", type=ViewType.TABLE)

P = TypeVar("P", PropertyRow, Property)


def find_property(properties: Iterable[P], ref: str) -> P | None:
    """Find a property by id, falling back to slug."""
    properties = list(properties)
    for prop in properties:
        if prop.id == ref:
            return prop
    for prop in properties:
        if prop.slug == ref:
            return prop
    return None


def get_database_row(session: Session, database_id: str) -> DatabaseRow:
    """Load a database row or raise NotFoundError."""
    row = session.get(DatabaseRow, database_id)
    if row is None:
        raise NotFoundError(f"database {database_id} not found")
    return row


def load_property_rows(session: Session, database_id: str) -> list[PropertyRow]:
    """Properties in display order: order_index, then creation order."""
    stmt = (
        select(PropertyRow)
        .where(PropertyRow.database_id == database_id)
        .order_by(PropertyRow.order_index, PropertyRow.created_at, rowid(PropertyRow))
    )
    return list(session.scalars(stmt))


def get_property_row(session: Session, database_id: str, ref: str) -> PropertyRow:
    """Load a property by id or slug or raise NotFoundError."""
    prop = find_property(load_property_rows(session, database_id), ref)
    if prop is None:
        raise NotFoundError(f"property {ref} not found")
    return prop


def database_snapshot(session: Session, row: DatabaseRow) -> Database:
    """Build the full schema view of a database."""
    return Database(
        id=row.id,
        slug=row.slug,
        title=row.title,
        description=row.description,
        icon=row.icon,
        created_at=row.created_at,
        updated_at=row.updated_at,
        properties=[Property.model_validate(p) for p in load_property_rows(session, row.id)],
        views=[View.model_validate(v) for v in load_view_rows(session, row.id)],
    )


def _insert_property(
    session: Session, database_id: str, data: PropertyInput, order_index: int
) -> PropertyRow:
    """Insert a property row inside the caller's transaction."""
    now = utcnow()
    row = PropertyRow(
        id=new_id(),
        database_id=database_id,
        name=data.name,
        slug=data.slug or slugify(data.name),
        type=data.type.value,
        config=data.config,
        is_required=data.is_required,
        default=data.default,
        order_index=order_index,
        created_at=now,
        updated_at=now,
    )
    session.add(row)
    return row


class SchemaStore:
    """Databases and their property definitions."""

    def __init__(self, db: Datastore):
        self._db = db

    async def create_database(self, data: DatabaseCreate) -> Database:
        """Create a database with its properties and views in one transaction.

        Without any views a default table view is added.
        """
        slugs = [p.slug or slugify(p.name) for p in data.properties]
        duplicates = sorted({s for s in slugs if slugs.count(s) > 1})
        if duplicates:
            raise ConflictError(f"duplicate property slug: {', '.join(duplicates)}")

        with self._db.transaction() as session:
            now = utcnow()
            row = DatabaseRow(
                id=new_id(),
                slug=data.slug or slugify(data.title),
                title=data.title,
                description=data.description,
                icon=data.icon,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.flush()

            for index, prop in enumerate(data.properties):
                order = prop.order_index if prop.order_index is not None else index
                _insert_property(session, row.id, prop, order)
            for view in data.views or [DEFAULT_VIEW]:
                insert_view(session, row.id, view)
            session.flush()

            logger.info(
                "Created database %s (%s) with %d properties",
                row.id,
                row.title,
                len(data.properties),
            )
            return database_snapshot(session, row)

    async def get_database(self, database_id: str) -> Database:
        """Return a database with its properties and views."""
        with self._db.transaction() as session:
            return database_snapshot(session, get_database_row(session, database_id))

    async def list_databases(self) -> list[Database]:
        """List all databases, most recently updated first."""
        with self._db.transaction() as session:
            rows = session.scalars(
                select(DatabaseRow).order_by(DatabaseRow.updated_at.desc())
            )
            return [database_snapshot(session, row) for row in rows.all()]

    async def update_database(self, database_id: str, update: DatabaseUpdate) -> Database:
        """Update title, description or icon of a database."""
        with self._db.transaction() as session:
            row = get_database_row(session, database_id)
            for field, value in update.model_dump(exclude_unset=True).items():
                if value is None and field != "icon":
                    continue
                setattr(row, field, value)
            row.updated_at = utcnow()
            session.flush()
            return database_snapshot(session, row)

    async def delete_database(self, database_id: str) -> None:
        """Delete a database, its schema, views, items and the items' pages."""
        with self._db.transaction() as session:
            get_database_row(session, database_id)
            item_pages = select(ItemRow.page_id).where(ItemRow.database_id == database_id)
            session.execute(delete(PageRow).where(PageRow.id.in_(item_pages)))
            session.execute(delete(DatabaseRow).where(DatabaseRow.id == database_id))
        logger.info("Deleted database %s", database_id)

    async def define_property(self, database_id: str, data: PropertyInput) -> Property:
        """Add a property to an existing database."""
        with self._db.transaction() as session:
            database = get_database_row(session, database_id)
            slug = data.slug or slugify(data.name)
            existing = load_property_rows(session, database_id)
            if any(p.slug == slug for p in existing):
                raise ConflictError(f"duplicate property slug: {slug}")

            order = data.order_index
            if order is None:
                highest = session.scalar(
                    select(func.max(PropertyRow.order_index)).where(
                        PropertyRow.database_id == database_id
                    )
                )
                order = 0 if highest is None else highest + 1
            row = _insert_property(session, database_id, data, order)
            database.updated_at = utcnow()
            session.flush()
            logger.info("Defined property %s (%s) on %s", row.slug, row.type, database_id)
            return Property.model_validate(row)

    async def update_property(
        self, database_id: str, ref: str, update: PropertyUpdate
    ) -> Property:
        """Update a property. Slug and type are identity and stay fixed."""
        with self._db.transaction() as session:
            get_database_row(session, database_id)
            row = get_property_row(session, database_id, ref)
            for field, value in update.model_dump(exclude_unset=True).items():
                if value is None and field != "default":
                    continue
                setattr(row, field, value)
            row.updated_at = utcnow()
            session.flush()
            return Property.model_validate(row)

    async def delete_property(self, database_id: str, ref: str) -> None:
        """Delete a property and every value stored for it."""
        with self._db.transaction() as session:
            get_database_row(session, database_id)
            row = get_property_row(session, database_id, ref)
            session.execute(delete(PropertyRow).where(PropertyRow.id == row.id))
        logger.info("Deleted property %s from %s", ref, database_id)
