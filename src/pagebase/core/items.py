"""Database rows: page-backed items and their value maps."""

import logging
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from pagebase.core.db import Datastore, new_id, rowid, utcnow
from pagebase.core.errors import ValidationError
from pagebase.core.models import (
    DatabaseItem,
    ItemCreate,
    ItemUpdate,
    Page,
    PageCreate,
    Value,
)
from pagebase.core.pages import apply_page_update, get_page_row, insert_page
from pagebase.core.schema import get_database_row, load_property_rows
from pagebase.core.tables import ItemRow, PageRow, PropertyRow, ValueRow
from pagebase.core.values import (
    get_item_row,
    read_value_rows,
    resolve_value_keys,
    write_value,
)

logger = logging.getLogger(__name__)


def fill_defaults(
    properties: list[PropertyRow], resolved: list[tuple[PropertyRow, Any]]
) -> list[tuple[PropertyRow, Any]]:
    """Fill unsupplied required properties from their defaults.

    Optional properties without a value stay absent.
    """
    supplied = {prop.id for prop, _ in resolved}
    filled = list(resolved)
    missing = []
    for prop in properties:
        if prop.id in supplied or not prop.is_required:
            continue
        if prop.default is not None:
            filled.append((prop, prop.default))
        else:
            missing.append(prop.slug)
    if missing:
        raise ValidationError(f"missing required property: {', '.join(missing)}")
    return filled


def load_items(
    session: Session, database_id: str, include_archived: bool = False
) -> list[DatabaseItem]:
    """Items of a database ordered by position, then creation time.

    Each item carries its page fields and its full value map keyed by
    property slug.
    """
    stmt = (
        select(ItemRow, PageRow)
        .join(PageRow, PageRow.id == ItemRow.page_id)
        .where(ItemRow.database_id == database_id)
        .order_by(ItemRow.position, ItemRow.created_at, rowid(ItemRow))
    )
    if not include_archived:
        stmt = stmt.where(ItemRow.is_archived.is_(False))
    pairs = session.execute(stmt).all()

    slugs = {p.id: p.slug for p in load_property_rows(session, database_id)}
    values = read_value_rows(session, [item.id for item, _ in pairs])
    return [
        _build_item(item, page, values.get(item.id, []), slugs) for item, page in pairs
    ]


def _build_item(
    item: ItemRow, page: PageRow, values: list[ValueRow], slugs: dict[str, str]
) -> DatabaseItem:
    """Assemble an item model from its rows."""
    return DatabaseItem(
        id=item.id,
        database_id=item.database_id,
        page=Page.model_validate(page),
        position=item.position,
        is_archived=item.is_archived,
        created_at=item.created_at,
        updated_at=item.updated_at,
        properties={
            slugs[v.property_id]: Value.model_validate(v)
            for v in values
            if v.property_id in slugs
        },
    )


def _snapshot(session: Session, item: ItemRow) -> DatabaseItem:
    """Reload the full model of one item."""
    page = get_page_row(session, item.page_id)
    slugs = {p.id: p.slug for p in load_property_rows(session, item.database_id)}
    values = read_value_rows(session, [item.id]).get(item.id, [])
    return _build_item(item, page, values, slugs)


class ItemStore:
    """Page-backed database rows."""

    def __init__(self, db: Datastore):
        self._db = db

    async def create_item(self, database_id: str, data: ItemCreate) -> DatabaseItem:
        """Create the backing page, the item and its values atomically.

        Value keys are property slugs or ids; any unknown key fails the
        whole operation with nothing persisted.
        """
        with self._db.transaction() as session:
            get_database_row(session, database_id)
            properties = load_property_rows(session, database_id)
            assignments = fill_defaults(
                properties, resolve_value_keys(properties, data.values)
            )

            page = insert_page(session, PageCreate(**data.page.model_dump()))
            session.flush()
            now = utcnow()
            item = ItemRow(
                id=new_id(),
                database_id=database_id,
                page_id=page.id,
                position=data.position,
                is_archived=False,
                created_at=now,
                updated_at=now,
            )
            session.add(item)
            session.flush()
            for prop, payload in assignments:
                write_value(session, item.id, prop, payload)
            session.flush()

            logger.info("Created item %s in database %s", item.id, database_id)
            return _snapshot(session, item)

    async def get_item(self, database_id: str, item_id: str) -> DatabaseItem:
        """Return one item of a database."""
        with self._db.transaction() as session:
            get_database_row(session, database_id)
            return _snapshot(session, get_item_row(session, database_id, item_id))

    async def list_items(
        self, database_id: str, include_archived: bool = False
    ) -> list[DatabaseItem]:
        """List the items of a database in display order."""
        with self._db.transaction() as session:
            get_database_row(session, database_id)
            return load_items(session, database_id, include_archived)

    async def update_item(
        self, database_id: str, item_id: str, update: ItemUpdate
    ) -> DatabaseItem:
        """Update page fields, position or archival state.

        A ``values`` map replaces every stored value of the item.
        """
        with self._db.transaction() as session:
            get_database_row(session, database_id)
            item = get_item_row(session, database_id, item_id)

            if update.page is not None:
                apply_page_update(session, get_page_row(session, item.page_id), update.page)
            if update.position is not None:
                item.position = update.position
            if update.is_archived is not None:
                item.is_archived = update.is_archived
            if update.values is not None:
                properties = load_property_rows(session, database_id)
                assignments = fill_defaults(
                    properties, resolve_value_keys(properties, update.values)
                )
                session.execute(delete(ValueRow).where(ValueRow.item_id == item.id))
                for prop, payload in assignments:
                    write_value(session, item.id, prop, payload)

            item.updated_at = utcnow()
            session.flush()
            return _snapshot(session, item)

    async def delete_item(self, database_id: str, item_id: str) -> None:
        """Delete an item by deleting its page; values cascade."""
        with self._db.transaction() as session:
            get_database_row(session, database_id)
            item = get_item_row(session, database_id, item_id)
            session.execute(delete(PageRow).where(PageRow.id == item.page_id))
        logger.info("Deleted item %s", item_id)
