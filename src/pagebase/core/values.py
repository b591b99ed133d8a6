"""Per-row property values.

One value per (item, property) pair, stored as an opaque JSON document.
This layer does not check payloads against the property's declared type.
"""

import logging
from collections import defaultdict
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from pagebase.core.db import Datastore, new_id, utcnow
from pagebase.core.errors import NotFoundError, ValidationError
from pagebase.core.models import Value, ValueWrite
from pagebase.core.schema import find_property, get_database_row, load_property_rows
from pagebase.core.tables import ItemRow, PropertyRow, ValueRow

logger = logging.getLogger(__name__)


def get_item_row(session: Session, database_id: str, item_id: str) -> ItemRow:
    """Look up an item scoped to its database."""
    row = session.scalars(
        select(ItemRow).where(ItemRow.id == item_id, ItemRow.database_id == database_id)
    ).first()
    if row is None:
        raise NotFoundError(f"item {item_id} not found")
    return row


def resolve_value_keys(
    properties: list[PropertyRow], values: dict[str, Any]
) -> list[tuple[PropertyRow, Any]]:
    """Map value keys (slug or id) onto property rows.

    Raises ValidationError naming every key that matches no property.
    """
    resolved = []
    unknown = []
    seen: set[str] = set()
    for key, payload in values.items():
        prop = find_property(properties, key)
        if prop is None:
            unknown.append(key)
            continue
        if prop.id in seen:
            raise ValidationError(f"property {prop.slug} given more than once")
        seen.add(prop.id)
        resolved.append((prop, payload))
    if unknown:
        raise ValidationError(f"unknown property: {', '.join(sorted(unknown))}")
    return resolved


def write_value(
    session: Session,
    item_id: str,
    prop: PropertyRow,
    payload: Any,
    is_computed: bool = False,
) -> ValueRow:
    """Insert or wholly overwrite the value of one (item, property) pair."""
    now = utcnow()
    row = session.scalars(
        select(ValueRow).where(ValueRow.item_id == item_id, ValueRow.property_id == prop.id)
    ).first()
    if row is None:
        row = ValueRow(
            id=new_id(),
            item_id=item_id,
            property_id=prop.id,
            value=payload,
            is_computed=is_computed,
            created_at=now,
            updated_at=now,
        )
        session.add(row)
    else:
        row.value = payload
        row.is_computed = is_computed
        row.updated_at = now
    return row


def read_value_rows(session: Session, item_ids: list[str]) -> dict[str, list[ValueRow]]:
    """Values of many items, grouped by item id."""
    grouped: dict[str, list[ValueRow]] = defaultdict(list)
    if not item_ids:
        return grouped
    for row in session.scalars(select(ValueRow).where(ValueRow.item_id.in_(item_ids))):
        grouped[row.item_id].append(row)
    return grouped


class ValueStore:
    """Reads and upserts the property values of database items."""

    def __init__(self, db: Datastore):
        self._db = db

    async def set_value(
        self, database_id: str, item_id: str, ref: str, data: ValueWrite
    ) -> Value:
        """Write one property value of an item, replacing any previous one."""
        with self._db.transaction() as session:
            get_database_row(session, database_id)
            item = get_item_row(session, database_id, item_id)
            prop = find_property(load_property_rows(session, database_id), ref)
            if prop is None:
                raise ValidationError(f"unknown property: {ref}")
            row = write_value(session, item.id, prop, data.value, data.is_computed)
            item.updated_at = utcnow()
            session.flush()
            logger.debug("Set %s on item %s", prop.slug, item_id)
            return Value.model_validate(row)

    async def get_values(self, database_id: str, item_id: str) -> dict[str, Value]:
        """Values of one item keyed by property id. Unset properties are absent."""
        with self._db.transaction() as session:
            get_database_row(session, database_id)
            item = get_item_row(session, database_id, item_id)
            rows = read_value_rows(session, [item.id]).get(item.id, [])
            return {row.property_id: Value.model_validate(row) for row in rows}
