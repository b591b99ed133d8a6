"""View resolution: join a saved view with the live schema and rows.

Resolution is read-only. The view-type transforms below only shape the
response; nothing they produce is written back.
"""

import logging
from typing import Any

from pagebase.core.db import Datastore
from pagebase.core.items import load_items
from pagebase.core.models import (
    DatabaseItem,
    Property,
    ResolvedView,
    Value,
    View,
    ViewType,
)
from pagebase.core.pages import embedded_view_id
from pagebase.core.schema import database_snapshot, find_property, get_database_row
from pagebase.core.tables import ViewRow
from pagebase.core.views import get_view_row

logger = logging.getLogger(__name__)

GROUPED_VIEWS = {ViewType.BOARD, ViewType.KANBAN}
GROUP_KEY = "property"
COVER_KEY = "cover_property"
LABEL_KEY = "name"


def value_label(value: Value | None) -> str:
    """Textual label of a value, "" when it has none.

    Select-style payloads carry their label under ``name``; bare strings
    are their own label.
    """
    if value is None:
        return ""
    payload: Any = value.value
    if isinstance(payload, dict):
        label = payload.get(LABEL_KEY)
        return label if isinstance(label, str) else ""
    if isinstance(payload, str):
        return payload
    return ""


def sort_by_group(items: list[DatabaseItem], slug: str) -> list[DatabaseItem]:
    """Stable sort by group label; equal labels keep their incoming order."""
    return sorted(items, key=lambda item: value_label(item.properties.get(slug)))


def pad_covers(items: list[DatabaseItem], prop: Property) -> list[DatabaseItem]:
    """Give items without a cover value a transient empty one."""
    padded = []
    for item in items:
        if prop.slug in item.properties:
            padded.append(item)
            continue
        placeholder = Value(item_id=item.id, property_id=prop.id, value={LABEL_KEY: ""})
        padded.append(
            item.model_copy(update={"properties": {**item.properties, prop.slug: placeholder}})
        )
    return padded


def apply_view(
    view: View, properties: list[Property], items: list[DatabaseItem]
) -> list[DatabaseItem]:
    """Apply the view-type transform. Dangling references are ignored."""
    if view.type in GROUPED_VIEWS:
        ref = view.grouping.get(GROUP_KEY)
        prop = find_property(properties, ref) if isinstance(ref, str) else None
        if prop is None:
            return items
        return sort_by_group(items, prop.slug)

    if view.type == ViewType.GALLERY:
        ref = view.layout_options.get(COVER_KEY)
        prop = find_property(properties, ref) if isinstance(ref, str) else None
        if prop is None:
            return items
        return pad_covers(items, prop)

    return items


def display_columns(view: View, properties: list[Property]) -> list[Property]:
    """Properties to display, in the view's order.

    An empty display list means every property in schema order.
    """
    if not view.display_properties:
        return list(properties)
    columns = []
    for ref in view.display_properties:
        prop = find_property(properties, ref)
        if prop is not None and prop not in columns:
            columns.append(prop)
    return columns


class ViewResolver:
    """Resolves saved views against the live schema and rows."""

    def __init__(self, db: Datastore):
        self._db = db

    async def resolve(self, database_id: str, view_id: str) -> ResolvedView:
        """Resolve a view of a database into its schema, columns and rows.

        Raises NotFoundError for an unknown database and ViewNotFoundError
        for a view that is missing or belongs to another database.
        """
        with self._db.transaction() as session:
            database = database_snapshot(session, get_database_row(session, database_id))
            view = View.model_validate(get_view_row(session, database_id, view_id))
            items = load_items(session, database_id)

        resolved = ResolvedView(
            database=database,
            view=view,
            columns=display_columns(view, database.properties),
            items=apply_view(view, database.properties, items),
        )
        logger.debug(
            "Resolved %s view %s: %d items", view.type.value, view_id, len(resolved.items)
        )
        return resolved

    async def resolve_block(self, block_id: str) -> ResolvedView:
        """Resolve the view embedded by a database_view block."""
        with self._db.transaction() as session:
            view_id = embedded_view_id(session, block_id)
            database_id = session.get(ViewRow, view_id).database_id
        return await self.resolve(database_id, view_id)
