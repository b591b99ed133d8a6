"""Storage facade wiring every store onto one datastore."""

from pathlib import Path

from pagebase.core.db import Datastore
from pagebase.core.items import ItemStore
from pagebase.core.pages import PageStore
from pagebase.core.resolver import ViewResolver
from pagebase.core.schema import SchemaStore
from pagebase.core.values import ValueStore
from pagebase.core.views import ViewStore


class Storage:
    """All workspace stores sharing a single-connection SQLite datastore.

    Attributes:
        pages: pages, blocks and backlinks.
        schema: databases and property definitions.
        views: saved view definitions.
        items: page-backed database rows.
        values: per-row property values.
        resolver: view resolution.
    """

    def __init__(self, path: Path | str, pool_timeout: float = 30.0):
        self.db = Datastore(path, pool_timeout=pool_timeout)
        self.pages = PageStore(self.db)
        self.schema = SchemaStore(self.db)
        self.views = ViewStore(self.db)
        self.items = ItemStore(self.db)
        self.values = ValueStore(self.db)
        self.resolver = ViewResolver(self.db)

    async def ping(self) -> None:
        """Check that the store is reachable."""
        self.db.ping()

    def close(self) -> None:
        """Release the store's connection."""
        self.db.close()
