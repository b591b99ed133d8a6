"""Pages, their blocks, and the backlink graph derived from blocks."""

import logging

from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from pagebase.core.db import Datastore, new_id, utcnow
from pagebase.core.errors import NotFoundError, ValidationError
from pagebase.core.links import extract_embedded_view, extract_linked_pages
from pagebase.core.models import (
    Block,
    BlockInput,
    Page,
    PageCreate,
    PageDetail,
    PageUpdate,
    slugify,
)
from pagebase.core.tables import (
    BlockRow,
    EmbeddedViewRow,
    PageLinkRow,
    PageRow,
    ViewRow,
)

logger = logging.getLogger(__name__)

# Fields that are never cleared by an explicit null in an update.
_REQUIRED_FIELDS = {"title", "slug", "summary", "content", "tags"}


def get_page_row(session: Session, page_id: str) -> PageRow:
    """Load a page row or raise NotFoundError."""
    row = session.get(PageRow, page_id)
    if row is None:
        raise NotFoundError(f"page {page_id} not found")
    return row


def check_parent(session: Session, page_id: str | None, parent_id: str | None) -> None:
    """Reject a parent that is missing or would close a cycle.

    Walks the ancestor chain of ``parent_id`` looking for ``page_id``.
    """
    if parent_id is None:
        return
    if parent_id == page_id:
        raise ValidationError("a page cannot be its own parent")
    if session.get(PageRow, parent_id) is None:
        raise ValidationError(f"parent page {parent_id} does not exist")

    seen: set[str] = set()
    current: str | None = parent_id
    while current is not None and current not in seen:
        if current == page_id:
            raise ValidationError("parent would create a cycle")
        seen.add(current)
        row = session.get(PageRow, current)
        current = row.parent_id if row is not None else None


def insert_page(session: Session, data: PageCreate) -> PageRow:
    """Insert a page row inside the caller's transaction."""
    page_id = new_id()
    check_parent(session, page_id, data.parent_id)
    now = utcnow()
    row = PageRow(
        id=page_id,
        slug=data.slug or slugify(data.title),
        title=data.title,
        summary=data.summary,
        content=data.content,
        icon=data.icon,
        parent_id=data.parent_id,
        tags=list(data.tags),
        created_at=now,
        updated_at=now,
    )
    session.add(row)
    return row


def apply_page_update(session: Session, row: PageRow, update: PageUpdate) -> None:
    """Apply the fields that were actually sent in ``update``."""
    changes = update.model_dump(exclude_unset=True)
    for field, value in changes.items():
        if value is None and field in _REQUIRED_FIELDS:
            continue
        if field == "parent_id":
            check_parent(session, row.id, value)
        setattr(row, field, value)
    row.updated_at = utcnow()


def list_backlink_rows(session: Session, page_id: str) -> list[PageRow]:
    """Pages linking to ``page_id``, most recently updated first."""
    stmt = (
        select(PageRow)
        .join(PageLinkRow, PageLinkRow.source_page_id == PageRow.id)
        .where(PageLinkRow.target_page_id == page_id)
        .order_by(PageRow.updated_at.desc())
    )
    return list(session.scalars(stmt))


def embedded_view_id(session: Session, block_id: str) -> str:
    """Return the view recorded for a database_view block."""
    row = session.get(EmbeddedViewRow, block_id)
    if row is None:
        raise NotFoundError(f"block {block_id} embeds no view")
    return row.view_id


class PageStore:
    """Page CRUD plus full-replace block writes that keep links in sync."""

    def __init__(self, db: Datastore):
        self._db = db

    async def create_page(self, data: PageCreate) -> Page:
        """Create a page and return it."""
        with self._db.transaction() as session:
            row = insert_page(session, data)
            session.flush()
            logger.info("Created page %s (%s)", row.id, row.title)
            return Page.model_validate(row)

    async def get_page(self, page_id: str) -> Page:
        """Return a page without its blocks."""
        with self._db.transaction() as session:
            return Page.model_validate(get_page_row(session, page_id))

    async def get_page_detail(self, page_id: str) -> PageDetail:
        """Return a page with its ordered blocks and backlinks."""
        with self._db.transaction() as session:
            page = get_page_row(session, page_id)
            blocks = session.scalars(
                select(BlockRow)
                .where(BlockRow.page_id == page_id)
                .order_by(BlockRow.position)
            )
            backlinks = list_backlink_rows(session, page_id)
            return PageDetail(
                page=Page.model_validate(page),
                blocks=[Block.model_validate(b) for b in blocks],
                backlinks=[Page.model_validate(p) for p in backlinks],
            )

    async def list_pages(self) -> list[Page]:
        """List all pages, most recently updated first."""
        with self._db.transaction() as session:
            rows = session.scalars(select(PageRow).order_by(PageRow.updated_at.desc()))
            return [Page.model_validate(row) for row in rows]

    async def update_page(self, page_id: str, update: PageUpdate) -> Page:
        """Apply a partial update to a page."""
        with self._db.transaction() as session:
            row = get_page_row(session, page_id)
            apply_page_update(session, row, update)
            session.flush()
            return Page.model_validate(row)

    async def delete_page(self, page_id: str) -> None:
        """Delete a page.

        Blocks, links in both directions, embedded views and a backing
        database item go with it; child pages are detached.
        """
        with self._db.transaction() as session:
            get_page_row(session, page_id)
            session.execute(delete(PageRow).where(PageRow.id == page_id))
        logger.info("Deleted page %s", page_id)

    async def replace_blocks(self, page_id: str, blocks: list[BlockInput]) -> list[Block]:
        """Replace a page's whole block list and recompute its outgoing links.

        Input order is authoritative: positions are reassigned 0..n-1.
        Link targets and embedded views naming nothing that exists are
        skipped. All-or-nothing.
        """
        with self._db.transaction() as session:
            page = get_page_row(session, page_id)

            session.execute(delete(PageLinkRow).where(PageLinkRow.source_page_id == page_id))
            session.execute(
                delete(EmbeddedViewRow).where(
                    EmbeddedViewRow.block_id.in_(
                        select(BlockRow.id).where(BlockRow.page_id == page_id)
                    )
                )
            )
            session.execute(delete(BlockRow).where(BlockRow.page_id == page_id))

            now = utcnow()
            rows: list[BlockRow] = []
            targets: list[str] = []
            embeds: list[tuple[str, str]] = []
            for position, block in enumerate(blocks):
                row = BlockRow(
                    id=block.id or new_id(),
                    page_id=page_id,
                    position=position,
                    type=block.type.value,
                    data=block.data,
                    created_at=now,
                    updated_at=now,
                )
                rows.append(row)
                targets.extend(extract_linked_pages(block.type, block.data))
                view_id = extract_embedded_view(block.type, block.data)
                if view_id is not None:
                    embeds.append((row.id, view_id))
            session.add_all(rows)
            session.flush()

            known_pages = set(
                session.scalars(select(PageRow.id).where(PageRow.id.in_(list(set(targets)))))
            )
            for target in targets:
                if target not in known_pages:
                    logger.debug("Skipping link from %s to missing page %s", page_id, target)
                    continue
                session.execute(
                    sqlite_insert(PageLinkRow)
                    .values(
                        id=new_id(),
                        source_page_id=page_id,
                        target_page_id=target,
                        created_at=now,
                    )
                    .on_conflict_do_nothing()
                )

            known_views = set(
                session.scalars(
                    select(ViewRow.id).where(ViewRow.id.in_([v for _, v in embeds]))
                )
            )
            for block_id, view_id in embeds:
                if view_id not in known_views:
                    logger.debug("Skipping embed of missing view %s in %s", view_id, block_id)
                    continue
                session.add(EmbeddedViewRow(block_id=block_id, view_id=view_id))

            page.updated_at = now
            session.flush()
            logger.info(
                "Replaced blocks of page %s: %d blocks, %d link targets",
                page_id,
                len(rows),
                len(known_pages),
            )
            return [Block.model_validate(row) for row in rows]

    async def list_backlinks(self, page_id: str) -> list[Page]:
        """List the pages linking to page_id."""
        with self._db.transaction() as session:
            get_page_row(session, page_id)
            return [Page.model_validate(r) for r in list_backlink_rows(session, page_id)]
