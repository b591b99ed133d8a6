"""Tests for pages, block replacement and the backlink graph."""

import pytest

from pagebase.core.errors import ConflictError, NotFoundError, ValidationError
from pagebase.core.models import (
    BlockInput,
    BlockType,
    DatabaseCreate,
    PageCreate,
    PageUpdate,
    ViewInput,
)
from pagebase.core.storage import Storage


@pytest.fixture
def storage(tmp_path):
    s = Storage(tmp_path / "pages.db")
    yield s
    s.close()


async def make_page(storage, title, **kwargs):
    return await storage.pages.create_page(PageCreate(title=title, **kwargs))


def markdown(text="", linked=()):
    return BlockInput(
        type=BlockType.MARKDOWN, data={"text": text, "linked_page_ids": list(linked)}
    )


def page_link(target):
    return BlockInput(type=BlockType.PAGE_LINK, data={"target_page_id": target})


# ============================================================
# Page CRUD
# ============================================================


class TestPageCrud:
    @pytest.mark.asyncio
    async def test_create_derives_slug(self, storage):
        page = await make_page(storage, "Weekly Notes")
        assert page.slug == "weekly-notes"
        assert page.created_at == page.updated_at
        assert page.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_get_round_trips_fields(self, storage):
        created = await make_page(
            storage, "Recipes", slug="food", content="# Food", tags=["kitchen"], icon="R"
        )
        page = await storage.pages.get_page(created.id)
        assert page == created

    @pytest.mark.asyncio
    async def test_get_missing_page(self, storage):
        with pytest.raises(NotFoundError):
            await storage.pages.get_page("nope")

    @pytest.mark.asyncio
    async def test_update_only_sent_fields(self, storage):
        page = await make_page(storage, "Draft", content="body", icon="D")
        updated = await storage.pages.update_page(page.id, PageUpdate(title="Final"))
        assert updated.title == "Final"
        assert updated.content == "body"
        assert updated.icon == "D"

    @pytest.mark.asyncio
    async def test_update_clears_icon(self, storage):
        page = await make_page(storage, "Draft", icon="D")
        updated = await storage.pages.update_page(page.id, PageUpdate(icon=None))
        assert updated.icon is None

    @pytest.mark.asyncio
    async def test_list_newest_first(self, storage):
        first = await make_page(storage, "First")
        second = await make_page(storage, "Second")
        await storage.pages.update_page(first.id, PageUpdate(content="touched"))
        pages = await storage.pages.list_pages()
        assert [p.id for p in pages] == [first.id, second.id]


# ============================================================
# Parent tree
# ============================================================


class TestParentTree:
    @pytest.mark.asyncio
    async def test_create_with_parent(self, storage):
        parent = await make_page(storage, "Parent")
        child = await make_page(storage, "Child", parent_id=parent.id)
        assert child.parent_id == parent.id

    @pytest.mark.asyncio
    async def test_missing_parent_rejected(self, storage):
        with pytest.raises(ValidationError):
            await make_page(storage, "Orphan", parent_id="missing")
        assert await storage.pages.list_pages() == []

    @pytest.mark.asyncio
    async def test_self_parent_rejected(self, storage):
        page = await make_page(storage, "Loop")
        with pytest.raises(ValidationError):
            await storage.pages.update_page(page.id, PageUpdate(parent_id=page.id))

    @pytest.mark.asyncio
    async def test_cycle_rejected(self, storage):
        a = await make_page(storage, "A")
        b = await make_page(storage, "B", parent_id=a.id)
        c = await make_page(storage, "C", parent_id=b.id)
        with pytest.raises(ValidationError):
            await storage.pages.update_page(a.id, PageUpdate(parent_id=c.id))
        assert (await storage.pages.get_page(a.id)).parent_id is None

    @pytest.mark.asyncio
    async def test_delete_parent_detaches_children(self, storage):
        parent = await make_page(storage, "Parent")
        child = await make_page(storage, "Child", parent_id=parent.id)
        await storage.pages.delete_page(parent.id)
        assert (await storage.pages.get_page(child.id)).parent_id is None


# ============================================================
# Block replacement
# ============================================================


class TestReplaceBlocks:
    @pytest.mark.asyncio
    async def test_positions_follow_input_order(self, storage):
        page = await make_page(storage, "Home")
        blocks = await storage.pages.replace_blocks(
            page.id,
            [
                BlockInput(type=BlockType.HEADING, data={"text": "Title", "level": 1}),
                markdown("one"),
                markdown("two"),
            ],
        )
        assert [b.position for b in blocks] == [0, 1, 2]
        assert all(b.id for b in blocks)
        assert blocks[0].data == {"text": "Title", "level": 1}

    @pytest.mark.asyncio
    async def test_replace_overwrites_previous_set(self, storage):
        page = await make_page(storage, "Home")
        await storage.pages.replace_blocks(page.id, [markdown("a"), markdown("b")])
        await storage.pages.replace_blocks(page.id, [markdown("c")])
        detail = await storage.pages.get_page_detail(page.id)
        assert [b.data["text"] for b in detail.blocks] == ["c"]
        assert detail.blocks[0].position == 0

    @pytest.mark.asyncio
    async def test_supplied_block_ids_kept(self, storage):
        page = await make_page(storage, "Home")
        block = BlockInput(id="block-1", type=BlockType.MARKDOWN, data={"text": "x"})
        first = await storage.pages.replace_blocks(page.id, [block])
        second = await storage.pages.replace_blocks(page.id, [block])
        assert first[0].id == second[0].id == "block-1"

    @pytest.mark.asyncio
    async def test_replace_bumps_updated_at(self, storage):
        page = await make_page(storage, "Home")
        await storage.pages.replace_blocks(page.id, [markdown("x")])
        assert (await storage.pages.get_page(page.id)).updated_at >= page.updated_at

    @pytest.mark.asyncio
    async def test_replace_on_missing_page(self, storage):
        with pytest.raises(NotFoundError):
            await storage.pages.replace_blocks("missing", [markdown("x")])

    @pytest.mark.asyncio
    async def test_failed_replace_leaves_previous_state(self, storage):
        home = await make_page(storage, "Home")
        other = await make_page(storage, "Other")
        target = await make_page(storage, "Target")
        await storage.pages.replace_blocks(
            other.id, [BlockInput(id="taken", type=BlockType.MARKDOWN)]
        )
        await storage.pages.replace_blocks(home.id, [page_link(target.id)])

        with pytest.raises(ConflictError):
            await storage.pages.replace_blocks(
                home.id, [markdown("new"), BlockInput(id="taken", type=BlockType.MARKDOWN)]
            )

        detail = await storage.pages.get_page_detail(home.id)
        assert [b.type for b in detail.blocks] == [BlockType.PAGE_LINK]
        backlinks = await storage.pages.list_backlinks(target.id)
        assert [p.id for p in backlinks] == [home.id]


# ============================================================
# Backlinks
# ============================================================


class TestBacklinks:
    @pytest.mark.asyncio
    async def test_duplicate_edges_collapse(self, storage):
        home = await make_page(storage, "Home")
        recipes = await make_page(storage, "Recipes")
        await storage.pages.replace_blocks(
            home.id, [markdown("see", linked=[recipes.id]), page_link(recipes.id)]
        )
        backlinks = await storage.pages.list_backlinks(recipes.id)
        assert [p.title for p in backlinks] == ["Home"]

    @pytest.mark.asyncio
    async def test_second_replace_drops_stale_links(self, storage):
        home = await make_page(storage, "Home")
        old = await make_page(storage, "Old")
        new = await make_page(storage, "New")
        await storage.pages.replace_blocks(home.id, [page_link(old.id)])
        await storage.pages.replace_blocks(home.id, [page_link(new.id)])
        assert await storage.pages.list_backlinks(old.id) == []
        assert [p.id for p in await storage.pages.list_backlinks(new.id)] == [home.id]

    @pytest.mark.asyncio
    async def test_missing_targets_skipped(self, storage):
        home = await make_page(storage, "Home")
        blocks = await storage.pages.replace_blocks(home.id, [page_link("ghost")])
        assert len(blocks) == 1

    @pytest.mark.asyncio
    async def test_ordered_by_source_update(self, storage):
        target = await make_page(storage, "Target")
        a = await make_page(storage, "A")
        b = await make_page(storage, "B")
        await storage.pages.replace_blocks(a.id, [page_link(target.id)])
        await storage.pages.replace_blocks(b.id, [page_link(target.id)])
        assert [p.id for p in await storage.pages.list_backlinks(target.id)] == [b.id, a.id]

        await storage.pages.update_page(a.id, PageUpdate(content="edited"))
        assert [p.id for p in await storage.pages.list_backlinks(target.id)] == [a.id, b.id]

    @pytest.mark.asyncio
    async def test_deleting_source_removes_backlink(self, storage):
        home = await make_page(storage, "Home")
        target = await make_page(storage, "Target")
        await storage.pages.replace_blocks(home.id, [page_link(target.id)])
        await storage.pages.delete_page(home.id)
        assert await storage.pages.list_backlinks(target.id) == []

    @pytest.mark.asyncio
    async def test_deleting_target_keeps_source_blocks(self, storage):
        home = await make_page(storage, "Home")
        target = await make_page(storage, "Target")
        await storage.pages.replace_blocks(home.id, [page_link(target.id)])
        await storage.pages.delete_page(target.id)
        detail = await storage.pages.get_page_detail(home.id)
        assert len(detail.blocks) == 1

    @pytest.mark.asyncio
    async def test_detail_includes_backlinks(self, storage):
        home = await make_page(storage, "Home")
        target = await make_page(storage, "Target")
        await storage.pages.replace_blocks(home.id, [page_link(target.id)])
        detail = await storage.pages.get_page_detail(target.id)
        assert [p.id for p in detail.backlinks] == [home.id]
        assert detail.blocks == []

    @pytest.mark.asyncio
    async def test_backlinks_of_missing_page(self, storage):
        with pytest.raises(NotFoundError):
            await storage.pages.list_backlinks("missing")


# ============================================================
# Embedded database views
# ============================================================


class TestEmbeddedViews:
    @pytest.mark.asyncio
    async def test_embed_resolves_through_block(self, storage):
        db = await storage.schema.create_database(DatabaseCreate(title="Tasks"))
        view = db.views[0]
        page = await make_page(storage, "Dashboard")
        blocks = await storage.pages.replace_blocks(
            page.id,
            [BlockInput(type=BlockType.DATABASE_VIEW, data={"view_id": view.id})],
        )
        resolved = await storage.resolver.resolve_block(blocks[0].id)
        assert resolved.view.id == view.id
        assert resolved.database.id == db.id

    @pytest.mark.asyncio
    async def test_replace_drops_old_embed(self, storage):
        db = await storage.schema.create_database(
            DatabaseCreate(title="Tasks", views=[ViewInput(name="All")])
        )
        page = await make_page(storage, "Dashboard")
        blocks = await storage.pages.replace_blocks(
            page.id,
            [BlockInput(type=BlockType.DATABASE_VIEW, data={"view_id": db.views[0].id})],
        )
        await storage.pages.replace_blocks(page.id, [markdown("no embed")])
        with pytest.raises(NotFoundError):
            await storage.resolver.resolve_block(blocks[0].id)

    @pytest.mark.asyncio
    async def test_unknown_view_not_recorded(self, storage):
        page = await make_page(storage, "Dashboard")
        blocks = await storage.pages.replace_blocks(
            page.id,
            [BlockInput(type=BlockType.DATABASE_VIEW, data={"view_id": "ghost"})],
        )
        with pytest.raises(NotFoundError):
            await storage.resolver.resolve_block(blocks[0].id)
