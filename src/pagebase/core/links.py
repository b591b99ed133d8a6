"""Link extraction from block payloads."""

from typing import Any

from pagebase.core.models import BlockType

TARGET_KEY = "target_page_id"
LINKED_KEY = "linked_page_ids"
VIEW_KEY = "view_id"


def extract_linked_pages(block_type: BlockType, data: dict[str, Any]) -> list[str]:
    """Return the page ids a block points at, in payload order.

    A page_link block contributes its ``target_page_id``. Any block may
    also carry a ``linked_page_ids`` list. Blank and non-string entries
    are ignored; duplicates are left for the caller to collapse.
    """
    targets: list[str] = []
    if block_type == BlockType.PAGE_LINK:
        target = data.get(TARGET_KEY)
        if isinstance(target, str) and target:
            targets.append(target)
    linked = data.get(LINKED_KEY)
    if isinstance(linked, list):
        targets.extend(t for t in linked if isinstance(t, str) and t)
    return targets


def extract_embedded_view(block_type: BlockType, data: dict[str, Any]) -> str | None:
    """Return the view id embedded by a database_view block, if any."""
    if block_type != BlockType.DATABASE_VIEW:
        return None
    view_id = data.get(VIEW_KEY)
    if isinstance(view_id, str) and view_id:
        return view_id
    return None
