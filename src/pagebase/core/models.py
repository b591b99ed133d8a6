"""Data models for Pagebase."""

import re
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


def slugify(text: str) -> str:
    """Derive a lowercase, dash-separated slug from free text."""
    slug = re.sub(r"[^a-z0-9]+", "-", text.strip().lower()).strip("-")
    return slug or "untitled"


class PropertyType(str, Enum):
    TITLE = "title"
    TEXT = "text"
    NUMBER = "number"
    SELECT = "select"
    MULTI_SELECT = "multi_select"
    DATE = "date"
    CHECKBOX = "checkbox"
    RELATION = "relation"
    URL = "url"
    EMAIL = "email"
    PHONE = "phone"
    MEDIA = "media"
    FORMULA = "formula"
    ROLLUP = "rollup"


class ViewType(str, Enum):
    TABLE = "table"
    LIST = "list"
    GALLERY = "gallery"
    BOARD = "board"
    KANBAN = "kanban"
    CALENDAR = "calendar"
    TIMELINE = "timeline"


class BlockType(str, Enum):
    MARKDOWN = "markdown"
    HEADING = "heading"
    PAGE_LINK = "page_link"
    DATABASE_VIEW = "database_view"


# ============================================================
# Pages and blocks
# ============================================================


class Page(BaseModel):
    """A page of free-form content."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    slug: str
    title: str
    summary: str = ""
    content: str = ""
    icon: str | None = None
    parent_id: str | None = None
    tags: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class PageCreate(BaseModel):
    title: str = Field(min_length=1)
    slug: str | None = None
    summary: str = ""
    content: str = ""
    icon: str | None = None
    parent_id: str | None = None
    tags: list[str] = Field(default_factory=list)


class PageUpdate(BaseModel):
    """Partial page update. Only fields that were sent are applied."""

    title: str | None = Field(default=None, min_length=1)
    slug: str | None = None
    summary: str | None = None
    content: str | None = None
    icon: str | None = None
    parent_id: str | None = None
    tags: list[str] | None = None


class Block(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    page_id: str
    position: int
    type: BlockType
    data: dict[str, Any] = Field(default_factory=dict)


class BlockInput(BaseModel):
    id: str | None = None
    type: BlockType
    data: dict[str, Any] = Field(default_factory=dict)


class PageDetail(BaseModel):
    """A page bundled with its blocks and the pages linking to it."""

    page: Page
    blocks: list[Block]
    backlinks: list[Page]


# ============================================================
# Database schema
# ============================================================


class Property(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    database_id: str
    name: str
    slug: str
    type: PropertyType
    config: dict[str, Any] = Field(default_factory=dict)
    is_required: bool = False
    default: Any = None
    order_index: int = 0
    created_at: datetime
    updated_at: datetime


class PropertyInput(BaseModel):
    name: str = Field(min_length=1)
    slug: str | None = None
    type: PropertyType
    config: dict[str, Any] = Field(default_factory=dict)
    is_required: bool = False
    default: Any = None
    order_index: int | None = None


class PropertyUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    config: dict[str, Any] | None = None
    is_required: bool | None = None
    default: Any = None
    order_index: int | None = None


class ViewSort(BaseModel):
    property_id: str
    direction: Literal["asc", "desc"] = "asc"


class View(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    database_id: str
    name: str
    type: ViewType
    filters: dict[str, Any] = Field(default_factory=dict)
    sorts: list[ViewSort] = Field(default_factory=list)
    grouping: dict[str, Any] = Field(default_factory=dict)
    display_properties: list[str] = Field(default_factory=list)
    layout_options: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class ViewInput(BaseModel):
    name: str = Field(min_length=1)
    type: ViewType = ViewType.TABLE
    filters: dict[str, Any] = Field(default_factory=dict)
    sorts: list[ViewSort] = Field(default_factory=list)
    grouping: dict[str, Any] = Field(default_factory=dict)
    display_properties: list[str] = Field(default_factory=list)
    layout_options: dict[str, Any] = Field(default_factory=dict)


class ViewUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    type: ViewType | None = None
    filters: dict[str, Any] | None = None
    sorts: list[ViewSort] | None = None
    grouping: dict[str, Any] | None = None
    display_properties: list[str] | None = None
    layout_options: dict[str, Any] | None = None


class Database(BaseModel):
    """A database with its schema and saved views."""

    id: str
    slug: str
    title: str
    description: str = ""
    icon: str | None = None
    created_at: datetime
    updated_at: datetime
    properties: list[Property] = Field(default_factory=list)
    views: list[View] = Field(default_factory=list)


class DatabaseCreate(BaseModel):
    title: str = Field(min_length=1)
    slug: str | None = None
    description: str = ""
    icon: str | None = None
    properties: list[PropertyInput] = Field(default_factory=list)
    views: list[ViewInput] = Field(default_factory=list)


class DatabaseUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    icon: str | None = None


# ============================================================
# Rows and values
# ============================================================


class Value(BaseModel):
    """Stored content of one property for one row.

    ``id`` is None for values synthesized during view resolution.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str | None = None
    item_id: str
    property_id: str
    value: Any = None
    is_computed: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ValueWrite(BaseModel):
    value: Any = None
    is_computed: bool = False


class DatabaseItem(BaseModel):
    """A database row. ``properties`` is keyed by property slug."""

    id: str
    database_id: str
    page: Page
    position: int = 0
    is_archived: bool = False
    created_at: datetime
    updated_at: datetime
    properties: dict[str, Value] = Field(default_factory=dict)


class ItemPageInput(BaseModel):
    title: str = Field(min_length=1)
    slug: str | None = None
    summary: str = ""
    content: str = ""
    icon: str | None = None
    tags: list[str] = Field(default_factory=list)


class ItemCreate(BaseModel):
    page: ItemPageInput
    position: int = 0
    values: dict[str, Any] = Field(default_factory=dict)


class ItemUpdate(BaseModel):
    """Partial item update. ``values``, when sent, replaces the whole map."""

    page: PageUpdate | None = None
    position: int | None = None
    is_archived: bool | None = None
    values: dict[str, Any] | None = None


class ResolvedView(BaseModel):
    """A view joined against the live schema and rows."""

    database: Database
    view: View
    columns: list[Property]
    items: list[DatabaseItem]
