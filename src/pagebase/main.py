"""Pagebase FastAPI application."""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Body, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from pagebase.config import settings
from pagebase.core.errors import ConflictError, NotFoundError, StoreError, ValidationError
from pagebase.core.models import (
    Block,
    BlockInput,
    Database,
    DatabaseCreate,
    DatabaseItem,
    DatabaseUpdate,
    ItemCreate,
    ItemUpdate,
    Page,
    PageCreate,
    PageDetail,
    PageUpdate,
    Property,
    PropertyInput,
    PropertyUpdate,
    ResolvedView,
    Value,
    ValueWrite,
    View,
    ViewInput,
    ViewUpdate,
)
from pagebase.core.storage import Storage

logger = logging.getLogger(__name__)

# Most specific first.
STATUS_CODES: list[tuple[type[StoreError], int]] = [
    (ConflictError, 409),
    (ValidationError, 400),
    (NotFoundError, 404),
]


def configure_logging(level: str) -> None:
    """Install a root handler for the whole process."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: configure logging, release the store on exit."""
    configure_logging(settings.log_level)
    logger.info("Serving %s from %s", settings.app_title, settings.database_path)
    yield
    storage.close()


# Initialize app
app = FastAPI(
    title=settings.app_title,
    debug=settings.debug,
    lifespan=lifespan,
)

# Initialize storage
storage = Storage(settings.database_path, pool_timeout=settings.pool_timeout)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    """Map store failures onto HTTP status codes."""
    status = next((code for cls, code in STATUS_CODES if isinstance(exc, cls)), 500)
    return JSONResponse(status_code=status, content={"detail": exc.message, "code": exc.code})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log method, path, status and duration of every request."""
    start = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "%s %s -> %d (%.1f ms)",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - start) * 1000,
    )
    return response


@app.get("/api/health")
async def health():
    """Liveness check that also touches the store."""
    await storage.ping()
    return {"status": "ok", "time": datetime.now(timezone.utc).isoformat()}


# ========== Pages ==========


@app.get("/api/pages")
async def list_pages() -> list[Page]:
    """List all pages."""
    return await storage.pages.list_pages()


@app.post("/api/pages", status_code=201)
async def create_page(data: PageCreate) -> Page:
    """Create a page."""
    return await storage.pages.create_page(data)


@app.get("/api/pages/{page_id}")
async def get_page(page_id: str) -> PageDetail:
    """Page with ordered blocks and backlinks."""
    return await storage.pages.get_page_detail(page_id)


@app.patch("/api/pages/{page_id}")
async def update_page(page_id: str, data: PageUpdate) -> Page:
    """Update page fields."""
    return await storage.pages.update_page(page_id, data)


@app.delete("/api/pages/{page_id}", status_code=204)
async def delete_page(page_id: str) -> Response:
    """Delete a page."""
    await storage.pages.delete_page(page_id)
    return Response(status_code=204)


@app.put("/api/pages/{page_id}/blocks")
async def replace_blocks(
    page_id: str, blocks: list[BlockInput] = Body(embed=True)
) -> list[Block]:
    """Replace the page's whole block list."""
    return await storage.pages.replace_blocks(page_id, blocks)


@app.get("/api/pages/{page_id}/backlinks")
async def list_backlinks(page_id: str) -> list[Page]:
    """Pages linking to this page."""
    return await storage.pages.list_backlinks(page_id)


@app.get("/api/blocks/{block_id}/view")
async def resolve_block_view(block_id: str) -> ResolvedView:
    """Resolve the view embedded by a database_view block."""
    return await storage.resolver.resolve_block(block_id)


# ========== Databases ==========


@app.get("/api/databases")
async def list_databases() -> list[Database]:
    """List all databases."""
    return await storage.schema.list_databases()


@app.post("/api/databases", status_code=201)
async def create_database(data: DatabaseCreate) -> Database:
    """Create a database with its properties and views."""
    return await storage.schema.create_database(data)


@app.get("/api/databases/{database_id}")
async def get_database(database_id: str) -> Database:
    """Get a database with its schema."""
    return await storage.schema.get_database(database_id)


@app.patch("/api/databases/{database_id}")
async def update_database(database_id: str, data: DatabaseUpdate) -> Database:
    """Update database fields."""
    return await storage.schema.update_database(database_id, data)


@app.delete("/api/databases/{database_id}", status_code=204)
async def delete_database(database_id: str) -> Response:
    """Delete a database and everything in it."""
    await storage.schema.delete_database(database_id)
    return Response(status_code=204)


@app.post("/api/databases/{database_id}/properties", status_code=201)
async def define_property(database_id: str, data: PropertyInput) -> Property:
    """Add a property."""
    return await storage.schema.define_property(database_id, data)


@app.patch("/api/databases/{database_id}/properties/{ref}")
async def update_property(database_id: str, ref: str, data: PropertyUpdate) -> Property:
    """Update a property."""
    return await storage.schema.update_property(database_id, ref, data)


@app.delete("/api/databases/{database_id}/properties/{ref}", status_code=204)
async def delete_property(database_id: str, ref: str) -> Response:
    """Delete a property."""
    await storage.schema.delete_property(database_id, ref)
    return Response(status_code=204)


# ========== Views ==========


@app.get("/api/databases/{database_id}/views")
async def list_views(database_id: str) -> list[View]:
    """List saved views."""
    return await storage.views.list_views(database_id)


@app.post("/api/databases/{database_id}/views", status_code=201)
async def create_view(database_id: str, data: ViewInput) -> View:
    """Create a saved view."""
    return await storage.views.create_view(database_id, data)


@app.get("/api/databases/{database_id}/views/{view_id}")
async def get_view(database_id: str, view_id: str) -> View:
    """Get a saved view."""
    return await storage.views.get_view(database_id, view_id)


@app.patch("/api/databases/{database_id}/views/{view_id}")
async def update_view(database_id: str, view_id: str, data: ViewUpdate) -> View:
    """Update a saved view."""
    return await storage.views.update_view(database_id, view_id, data)


@app.delete("/api/databases/{database_id}/views/{view_id}", status_code=204)
async def delete_view(database_id: str, view_id: str) -> Response:
    """Delete a saved view."""
    await storage.views.delete_view(database_id, view_id)
    return Response(status_code=204)


@app.get("/api/databases/{database_id}/views/{view_id}/items")
async def resolve_view(database_id: str, view_id: str) -> ResolvedView:
    """Resolve a saved view against live rows."""
    return await storage.resolver.resolve(database_id, view_id)


# ========== Items ==========


@app.get("/api/databases/{database_id}/items")
async def list_items(database_id: str, include_archived: bool = False) -> list[DatabaseItem]:
    """List database rows."""
    return await storage.items.list_items(database_id, include_archived)


@app.post("/api/databases/{database_id}/items", status_code=201)
async def create_item(database_id: str, data: ItemCreate) -> DatabaseItem:
    """Create a row and its backing page."""
    return await storage.items.create_item(database_id, data)


@app.get("/api/databases/{database_id}/items/{item_id}")
async def get_item(database_id: str, item_id: str) -> DatabaseItem:
    """Get one row."""
    return await storage.items.get_item(database_id, item_id)


@app.patch("/api/databases/{database_id}/items/{item_id}")
async def update_item(database_id: str, item_id: str, data: ItemUpdate) -> DatabaseItem:
    """Update a row."""
    return await storage.items.update_item(database_id, item_id, data)


@app.delete("/api/databases/{database_id}/items/{item_id}", status_code=204)
async def delete_item(database_id: str, item_id: str) -> Response:
    """Delete a row and its backing page."""
    await storage.items.delete_item(database_id, item_id)
    return Response(status_code=204)


@app.get("/api/databases/{database_id}/items/{item_id}/values")
async def get_values(database_id: str, item_id: str) -> dict[str, Value]:
    """Stored values keyed by property id."""
    return await storage.values.get_values(database_id, item_id)


@app.put("/api/databases/{database_id}/items/{item_id}/values/{ref}")
async def set_value(database_id: str, item_id: str, ref: str, data: ValueWrite) -> Value:
    """Set one property value of a row."""
    return await storage.values.set_value(database_id, item_id, ref, data)
