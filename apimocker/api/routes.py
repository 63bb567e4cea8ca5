"""
OData routes for apimocker.

Every route is mounted below /{tenant}{base_path} and delegates to the
query engine or the resource store held on app.state. Missing entities map
to 404 and duplicate ids to 409; query errors never reach this layer.
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse, Response

from ..query.engine import QueryEngine
from ..query.formatter import (
    context_url,
    format_entity,
    format_error,
    generate_metadata,
    service_document,
)
from ..store.resource_store import ResourceStore
from .settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["OData"])


# --- Dependencies ---


def get_store(request: Request) -> ResourceStore:
    """Get the resource store from app state."""
    return request.app.state.store


def get_engine(request: Request) -> QueryEngine:
    """Get the query engine from app state."""
    return request.app.state.engine


def get_service_root(request: Request, tenant: str) -> str:
    """Absolute service root of the requested tenant."""
    settings: Settings = request.app.state.settings
    return settings.service_root(str(request.base_url), tenant)


def not_found(tenant: str, collection: str, entity_id: str) -> JSONResponse:
    """OData 404 body for a missing entity."""
    return JSONResponse(
        status_code=404,
        content=format_error(
            "NotFound",
            f"Entity with id '{entity_id}' not found in {collection}",
            {"tenant": tenant, "collection": collection, "id": entity_id},
        ),
    )


# --- Service endpoints ---


@router.get("")
async def get_service_document(
    tenant: str,
    store: ResourceStore = Depends(get_store),
    service_root: str = Depends(get_service_root),
) -> dict[str, Any]:
    """List the tenant's collections."""
    return service_document(service_root, store.collection_names(tenant))


@router.get("/$metadata")
async def get_metadata(
    tenant: str,
    store: ResourceStore = Depends(get_store),
) -> Response:
    """Minimal EDMX document derived from the first item of each collection."""
    samples = {}
    for name in store.collection_names(tenant):
        items = store.list(tenant, name)
        samples[name] = items[0] if items else None
    return Response(content=generate_metadata(tenant, samples), media_type="application/xml")


@router.post("/$batch")
async def batch(tenant: str) -> JSONResponse:
    """$batch is not supported."""
    return JSONResponse(
        status_code=501,
        content=format_error("NotImplemented", "Batch requests are not supported"),
    )


# --- Collection endpoints ---


@router.get("/{collection}")
async def query_collection(
    tenant: str,
    collection: str,
    request: Request,
    engine: QueryEngine = Depends(get_engine),
    service_root: str = Depends(get_service_root),
) -> dict[str, Any]:
    """Query a collection with OData system query options."""
    raw_query = request.url.query
    select = request.query_params.get("$select")
    return engine.query_collection(
        tenant,
        collection,
        raw_query,
        base_url=f"{service_root}/{collection}",
        context=context_url(service_root, collection, select),
    )


@router.post("/{collection}", status_code=201)
async def create_entity(
    tenant: str,
    collection: str,
    payload: dict[str, Any] = Body(...),
    store: ResourceStore = Depends(get_store),
    service_root: str = Depends(get_service_root),
) -> dict[str, Any]:
    """Create an entity. Duplicate ids are answered with 409."""
    stored = store.insert(tenant, collection, payload)
    logger.info(f"Created entity {tenant}/{collection}/{stored['id']}")
    return format_entity(stored, context_url(service_root, collection, entity=True))


# --- Entity endpoints ---


@router.get("/{collection}/{entity_id}")
async def get_entity(
    tenant: str,
    collection: str,
    entity_id: str,
    request: Request,
    engine: QueryEngine = Depends(get_engine),
    service_root: str = Depends(get_service_root),
) -> Any:
    """Read one entity, with $select and $expand."""
    select = request.query_params.get("$select")
    entity = engine.get_entity(
        tenant,
        collection,
        entity_id,
        request.url.query,
        context=context_url(service_root, collection, select, entity=True),
    )
    if entity is None:
        return not_found(tenant, collection, entity_id)
    return entity


@router.put("/{collection}/{entity_id}")
async def replace_entity(
    tenant: str,
    collection: str,
    entity_id: str,
    payload: dict[str, Any] = Body(...),
    store: ResourceStore = Depends(get_store),
    service_root: str = Depends(get_service_root),
) -> Any:
    """Replace an entity wholesale."""
    replaced = store.replace(tenant, collection, entity_id, payload)
    if replaced is None:
        return not_found(tenant, collection, entity_id)
    return format_entity(replaced, context_url(service_root, collection, entity=True))


@router.patch("/{collection}/{entity_id}")
async def merge_entity(
    tenant: str,
    collection: str,
    entity_id: str,
    payload: dict[str, Any] = Body(...),
    store: ResourceStore = Depends(get_store),
    service_root: str = Depends(get_service_root),
) -> Any:
    """Merge fields into an entity."""
    merged = store.merge(tenant, collection, entity_id, payload)
    if merged is None:
        return not_found(tenant, collection, entity_id)
    return format_entity(merged, context_url(service_root, collection, entity=True))


@router.delete("/{collection}/{entity_id}", status_code=204)
async def delete_entity(
    tenant: str,
    collection: str,
    entity_id: str,
    store: ResourceStore = Depends(get_store),
) -> Response:
    """Delete an entity."""
    if not store.remove(tenant, collection, entity_id):
        return not_found(tenant, collection, entity_id)
    return Response(status_code=204)
