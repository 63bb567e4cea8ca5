"""
In-memory resource store for apimocker.

This module manages the per-tenant collections that back every mocked API:
- Entities are plain JSON dicts keyed by a string-able "id"
- Collections are insertion ordered lists, created lazily
- Each tenant (mocked API) has its own namespace of collections

The store is the only mutable state in the query path. Persistence to disk
happens at process boundaries only (load_directory at startup,
save_directory at shutdown), one "<collection>.json" array per collection.

Invariants:
    - Entity ids are unique within a collection
    - Ids are compared as strings ("1" finds an entity with id 1)
    - Returned entities from list() are a snapshot of the collection
    - replace() and merge() never change the id of an entity

How to change safely:
    - Keep every mutation under the owning collection's lock
    - Do not hand out the live items list to callers
    - Keep the on-disk format a plain JSON array per collection

Thread safety:
    Each collection has its own reentrant lock guarding insert, replace,
    merge, remove and snapshot reads. A store-level lock guards lazy
    creation of tenants and collections.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..errors import DuplicateEntityError

logger = logging.getLogger(__name__)


def utc_timestamp() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def same_id(left: Any, right: Any) -> bool:
    """Id equality by string form; None never matches."""
    return left is not None and right is not None and str(left) == str(right)


@dataclass
class Collection:
    """A named, ordered sequence of entities scoped to a tenant.

    Attributes:
        tenant: Owning tenant name
        name: Collection name
        items: Entities in insertion order
    """

    tenant: str
    name: str
    items: list[dict[str, Any]] = field(default_factory=list)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def index_of(self, entity_id: Any) -> int:
        """Position of the entity with the given id, or -1."""
        for index, item in enumerate(self.items):
            if same_id(item.get("id"), entity_id):
                return index
        return -1

    def __len__(self) -> int:
        return len(self.items)


class ResourceStore:
    """Per-tenant, per-collection in-memory entity store.

    A single instance is constructed per process and injected into the
    query engine and the route layer. Tests build a fresh store per case.

    Attributes:
        timestamps: Default for stamping createdAt/updatedAt on writes

    Example:
        >>> store = ResourceStore(timestamps=True)
        >>> pet = store.insert("petstore", "pets", {"name": "Rex"})
        >>> store.get_by_id("petstore", "pets", pet["id"])["name"]
        'Rex'
    """

    def __init__(self, timestamps: bool = False) -> None:
        """Initialize an empty store.

        Args:
            timestamps: Stamp createdAt/updatedAt unless overridden per call
        """
        self.timestamps = timestamps
        self._tenants: dict[str, dict[str, Collection]] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def get_or_create_collection(self, tenant: str, name: str) -> Collection:
        """Get a collection, creating the tenant and collection if needed."""
        with self._lock:
            collections = self._tenants.setdefault(tenant, {})
            collection = collections.get(name)
            if collection is None:
                collection = Collection(tenant=tenant, name=name)
                collections[name] = collection
                logger.debug(f"Created collection {tenant}/{name}")
            return collection

    def _find_collection(self, tenant: str, name: str) -> Collection | None:
        with self._lock:
            return self._tenants.get(tenant, {}).get(name)

    def has_collection(self, tenant: str, name: str) -> bool:
        """Whether the collection exists (reads never create collections)."""
        return self._find_collection(tenant, name) is not None

    def collection_names(self, tenant: str) -> list[str]:
        """Names of the tenant's collections in creation order."""
        with self._lock:
            return list(self._tenants.get(tenant, {}))

    def tenants(self) -> list[str]:
        """Names of all known tenants."""
        with self._lock:
            return list(self._tenants)

    def reset(self, tenant: str) -> None:
        """Drop every collection of a tenant."""
        with self._lock:
            if tenant in self._tenants:
                self._tenants[tenant].clear()
                logger.info(f"Reset data store for tenant: {tenant}")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(
        self,
        tenant: str,
        collection: str,
        entity: dict[str, Any],
        timestamps: bool | None = None,
    ) -> dict[str, Any]:
        """Append a new entity.

        Args:
            tenant: Tenant name
            collection: Collection name
            entity: Entity body (copied, never stored by reference)
            timestamps: Override the store default for this call

        Returns:
            The stored entity

        Raises:
            DuplicateEntityError: If an entity with the same id exists
        """
        stored = dict(entity)
        if stored.get("id") is None or stored.get("id") == "":
            stored["id"] = str(uuid.uuid4())

        if self._stamp(timestamps):
            now = utc_timestamp()
            stored["createdAt"] = now
            stored["updatedAt"] = now

        target = self.get_or_create_collection(tenant, collection)
        with target.lock:
            if target.index_of(stored["id"]) != -1:
                raise DuplicateEntityError(tenant, collection, stored["id"])
            target.items.append(stored)

        logger.debug(f"Created item in {tenant}/{collection}: {stored['id']}")
        return stored

    def replace(
        self,
        tenant: str,
        collection: str,
        entity_id: Any,
        entity: dict[str, Any],
        timestamps: bool | None = None,
    ) -> dict[str, Any] | None:
        """Replace an entity wholesale, keeping its id and createdAt.

        Returns:
            The new entity, or None if no entity has that id
        """
        target = self._find_collection(tenant, collection)
        if target is None:
            logger.warning(f"Item not found for replace: {tenant}/{collection}/{entity_id}")
            return None

        with target.lock:
            index = target.index_of(entity_id)
            if index == -1:
                logger.warning(f"Item not found for replace: {tenant}/{collection}/{entity_id}")
                return None

            existing = target.items[index]
            replacement = dict(entity)
            replacement["id"] = existing["id"]
            if "createdAt" in existing:
                replacement["createdAt"] = existing["createdAt"]
            if self._stamp(timestamps):
                replacement.setdefault("createdAt", utc_timestamp())
                replacement["updatedAt"] = utc_timestamp()
            target.items[index] = replacement

        logger.debug(f"Replaced item in {tenant}/{collection}: {entity_id}")
        return replacement

    def merge(
        self,
        tenant: str,
        collection: str,
        entity_id: Any,
        partial: dict[str, Any],
        timestamps: bool | None = None,
    ) -> dict[str, Any] | None:
        """Shallow-merge fields into an entity, keeping its id.

        Returns:
            The merged entity, or None if no entity has that id
        """
        target = self._find_collection(tenant, collection)
        if target is None:
            logger.warning(f"Item not found for merge: {tenant}/{collection}/{entity_id}")
            return None

        with target.lock:
            index = target.index_of(entity_id)
            if index == -1:
                logger.warning(f"Item not found for merge: {tenant}/{collection}/{entity_id}")
                return None

            existing = target.items[index]
            merged = {**existing, **partial}
            merged["id"] = existing["id"]
            if self._stamp(timestamps):
                merged["updatedAt"] = utc_timestamp()
            target.items[index] = merged

        logger.debug(f"Merged item in {tenant}/{collection}: {entity_id}")
        return merged

    def remove(self, tenant: str, collection: str, entity_id: Any) -> bool:
        """Delete an entity. Returns True if something was removed."""
        target = self._find_collection(tenant, collection)
        if target is None:
            return False

        with target.lock:
            index = target.index_of(entity_id)
            if index == -1:
                logger.warning(f"Item not found for remove: {tenant}/{collection}/{entity_id}")
                return False
            del target.items[index]

        logger.debug(f"Deleted item from {tenant}/{collection}: {entity_id}")
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list(
        self,
        tenant: str,
        collection: str,
        equality_filter: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Snapshot of a collection, optionally restricted by key equality.

        Args:
            tenant: Tenant name
            collection: Collection name
            equality_filter: Only keep items whose keys equal all these values

        Returns:
            New list of entities in insertion order (empty if missing)
        """
        target = self._find_collection(tenant, collection)
        if target is None:
            return []

        with target.lock:
            items = list(target.items)

        if not equality_filter:
            return items
        return [
            item
            for item in items
            if all(key in item and item[key] == value for key, value in equality_filter.items())
        ]

    def get_by_id(self, tenant: str, collection: str, entity_id: Any) -> dict[str, Any] | None:
        """Fetch one entity by id, or None."""
        target = self._find_collection(tenant, collection)
        if target is None:
            return None

        with target.lock:
            index = target.index_of(entity_id)
            if index == -1:
                return None
            return target.items[index]

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load_directory(self, tenant: str, data_dir: str | Path) -> int:
        """Load every "<collection>.json" array in a directory.

        Existing collections with the same name are replaced. Files that are
        not JSON arrays are skipped with a warning. Items without an id get a
        uuid4, and a repeated id keeps only its first item.

        Args:
            tenant: Tenant to load into
            data_dir: Directory holding the collection files

        Returns:
            Number of collections loaded
        """
        directory = Path(data_dir)
        if not directory.is_dir():
            logger.warning(f"Data directory not found: {directory}")
            return 0

        loaded = 0
        for path in sorted(directory.glob("*.json")):
            try:
                with path.open(encoding="utf-8") as fh:
                    data = json.load(fh)
            except (OSError, json.JSONDecodeError) as e:
                logger.error(f"Error loading data from {path.name}: {e}")
                continue

            if not isinstance(data, list):
                logger.warning(f"Expected array data in {path.name}, got {type(data).__name__}")
                continue

            items = self._unique_items(data, f"{tenant}/{path.stem}")
            target = self.get_or_create_collection(tenant, path.stem)
            with target.lock:
                target.items = items
            loaded += 1
            logger.info(f"Loaded {len(target)} items into {tenant}/{path.stem}")

        return loaded

    def _unique_items(self, data: list[Any], location: str) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        seen: set[str] = set()
        for raw in data:
            if not isinstance(raw, dict):
                continue
            item = dict(raw)
            if item.get("id") is None or item.get("id") == "":
                item["id"] = str(uuid.uuid4())
            key = str(item["id"])
            if key in seen:
                logger.warning(f"Skipping duplicate id {item['id']!r} in {location}")
                continue
            seen.add(key)
            items.append(item)
        return items

    def save_directory(self, tenant: str, data_dir: str | Path) -> int:
        """Write each collection of a tenant to "<collection>.json".

        Returns:
            Number of collections written
        """
        directory = Path(data_dir)
        directory.mkdir(parents=True, exist_ok=True)

        saved = 0
        for name in self.collection_names(tenant):
            items = self.list(tenant, name)
            path = directory / f"{name}.json"
            with path.open("w", encoding="utf-8") as fh:
                json.dump(items, fh, indent=2)
            saved += 1
            logger.info(f"Saved collection to {path}")

        return saved

    def _stamp(self, timestamps: bool | None) -> bool:
        return self.timestamps if timestamps is None else timestamps
