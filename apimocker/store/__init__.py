"""
Store module for apimocker - in-memory tenant collections.

This module handles:
- Per-tenant, per-collection ordered entity sequences
- Create/replace/merge/remove/list/get-by-id
- JSON directory load and save at process boundaries

Invariants:
    - Entity ids are unique within a collection
    - Every mutation holds the collection lock

How to change safely:
    - Keep the query core read-only against the store
    - Keep persistence out of the request path
"""

from ..errors import DuplicateEntityError
from .resource_store import Collection, ResourceStore, utc_timestamp

__all__ = [
    "Collection",
    "DuplicateEntityError",
    "ResourceStore",
    "utc_timestamp",
]
