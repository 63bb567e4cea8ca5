"""
Query engine binding the store, the pipeline and the expansion resolver.

The route layer hands the engine (tenant, collection, raw query) and gets
back a ready-to-serialize body. Nothing here talks HTTP.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from ..store.resource_store import ResourceStore
from .expansion import ExpansionResolver
from .formatter import format_entity
from .options import parse_query_options
from .processor import QueryResult, apply_select, process_query

logger = logging.getLogger(__name__)

RawQuery = str | Mapping[str, str] | None


class QueryEngine:
    """Answers collection and single-entity queries for a store.

    Attributes:
        store: Resource store holding every tenant's collections
        resolver: Expansion resolver bound to the same store
    """

    def __init__(self, store: ResourceStore, resolver: ExpansionResolver | None = None) -> None:
        self.store = store
        self.resolver = resolver or ExpansionResolver(store)

    def run(
        self,
        tenant: str,
        collection: str,
        raw_query: RawQuery = None,
        base_url: str = "",
    ) -> QueryResult:
        """Run the pipeline over a collection snapshot."""
        options = parse_query_options(raw_query)
        items = self.store.list(tenant, collection)

        def expander(page: list[dict[str, Any]], expand: str) -> list[dict[str, Any]]:
            return self.resolver.expand(tenant, collection, page, expand)

        result = process_query(items, options, expander=expander, base_url=base_url)
        logger.debug(
            f"Query on {tenant}/{collection} returned {len(result.value)} item(s)",
            extra={"tenant": tenant, "collection": collection, "diagnostics": len(result.diagnostics)},
        )
        return result

    def query_collection(
        self,
        tenant: str,
        collection: str,
        raw_query: RawQuery = None,
        base_url: str = "",
        context: str | None = None,
    ) -> dict[str, Any]:
        """Collection envelope for a raw query.

        Args:
            tenant: Tenant name
            collection: Collection name (missing collections yield an empty value)
            raw_query: Query string or parameter mapping
            base_url: Prefix for @odata.nextLink
            context: Value for @odata.context

        Returns:
            {"@odata.context"?, "value", "@odata.count"?, "@odata.nextLink"?}
        """
        return self.run(tenant, collection, raw_query, base_url).to_envelope(context)

    def get_entity(
        self,
        tenant: str,
        collection: str,
        entity_id: Any,
        raw_query: RawQuery = None,
        context: str | None = None,
    ) -> dict[str, Any] | None:
        """Single entity with $select and $expand applied, or None if missing."""
        entity = self.store.get_by_id(tenant, collection, entity_id)
        if entity is None:
            return None

        options = parse_query_options(raw_query)
        shaped = apply_select([entity], options.select)[0]
        if options.expand:
            try:
                shaped = self.resolver.expand_entity(tenant, collection, shaped, options.expand)
            except Exception as e:
                logger.error(f"Expansion failed for {tenant}/{collection}/{entity_id}: {e}", exc_info=True)
        return format_entity(shaped, context)
