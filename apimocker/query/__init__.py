"""
Query module for apimocker - OData-style queries over in-memory collections.

This module handles:
- $filter parsing and fail-open evaluation
- $orderby, $skip, $top, $select and $count
- $expand through relationship descriptors or naming conventions
- OData response envelopes, service documents and $metadata

Invariants:
    - Nothing in this package raises on bad client input
    - Stored entities are read, never mutated

How to change safely:
    - Keep the pipeline stage order in processor.process_query
    - Keep HTTP concerns in apimocker.api
"""

from .engine import QueryEngine
from .expansion import ExpansionResolver, ExpandItem, parse_expand
from .filter import apply_filter, parse_filter
from .options import QueryOptions, parse_query_options
from .processor import QueryResult, process_query
from .relationships import NavigationProperty, RelationshipDescriptor

__all__ = [
    "ExpandItem",
    "ExpansionResolver",
    "NavigationProperty",
    "QueryEngine",
    "QueryOptions",
    "QueryResult",
    "RelationshipDescriptor",
    "apply_filter",
    "parse_expand",
    "parse_filter",
    "parse_query_options",
    "process_query",
]
