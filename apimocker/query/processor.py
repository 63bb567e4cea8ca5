"""
Query pipeline for apimocker.

Applies the system query options to a list of entities in a fixed order:

    filter -> (filtered count) -> orderby -> skip -> top -> select -> expand

The order is load-bearing:
- $count reflects the filtered size before paging
- Sorting happens before paging so pages are stable
- $select runs after paging and before $expand, so expansion decorates the
  projected shape (a projection that drops foreign keys drops the expansion)

Invariants:
    - process_query never raises
    - Sorting is stable; null (or missing) keys sort last in both directions
    - top/skip are never negative
    - nextLink is only emitted when both $top and $skip were supplied

How to change safely:
    - Moving nulls changes page contents for existing mocks
    - Keep each stage a pure function of its input list
"""

from __future__ import annotations

import locale
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from functools import cmp_to_key
from typing import Any

from .filter import apply_filter, resolve_path
from .formatter import format_collection
from .options import QueryOptions

logger = logging.getLogger(__name__)

Expander = Callable[[list[dict[str, Any]], str], list[dict[str, Any]]]


@dataclass(frozen=True)
class SortKey:
    """One $orderby clause."""

    path: str
    descending: bool = False


@dataclass
class QueryResult:
    """Outcome of the query pipeline.

    Attributes:
        value: Entities (or projections) of the requested page
        count: Filtered count when $count=true, else None
        next_link: Continuation link, else None
        diagnostics: Filter failures absorbed by fail-open evaluation
    """

    value: list[dict[str, Any]]
    count: int | None = None
    next_link: str | None = None
    diagnostics: list[str] = field(default_factory=list)

    def to_envelope(self, context: str | None = None) -> dict[str, Any]:
        """OData JSON envelope for this result."""
        return format_collection(self.value, context=context, count=self.count, next_link=self.next_link)


# =============================================================================
# $orderby
# =============================================================================


def parse_orderby(option: str | None) -> list[SortKey]:
    """Parse "field [asc|desc], ..." into sort keys."""
    keys: list[SortKey] = []
    if not option:
        return keys
    for clause in option.split(","):
        parts = clause.split()
        if not parts:
            continue
        descending = len(parts) > 1 and parts[1].lower() == "desc"
        keys.append(SortKey(parts[0], descending))
    return keys


def _is_numeric(value: Any) -> bool:
    return isinstance(value, (int, float))


def _collate(left: str, right: str) -> int:
    try:
        return locale.strcoll(left, right)
    except ValueError:
        # strcoll rejects embedded NUL characters
        return (left > right) - (left < right)


def _compare_key(left: Any, right: Any, descending: bool) -> int:
    if left is None and right is None:
        return 0
    # nulls last regardless of direction
    if left is None:
        return 1
    if right is None:
        return -1

    if isinstance(left, str) and isinstance(right, str):
        result = _collate(left, right)
    elif _is_numeric(left) and _is_numeric(right):
        difference = left - right
        result = (difference > 0) - (difference < 0)
    else:
        return 0

    return -result if descending else result


def apply_orderby(items: Iterable[dict[str, Any]], option: str | None) -> list[dict[str, Any]]:
    """Stable multi-key sort."""
    items = list(items)
    keys = parse_orderby(option)
    if not keys:
        return items

    def compare(a: dict[str, Any], b: dict[str, Any]) -> int:
        for key in keys:
            result = _compare_key(resolve_path(a, key.path), resolve_path(b, key.path), key.descending)
            if result != 0:
                return result
        return 0

    return sorted(items, key=cmp_to_key(compare))


# =============================================================================
# $select
# =============================================================================


def _project(item: dict[str, Any], properties: list[str]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for prop in properties:
        if "/" in prop:
            parent, child = prop.split("/")[:2]
            parent_value = item.get(parent)
            if isinstance(parent_value, dict):
                nested = result.get(parent)
                if nested is parent_value:
                    # whole parent already selected
                    continue
                if not isinstance(nested, dict):
                    nested = {}
                    result[parent] = nested
                if child in parent_value:
                    nested[child] = parent_value[child]
        elif prop in item:
            result[prop] = item[prop]
    return result


def apply_select(items: Iterable[dict[str, Any]], option: str | None) -> list[dict[str, Any]]:
    """Project each item onto the requested properties; unknown keys are omitted."""
    items = list(items)
    if not option:
        return items
    properties = [prop.strip() for prop in option.split(",") if prop.strip()]
    if not properties or "*" in properties:
        return [dict(item) for item in items]
    return [_project(item, properties) for item in items]


# =============================================================================
# Pipeline
# =============================================================================


def apply_paging(
    items: list[dict[str, Any]],
    skip: int | None,
    top: int | None,
) -> list[dict[str, Any]]:
    """$skip then $top."""
    if skip is not None:
        items = items[skip:]
    if top is not None:
        items = items[:top]
    return items


def next_link_for(base_url: str, skip: int | None, top: int | None, filtered_count: int) -> str | None:
    """Continuation link when both skip and top were supplied and more items remain."""
    if skip is None or top is None:
        return None
    if skip + top >= filtered_count:
        return None
    return f"{base_url}?$skip={skip + top}&$top={top}"


def process_query(
    items: Iterable[dict[str, Any]] | None,
    options: QueryOptions,
    expander: Expander | None = None,
    base_url: str = "",
) -> QueryResult:
    """Run the full pipeline over a collection snapshot.

    Args:
        items: Collection snapshot (None is treated as empty)
        options: Parsed query options
        expander: Callable resolving $expand on the projected page
        base_url: Prefix for the continuation link

    Returns:
        QueryResult for the requested page
    """
    diagnostics: list[str] = []
    result = apply_filter(items or [], options.filter, diagnostics)
    filtered_count = len(result)

    result = apply_orderby(result, options.orderby)
    result = apply_paging(result, options.skip, options.top)
    result = apply_select(result, options.select)

    if options.expand and expander is not None:
        try:
            result = expander(result, options.expand)
        except Exception as e:
            logger.error(f"Expansion failed for '{options.expand}': {e}", exc_info=True)

    return QueryResult(
        value=result,
        count=filtered_count if options.count else None,
        next_link=next_link_for(base_url, options.skip, options.top, filtered_count),
        diagnostics=diagnostics,
    )
