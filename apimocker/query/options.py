"""
OData system query options.

Turns the raw query of a request (a query string or a mapping of
parameters) into a QueryOptions value. Only $select, $filter, $orderby,
$top, $skip, $count and $expand are recognized; every other parameter is
ignored.

Invariants:
    - top and skip are None or non-negative integers
    - Non-numeric or negative $top/$skip are treated as absent
    - count is True only for $count=true
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from urllib.parse import parse_qsl

RECOGNIZED_OPTIONS = ("$select", "$filter", "$orderby", "$top", "$skip", "$count", "$expand")

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


@dataclass(frozen=True)
class QueryOptions:
    """Parsed system query options.

    Attributes:
        select: Raw $select list
        filter: Raw $filter expression
        orderby: Raw $orderby clauses
        top: Page size, None if absent or invalid
        skip: Items to skip, None if absent or invalid
        count: Whether the filtered count was requested
        expand: Raw $expand list
    """

    select: str | None = None
    filter: str | None = None
    orderby: str | None = None
    top: int | None = None
    skip: int | None = None
    count: bool = False
    expand: str | None = None


def parse_non_negative_int(value: str | int | None) -> int | None:
    """Leading-integer parse; None for missing, non-numeric or negative input."""
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return value if value >= 0 else None
    match = _LEADING_INT_RE.match(str(value))
    if not match:
        return None
    number = int(match.group(1))
    return number if number >= 0 else None


def _text(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def parse_query_options(raw: str | Mapping[str, str] | None) -> QueryOptions:
    """Build QueryOptions from a query string or a parameter mapping.

    Args:
        raw: "a=1&$top=2" (with or without a leading "?") or {"$top": "2"}

    Returns:
        QueryOptions with unrecognized parameters dropped
    """
    if raw is None:
        params: dict[str, str] = {}
    elif isinstance(raw, str):
        params = dict(parse_qsl(raw.lstrip("?"), keep_blank_values=True))
    else:
        params = {key: value for key, value in raw.items() if key in RECOGNIZED_OPTIONS}

    return QueryOptions(
        select=_text(params.get("$select")),
        filter=_text(params.get("$filter")),
        orderby=_text(params.get("$orderby")),
        top=parse_non_negative_int(params.get("$top")),
        skip=parse_non_negative_int(params.get("$skip")),
        count=str(params.get("$count", "")).strip().lower() == "true",
        expand=_text(params.get("$expand")),
    )
