"""
$expand resolution for apimocker.

Decorates entities with related entities read from the resource store.
A navigation name is resolved in this order:

    1. Relationship descriptor entry for (source collection, name)
    2. Belongs-to by convention: the entity has "<singular(name)>Id";
       the related entity is looked up by id in pluralize(name)
    3. Has-many by convention: items of collection name.lower() whose
       "<entitytype>Id" (fully lower-cased type) or "<entityType>Id" (first
       letter lower-cased) equals the entity's id

Nested options are written in parentheses:

    Orders($expand=Customer)
    Orders(Customer)                 shorthand for $expand
    Orders($select=id,total;$expand=Customer)

Invariants:
    - Stored entities are never mutated; every result is a copy
    - Any failure omits the navigation property instead of raising
    - Has-many lookups never create collections
    - Output is deterministic for an unchanged store

How to change safely:
    - Keep the descriptor ahead of the conventions; a descriptor entry is
      the only way to override a convention that guesses wrong
    - New structural heuristics go in STRUCTURAL_TYPES, most specific first
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from ..store.resource_store import ResourceStore, same_id
from .processor import apply_select
from .relationships import NavigationProperty, RelationshipDescriptor

logger = logging.getLogger(__name__)

# (required keys, entity type), checked in order
STRUCTURAL_TYPES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("category", "photoUrls"), "Pet"),
    (("shipDate", "petId"), "Order"),
)


@dataclass
class ExpandItem:
    """One navigation property of an $expand option.

    Attributes:
        name: Navigation property name as written by the client
        select: Nested $select, if any
        expand: Nested expand items
    """

    name: str
    select: str | None = None
    expand: list[ExpandItem] = field(default_factory=list)


# =============================================================================
# Parsing
# =============================================================================


def _split_outside_parens(text: str, separator: str) -> list[str]:
    parts: list[str] = []
    depth = 0
    current: list[str] = []
    for ch in text:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(depth - 1, 0)
        if ch == separator and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(ch)
    parts.append("".join(current))
    return [part.strip() for part in parts if part.strip()]


def _parse_nested(item: ExpandItem, inner: str) -> None:
    for option in _split_outside_parens(inner, ";"):
        key, sep, value = option.partition("=")
        key = key.strip().lower()
        if not sep:
            # Orders(Customer)
            item.expand.extend(parse_expand(option))
        elif key == "$expand":
            item.expand.extend(parse_expand(value))
        elif key == "$select":
            item.select = value.strip() or None
        else:
            logger.debug(f"Ignoring nested option '{key}' in $expand of {item.name}")


def parse_expand(option: str | None) -> list[ExpandItem]:
    """Parse a raw $expand value into expand items."""
    items: list[ExpandItem] = []
    if not option:
        return items
    for part in _split_outside_parens(option, ","):
        name, paren, rest = part.partition("(")
        item = ExpandItem(name=name.strip())
        if not item.name:
            continue
        if paren:
            inner = rest[: rest.rfind(")")] if ")" in rest else rest
            _parse_nested(item, inner)
        items.append(item)
    return items


# =============================================================================
# Naming conventions
# =============================================================================


def singularize(name: str) -> str:
    """Lower-case and strip one trailing "s"."""
    name = name.lower()
    return name[:-1] if name.endswith("s") else name


def pluralize(name: str) -> str:
    """Lower-case and make sure the name ends with "s"."""
    name = name.lower()
    return name if name.endswith("s") else name + "s"


def infer_entity_type(entity: dict[str, Any]) -> str | None:
    """Entity type from entityType, @odata.type, then structural heuristics."""
    entity_type = entity.get("entityType")
    if isinstance(entity_type, str) and entity_type:
        return entity_type

    odata_type = entity.get("@odata.type")
    if isinstance(odata_type, str) and odata_type:
        return odata_type.lstrip("#").split(".")[-1]

    for keys, type_name in STRUCTURAL_TYPES:
        if all(key in entity for key in keys):
            return type_name
    return None


def _lower_first(name: str) -> str:
    return name[:1].lower() + name[1:]


# =============================================================================
# Resolver
# =============================================================================


class ExpansionResolver:
    """Resolves navigation properties against a ResourceStore.

    Example:
        >>> resolver = ExpansionResolver(store)
        >>> resolver.expand("shop", "orders", orders, "customer")
    """

    def __init__(self, store: ResourceStore, descriptor: RelationshipDescriptor | None = None) -> None:
        """Initialize the resolver.

        Args:
            store: Store holding the related collections
            descriptor: Optional explicit relationship metadata
        """
        self.store = store
        self.descriptor = descriptor or RelationshipDescriptor()

    def expand(
        self,
        tenant: str,
        source_collection: str | None,
        items: list[dict[str, Any]],
        expand_option: str | list[ExpandItem] | None,
    ) -> list[dict[str, Any]]:
        """Expand every item of a page.

        Args:
            tenant: Tenant owning the collections
            source_collection: Collection the items come from
            items: Entities (or projections) to decorate
            expand_option: Raw $expand value or parsed expand items

        Returns:
            New list of decorated copies
        """
        expand_items = (
            parse_expand(expand_option) if isinstance(expand_option, str) or expand_option is None
            else expand_option
        )
        if not expand_items:
            return list(items)
        return [self._expand_one(tenant, source_collection, item, expand_items) for item in items]

    def expand_entity(
        self,
        tenant: str,
        source_collection: str | None,
        entity: dict[str, Any],
        expand_option: str | list[ExpandItem] | None,
    ) -> dict[str, Any]:
        """Expand a single entity."""
        return self.expand(tenant, source_collection, [entity], expand_option)[0]

    def _expand_one(
        self,
        tenant: str,
        source_collection: str | None,
        entity: dict[str, Any],
        expand_items: list[ExpandItem],
    ) -> dict[str, Any]:
        result = dict(entity)
        for expand_item in expand_items:
            try:
                resolved = self._resolve(tenant, source_collection, entity, expand_item)
            except Exception as e:
                logger.warning(
                    f"Error expanding {expand_item.name}: {e}",
                    extra={"tenant": tenant, "collection": source_collection},
                )
                continue
            if resolved is not None:
                result[expand_item.name] = resolved
        return result

    def _resolve(
        self,
        tenant: str,
        source_collection: str | None,
        entity: dict[str, Any],
        expand_item: ExpandItem,
    ) -> dict[str, Any] | list[dict[str, Any]] | None:
        prop = self.descriptor.get(source_collection, expand_item.name)
        if prop is not None:
            return self._resolve_described(tenant, entity, prop, expand_item)

        name = expand_item.name
        foreign_key = f"{singularize(name)}Id"
        if foreign_key in entity:
            target = pluralize(name)
            related = self.store.get_by_id(tenant, target, entity[foreign_key])
            if related is None:
                logger.debug(f"No {target} entity for {foreign_key}={entity[foreign_key]!r}")
                return None
            return self._finish_one(tenant, target, related, expand_item)

        target = name.lower()
        if not self.store.has_collection(tenant, target):
            logger.debug(f"Cannot expand {name}: collection {tenant}/{target} not found")
            return None
        entity_type = infer_entity_type(entity)
        if entity_type is None or entity.get("id") is None:
            logger.debug(f"Cannot expand {name}: unknown entity type")
            return None
        back_references = tuple(
            dict.fromkeys((f"{entity_type.lower()}Id", f"{_lower_first(entity_type)}Id"))
        )
        related_items = [
            item
            for item in self.store.list(tenant, target)
            if any(same_id(item.get(key), entity["id"]) for key in back_references)
        ]
        return self._finish_many(tenant, target, related_items, expand_item)

    def _resolve_described(
        self,
        tenant: str,
        entity: dict[str, Any],
        prop: NavigationProperty,
        expand_item: ExpandItem,
    ) -> dict[str, Any] | list[dict[str, Any]] | None:
        if prop.kind == "one":
            key = entity.get(prop.foreign_key)
            if key is None:
                return None
            related = self.store.get_by_id(tenant, prop.target, key)
            if related is None:
                return None
            return self._finish_one(tenant, prop.target, related, expand_item)

        if not self.store.has_collection(tenant, prop.target):
            return None
        reference = entity.get(prop.references)
        if reference is None:
            return None
        related_items = [
            item
            for item in self.store.list(tenant, prop.target)
            if same_id(item.get(prop.foreign_key), reference)
        ]
        return self._finish_many(tenant, prop.target, related_items, expand_item)

    def _finish_one(
        self,
        tenant: str,
        target: str,
        related: dict[str, Any],
        expand_item: ExpandItem,
    ) -> dict[str, Any]:
        return self._finish_many(tenant, target, [related], expand_item)[0]

    def _finish_many(
        self,
        tenant: str,
        target: str,
        related: list[dict[str, Any]],
        expand_item: ExpandItem,
    ) -> list[dict[str, Any]]:
        # nested $expand reads the full entity, $select shapes the output
        expanded = (
            self.expand(tenant, target, related, expand_item.expand)
            if expand_item.expand
            else [dict(item) for item in related]
        )
        if not expand_item.select:
            return expanded
        selected = apply_select(expanded, expand_item.select)
        nested_names = {nested.name for nested in expand_item.expand}
        for source, projected in zip(expanded, selected):
            for nested_name in nested_names:
                if nested_name in source:
                    projected[nested_name] = source[nested_name]
        return selected
