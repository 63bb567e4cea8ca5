"""
Relationship descriptors for $expand.

A descriptor names, per source collection, the navigation properties that
$expand may resolve and how:

    relationships:
      orders:
        customer:
          target: customers
          kind: one            # belongs-to: orders.customerId -> customers.id
          foreign_key: customerId
      customers:
        orders:
          target: orders
          kind: many           # has-many: orders.customerId == customers.id
          foreign_key: customerId
          references: id       # optional, defaults to "id"

The file may be YAML or JSON (JSON is valid YAML). When a descriptor entry
exists it always wins over the naming-convention fallback.

Invariants:
    - kind is "one" or "many"
    - target and foreign_key are non-empty strings
    - Lookups never raise; unknown names return None
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from ..errors import RelationshipConfigError

logger = logging.getLogger(__name__)

VALID_KINDS = ("one", "many")


@dataclass(frozen=True)
class NavigationProperty:
    """One navigation property of a source collection.

    Attributes:
        name: Property name used in $expand
        target: Collection holding the related entities
        kind: "one" (belongs-to) or "many" (has-many)
        foreign_key: For "one", the source field holding the target id;
            for "many", the target field pointing back at the source
        references: Source field matched by a "many" foreign key
    """

    name: str
    target: str
    kind: str
    foreign_key: str
    references: str = "id"

    def validate(self) -> list[str]:
        """Validate the property definition."""
        errors = []
        if not self.name:
            errors.append("Navigation property name is required")
        if not self.target:
            errors.append(f"Navigation property '{self.name}': target is required")
        if self.kind not in VALID_KINDS:
            errors.append(
                f"Navigation property '{self.name}': invalid kind '{self.kind}'. Valid: {VALID_KINDS}"
            )
        if not self.foreign_key:
            errors.append(f"Navigation property '{self.name}': foreign_key is required")
        return errors


class RelationshipDescriptor:
    """Collection -> navigation property metadata.

    Example:
        >>> descriptor = RelationshipDescriptor()
        >>> descriptor.add("orders", NavigationProperty("customer", "customers", "one", "customerId"))
        >>> descriptor.get("orders", "Customer").target
        'customers'
    """

    def __init__(self) -> None:
        self._properties: dict[str, dict[str, NavigationProperty]] = {}

    def add(self, collection: str, prop: NavigationProperty) -> None:
        """Register a navigation property.

        Raises:
            RelationshipConfigError: If the property is invalid
        """
        errors = prop.validate()
        if errors:
            raise RelationshipConfigError("; ".join(errors))
        self._properties.setdefault(collection, {})[prop.name] = prop

    def get(self, collection: str | None, name: str) -> NavigationProperty | None:
        """Look up a navigation property, exact name first, then case-insensitive."""
        if collection is None:
            return None
        props = self._properties.get(collection)
        if not props:
            return None
        if name in props:
            return props[name]
        lowered = name.lower()
        for prop_name, prop in props.items():
            if prop_name.lower() == lowered:
                return prop
        return None

    def collections(self) -> list[str]:
        """Source collections with at least one navigation property."""
        return list(self._properties)

    def __len__(self) -> int:
        return sum(len(props) for props in self._properties.values())

    @classmethod
    def from_dict(cls, data: dict[str, Any], source: str | None = None) -> RelationshipDescriptor:
        """Build a descriptor from parsed YAML/JSON.

        Raises:
            RelationshipConfigError: If the structure is invalid
        """
        if not isinstance(data, dict) or not isinstance(data.get("relationships", {}), dict):
            raise RelationshipConfigError("Expected a mapping with a 'relationships' key", source)

        descriptor = cls()
        for collection, props in data.get("relationships", {}).items():
            if not isinstance(props, dict):
                raise RelationshipConfigError(
                    f"Collection '{collection}': expected a mapping of navigation properties",
                    source,
                )
            for name, spec in props.items():
                if not isinstance(spec, dict):
                    raise RelationshipConfigError(
                        f"Navigation property '{collection}.{name}': expected a mapping", source
                    )
                prop = NavigationProperty(
                    name=str(name),
                    target=str(spec.get("target", "")),
                    kind=str(spec.get("kind", "")),
                    foreign_key=str(spec.get("foreign_key", "")),
                    references=str(spec.get("references", "id")),
                )
                errors = prop.validate()
                if errors:
                    raise RelationshipConfigError("; ".join(errors), source)
                descriptor.add(str(collection), prop)

        return descriptor

    @classmethod
    def load(cls, path: str | Path) -> RelationshipDescriptor:
        """Load a descriptor file (YAML or JSON).

        Raises:
            RelationshipConfigError: If the file cannot be read or parsed
        """
        path = Path(path)
        try:
            with path.open(encoding="utf-8") as fh:
                data = yaml.safe_load(fh) or {}
        except (OSError, yaml.YAMLError) as e:
            raise RelationshipConfigError(f"Cannot read relationship file: {e}", str(path)) from e

        descriptor = cls.from_dict(data, source=str(path))
        logger.info(f"Loaded {len(descriptor)} navigation properties from {path}")
        return descriptor
