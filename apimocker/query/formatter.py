"""
OData response formatting.

Builds the JSON bodies returned by the route layer:
- Collection envelopes: {"@odata.context", "value", "@odata.count", "@odata.nextLink"}
- Single entities with "@odata.context" merged first
- OData error bodies
- Service documents and a minimal $metadata document

The $metadata document maps sample values to a handful of scalar Edm types;
it is a description of the mocked data, not a type system.
"""

from __future__ import annotations

import re
from typing import Any
from xml.sax.saxutils import quoteattr

_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}")


def format_collection(
    value: list[dict[str, Any]],
    context: str | None = None,
    count: int | None = None,
    next_link: str | None = None,
) -> dict[str, Any]:
    """Collection envelope. Optional members are omitted when None."""
    response: dict[str, Any] = {}
    if context is not None:
        response["@odata.context"] = context
    response["value"] = value
    if count is not None:
        response["@odata.count"] = count
    if next_link:
        response["@odata.nextLink"] = next_link
    return response


def format_entity(entity: dict[str, Any], context: str | None = None) -> dict[str, Any]:
    """Single entity with "@odata.context" as its first member."""
    if context is None:
        return dict(entity)
    return {"@odata.context": context, **entity}


def format_error(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """OData error body."""
    details = details or {}
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details,
            "innererror": details.get("innererror", {}),
        }
    }


def context_url(
    service_root: str,
    entity_set: str,
    select: str | None = None,
    entity: bool = False,
) -> str:
    """Context URL of the form <root>/$metadata#<set>[(<select>)][/$entity]."""
    context = f"{service_root}/$metadata#{entity_set}"
    if select:
        context += f"({select})"
    if entity:
        context += "/$entity"
    return context


def service_document(service_root: str, collections: list[str]) -> dict[str, Any]:
    """Service document listing every collection as an EntitySet."""
    return {
        "@odata.context": f"{service_root}/$metadata",
        "value": [{"name": name, "kind": "EntitySet", "url": name} for name in collections],
    }


def edm_type(value: Any) -> str:
    """Scalar Edm type name for a sample JSON value."""
    if value is None:
        return "Edm.String"
    if isinstance(value, bool):
        return "Edm.Boolean"
    if isinstance(value, int):
        return "Edm.Int32"
    if isinstance(value, float):
        return "Edm.Double"
    if isinstance(value, str):
        return "Edm.DateTimeOffset" if _DATETIME_RE.match(value) else "Edm.String"
    if isinstance(value, list):
        return "Collection(Edm.String)"
    return "Edm.ComplexType"


def _entity_type_name(collection: str) -> str:
    singular = collection[:-1] if collection.endswith("s") else collection
    return singular[:1].upper() + singular[1:]


def generate_metadata(namespace: str, samples: dict[str, dict[str, Any] | None]) -> str:
    """Minimal EDMX document for a set of collections.

    Args:
        namespace: Schema namespace (usually the tenant name)
        samples: Collection name -> first item (None for empty collections)

    Returns:
        EDMX XML string
    """
    entity_types = []
    entity_sets = []
    for collection, sample in samples.items():
        type_name = _entity_type_name(collection)
        entity_sets.append(
            f"<EntitySet Name={quoteattr(collection)} EntityType={quoteattr('Self.' + type_name)} />"
        )
        if not sample:
            continue

        properties = []
        for name, value in sample.items():
            nullable = ' Nullable="false"' if name == "id" else ""
            properties.append(
                f"<Property Name={quoteattr(name)} Type={quoteattr(edm_type(value))}{nullable} />"
            )
        key = "<Key><PropertyRef Name=\"id\" /></Key>" if "id" in sample else ""
        body = "\n        ".join([key, *properties] if key else properties)
        entity_types.append(
            f"<EntityType Name={quoteattr(type_name)}>\n        {body}\n      </EntityType>"
        )

    types_xml = "\n      ".join(entity_types)
    sets_xml = "\n        ".join(entity_sets)
    return f"""<?xml version="1.0" encoding="utf-8"?>
<edmx:Edmx Version="4.0" xmlns:edmx="http://docs.oasis-open.org/odata/ns/edmx">
  <edmx:DataServices>
    <Schema Namespace={quoteattr(namespace)} xmlns="http://docs.oasis-open.org/odata/ns/edm">
      {types_xml}
      <EntityContainer Name="DefaultContainer">
        {sets_xml}
      </EntityContainer>
    </Schema>
  </edmx:DataServices>
</edmx:Edmx>"""
