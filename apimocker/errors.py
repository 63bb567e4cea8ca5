"""
Error types for apimocker.

This module defines the exception types raised inside the package:
- ApiMockerError: Base exception
- DuplicateEntityError: Insert collides with an existing id
- FilterParseError: $filter expression could not be parsed
- FilterEvaluationError: $filter term could not be evaluated for an item
- RelationshipConfigError: Relationship descriptor file is invalid

Invariants:
    - All errors inherit from ApiMockerError
    - Filter errors never escape the query pipeline (fail-open)
    - Errors include context for debugging
"""

from __future__ import annotations

from typing import Any


class ApiMockerError(Exception):
    """Base exception for all apimocker errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "APIMOCKER_ERROR"
        self.details = details or {}


class DuplicateEntityError(ApiMockerError):
    """An entity with the same id already exists in the collection."""

    def __init__(self, tenant: str, collection: str, entity_id: Any) -> None:
        super().__init__(
            f"Entity '{entity_id}' already exists in {tenant}/{collection}",
            code="DUPLICATE_ENTITY",
            details={"tenant": tenant, "collection": collection, "id": entity_id},
        )
        self.tenant = tenant
        self.collection = collection
        self.entity_id = entity_id


class FilterParseError(ApiMockerError):
    """A $filter expression is not supported by the parser.

    Raised when:
    - A term is neither a comparison nor a known function call
    - Parentheses or quotes are unbalanced
    - A function call has the wrong number of arguments
    """

    def __init__(self, message: str, expression: str | None = None) -> None:
        super().__init__(
            message,
            code="FILTER_PARSE_ERROR",
            details={"expression": expression},
        )
        self.expression = expression


class FilterEvaluationError(ApiMockerError):
    """A parsed $filter term could not be evaluated against an item."""

    def __init__(self, message: str, term: str | None = None) -> None:
        super().__init__(
            message,
            code="FILTER_EVALUATION_ERROR",
            details={"term": term},
        )
        self.term = term


class RelationshipConfigError(ApiMockerError):
    """Relationship descriptor file is malformed."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(
            message,
            code="RELATIONSHIP_CONFIG_ERROR",
            details={"path": path},
        )
        self.path = path
