"""
Unit tests for $filter parsing and evaluation.

Tests cover:
- Literal parsing
- Comparison operators and string functions
- Flat and/or splitting and parenthesized groups
- Nested property paths
- Fail-open behaviour with diagnostics
"""

import pytest

from apimocker.errors import FilterParseError
from apimocker.query.filter import (
    MAX_NESTING_DEPTH,
    And,
    Compare,
    Function,
    Or,
    apply_filter,
    parse_filter,
    parse_literal,
)
from apimocker.query.options import parse_query_options
from apimocker.query.processor import process_query

PRODUCTS = [
    {"id": 1, "name": "Laptop", "price": 10.99, "category": "Electronics", "inStock": True},
    {"id": 2, "name": "Lamp", "price": 24.99, "category": "Home", "inStock": False},
    {"id": 3, "name": "Cable", "price": 5.99, "category": "Electronics", "inStock": True},
    {"id": 4, "name": "Jacket", "price": 49.99, "category": "Clothing", "inStock": True},
    {"id": 5, "name": "Pillow", "price": 15.99, "category": "Home", "inStock": False},
]


def ids(items):
    return [item["id"] for item in items]


class TestParseLiteral:
    """Tests for literal conversion."""

    def test_numbers(self):
        assert parse_literal("20") == 20.0
        assert parse_literal("-1.5") == -1.5

    def test_booleans_and_null(self):
        assert parse_literal("true") is True
        assert parse_literal("false") is False
        assert parse_literal("null") is None

    def test_raw_token(self):
        assert parse_literal("Electronics") == "Electronics"


class TestParseFilter:
    """Tests for the parser."""

    def test_comparison(self):
        assert parse_filter("price gt 20") == Compare("price", "gt", 20.0)

    def test_quoted_string_with_escape(self):
        assert parse_filter("name eq 'O''Brien'") == Compare("name", "eq", "O'Brien")

    def test_quoted_string_keeps_keywords(self):
        """and/or inside a literal do not split."""
        assert parse_filter("name eq 'salt and pepper'") == Compare("name", "eq", "salt and pepper")

    def test_function_call(self):
        assert parse_filter("startswith(name, 'La')") == Function("startswith", "name", "La")

    def test_infix_contains(self):
        assert parse_filter("name contains 'ap'") == Function("contains", "name", "ap")

    def test_and_binds_last(self):
        """Mixed and/or splits on and first, then on or."""
        ast = parse_filter("id eq 1 or id eq 2 and price gt 20")

        assert ast == And(
            (
                Or((Compare("id", "eq", 1.0), Compare("id", "eq", 2.0))),
                Compare("price", "gt", 20.0),
            )
        )

    def test_parenthesized_group(self):
        ast = parse_filter("(id eq 1 or id eq 2)")

        assert ast == Or((Compare("id", "eq", 1.0), Compare("id", "eq", 2.0)))

    def test_deep_nesting_within_limit(self):
        depth = MAX_NESTING_DEPTH

        assert parse_filter("(" * depth + "id eq 1" + ")" * depth) == Compare("id", "eq", 1.0)

    def test_nesting_beyond_limit(self):
        depth = MAX_NESTING_DEPTH + 1

        with pytest.raises(FilterParseError):
            parse_filter("(" * depth + "id eq 1" + ")" * depth)

    def test_upper_case_keywords_are_not_logical(self):
        with pytest.raises(FilterParseError):
            parse_filter("id eq 1 AND id eq 2")

    @pytest.mark.parametrize(
        "expression",
        ["", "price", "price between 1", "startswith(name)", "name eq 'open", "(price gt 1"],
    )
    def test_unsupported(self, expression):
        with pytest.raises(FilterParseError):
            parse_filter(expression)


class TestApplyFilter:
    """Tests for evaluation over items."""

    def test_price_gt(self):
        assert ids(apply_filter(PRODUCTS, "price gt 20")) == [2, 4]

    def test_eq_string(self):
        assert ids(apply_filter(PRODUCTS, "category eq 'Home'")) == [2, 5]

    def test_ne(self):
        assert ids(apply_filter(PRODUCTS, "category ne 'Home'")) == [1, 3, 4]

    def test_ge_le(self):
        assert ids(apply_filter(PRODUCTS, "price ge 10.99 and price le 24.99")) == [1, 2, 5]

    def test_eq_bool_is_strict(self):
        """true does not equal 1."""
        items = [{"id": 1, "flag": 1}, {"id": 2, "flag": True}]

        assert ids(apply_filter(items, "flag eq true")) == [2]

    def test_eq_null(self):
        items = [{"id": 1, "note": None}, {"id": 2, "note": "x"}, {"id": 3}]

        assert ids(apply_filter(items, "note eq null")) == [1, 3]

    def test_ordering_with_null_is_false(self):
        items = [{"id": 1, "price": None}, {"id": 2, "price": 30}]

        assert ids(apply_filter(items, "price gt 20")) == [2]

    def test_functions(self):
        assert ids(apply_filter(PRODUCTS, "startswith(name, 'La')")) == [1, 2]
        assert ids(apply_filter(PRODUCTS, "endswith(name, 'ow')")) == [5]
        assert ids(apply_filter(PRODUCTS, "contains(name, 'ck')")) == [4]

    def test_contains_on_list(self):
        items = [{"id": 1, "tags": ["a", "b"]}, {"id": 2, "tags": ["c"]}]

        assert ids(apply_filter(items, "contains(tags, 'b')")) == [1]

    def test_or(self):
        assert ids(apply_filter(PRODUCTS, "category eq 'Clothing' or price lt 6")) == [3, 4]

    def test_mixed_and_or_is_flat(self):
        """(id 1 or id 2) and price > 20 keeps only id 2."""
        assert ids(apply_filter(PRODUCTS, "id eq 1 or id eq 2 and price gt 20")) == [2]

    def test_nested_path(self):
        items = [
            {"id": 1, "address": {"city": "Paris"}},
            {"id": 2, "address": {"city": "Rome"}},
            {"id": 3},
        ]

        assert ids(apply_filter(items, "address/city eq 'Rome'")) == [2]

    def test_empty_filter_keeps_everything(self):
        assert ids(apply_filter(PRODUCTS, None)) == [1, 2, 3, 4, 5]
        assert ids(apply_filter(PRODUCTS, "   ")) == [1, 2, 3, 4, 5]

    def test_preserves_order_and_input(self):
        items = list(PRODUCTS)

        result = apply_filter(items, "price gt 0")

        assert result == PRODUCTS
        assert result is not items

    @pytest.mark.parametrize(
        "expression",
        ["price gt 20", "category eq 'Home' or price lt 6", "startswith(name, 'La')", "price between 1"],
    )
    def test_filtering_again_changes_nothing(self, expression):
        once = apply_filter(PRODUCTS, expression)

        assert apply_filter(once, expression) == once
        assert len(once) <= len(PRODUCTS)


class TestFailOpen:
    """Tests for fail-open evaluation."""

    def test_unparsable_expression_keeps_all(self):
        diagnostics = []

        result = apply_filter(PRODUCTS, "price between 1 and 2", diagnostics)

        assert ids(result) == [1, 2, 3, 4, 5]
        assert len(diagnostics) == 1

    def test_type_mismatch_keeps_item(self):
        """A string compared with a number keeps the item."""
        items = [{"id": 1, "price": "cheap"}, {"id": 2, "price": 5}, {"id": 3, "price": 50}]
        diagnostics = []

        result = apply_filter(items, "price gt 20", diagnostics)

        assert ids(result) == [1, 3]
        assert len(diagnostics) == 1
        assert "price gt 20" in diagnostics[0]

    def test_function_on_non_string_keeps_item(self):
        items = [{"id": 1, "name": 42}, {"id": 2, "name": "Lamp"}, {"id": 3, "name": "Sofa"}]
        diagnostics = []

        result = apply_filter(items, "startswith(name, 'La')", diagnostics)

        assert ids(result) == [1, 2]
        assert len(diagnostics) == 1

    def test_without_diagnostics_list(self):
        """Failures are absorbed when no list is supplied."""
        items = [{"id": 1, "price": "cheap"}]

        assert ids(apply_filter(items, "price gt 20")) == [1]

    def test_deeply_nested_expression_keeps_all(self):
        """Nesting far past the limit is unparsable, not a crash."""
        expression = "(" * 400 + "id eq 1" + ")" * 400
        diagnostics = []

        result = process_query(PRODUCTS, parse_query_options({"$filter": expression}))

        assert ids(result.value) == [1, 2, 3, 4, 5]
        assert ids(apply_filter(PRODUCTS, expression, diagnostics)) == [1, 2, 3, 4, 5]
        assert len(diagnostics) == 1
