"""
$filter parsing and evaluation for apimocker.

A filter string is tokenized, parsed into a small AST and evaluated per
item:

    expr     := term ((" and " | " or ") term)*
    term     := comparison | function | "(" expr ")"
    comparison := path OP literal          OP in eq ne gt ge lt le contains
    function := name "(" path "," literal ")"   name in startswith endswith contains

Logical operators are flat. If the expression contains "and" at the top
level it is split on every "and" and each part may then be split on "or";
otherwise it is split on "or". There is no other precedence, so
"a or b and c" means "(a or b) and c". The logical keywords are matched
lower-case only, so "AND" is an ordinary token. Parentheses may nest up to
MAX_NESTING_DEPTH levels; deeper input is treated as unparsable.

Literals: 'quoted' is a string ('' escapes a quote), numeric-looking is a
float, true/false are booleans, null is None, anything else is the raw
token.

Invariants:
    - apply_filter never raises
    - A parse or evaluation failure keeps the affected item (fail-open)
    - Every failure is logged and appended to the diagnostics list
    - Kept items retain their original relative order

How to change safely:
    - Introducing real and/or precedence changes which items match; it
      needs a product decision, not a parser fix
    - New operators must raise FilterEvaluationError on type mismatch
      rather than returning False
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Union

from ..errors import FilterEvaluationError, FilterParseError

logger = logging.getLogger(__name__)

COMPARISON_OPERATORS = ("eq", "ne", "gt", "ge", "lt", "le")
FUNCTION_NAMES = ("startswith", "endswith", "contains")

MAX_NESTING_DEPTH = 32

_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")

_STRING = "string"
_WORD = "word"
_LPAREN = "("
_RPAREN = ")"
_COMMA = ","


@dataclass(frozen=True)
class Compare:
    """path OP literal."""

    path: str
    op: str
    literal: Any


@dataclass(frozen=True)
class Function:
    """name(path, literal)."""

    name: str
    path: str
    literal: Any


@dataclass(frozen=True)
class And:
    """All terms must hold."""

    terms: tuple[FilterExpression, ...]


@dataclass(frozen=True)
class Or:
    """At least one term must hold."""

    terms: tuple[FilterExpression, ...]


FilterExpression = Union[And, Or, Compare, Function]


@dataclass(frozen=True)
class _Token:
    kind: str
    text: str


# =============================================================================
# Parsing
# =============================================================================


def _tokenize(expression: str) -> list[_Token]:
    tokens: list[_Token] = []
    i = 0
    n = len(expression)

    while i < n:
        ch = expression[i]
        if ch.isspace():
            i += 1
            continue

        if ch == "'":
            j = i + 1
            chars: list[str] = []
            while True:
                if j >= n:
                    raise FilterParseError("Unterminated string literal", expression)
                if expression[j] == "'":
                    if j + 1 < n and expression[j + 1] == "'":
                        chars.append("'")
                        j += 2
                        continue
                    break
                chars.append(expression[j])
                j += 1
            tokens.append(_Token(_STRING, "".join(chars)))
            i = j + 1
            continue

        if ch in "(),":
            tokens.append(_Token(ch, ch))
            i += 1
            continue

        j = i
        while j < n and not expression[j].isspace() and expression[j] not in "(),'":
            j += 1
        tokens.append(_Token(_WORD, expression[i:j]))
        i = j

    return tokens


def parse_literal(text: str) -> Any:
    """Convert an unquoted literal token to a Python value."""
    if _NUMBER_RE.match(text):
        return float(text)
    if text == "true":
        return True
    if text == "false":
        return False
    if text == "null":
        return None
    return text


def _is_keyword(token: _Token, keyword: str) -> bool:
    return token.kind == _WORD and token.text == keyword


def _nesting_depth(tokens: list[_Token]) -> int:
    depth = deepest = 0
    for token in tokens:
        if token.kind == _LPAREN:
            depth += 1
            deepest = max(deepest, depth)
        elif token.kind == _RPAREN:
            depth -= 1
    return deepest


def _split_top_level(tokens: list[_Token], keyword: str) -> list[list[_Token]]:
    """Split on a keyword at parenthesis depth zero."""
    parts: list[list[_Token]] = [[]]
    depth = 0
    for token in tokens:
        if token.kind == _LPAREN:
            depth += 1
        elif token.kind == _RPAREN:
            depth -= 1
        if depth == 0 and _is_keyword(token, keyword):
            parts.append([])
            continue
        parts[-1].append(token)
    return parts


class _Parser:
    """Recursive-descent parser over a token list."""

    def __init__(self, expression: str) -> None:
        self.expression = expression

    def parse(self) -> FilterExpression:
        tokens = _tokenize(self.expression)
        if not tokens:
            raise FilterParseError("Empty filter expression", self.expression)
        if _nesting_depth(tokens) > MAX_NESTING_DEPTH:
            raise FilterParseError(
                f"Parentheses nested deeper than {MAX_NESTING_DEPTH} levels", self.expression
            )
        return self._logical(tokens)

    def _logical(self, tokens: list[_Token]) -> FilterExpression:
        parts = _split_top_level(tokens, "and")
        if len(parts) > 1:
            return And(tuple(self._disjunction(part) for part in parts))
        return self._disjunction(tokens)

    def _disjunction(self, tokens: list[_Token]) -> FilterExpression:
        parts = _split_top_level(tokens, "or")
        if len(parts) > 1:
            return Or(tuple(self._term(part) for part in parts))
        return self._term(tokens)

    def _term(self, tokens: list[_Token]) -> FilterExpression:
        if not tokens:
            raise FilterParseError("Missing operand next to a logical operator", self.expression)

        if tokens[0].kind == _LPAREN and self._closing_index(tokens, 0) == len(tokens) - 1:
            return self._logical(tokens[1:-1])

        first = tokens[0]
        if (
            first.kind == _WORD
            and first.text.lower() in FUNCTION_NAMES
            and len(tokens) > 1
            and tokens[1].kind == _LPAREN
        ):
            return self._function(tokens)

        if len(tokens) == 3 and first.kind == _WORD and tokens[1].kind == _WORD:
            op = tokens[1].text.lower()
            literal = self._literal(tokens[2])
            if op in COMPARISON_OPERATORS:
                return Compare(first.text, op, literal)
            if op == "contains":
                return Function("contains", first.text, literal)

        text = " ".join(t.text for t in tokens)
        raise FilterParseError(f"Unsupported filter term: {text}", self.expression)

    def _function(self, tokens: list[_Token]) -> Function:
        name = tokens[0].text.lower()
        # name ( path , literal )
        if (
            len(tokens) != 6
            or tokens[2].kind != _WORD
            or tokens[3].kind != _COMMA
            or tokens[5].kind != _RPAREN
        ):
            raise FilterParseError(f"{name}() expects (property, literal)", self.expression)
        return Function(name, tokens[2].text, self._literal(tokens[4]))

    def _literal(self, token: _Token) -> Any:
        if token.kind == _STRING:
            return token.text
        if token.kind == _WORD:
            return parse_literal(token.text)
        raise FilterParseError(f"Expected a literal, got '{token.text}'", self.expression)

    def _closing_index(self, tokens: list[_Token], start: int) -> int:
        depth = 0
        for index in range(start, len(tokens)):
            if tokens[index].kind == _LPAREN:
                depth += 1
            elif tokens[index].kind == _RPAREN:
                depth -= 1
                if depth == 0:
                    return index
        raise FilterParseError("Unbalanced parentheses", self.expression)


def parse_filter(expression: str) -> FilterExpression:
    """Parse a $filter string into an AST.

    Raises:
        FilterParseError: If the expression is empty or unsupported
    """
    return _Parser(expression).parse()


# =============================================================================
# Evaluation
# =============================================================================


def resolve_path(item: Any, path: str) -> Any:
    """Read a "/"-separated property path, None if any segment is missing."""
    value = item
    for segment in path.split("/"):
        if not isinstance(value, dict):
            return None
        value = value.get(segment)
    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _strict_equal(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if _is_number(left) and _is_number(right):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def _ordered(left: Any, op: str, right: Any) -> bool:
    if left is None or right is None:
        return False
    comparable = (_is_number(left) or isinstance(left, bool)) and (
        _is_number(right) or isinstance(right, bool)
    )
    if not comparable and not (isinstance(left, str) and isinstance(right, str)):
        raise FilterEvaluationError(
            f"Cannot compare {type(left).__name__} with {type(right).__name__}",
            term=op,
        )
    if op == "gt":
        return left > right
    if op == "ge":
        return left >= right
    if op == "lt":
        return left < right
    return left <= right


def _call(name: str, value: Any, literal: Any) -> bool:
    if name == "contains" and isinstance(value, list):
        return any(_strict_equal(element, literal) for element in value)
    if not isinstance(value, str):
        raise FilterEvaluationError(
            f"{name}() needs a string property, got {type(value).__name__}", term=name
        )
    if not isinstance(literal, str):
        raise FilterEvaluationError(f"{name}() needs a string literal", term=name)
    if name == "startswith":
        return value.startswith(literal)
    if name == "endswith":
        return value.endswith(literal)
    return literal in value


def evaluate(expression: FilterExpression, item: dict[str, Any]) -> bool:
    """Evaluate an AST against one item.

    Raises:
        FilterEvaluationError: If a term cannot be evaluated for this item
    """
    if isinstance(expression, And):
        return all(evaluate(term, item) for term in expression.terms)
    if isinstance(expression, Or):
        return any(evaluate(term, item) for term in expression.terms)
    if isinstance(expression, Compare):
        value = resolve_path(item, expression.path)
        if expression.op == "eq":
            return _strict_equal(value, expression.literal)
        if expression.op == "ne":
            return not _strict_equal(value, expression.literal)
        return _ordered(value, expression.op, expression.literal)
    return _call(expression.name, resolve_path(item, expression.path), expression.literal)


def apply_filter(
    items: Iterable[dict[str, Any]],
    expression: str | None,
    diagnostics: list[str] | None = None,
) -> list[dict[str, Any]]:
    """Keep the items matching a $filter expression.

    Fail-open: an unparsable expression keeps every item, and an item whose
    evaluation fails is kept.

    Args:
        items: Items to filter
        expression: Raw $filter string (None or blank keeps everything)
        diagnostics: Optional list receiving one message per failure

    Returns:
        New list of kept items in original order
    """
    items = list(items)
    if expression is None or not expression.strip():
        return items

    try:
        ast = parse_filter(expression)
    except FilterParseError as e:
        message = f"Unsupported filter expression '{expression}': {e.message}"
        logger.warning(message)
        if diagnostics is not None:
            diagnostics.append(message)
        return items

    kept: list[dict[str, Any]] = []
    failures: list[str] = []
    for item in items:
        try:
            if evaluate(ast, item):
                kept.append(item)
        except (FilterEvaluationError, TypeError) as e:
            failures.append(f"Error evaluating filter '{expression}' for item {item.get('id')!r}: {e}")
            kept.append(item)

    if failures:
        logger.warning(
            f"Filter evaluation failed for {len(failures)} item(s), keeping them",
            extra={"filter": expression, "first_error": failures[0]},
        )
        if diagnostics is not None:
            diagnostics.extend(failures)

    return kept
