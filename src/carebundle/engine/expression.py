"""
CareBundle Expression Evaluator

Parses and evaluates the small expression language used by algorithm
computed inputs and decision-tree branch conditions.

Precedence, lowest binding first:
    ternary  (c ? a : b)
    ||
    &&
    comparison  (== != >= <= > <)
    +
    ( ... )
    atom  (number, true/false, identifier)

Key features:
- Operators are only split at parenthesis depth 0
- Parsed trees are cached per expression string
- Identifiers missing from the context read as 0
- Unparseable atoms read as 0 and never raise
- Unbalanced parentheses, or nesting deeper than MAX_NESTING_DEPTH,
  make the whole expression read as 0
- Loose (dynamic-language style) equality and ordering
"""
from __future__ import annotations

import logging
import operator as _op
import re
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from typing import Any, Callable, Mapping, Optional, Union


logger = logging.getLogger(__name__)

Number = Union[int, float]
Value = Union[int, float, bool, str, None]

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_NUMBER_LITERAL_RE = re.compile(r"^-?\d+(\.\d+)?$")
_NUMERIC_STRING_RE = re.compile(r"^\s*[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?\s*$")

MAX_NESTING_DEPTH = 32

COMPARISON_OPERATORS: tuple[str, ...] = ("==", "!=", ">=", "<=", ">", "<")

_COMPARATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": _op.eq,
    "!=": _op.ne,
    ">=": _op.ge,
    "<=": _op.le,
    ">": _op.gt,
    "<": _op.lt,
}


# =============================================================================
# Value Coercion
# =============================================================================

def to_bool(value: Any) -> bool:
    """Truthiness: None, False, 0, 0.0, "" and "0" are false."""
    if value is None:
        return False
    if isinstance(value, str):
        return value not in ("", "0")
    return bool(value)


def _as_number(value: Any) -> Optional[Number]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, str) and _NUMERIC_STRING_RE.match(value):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            return float(text)
    return None


def to_number(value: Any) -> Number:
    """Numeric value for arithmetic; booleans count as 0/1, anything else 0."""
    if isinstance(value, bool):
        return int(value)
    number = _as_number(value)
    return 0 if number is None else number


def loose_compare(left: Any, operator: str, right: Any) -> bool:
    """
    Compare two values with loose typing.

    Coercion:
    - either side bool or None: both sides compare as booleans
    - both sides numeric (numeric strings included): numeric comparison
    - otherwise: string comparison

    So `0 == false` and `"2" == 2` are both true.
    """
    compare = _COMPARATORS.get(operator)
    if compare is None:
        return False

    if isinstance(left, bool) or isinstance(right, bool) or left is None or right is None:
        return compare(int(to_bool(left)), int(to_bool(right)))

    left_num, right_num = _as_number(left), _as_number(right)
    if left_num is not None and right_num is not None:
        return compare(left_num, right_num)
    return compare(str(left), str(right))


def loose_equals(left: Any, right: Any) -> bool:
    return loose_compare(left, "==", right)


# =============================================================================
# Expression Tree
# =============================================================================

@dataclass(frozen=True)
class Literal:
    value: Value

    def evaluate(self, context: Mapping[str, Any]) -> Value:
        return self.value

    def identifiers(self) -> set[str]:
        return set()


@dataclass(frozen=True)
class Variable:
    name: str

    def evaluate(self, context: Mapping[str, Any]) -> Value:
        value = context.get(self.name)
        return 0 if value is None else value

    def identifiers(self) -> set[str]:
        return {self.name}


@dataclass(frozen=True)
class Ternary:
    condition: Expr
    if_true: Expr
    if_false: Expr

    def evaluate(self, context: Mapping[str, Any]) -> Value:
        if to_bool(self.condition.evaluate(context)):
            return self.if_true.evaluate(context)
        return self.if_false.evaluate(context)

    def identifiers(self) -> set[str]:
        return (
            self.condition.identifiers()
            | self.if_true.identifiers()
            | self.if_false.identifiers()
        )


@dataclass(frozen=True)
class Or:
    operands: tuple[Expr, ...]

    def evaluate(self, context: Mapping[str, Any]) -> bool:
        return any(to_bool(op.evaluate(context)) for op in self.operands)

    def identifiers(self) -> set[str]:
        return set().union(*(op.identifiers() for op in self.operands))


@dataclass(frozen=True)
class And:
    operands: tuple[Expr, ...]

    def evaluate(self, context: Mapping[str, Any]) -> bool:
        return all(to_bool(op.evaluate(context)) for op in self.operands)

    def identifiers(self) -> set[str]:
        return set().union(*(op.identifiers() for op in self.operands))


@dataclass(frozen=True)
class Compare:
    left: Expr
    operator: str
    right: Expr

    def evaluate(self, context: Mapping[str, Any]) -> bool:
        return loose_compare(
            self.left.evaluate(context), self.operator, self.right.evaluate(context)
        )

    def identifiers(self) -> set[str]:
        return self.left.identifiers() | self.right.identifiers()


@dataclass(frozen=True)
class Add:
    operands: tuple[Expr, ...]

    def evaluate(self, context: Mapping[str, Any]) -> Number:
        total: Number = 0
        for operand in self.operands:
            total += to_number(operand.evaluate(context))
        return total

    def identifiers(self) -> set[str]:
        return set().union(*(op.identifiers() for op in self.operands))


Expr = Union[Literal, Variable, Ternary, Or, And, Compare, Add]


# =============================================================================
# Parsing
# =============================================================================

def _split_top_level(expression: str, token: str) -> list[str]:
    """Split on `token` wherever it occurs outside parentheses."""
    parts: list[str] = []
    depth = 0
    start = 0
    i = 0
    while i < len(expression):
        char = expression[i]
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        elif depth == 0 and expression.startswith(token, i):
            parts.append(expression[start:i])
            i += len(token)
            start = i
            continue
        i += 1
    parts.append(expression[start:])
    return parts


def _split_ternary(expression: str) -> Optional[tuple[str, str, str]]:
    """
    Locate the first top-level `?` and the `:` that pairs with it.

    Nested ternaries between the two are skipped, so the false branch
    keeps any further ternary (right associative).
    """
    depth = 0
    question = None
    nested = 0
    for i, char in enumerate(expression):
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        elif depth != 0:
            continue
        elif char == "?":
            if question is None:
                question = i
            else:
                nested += 1
        elif char == ":" and question is not None:
            if nested == 0:
                return (
                    expression[:question],
                    expression[question + 1:i],
                    expression[i + 1:],
                )
            nested -= 1
    return None


def _split_comparison(expression: str) -> Optional[tuple[str, str, str]]:
    """First top-level comparison operator, two-character operators first."""
    depth = 0
    for i, char in enumerate(expression):
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        elif depth == 0:
            for op in COMPARISON_OPERATORS:
                if expression.startswith(op, i):
                    return expression[:i], op, expression[i + len(op):]
    return None


def _is_wrapped(expression: str) -> bool:
    """True when the whole string is one parenthesized group."""
    if not (expression.startswith("(") and expression.endswith(")")):
        return False
    depth = 0
    for i, char in enumerate(expression):
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return i == len(expression) - 1
    return False


def _parse(expression: str) -> Expr:
    expression = expression.strip()
    if not expression:
        return Literal(0)

    ternary = _split_ternary(expression)
    if ternary is not None:
        condition, if_true, if_false = ternary
        return Ternary(_parse(condition), _parse(if_true), _parse(if_false))

    parts = _split_top_level(expression, "||")
    if len(parts) > 1:
        return Or(tuple(_parse(p) for p in parts))

    parts = _split_top_level(expression, "&&")
    if len(parts) > 1:
        return And(tuple(_parse(p) for p in parts))

    comparison = _split_comparison(expression)
    if comparison is not None:
        left, op, right = comparison
        return Compare(_parse_additive(left), op, _parse_additive(right))

    return _parse_additive(expression)


def _parse_additive(expression: str) -> Expr:
    parts = _split_top_level(expression.strip(), "+")
    if len(parts) > 1:
        return Add(tuple(_parse_primary(p) for p in parts))
    return _parse_primary(expression)


def _parse_primary(expression: str) -> Expr:
    expression = expression.strip()
    if not expression:
        return Literal(0)
    if _is_wrapped(expression):
        return _parse(expression[1:-1])
    if expression == "true":
        return Literal(True)
    if expression == "false":
        return Literal(False)
    if _NUMBER_LITERAL_RE.match(expression):
        return Literal(float(expression) if "." in expression else int(expression))
    if _IDENTIFIER_RE.match(expression):
        return Variable(expression)
    logger.debug("Unrecognised expression atom %r evaluates to 0", expression)
    return Literal(0)


def _nesting_depth(expression: str) -> Optional[int]:
    """Deepest parenthesis level, or None when the parentheses do not balance."""
    depth = deepest = 0
    for char in expression:
        if char == "(":
            depth += 1
            deepest = max(deepest, depth)
        elif char == ")":
            depth -= 1
            if depth < 0:
                return None
    return deepest if depth == 0 else None


@lru_cache(maxsize=2048)
def parse_expression(expression: str) -> Expr:
    """
    Parse an expression string into an evaluable tree.

    Never raises: malformed fragments become the literal 0, and so does
    the whole expression when its parentheses do not balance or nest
    deeper than MAX_NESTING_DEPTH.
    """
    depth = _nesting_depth(expression)
    if depth is None:
        logger.debug("Unbalanced parentheses in %r, expression evaluates to 0", expression)
        return Literal(0)
    if depth > MAX_NESTING_DEPTH:
        logger.debug("Expression nests %d levels deep, evaluates to 0", depth)
        return Literal(0)
    try:
        return _parse(expression)
    except RecursionError:
        # Long ternary chains recurse once per link
        logger.warning("Expression too deeply nested, evaluates to 0: %.80r", expression)
        return Literal(0)


# =============================================================================
# Convenience Functions
# =============================================================================

def evaluate_expression(expression: str, context: Mapping[str, Any]) -> Value:
    """
    Evaluate an expression against a variable context.

    Args:
        expression: Expression source, e.g. "C1 >= 2 && C2a == 1"
        context: Variable name -> value

    Returns:
        The expression value (bool for logical/comparison expressions)
    """
    return parse_expression(expression).evaluate(context)


def evaluate_condition(expression: str, context: Mapping[str, Any]) -> bool:
    """Evaluate an expression and reduce it to its truthiness."""
    return to_bool(evaluate_expression(expression, context))


def expression_identifiers(expression: str) -> set[str]:
    """Identifiers an expression reads."""
    return parse_expression(expression).identifiers()
